"""Exception types raised by the rankenrich analysis engine."""


class InvalidInputError(ValueError):
    """Raised when an input violates a precondition of a statistical procedure.

    Examples are empty groups, non-finite values, an iteration count below
    one, or a gene set too small for the rank-sum test.
    """


class MissingDataError(LookupError):
    """Raised when an expected gene identifier or value is absent."""
