"""Utility functions for the rankenrich pipeline."""

import logging
import platform
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable, List, Sequence, Tuple

import numpy as np
from tqdm.auto import tqdm

# Configure tqdm to work properly on macOS
is_mac = platform.system() == 'Darwin'
tqdm_kwargs = {
    'position': 0,
    'leave': True,
    'ncols': 100,
    'dynamic_ncols': True,  # Allow tqdm to adjust the width dynamically
    'ascii': is_mac,        # Use ASCII characters on macOS for better terminal compatibility
}

logger = logging.getLogger(__name__)


def setup_logging(log_dir=None, level=logging.INFO):
    """Set up logging configuration.

    Args:
        log_dir: Directory to store log files
        level: Logging level
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Create log directory if specified and doesn't exist
    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / 'pipeline.log'

        # Create a file handler to write logs to file
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root_logger.addHandler(file_handler)
        root_logger.info("Logging initialized")

    # Always add a console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))
    root_logger.addHandler(console_handler)

    return logging.getLogger('rankenrich')

def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path

    Returns:
        Path object for the directory
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path

def index_blocks(start: int, stop: int, num_workers: int, blocks_per_worker: int = 4) -> List[Tuple[int, int]]:
    """Split the indices ``start..stop-1`` into contiguous (start, stop) blocks.

    A few blocks per worker keep the pool busy while each task carries a
    large slice of the work.
    """
    n_items = stop - start
    if n_items <= 0:
        return []
    n_blocks = max(1, min(n_items, int(num_workers) * blocks_per_worker))
    edges = np.linspace(start, stop, n_blocks + 1).astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]

def run_tasks(
    func: Callable[[Any], Any],
    items: Sequence[Any],
    num_workers: int = 1,
    desc: str = "Processing",
    unit: str = "task",
) -> List[Any]:
    """Apply ``func`` to every item, in a process pool when ``num_workers > 1``.

    Results are returned in the order of ``items`` whatever order the workers
    finish in. The first failing item cancels the remaining work and its
    exception is re-raised.

    Args:
        func: Picklable module-level function of one argument
        items: Work items
        num_workers: Size of the worker pool
        desc: Progress bar label
        unit: Progress bar unit

    Returns:
        List of results aligned with ``items``
    """
    n_items = len(items)
    results: List[Any] = [None] * n_items
    if n_items == 0:
        return results

    num_workers = max(1, min(int(num_workers), n_items))

    if num_workers == 1:
        with tqdm(total=n_items, desc=desc, unit=unit, **tqdm_kwargs) as pbar:
            for idx, item in enumerate(items):
                try:
                    results[idx] = func(item)
                except Exception as e:
                    logger.error(f"Error processing {unit} {idx}: {str(e)}")
                    raise
                pbar.update(1)
        return results

    logger.debug(f"{desc}: {n_items} {unit}s on {num_workers} workers")
    with ProcessPoolExecutor(max_workers=num_workers) as executor:
        futures = {
            executor.submit(func, item): idx
            for idx, item in enumerate(items)
        }

        with tqdm(total=n_items, desc=desc, unit=unit, **tqdm_kwargs) as pbar:
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except Exception as e:
                    logger.error(f"Error processing {unit} {idx}: {str(e)}")
                    for pending in futures:
                        pending.cancel()
                    raise
                pbar.update(1)

    return results
