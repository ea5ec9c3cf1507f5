"""Configuration handling for the rankenrich pipeline."""

import tomli
import tomli_w
from pathlib import Path
from typing import Any, Dict, Optional, Union


class PipelineConfig:
    """Configuration class for the RNA-seq rank analysis pipeline."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the configuration from a TOML file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config_path = config_path

        # Load configuration file
        try:
            with open(config_path, "rb") as f:
                self.config = tomli.load(f)
        except FileNotFoundError:
            raise ValueError(f"Error loading configuration file: {config_path} does not exist")
        except Exception as e:
            raise ValueError(f"Error loading configuration file: {str(e)}")

        # Validate required sections
        required_sections = ['input', 'output', 'analysis']
        missing_sections = [section for section in required_sections if section not in self.config]
        if missing_sections:
            raise ValueError(f"Missing required sections in configuration: {', '.join(missing_sections)}")

        # Extract input file paths
        self.input_files = self.config.get("input", {})

        # Validate required input files
        required_input_files = ['counts_file', 'biomarkers_file', 'de_results_file', 'gene_sets_file']
        missing_files = [file for file in required_input_files if file not in self.input_files]
        if missing_files:
            raise ValueError(f"Missing required input files in configuration: {', '.join(missing_files)}")

        # Extract output configuration
        self.output_config = self.config.get("output", {})

        # Extract analysis parameters
        self.analysis_params = self.config.get("analysis", {})
        self.num_threads = int(self.analysis_params.get("num_threads", 25))
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be at least 1, got {self.num_threads}")
        self.disease_prefix = self.analysis_params.get("disease_prefix", "A")
        self.control_prefix = self.analysis_params.get("control_prefix", "K")

        # Classification (AUROC permutation null) parameters
        self.classification_params = self.config.get("classification", {})
        self.permutations = int(self.classification_params.get("permutations", 5000))
        self.tail_fraction = float(self.classification_params.get("tail_fraction", 0.025))

        # Gene set enrichment parameters
        self.enrichment_params = self.config.get("enrichment", {})
        self.min_set_size = int(self.enrichment_params.get("min_size", 10))
        self.max_set_size = int(self.enrichment_params.get("max_size", 100))
        if self.min_set_size >= self.max_set_size:
            raise ValueError(
                f"enrichment.min_size ({self.min_set_size}) must be below max_size ({self.max_set_size})"
            )

        # Differential expression calling thresholds
        self.de_params = self.config.get("de", {})
        self.lfc_threshold = float(self.de_params.get("lfc_threshold", 1.0))
        self.padj_threshold = float(self.de_params.get("padj_threshold", 0.05))

    def get_output_path(self, subdir: Optional[str] = None) -> Path:
        """Get the path to the output directory or a subdirectory within it.

        Args:
            subdir: Optional subdirectory name within the output directory

        Returns:
            Path object for the requested directory
        """
        base_path = Path(self.output_config.get("directory", "results"))

        # If a subdirectory is specified, append it to the base path
        if subdir:
            return base_path / subdir

        return base_path

    @property
    def make_plots(self) -> bool:
        return bool(self.output_config.get("plots", True))

    def as_dict(self) -> Dict[str, Any]:
        """Effective configuration, including defaults."""
        return {
            'input': {k: str(v) for k, v in self.input_files.items()},
            'output': {'directory': str(self.get_output_path()), 'plots': self.make_plots},
            'analysis': {
                'num_threads': self.num_threads,
                'disease_prefix': self.disease_prefix,
                'control_prefix': self.control_prefix,
            },
            'classification': {
                'permutations': self.permutations,
                'tail_fraction': self.tail_fraction,
            },
            'enrichment': {'min_size': self.min_set_size, 'max_size': self.max_set_size},
            'de': {'lfc_threshold': self.lfc_threshold, 'padj_threshold': self.padj_threshold},
        }

    def save_config(self, output_path: Union[str, Path]) -> None:
        """Save the effective configuration to a TOML file.

        Args:
            output_path: Path to save the configuration file
        """
        with open(output_path, "wb") as f:
            tomli_w.dump(self.as_dict(), f)
