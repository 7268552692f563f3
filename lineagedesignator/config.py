"""
Configuration Management for lineagedesignator

This module provides the configuration system for lineage designation using
frozen dataclasses. The configuration system supports:

1. Default thresholds matching the published designation method
2. Loading configuration from YAML/JSON files and saving it as YAML
3. Environment variable overrides
4. Validation at construction time

Configuration Structure:
- DesignationConfig: Clustering and naming thresholds
- PipelineConfig: Master configuration adding logging and output settings

Example Usage:
    >>> from lineagedesignator.config import get_default_config, load_config_from_file
    >>>
    >>> # Use defaults
    >>> config = get_default_config()
    >>> print(config.designation.min_tips)
    5
    >>>
    >>> # Load from file
    >>> config = load_config_from_file("rabies_run.yaml")
    >>>
    >>> # Update specific parameters
    >>> custom_config = config.update(
    ...     designation__min_support=90,
    ...     designation__min_separation=10
    ... )
"""

from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Optional, List, Dict, Any, Union
import os
import json
import logging

import yaml

logger = logging.getLogger(__name__)


# ============================================================================
# Designation Configuration
# ============================================================================

@dataclass(frozen=True)
class DesignationConfig:
    """
    Configuration for lineage clustering and naming.

    Attributes
    ----------
    min_support : float
        Support value a node must exceed to seed a candidate lineage
        (default: 70.0). Nodes whose support equals ``max_support`` always
        qualify.

    max_support : float
        Maximum possible support value (default: 100.0). Some reconstructions
        report missing support as a sentinel equal to this value.

    min_tips : int
        Minimum number of descendant tips for a candidate (default: 5).

    coverage_threshold : float
        Fraction of the alignment width that must remain after removing
        ambiguous bases and gaps for a sequence to count towards a candidate
        (default: 0.95).

    min_cluster_size : int
        Minimum number of sequences a lineage must directly claim (default: 2).

    min_separation : int
        Minimum difference in tip count between a lineage and its immediate
        parent lineage (default: 5).

    max_label_depth : Optional[int]
        Maximum number of dot levels in a label (default: 2, so A1.1.1 is the
        deepest label). A lineage that would need a deeper label is given
        a fresh root token instead.
        None disables the roll-over.

    max_root_tokens : int
        Number of root tokens (A1, B1, ..., ZZ1) available per naming context
        (default: 702, all one- and two-letter tokens).

    max_partition_iterations : Optional[int]
        Upper bound on minimum-size pruning passes. None uses the initial
        candidate count plus one.

    Notes
    -----
    The size and separation defaults follow the lineage definition used for
    rabies virus lineage designation: a lineage needs at least 5 supported,
    well-covered members and must differ from its parent by at least 5
    sequences.
    """
    min_support: float = 70.0
    max_support: float = 100.0
    min_tips: int = 5
    coverage_threshold: float = 0.95
    min_cluster_size: int = 2
    min_separation: int = 5
    max_label_depth: Optional[int] = 2
    max_root_tokens: int = 702
    max_partition_iterations: Optional[int] = None

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.min_support < 0:
            raise ValueError("min_support must be non-negative")
        if self.max_support <= 0:
            raise ValueError("max_support must be positive")
        if self.min_support > self.max_support:
            logger.warning(
                f"min_support ({self.min_support}) exceeds max_support "
                f"({self.max_support}); only max-support nodes will qualify"
            )
        if self.min_tips < 1:
            raise ValueError("min_tips must be at least 1")
        if not 0 < self.coverage_threshold <= 1:
            raise ValueError("coverage_threshold must be between 0 and 1")
        if self.min_cluster_size < 1:
            raise ValueError("min_cluster_size must be at least 1")
        if self.min_separation < 0:
            raise ValueError("min_separation must be non-negative")
        if self.max_label_depth is not None and self.max_label_depth < 1:
            raise ValueError("max_label_depth must be at least 1 or None")
        if self.max_root_tokens < 1:
            raise ValueError("max_root_tokens must be at least 1")
        if self.max_partition_iterations is not None and self.max_partition_iterations < 1:
            raise ValueError("max_partition_iterations must be at least 1 or None")


# ============================================================================
# Master Pipeline Configuration
# ============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """
    Master configuration for a lineage designation run.

    Attributes
    ----------
    designation : DesignationConfig
        Clustering and naming configuration

    log_level : str
        Logging level (default: "INFO")

    output_dir : Path
        Base output directory (default: "results")

    tree_format : str
        Bio.Phylo format name of the input tree (default: "newick")
    """
    designation: DesignationConfig = field(default_factory=DesignationConfig)
    log_level: str = "INFO"
    output_dir: Path = field(default_factory=lambda: Path("results"))
    tree_format: str = "newick"

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.output_dir, str):
            object.__setattr__(self, 'output_dir', Path(self.output_dir))

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")

        valid_formats = ["newick", "nexus", "nexml", "phyloxml"]
        if self.tree_format not in valid_formats:
            raise ValueError(f"tree_format must be one of {valid_formats}")

    def update(self, **kwargs) -> 'PipelineConfig':
        """
        Create a new configuration with updated values.

        Supports nested updates using double underscore notation:
        config.update(designation__min_support=90)

        Parameters
        ----------
        **kwargs
            Configuration parameters to update. Use double underscore
            for nested parameters (e.g., designation__min_tips)

        Returns
        -------
        PipelineConfig
            New configuration object with updates
        """
        top_level = {}
        nested = {}

        for key, value in kwargs.items():
            if '__' in key:
                component, param = key.split('__', 1)
                nested.setdefault(component, {})[param] = value
            else:
                top_level[key] = value

        for component, updates in nested.items():
            current = getattr(self, component)
            top_level[component] = replace(current, **updates)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        return asdict(self)

    def to_yaml(self, output_path: Union[str, Path]) -> None:
        """
        Save configuration to YAML file.

        Parameters
        ----------
        output_path : Union[str, Path]
            Output file path
        """
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")


# ============================================================================
# Helper Functions
# ============================================================================

def get_default_config() -> PipelineConfig:
    """
    Get default pipeline configuration.

    Returns
    -------
    PipelineConfig
        Default configuration with recommended parameters
    """
    return PipelineConfig()


def load_config_from_file(config_path: Union[str, Path]) -> PipelineConfig:
    """
    Load configuration from YAML or JSON file.

    Automatically detects file format based on extension.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    PipelineConfig
        Loaded configuration

    Raises
    ------
    FileNotFoundError
        If configuration file doesn't exist
    ValueError
        If file format is not supported
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()

    if suffix in ['.yaml', '.yml']:
        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
    elif suffix == '.json':
        with open(path, 'r') as f:
            config_dict = json.load(f)
    else:
        raise ValueError(f"Unsupported config file format: {suffix}")

    logger.info(f"Loaded configuration from {path}")
    return _dict_to_config(config_dict)


def _dict_to_config(config_dict: Dict[str, Any]) -> PipelineConfig:
    """Convert dictionary to PipelineConfig object."""
    config_dict = dict(config_dict)
    nested_configs = {}

    if 'designation' in config_dict:
        nested_configs['designation'] = DesignationConfig(**config_dict.pop('designation'))

    if 'output_dir' in config_dict and config_dict['output_dir'] is not None:
        config_dict['output_dir'] = Path(config_dict['output_dir'])

    return PipelineConfig(**nested_configs, **config_dict)


def _convert_paths_to_strings(obj: Any) -> Any:
    """Recursively convert Path objects to strings for serialization."""
    if isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, dict):
        return {k: _convert_paths_to_strings(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_convert_paths_to_strings(item) for item in obj]
    elif isinstance(obj, tuple):
        return tuple(_convert_paths_to_strings(item) for item in obj)
    else:
        return obj


def load_config_from_env() -> Dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Environment variables should be prefixed with LINEAGEDESIGNATOR_
    and use double underscores for nesting:

    LINEAGEDESIGNATOR_DESIGNATION__MIN_SUPPORT=90
    LINEAGEDESIGNATOR_LOG_LEVEL=DEBUG

    Returns
    -------
    Dict[str, Any]
        Configuration overrides suitable for ``PipelineConfig.update``
    """
    prefix = "LINEAGEDESIGNATOR_"
    overrides = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            overrides[config_key] = _parse_env_value(value)

    if overrides:
        logger.debug(f"Loaded {len(overrides)} configuration overrides from environment")

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ['true', 'yes']:
        return True
    if value.lower() in ['false', 'no']:
        return False
    if value.lower() in ['none', 'null']:
        return None

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def validate_config(config: PipelineConfig) -> List[str]:
    """
    Validate configuration and return list of warnings.

    Parameters
    ----------
    config : PipelineConfig
        Configuration to validate

    Returns
    -------
    List[str]
        List of warning messages (empty if no issues)
    """
    warnings = []
    d = config.designation

    if d.min_support < 50:
        warnings.append(
            f"Minimum support ({d.min_support}) is low. "
            "Poorly supported nodes may be designated as lineages."
        )

    if d.min_tips < d.min_cluster_size:
        warnings.append(
            f"min_tips ({d.min_tips}) is smaller than min_cluster_size "
            f"({d.min_cluster_size}); size pruning will do most of the filtering."
        )

    if d.coverage_threshold < 0.8:
        warnings.append(
            f"Coverage threshold ({d.coverage_threshold}) is lenient. "
            "Fragmentary sequences will inflate lineage sizes."
        )

    if d.max_label_depth is None:
        warnings.append(
            "max_label_depth is disabled; deeply nested lineages will carry "
            "long dotted labels."
        )

    return warnings
