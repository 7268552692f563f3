"""
Helper Functions and Utilities

This module provides common utility functions used throughout the
lineagedesignator package.

Key Utilities:
1. Logging Configuration
   - Centralized logging setup for the package logger
   - Console and optional file output

2. Sequence Utilities
   - Ambiguous-base and gap counting for aligned sequences
   - Missing-value normalisation for metadata fields

3. General Helpers
   - Elapsed time formatting

Example Usage:
    >>> from lineagedesignator.utils import setup_logging, get_sequence_stats
    >>> logger = setup_logging(log_level="DEBUG")
    >>> get_sequence_stats("ACGTNN--")['n_count']
    2
"""

from typing import Optional, Dict, Any
from pathlib import Path
from collections import Counter
import logging
import math
import sys

# Configure module logger
logger = logging.getLogger(__name__)

# Metadata values treated as "not recorded"
MISSING_VALUES = {"", "na", "nan", "none", "null"}


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for lineagedesignator.

    Sets up the package logger with console and optional file output.

    Parameters
    ----------
    log_level : str, optional
        Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console (default: None)
    format_string : str, optional
        Custom format string for log messages. If None, uses default format

    Returns
    -------
    logging.Logger
        Configured logger instance

    Notes
    -----
    The default format includes timestamp, level, and message:
    [2025-11-03 10:30:45] INFO: Detected 42 candidate nodes
    """
    package_logger = logging.getLogger("lineagedesignator")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    package_logger.handlers.clear()

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s: %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

        package_logger.info(f"Logging to file: {log_file}")

    return package_logger


def log_function_call(func_name: str, **kwargs) -> None:
    """
    Log a function call with its parameters at DEBUG level.

    Parameters
    ----------
    func_name : str
        Name of the function being called
    **kwargs
        Function parameters to log
    """
    params = ", ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.debug(f"Calling {func_name}({params})")


# ============================================================================
# Sequence Utilities
# ============================================================================

def get_sequence_stats(sequence: str) -> Dict[str, Any]:
    """
    Count ambiguous bases and gaps in an aligned sequence.

    Parameters
    ----------
    sequence : str
        Aligned DNA sequence

    Returns
    -------
    Dict[str, Any]
        Dictionary with ``length`` (aligned width), ``n_count``,
        ``gap_count`` and ``ungapped_length`` (width minus Ns and gaps)

    Examples
    --------
    >>> stats = get_sequence_stats("ACGTN-")
    >>> stats['ungapped_length']
    4
    """
    seq = sequence.upper().strip()
    base_counts = Counter(seq)

    n_count = base_counts.get('N', 0)
    gap_count = base_counts.get('-', 0)

    return {
        'length': len(seq),
        'n_count': n_count,
        'gap_count': gap_count,
        'ungapped_length': len(seq) - n_count - gap_count,
    }


def is_missing(value: Any) -> bool:
    """
    Return True for blank or "NA"-like metadata values.

    Examples
    --------
    >>> is_missing("  "), is_missing(float("nan")), is_missing("NA"), is_missing("Asian")
    (True, True, True, False)
    """
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip().lower() in MISSING_VALUES


def clean_label(value: Any) -> Optional[str]:
    """Strip a metadata label, mapping missing values to None."""
    if is_missing(value):
        return None
    return str(value).strip()


# ============================================================================
# Time and Formatting Utilities
# ============================================================================

def format_elapsed_time(seconds: float) -> str:
    """
    Format elapsed time in human-readable format.

    Examples
    --------
    >>> format_elapsed_time(45)
    '45s'
    >>> format_elapsed_time(150)
    '2.5m'
    """
    if seconds < 60:
        return f"{seconds:.0f}s"

    minutes = seconds / 60
    if minutes < 60:
        return f"{minutes:.1f}m"

    hours = minutes / 60
    return f"{hours:.1f}h"
