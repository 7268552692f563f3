"""
Sequence Records and Coverage Statistics

This module joins the observed alignment with the per-sequence metadata to
produce the sequence table every designation stage reads from.

Key Responsibilities:
1. Metadata validation:
   - Required columns: ID, year, country, assignment
   - IDs must be unique
   - Blank / "NA" values normalise to missing
2. Coverage statistics per aligned sequence:
   - n_N: ambiguous bases (N)
   - n_gap: gap characters (-)
   - length_before: alignment width
   - length: width after removing Ns and gaps
   - passes_coverage: length >= coverage_threshold * length_before

Sequence Table Columns:
    ID, n_N, n_gap, length_before, length, year, country, previous,
    passes_coverage

Sequences listed in the metadata but absent from the alignment are kept at
the end of the table with missing statistics, so that every metadata ID is
reported exactly once.

Example Usage:
    >>> import pandas as pd
    >>> from lineagedesignator.sequences import build_sequence_table
    >>> metadata = pd.DataFrame({
    ...     "ID": ["s1", "s2"], "year": [2001, 2003],
    ...     "country": ["Peru", ""], "assignment": ["Cosmopolitan", None],
    ... })
    >>> table = build_sequence_table({"s1": "ACGT", "s2": "AC-N"}, metadata)
    >>> table["length"].tolist()
    [4, 2]
"""

from typing import Dict, List, Sequence
import logging

import numpy as np
import pandas as pd

from .exceptions import MissingMetadataRow
from .utils import get_sequence_stats, clean_label, is_missing

logger = logging.getLogger(__name__)

REQUIRED_METADATA_COLUMNS = ["ID", "year", "country", "assignment"]

SEQUENCE_TABLE_COLUMNS = [
    "ID", "n_N", "n_gap", "length_before", "length",
    "year", "country", "previous", "passes_coverage",
]


def validate_metadata(metadata: pd.DataFrame) -> pd.DataFrame:
    """
    Check required columns and ID uniqueness, returning a normalised copy.

    Parameters
    ----------
    metadata : pd.DataFrame
        Metadata with an ``ID`` column (or an index named ``ID``)

    Returns
    -------
    pd.DataFrame
        Copy with string IDs and cleaned ``country`` / ``assignment`` values

    Raises
    ------
    ValueError
        If required columns are missing or IDs are not unique
    """
    df = metadata.copy()
    if "ID" not in df.columns and df.index.name == "ID":
        df = df.reset_index()

    missing = [col for col in REQUIRED_METADATA_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(
            f"Metadata is missing required columns: {missing}. "
            f"Columns may be blank but must exist: {REQUIRED_METADATA_COLUMNS}"
        )

    df["ID"] = df["ID"].astype(str).str.strip()

    duplicated = df.loc[df["ID"].duplicated(), "ID"].unique().tolist()
    if duplicated:
        raise ValueError(
            f"Metadata IDs must be unique; found {len(duplicated)} duplicates: "
            f"{duplicated[:10]}"
        )

    df["country"] = df["country"].map(clean_label)
    df["assignment"] = df["assignment"].map(clean_label)
    return df


def alignment_width(alignment: Dict[str, str]) -> int:
    """
    Return the common width of an alignment.

    Raises
    ------
    ValueError
        If the alignment is empty or sequences differ in length
    """
    if not alignment:
        raise ValueError("Alignment is empty")

    widths = {len(seq) for seq in alignment.values()}
    if len(widths) != 1:
        raise ValueError(
            f"All sequences in alignment must have the same length, found {sorted(widths)}"
        )
    return widths.pop()


def build_sequence_table(
    alignment: Dict[str, str],
    metadata: pd.DataFrame,
    coverage_threshold: float = 0.95,
) -> pd.DataFrame:
    """
    Build the per-sequence table from an alignment and its metadata.

    Parameters
    ----------
    alignment : Dict[str, str]
        Aligned sequences keyed by sequence ID
    metadata : pd.DataFrame
        Metadata with ID, year, country and assignment columns
    coverage_threshold : float, optional
        Minimum fraction of the alignment width that must remain after
        removing Ns and gaps (default: 0.95)

    Returns
    -------
    pd.DataFrame
        Sequence table with columns ``SEQUENCE_TABLE_COLUMNS``

    Raises
    ------
    MissingMetadataRow
        If an aligned sequence has no metadata row
    ValueError
        If the metadata or alignment is malformed
    """
    meta = validate_metadata(metadata).set_index("ID")
    width = alignment_width(alignment)

    rows = []
    for seq_id, sequence in alignment.items():
        if seq_id not in meta.index:
            raise MissingMetadataRow(
                f"Sequence '{seq_id}' has no metadata row", identifier=seq_id
            )
        stats = get_sequence_stats(sequence)
        record = meta.loc[seq_id]
        rows.append({
            "ID": seq_id,
            "n_N": stats["n_count"],
            "n_gap": stats["gap_count"],
            "length_before": width,
            "length": stats["ungapped_length"],
            "year": record["year"],
            "country": record["country"],
            "previous": record["assignment"],
            "passes_coverage": stats["ungapped_length"] >= coverage_threshold * width,
        })

    metadata_only = [seq_id for seq_id in meta.index if seq_id not in alignment]
    if metadata_only:
        logger.warning(
            f"{len(metadata_only)} metadata IDs have no aligned sequence; "
            "they will be reported without a lineage"
        )
    for seq_id in metadata_only:
        record = meta.loc[seq_id]
        rows.append({
            "ID": seq_id,
            "n_N": np.nan,
            "n_gap": np.nan,
            "length_before": np.nan,
            "length": np.nan,
            "year": record["year"],
            "country": record["country"],
            "previous": record["assignment"],
            "passes_coverage": None,
        })

    table = pd.DataFrame(rows, columns=SEQUENCE_TABLE_COLUMNS)
    _log_coverage(table, coverage_threshold)
    return table


def failing_coverage(table: pd.DataFrame) -> List[str]:
    """IDs of aligned sequences that fail the coverage threshold."""
    return table.loc[table["passes_coverage"].eq(False), "ID"].tolist()


def distinct_previous(table: pd.DataFrame, ids: Sequence[str]) -> List[str]:
    """
    Distinct previous assignments among ``ids``, in sequence-table order.

    Missing values are skipped.
    """
    wanted = set(ids)
    labels = table.loc[table["ID"].isin(wanted), "previous"]
    return [label for label in dict.fromkeys(labels) if not is_missing(label)]


def _log_coverage(table: pd.DataFrame, coverage_threshold: float) -> None:
    """Log coverage statistics for the aligned sequences."""
    aligned = table["passes_coverage"].notna()
    n_aligned = int(aligned.sum())
    n_failing = len(failing_coverage(table))

    logger.info(f"Sequence table: {n_aligned} aligned sequences")
    if n_failing:
        logger.info(
            f"  {n_failing} sequences below {coverage_threshold:.0%} coverage "
            "will be discounted from candidate sizes"
        )
