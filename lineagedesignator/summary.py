"""
Per-Lineage Summary

Collapses the designated sequence table into one row per lineage, giving the
number of sequences, the range of collection years, the countries sampled,
and the nesting and previous assignment of each lineage.
"""

from typing import List, Optional
import logging

import pandas as pd

from .designation import DesignationContext

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "lineage", "n_sequences", "year_first", "year_last", "countries",
    "parent_lineage", "node", "shared_differences", "previous", "collapsed_previous",
]


def _year_range(years: pd.Series) -> tuple:
    numeric = pd.to_numeric(years, errors="coerce").dropna()
    if numeric.empty:
        return None, None
    return int(numeric.min()), int(numeric.max())


def _countries(values: pd.Series) -> Optional[str]:
    found: List[str] = sorted({str(v) for v in values.dropna()})
    return "; ".join(found) if found else None


def summarize_lineages(
    sequence_table: pd.DataFrame,
    context: DesignationContext,
) -> pd.DataFrame:
    """
    Summarise each designated lineage.

    Parameters
    ----------
    sequence_table : pd.DataFrame
        Output of ``designate``
    context : DesignationContext
        Context returned by ``designate_with_details`` for the same run

    Returns
    -------
    pd.DataFrame
        One row per lineage, in cluster order, with ``SUMMARY_COLUMNS``
    """
    countries = context.sequences.set_index("ID")["country"]
    candidates = context.candidate_table()

    rows = []
    for _, candidate in candidates.iterrows():
        members = sequence_table.loc[sequence_table["lineage"] == candidate["lineage"]]
        year_first, year_last = _year_range(members["year"])
        rows.append({
            "lineage": candidate["lineage"],
            "n_sequences": len(members),
            "year_first": year_first,
            "year_last": year_last,
            "countries": _countries(countries.reindex(members["ID"])),
            "parent_lineage": candidate["parent_lineage"],
            "node": candidate["node_name"],
            "shared_differences": candidate["shared_differences"],
            "previous": candidate["previous"],
            "collapsed_previous": candidate["collapsed_previous"],
        })

    summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    logger.debug(f"Summarised {len(summary)} lineages")
    return summary
