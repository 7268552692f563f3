"""
File Readers and Writers

Thin adapters between files on disk and the in-memory structures
``designate`` works on:

- Trees: Bio.Phylo (newick by default; nexus, nexml and phyloxml accepted)
- Alignments and ancestral reconstructions: Bio.SeqIO FASTA -> {id: sequence}
- Metadata: pandas CSV/TSV (delimiter chosen by file extension)
- Output tables: pandas CSV/TSV

Ancestral reconstructions are expected to name internal nodes
``NODE_0000000``, ``NODE_0000001``, ... in preorder, which is what TreeTime's
``ancestral`` command writes for trees without internal node names.
"""

from typing import Dict, List, Optional, Union
from pathlib import Path
import logging

import pandas as pd
from Bio import Phylo, SeqIO

from .sequences import REQUIRED_METADATA_COLUMNS
from .tree import LineageTree

logger = logging.getLogger(__name__)

TREE_FORMATS = ["newick", "nexus", "nexml", "phyloxml"]


def _require_file(path: Union[str, Path], description: str) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{description} not found: {path}")
    return path


def _delimiter_for(path: Path) -> str:
    """Tab for .tsv/.txt/.tab files, comma otherwise."""
    return "\t" if path.suffix.lower() in (".tsv", ".txt", ".tab") else ","


def read_tree(path: Union[str, Path], tree_format: str = "newick") -> LineageTree:
    """
    Read a tree file into a LineageTree.

    Parameters
    ----------
    path : str or Path
        Tree file
    tree_format : str, optional
        Any Bio.Phylo format in ``TREE_FORMATS`` (default: newick)

    Returns
    -------
    LineageTree

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ValueError
        If the format is unsupported or the file holds no tree
    """
    path = _require_file(path, "Tree file")
    if tree_format not in TREE_FORMATS:
        raise ValueError(f"Unsupported tree format '{tree_format}'; choose from {TREE_FORMATS}")

    logger.info(f"Reading {tree_format} tree: {path}")
    trees = list(Phylo.parse(str(path), tree_format))
    if not trees:
        raise ValueError(f"No tree found in {path}")
    if len(trees) > 1:
        logger.warning(f"{path} contains {len(trees)} trees; using the first")

    tree = LineageTree.from_phylo(trees[0])
    logger.info(f"  ✓ {tree.n_tips} tips, {tree.n_internal} internal nodes")
    return tree


def read_fasta_dict(path: Union[str, Path], description: str = "FASTA file") -> Dict[str, str]:
    """
    Read a FASTA file into an ordered {record id: sequence} dictionary.

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ValueError
        If the file is empty or contains duplicate IDs
    """
    path = _require_file(path, description)

    sequences: Dict[str, str] = {}
    for record in SeqIO.parse(str(path), "fasta"):
        if record.id in sequences:
            raise ValueError(f"Duplicate sequence ID '{record.id}' in {path}")
        sequences[record.id] = str(record.seq)

    if not sequences:
        raise ValueError(f"{description} contains no sequences: {path}")

    logger.info(f"Read {len(sequences)} sequences from {path}")
    return sequences


def read_alignment(path: Union[str, Path]) -> Dict[str, str]:
    """Read the observed alignment (FASTA)."""
    return read_fasta_dict(path, "Alignment file")


def read_ancestral(path: Union[str, Path]) -> Dict[str, str]:
    """Read ancestral reconstructions (FASTA keyed by node name)."""
    return read_fasta_dict(path, "Ancestral sequence file")


def read_metadata(
    path: Union[str, Path],
    required_columns: Optional[List[str]] = None,
    encoding: str = "utf-8",
) -> pd.DataFrame:
    """
    Read the sequence metadata table.

    Parameters
    ----------
    path : str or Path
        CSV or TSV file
    required_columns : List[str], optional
        Columns that must be present (default: ID, year, country, assignment)
    encoding : str, optional
        File encoding (default: utf-8, falls back to latin-1)

    Returns
    -------
    pd.DataFrame
        Metadata with every column read as string; blank cells are NaN

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ValueError
        If required columns are missing
    """
    path = _require_file(path, "Metadata file")
    if required_columns is None:
        required_columns = REQUIRED_METADATA_COLUMNS

    sep = _delimiter_for(path)
    try:
        df = pd.read_csv(path, sep=sep, encoding=encoding, dtype=str)
    except UnicodeDecodeError:
        logger.warning("UTF-8 encoding failed, trying latin-1")
        df = pd.read_csv(path, sep=sep, encoding="latin-1", dtype=str)

    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise ValueError(
            f"Metadata is missing required columns: {missing}. "
            f"Found: {sorted(df.columns.tolist())[:20]}"
        )

    logger.info(f"Read metadata for {len(df)} sequences from {path}")
    return df


def write_table(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write a table as TSV or CSV depending on the file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep=_delimiter_for(path), index=False)
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path


def write_sequence_table(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write the designated sequence table; missing lineages are written as NA."""
    out = df.copy()
    out["lineage"] = out["lineage"].where(out["lineage"].notna(), "NA")
    return write_table(out, path)
