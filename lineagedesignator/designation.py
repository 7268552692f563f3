"""
Lineage Designation Pipeline

This module provides ``designate``, the single entry point that runs the five
designation stages over already-parsed inputs and returns the per-sequence
lineage table.

Pipeline Stages:
1. Candidate detection (support and size thresholds)
2. Coverage correction (low-coverage tips discounted)
3. Distinctiveness filter (shared differences from the ancestral state)
4. Partition resolution (deepest assignment, size and separation pruning)
5. Hierarchical naming

All intermediate state lives on a DesignationContext created per call and
passed explicitly through the stages, so concurrent calls on different
inputs never share state. The tree and sequence inputs are treated as
read-only.

Output Columns:
    ID, n_N, n_gap, length, year, lineage, previous

Example Usage:
    >>> from lineagedesignator import designate
    >>> from lineagedesignator.io import read_tree, read_alignment, read_ancestral, read_metadata
    >>> table = designate(
    ...     read_tree("tree.nwk"), 70,
    ...     read_alignment("aligned.fasta"),
    ...     read_metadata("metadata.csv"),
    ...     read_ancestral("ancestral.fasta"),
    ... )
    >>> table["lineage"].value_counts()
"""

from dataclasses import dataclass, field, replace
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple
import logging
import time

import pandas as pd

from .candidates import Candidate, correct_for_coverage, detect_candidates, filter_distinct
from .config import DesignationConfig
from .exceptions import EmptyCandidateSet, MissingMetadataRow
from .naming import name_lineages
from .partition import nearest_candidate_ancestor, resolve_partition
from .sequences import build_sequence_table
from .tree import LineageTree
from .utils import format_elapsed_time, log_function_call

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = ["ID", "n_N", "n_gap", "length", "year", "lineage", "previous"]

CANDIDATE_COLUMNS = [
    "cluster", "lineage", "node", "node_name", "parent_lineage", "n_tips", "raw_tips",
    "shared_differences", "overlaps", "previous", "collapsed_previous",
]


@dataclass
class DesignationContext:
    """
    Working state of one designation run.

    Attributes
    ----------
    tree : LineageTree
        Input tree
    sequences : pd.DataFrame
        Sequence table (see ``sequences.build_sequence_table``)
    alignment : Dict[str, str]
        Observed sequences keyed by tip label
    ancestral : Dict[str, str]
        Ancestral reconstructions keyed by node name
    config : DesignationConfig
        Thresholds in effect for this run
    candidates : List[Candidate]
        Final candidates in cluster order (empty when none survive)
    tip_clusters : Dict[str, int]
        Tip label -> cluster index
    clade : str, optional
        Clade token used to qualify unprefixed lineage names
    stage_counts : Dict[str, int]
        Number of candidates remaining after each stage
    """
    tree: LineageTree
    sequences: pd.DataFrame
    alignment: Dict[str, str]
    ancestral: Dict[str, str]
    config: DesignationConfig
    candidates: List[Candidate] = field(default_factory=list)
    tip_clusters: Dict[str, int] = field(default_factory=dict)
    clade: Optional[str] = None
    stage_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def labels(self) -> Dict[int, str]:
        """Cluster index -> lineage label."""
        return {c.cluster: c.label for c in self.candidates}

    def lineage_of(self, seq_id: str) -> Optional[str]:
        """Lineage label of a sequence, or None when it is unassigned."""
        cluster = self.tip_clusters.get(seq_id)
        if cluster is None:
            return None
        return self.labels[cluster]

    def parent_of(self, candidate: Candidate) -> Optional[Candidate]:
        """Nearest final candidate above ``candidate`` in the tree."""
        by_node = {c.node: c for c in self.candidates}
        return nearest_candidate_ancestor(self.tree, candidate.node, by_node)

    def candidate_table(self) -> pd.DataFrame:
        """One row per final lineage with the values used to designate it."""
        rows = []
        for c in self.candidates:
            parent = self.parent_of(c)
            rows.append({
                "cluster": c.cluster,
                "lineage": c.label,
                "node": c.node,
                "node_name": self.tree.node_name(c.node),
                "parent_lineage": parent.label if parent is not None else None,
                "n_tips": c.n_tips,
                "raw_tips": c.raw_tips,
                "shared_differences": c.shared_differences,
                "overlaps": c.overlaps,
                "previous": ", ".join(c.previous) if c.previous else None,
                "collapsed_previous": ", ".join(c.collapsed_previous) if c.collapsed_previous else None,
            })
        return pd.DataFrame(rows, columns=CANDIDATE_COLUMNS)


def _as_lineage_tree(tree: Any) -> LineageTree:
    """Accept a LineageTree or a Bio.Phylo tree."""
    if isinstance(tree, LineageTree):
        return tree
    if hasattr(tree, "get_terminals") and hasattr(tree, "get_nonterminals"):
        return LineageTree.from_phylo(tree)
    raise TypeError(f"Unsupported tree type: {type(tree).__name__}")


def _as_sequence_dict(sequences: Any, name: str) -> Dict[str, str]:
    """
    Accept a mapping of ID -> sequence, or an iterable of SeqRecords
    (e.g. a Bio.Align.MultipleSeqAlignment).
    """
    if isinstance(sequences, Mapping):
        return {str(key): str(value) for key, value in sequences.items()}

    result: Dict[str, str] = {}
    for record in sequences:
        if record.id in result:
            raise ValueError(f"Duplicate ID in {name}: {record.id}")
        result[record.id] = str(record.seq)
    return result


def _check_tips_have_metadata(tree: LineageTree, sequences: pd.DataFrame) -> None:
    known = set(sequences["ID"])
    for label in tree.tip_labels:
        if label not in known:
            raise MissingMetadataRow(
                f"Tree tip '{label}' has no metadata row", identifier=label
            )


def run_stages(context: DesignationContext) -> DesignationContext:
    """
    Run the five designation stages on a prepared context.

    EmptyCandidateSet is caught and leaves the context without candidates;
    every other error propagates.
    """
    cfg = context.config
    tree = context.tree

    try:
        logger.info("STAGE 1: Candidate detection")
        candidates = detect_candidates(tree, cfg.min_support, cfg.min_tips, cfg.max_support)
        context.stage_counts["detected"] = len(candidates)

        logger.info("STAGE 2: Coverage correction")
        candidates = correct_for_coverage(tree, candidates, context.sequences, cfg.min_tips)
        context.stage_counts["coverage_corrected"] = len(candidates)

        logger.info("STAGE 3: Distinctiveness filter")
        candidates = filter_distinct(tree, candidates, context.alignment, context.ancestral)
        context.stage_counts["distinct"] = len(candidates)

        logger.info("STAGE 4: Partition resolution")
        candidates, tip_clusters = resolve_partition(tree, candidates, cfg)
        context.stage_counts["partitioned"] = len(candidates)

        logger.info("STAGE 5: Hierarchical naming")
        context.clade = name_lineages(tree, candidates, context.sequences, cfg)
        context.candidates = candidates
        context.tip_clusters = tip_clusters

    except EmptyCandidateSet as e:
        logger.warning(f"{e}; no lineages designated")
        context.candidates = []
        context.tip_clusters = {}

    return context


def build_output_table(context: DesignationContext) -> pd.DataFrame:
    """Project the sequence table onto the output columns with lineages."""
    table = context.sequences.copy()
    table["lineage"] = pd.Series(
        [context.lineage_of(seq_id) for seq_id in table["ID"]],
        index=table.index, dtype=object,
    )
    return table[OUTPUT_COLUMNS].reset_index(drop=True)


def designate_with_details(
    tree: Any,
    min_support: Optional[float],
    alignment: Any,
    metadata: pd.DataFrame,
    ancestral: Any,
    config: Optional[DesignationConfig] = None,
) -> Tuple[pd.DataFrame, DesignationContext]:
    """
    Designate lineages and also return the working context.

    Parameters are as for ``designate``.

    Returns
    -------
    Tuple[pd.DataFrame, DesignationContext]
        The output table and the context holding the final candidates
    """
    start = time.time()
    cfg = config if config is not None else DesignationConfig()
    if min_support is not None:
        cfg = replace(cfg, min_support=float(min_support))

    log_function_call("designate", min_support=cfg.min_support, min_tips=cfg.min_tips)

    lineage_tree = _as_lineage_tree(tree)
    observed = _as_sequence_dict(alignment, "alignment")
    reconstructed = _as_sequence_dict(ancestral, "ancestral reconstruction")

    sequences = build_sequence_table(observed, metadata, cfg.coverage_threshold)
    _check_tips_have_metadata(lineage_tree, sequences)

    logger.info(
        f"Designating lineages: {lineage_tree.n_tips} tips, "
        f"{len(observed)} aligned sequences, support > {cfg.min_support}"
    )

    context = DesignationContext(
        tree=lineage_tree,
        sequences=sequences,
        alignment=observed,
        ancestral=reconstructed,
        config=cfg,
    )
    run_stages(context)
    table = build_output_table(context)

    n_assigned = int(table["lineage"].notna().sum())
    logger.info(
        f"Designated {len(context.candidates)} lineages covering "
        f"{n_assigned}/{len(table)} sequences in {format_elapsed_time(time.time() - start)}"
    )
    return table, context


def designate(
    tree: Any,
    min_support: Optional[float],
    alignment: Any,
    metadata: pd.DataFrame,
    ancestral: Any,
    config: Optional[DesignationConfig] = None,
) -> pd.DataFrame:
    """
    Assign hierarchical lineage labels to the sequences of a tree.

    Parameters
    ----------
    tree : LineageTree or Bio.Phylo tree
        Rooted tree with per-internal-node support values
    min_support : float or None
        Support a node must exceed to be a candidate; None keeps
        ``config.min_support``
    alignment : Mapping[str, str] or iterable of SeqRecord
        Observed aligned sequences keyed by tip label
    metadata : pd.DataFrame
        Columns ID, year, country, assignment (values may be blank)
    ancestral : Mapping[str, str] or iterable of SeqRecord
        Reconstructed sequences keyed by ``NODE_%07d`` node name
    config : DesignationConfig, optional
        Remaining thresholds (default: DesignationConfig())

    Returns
    -------
    pd.DataFrame
        One row per metadata sequence with columns
        ID, n_N, n_gap, length, year, lineage, previous

    Raises
    ------
    MissingSupportData
        If the tree carries no support values
    MissingMetadataRow
        If a tip or aligned sequence has no metadata row
    MalformedAncestralIndex
        If a candidate node has no ancestral reconstruction
    NonConvergentPartition
        If partition resolution does not stabilise
    CapacityExceeded, NamingError
        If naming cannot produce unique labels
    ValueError
        If the metadata or alignment is malformed
    """
    table, _ = designate_with_details(tree, min_support, alignment, metadata, ancestral, config)
    return table
