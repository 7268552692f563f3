"""
Candidate Lineage Detection

This module implements the first three designation stages, each of which
narrows the set of internal nodes that may become lineages:

1. Candidate detection
   - Internal nodes whose support exceeds the threshold, or equals the
     maximum possible support, with at least ``min_tips`` descendant tips
2. Coverage correction
   - Tips whose sequence fails the coverage threshold are discounted from
     every ancestor's tip count, and candidates are re-filtered on size
3. Distinctiveness filter
   - For each candidate, the alignment columns at which *every* descendant
     tip differs from the node's ancestral reconstruction are counted;
     candidates without a single shared difference are discarded

Each stage returns a new list of Candidate objects and raises
EmptyCandidateSet when nothing survives.

Example Usage:
    >>> from lineagedesignator.tree import LineageTree
    >>> from lineagedesignator.candidates import detect_candidates
    >>> tree = LineageTree.from_newick("((a,b,c,d,e)100,(f,g)90);")
    >>> [c.node for c in detect_candidates(tree, min_support=70)]
    [9]
"""

from dataclasses import dataclass, field
from collections import Counter
from typing import Any, Dict, List, Optional
import logging

import numpy as np
import pandas as pd

from .exceptions import EmptyCandidateSet, MalformedAncestralIndex, MissingSupportData
from .sequences import failing_coverage
from .tree import LineageTree

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """
    A node that may become a lineage.

    ``n_tips`` starts as the raw descendant tip count and is reduced by
    coverage correction; ``raw_tips`` keeps the original value.
    """
    node: int
    n_tips: int
    raw_tips: int
    shared_differences: Optional[int] = None
    overlaps: int = 0
    previous: List[str] = field(default_factory=list)
    collapsed_previous: List[str] = field(default_factory=list)
    cluster: Optional[int] = None
    name: Optional[Any] = None
    label: Optional[str] = None


def _require_candidates(candidates: List[Candidate], stage: str) -> List[Candidate]:
    if not candidates:
        raise EmptyCandidateSet(f"No candidate lineages remain after {stage}")
    return candidates


# ============================================================================
# Stage 1: Candidate Detection
# ============================================================================

def detect_candidates(
    tree: LineageTree,
    min_support: float,
    min_tips: int = 5,
    max_support: float = 100.0,
) -> List[Candidate]:
    """
    Select well-supported internal nodes with enough descendant tips.

    Parameters
    ----------
    tree : LineageTree
        Tree with per-node support values
    min_support : float
        Support a node must exceed
    min_tips : int, optional
        Minimum number of descendant tips (default: 5)
    max_support : float, optional
        Maximum possible support; nodes at this value always qualify
        (default: 100.0)

    Returns
    -------
    List[Candidate]
        Candidates in node order

    Raises
    ------
    MissingSupportData
        If no internal node carries a support value
    EmptyCandidateSet
        If no node meets both thresholds
    """
    if tree.n_internal == 0:
        raise EmptyCandidateSet("Tree has no internal nodes")
    if not tree.has_support:
        raise MissingSupportData(
            "Tree has no node support annotations", identifier=tree.node_name(tree.root)
        )

    supported = []
    for node in tree.internal_nodes:
        support = tree.support(node)
        if support is None:
            continue
        if support > min_support or support == max_support:
            supported.append(node)

    candidates = []
    for node in supported:
        n_tips = len(tree.tips(node))
        if n_tips >= min_tips:
            candidates.append(Candidate(node=node, n_tips=n_tips, raw_tips=n_tips))

    logger.info(
        f"  ✓ {len(supported)} nodes with support > {min_support}, "
        f"{len(candidates)} with at least {min_tips} tips"
    )
    return _require_candidates(candidates, "candidate detection")


# ============================================================================
# Stage 2: Coverage Correction
# ============================================================================

def correct_for_coverage(
    tree: LineageTree,
    candidates: List[Candidate],
    sequences: pd.DataFrame,
    min_tips: int = 5,
) -> List[Candidate]:
    """
    Discount low-coverage sequences from candidate tip counts.

    Parameters
    ----------
    tree : LineageTree
        The tree candidates were detected on
    candidates : List[Candidate]
        Output of ``detect_candidates``
    sequences : pd.DataFrame
        Sequence table with a ``passes_coverage`` column
    min_tips : int, optional
        Minimum corrected tip count (default: 5)

    Returns
    -------
    List[Candidate]
        Candidates still meeting ``min_tips`` after correction
    """
    failing_tips = [
        tree.tip_number(seq_id) for seq_id in failing_coverage(sequences)
        if tree.has_tip(seq_id)
    ]
    if not failing_tips:
        logger.info("  ✓ All tips pass coverage; no correction needed")
        return list(candidates)

    removed = Counter(
        ancestor for tip in failing_tips for ancestor in tree.ancestors(tip)
    )

    for candidate in candidates:
        discount = removed.get(candidate.node, 0)
        if discount:
            candidate.n_tips -= discount
            logger.debug(
                f"{tree.node_name(candidate.node)}: {discount} low-coverage tips, "
                f"{candidate.n_tips} remaining"
            )
        assert candidate.n_tips <= candidate.raw_tips

    kept = [c for c in candidates if c.n_tips >= min_tips]
    logger.info(
        f"  ✓ {len(failing_tips)} low-coverage tips discounted; "
        f"{len(candidates) - len(kept)} candidates fell below {min_tips} tips"
    )
    return _require_candidates(kept, "coverage correction")


# ============================================================================
# Stage 3: Distinctiveness Filter
# ============================================================================

def _as_array(sequence: str) -> np.ndarray:
    """Encode a sequence as an uppercase byte array for column comparisons."""
    return np.frombuffer(sequence.upper().encode("ascii"), dtype=np.uint8)


def count_shared_differences(
    ancestral_sequence: str,
    tip_sequences: List[str],
) -> int:
    """
    Count columns at which every tip differs from the ancestral state.

    The running mask starts from the first tip's differences and is narrowed
    by each following tip, i.e. the intersection of per-tip difference sets.

    Parameters
    ----------
    ancestral_sequence : str
        Reconstructed sequence of the node
    tip_sequences : List[str]
        Aligned sequences of the node's descendant tips

    Returns
    -------
    int
        Number of shared differences (0 when no tips are given)

    Examples
    --------
    >>> count_shared_differences("AAAA", ["ACAT", "GCAT"])
    2
    """
    ancestor = _as_array(ancestral_sequence)
    shared = None

    for sequence in tip_sequences:
        tip = _as_array(sequence)
        if tip.shape != ancestor.shape:
            raise ValueError(
                f"Sequence length {tip.size} does not match ancestral length {ancestor.size}"
            )
        differs = tip != ancestor
        shared = differs if shared is None else shared & differs
        if not shared.any():
            return 0

    if shared is None:
        return 0
    return int(shared.sum())


def filter_distinct(
    tree: LineageTree,
    candidates: List[Candidate],
    alignment: Dict[str, str],
    ancestral: Dict[str, str],
) -> List[Candidate]:
    """
    Drop candidates whose tips share no difference from their ancestor.

    Parameters
    ----------
    tree : LineageTree
        The tree candidates were detected on
    candidates : List[Candidate]
        Output of ``correct_for_coverage``
    alignment : Dict[str, str]
        Observed sequences keyed by tip label
    ancestral : Dict[str, str]
        Reconstructed sequences keyed by ``NODE_%07d`` node name

    Returns
    -------
    List[Candidate]
        Candidates with at least one shared difference

    Raises
    ------
    MalformedAncestralIndex
        If a candidate node has no ancestral reconstruction
    """
    kept = []
    for candidate in candidates:
        node_name = tree.node_name(candidate.node)
        if node_name not in ancestral:
            raise MalformedAncestralIndex(
                f"No ancestral reconstruction for {node_name}", identifier=node_name
            )

        tip_sequences = [
            alignment[label] for label in tree.tip_labels_of(candidate.node)
            if label in alignment
        ]
        candidate.shared_differences = count_shared_differences(
            ancestral[node_name], tip_sequences
        )
        logger.debug(f"{node_name}: {candidate.shared_differences} shared differences")

        if candidate.shared_differences > 0:
            kept.append(candidate)

    logger.info(
        f"  ✓ {len(kept)}/{len(candidates)} candidates share differences from their ancestor"
    )
    return _require_candidates(kept, "distinctiveness filtering")
