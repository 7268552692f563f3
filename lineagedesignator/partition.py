"""
Partition Resolution

Turns the distinct candidate set into a partition of the tips in which every
tip belongs to at most one cluster, namely its nearest candidate ancestor.

Steps:
1. Score overlaps: count, for each candidate, the other candidates nested
   beneath it; candidates are ordered by overlap count (descending), ties by
   node number, which guarantees parents precede their nested candidates
2. Assign tips: each tip is claimed by its deepest candidate ancestor
3. Enforce minimum size: candidates claiming fewer than ``min_cluster_size``
   tips are dropped, and steps 1-2 repeat until every cluster is big enough
4. Prune by separation: a nested candidate whose (coverage-corrected) tip
   count is within ``min_separation`` of its nearest candidate ancestor is
   dropped; steps 1-3 repeat after any pruning

The surviving candidates receive cluster indices 1..K in overlap order.
"""

from collections import Counter
from typing import Dict, List, Optional, Tuple
import logging

from .candidates import Candidate
from .config import DesignationConfig
from .exceptions import EmptyCandidateSet, NonConvergentPartition
from .tree import LineageTree

logger = logging.getLogger(__name__)


def score_overlaps(tree: LineageTree, candidates: List[Candidate]) -> List[Candidate]:
    """
    Set each candidate's overlap count and return them in overlap order.

    Parameters
    ----------
    tree : LineageTree
        The tree candidates were detected on
    candidates : List[Candidate]
        Current candidate set

    Returns
    -------
    List[Candidate]
        Candidates sorted by overlap count (descending), then node number
    """
    nodes = {c.node for c in candidates}
    nested_under = Counter(
        ancestor
        for c in candidates
        for ancestor in tree.ancestors(c.node)
        if ancestor in nodes
    )
    for c in candidates:
        c.overlaps = nested_under.get(c.node, 0)
    return sorted(candidates, key=lambda c: (-c.overlaps, c.node))


def nearest_candidate_ancestor(
    tree: LineageTree,
    node: int,
    nodes: Dict[int, Candidate],
) -> Optional[Candidate]:
    """Closest strict ancestor of ``node`` that is a candidate, if any."""
    for ancestor in reversed(tree.ancestors(node)):
        if ancestor in nodes:
            return nodes[ancestor]
    return None


def assign_tips(tree: LineageTree, candidates: List[Candidate]) -> Dict[int, int]:
    """
    Assign each tip to its deepest candidate ancestor.

    Returns
    -------
    Dict[int, int]
        Tip number -> candidate node, for tips below at least one candidate
    """
    nodes = {c.node for c in candidates}
    assignment = {}
    for tip in range(1, tree.n_tips + 1):
        for ancestor in reversed(tree.ancestors(tip)):
            if ancestor in nodes:
                assignment[tip] = ancestor
                break
    return assignment


def enforce_minimum_size(
    tree: LineageTree,
    candidates: List[Candidate],
    min_cluster_size: int = 2,
    max_iterations: Optional[int] = None,
) -> Tuple[List[Candidate], Dict[int, int]]:
    """
    Drop candidates that claim too few tips until the partition is stable.

    Parameters
    ----------
    tree : LineageTree
        The tree candidates were detected on
    candidates : List[Candidate]
        Current candidate set
    min_cluster_size : int, optional
        Minimum number of tips a cluster must claim (default: 2)
    max_iterations : int, optional
        Iteration bound; defaults to the number of candidates plus one

    Returns
    -------
    Tuple[List[Candidate], Dict[int, int]]
        Surviving candidates in overlap order, and the tip assignment

    Raises
    ------
    EmptyCandidateSet
        If every candidate is dropped
    NonConvergentPartition
        If the partition does not stabilise within ``max_iterations``
    """
    current = score_overlaps(tree, candidates)
    limit = max_iterations if max_iterations is not None else len(current) + 1

    for iteration in range(1, limit + 1):
        assignment = assign_tips(tree, current)
        sizes = Counter(assignment.values())
        kept = [c for c in current if sizes.get(c.node, 0) >= min_cluster_size]

        if len(kept) == len(current):
            return current, assignment
        if not kept:
            raise EmptyCandidateSet(
                f"No cluster claims at least {min_cluster_size} tips"
            )

        logger.debug(
            f"Size pass {iteration}: dropping {len(current) - len(kept)} clusters "
            f"with fewer than {min_cluster_size} tips"
        )
        current = score_overlaps(tree, kept)

    raise NonConvergentPartition(
        f"Cluster sizes did not stabilise within {limit} iterations",
        identifier=str(len(current)),
    )


def prune_by_separation(
    tree: LineageTree,
    candidates: List[Candidate],
    min_separation: int = 5,
) -> List[Candidate]:
    """
    Drop nested candidates too close in size to their candidate ancestor.

    Sizes are the coverage-corrected tip counts. Top-level candidates are
    never pruned.

    Returns
    -------
    List[Candidate]
        Kept candidates, in input order
    """
    nodes = {c.node: c for c in candidates}
    kept = []
    for c in candidates:
        parent = nearest_candidate_ancestor(tree, c.node, nodes)
        if parent is not None and parent.n_tips - c.n_tips < min_separation:
            logger.debug(
                f"{tree.node_name(c.node)} pruned: {c.n_tips} tips vs "
                f"{parent.n_tips} in {tree.node_name(parent.node)}"
            )
            continue
        kept.append(c)
    return kept


def resolve_partition(
    tree: LineageTree,
    candidates: List[Candidate],
    config: Optional[DesignationConfig] = None,
) -> Tuple[List[Candidate], Dict[str, int]]:
    """
    Resolve candidates into a non-overlapping tip partition.

    Parameters
    ----------
    tree : LineageTree
        The tree candidates were detected on
    candidates : List[Candidate]
        Distinct candidates from stage 3
    config : DesignationConfig, optional
        Supplies ``min_cluster_size``, ``min_separation`` and
        ``max_partition_iterations``

    Returns
    -------
    Tuple[List[Candidate], Dict[str, int]]
        Final candidates in overlap order with ``cluster`` set to 1..K,
        and a map of tip label -> cluster index

    Raises
    ------
    EmptyCandidateSet
        If no candidates are given or none survive
    NonConvergentPartition
        If the size/separation loop does not stabilise
    """
    if config is None:
        config = DesignationConfig()
    if not candidates:
        raise EmptyCandidateSet("No candidates to partition")

    limit = config.max_partition_iterations
    if limit is None:
        limit = len(candidates) + 1

    current = list(candidates)
    for _ in range(limit):
        current, assignment = enforce_minimum_size(
            tree, current, config.min_cluster_size, limit
        )
        separated = prune_by_separation(tree, current, config.min_separation)
        if len(separated) == len(current):
            break
        current = separated
    else:
        raise NonConvergentPartition(
            f"Partition did not stabilise within {limit} rounds",
            identifier=str(len(current)),
        )

    cluster_of_node = {}
    for index, c in enumerate(current, start=1):
        c.cluster = index
        cluster_of_node[c.node] = index

    tip_clusters = {
        tree.tip_label(tip): cluster_of_node[node] for tip, node in assignment.items()
    }
    logger.info(
        f"  ✓ {len(current)} clusters covering {len(tip_clusters)}/{tree.n_tips} tips"
    )
    return current, tip_clusters
