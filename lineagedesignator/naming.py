"""
Hierarchical Lineage Naming

Assigns every final cluster a name that encodes where it sits in the
lineage hierarchy and which previous designation it refines.

Name Structure:
    [<prefix>_]<root>[.<i>[.<j>]]

- ``root`` is an alphabet token: A1, B1, ..., Z1, AA1, ..., ZZ1
- ``prefix`` is the single previous assignment shared by the cluster's
  tips, e.g. ``Cosmopolitan_A1``; clusters whose tips carry several
  different previous assignments, or none, are named without a prefix
- each nested cluster extends its parent's name with the next child
  integer (``A1`` -> ``A1.1``, ``A1.2`` -> ``A1.2.1``)
- once a name would carry more than ``max_label_depth`` dot levels (two by
  default) it rolls over to the next unused root in the same context, so
  ``A1.1.1.1`` becomes ``B1``

Unprefixed names are finally qualified with the clade token (the text
before the first hyphen of a hyphenated prefix, otherwise the first word of
the first prefix used), giving e.g. ``Cosmopolitan A1``.

Candidates are processed in overlap order, so every parent is named before
the clusters nested beneath it.
"""

from dataclasses import dataclass, field, replace
from collections import Counter
from typing import Dict, List, Optional, Tuple
import logging
import re

import pandas as pd

from .candidates import Candidate
from .config import DesignationConfig
from .exceptions import CapacityExceeded, NamingError
from .partition import nearest_candidate_ancestor
from .sequences import distinct_previous
from .tree import LineageTree

logger = logging.getLogger(__name__)

ALPHABET_SIZE = 26
ROOT_SUFFIX = "1"


def alphabet_token(index: int) -> str:
    """
    Return the ``index``-th root token (0-based).

    Letters count in bijective base 26, so after Z1 comes AA1.

    Examples
    --------
    >>> alphabet_token(0), alphabet_token(25), alphabet_token(26), alphabet_token(701)
    ('A1', 'Z1', 'AA1', 'ZZ1')
    """
    if index < 0:
        raise ValueError("Token index must be non-negative")
    letters = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, ALPHABET_SIZE)
        letters = chr(ord("A") + remainder) + letters
    return letters + ROOT_SUFFIX


class TokenAllocator:
    """
    Hands out root tokens in alphabet order, separately per naming context.

    A context is a previous-assignment prefix, or None for unprefixed names.
    """

    def __init__(self, capacity: int = 702):
        self.capacity = capacity
        self._next: Dict[Optional[str], int] = {}

    def next_token(self, context: Optional[str]) -> str:
        """
        Return the next unused token for ``context``.

        Raises
        ------
        CapacityExceeded
            If every token in the context has been used
        """
        index = self._next.get(context, 0)
        if index >= self.capacity:
            raise CapacityExceeded(
                f"More than {self.capacity} root lineages needed in context "
                f"'{context or '(none)'}'",
                identifier=context,
            )
        self._next[context] = index + 1
        return alphabet_token(index)

    def used(self, context: Optional[str]) -> int:
        return self._next.get(context, 0)


@dataclass(frozen=True)
class LineageName:
    """Structured lineage name: optional prefix, root token and child path."""
    root: str
    prefix: Optional[str] = None
    path: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def core(self) -> str:
        """Root and path without any prefix, e.g. ``A1.2.1``."""
        return ".".join([self.root] + [str(i) for i in self.path])

    def child(self, index: int) -> 'LineageName':
        return replace(self, path=self.path + (index,))

    def render(self, clade: Optional[str] = None) -> str:
        """
        Render the name as a string.

        Prefixed names render as ``<prefix>_<core>``; unprefixed names are
        qualified with ``clade`` when one is given.
        """
        if self.prefix:
            return f"{self.prefix}_{self.core}"
        if clade:
            return f"{clade} {self.core}"
        return self.core


def annotate_previous(
    tree: LineageTree,
    candidates: List[Candidate],
    sequences: pd.DataFrame,
) -> None:
    """
    Record each candidate's distinct previous assignments.

    Candidates whose tips span several previous assignments keep them in
    ``collapsed_previous``; they are named without a prefix.
    """
    for c in candidates:
        labels = distinct_previous(sequences, tree.tip_labels_of(c.node))
        c.previous = labels
        c.collapsed_previous = []
        if len(labels) > 1:
            c.collapsed_previous = list(labels)
            logger.warning(
                f"{tree.node_name(c.node)} spans {len(labels)} previous assignments "
                f"({', '.join(labels)}); naming it without a prefix"
            )


def naming_context(candidate: Candidate) -> Optional[str]:
    """The single previous assignment of a candidate, or None."""
    if len(candidate.previous) == 1:
        return candidate.previous[0]
    return None


def clade_token(candidates: List[Candidate]) -> Optional[str]:
    """
    Clade word taken from the prefixes of the named candidates.

    A hyphenated prefix anywhere in the list wins and gives the text before
    its first hyphen. Otherwise the first word of the first prefix is used.

    Examples
    --------
    >>> a = Candidate(node=1, n_tips=5, raw_tips=5, name=LineageName("A1", "Cosmopolitan AF1"))
    >>> b = Candidate(node=2, n_tips=5, raw_tips=5, name=LineageName("A1", "Asian-SEA"))
    >>> clade_token([a, b])
    'Asian'
    >>> clade_token([a])
    'Cosmopolitan'
    """
    prefixes = [c.name.prefix.strip() for c in candidates
                if c.name is not None and c.name.prefix and c.name.prefix.strip()]
    for prefix in prefixes:
        if "-" in prefix:
            return prefix.split("-", 1)[0].strip()
    if prefixes:
        return re.split(r"\s+", prefixes[0])[0]
    return None


def _assign_name(
    tree: LineageTree,
    candidate: Candidate,
    by_node: Dict[int, Candidate],
    allocator: TokenAllocator,
    child_counts: Dict[LineageName, int],
    max_depth: Optional[int],
) -> LineageName:
    context = naming_context(candidate)
    parent = nearest_candidate_ancestor(tree, candidate.node, by_node)

    # Top-level clusters, and nested clusters that refine a different
    # previous assignment than their parent, start a new root.
    if parent is None:
        return LineageName(allocator.next_token(context), prefix=context)

    if parent.name is None:
        raise NamingError(
            f"{tree.node_name(candidate.node)} reached before its parent "
            f"{tree.node_name(parent.node)}",
            identifier=tree.node_name(candidate.node),
        )

    parent_name = parent.name
    if context is not None and context != parent_name.prefix:
        return LineageName(allocator.next_token(context), prefix=context)

    if max_depth is not None and parent_name.depth >= max_depth:
        logger.debug(
            f"{parent_name.core} is at depth {max_depth}; "
            f"{tree.node_name(candidate.node)} starts a new root"
        )
        return LineageName(allocator.next_token(parent_name.prefix), prefix=parent_name.prefix)

    index = child_counts.get(parent_name, 0) + 1
    child_counts[parent_name] = index
    return parent_name.child(index)


def name_lineages(
    tree: LineageTree,
    candidates: List[Candidate],
    sequences: pd.DataFrame,
    config: Optional[DesignationConfig] = None,
) -> Optional[str]:
    """
    Name the final clusters.

    Parameters
    ----------
    tree : LineageTree
        The tree candidates were detected on
    candidates : List[Candidate]
        Final candidates in overlap order (output of ``resolve_partition``)
    sequences : pd.DataFrame
        Sequence table providing previous assignments
    config : DesignationConfig, optional
        Supplies ``max_label_depth`` and ``max_root_tokens``

    Returns
    -------
    str or None
        The clade token used to qualify unprefixed names

    Raises
    ------
    CapacityExceeded
        If a context runs out of root tokens
    NamingError
        If two clusters would receive the same name
    """
    if config is None:
        config = DesignationConfig()

    annotate_previous(tree, candidates, sequences)

    allocator = TokenAllocator(config.max_root_tokens)
    by_node = {c.node: c for c in candidates}
    child_counts: Dict[LineageName, int] = {}

    for c in candidates:
        c.name = _assign_name(
            tree, c, by_node, allocator, child_counts, config.max_label_depth
        )

    clade = clade_token(candidates)
    for c in candidates:
        c.label = c.name.render(clade)

    duplicates = [label for label, n in Counter(c.label for c in candidates).items() if n > 1]
    if duplicates:
        raise NamingError(f"Duplicate lineage names: {duplicates}", identifier=duplicates[0])

    logger.info(
        f"  ✓ Named {len(candidates)} lineages"
        + (f" (clade '{clade}')" if clade else "")
    )
    return clade
