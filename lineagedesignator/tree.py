"""
Rooted Tree Model for Lineage Designation

This module provides LineageTree, the read-only tree representation every
designation stage works on. Trees are normally converted from a Biopython
``Bio.Phylo`` tree, but can also be built from an explicit edge list.

Node Numbering:
- Tips are numbered 1..T in left-to-right (preorder) terminal order
- Internal nodes are numbered T+1..T+I in preorder, so the root is T+1
- Internal node ``n`` corresponds to the ancestral reconstruction row
  ``NODE_<7-digit zero padded (n - T - 1)>``; this is the naming TreeTime
  uses for internal nodes it labels itself

Support Values:
- Taken from ``clade.confidence`` when Bio.Phylo parsed one
- Otherwise parsed from the clade name, accepting bare numbers ("95") and
  comment-style labels ("&support=95", the text after the last '=')
- Nodes without a parseable value carry ``None``

Example Usage:
    >>> from lineagedesignator.tree import LineageTree
    >>> tree = LineageTree.from_newick("((a,b)100,(c,d)80);")
    >>> tree.n_tips, tree.root
    (4, 5)
    >>> tree.tip_labels_of(6)
    ('a', 'b')
    >>> tree.node_name(6)
    'NODE_0000001'
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from collections import Counter
from io import StringIO
import logging

from Bio import Phylo

logger = logging.getLogger(__name__)


def parse_support(label: Optional[str]) -> Optional[float]:
    """
    Parse a support value from an internal node label.

    Parameters
    ----------
    label : str or None
        Node label, e.g. "95", "0.87" or "&support=95"

    Returns
    -------
    float or None
        Parsed support, or None when the label carries no number

    Examples
    --------
    >>> parse_support("&support=95")
    95.0
    >>> parse_support("NODE_0000003") is None
    True
    """
    if label is None:
        return None
    text = str(label).strip().split("=")[-1].strip().strip("[]'\"")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class LineageTree:
    """
    Immutable rooted tree with numbered tips and internal nodes.

    Parameters
    ----------
    tip_labels : Sequence[str]
        Tip labels; tip ``i`` (1-based) has label ``tip_labels[i - 1]``
    children : Dict[int, Sequence[int]]
        Ordered children of every internal node
    support : Dict[int, Optional[float]]
        Support value of every internal node

    Raises
    ------
    ValueError
        If tip labels are missing or duplicated, or numbering is inconsistent
    """

    def __init__(
        self,
        tip_labels: Sequence[str],
        children: Dict[int, Sequence[int]],
        support: Dict[int, Optional[float]],
    ):
        labels = tuple(tip_labels)
        if any(label is None or str(label) == "" for label in labels):
            raise ValueError("Every tip must have a label")
        if len(set(labels)) != len(labels):
            dupes = sorted(lab for lab, n in Counter(labels).items() if n > 1)
            raise ValueError(f"Duplicate tip labels in tree: {dupes}")

        self._tip_labels = labels
        self.n_tips = len(labels)
        self.n_internal = len(children)

        expected = set(range(self.n_tips + 1, self.n_tips + self.n_internal + 1))
        if set(children) != expected:
            raise ValueError(
                f"Internal nodes must be numbered {self.n_tips + 1}.."
                f"{self.n_tips + self.n_internal}"
            )

        self._children = {node: tuple(kids) for node, kids in children.items()}
        self._support = {node: support.get(node) for node in self._children}

        self._parent: Dict[int, Optional[int]] = {}
        for node, kids in self._children.items():
            for kid in kids:
                if kid in self._parent:
                    raise ValueError(f"Node {kid} has more than one parent")
                self._parent[kid] = node

        roots = [n for n in self.nodes if n not in self._parent]
        if self.n_internal == 0:
            if self.n_tips != 1:
                raise ValueError("A tree without internal nodes must have exactly one tip")
            self.root = 1
        elif roots != [self.n_tips + 1]:
            raise ValueError(f"Tree must have a single root numbered {self.n_tips + 1}, found {roots}")
        else:
            self.root = self.n_tips + 1
        self._parent[self.root] = None

        self._label_to_tip = {label: i for i, label in enumerate(labels, start=1)}
        self._tips_cache: Dict[int, Tuple[int, ...]] = {}
        self._ancestor_cache: Dict[int, Tuple[int, ...]] = {}

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_phylo(cls, phylo_tree) -> 'LineageTree':
        """
        Build a LineageTree from a Bio.Phylo tree.

        Parameters
        ----------
        phylo_tree : Bio.Phylo.BaseTree.Tree
            Parsed tree with named terminals

        Returns
        -------
        LineageTree
        """
        terminals = phylo_tree.get_terminals()
        internals = phylo_tree.get_nonterminals(order="preorder")
        n_tips = len(terminals)

        numbers = {}
        for i, clade in enumerate(terminals, start=1):
            numbers[id(clade)] = i
        for j, clade in enumerate(internals):
            numbers[id(clade)] = n_tips + 1 + j

        children = {}
        support = {}
        for clade in internals:
            node = numbers[id(clade)]
            children[node] = [numbers[id(kid)] for kid in clade.clades]
            if clade.confidence is not None:
                support[node] = float(clade.confidence)
            else:
                support[node] = parse_support(clade.name)

        tree = cls([clade.name for clade in terminals], children, support)
        logger.debug(
            f"Converted tree with {tree.n_tips} tips and {tree.n_internal} internal nodes"
        )
        return tree

    @classmethod
    def from_newick(cls, newick: str) -> 'LineageTree':
        """Parse a Newick string into a LineageTree."""
        return cls.from_phylo(Phylo.read(StringIO(newick), "newick"))

    @classmethod
    def from_edges(
        cls,
        tip_labels: Sequence[str],
        edges: Iterable[Tuple[int, int]],
        support: Dict[int, Optional[float]],
    ) -> 'LineageTree':
        """
        Build a LineageTree from (parent, child) pairs in ape numbering.

        Children keep the order in which their edges are listed.
        """
        children: Dict[int, List[int]] = {}
        for parent, child in edges:
            children.setdefault(parent, []).append(child)
        return cls(tip_labels, children, support)

    # ------------------------------------------------------------------
    # Node accessors
    # ------------------------------------------------------------------

    @property
    def tip_labels(self) -> Tuple[str, ...]:
        return self._tip_labels

    @property
    def nodes(self) -> range:
        return range(1, self.n_tips + self.n_internal + 1)

    @property
    def internal_nodes(self) -> range:
        return range(self.n_tips + 1, self.n_tips + self.n_internal + 1)

    def is_tip(self, node: int) -> bool:
        return 1 <= node <= self.n_tips

    def tip_label(self, tip: int) -> str:
        return self._tip_labels[tip - 1]

    def tip_number(self, label: str) -> int:
        """Return the tip number for a label (KeyError if absent)."""
        return self._label_to_tip[label]

    def has_tip(self, label: str) -> bool:
        return label in self._label_to_tip

    def support(self, node: int) -> Optional[float]:
        return self._support.get(node)

    @property
    def has_support(self) -> bool:
        """True if any internal node carries a support value."""
        return any(value is not None for value in self._support.values())

    def parent(self, node: int) -> Optional[int]:
        return self._parent[node]

    def children(self, node: int) -> Tuple[int, ...]:
        return self._children.get(node, ())

    def node_name(self, node: int) -> str:
        """Ancestral reconstruction name of an internal node."""
        if self.is_tip(node):
            return self.tip_label(node)
        return f"NODE_{node - self.n_tips - 1:07d}"

    # ------------------------------------------------------------------
    # Traversals
    # ------------------------------------------------------------------

    def tips(self, node: int) -> Tuple[int, ...]:
        """Descendant tips of a node in left-to-right order (memoized)."""
        cached = self._tips_cache.get(node)
        if cached is not None:
            return cached

        if self.is_tip(node):
            result = (node,)
        else:
            result = []
            stack = [node]
            while stack:
                current = stack.pop()
                if self.is_tip(current):
                    result.append(current)
                else:
                    stack.extend(reversed(self._children[current]))
            result = tuple(result)

        self._tips_cache[node] = result
        return result

    def tip_labels_of(self, node: int) -> Tuple[str, ...]:
        return tuple(self.tip_label(t) for t in self.tips(node))

    def ancestors(self, node: int) -> Tuple[int, ...]:
        """Strict ancestors of a node, root first (memoized)."""
        cached = self._ancestor_cache.get(node)
        if cached is not None:
            return cached

        chain = []
        current = self._parent[node]
        while current is not None:
            chain.append(current)
            current = self._parent[current]
        result = tuple(reversed(chain))

        self._ancestor_cache[node] = result
        return result

    def internal_descendants(self, node: int) -> Tuple[int, ...]:
        """Internal nodes strictly below ``node``, in preorder."""
        result = []
        stack = list(reversed(self.children(node)))
        while stack:
            current = stack.pop()
            if not self.is_tip(current):
                result.append(current)
                stack.extend(reversed(self._children[current]))
        return tuple(result)

    def is_ancestor(self, ancestor: int, node: int) -> bool:
        """True if ``ancestor`` lies strictly above ``node``."""
        return ancestor in self.ancestors(node)

    def depth(self, node: int) -> int:
        return len(self.ancestors(node))

    def __repr__(self) -> str:
        return f"LineageTree(n_tips={self.n_tips}, n_internal={self.n_internal})"
