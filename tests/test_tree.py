"""
Unit tests for the LineageTree model.

Tests cover:
- Support value parsing from node labels
- Node numbering of trees converted from Bio.Phylo
- Descendant and ancestor traversals
- Ancestral node naming
- Validation of malformed trees
"""

import unittest
from io import StringIO

from Bio import Phylo

from lineagedesignator.tree import LineageTree, parse_support


class TestParseSupport(unittest.TestCase):
    """Test support parsing from node labels."""

    def test_bare_number(self):
        self.assertEqual(parse_support("95"), 95.0)

    def test_fractional_support(self):
        self.assertAlmostEqual(parse_support("0.87"), 0.87)

    def test_key_value_label(self):
        """Text after the last '=' is parsed."""
        self.assertEqual(parse_support("&support=100"), 100.0)

    def test_non_numeric_label(self):
        self.assertIsNone(parse_support("NODE_0000003"))

    def test_missing_label(self):
        self.assertIsNone(parse_support(None))
        self.assertIsNone(parse_support(""))


class TestNumbering(unittest.TestCase):
    """Test node numbering of trees read through Bio.Phylo."""

    def setUp(self):
        self.tree = LineageTree.from_newick("((a,b)100,((c,d)80,e)60);")

    def test_tips_numbered_in_order(self):
        self.assertEqual(self.tree.n_tips, 5)
        self.assertEqual(self.tree.tip_labels, ("a", "b", "c", "d", "e"))
        self.assertEqual(self.tree.tip_number("c"), 3)

    def test_internal_nodes_in_preorder(self):
        """Root is T+1, then internal nodes in preorder."""
        self.assertEqual(self.tree.root, 6)
        self.assertEqual(list(self.tree.internal_nodes), [6, 7, 8, 9])
        self.assertEqual(self.tree.tip_labels_of(7), ("a", "b"))
        self.assertEqual(self.tree.tip_labels_of(8), ("c", "d", "e"))
        self.assertEqual(self.tree.tip_labels_of(9), ("c", "d"))

    def test_support_values(self):
        self.assertIsNone(self.tree.support(6))
        self.assertEqual(self.tree.support(7), 100.0)
        self.assertEqual(self.tree.support(9), 80.0)
        self.assertTrue(self.tree.has_support)

    def test_node_names(self):
        self.assertEqual(self.tree.node_name(6), "NODE_0000000")
        self.assertEqual(self.tree.node_name(9), "NODE_0000003")
        self.assertEqual(self.tree.node_name(2), "b")

    def test_from_phylo_matches_from_newick(self):
        phylo = Phylo.read(StringIO("((a,b)100,((c,d)80,e)60);"), "newick")
        tree = LineageTree.from_phylo(phylo)
        self.assertEqual(tree.tip_labels, self.tree.tip_labels)
        self.assertEqual(tree.children(8), self.tree.children(8))

    def test_tree_without_support(self):
        tree = LineageTree.from_newick("((a,b),(c,d));")
        self.assertFalse(tree.has_support)


class TestTraversals(unittest.TestCase):
    """Test descendant and ancestor queries."""

    def setUp(self):
        self.tree = LineageTree.from_newick("((a,b)100,((c,d)80,e)60);")

    def test_ancestors_root_first(self):
        self.assertEqual(self.tree.ancestors(3), (6, 8, 9))
        self.assertEqual(self.tree.ancestors(6), ())

    def test_parent_and_children(self):
        self.assertEqual(self.tree.parent(9), 8)
        self.assertIsNone(self.tree.parent(6))
        self.assertEqual(self.tree.children(8), (9, 5))
        self.assertEqual(self.tree.children(1), ())

    def test_internal_descendants(self):
        self.assertEqual(self.tree.internal_descendants(6), (7, 8, 9))
        self.assertEqual(self.tree.internal_descendants(9), ())

    def test_is_ancestor(self):
        self.assertTrue(self.tree.is_ancestor(8, 4))
        self.assertFalse(self.tree.is_ancestor(7, 4))
        self.assertFalse(self.tree.is_ancestor(9, 9))

    def test_depth(self):
        self.assertEqual(self.tree.depth(6), 0)
        self.assertEqual(self.tree.depth(9), 2)

    def test_tips_are_memoized(self):
        first = self.tree.tips(8)
        self.assertIs(self.tree.tips(8), first)


class TestFromEdges(unittest.TestCase):
    """Test construction from edge lists and validation."""

    def test_polytomy(self):
        tree = LineageTree.from_edges(
            ["a", "b", "c", "d"],
            [(5, 1), (5, 6), (6, 2), (6, 3), (6, 4)],
            {5: None, 6: 95.0},
        )
        self.assertEqual(tree.tip_labels_of(6), ("b", "c", "d"))
        self.assertEqual(tree.support(6), 95.0)

    def test_duplicate_tip_labels_raise(self):
        with self.assertRaises(ValueError):
            LineageTree.from_edges(["a", "a"], [(3, 1), (3, 2)], {3: None})

    def test_bad_numbering_raises(self):
        with self.assertRaises(ValueError):
            LineageTree.from_edges(["a", "b"], [(4, 1), (4, 2)], {4: None})

    def test_single_tip_tree(self):
        tree = LineageTree.from_edges(["a"], [], {})
        self.assertEqual(tree.n_internal, 0)
        self.assertEqual(tree.root, 1)
        self.assertFalse(tree.has_support)


if __name__ == '__main__':
    unittest.main()
