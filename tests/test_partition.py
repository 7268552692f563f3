"""
Unit tests for partition resolution.

Tests cover:
- Overlap scoring and ordering
- Deepest-candidate tip assignment
- Minimum cluster size enforcement
- Minimum separation pruning
- Convergence bound
"""

import unittest

from lineagedesignator.candidates import Candidate
from lineagedesignator.config import DesignationConfig
from lineagedesignator.exceptions import EmptyCandidateSet, NonConvergentPartition
from lineagedesignator.partition import (
    assign_tips,
    enforce_minimum_size,
    prune_by_separation,
    resolve_partition,
    score_overlaps,
)
from lineagedesignator.tree import LineageTree


def candidates_for(tree, nodes):
    return [
        Candidate(node=n, n_tips=len(tree.tips(n)), raw_tips=len(tree.tips(n)))
        for n in nodes
    ]


# 12 tips; root 13, A 14 (10 tips), B 15 (6 tips), O 16
NESTED_GAP_4 = "(((b1,b2,b3,b4,b5,b6)100,a7,a8,a9,a10)100,(o1,o2)50);"

# 13 tips; root 14, A 15 (11 tips), B 16 (6 tips), O 17
NESTED_GAP_5 = "(((b1,b2,b3,b4,b5,b6)100,a7,a8,a9,a10,a11)100,(o1,o2)50);"

# 11 tips; root 12 (A), B 13, C 14
COVERED_PARENT = "((b1,b2,b3,b4,b5)100,(c1,c2,c3,c4,c5)100,x)100;"


class TestScoreOverlaps(unittest.TestCase):
    """Test nesting counts and ordering."""

    def test_parents_first(self):
        tree = LineageTree.from_newick(NESTED_GAP_5)
        ordered = score_overlaps(tree, candidates_for(tree, [16, 15]))
        self.assertEqual([c.node for c in ordered], [15, 16])
        self.assertEqual([c.overlaps for c in ordered], [1, 0])

    def test_ties_broken_by_node(self):
        tree = LineageTree.from_newick(COVERED_PARENT)
        ordered = score_overlaps(tree, candidates_for(tree, [14, 13, 12]))
        self.assertEqual([c.node for c in ordered], [12, 13, 14])
        self.assertEqual([c.overlaps for c in ordered], [2, 0, 0])


class TestAssignTips(unittest.TestCase):
    """Test deepest-candidate assignment."""

    def test_deepest_candidate_claims_tip(self):
        tree = LineageTree.from_newick(NESTED_GAP_5)
        assignment = assign_tips(tree, candidates_for(tree, [15, 16]))
        self.assertEqual(assignment[tree.tip_number("b1")], 16)
        self.assertEqual(assignment[tree.tip_number("a7")], 15)
        self.assertNotIn(tree.tip_number("o1"), assignment)


class TestMinimumSize(unittest.TestCase):
    """Test removal of clusters that claim too few tips."""

    def test_parent_claiming_one_tip_dropped(self):
        tree = LineageTree.from_newick(COVERED_PARENT)
        kept, assignment = enforce_minimum_size(tree, candidates_for(tree, [12, 13, 14]))
        self.assertEqual([c.node for c in kept], [13, 14])
        self.assertNotIn(tree.tip_number("x"), assignment)

    def test_all_dropped_raises_empty(self):
        tree = LineageTree.from_newick(COVERED_PARENT)
        with self.assertRaises(EmptyCandidateSet):
            enforce_minimum_size(tree, candidates_for(tree, [13]), min_cluster_size=6)

    def test_iteration_bound(self):
        tree = LineageTree.from_newick(COVERED_PARENT)
        with self.assertRaises(NonConvergentPartition):
            enforce_minimum_size(
                tree, candidates_for(tree, [12, 13, 14]), max_iterations=1
            )


class TestSeparation(unittest.TestCase):
    """Test minimum separation pruning."""

    def test_gap_of_four_pruned(self):
        tree = LineageTree.from_newick(NESTED_GAP_4)
        kept = prune_by_separation(tree, candidates_for(tree, [14, 15]), min_separation=5)
        self.assertEqual([c.node for c in kept], [14])

    def test_gap_of_five_kept(self):
        tree = LineageTree.from_newick(NESTED_GAP_5)
        kept = prune_by_separation(tree, candidates_for(tree, [15, 16]), min_separation=5)
        self.assertEqual([c.node for c in kept], [15, 16])

    def test_uses_corrected_counts(self):
        tree = LineageTree.from_newick(NESTED_GAP_5)
        candidates = candidates_for(tree, [15, 16])
        candidates[0].n_tips = 10
        kept = prune_by_separation(tree, candidates, min_separation=5)
        self.assertEqual([c.node for c in kept], [15])


class TestResolvePartition(unittest.TestCase):
    """Test the full resolution loop."""

    def test_nested_gap_four_keeps_parent_only(self):
        tree = LineageTree.from_newick(NESTED_GAP_4)
        final, tip_clusters = resolve_partition(tree, candidates_for(tree, [14, 15]))
        self.assertEqual([c.node for c in final], [14])
        self.assertEqual(final[0].cluster, 1)
        self.assertEqual(len(tip_clusters), 10)
        self.assertEqual(set(tip_clusters.values()), {1})

    def test_nested_clusters_indexed_in_overlap_order(self):
        tree = LineageTree.from_newick(NESTED_GAP_5)
        final, tip_clusters = resolve_partition(tree, candidates_for(tree, [16, 15]))
        self.assertEqual([(c.node, c.cluster) for c in final], [(15, 1), (16, 2)])
        self.assertEqual(tip_clusters["b1"], 2)
        self.assertEqual(tip_clusters["a11"], 1)
        self.assertNotIn("o1", tip_clusters)

    def test_every_cluster_meets_minimum_size(self):
        tree = LineageTree.from_newick(COVERED_PARENT)
        config = DesignationConfig(min_separation=0)
        final, tip_clusters = resolve_partition(tree, candidates_for(tree, [12, 13, 14]), config)
        sizes = {}
        for cluster in tip_clusters.values():
            sizes[cluster] = sizes.get(cluster, 0) + 1
        self.assertEqual(len(final), 2)
        self.assertTrue(all(n >= 2 for n in sizes.values()))

    def test_empty_input_raises(self):
        tree = LineageTree.from_newick(NESTED_GAP_4)
        with self.assertRaises(EmptyCandidateSet):
            resolve_partition(tree, [])


if __name__ == '__main__':
    unittest.main()
