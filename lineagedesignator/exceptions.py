"""
Exceptions raised by the lineage designation pipeline.

Every error carries the offending identifier (a node name, a sequence ID or a
label) in its ``identifier`` attribute so that callers can report it without
parsing the message.

EmptyCandidateSet is the only error the pipeline recovers from: a tree that
is too small or too poorly supported to contain lineages is a legitimate
outcome, represented by every sequence receiving a null lineage.
"""

from typing import Optional


class DesignationError(Exception):
    """Base exception for lineage designation errors."""

    def __init__(self, message: str, identifier: Optional[object] = None):
        super().__init__(message)
        self.identifier = identifier


class MissingSupportData(DesignationError):
    """The tree carries no per-node support annotations."""
    pass


class MissingMetadataRow(DesignationError):
    """A tip or sequence has no matching metadata entry."""
    pass


class MalformedAncestralIndex(DesignationError):
    """An internal node has no ancestral reconstruction row."""
    pass


class EmptyCandidateSet(DesignationError):
    """No node meets the support, size and distinctiveness thresholds."""
    pass


class NonConvergentPartition(DesignationError):
    """Minimum-size pruning failed to stabilise within its iteration bound."""
    pass


class CapacityExceeded(DesignationError):
    """The root-token alphabet ran out of unused tokens."""
    pass


class NamingError(DesignationError):
    """Naming produced a duplicate label."""
    pass
