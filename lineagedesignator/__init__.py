"""
lineagedesignator: Hierarchical Lineage Designation for Phylogenetic Trees

lineagedesignator assigns hierarchical lineage labels to the sequences at the
tips of a phylogenetic tree. Lineages are well-supported clades of adequately
covered sequences that share at least one difference from their reconstructed
ancestor; their names encode nesting (A1, A1.1, A1.1.2) and refine any
previous lineage assignment carried in the metadata (Cosmopolitan_A1).

Core functionality includes:
- Candidate detection from node support and clade size
- Coverage correction for fragmentary sequences
- Distinctiveness filtering against ancestral reconstructions
- Resolution of nested candidates into a tip partition
- Collision-free hierarchical naming
"""

__version__ = "0.1.0"

from . import candidates
from . import config
from . import naming
from . import partition
from . import sequences
from . import tree
from . import utils
from .designation import designate, designate_with_details, DesignationContext
from .exceptions import (
    DesignationError,
    MissingSupportData,
    MissingMetadataRow,
    MalformedAncestralIndex,
    EmptyCandidateSet,
    NonConvergentPartition,
    CapacityExceeded,
    NamingError,
)
from .tree import LineageTree

__all__ = [
    "candidates",
    "config",
    "naming",
    "partition",
    "sequences",
    "tree",
    "utils",
    "designate",
    "designate_with_details",
    "DesignationContext",
    "LineageTree",
    "DesignationError",
    "MissingSupportData",
    "MissingMetadataRow",
    "MalformedAncestralIndex",
    "EmptyCandidateSet",
    "NonConvergentPartition",
    "CapacityExceeded",
    "NamingError",
]
