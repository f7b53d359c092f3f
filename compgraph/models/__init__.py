"""Core data structures for compgraph."""

from compgraph.models.config import CompGraphConfig
from compgraph.models.errors import (
    Ambiguous,
    InvalidReference,
    NotFound,
    ResolutionTimeout,
    ResolverError,
    UpstreamError,
)
from compgraph.models.resources import (
    FailedReference,
    Graph,
    NodeType,
    ObjectReference,
    ResourceNode,
    ResourceStatus,
)

__all__ = [
    "Ambiguous",
    "CompGraphConfig",
    "FailedReference",
    "Graph",
    "InvalidReference",
    "NodeType",
    "NotFound",
    "ObjectReference",
    "ResolutionTimeout",
    "ResolverError",
    "ResourceNode",
    "ResourceStatus",
    "UpstreamError",
]
