"""Data structures for resolved resource graphs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from compgraph.models.errors import InvalidReference

CORE_GROUP = ""


class NodeType(StrEnum):
    """Semantic role of a node within a composition tree."""

    CLAIM = "Claim"
    COMPOSITE = "Composite"
    MANAGED_RESOURCE = "ManagedResource"
    XRD = "XRD"
    INSTANCE = "Instance"
    RGD = "RGD"
    CRD = "CRD"
    GENERIC_RESOURCE = "GenericResource"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split ``apiVersion`` into ``(group, version)``.

    A bare version (``v1``) belongs to the core group, returned as ``""``.

    Raises:
        InvalidReference: empty segments or more than one ``/``.
    """
    if not api_version:
        raise InvalidReference("apiVersion is empty")
    parts = api_version.split("/")
    if len(parts) == 1:
        return CORE_GROUP, parts[0]
    if len(parts) == 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    raise InvalidReference(f"Unparsable apiVersion: {api_version!r}")


def display_group(api_version: str | None) -> str:
    """Return the group label shown to callers (``core`` for ``v1``)."""
    if not api_version:
        return "Unknown"
    if "/" in api_version:
        return api_version.split("/", 1)[0]
    return "core" if api_version == "v1" else api_version


@dataclass(frozen=True)
class ObjectReference:
    """Identifies a fetchable object.

    ``namespace`` is None when the object is a candidate for cluster scope.
    ``plural`` overrides kind pluralization when the caller already knows the
    resource name (root lookups carry it from the catalog).
    """

    api_version: str
    kind: str
    name: str
    namespace: str | None = None
    plural: str | None = None

    @property
    def group(self) -> str:
        return split_api_version(self.api_version)[0]

    @property
    def version(self) -> str:
        return split_api_version(self.api_version)[1]

    @property
    def is_core(self) -> bool:
        return self.group == CORE_GROUP

    @classmethod
    def from_ref(cls, ref: Any) -> ObjectReference:
        """Build a reference from a raw ``{apiVersion, kind, name, namespace?}`` entry.

        Raises:
            InvalidReference: the entry is not a mapping or lacks a required field.
        """
        if not isinstance(ref, dict):
            raise InvalidReference(f"Reference entry is not an object: {ref!r}")
        missing = [key for key in ("apiVersion", "kind", "name") if not ref.get(key)]
        if missing:
            raise InvalidReference(f"Reference entry missing {', '.join(missing)}: {ref!r}")
        api_version = str(ref["apiVersion"])
        split_api_version(api_version)
        namespace = ref.get("namespace") or None
        return cls(
            api_version=api_version,
            kind=str(ref["kind"]),
            name=str(ref["name"]),
            namespace=str(namespace) if namespace else None,
        )

    def __str__(self) -> str:
        location = f"{self.namespace}/" if self.namespace else ""
        return f"{self.kind}/{location}{self.name} ({self.api_version})"


@dataclass
class ResourceStatus:
    """Readiness booleans plus the verbatim condition list."""

    ready: bool = False
    synced: bool = False
    conditions: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ResourceNode:
    """One object in a resolved graph.

    ``raw`` is the fetched document and is never mutated after the node is
    built. ``parent_id`` is None only for the root. ``external`` marks objects
    referenced by, but not managed through, the owning definition.
    """

    id: str
    node_type: NodeType
    kind: str
    group: str
    name: str
    namespace: str | None
    status: ResourceStatus
    created_at: str
    raw: dict[str, Any]
    level: int = 0
    parent_id: str | None = None
    synthetic: bool = False
    external: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the wire shape consumed by graph and table views."""
        return {
            "id": self.id,
            "type": self.node_type.value,
            "name": self.name,
            "namespace": self.namespace,
            "group": self.group,
            "kind": self.kind,
            "status": {
                "ready": self.status.ready,
                "synced": self.status.synced,
                "conditions": self.status.conditions,
            },
            "createdAt": self.created_at,
            "resource": self.raw,
            "level": self.level,
            "parentId": self.parent_id,
            "synthetic": self.synthetic,
            "isExternal": self.external,
        }


@dataclass(frozen=True)
class FailedReference:
    """A descendant that could not be resolved and was left out of the graph."""

    reference: str
    reason: str
    parent_id: str | None = None


@dataclass
class Graph:
    """Ordered nodes of one resolution, root first, parents before children.

    Nodes go in through :meth:`add`, which keeps the id index in step.
    """

    nodes: list[ResourceNode] = field(default_factory=list)
    failures: list[FailedReference] = field(default_factory=list)
    timed_out: bool = False
    _index: dict[str, ResourceNode] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index = {node.id: node for node in self.nodes}

    @property
    def root(self) -> ResourceNode | None:
        return self.nodes[0] if self.nodes else None

    @property
    def complete(self) -> bool:
        """False when any descendant was skipped or the deadline expired."""
        return not self.failures and not self.timed_out

    def ids(self) -> set[str]:
        return set(self._index)

    def get(self, node_id: str) -> ResourceNode | None:
        return self._index.get(node_id)

    def add(self, node: ResourceNode) -> bool:
        """Append *node* unless its id is already present.

        Returns False for duplicates. Raises ValueError when the parent has
        not been added yet, which would break the ancestor ordering.
        """
        if node.id in self._index:
            return False
        if node.parent_id is None:
            if self.nodes:
                raise ValueError(f"Graph already has a root; node {node.id} has no parent")
        elif self.get(node.parent_id) is None:
            raise ValueError(f"Parent {node.parent_id} of node {node.id} is not in the graph")
        self.nodes.append(node)
        self._index[node.id] = node
        return True

    def raw_objects(self) -> list[dict[str, Any]]:
        return [node.raw for node in self.nodes]

    def __len__(self) -> int:
        return len(self.nodes)
