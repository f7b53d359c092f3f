"""Traversal profiles.

Each upstream system encodes its dependency links differently, so each root
family gets a named profile describing where to look for children:

ClaimProfile      -- Crossplane v1: claim -> composite -> managed resources.
CompositeProfile  -- Crossplane v2: composite -> managed -> nested managed,
                     all through ``spec.crossplane.resourceRefs``.
InstanceProfile   -- KRO: instance -> resources found by label selector.

Reference fields that moved between releases are read through a
:class:`CandidateAccessor`, an ordered list of field paths where the first
present one wins, even when it is empty.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from compgraph.models.resources import NodeType, ResourceNode
from compgraph.resolver.classifier import RGD_ID_LABEL, ClassifierHints
from compgraph.resolver.status import CROSSPLANE_READY, CROSSPLANE_SYNCED, KRO_READY, KRO_SYNCED

KRO_OWNED_LABEL = "kro.run/owned"
KRO_INSTANCE_ID_LABEL = "kro.run/instance-id"


def dig(obj: Any, path: Sequence[str]) -> Any:
    """Follow *path* through nested mappings, returning None on any miss."""
    current = obj
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


@dataclass(frozen=True)
class CandidateAccessor:
    """Ordered field paths tried in priority order."""

    paths: tuple[tuple[str, ...], ...]

    def get(self, obj: Mapping[str, Any]) -> Any:
        for path in self.paths:
            value = dig(obj, path)
            if value is not None:
                return value
        return None

    def get_list(self, obj: Mapping[str, Any]) -> list[Any]:
        """Like :meth:`get` but always returns a list (a single entry is wrapped)."""
        value = self.get(obj)
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]


COMPOSITE_REF = CandidateAccessor(
    (
        ("status", "compositeResourceRef"),
        ("spec", "resourceRef"),
    )
)
RESOURCE_REFS = CandidateAccessor(
    (
        ("status", "resourceRefs"),
        ("spec", "resourceRefs"),
    )
)
CROSSPLANE_RESOURCE_REFS = CandidateAccessor((("spec", "crossplane", "resourceRefs"),))


@dataclass(frozen=True)
class DirectRef:
    """A raw reference entry to resolve, with the namespace to try first.

    ``external`` marks references the owning definition does not manage.
    """

    entry: Any
    ambient_namespace: str | None = None
    external: bool = False


@dataclass(frozen=True)
class LabelQuery:
    """List one type by label selector, then re-fetch every item.

    When the selector matches nothing and ``fallback_name`` is set, that one
    object is fetched by name instead; nested instances do not carry the
    ownership labels.
    """

    api_version: str
    kind: str
    namespace: str | None
    labels: Mapping[str, str] = field(default_factory=dict)
    fallback_name: str | None = None

    def __str__(self) -> str:
        selector = ",".join(f"{k}={v}" for k, v in self.labels.items())
        return f"{self.kind} ({self.api_version}) in {self.namespace or '<cluster>'} [{selector}]"


ChildQuery = DirectRef | LabelQuery


class TraversalProfile(ABC):
    """Strategy describing how one root family links to its children."""

    name: str = ""
    max_depth: int = 0
    ready_types: Collection[str] = CROSSPLANE_READY
    synced_types: Collection[str] = CROSSPLANE_SYNCED

    @abstractmethod
    def children(self, node: ResourceNode, root: ResourceNode) -> list[ChildQuery]:
        """Queries that discover the children of *node*."""

    def role(self, level: int) -> NodeType | None:
        """Structural node type of an object at *level*, if the profile knows one."""
        return None

    def hints(self, raw: Mapping[str, Any], level: int) -> ClassifierHints:
        metadata = raw.get("metadata") or {}
        return ClassifierHints(
            labels=metadata.get("labels") or {},
            uid=metadata.get("uid"),
            role=self.role(level),
        )


class ClaimProfile(TraversalProfile):
    """Claim (0) -> composite (1) -> managed resources (2).

    Only Claim roots are expanded; any other root resolves to a single node.
    The composite reference carries no namespace and is fetched cluster-scoped.
    """

    name = "claim"
    max_depth = 2

    def children(self, node: ResourceNode, root: ResourceNode) -> list[ChildQuery]:
        if node.level == 0:
            if node.node_type != NodeType.CLAIM:
                return []
            return [DirectRef(entry) for entry in COMPOSITE_REF.get_list(node.raw)]
        if node.level == 1:
            ambient = node.namespace or root.namespace
            return [DirectRef(entry, ambient) for entry in RESOURCE_REFS.get_list(node.raw)]
        return []

    def role(self, level: int) -> NodeType | None:
        if level == 1:
            return NodeType.COMPOSITE
        if level >= 2:
            return NodeType.MANAGED_RESOURCE
        return None


class CompositeProfile(TraversalProfile):
    """Composite (0) -> managed (1) -> nested managed (2).

    Args:
        namespace: Namespace from the request, used for references that carry
                   none when the parent itself is cluster-scoped.
    """

    name = "composite"
    max_depth = 2

    def __init__(self, namespace: str | None = None) -> None:
        self.namespace = namespace

    def children(self, node: ResourceNode, root: ResourceNode) -> list[ChildQuery]:
        ambient = node.namespace or self.namespace
        return [DirectRef(entry, ambient) for entry in CROSSPLANE_RESOURCE_REFS.get_list(node.raw)]

    def role(self, level: int) -> NodeType | None:
        return NodeType.COMPOSITE if level == 0 else NodeType.MANAGED_RESOURCE


@dataclass(frozen=True)
class SubResourceType:
    """One ``apiVersion:kind`` entry of an instance's sub-resource list.

    ``name`` is the template object name with instance substitutions applied,
    None when it is unknown or still holds an expression.
    """

    api_version: str
    kind: str
    name: str | None = None

    @classmethod
    def parse_list(cls, value: str) -> list[SubResourceType]:
        """Parse ``v1:configmap,apps/v1:deployment``; blank or malformed entries are dropped."""
        types: list[SubResourceType] = []
        for item in value.split(","):
            api_version, sep, kind = item.strip().partition(":")
            if sep and api_version.strip() and kind.strip():
                types.append(cls(api_version.strip(), kind.strip()))
        return types


class InstanceProfile(TraversalProfile):
    """Instance (0) -> owned resources (1).

    Owned resources are not referenced from the instance; each declared
    sub-resource type is listed with the ownership label selector instead.
    External references declared by the definition are resolved directly.

    Args:
        instance_uid:  uid of the root instance.
        definition_id: id of the owning ResourceGraphDefinition.
        namespace:     instance namespace, where owned resources live.
        sub_resources: types to list.
        external_refs: raw ``{apiVersion, kind, name, namespace?}`` entries.
    """

    name = "instance"
    max_depth = 1
    ready_types = KRO_READY
    synced_types = KRO_SYNCED

    def __init__(
        self,
        instance_uid: str,
        definition_id: str,
        namespace: str | None,
        sub_resources: Sequence[SubResourceType] = (),
        external_refs: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        self.instance_uid = instance_uid
        self.definition_id = definition_id
        self.namespace = namespace
        self.sub_resources = list(sub_resources)
        self.external_refs = list(external_refs)

    @property
    def selector(self) -> dict[str, str]:
        return {
            KRO_OWNED_LABEL: "true",
            KRO_INSTANCE_ID_LABEL: self.instance_uid,
            RGD_ID_LABEL: self.definition_id,
        }

    def children(self, node: ResourceNode, root: ResourceNode) -> list[ChildQuery]:
        if node.level != 0:
            return []
        namespace = node.namespace or self.namespace
        queries: list[ChildQuery] = [
            DirectRef(dict(entry), namespace, external=True) for entry in self.external_refs
        ]
        queries.extend(
            LabelQuery(sub.api_version, sub.kind, namespace, self.selector, fallback_name=sub.name)
            for sub in self.sub_resources
        )
        return queries

    def role(self, level: int) -> NodeType | None:
        return NodeType.INSTANCE if level == 0 else NodeType.MANAGED_RESOURCE

    def hints(self, raw: Mapping[str, Any], level: int) -> ClassifierHints:
        metadata = raw.get("metadata") or {}
        return ClassifierHints(
            labels=metadata.get("labels") or {},
            uid=metadata.get("uid"),
            ownership_label=RGD_ID_LABEL,
            definition_id=self.definition_id,
            instance_uid=self.instance_uid,
            role=self.role(level),
        )
