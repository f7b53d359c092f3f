"""Root seeds: everything needed to locate the root object of one graph."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from compgraph.models.resources import ObjectReference


class Scope(StrEnum):
    """Scope of a v2 composite resource."""

    NAMESPACED = "Namespaced"
    CLUSTER = "Cluster"


def api_version_of(group: str | None, version: str) -> str:
    """Join group and version; the core group is spelled ``""``, ``core`` or ``v1``."""
    if not group or group in ("core", "v1"):
        return version or "v1"
    return f"{group}/{version}"


@dataclass(frozen=True)
class ResourceRoot:
    """Any Crossplane object addressed by group/version/plural/name.

    Claims are expanded into their composite and managed resources; other
    kinds resolve to a single node.
    """

    cluster: str
    name: str
    group: str
    version: str
    plural: str
    namespace: str | None = None
    kind: str | None = None

    def reference(self) -> ObjectReference:
        return ObjectReference(
            api_version=api_version_of(self.group, self.version),
            kind=self.kind or "",
            name=self.name,
            namespace=self.namespace or None,
            plural=self.plural,
        )


@dataclass(frozen=True)
class ClaimRoot:
    """A namespaced v1 claim."""

    cluster: str
    namespace: str
    name: str
    group: str
    version: str
    plural: str

    def reference(self) -> ObjectReference:
        return ObjectReference(
            api_version=api_version_of(self.group, self.version),
            kind="",
            name=self.name,
            namespace=self.namespace,
            plural=self.plural,
        )


@dataclass(frozen=True)
class CompositeRoot:
    """A v2 composite with an explicit scope."""

    cluster: str
    name: str
    group: str
    version: str
    plural: str
    scope: Scope = Scope.CLUSTER
    namespace: str | None = None

    def reference(self) -> ObjectReference:
        namespace = self.namespace if self.scope == Scope.NAMESPACED else None
        return ObjectReference(
            api_version=api_version_of(self.group, self.version),
            kind="",
            name=self.name,
            namespace=namespace or None,
            plural=self.plural,
        )


@dataclass(frozen=True)
class InstanceRoot:
    """A KRO instance plus the ids of its owning ResourceGraphDefinition.

    ``crd_name`` and ``sub_resources`` are optional: when absent they are
    derived from the definition itself.
    """

    cluster: str
    namespace: str
    instance_name: str
    instance_uid: str
    rgd_name: str
    rgd_id: str
    crd_name: str | None = None
    sub_resources: str | None = None


Root = ResourceRoot | ClaimRoot | CompositeRoot | InstanceRoot
