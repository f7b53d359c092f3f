"""Resolution service.

Entry points behind the REST API. Each method resolves one root family with
its traversal profile and shapes the result either as classified nodes
(table views) or as raw documents (graph-only views).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from compgraph.models.errors import InvalidReference, ResolutionTimeout, ResolverError
from compgraph.models.resources import Graph, ObjectReference
from compgraph.models.roots import ClaimRoot, CompositeRoot, InstanceRoot, ResourceRoot
from compgraph.resolver.client import ObjectResolver
from compgraph.resolver.paths import build_path
from compgraph.resolver.profiles import (
    ClaimProfile,
    CompositeProfile,
    InstanceProfile,
    SubResourceType,
    dig,
)
from compgraph.resolver.walker import GraphWalker

_log = structlog.get_logger(component="service")

RGD_API_VERSION = "kro.run/v1alpha1"
CRD_API_VERSION = "apiextensions.k8s.io/v1"


@dataclass
class Resolution:
    """A resolved graph plus the definition objects fetched to locate its root."""

    graph: Graph
    supporting: list[dict[str, Any]] = field(default_factory=list)

    def resources_payload(self) -> dict[str, Any]:
        """``{resources: ResourceNode[], supportingResources: [...]}``."""
        return {
            "resources": [node.to_dict() for node in self.graph.nodes],
            "supportingResources": self.supporting,
            "complete": self.graph.complete,
        }

    def graph_payload(self) -> dict[str, Any]:
        """``{resources: ResolvedObject[]}``, supporting objects first."""
        return {
            "resources": [*self.supporting, *self.graph.raw_objects()],
            "complete": self.graph.complete,
        }


def crd_plural(kind: str) -> str:
    """Plural used by KRO when it generates the CRD for a definition's schema kind."""
    lowered = kind.lower()
    if lowered.endswith("y"):
        return lowered[:-1] + "ies"
    if lowered.endswith("s"):
        return lowered + "es"
    return lowered + "s"


def crd_name_from_definition(rgd: dict[str, Any]) -> str:
    """``<plural>.<group>`` of the CRD generated for *rgd*.

    Raises:
        InvalidReference: ``spec.schema`` lacks a group or kind.
    """
    group = dig(rgd, ("spec", "schema", "group"))
    kind = dig(rgd, ("spec", "schema", "kind"))
    if not group or not kind:
        raise InvalidReference(f"Definition spec.schema has no group/kind: {dig(rgd, ('spec', 'schema'))!r}")
    return f"{crd_plural(kind)}.{group}"


def served_version(crd: dict[str, Any]) -> str:
    """The served storage version of *crd*, else its first version.

    Raises:
        InvalidReference: the CRD lists no versions.
    """
    versions = [v for v in dig(crd, ("spec", "versions")) or [] if isinstance(v, dict)]
    if not versions:
        raise InvalidReference(f"CRD {dig(crd, ('metadata', 'name'))} declares no versions")
    for version in versions:
        if version.get("served") and version.get("storage"):
            return str(version["name"])
    return str(versions[0]["name"])


def template_name(template: dict[str, Any], instance: dict[str, Any] | None) -> str | None:
    """Concrete ``metadata.name`` of a template object for *instance*.

    Only the ``${schema.metadata.name}`` and ``${schema.spec.name}`` expressions are
    substituted; any other expression leaves the name unknown.
    """
    name = dig(template, ("metadata", "name"))
    if not isinstance(name, str) or not name or instance is None:
        return None
    name = name.replace("${schema.spec.name}", str(dig(instance, ("spec", "name")) or ""))
    name = name.replace("${schema.metadata.name}", str(dig(instance, ("metadata", "name")) or ""))
    if not name or "${" in name or "+" in name:
        return None
    return name


def sub_resources_from_definition(
    rgd: dict[str, Any], instance: dict[str, Any] | None = None
) -> list[SubResourceType]:
    """Template types declared by *rgd* (external references excluded).

    With *instance* given, template names are resolved for it so owned objects
    without ownership labels can still be fetched by name.
    """
    types: list[SubResourceType] = []
    for resource in dig(rgd, ("spec", "resources")) or []:
        template = resource.get("template") if isinstance(resource, dict) else None
        if isinstance(template, dict) and template.get("apiVersion") and template.get("kind"):
            types.append(
                SubResourceType(
                    str(template["apiVersion"]), str(template["kind"]), template_name(template, instance)
                )
            )
    return types


def external_refs_from_definition(rgd: dict[str, Any], namespace: str) -> list[dict[str, Any]]:
    """External references declared by *rgd*, as raw reference entries."""
    refs: list[dict[str, Any]] = []
    for resource in dig(rgd, ("spec", "resources")) or []:
        external = resource.get("externalRef") if isinstance(resource, dict) else None
        if not isinstance(external, dict):
            continue
        metadata = external.get("metadata") or {}
        refs.append(
            {
                "apiVersion": external.get("apiVersion"),
                "kind": external.get("kind"),
                "name": metadata.get("name"),
                "namespace": metadata.get("namespace") or namespace,
            }
        )
    return refs


class ResourceGraphService:
    """Resolves Crossplane and KRO composition trees.

    Args:
        resolver:         Reference resolver (transport + scope fallback).
        walker:           Graph walker sharing the same resolver.
        deadline_seconds: Budget for one call, None for no deadline.
    """

    def __init__(
        self,
        resolver: ObjectResolver,
        walker: GraphWalker,
        deadline_seconds: float | None = None,
    ) -> None:
        self._resolver = resolver
        self._walker = walker
        self._deadline = deadline_seconds

    # ------------------------------------------------------------------
    # Crossplane
    # ------------------------------------------------------------------

    async def get_resources(self, root: ResourceRoot) -> Resolution:
        """Classified nodes for any Crossplane object; claims are expanded."""
        graph = await self._walker.walk(root.cluster, root.reference(), ClaimProfile(), self._deadline)
        return Resolution(graph=graph)

    async def get_resource_graph(self, root: ClaimRoot) -> Resolution:
        """Claim -> composite -> managed resources."""
        graph = await self._walker.walk(root.cluster, root.reference(), ClaimProfile(), self._deadline)
        return Resolution(graph=graph)

    async def get_v2_resource_graph(self, root: CompositeRoot) -> Resolution:
        """Scope-qualified composite -> managed -> nested managed resources."""
        profile = CompositeProfile(namespace=root.namespace)
        graph = await self._walker.walk(root.cluster, root.reference(), profile, self._deadline)
        return Resolution(graph=graph)

    # ------------------------------------------------------------------
    # KRO
    # ------------------------------------------------------------------

    async def get_instance_resources(self, root: InstanceRoot) -> Resolution:
        """Instance -> owned resources, with the RGD and CRD as supporting objects."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        rgd, crd, instance = await self._locate_instance(root)

        sub_resources = (
            SubResourceType.parse_list(root.sub_resources)
            if root.sub_resources
            else sub_resources_from_definition(rgd, instance)
        )
        instance_uid = root.instance_uid or dig(instance, ("metadata", "uid")) or ""
        profile = InstanceProfile(
            instance_uid=instance_uid,
            definition_id=root.rgd_id,
            namespace=root.namespace,
            sub_resources=sub_resources,
            external_refs=external_refs_from_definition(rgd, root.namespace),
        )
        remaining = None if self._deadline is None else max(self._deadline - (loop.time() - started), 0.0)
        graph = await self._walker.walk(root.cluster, instance, profile, remaining)
        return Resolution(graph=graph, supporting=[rgd, crd])

    async def _locate_instance(self, root: InstanceRoot) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
        """Fetch the definition, its CRD and the instance. Every failure is fatal."""
        try:
            async with asyncio.timeout(self._deadline):
                rgd = await self._fetch_definition(
                    root.cluster, RGD_API_VERSION, "ResourceGraphDefinition", root.rgd_name, "resourcegraphdefinitions"
                )
                crd_name = root.crd_name or crd_name_from_definition(rgd)
                crd = await self._fetch_definition(
                    root.cluster, CRD_API_VERSION, "CustomResourceDefinition", crd_name, "customresourcedefinitions"
                )
                group = dig(crd, ("spec", "group"))
                plural = dig(crd, ("spec", "names", "plural"))
                if not group or not plural:
                    raise InvalidReference(f"CRD {crd_name} has no spec.group or spec.names.plural")
                ref = ObjectReference(
                    api_version=f"{group}/{served_version(crd)}",
                    kind=dig(crd, ("spec", "names", "kind")) or "",
                    name=root.instance_name,
                    namespace=root.namespace,
                    plural=plural,
                )
                instance = await self._resolver.fetch(
                    root.cluster, build_path(ref, root.namespace, self._resolver.pluralizer)
                )
        except TimeoutError as exc:
            raise ResolutionTimeout(f"Deadline expired while locating instance {root.instance_name}") from exc
        except ResolverError as exc:
            _log.error("instance_locate_failed", cluster=root.cluster, instance=root.instance_name, error=str(exc))
            raise
        _log.debug("instance_located", cluster=root.cluster, instance=root.instance_name, crd=crd_name)
        return rgd, crd, instance

    async def _fetch_definition(
        self, cluster: str, api_version: str, kind: str, name: str, plural: str
    ) -> dict[str, Any]:
        ref = ObjectReference(api_version=api_version, kind=kind, name=name, plural=plural)
        return await self._resolver.fetch(cluster, build_path(ref, None, self._resolver.pluralizer))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def get_events(self, cluster: str, namespace: str, name: str, kind: str) -> list[dict[str, Any]]:
        """Core events recorded against one object."""
        return await self._resolver.events(cluster, namespace, name, kind)
