"""Graph walker.

Starts from one root object and follows the children a traversal profile
describes, level by level, building an ordered :class:`Graph`.

Failure policy: the root fetch is load-bearing and any error there
propagates. Every descendant fetch runs inside its own failure boundary; an
error is logged, recorded on ``Graph.failures`` and the reference is left
out, so callers get the largest graph that could be resolved.

Concurrency: all queries of one level run concurrently, each network call
bounded by a semaphore. Results land in per-query slots and are committed in
query order by the coordinating coroutine, so discovery order does not depend
on response timing and the visited set is only touched between awaits.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from compgraph.models.errors import NotFound, ResolutionTimeout, ResolverError
from compgraph.models.resources import (
    FailedReference,
    Graph,
    ObjectReference,
    ResourceNode,
    display_group,
)
from compgraph.observability.metrics import descendant_failures_total, graph_nodes, resolutions_total
from compgraph.resolver.classifier import classify
from compgraph.resolver.client import ObjectResolver
from compgraph.resolver.paths import build_list_path, build_path
from compgraph.resolver.profiles import ChildQuery, DirectRef, LabelQuery, TraversalProfile, dig
from compgraph.resolver.status import conditions_of, normalize

_log = structlog.get_logger(component="resolver.walker")

REMOTE_OBJECT_KIND = "Object"


def synthesize_manifest(wrapper: dict[str, Any]) -> dict[str, Any] | None:
    """Derive the remote object an ``Object`` wrapper applies.

    Returns a copy of ``status.atProvider.manifest`` whose metadata carries a
    single ownerReference to the wrapper, or None when there is no manifest.
    The wrapper document is not modified.
    """
    if wrapper.get("kind") != REMOTE_OBJECT_KIND:
        return None
    manifest = dig(wrapper, ("status", "atProvider", "manifest"))
    if not isinstance(manifest, dict) or not manifest:
        return None
    wrapper_meta = wrapper.get("metadata") or {}
    metadata = dict(manifest.get("metadata") or {})
    metadata["ownerReferences"] = [
        {
            "apiVersion": wrapper.get("apiVersion", ""),
            "kind": REMOTE_OBJECT_KIND,
            "name": wrapper_meta.get("name", ""),
            "uid": wrapper_meta.get("uid", ""),
            "controller": True,
        }
    ]
    return {**manifest, "metadata": metadata}


class GraphWalker:
    """Resolves composition trees; holds no per-resolution state.

    Args:
        resolver:               Reference resolver used for every fetch.
        max_fanout:             Upper bound on concurrent fetches per resolution.
        qualified_fallback_ids: Build ``cluster/namespace/kind/name`` ids for
                                uid-less objects instead of ``kind-name``.
    """

    def __init__(
        self,
        resolver: ObjectResolver,
        max_fanout: int = 8,
        qualified_fallback_ids: bool = False,
    ) -> None:
        if max_fanout < 1:
            raise ValueError("max_fanout must be at least 1")
        self._resolver = resolver
        self._max_fanout = max_fanout
        self._qualified_fallback_ids = qualified_fallback_ids

    async def walk(
        self,
        cluster: str,
        root: ObjectReference | dict[str, Any],
        profile: TraversalProfile,
        deadline: float | None = None,
    ) -> Graph:
        """Resolve the graph rooted at *root*.

        Args:
            cluster:  Cluster identity passed to the transport.
            root:     Reference to fetch, or an already fetched root document.
            profile:  Traversal strategy for this root family.
            deadline: Seconds allowed for the whole resolution. On expiry the
                      nodes resolved so far are returned with
                      ``graph.timed_out`` set; if the root itself is not yet
                      resolved, ResolutionTimeout is raised.

        Raises:
            NotFound / UpstreamError / InvalidReference: the root fetch failed.
            ResolutionTimeout: the deadline expired before the root resolved.
        """
        traversal = _Traversal(self, cluster, profile)
        try:
            graph = await traversal.run(root, deadline)
        except ResolverError:
            resolutions_total.labels(profile=profile.name, outcome="failed").inc()
            raise
        outcome = "complete" if graph.complete else "degraded"
        resolutions_total.labels(profile=profile.name, outcome=outcome).inc()
        graph_nodes.labels(profile=profile.name).observe(len(graph))
        _log.info(
            "graph_resolved",
            cluster=cluster,
            profile=profile.name,
            nodes=len(graph),
            failures=len(graph.failures),
            timed_out=graph.timed_out,
        )
        return graph

    def node_id(self, cluster: str, raw: dict[str, Any], kind: str) -> str:
        metadata = raw.get("metadata") or {}
        uid = metadata.get("uid")
        if uid:
            return str(uid)
        name = metadata.get("name") or "Unknown"
        if self._qualified_fallback_ids:
            return f"{cluster}/{metadata.get('namespace') or '_'}/{kind}/{name}"
        return f"{kind}-{name}"


class _Traversal:
    """State of one resolution: graph, visited ids and the fetch semaphore."""

    def __init__(self, walker: GraphWalker, cluster: str, profile: TraversalProfile) -> None:
        self._walker = walker
        self._resolver = walker._resolver
        self._cluster = cluster
        self._profile = profile
        self._graph = Graph()
        self._visited: set[str] = set()
        self._semaphore = asyncio.Semaphore(walker._max_fanout)

    async def run(self, root: ObjectReference | dict[str, Any], deadline: float | None) -> Graph:
        when = asyncio.get_running_loop().time() + deadline if deadline is not None else None

        if isinstance(root, ObjectReference):
            try:
                async with asyncio.timeout_at(when):
                    raw_root = await self._resolver.resolve(self._cluster, root, root.namespace)
            except TimeoutError as exc:
                _log.error("root_fetch_timeout", cluster=self._cluster, root=str(root))
                raise ResolutionTimeout(f"Deadline expired while fetching root {root}") from exc
            except ResolverError as exc:
                _log.error("root_fetch_failed", cluster=self._cluster, root=str(root), error=str(exc))
                raise
        else:
            raw_root = root

        root_node = self._build_node(raw_root, level=0, parent=None)
        self._commit([root_node])

        try:
            async with asyncio.timeout_at(when):
                await self._descend(root_node)
        except TimeoutError:
            self._graph.timed_out = True
            _log.warning(
                "resolution_deadline_expired",
                cluster=self._cluster,
                profile=self._profile.name,
                nodes=len(self._graph),
            )
        return self._graph

    async def _descend(self, root: ResourceNode) -> None:
        frontier = [root]
        while frontier:
            jobs: list[tuple[ResourceNode, ChildQuery]] = [
                (parent, query)
                for parent in frontier
                if parent.level < self._profile.max_depth
                for query in self._profile.children(parent, root)
            ]
            if not jobs:
                return
            slots: list[list[ResourceNode] | None] = [None] * len(jobs)

            async def _fill(index: int, parent: ResourceNode, query: ChildQuery) -> None:
                slots[index] = await self._run_query(parent, query)

            try:
                await asyncio.gather(*(_fill(i, parent, query) for i, (parent, query) in enumerate(jobs)))
            finally:
                # Commit whatever finished, also when the deadline cancels the level.
                committed: list[ResourceNode] = []
                for produced in slots:
                    if produced:
                        committed.extend(self._commit(produced))
            frontier = [node for node in committed if not node.synthetic]

    def _commit(self, nodes: list[ResourceNode]) -> list[ResourceNode]:
        """Add *nodes* in order, skipping ids already visited."""
        added: list[ResourceNode] = []
        for node in nodes:
            if node.id in self._visited:
                _log.debug("duplicate_node_skipped", node_id=node.id, kind=node.kind, name=node.name)
                continue
            if node.parent_id is not None and node.parent_id not in self._visited:
                # Parent was itself a duplicate; its children are already reachable elsewhere.
                continue
            self._visited.add(node.id)
            self._graph.add(node)
            added.append(node)
        return added

    async def _run_query(self, parent: ResourceNode, query: ChildQuery) -> list[ResourceNode]:
        if isinstance(query, DirectRef):
            return await self._resolve_direct(parent, query)
        return await self._resolve_listed(parent, query)

    async def _resolve_direct(self, parent: ResourceNode, query: DirectRef) -> list[ResourceNode]:
        try:
            ref = ObjectReference.from_ref(query.entry)
            async with self._semaphore:
                raw = await self._resolver.resolve(self._cluster, ref, query.ambient_namespace)
        except ResolverError as exc:
            self._record_failure(str(query.entry), exc, parent)
            return []
        return self._with_synthetic(self._build_node(raw, parent.level + 1, parent, external=query.external))

    async def _resolve_listed(self, parent: ResourceNode, query: LabelQuery) -> list[ResourceNode]:
        pluralizer = self._resolver.pluralizer
        try:
            path = build_list_path(query.api_version, pluralizer(query.kind), query.namespace, query.labels)
            async with self._semaphore:
                items = await self._resolver.list_items(self._cluster, path)
        except ResolverError as exc:
            self._record_failure(str(query), exc, parent)
            return []

        names = [dig(item, ("metadata", "name")) for item in items]
        _log.debug("label_query_listed", query=str(query), count=len(names))
        by_name = not names and query.fallback_name is not None
        if by_name:
            names = [query.fallback_name]

        async def _refetch(name: str) -> list[ResourceNode]:
            ref = ObjectReference(query.api_version, query.kind, name, query.namespace)
            try:
                async with self._semaphore:
                    raw = await self._resolver.fetch(
                        self._cluster, build_path(ref, query.namespace, pluralizer)
                    )
            except ResolverError as exc:
                if by_name and isinstance(exc, NotFound):
                    # Nothing matched the selector and nothing carries the template name either.
                    _log.debug("label_query_fallback_missed", query=str(query), name=name)
                    return []
                self._record_failure(str(ref), exc, parent)
                return []
            return self._with_synthetic(
                self._build_node(raw, parent.level + 1, parent, fallback_kind=query.kind)
            )

        results = await asyncio.gather(*(_refetch(str(name)) for name in names if name))
        return [node for produced in results for node in produced]

    def _with_synthetic(self, node: ResourceNode) -> list[ResourceNode]:
        manifest = synthesize_manifest(node.raw)
        if manifest is None:
            return [node]
        synthetic = self._build_node(manifest, node.level + 1, node, synthetic=True)
        return [node, synthetic]

    def _build_node(
        self,
        raw: dict[str, Any],
        level: int,
        parent: ResourceNode | None,
        synthetic: bool = False,
        fallback_kind: str | None = None,
        external: bool = False,
    ) -> ResourceNode:
        metadata = raw.get("metadata") or {}
        kind = raw.get("kind") or fallback_kind or "Unknown"
        if synthetic:
            hints = None
        else:
            hints = self._profile.hints(raw, level)
        return ResourceNode(
            id=self._walker.node_id(self._cluster, raw, kind),
            node_type=classify(kind, hints),
            kind=kind,
            group=display_group(raw.get("apiVersion")),
            name=metadata.get("name") or "Unknown",
            namespace=metadata.get("namespace") or None,
            status=normalize(conditions_of(raw), self._profile.ready_types, self._profile.synced_types),
            created_at=metadata.get("creationTimestamp") or "",
            raw=raw,
            level=level,
            parent_id=parent.id if parent is not None else None,
            synthetic=synthetic,
            external=external,
        )

    def _record_failure(self, reference: str, exc: ResolverError, parent: ResourceNode) -> None:
        descendant_failures_total.labels(error=exc.error_code).inc()
        self._graph.failures.append(FailedReference(reference=reference, reason=str(exc), parent_id=parent.id))
        _log.warning(
            "descendant_fetch_failed",
            cluster=self._cluster,
            profile=self._profile.name,
            reference=reference,
            parent_id=parent.id,
            error_code=exc.error_code,
            error=str(exc),
        )
