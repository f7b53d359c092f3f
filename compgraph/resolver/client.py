"""Object fetch transport and reference resolution.

KubernetesProxyClient -- authenticated GET against the Kubernetes proxy,
                         mapping responses onto NotFound / UpstreamError.
ObjectResolver        -- turns an ObjectReference into a fetched document,
                         applying the namespaced -> cluster scope fallback.
"""

from __future__ import annotations

import time
from typing import Any, Protocol

import httpx
import structlog

from compgraph.models.config import KubernetesProxyConfig
from compgraph.models.errors import NotFound, UpstreamError
from compgraph.models.resources import ObjectReference
from compgraph.observability.metrics import (
    scope_fallbacks_total,
    upstream_request_duration_seconds,
    upstream_requests_total,
)
from compgraph.resolver.paths import Pluralizer, build_list_path, build_path, is_composite_kind

_log = structlog.get_logger(component="resolver.client")

_BODY_PREVIEW = 500


class TokenProvider(Protocol):
    """Issues a bearer credential scoped to one cluster."""

    async def token(self, cluster: str) -> str: ...


class StaticTokenProvider:
    """Returns the same configured token for every cluster."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def token(self, cluster: str) -> str:
        return self._token


class ObjectFetcher(Protocol):
    """Anything able to GET a path on a cluster and return the JSON document."""

    async def fetch(self, cluster: str, path: str) -> dict[str, Any]: ...


class KubernetesProxyClient:
    """Fetches objects through an HTTP proxy in front of one or more clusters.

    The cluster is selected per request with ``cluster_header``; the token
    comes from *token_provider* and is never cached here.

    Args:
        config:         Proxy URL, cluster header, timeout and TLS settings.
        token_provider: Source of bearer credentials.
        http_client:    Optional pre-built client (tests inject a MockTransport).
    """

    def __init__(
        self,
        config: KubernetesProxyConfig,
        token_provider: TokenProvider,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._token_provider = token_provider
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.url,
            timeout=config.timeout_seconds,
            verify=config.verify_tls,
        )

    async def fetch(self, cluster: str, path: str) -> dict[str, Any]:
        """GET *path* on *cluster* and return the decoded JSON object.

        Raises:
            NotFound:      the proxy answered 404.
            UpstreamError: any other non-2xx answer, a transport failure, or a
                           body that is not a JSON object.
        """
        token = await self._token_provider.token(cluster)
        headers = {
            "Authorization": f"Bearer {token}",
            self._config.cluster_header: cluster,
            "Accept": "application/json",
        }
        t_start = time.monotonic()
        try:
            response = await self._client.get(path, headers=headers)
        except httpx.TimeoutException as exc:
            upstream_requests_total.labels(outcome="error").inc()
            _log.warning("upstream_request_timeout", cluster=cluster, path=path)
            raise UpstreamError(0, str(exc) or "timeout", path) from exc
        except httpx.HTTPError as exc:
            upstream_requests_total.labels(outcome="error").inc()
            _log.warning("upstream_http_error", cluster=cluster, path=path, error=str(exc))
            raise UpstreamError(0, str(exc), path) from exc
        finally:
            upstream_request_duration_seconds.observe(time.monotonic() - t_start)

        if response.status_code == 404:
            upstream_requests_total.labels(outcome="not_found").inc()
            _log.debug("upstream_not_found", cluster=cluster, path=path)
            raise NotFound(path)
        if not response.is_success:
            upstream_requests_total.labels(outcome="error").inc()
            _log.warning(
                "upstream_non_2xx_response",
                cluster=cluster,
                path=path,
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise UpstreamError(response.status_code, response.text[:_BODY_PREVIEW], path)

        try:
            document = response.json()
        except ValueError as exc:
            upstream_requests_total.labels(outcome="error").inc()
            raise UpstreamError(response.status_code, response.text[:_BODY_PREVIEW], path) from exc
        if not isinstance(document, dict):
            upstream_requests_total.labels(outcome="error").inc()
            raise UpstreamError(response.status_code, "response body is not a JSON object", path)

        upstream_requests_total.labels(outcome="ok").inc()
        return document

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class ObjectResolver:
    """Resolves references to documents using an :class:`ObjectFetcher`."""

    def __init__(self, fetcher: ObjectFetcher, pluralizer: Pluralizer | None = None) -> None:
        self._fetcher = fetcher
        self.pluralizer = pluralizer or Pluralizer()

    async def fetch(self, cluster: str, path: str) -> dict[str, Any]:
        return await self._fetcher.fetch(cluster, path)

    async def resolve(
        self,
        cluster: str,
        ref: ObjectReference,
        ambient_namespace: str | None = None,
    ) -> dict[str, Any]:
        """Fetch the object *ref* points at.

        When a namespace is known (the reference's own, else *ambient_namespace*)
        the namespaced path is tried first and a NotFound is retried at cluster
        scope. Other errors are not retried. Composite kinds always use the
        cluster-scoped path.

        Raises:
            NotFound:         the object exists at neither path.
            UpstreamError:    a non-404 failure on the attempted path.
            InvalidReference: the reference's apiVersion cannot be parsed.
        """
        cluster_path = build_path(ref, None, self.pluralizer)
        if is_composite_kind(ref.kind):
            return await self._fetcher.fetch(cluster, cluster_path)

        namespace = ref.namespace or ambient_namespace
        if not namespace:
            return await self._fetcher.fetch(cluster, cluster_path)

        namespaced_path = build_path(ref, namespace, self.pluralizer)
        try:
            return await self._fetcher.fetch(cluster, namespaced_path)
        except NotFound:
            scope_fallbacks_total.inc()
            _log.debug(
                "scope_fallback",
                cluster=cluster,
                kind=ref.kind,
                name=ref.name,
                namespaced_path=namespaced_path,
                cluster_path=cluster_path,
            )
            return await self._fetcher.fetch(cluster, cluster_path)

    async def list_items(self, cluster: str, path: str) -> list[dict[str, Any]]:
        """GET a collection path and return its ``items`` (empty when absent)."""
        document = await self._fetcher.fetch(cluster, path)
        items = document.get("items") or []
        return [item for item in items if isinstance(item, dict)]

    async def events(self, cluster: str, namespace: str, name: str, kind: str) -> list[dict[str, Any]]:
        """List core Events whose involvedObject matches *kind*/*name*."""
        path = build_list_path(
            "v1",
            "events",
            namespace,
            field_selector=f"involvedObject.name={name},involvedObject.kind={kind}",
        )
        return await self.list_items(cluster, path)
