"""Tests for the proxy transport and the scope-fallback resolver."""

from __future__ import annotations

import json

import httpx
import pytest

from compgraph.models.config import KubernetesProxyConfig
from compgraph.models.errors import NotFound, UpstreamError
from compgraph.models.resources import ObjectReference
from compgraph.resolver.client import KubernetesProxyClient, ObjectResolver, StaticTokenProvider

_PROXY_URL = "http://backstage.test/api/kubernetes/proxy"


def _client(handler, token: str = "secret") -> KubernetesProxyClient:
    config = KubernetesProxyConfig(url=_PROXY_URL)
    http = httpx.AsyncClient(base_url=config.url, transport=httpx.MockTransport(handler))
    return KubernetesProxyClient(config, StaticTokenProvider(token), http_client=http)


def _routes(table: dict[str, httpx.Response], seen: list[str] | None = None):
    """Handler answering by path suffix; unknown paths get a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/kubernetes/proxy")
        if seen is not None:
            seen.append(path)
        return table.get(path, httpx.Response(404, json={"kind": "Status", "code": 404}))

    return handler


# ---------------------------------------------------------------------------
# KubernetesProxyClient
# ---------------------------------------------------------------------------


class TestKubernetesProxyClient:
    async def test_sends_token_and_cluster_header(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"kind": "ConfigMap"})

        client = _client(handler)
        doc = await client.fetch("prod-eu", "/api/v1/namespaces/default/configmaps/app")
        await client.aclose()

        assert doc == {"kind": "ConfigMap"}
        request = captured[0]
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Backstage-Kubernetes-Cluster"] == "prod-eu"
        assert request.url.path == "/api/kubernetes/proxy/api/v1/namespaces/default/configmaps/app"

    async def test_404_raises_not_found(self) -> None:
        client = _client(lambda request: httpx.Response(404, text="not found"))
        with pytest.raises(NotFound) as exc_info:
            await client.fetch("prod", "/api/v1/namespaces/default/secrets/missing")
        assert exc_info.value.path == "/api/v1/namespaces/default/secrets/missing"

    async def test_500_raises_upstream_error_with_body(self) -> None:
        client = _client(lambda request: httpx.Response(500, text="etcd unavailable"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch("prod", "/apis/apps/v1/deployments/web")
        assert exc_info.value.status == 500
        assert exc_info.value.body == "etcd unavailable"

    async def test_403_raises_upstream_error(self) -> None:
        client = _client(lambda request: httpx.Response(403, json={"message": "forbidden"}))
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch("prod", "/apis/apps/v1/deployments/web")
        assert exc_info.value.status == 403

    async def test_transport_error_has_status_zero(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch("prod", "/api/v1/namespaces")
        assert exc_info.value.status == 0

    async def test_non_json_body_is_upstream_error(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>login</html>"))
        with pytest.raises(UpstreamError):
            await client.fetch("prod", "/api/v1/namespaces")

    async def test_json_array_body_is_upstream_error(self) -> None:
        client = _client(lambda request: httpx.Response(200, content=json.dumps([1, 2])))
        with pytest.raises(UpstreamError):
            await client.fetch("prod", "/api/v1/namespaces")


# ---------------------------------------------------------------------------
# ObjectResolver
# ---------------------------------------------------------------------------


class TestObjectResolver:
    async def test_namespaced_hit_needs_one_request(self) -> None:
        seen: list[str] = []
        handler = _routes(
            {"/api/v1/namespaces/team-a/secrets/creds": httpx.Response(200, json={"kind": "Secret"})},
            seen,
        )
        resolver = ObjectResolver(_client(handler))
        ref = ObjectReference("v1", "Secret", "creds")
        doc = await resolver.resolve("prod", ref, "team-a")
        assert doc["kind"] == "Secret"
        assert seen == ["/api/v1/namespaces/team-a/secrets/creds"]

    async def test_not_found_falls_back_to_cluster_scope_once(self) -> None:
        seen: list[str] = []
        handler = _routes(
            {"/apis/s3.aws.upbound.io/v1beta1/buckets/logs": httpx.Response(200, json={"kind": "Bucket"})},
            seen,
        )
        resolver = ObjectResolver(_client(handler))
        ref = ObjectReference("s3.aws.upbound.io/v1beta1", "Bucket", "logs")
        doc = await resolver.resolve("prod", ref, "team-a")
        assert doc["kind"] == "Bucket"
        assert seen == [
            "/apis/s3.aws.upbound.io/v1beta1/namespaces/team-a/buckets/logs",
            "/apis/s3.aws.upbound.io/v1beta1/buckets/logs",
        ]

    async def test_reference_namespace_beats_ambient(self) -> None:
        seen: list[str] = []
        handler = _routes(
            {"/api/v1/namespaces/other/secrets/creds": httpx.Response(200, json={"kind": "Secret"})},
            seen,
        )
        resolver = ObjectResolver(_client(handler))
        ref = ObjectReference("v1", "Secret", "creds", namespace="other")
        await resolver.resolve("prod", ref, "team-a")
        assert seen == ["/api/v1/namespaces/other/secrets/creds"]

    async def test_upstream_error_is_not_retried(self) -> None:
        seen: list[str] = []
        handler = _routes(
            {"/apis/apps/v1/namespaces/team-a/deployments/web": httpx.Response(500, text="boom")},
            seen,
        )
        resolver = ObjectResolver(_client(handler))
        with pytest.raises(UpstreamError):
            await resolver.resolve("prod", ObjectReference("apps/v1", "Deployment", "web"), "team-a")
        assert seen == ["/apis/apps/v1/namespaces/team-a/deployments/web"]

    async def test_missing_at_both_scopes_raises_not_found(self) -> None:
        resolver = ObjectResolver(_client(_routes({})))
        with pytest.raises(NotFound):
            await resolver.resolve("prod", ObjectReference("v1", "Secret", "gone"), "team-a")

    async def test_composite_kind_always_cluster_scoped(self) -> None:
        seen: list[str] = []
        handler = _routes(
            {"/apis/example.org/v1/compositedatabases/db-x1": httpx.Response(200, json={"kind": "CompositeDatabase"})},
            seen,
        )
        resolver = ObjectResolver(_client(handler))
        ref = ObjectReference("example.org/v1", "CompositeDatabase", "db-x1", namespace="team-a")
        await resolver.resolve("prod", ref, "team-a")
        assert seen == ["/apis/example.org/v1/compositedatabases/db-x1"]

    async def test_no_namespace_goes_straight_to_cluster(self) -> None:
        seen: list[str] = []
        handler = _routes({"/api/v1/namespaces/team-a": httpx.Response(200, json={"kind": "Namespace"})}, seen)
        resolver = ObjectResolver(_client(handler))
        await resolver.resolve("prod", ObjectReference("v1", "Namespace", "team-a"))
        assert seen == ["/api/v1/namespaces/team-a"]

    async def test_events_use_involved_object_field_selector(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"items": [{"reason": "Created"}, "junk"]})

        resolver = ObjectResolver(_client(handler))
        events = await resolver.events("prod", "team-a", "db", "DatabaseClaim")
        assert events == [{"reason": "Created"}]
        request = captured[0]
        assert request.url.path.endswith("/api/v1/namespaces/team-a/events")
        assert request.url.params["fieldSelector"] == "involvedObject.name=db,involvedObject.kind=DatabaseClaim"
