"""Tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from compgraph.config import load_config


class TestLoadConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in list(__import__("os").environ):
            if key.startswith("COMPGRAPH_"):
                monkeypatch.delenv(key)
        config = load_config()
        assert config.proxy.url == "http://localhost:7007/api/kubernetes/proxy"
        assert config.proxy.cluster_header == "Backstage-Kubernetes-Cluster"
        assert config.resolver.max_fanout == 8
        assert config.resolver.deadline_seconds == 30.0
        assert not config.resolver.qualified_fallback_ids
        assert config.catalog.annotation_prefix == "terasky.backstage.io"
        assert config.catalog.url == ""
        assert config.auth.denied_permissions == frozenset()
        assert config.log.level == "info"

    def test_proxy_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_PROXY_URL", "https://backstage.example.com/api/kubernetes/proxy/")
        monkeypatch.setenv("COMPGRAPH_PROXY_TOKEN", "s3cret")
        monkeypatch.setenv("COMPGRAPH_PROXY_VERIFY_TLS", "false")
        config = load_config()
        assert config.proxy.url == "https://backstage.example.com/api/kubernetes/proxy"
        assert config.proxy.token == "s3cret"
        assert not config.proxy.verify_tls

    def test_invalid_proxy_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_PROXY_URL", "ftp://nope")
        with pytest.raises(ValueError):
            load_config()

    @pytest.mark.parametrize(("raw", "expected"), [("0", 1), ("16", 16), ("1000", 64)])
    def test_fanout_is_clamped(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: int) -> None:
        monkeypatch.setenv("COMPGRAPH_RESOLVER_MAX_FANOUT", raw)
        assert load_config().resolver.max_fanout == expected

    def test_plural_exceptions(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_RESOLVER_PLURAL_EXCEPTIONS", "Policy=Policies, gateway=gatewayz")
        assert load_config().resolver.plural_exceptions == {"policy": "policies", "gateway": "gatewayz"}

    def test_malformed_plural_exception(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_RESOLVER_PLURAL_EXCEPTIONS", "policy")
        with pytest.raises(ValueError):
            load_config()

    def test_denied_permissions(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_DENIED_PERMISSIONS", "kro.*.show-events, crossplane.claims.list")
        assert load_config().auth.denied_permissions == frozenset({"kro.*.show-events", "crossplane.claims.list"})

    def test_catalog_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_CATALOG_URL", "http://backstage:7007/api/catalog/")
        assert load_config().catalog.url == "http://backstage:7007/api/catalog"

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_LOG_LEVEL", "chatty")
        with pytest.raises(ValueError):
            load_config()

    def test_qualified_fallback_ids(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMPGRAPH_RESOLVER_QUALIFIED_FALLBACK_IDS", "true")
        assert load_config().resolver.qualified_fallback_ids
