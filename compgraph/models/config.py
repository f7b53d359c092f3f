"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubernetesProxyConfig:
    """Upstream Kubernetes proxy configuration."""

    url: str = "http://localhost:7007/api/kubernetes/proxy"
    token: str = ""
    cluster_header: str = "Backstage-Kubernetes-Cluster"
    timeout_seconds: float = 10.0
    verify_tls: bool = True


@dataclass
class ResolverConfig:
    """Graph walker configuration."""

    max_fanout: int = 8
    deadline_seconds: float = 30.0
    qualified_fallback_ids: bool = False
    plural_exceptions: dict[str, str] = field(default_factory=dict)


@dataclass
class CatalogConfig:
    """Catalog annotation conventions."""

    annotation_prefix: str = "terasky.backstage.io"
    url: str = ""
    token: str = ""


@dataclass
class AuthConfig:
    """Static permission policy."""

    denied_permissions: frozenset[str] = frozenset()


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class CompGraphConfig:
    """Top-level compgraph configuration."""

    proxy: KubernetesProxyConfig = field(default_factory=KubernetesProxyConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
