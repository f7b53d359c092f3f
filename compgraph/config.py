"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from compgraph.models.config import (
    APIConfig,
    AuthConfig,
    CatalogConfig,
    CompGraphConfig,
    KubernetesProxyConfig,
    LogConfig,
    ResolverConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"COMPGRAPH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _env_list(key: str) -> list[str]:
    return [item.strip() for item in _env(key, "").split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_url(value: str) -> str:
    if not re.match(r"^https?://", value):
        raise ValueError(f"Invalid url: {value}")
    return value.rstrip("/")


def _parse_plural_exceptions(items: list[str]) -> dict[str, str]:
    """Parse ``singular=plural`` pairs, e.g. ``policy=policies``."""
    exceptions: dict[str, str] = {}
    for item in items:
        singular, sep, plural = item.partition("=")
        if not sep or not singular.strip() or not plural.strip():
            raise ValueError(f"Invalid plural exception: {item!r}. Expected singular=plural")
        exceptions[singular.strip().lower()] = plural.strip().lower()
    return exceptions


def load_config() -> CompGraphConfig:
    """Load configuration from COMPGRAPH_* environment variables."""
    return CompGraphConfig(
        proxy=KubernetesProxyConfig(
            url=_validate_url(_env("PROXY_URL", "http://localhost:7007/api/kubernetes/proxy")),
            token=_env("PROXY_TOKEN", ""),
            cluster_header=_env("PROXY_CLUSTER_HEADER", "Backstage-Kubernetes-Cluster"),
            timeout_seconds=_env_float("PROXY_TIMEOUT", 10.0, min_val=1.0),
            verify_tls=_env_bool("PROXY_VERIFY_TLS", True),
        ),
        resolver=ResolverConfig(
            max_fanout=_env_int("RESOLVER_MAX_FANOUT", 8, min_val=1, max_val=64),
            deadline_seconds=_env_float("RESOLVER_DEADLINE", 30.0, min_val=1.0),
            qualified_fallback_ids=_env_bool("RESOLVER_QUALIFIED_FALLBACK_IDS", False),
            plural_exceptions=_parse_plural_exceptions(_env_list("RESOLVER_PLURAL_EXCEPTIONS")),
        ),
        catalog=CatalogConfig(
            annotation_prefix=_env("ANNOTATION_PREFIX", "terasky.backstage.io"),
            url=_validate_url(_env("CATALOG_URL")) if _env("CATALOG_URL") else "",
            token=_env("CATALOG_TOKEN", ""),
        ),
        auth=AuthConfig(
            denied_permissions=frozenset(_env_list("DENIED_PERMISSIONS")),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
