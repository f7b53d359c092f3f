"""Root locator: catalog entity annotations -> root seeds.

The catalog ingests Crossplane claims/composites and KRO instances as
entities and records how to find the underlying object in annotations:

    crossplane.io/claim-{name,group,version,plural}          v1 claims
    crossplane.io/composite-{name,group,version,plural,namespace}
    crossplane.io/crossplane-scope                           v2 composites
    <prefix>/kro-{rgd-name,rgd-id,instance-uid,...}          KRO instances
    backstage.io/managed-by-location = "<type>: <cluster>"   every entity

A lookup by entity name must match exactly one entity.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from compgraph.models.errors import Ambiguous, InvalidReference, NotFound, UpstreamError
from compgraph.models.roots import ClaimRoot, CompositeRoot, InstanceRoot, Root, Scope

_log = structlog.get_logger(component="catalog")

DEFAULT_ANNOTATION_PREFIX = "terasky.backstage.io"
MANAGED_BY_LOCATION = "backstage.io/managed-by-location"
LABEL_SELECTOR = "backstage.io/kubernetes-label-selector"
CLAIM_NAMESPACE_SELECTOR = "crossplane.io/claim-namespace"


class AnnotationReader:
    """Reads prefixed annotations, falling back to the default prefix."""

    def __init__(self, annotations: Mapping[str, str] | None, prefix: str = DEFAULT_ANNOTATION_PREFIX) -> None:
        self._annotations = annotations or {}
        self._prefix = prefix

    def raw(self, key: str) -> str | None:
        return self._annotations.get(key) or None

    def get(self, key: str) -> str | None:
        value = self._annotations.get(f"{self._prefix}/{key}")
        if not value and self._prefix != DEFAULT_ANNOTATION_PREFIX:
            value = self._annotations.get(f"{DEFAULT_ANNOTATION_PREFIX}/{key}")
        return value or None


def cluster_of(annotations: Mapping[str, str]) -> str | None:
    """Cluster name from ``backstage.io/managed-by-location`` (``"url: my-cluster"``)."""
    location = annotations.get(MANAGED_BY_LOCATION) or ""
    _, sep, cluster = location.partition(": ")
    return cluster.strip() or None if sep else None


def _selector_value(selector: str | None, key: str) -> str | None:
    for term in (selector or "").split(","):
        name, sep, value = term.partition("=")
        if sep and name.strip() == key:
            return value.strip() or None
    return None


def _require(values: Mapping[str, str | None], entity_name: str) -> dict[str, str]:
    missing = sorted(key for key, value in values.items() if not value)
    if missing:
        raise InvalidReference(f"Entity '{entity_name}' is missing annotations: {', '.join(missing)}")
    return {key: str(value) for key, value in values.items()}


def root_for_entity(entity: Mapping[str, Any], prefix: str = DEFAULT_ANNOTATION_PREFIX) -> Root:
    """Build the root seed an entity's annotations describe.

    Raises:
        InvalidReference: no recognised annotation family, or required keys absent.
    """
    metadata = entity.get("metadata") or {}
    annotations: Mapping[str, str] = metadata.get("annotations") or {}
    entity_name = str(metadata.get("name") or "<unnamed>")
    reader = AnnotationReader(annotations, prefix)
    cluster = cluster_of(annotations)

    if reader.get("kro-rgd-name"):
        values = _require(
            {
                "cluster": cluster,
                "kro-rgd-name": reader.get("kro-rgd-name"),
                "kro-rgd-id": reader.get("kro-rgd-id"),
                "kro-instance-uid": reader.get("kro-instance-uid"),
            },
            entity_name,
        )
        return InstanceRoot(
            cluster=values["cluster"],
            namespace=reader.get("kro-instance-namespace") or metadata.get("namespace") or "default",
            instance_name=reader.get("kro-instance-name") or entity_name,
            instance_uid=values["kro-instance-uid"],
            rgd_name=values["kro-rgd-name"],
            rgd_id=values["kro-rgd-id"],
            crd_name=reader.get("kro-rgd-crd-name"),
            sub_resources=reader.get("kro-sub-resources"),
        )

    if reader.raw("crossplane.io/claim-name"):
        namespace = _selector_value(reader.raw(LABEL_SELECTOR), CLAIM_NAMESPACE_SELECTOR) or metadata.get(
            "namespace"
        )
        values = _require(
            {
                "cluster": cluster,
                "namespace": namespace,
                "crossplane.io/claim-name": reader.raw("crossplane.io/claim-name"),
                "crossplane.io/claim-group": reader.raw("crossplane.io/claim-group"),
                "crossplane.io/claim-version": reader.raw("crossplane.io/claim-version"),
                "crossplane.io/claim-plural": reader.raw("crossplane.io/claim-plural"),
            },
            entity_name,
        )
        return ClaimRoot(
            cluster=values["cluster"],
            namespace=values["namespace"],
            name=values["crossplane.io/claim-name"],
            group=values["crossplane.io/claim-group"],
            version=values["crossplane.io/claim-version"],
            plural=values["crossplane.io/claim-plural"],
        )

    if reader.raw("crossplane.io/composite-name"):
        values = _require(
            {
                "cluster": cluster,
                "crossplane.io/composite-name": reader.raw("crossplane.io/composite-name"),
                "crossplane.io/composite-group": reader.raw("crossplane.io/composite-group"),
                "crossplane.io/composite-version": reader.raw("crossplane.io/composite-version"),
                "crossplane.io/composite-plural": reader.raw("crossplane.io/composite-plural"),
            },
            entity_name,
        )
        scope_value = reader.raw("crossplane.io/crossplane-scope") or Scope.CLUSTER.value
        try:
            scope = Scope(scope_value)
        except ValueError as exc:
            raise InvalidReference(f"Entity '{entity_name}' has unknown scope {scope_value!r}") from exc
        return CompositeRoot(
            cluster=values["cluster"],
            name=values["crossplane.io/composite-name"],
            group=values["crossplane.io/composite-group"],
            version=values["crossplane.io/composite-version"],
            plural=values["crossplane.io/composite-plural"],
            scope=scope,
            namespace=reader.raw("crossplane.io/composite-namespace") or metadata.get("namespace"),
        )

    raise InvalidReference(f"Entity '{entity_name}' carries no Crossplane or KRO annotations")


class RootLocator:
    """Picks the single entity named *name* and turns it into a root seed."""

    def __init__(self, annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX) -> None:
        self._prefix = annotation_prefix

    def locate(self, entities: Iterable[Mapping[str, Any]], name: str) -> Root:
        """Raises NotFound for zero matches and Ambiguous for more than one."""
        matches = [e for e in entities if (e.get("metadata") or {}).get("name") == name]
        if not matches:
            raise NotFound(f"catalog:{name}", f"No catalog entity named '{name}'")
        if len(matches) > 1:
            raise Ambiguous(name, len(matches))
        return root_for_entity(matches[0], self._prefix)


class CatalogClient:
    """Looks entities up by name in a Backstage-style catalog API.

    Args:
        base_url:    Catalog API root, e.g. ``http://backstage:7007/api/catalog``.
        token:       Bearer token sent with every request.
        http_client: Optional pre-built client (tests inject a MockTransport).
    """

    def __init__(self, base_url: str, token: str = "", http_client: httpx.AsyncClient | None = None) -> None:
        self._token = token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=10.0)

    async def find_by_name(self, name: str) -> list[dict[str, Any]]:
        query = urlencode({"filter": f"metadata.name={name}"})
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            response = await self._client.get(f"/entities/by-query?{query}", headers=headers)
        except httpx.HTTPError as exc:
            _log.warning("catalog_http_error", name=name, error=str(exc))
            raise UpstreamError(0, str(exc), "/entities/by-query") from exc
        if not response.is_success:
            _log.warning("catalog_non_2xx_response", name=name, status_code=response.status_code)
            raise UpstreamError(response.status_code, response.text[:200], "/entities/by-query")
        try:
            body = response.json()
        except ValueError as exc:
            _log.warning("catalog_invalid_json", name=name, status_code=response.status_code)
            raise UpstreamError(response.status_code, response.text[:200], "/entities/by-query") from exc
        items = (body.get("items") or []) if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise UpstreamError(response.status_code, "catalog response holds no entity list", "/entities/by-query")
        return [item for item in items if isinstance(item, dict)]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
