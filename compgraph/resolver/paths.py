"""REST path construction for Kubernetes-style objects.

The upstream API locates an object by group, version, scope and the plural
resource name, with the core group living under ``/api`` instead of
``/apis``. Plural names come from :class:`Pluralizer`, whose exception table
is explicit and extendable.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import quote, urlencode

from compgraph.models.resources import CORE_GROUP, ObjectReference, split_api_version

DEFAULT_PLURAL_EXCEPTIONS: Mapping[str, str] = {
    "ingress": "ingresses",
    "proxy": "proxies",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
}


class Pluralizer:
    """Lower-cases a kind and maps it to its plural resource name.

    Args:
        exceptions: Extra ``singular -> plural`` entries, merged over the
                    defaults. Keys are matched case-insensitively.
    """

    def __init__(self, exceptions: Mapping[str, str] | None = None) -> None:
        self._exceptions = dict(DEFAULT_PLURAL_EXCEPTIONS)
        for singular, plural in (exceptions or {}).items():
            self._exceptions[singular.lower()] = plural.lower()

    def __call__(self, kind: str) -> str:
        lowered = kind.lower()
        return self._exceptions.get(lowered, f"{lowered}s")

    def with_exceptions(self, exceptions: Mapping[str, str]) -> Pluralizer:
        """Return a new pluralizer with *exceptions* added."""
        return Pluralizer({**self._exceptions, **exceptions})


def is_composite_kind(kind: str) -> bool:
    """Composite resources of the v1 model are never namespaced."""
    return kind.startswith("Composite") or kind.endswith("Composite")


def _prefix(group: str, version: str) -> str:
    if group == CORE_GROUP:
        return f"/api/{version}"
    return f"/apis/{group}/{version}"


def collection_path(api_version: str, plural: str, namespace: str | None) -> str:
    """Path of the collection holding objects of one type."""
    group, version = split_api_version(api_version)
    prefix = _prefix(group, version)
    if namespace:
        return f"{prefix}/namespaces/{quote(namespace, safe='')}/{plural}"
    return f"{prefix}/{plural}"


def build_path(ref: ObjectReference, namespace: str | None, pluralizer: Pluralizer) -> str:
    """Path of a single object.

    *namespace* is passed separately from ``ref.namespace`` because the
    resolver decides the scope to try (see ``ObjectResolver.resolve``).
    """
    plural = ref.plural or pluralizer(ref.kind)
    base = collection_path(ref.api_version, plural, namespace)
    return f"{base}/{quote(ref.name, safe='')}"


def label_selector(labels: Mapping[str, str]) -> str:
    """Render ``{k: v}`` as a ``k=v,k2=v2`` selector string."""
    return ",".join(f"{key}={value}" for key, value in labels.items())


def build_list_path(
    api_version: str,
    plural: str,
    namespace: str | None,
    labels: Mapping[str, str] | None = None,
    field_selector: str | None = None,
) -> str:
    """Collection path with URL-encoded label and field selectors."""
    path = collection_path(api_version, plural, namespace)
    params: dict[str, str] = {}
    if labels:
        params["labelSelector"] = label_selector(labels)
    if field_selector:
        params["fieldSelector"] = field_selector
    if params:
        return f"{path}?{urlencode(params)}"
    return path
