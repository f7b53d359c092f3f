"""Reduce a condition list to ready/synced booleans."""

from __future__ import annotations

from collections.abc import Collection
from typing import Any

from compgraph.models.resources import ResourceStatus

CROSSPLANE_READY = frozenset({"Ready"})
CROSSPLANE_SYNCED = frozenset({"Synced"})
# KRO v0.8+ reports Ready; older releases only InstanceSynced.
KRO_READY = frozenset({"Ready", "InstanceSynced"})
KRO_SYNCED = frozenset({"Synced", "InstanceSynced"})


def conditions_of(obj: dict[str, Any]) -> list[dict[str, Any]]:
    """Return ``status.conditions`` of *obj*, or an empty list when malformed."""
    status = obj.get("status")
    if not isinstance(status, dict):
        return []
    conditions = status.get("conditions")
    if not isinstance(conditions, list):
        return []
    return conditions


def _is_true(conditions: list[dict[str, Any]], types: Collection[str]) -> bool:
    return any(
        isinstance(c, dict) and c.get("type") in types and c.get("status") == "True" for c in conditions
    )


def normalize(
    conditions: list[dict[str, Any]],
    ready_types: Collection[str] = CROSSPLANE_READY,
    synced_types: Collection[str] = CROSSPLANE_SYNCED,
) -> ResourceStatus:
    """Build a :class:`ResourceStatus`; the condition list is kept verbatim."""
    return ResourceStatus(
        ready=_is_true(conditions, ready_types),
        synced=_is_true(conditions, synced_types),
        conditions=conditions,
    )
