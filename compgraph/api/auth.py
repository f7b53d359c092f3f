"""Permission gate for the REST API.

Every route declares the permissions it needs through :func:`require`; the
configured :class:`Authorizer` is asked before any upstream call is made.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence
from fnmatch import fnmatchcase
from typing import Protocol

import structlog
from fastapi import Request

_log = structlog.get_logger(component="api.auth")

# Crossplane
CLAIMS_LIST = "crossplane.claims.list"
CLAIMS_SHOW_EVENTS = "crossplane.claims.show-events"
COMPOSITES_LIST = "crossplane.composite-resources.list"
COMPOSITES_SHOW_EVENTS = "crossplane.composite-resources.show-events"
MANAGED_LIST = "crossplane.managed-resources.list"
MANAGED_SHOW_EVENTS = "crossplane.managed-resources.show-events"
ADDITIONAL_SHOW_EVENTS = "crossplane.additional-resources.show-events"
CROSSPLANE_GRAPH_SHOW = "crossplane.resource-graph.show"

# KRO
INSTANCES_LIST = "kro.instances.list"
INSTANCES_SHOW_EVENTS = "kro.instances.show-events"
RGDS_LIST = "kro.rgds.list"
RGDS_SHOW_EVENTS = "kro.rgds.show-events"
RESOURCES_LIST = "kro.resources.list"
RESOURCES_SHOW_EVENTS = "kro.resources.show-events"
KRO_GRAPH_SHOW = "kro.resource-graph.show"

CROSSPLANE_EVENT_PERMISSIONS = {
    "claim": CLAIMS_SHOW_EVENTS,
    "composite": COMPOSITES_SHOW_EVENTS,
    "managed": MANAGED_SHOW_EVENTS,
    "additional": ADDITIONAL_SHOW_EVENTS,
}
KRO_EVENT_PERMISSIONS = {
    "instance": INSTANCES_SHOW_EVENTS,
    "rgd": RGDS_SHOW_EVENTS,
    "resource": RESOURCES_SHOW_EVENTS,
}


class PermissionDenied(Exception):
    """The authorizer refused at least one required permission."""

    def __init__(self, permissions: Sequence[str]) -> None:
        super().__init__(f"Permission denied: {', '.join(permissions)}")
        self.permissions = list(permissions)


class Authorizer(Protocol):
    """Decides whether the current caller holds every listed permission."""

    async def authorize(self, permissions: Sequence[str]) -> bool: ...


class StaticPolicy:
    """Allows everything except the configured deny list.

    Deny entries are permission names or shell-style patterns such as
    ``kro.*.show-events``.
    """

    def __init__(self, denied: Iterable[str] = ()) -> None:
        self._denied = frozenset(denied)

    def denies(self, permission: str) -> bool:
        return any(fnmatchcase(permission, pattern) for pattern in self._denied)

    async def authorize(self, permissions: Sequence[str]) -> bool:
        return not any(self.denies(permission) for permission in permissions)


async def check(request: Request, permissions: Sequence[str]) -> None:
    """Ask the app's authorizer for *permissions*.

    Raises:
        PermissionDenied: the authorizer refused.
    """
    authorizer: Authorizer = request.app.state.authorizer
    if not await authorizer.authorize(permissions):
        _log.info("permission_denied", path=str(request.url.path), permissions=list(permissions))
        raise PermissionDenied(permissions)


def require(*permissions: str) -> Callable[[Request], Awaitable[None]]:
    """Route dependency demanding every permission in *permissions*."""

    async def _dependency(request: Request) -> None:
        await check(request, permissions)

    return _dependency
