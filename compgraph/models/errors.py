"""Exception taxonomy for graph resolution.

ResolverError      -- base class; the API layer maps subclasses to error codes.
NotFound           -- object absent at the attempted path (404), or no catalog match.
UpstreamError      -- any other non-2xx response or transport failure.
Ambiguous          -- the root locator matched more than one catalog entity.
InvalidReference   -- a reference entry lacks required parts.
ResolutionTimeout  -- the caller deadline expired before the root resolved.
"""

from __future__ import annotations


class ResolverError(Exception):
    """Base class for every error raised while resolving a graph."""

    error_code = "RESOLVER_ERROR"


class NotFound(ResolverError):
    """The object does not exist at the attempted path."""

    error_code = "NOT_FOUND"

    def __init__(self, path: str, detail: str = "") -> None:
        super().__init__(detail or f"Object not found at {path}")
        self.path = path


class UpstreamError(ResolverError):
    """The upstream API answered with a non-2xx, non-404 status.

    ``status`` is 0 when no response was received at all (connect error,
    read timeout).
    """

    error_code = "UPSTREAM_ERROR"

    def __init__(self, status: int, body: str, path: str = "") -> None:
        super().__init__(f"Upstream request to {path or '<unknown>'} failed with status {status}")
        self.status = status
        self.body = body
        self.path = path


class Ambiguous(ResolverError):
    """More than one catalog entity matched a root lookup."""

    error_code = "AMBIGUOUS"

    def __init__(self, name: str, count: int) -> None:
        super().__init__(f"Entity name '{name}' matched {count} entities")
        self.name = name
        self.count = count


class InvalidReference(ResolverError):
    """A reference field is missing required parts or cannot be parsed."""

    error_code = "INVALID_REFERENCE"


class ResolutionTimeout(ResolverError):
    """The caller-supplied deadline expired while the root was being fetched."""

    error_code = "RESOLUTION_TIMEOUT"
