"""Pydantic request/response models for the REST API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from compgraph.models.roots import ResourceRoot


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing route."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    version: str


class ResourcesRequest(BaseModel):
    """Body of ``POST /crossplane/resources``: any Crossplane object."""

    cluster: str = Field(min_length=1)
    name: str = Field(min_length=1)
    group: str = Field(min_length=1)
    version: str = Field(min_length=1)
    plural: str = Field(min_length=1)
    namespace: str | None = None
    kind: str | None = None

    def to_root(self) -> ResourceRoot:
        return ResourceRoot(
            cluster=self.cluster,
            name=self.name,
            group=self.group,
            version=self.version,
            plural=self.plural,
            namespace=self.namespace or None,
            kind=self.kind or None,
        )


class ResourcesResponse(BaseModel):
    """Classified nodes, plus supporting definition objects for KRO roots."""

    resources: list[dict[str, Any]]
    supportingResources: list[dict[str, Any]] = Field(default_factory=list)  # noqa: N815
    complete: bool = True


class GraphResponse(BaseModel):
    """Raw resolved documents in discovery order."""

    resources: list[dict[str, Any]]
    complete: bool = True


class EventsResponse(BaseModel):
    events: list[dict[str, Any]]
