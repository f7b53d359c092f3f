"""API route handlers.

Routes are thin: check permissions, build a root seed from the request and
hand it to :class:`~compgraph.service.ResourceGraphService`. Resolver errors
propagate to the exception handlers registered in :mod:`compgraph.api.app`.
"""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from compgraph.api import auth
from compgraph.api.schemas import (
    ErrorResponse,
    EventsResponse,
    GraphResponse,
    HealthResponse,
    ResourcesRequest,
    ResourcesResponse,
)
from compgraph.models.roots import ClaimRoot, CompositeRoot, InstanceRoot, Scope
from compgraph.service import ResourceGraphService

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


def get_service(request: Request) -> ResourceGraphService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    from compgraph import __version__

    return HealthResponse(version=__version__)


# ---------------------------------------------------------------------------
# Crossplane
# ---------------------------------------------------------------------------


@router.post(
    "/crossplane/resources",
    response_model=ResourcesResponse,
    dependencies=[Depends(auth.require(auth.CLAIMS_LIST, auth.COMPOSITES_LIST, auth.MANAGED_LIST))],
)
async def crossplane_resources(
    body: ResourcesRequest,
    service: ResourceGraphService = Depends(get_service),
) -> ResourcesResponse:
    """Classified nodes for a Crossplane object; claims are expanded."""
    resolution = await service.get_resources(body.to_root())
    return ResourcesResponse(**resolution.resources_payload())


@router.get(
    "/crossplane/graph",
    response_model=GraphResponse,
    dependencies=[Depends(auth.require(auth.CROSSPLANE_GRAPH_SHOW))],
)
async def crossplane_graph(
    cluster: str = Query(min_length=1),
    namespace: str = Query(min_length=1),
    name: str = Query(min_length=1),
    group: str = Query(min_length=1),
    version: str = Query(min_length=1),
    plural: str = Query(min_length=1),
    service: ResourceGraphService = Depends(get_service),
) -> GraphResponse:
    """Raw documents of a claim, its composite and managed resources."""
    root = ClaimRoot(cluster=cluster, namespace=namespace, name=name, group=group, version=version, plural=plural)
    resolution = await service.get_resource_graph(root)
    return GraphResponse(**resolution.graph_payload())


@router.get(
    "/crossplane/v2/graph",
    response_model=GraphResponse,
    dependencies=[Depends(auth.require(auth.CROSSPLANE_GRAPH_SHOW))],
)
async def crossplane_v2_graph(
    cluster: str = Query(min_length=1),
    name: str = Query(min_length=1),
    group: str = Query(min_length=1),
    version: str = Query(min_length=1),
    plural: str = Query(min_length=1),
    scope: Scope = Query(default=Scope.CLUSTER),
    namespace: str | None = Query(default=None),
    service: ResourceGraphService = Depends(get_service),
) -> GraphResponse:
    """Raw documents of a v2 composite and its (nested) managed resources."""
    root = CompositeRoot(
        cluster=cluster,
        name=name,
        group=group,
        version=version,
        plural=plural,
        scope=scope,
        namespace=namespace or None,
    )
    resolution = await service.get_v2_resource_graph(root)
    return GraphResponse(**resolution.graph_payload())


@router.get("/crossplane/events", response_model=EventsResponse)
async def crossplane_events(
    request: Request,
    cluster: str = Query(min_length=1),
    namespace: str = Query(min_length=1),
    name: str = Query(min_length=1),
    kind: str = Query(min_length=1),
    resource_type: Literal["claim", "composite", "managed", "additional"] = Query(
        default="managed", alias="resourceType"
    ),
    service: ResourceGraphService = Depends(get_service),
) -> EventsResponse:
    await auth.check(request, [auth.CROSSPLANE_EVENT_PERMISSIONS[resource_type]])
    events = await service.get_events(cluster, namespace, name, kind)
    return EventsResponse(events=events)


# ---------------------------------------------------------------------------
# KRO
# ---------------------------------------------------------------------------


def instance_root(
    cluster: str = Query(min_length=1),
    namespace: str = Query(min_length=1),
    name: str = Query(min_length=1),
    rgd_name: str = Query(min_length=1, alias="rgdName"),
    rgd_id: str = Query(min_length=1, alias="rgdId"),
    instance_uid: str = Query(min_length=1, alias="instanceUid"),
    crd_name: str | None = Query(default=None, alias="crdName"),
    sub_resources: str | None = Query(default=None, alias="subResources"),
) -> InstanceRoot:
    return InstanceRoot(
        cluster=cluster,
        namespace=namespace,
        instance_name=name,
        instance_uid=instance_uid,
        rgd_name=rgd_name,
        rgd_id=rgd_id,
        crd_name=crd_name or None,
        sub_resources=sub_resources or None,
    )


@router.get(
    "/kro/resources",
    response_model=ResourcesResponse,
    dependencies=[Depends(auth.require(auth.INSTANCES_LIST, auth.RGDS_LIST, auth.RESOURCES_LIST))],
)
async def kro_resources(
    root: InstanceRoot = Depends(instance_root),
    service: ResourceGraphService = Depends(get_service),
) -> ResourcesResponse:
    """Classified instance nodes with the RGD and CRD as supporting resources."""
    resolution = await service.get_instance_resources(root)
    return ResourcesResponse(**resolution.resources_payload())


@router.get(
    "/kro/graph",
    response_model=GraphResponse,
    dependencies=[Depends(auth.require(auth.KRO_GRAPH_SHOW))],
)
async def kro_graph(
    root: InstanceRoot = Depends(instance_root),
    service: ResourceGraphService = Depends(get_service),
) -> GraphResponse:
    """Raw ``[RGD, CRD, instance, ...]`` documents."""
    resolution = await service.get_instance_resources(root)
    return GraphResponse(**resolution.graph_payload())


@router.get("/kro/events", response_model=EventsResponse)
async def kro_events(
    request: Request,
    cluster: str = Query(min_length=1),
    namespace: str = Query(min_length=1),
    name: str = Query(min_length=1),
    kind: str = Query(min_length=1),
    resource_type: Literal["instance", "rgd", "resource"] = Query(default="resource", alias="resourceType"),
    service: ResourceGraphService = Depends(get_service),
) -> EventsResponse:
    await auth.check(request, [auth.KRO_EVENT_PERMISSIONS[resource_type]])
    events = await service.get_events(cluster, namespace, name, kind)
    return EventsResponse(events=events)


# ---------------------------------------------------------------------------
# Catalog entities
# ---------------------------------------------------------------------------


@router.get("/entities/{name}/graph", response_model=GraphResponse)
async def entity_graph(
    name: str,
    request: Request,
    service: ResourceGraphService = Depends(get_service),
) -> GraphResponse | JSONResponse:
    """Locate the root of a catalog entity by name and return its raw graph."""
    catalog = request.app.state.catalog
    if catalog is None:
        return JSONResponse(
            status_code=501,
            content=ErrorResponse(error="CATALOG_DISABLED", detail="No catalog URL is configured.").model_dump(),
        )

    entities = await catalog.find_by_name(name)
    root = request.app.state.locator.locate(entities, name)
    _log.debug("entity_root_located", entity=name, root_type=type(root).__name__)

    if isinstance(root, InstanceRoot):
        await auth.check(request, [auth.KRO_GRAPH_SHOW])
        resolution = await service.get_instance_resources(root)
    elif isinstance(root, CompositeRoot):
        await auth.check(request, [auth.CROSSPLANE_GRAPH_SHOW])
        resolution = await service.get_v2_resource_graph(root)
    else:
        await auth.check(request, [auth.CROSSPLANE_GRAPH_SHOW])
        resolution = await service.get_resource_graph(root)
    return GraphResponse(**resolution.graph_payload())
