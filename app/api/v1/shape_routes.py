"""Unit shape endpoints: genetic conservation unit geometries and descriptors."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from app.api.v1.deps import RATE_LIMIT, Paging, get_store, limiter, parse_paging
from app.schemas.query_schemas import GeometryBody
from app.sql_store import SqlStore
from core.query_orchestrator import DescriptorRange, build_plan, execute
from core.spatial_predicates import Contains, DistanceRange, Intersects, PointAt, ShapeKey

router = APIRouter(prefix="/api/v1/shape", tags=["shape"])

DATASET = "unit_shapes"


@router.get("/click/{lat}/{lon}")
@limiter.limit(RATE_LIMIT)
def shapes_at_point(request: Request, lat: float, lon: float, store: SqlStore = Depends(get_store)):
    """All unit shapes whose geometry contains the coordinates."""
    plan = build_plan(DATASET, spatial=PointAt(lat, lon), shape="DATA")
    return execute(plan, store).payload


@router.get("/topo/{descriptor}/{min_value}/{max_value}")
@limiter.limit(RATE_LIMIT)
def shapes_by_descriptor(
    request: Request,
    descriptor: str = Path(..., description="area, alt, altsd, slope or aspect"),
    min_value: float = Path(...),
    max_value: float = Path(...),
    sort: str = Query("ASC", description="ASC, DESC or NO"),
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Unit shapes whose topographic descriptor falls within [min, max], sorted by it."""
    plan = build_plan(
        DATASET,
        descriptor_range=DescriptorRange(descriptor, min_value, max_value),
        shape="DATA", sort=sort, start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/dist/{min_distance}/{max_distance}")
@limiter.limit(RATE_LIMIT)
def shapes_by_distance(
    request: Request,
    body: GeometryBody,
    min_distance: float = Path(..., ge=0, description="Metres"),
    max_distance: float = Path(..., ge=0, description="Metres"),
    sort: str = Query("ASC"),
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Unit shapes whose centroid lies within the distance range of the reference centroid."""
    plan = build_plan(
        DATASET,
        spatial=DistanceRange(body.geometry, min_distance, max_distance),
        shape="DATA", sort=sort, start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/contain")
@limiter.limit(RATE_LIMIT)
def shapes_contained(
    request: Request,
    body: GeometryBody,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Unit shapes fully enclosed by the reference polygon."""
    plan = build_plan(
        DATASET, spatial=Contains(body.geometry), shape="DATA",
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/intersect")
@limiter.limit(RATE_LIMIT)
def shapes_intersecting(
    request: Request,
    body: GeometryBody,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    plan = build_plan(
        DATASET, spatial=Intersects(body.geometry), shape="DATA",
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.get("/{geometry_hash}")
@limiter.limit(RATE_LIMIT)
def get_shape(request: Request, geometry_hash: str, store: SqlStore = Depends(get_store)):
    """A single unit shape by its geometry hash."""
    plan = build_plan(DATASET, spatial=ShapeKey(geometry_hash), shape="DATA")
    records = execute(plan, store).payload
    if not records:
        raise HTTPException(404, f"Shape '{geometry_hash}' not found")
    return records[0]
