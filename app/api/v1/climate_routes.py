"""WorldClim climate endpoints: grid cell selection and statistics.

`what` selects the result: KEY, SHAPE or DATA return the matching cells
(sorted and paginated); MIN, AVG, MAX, STD or VAR return a single
{count, properties} aggregate over every matching cell.
"""

from fastapi import APIRouter, Depends, Path, Query, Request

from app.api.v1.deps import RATE_LIMIT, Paging, get_store, limiter, parse_paging
from app.schemas.query_schemas import GeometryBody
from app.sql_store import SqlStore
from core.query_orchestrator import build_plan, execute
from core.spatial_predicates import Contains, DistanceRange, Intersects, PointAt

router = APIRouter(prefix="/api/v1/worldclim", tags=["climate"])

DATASET = "worldclim"


@router.get("/click/{lat}/{lon}")
@limiter.limit(RATE_LIMIT)
def cell_at_point(request: Request, lat: float, lon: float, store: SqlStore = Depends(get_store)):
    """The climate cell(s) whose bounds contain the coordinates."""
    plan = build_plan(DATASET, spatial=PointAt(lat, lon), shape="DATA")
    return execute(plan, store).payload


@router.post("/dist/{what}/{min_distance}/{max_distance}")
@limiter.limit(RATE_LIMIT)
def cells_by_distance(
    request: Request,
    what: str,
    body: GeometryBody,
    min_distance: float = Path(..., ge=0, description="Metres"),
    max_distance: float = Path(..., ge=0, description="Metres"),
    sort: str = Query("ASC"),
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Cells whose centre lies within the distance range of the reference centroid."""
    plan = build_plan(
        DATASET,
        spatial=DistanceRange(body.geometry, min_distance, max_distance),
        shape=what, sort=sort, start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/contain/{what}")
@limiter.limit(RATE_LIMIT)
def cells_contained(
    request: Request,
    what: str,
    body: GeometryBody,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Cells whose centre lies inside the reference polygon."""
    plan = build_plan(
        DATASET, spatial=Contains(body.geometry), shape=what,
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/intersect/{what}")
@limiter.limit(RATE_LIMIT)
def cells_intersecting(
    request: Request,
    what: str,
    body: GeometryBody,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Cells whose bounds intersect the reference geometry."""
    plan = build_plan(
        DATASET, spatial=Intersects(body.geometry), shape=what,
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload
