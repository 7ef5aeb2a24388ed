"""Species occurrence endpoints: filter occurrence locations by species and space."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from app.api.v1.deps import RATE_LIMIT, Paging, get_store, limiter, parse_paging
from app.schemas.query_schemas import OccurrenceBody
from app.sql_store import SqlStore
from core.errors import ValidationError
from core.query_orchestrator import build_plan, execute
from core.spatial_predicates import Contains, DistanceRange, Intersects, ShapeKey

router = APIRouter(prefix="/api/v1/occur", tags=["occurrences"])

DATASET = "species_occurrences"


def _reference(body: OccurrenceBody) -> dict:
    if body.geometry is None:
        raise ValidationError("Reference geometry is required", field="geometry")
    return body.geometry


@router.post("/sp/{which}")
@limiter.limit(RATE_LIMIT)
def occurrences_by_species(
    request: Request,
    body: OccurrenceBody,
    which: str,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Occurrences featuring ALL or ANY of the species; an empty list returns all."""
    plan = build_plan(
        DATASET, terms=body.species_list, mode=which, shape="DATA",
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/dist/{min_distance}/{max_distance}/{which}")
@limiter.limit(RATE_LIMIT)
def occurrences_by_distance(
    request: Request,
    body: OccurrenceBody,
    which: str,
    min_distance: float = Path(..., ge=0, description="Metres"),
    max_distance: float = Path(..., ge=0, description="Metres"),
    sort: str = Query("ASC"),
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    plan = build_plan(
        DATASET,
        spatial=DistanceRange(_reference(body), min_distance, max_distance),
        terms=body.species_list, mode=which, shape="DATA",
        sort=sort, start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/contain/{which}")
@limiter.limit(RATE_LIMIT)
def occurrences_contained(
    request: Request,
    body: OccurrenceBody,
    which: str,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    plan = build_plan(
        DATASET, spatial=Contains(_reference(body)),
        terms=body.species_list, mode=which, shape="DATA",
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.post("/intersect/{which}")
@limiter.limit(RATE_LIMIT)
def occurrences_intersecting(
    request: Request,
    body: OccurrenceBody,
    which: str,
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    plan = build_plan(
        DATASET, spatial=Intersects(_reference(body)),
        terms=body.species_list, mode=which, shape="DATA",
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.get("/{geometry_hash}")
@limiter.limit(RATE_LIMIT)
def get_occurrence(request: Request, geometry_hash: str, store: SqlStore = Depends(get_store)):
    plan = build_plan(DATASET, spatial=ShapeKey(geometry_hash), shape="DATA")
    records = execute(plan, store).payload
    if not records:
        raise HTTPException(404, f"Occurrence '{geometry_hash}' not found")
    return records[0]
