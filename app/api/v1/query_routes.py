"""Generic query endpoints over any configured dataset."""

from fastapi import APIRouter, Depends, Query, Request

from app.api.v1.deps import RATE_LIMIT, get_store, limiter
from app.schemas.query_schemas import DatasetResponse, QueryRequest, SummaryResponse
from app.sql_store import SqlStore
from core.datasets import list_datasets
from core.errors import ValidationError
from core.query_orchestrator import (
    DescriptorRange, QueryPlan, SummaryBy, build_plan, execute, execute_summary,
)
from core.spatial_predicates import Contains, DistanceRange, Intersects, PointAt, ShapeKey

router = APIRouter(prefix="/api/v1", tags=["query"])


def _require(value, name: str):
    if value is None:
        raise ValidationError(f"{name} is required for this spatial filter", field=name)
    return value


def spatial_predicate(body: QueryRequest):
    """Build the request's spatial predicate, or None when it has none."""
    kind = (body.spatial or "").strip().lower()
    if not kind:
        return None
    if kind == "click":
        return PointAt(_require(body.lat, "lat"), _require(body.lon, "lon"))
    if kind == "distance":
        return DistanceRange(
            _require(body.geometry, "geometry"),
            _require(body.min_distance, "min_distance"),
            _require(body.max_distance, "max_distance"),
        )
    if kind == "contains":
        return Contains(_require(body.geometry, "geometry"))
    if kind == "intersects":
        return Intersects(_require(body.geometry, "geometry"))
    if kind == "key":
        return ShapeKey(_require(body.geometry_hash, "geometry_hash"))
    raise ValidationError(
        f"Spatial filter must be click, distance, contains, intersects or key, got {body.spatial!r}",
        field="spatial",
    )


def plan_from_request(dataset: str, body: QueryRequest) -> QueryPlan:
    descriptor_range = None
    if body.descriptor:
        descriptor_range = DescriptorRange(body.descriptor, body.descriptor_min, body.descriptor_max)
    return build_plan(
        dataset,
        spatial=spatial_predicate(body),
        terms=body.terms,
        mode=body.which,
        start_date=body.start_date,
        end_date=body.end_date,
        spans=body.spans,
        group=body.group,
        shape=body.what,
        sort=body.sort,
        start=body.start,
        limit=body.limit,
        descriptor_range=descriptor_range,
        project_terms=body.project_terms,
    )


@router.get("/datasets", response_model=list[DatasetResponse])
def datasets():
    """Configured datasets and the descriptors each supports."""
    return [
        DatasetResponse(
            name=d.name,
            title=d.title,
            collection=d.collection,
            observations=d.observations,
            shape_fields=list(d.shape_fields),
            descriptors=sorted(d.descriptors),
        )
        for d in list_datasets()
    ]


@router.post("/query/{dataset}")
@limiter.limit(RATE_LIMIT)
def query(request: Request, dataset: str, body: QueryRequest, store: SqlStore = Depends(get_store)):
    """Run a composed query: spatial, terms, dates, grouping, shape, sort and paging."""
    return execute(plan_from_request(dataset, body), store).payload


@router.post("/query/{dataset}/meta", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def query_meta(
    request: Request,
    dataset: str,
    body: QueryRequest,
    by: SummaryBy = Query(SummaryBy.ALL, description="all, span or area"),
    store: SqlStore = Depends(get_store),
):
    """Count, date range and terms of the observations a query would select."""
    return execute_summary(plan_from_request(dataset, body), store, by=by)
