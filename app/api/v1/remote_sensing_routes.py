"""Remote sensing endpoints: time series of a unit shape, grouped by time span.

Data routes return [{std_date_span, std_date_series: [{std_date, properties}]}];
meta routes return {count, std_date_start, std_date_end, std_terms} per span.
Term routes match observations featuring ANY requested term and keep only
those terms in the returned properties.
"""

from fastapi import APIRouter, Depends, Request

from app.api.v1.deps import (
    RATE_LIMIT, DateRange, get_store, limiter, parse_date_range,
)
from app.schemas.query_schemas import SpansBody, SummaryResponse, TermsBody
from app.sql_store import SqlStore
from core.query_orchestrator import SummaryBy, build_plan, execute, execute_summary
from core.spatial_predicates import ShapeKey

router = APIRouter(prefix="/api/v1/rs", tags=["remote sensing"])

DATASET = "unit_shapes"


def _plan(geometry_hash: str, dates: DateRange, **kwargs):
    return build_plan(
        DATASET,
        spatial=ShapeKey(geometry_hash),
        start_date=dates.start_date,
        end_date=dates.end_date,
        group="span",
        **kwargs,
    )


@router.get("/data/{geometry_hash}")
@limiter.limit(RATE_LIMIT)
def shape_data(
    request: Request,
    geometry_hash: str,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """All observations of the shape, optionally within a date range."""
    return execute(_plan(geometry_hash, dates), store).payload


@router.post("/data/span/{geometry_hash}")
@limiter.limit(RATE_LIMIT)
def shape_data_by_span(
    request: Request,
    geometry_hash: str,
    body: SpansBody,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Observations of the shape restricted to the requested spans (day, month, year)."""
    plan = _plan(geometry_hash, dates, spans=body.std_date_span)
    return execute(plan, store).payload


@router.post("/data/terms/{geometry_hash}")
@limiter.limit(RATE_LIMIT)
def shape_data_by_terms(
    request: Request,
    geometry_hash: str,
    body: TermsBody,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    plan = _plan(geometry_hash, dates, terms=body.std_terms, mode="ANY", project_terms=True)
    return execute(plan, store).payload


@router.get("/meta/spans/{geometry_hash}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def shape_spans(
    request: Request,
    geometry_hash: str,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Count, date range and terms per time span."""
    return execute_summary(_plan(geometry_hash, dates), store, by=SummaryBy.SPAN)


@router.get("/meta/terms/{geometry_hash}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def shape_terms(
    request: Request,
    geometry_hash: str,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Overall count, date range and terms of the shape's observations."""
    return execute_summary(_plan(geometry_hash, dates), store, by=SummaryBy.ALL)


@router.post("/meta/terms/{geometry_hash}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def shape_terms_by_span(
    request: Request,
    geometry_hash: str,
    body: TermsBody,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Per-span summaries of the observations featuring ANY of the requested terms."""
    plan = _plan(geometry_hash, dates, terms=body.std_terms, mode="ANY")
    return execute_summary(plan, store, by=SummaryBy.SPAN)
