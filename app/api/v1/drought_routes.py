"""Drought observatory endpoints.

Source areas overlap: a coordinate is covered by a coarse area and by finer
ones inside it. Data is returned per area (coarsest first) or per date, with
the properties of all areas on that date deep-merged, finest area winning.
"""

from fastapi import APIRouter, Depends, Request

from app.api.v1.deps import (
    RATE_LIMIT, DateRange, Paging, get_store, limiter, parse_date_range, parse_paging,
)
from app.schemas.query_schemas import SummaryResponse, TermsBody
from app.sql_store import SqlStore
from core.query_orchestrator import SummaryBy, build_plan, execute, execute_summary
from core.spatial_predicates import PointAt

router = APIRouter(prefix="/api/v1/do", tags=["drought observatory"])

DATASET = "drought_observatory"


def _plan(lat: float, lon: float, dates: DateRange, **kwargs):
    return build_plan(
        DATASET,
        spatial=PointAt(lat, lon),
        start_date=dates.start_date,
        end_date=dates.end_date,
        **kwargs,
    )


@router.get("/data/area/{lat}/{lon}")
@limiter.limit(RATE_LIMIT)
def data_by_area(
    request: Request,
    lat: float,
    lon: float,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Drought data covering the point, one group per source area, coarsest first."""
    return execute(_plan(lat, lon, dates, group="area"), store).payload


@router.get("/data/date/{lat}/{lon}")
@limiter.limit(RATE_LIMIT)
def data_by_date(
    request: Request,
    lat: float,
    lon: float,
    dates: DateRange = Depends(parse_date_range),
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    """Drought data covering the point, one merged record per date."""
    plan = _plan(lat, lon, dates, group="date", start=paging.start, limit=paging.limit)
    return execute(plan, store).payload


@router.post("/data/area/{lat}/{lon}/{which}")
@limiter.limit(RATE_LIMIT)
def data_by_area_terms(
    request: Request,
    lat: float,
    lon: float,
    which: str,
    body: TermsBody,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Per-area data restricted to observations featuring ALL or ANY of the terms."""
    plan = _plan(lat, lon, dates, group="area", terms=body.std_terms, mode=which)
    return execute(plan, store).payload


@router.post("/data/date/{lat}/{lon}/{which}")
@limiter.limit(RATE_LIMIT)
def data_by_date_terms(
    request: Request,
    lat: float,
    lon: float,
    which: str,
    body: TermsBody,
    dates: DateRange = Depends(parse_date_range),
    paging: Paging = Depends(parse_paging),
    store: SqlStore = Depends(get_store),
):
    plan = _plan(
        lat, lon, dates, group="date", terms=body.std_terms, mode=which,
        start=paging.start, limit=paging.limit,
    )
    return execute(plan, store).payload


@router.get("/meta/{lat}/{lon}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def meta(
    request: Request,
    lat: float,
    lon: float,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Count, date range and terms of all drought data covering the point."""
    return execute_summary(_plan(lat, lon, dates), store, by=SummaryBy.ALL)


@router.post("/meta/{lat}/{lon}/{which}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def meta_terms(
    request: Request,
    lat: float,
    lon: float,
    which: str,
    body: TermsBody,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    plan = _plan(lat, lon, dates, terms=body.std_terms, mode=which)
    return execute_summary(plan, store, by=SummaryBy.ALL)


@router.get("/meta/area/{lat}/{lon}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def meta_by_area(
    request: Request,
    lat: float,
    lon: float,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    """Per-area summaries, coarsest area first."""
    return execute_summary(_plan(lat, lon, dates), store, by=SummaryBy.AREA)


@router.post("/meta/area/{lat}/{lon}/{which}", response_model=list[SummaryResponse])
@limiter.limit(RATE_LIMIT)
def meta_by_area_terms(
    request: Request,
    lat: float,
    lon: float,
    which: str,
    body: TermsBody,
    dates: DateRange = Depends(parse_date_range),
    store: SqlStore = Depends(get_store),
):
    plan = _plan(lat, lon, dates, terms=body.std_terms, mode=which)
    return execute_summary(plan, store, by=SummaryBy.AREA)
