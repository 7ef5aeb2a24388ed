"""Pydantic schemas for the query endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from app.config import settings


class GeometryBody(BaseModel):
    """GeoJSON reference geometry for dist / contain / intersect routes."""
    geometry: dict


class OccurrenceBody(BaseModel):
    geometry: Optional[dict] = None
    species_list: list[str] = Field(default_factory=list)


class TermsBody(BaseModel):
    std_terms: list[str] = Field(default_factory=list)


class SpansBody(BaseModel):
    std_date_span: list[str] = Field(default_factory=list)


class PolygonBody(BaseModel):
    coordinates: list


class HashResponse(BaseModel):
    geometry: dict
    geometry_hash: str


class SummaryResponse(BaseModel):
    std_date_span: Optional[str] = None
    geometry_hash: Optional[str] = None
    geometry: Optional[dict] = None
    geometry_point: Optional[dict] = None
    geometry_point_radius: Optional[float] = None
    count: int
    std_date_start: Optional[str] = None
    std_date_end: Optional[str] = None
    std_terms: list[str] = Field(default_factory=list)


class DatasetResponse(BaseModel):
    name: str
    title: str
    collection: str
    observations: Optional[str] = None
    shape_fields: list[str]
    descriptors: list[str]


class QueryRequest(BaseModel):
    """Generic query over any configured dataset.

    Spatial filter is selected by `spatial`: click (lat/lon), distance,
    contains or intersects (geometry), key (geometry_hash), or omitted.
    """
    spatial: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    geometry: Optional[dict] = None
    geometry_hash: Optional[str] = None
    min_distance: Optional[float] = Field(default=None, ge=0)
    max_distance: Optional[float] = Field(default=None, ge=0)

    terms: list[str] = Field(default_factory=list)
    which: str = "ALL"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    spans: list[str] = Field(default_factory=list)

    descriptor: Optional[str] = None
    descriptor_min: Optional[float] = None
    descriptor_max: Optional[float] = None

    group: str = "none"
    what: str = "DATA"
    sort: str = "ASC"
    start: int = Field(default=0, ge=0)
    limit: Optional[int] = Field(default=None, ge=0, le=settings.MAX_LIMIT)
    project_terms: bool = False
