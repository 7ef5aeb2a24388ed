"""Geometry hash endpoints: content hashes for points and polygons."""

from fastapi import APIRouter, Request

from app.api.v1.deps import RATE_LIMIT, limiter
from app.schemas.query_schemas import HashResponse, PolygonBody
from core.geometry_identity import (
    hashed, multipolygon_geometry, point_geometry, polygon_geometry,
)
from core.spatial_predicates import parse_reference, validate_lat_lon

router = APIRouter(prefix="/api/v1/hash", tags=["hash"])


@router.get("/point/{lat}/{lon}", response_model=HashResponse)
@limiter.limit(RATE_LIMIT)
def point_hash(request: Request, lat: float, lon: float):
    """GeoJSON point for the coordinates and its geometry hash."""
    validate_lat_lon(lat, lon)
    return hashed(point_geometry(lat, lon))


@router.post("/poly", response_model=HashResponse)
@limiter.limit(RATE_LIMIT)
def polygon_hash(request: Request, body: PolygonBody):
    """Polygon from a ring (or list of rings) and its geometry hash."""
    geometry = polygon_geometry(body.coordinates)
    parse_reference(geometry)
    return hashed(geometry)


@router.post("/multipoly", response_model=HashResponse)
@limiter.limit(RATE_LIMIT)
def multipolygon_hash(request: Request, body: PolygonBody):
    geometry = multipolygon_geometry(body.coordinates)
    parse_reference(geometry)
    return hashed(geometry)
