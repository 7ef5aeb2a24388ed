"""
Spatial predicates over GeoJSON candidate records.

A closed set of variants, each built once per request around a reference
geometry and evaluated against candidate records:

  - PointAt: candidate (or its bounds) intersects a lat/lon point
  - DistanceRange: great-circle centroid distance within [min, max], inclusive
  - Contains: candidate (or its representative point) enclosed by a polygon
  - Intersects: candidate and reference share at least one point
  - ShapeKey: identity lookup by geometry hash

Evaluation uses shapely on planar lon/lat coordinates. Every variant can also
render a PostGIS filter (`sql_filter`) that a SQL store pushes down as a
prefilter; stores always confirm candidates with `matches`, so both paths
share one set of boundary rules.
"""

import json
import logging
from dataclasses import dataclass, field
from functools import cached_property
from math import radians, sin, cos, sqrt, atan2
from typing import Optional

from geoalchemy2.functions import (
    ST_Centroid, ST_DistanceSphere, ST_GeomFromGeoJSON,
    ST_Intersects, ST_MakePoint, ST_SetSRID,
)
from shapely.errors import ShapelyError
from shapely.geometry import Point, shape
from shapely.prepared import prep

from core.errors import ValidationError
from core.geometry_identity import GEOMETRY_TYPES, is_geometry_hash

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0

POLYGON_TYPES = ("Polygon", "MultiPolygon")

# Generic offset used to settle points lying exactly on a reference boundary.
# The direction is irrational relative to the axes so it never runs along an edge.
BOUNDARY_NUDGE_X = 1e-9
BOUNDARY_NUDGE_Y = 1e-9 * 0.6180339887498949

# Pushed-down distance prefilters are widened so spheroid/sphere radius
# differences between PostGIS and haversine never drop an edge candidate.
DISTANCE_PREFILTER_SLACK = 0.005


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in km."""
    return haversine_m(lat1, lon1, lat2, lon2) / 1000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in metres."""
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * atan2(sqrt(a), sqrt(1 - a))


def validate_lat_lon(lat: float, lon: float) -> None:
    if lat is None or not -90.0 <= lat <= 90.0:
        raise ValidationError(f"Latitude must be between -90 and 90, got {lat}", field="lat")
    if lon is None or not -180.0 <= lon <= 180.0:
        raise ValidationError(f"Longitude must be between -180 and 180, got {lon}", field="lon")


def parse_reference(geometry: dict, allowed: tuple = GEOMETRY_TYPES):
    """
    Validate a GeoJSON reference geometry and return its shapely shape.

    Raises ValidationError for unknown types, malformed coordinate nesting,
    rings with too few positions, empty geometries or out-of-range coordinates.
    """
    if not isinstance(geometry, dict) or "type" not in geometry or "coordinates" not in geometry:
        raise ValidationError("Reference geometry must be a GeoJSON object", field="geometry")
    if geometry["type"] not in allowed:
        raise ValidationError(
            f"Reference geometry type must be one of {', '.join(allowed)}, "
            f"got {geometry['type']!r}",
            field="geometry",
        )
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, IndexError, KeyError) as e:
        raise ValidationError(f"Malformed reference geometry: {e}", field="geometry") from e
    if geom.is_empty:
        raise ValidationError("Reference geometry is empty", field="geometry")

    west, south, east, north = geom.bounds
    if not (-180 <= west <= 180 and -180 <= east <= 180):
        raise ValidationError("Reference longitude must be between -180 and 180", field="geometry")
    if not (-90 <= south <= 90 and -90 <= north <= 90):
        raise ValidationError("Reference latitude must be between -90 and 90", field="geometry")
    return geom


def _candidate_shape(record: dict, field_name: str):
    """Shapely shape of a record's geometry field, or None when absent/unreadable."""
    geometry = record.get(field_name)
    if not geometry:
        return None
    try:
        return shape(geometry)
    except (ShapelyError, ValueError, TypeError, IndexError, KeyError):
        logger.debug("Skipping unreadable %s on record %s", field_name, record.get("geometry_hash"))
        return None


class SpatialPredicate:
    """Base class: `kind` selects the dataset field the predicate tests."""

    kind: str = ""

    def matches(self, record: dict, field_name: str) -> bool:
        raise NotImplementedError

    def sql_filter(self, model, column):
        raise NotImplementedError


@dataclass(frozen=True)
class PointAt(SpatialPredicate):
    lat: float
    lon: float
    kind: str = field(default="click", init=False)

    def __post_init__(self):
        validate_lat_lon(self.lat, self.lon)

    @cached_property
    def point(self) -> Point:
        return Point(self.lon, self.lat)  # GeoJSON is (lon, lat)

    def matches(self, record: dict, field_name: str) -> bool:
        candidate = _candidate_shape(record, field_name)
        return candidate is not None and candidate.intersects(self.point)

    def sql_filter(self, model, column):
        return ST_Intersects(column, ST_SetSRID(ST_MakePoint(self.lon, self.lat), 4326))


@dataclass(frozen=True)
class DistanceRange(SpatialPredicate):
    """
    Centroid-to-centroid great-circle distance in metres, both ends inclusive.

    min > max is a valid query that selects nothing.
    """

    reference: dict
    min_distance: float
    max_distance: float
    kind: str = field(default="distance", init=False)

    def __post_init__(self):
        parse_reference(self.reference)

    @cached_property
    def reference_centroid(self) -> Point:
        return parse_reference(self.reference).centroid

    def distance(self, record: dict, field_name: str) -> Optional[float]:
        candidate = _candidate_shape(record, field_name)
        if candidate is None or candidate.is_empty:
            return None
        c = candidate.centroid
        ref = self.reference_centroid
        return haversine_m(ref.y, ref.x, c.y, c.x)

    def in_range(self, distance: Optional[float]) -> bool:
        return distance is not None and self.min_distance <= distance <= self.max_distance

    def matches(self, record: dict, field_name: str) -> bool:
        return self.in_range(self.distance(record, field_name))

    def sql_filter(self, model, column):
        distance = ST_DistanceSphere(
            ST_Centroid(column),
            ST_Centroid(ST_SetSRID(ST_GeomFromGeoJSON(_geojson_text(self.reference)), 4326)),
        )
        low = self.min_distance * (1 - DISTANCE_PREFILTER_SLACK)
        high = self.max_distance * (1 + DISTANCE_PREFILTER_SLACK)
        return distance.between(low, high)


@dataclass(frozen=True)
class Contains(SpatialPredicate):
    """
    Candidate fully enclosed by a Polygon/MultiPolygon reference.

    Point candidates follow a face-exclusive rule: interior points are in,
    exterior points are out, and a point exactly on the reference boundary is
    in only if a point nudged by (BOUNDARY_NUDGE_X, BOUNDARY_NUDGE_Y) falls
    inside. Two faces sharing an edge or vertex therefore never both claim it;
    for an axis-aligned box the west and south edges are in, east and north out.
    """

    reference: dict
    kind: str = field(default="contains", init=False)

    def __post_init__(self):
        parse_reference(self.reference, allowed=POLYGON_TYPES)

    @cached_property
    def reference_shape(self):
        return parse_reference(self.reference, allowed=POLYGON_TYPES)

    @cached_property
    def prepared(self):
        return prep(self.reference_shape)

    def contains_point(self, point: Point) -> bool:
        if self.prepared.contains(point):
            return True
        if not self.reference_shape.boundary.intersects(point):
            return False
        nudged = Point(point.x + BOUNDARY_NUDGE_X, point.y + BOUNDARY_NUDGE_Y)
        return self.prepared.contains(nudged)

    def matches(self, record: dict, field_name: str) -> bool:
        candidate = _candidate_shape(record, field_name)
        if candidate is None or candidate.is_empty:
            return False
        if candidate.geom_type == "Point":
            return self.contains_point(candidate)
        if candidate.geom_type == "MultiPoint":
            return all(self.contains_point(p) for p in candidate.geoms)
        return self.prepared.contains(candidate)

    def sql_filter(self, model, column):
        # Boundary points are settled in Python, so push down the looser test
        reference = ST_SetSRID(ST_GeomFromGeoJSON(_geojson_text(self.reference)), 4326)
        return ST_Intersects(reference, column)


@dataclass(frozen=True)
class Intersects(SpatialPredicate):
    """Boundary-inclusive intersection, including either geometry inside the other."""

    reference: dict
    kind: str = field(default="intersects", init=False)

    def __post_init__(self):
        parse_reference(self.reference)

    @cached_property
    def prepared(self):
        return prep(parse_reference(self.reference))

    def matches(self, record: dict, field_name: str) -> bool:
        candidate = _candidate_shape(record, field_name)
        return candidate is not None and self.prepared.intersects(candidate)

    def sql_filter(self, model, column):
        reference = ST_SetSRID(ST_GeomFromGeoJSON(_geojson_text(self.reference)), 4326)
        return ST_Intersects(reference, column)


@dataclass(frozen=True)
class ShapeKey(SpatialPredicate):
    """Select the record whose content hash is `geometry_hash`."""

    geometry_hash: str
    kind: str = field(default="key", init=False)

    def __post_init__(self):
        if not is_geometry_hash(self.geometry_hash):
            raise ValidationError(
                f"Geometry hash must be 32 lowercase hex characters, got {self.geometry_hash!r}",
                field="geometry_hash",
            )

    def matches(self, record: dict, field_name: str) -> bool:
        return record.get("geometry_hash") == self.geometry_hash

    def sql_filter(self, model, column):
        return model.geometry_hash == self.geometry_hash


def _geojson_text(geometry: dict) -> str:
    return json.dumps({"type": geometry["type"], "coordinates": geometry["coordinates"]})
