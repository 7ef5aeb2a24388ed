"""Sync GeoJSON columns with PostGIS geom columns on INSERT/UPDATE.

Call `register_spatial_sync()` at app startup to attach SQLAlchemy event
listeners that populate Shape.geom / bounds_geom / point_geom from the
geometry / geometry_bounds / geometry_point JSON columns.
"""

import logging

from geoalchemy2.shape import from_shape
from shapely.errors import ShapelyError
from shapely.geometry import shape
from sqlalchemy import event

from app.models import Shape

logger = logging.getLogger(__name__)


def sync_json_geom(target, json_attr: str, geom_attr: str):
    """Sync a GeoJSON dict column to a PostGIS geometry column.

    Unreadable GeoJSON leaves the geometry column empty, which keeps the row
    out of pushed-down spatial filters.

    Usage:
        cell.geometry_bounds = new_geojson
        sync_json_geom(cell, "geometry_bounds", "bounds_geom")
    """
    geojson = getattr(target, json_attr)
    if not geojson:
        setattr(target, geom_attr, None)
        return
    try:
        setattr(target, geom_attr, from_shape(shape(geojson), srid=4326))
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError) as e:
        logger.warning(f"Unreadable {json_attr} on shape {target.geometry_hash}: {e}")
        setattr(target, geom_attr, None)


def _sync_shape_geoms(mapper, connection, target):
    """Before insert/update: sync every GeoJSON column -> geom column."""
    for json_attr, geom_attr in Shape.GEOM_COLUMNS.items():
        sync_json_geom(target, json_attr, geom_attr)


def register_spatial_sync():
    """Register SQLAlchemy event listeners for the Shape model."""
    event.listen(Shape, "before_insert", _sync_shape_geoms)
    event.listen(Shape, "before_update", _sync_shape_geoms)
