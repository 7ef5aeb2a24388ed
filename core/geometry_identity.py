"""
Geometry identity: content-address a GeoJSON geometry.

The geometry hash is the MD5 of the canonical compact JSON form of the
geometry, {"type":...,"coordinates":[...]}, with numbers rendered the way
the document store renders them (integral values without a fraction,
exponents without zero padding). The same geometry always produces the same
32-character lowercase hex key.
"""

import hashlib
import math
import re

GEOMETRY_HASH_PATTERN = re.compile(r"^[0-9a-f]{32}$")

GEOMETRY_TYPES = (
    "Point", "MultiPoint",
    "LineString", "MultiLineString",
    "Polygon", "MultiPolygon",
)


def _format_number(value) -> str:
    """Render a coordinate number as the store's TO_STRING does."""
    if isinstance(value, int):
        return str(value)
    value = float(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    # Python pads exponents (1e-07); the store does not (1e-7)
    return re.sub(r"e([+-])0*(\d+)", r"e\1\2", text)


def _serialize(node) -> str:
    if isinstance(node, (list, tuple)):
        return "[" + ",".join(_serialize(item) for item in node) + "]"
    if isinstance(node, bool) or not isinstance(node, (int, float)):
        raise TypeError(f"Unexpected coordinate value: {node!r}")
    if isinstance(node, float) and not math.isfinite(node):
        raise TypeError(f"Non-finite coordinate value: {node!r}")
    return _format_number(node)


def canonical_geometry(geometry: dict) -> str:
    """Compact canonical serialization used as hash input."""
    return '{"type":"%s","coordinates":%s}' % (
        geometry["type"], _serialize(geometry["coordinates"]),
    )


def geometry_hash(geometry: dict) -> str:
    """MD5 content hash of a GeoJSON geometry (lowercase hex, 32 chars)."""
    return hashlib.md5(canonical_geometry(geometry).encode("utf-8")).hexdigest()


def is_geometry_hash(value) -> bool:
    return isinstance(value, str) and bool(GEOMETRY_HASH_PATTERN.match(value))


def point_geometry(lat: float, lon: float) -> dict:
    """GeoJSON Point; note the (lon, lat) coordinate order."""
    return {"type": "Point", "coordinates": [lon, lat]}


def polygon_geometry(rings: list) -> dict:
    """
    GeoJSON Polygon from a list of linear rings.

    A single ring given as a flat list of positions is accepted and wrapped,
    matching how callers pass simple polygons.
    """
    if rings and rings[0] and isinstance(rings[0][0], (int, float)):
        rings = [rings]
    return {"type": "Polygon", "coordinates": rings}


def multipolygon_geometry(polygons: list) -> dict:
    return {"type": "MultiPolygon", "coordinates": polygons}


def hashed(geometry: dict) -> dict:
    """Pair a geometry with its hash, the shape returned by the hash routes."""
    return {"geometry": geometry, "geometry_hash": geometry_hash(geometry)}
