"""Shape and time-series observation models.

Every dataset shares the two tables, partitioned by `collection`:
  - shapes: one row per geometry, keyed by its content hash
  - shape_observations: dated measurements for a shape, keyed by
    (geometry_hash, std_date, std_date_span)

GeoJSON lives in JSON columns and is mirrored into PostGIS geometry columns
by app.spatial_sync for pushed-down spatial filters.
"""

from typing import Optional

from geoalchemy2 import Geometry
from sqlalchemy import Float, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Shape(Base):
    __tablename__ = "shapes"
    __table_args__ = (
        UniqueConstraint("collection", "geometry_hash", name="uq_shapes_collection_hash"),
        Index("ix_shapes_geom", "geom", postgresql_using="gist"),
        Index("ix_shapes_bounds_geom", "bounds_geom", postgresql_using="gist"),
        Index("ix_shapes_point_geom", "point_geom", postgresql_using="gist"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    geometry_hash: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    geometry: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    geometry_bounds: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    geometry_point: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    geometry_point_radius: Mapped[Optional[float]] = mapped_column(Float)
    properties: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    geom = mapped_column(
        Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=True, deferred=True,
    )
    bounds_geom = mapped_column(
        Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=True, deferred=True,
    )
    point_geom = mapped_column(
        Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=True, deferred=True,
    )

    # GeoJSON column -> mirrored PostGIS column
    GEOM_COLUMNS = {
        "geometry": "geom",
        "geometry_bounds": "bounds_geom",
        "geometry_point": "point_geom",
    }

    def to_record(self) -> dict:
        record = {"geometry_hash": self.geometry_hash}
        for name in ("geometry", "geometry_bounds", "geometry_point", "geometry_point_radius"):
            value = getattr(self, name)
            if value is not None:
                record[name] = value
        record["properties"] = self.properties or {}
        return record

    def __repr__(self) -> str:
        return f"<Shape(collection={self.collection!r}, geometry_hash={self.geometry_hash!r})>"


class ShapeObservation(Base):
    __tablename__ = "shape_observations"
    __table_args__ = (
        UniqueConstraint(
            "collection", "geometry_hash", "std_date", "std_date_span",
            name="uq_shape_observation",
        ),
        Index("ix_shape_obs_collection_hash", "collection", "geometry_hash"),
        Index("ix_shape_obs_date", "std_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    geometry_hash: Mapped[str] = mapped_column(String(32), nullable=False)
    std_date: Mapped[str] = mapped_column(String(8), nullable=False)
    std_date_span: Mapped[str] = mapped_column(String(30), nullable=False)
    std_terms: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    properties: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    def to_record(self) -> dict:
        return {
            "geometry_hash": self.geometry_hash,
            "std_date": self.std_date,
            "std_date_span": self.std_date_span,
            "std_terms": self.std_terms or [],
            "properties": self.properties or {},
        }

    def __repr__(self) -> str:
        return (
            f"<ShapeObservation(geometry_hash={self.geometry_hash!r}, "
            f"std_date={self.std_date!r}, std_date_span={self.std_date_span!r})>"
        )
