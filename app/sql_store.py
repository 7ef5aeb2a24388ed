"""
SQL-backed Store over the shapes / shape_observations tables.

On PostgreSQL each predicate's GeoAlchemy2 filter is pushed down to PostGIS
as a prefilter; on any other dialect (SQLite in tests) rows are loaded and
tested with shapely. Either way candidates are confirmed with
`predicate.matches`, so both paths select the same records.

Database errors surface as StoreFailure; nothing is retried here.
"""

import logging
from typing import Iterable, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Shape, ShapeObservation
from core.errors import StoreFailure
from core.spatial_predicates import ShapeKey, SpatialPredicate
from core.store import Store

logger = logging.getLogger(__name__)


class SqlStore(Store):
    """
    Usage:
        store = SqlStore(db)
        execute(plan, store)
    """

    def __init__(self, db: Session, pushdown: Optional[bool] = None):
        self.db = db
        if pushdown is None:
            bind = db.get_bind()
            pushdown = bind.dialect.name == "postgresql"
        self.pushdown = pushdown

    def _fetch(self, collection: str, stmt) -> list:
        try:
            return list(self.db.execute(stmt).scalars())
        except SQLAlchemyError as e:
            logger.warning(f"Store query on {collection} failed: {e}")
            raise StoreFailure(f"Query on '{collection}' failed: {e}", collection=collection) from e

    def scan(self, collection: str) -> Iterator[dict]:
        rows = self._fetch(collection, select(Shape).where(Shape.collection == collection))
        return (row.to_record() for row in rows)

    def scan_where(
        self, collection: str, predicate: SpatialPredicate, field_name: str,
    ) -> Iterator[dict]:
        stmt = select(Shape).where(Shape.collection == collection)
        if isinstance(predicate, ShapeKey):
            stmt = stmt.where(predicate.sql_filter(Shape, None))
        elif self.pushdown:
            column = getattr(Shape, Shape.GEOM_COLUMNS.get(field_name, "geom"))
            stmt = stmt.where(predicate.sql_filter(Shape, column))
            logger.debug("Pushing %s filter on %s.%s down to PostGIS", predicate.kind, collection, field_name)

        records = (row.to_record() for row in self._fetch(collection, stmt))
        return (r for r in records if predicate.matches(r, field_name))

    def scan_related(self, collection: str, geometry_hashes: Iterable[str]) -> Iterator[dict]:
        hashes = sorted(set(geometry_hashes))
        if not hashes:
            return iter(())
        rows = []
        # Batch IN lists to stay under driver parameter limits
        batch_size = 500
        for i in range(0, len(hashes), batch_size):
            batch = hashes[i:i + batch_size]
            stmt = select(ShapeObservation).where(
                ShapeObservation.collection == collection,
                ShapeObservation.geometry_hash.in_(batch),
            )
            rows.extend(self._fetch(collection, stmt))
        return (row.to_record() for row in rows)
