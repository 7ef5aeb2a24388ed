"""
Store interface consumed by the query engine, plus an in-memory implementation.

The engine only reads. A store exposes three scans:
  - scan(collection): every record, unspecified order
  - scan_where(collection, predicate, field_name): records passing a spatial predicate
  - scan_related(collection, geometry_hashes): time-series records keyed by geometry hash

Ordering is never guaranteed; the orchestrator sorts explicitly.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional

from core.errors import StoreFailure
from core.spatial_predicates import SpatialPredicate

logger = logging.getLogger(__name__)


class Store(ABC):
    """Abstract read-only document store."""

    @abstractmethod
    def scan(self, collection: str) -> Iterator[dict]:
        ...

    @abstractmethod
    def scan_where(
        self, collection: str, predicate: SpatialPredicate, field_name: str,
    ) -> Iterator[dict]:
        """
        Records whose `field_name` geometry satisfies `predicate`.

        Implementations may push a coarse filter down to the backend but must
        return exactly the records for which `predicate.matches` holds.
        """
        ...

    @abstractmethod
    def scan_related(self, collection: str, geometry_hashes: Iterable[str]) -> Iterator[dict]:
        ...


class MemoryStore(Store):
    """
    Store backed by in-process lists of record dicts.

    Usage:
        store = MemoryStore({"unit_shapes": [...], "shape_data": [...]})
    """

    def __init__(self, collections: Optional[dict[str, list[dict]]] = None):
        self._collections = {name: list(records) for name, records in (collections or {}).items()}

    def add(self, collection: str, records: Iterable[dict]):
        self._collections.setdefault(collection, []).extend(records)

    def _records(self, collection: str) -> list[dict]:
        if collection not in self._collections:
            raise StoreFailure(f"Collection '{collection}' not found", collection=collection)
        return self._collections[collection]

    def scan(self, collection: str) -> Iterator[dict]:
        yield from self._records(collection)

    def scan_where(
        self, collection: str, predicate: SpatialPredicate, field_name: str,
    ) -> Iterator[dict]:
        for record in self._records(collection):
            if predicate.matches(record, field_name):
                yield record

    def scan_related(self, collection: str, geometry_hashes: Iterable[str]) -> Iterator[dict]:
        wanted = set(geometry_hashes)
        if not wanted:
            return
        for record in self._records(collection):
            if record.get("geometry_hash") in wanted:
                yield record
