"""
Result shaper: projects qualifying records (selection) or collapses them into
statistics (aggregation).

Selection shapes grow the field set: KEY < SHAPE < DATA.
Aggregation shapes (MIN, AVG, MAX, STD, VAR) reduce every numeric property
path independently. Nested maps are flattened to key paths for reduction
and rebuilt afterwards, so the aggregate has the same layout as the records.

Reductions run over sorted value arrays, which makes them independent of
store iteration order. STD and VAR use the population formula.
"""

import math
from enum import Enum
from typing import Iterable, Optional

import numpy as np

from core.errors import ValidationError


class Shape(str, Enum):
    KEY = "KEY"
    SHAPE = "SHAPE"
    DATA = "DATA"
    MIN = "MIN"
    AVG = "AVG"
    MAX = "MAX"
    STD = "STD"
    VAR = "VAR"

    @classmethod
    def parse(cls, value) -> "Shape":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                f"Result shape must be one of {[s.value for s in cls]}, got {value!r}",
                field="what",
            ) from None

    @property
    def is_aggregate(self) -> bool:
        return self in AGGREGATE_SHAPES


AGGREGATE_SHAPES = frozenset({Shape.MIN, Shape.AVG, Shape.MAX, Shape.STD, Shape.VAR})

# Observation-level identity: a time-series record is keyed by all three.
OBSERVATION_KEY_FIELDS = ("geometry_hash", "std_date", "std_date_span")


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def flatten_numeric(properties: Optional[dict], prefix: tuple = ()) -> dict[tuple, float]:
    """Key-path map of every numeric leaf; strings, lists and booleans are skipped.

    Paths are tuples of keys, so property names containing "." stay intact.
    """
    leaves = {}
    for key, value in (properties or {}).items():
        path = prefix + (key,)
        if isinstance(value, dict):
            leaves.update(flatten_numeric(value, prefix=path))
        elif _is_number(value):
            leaves[path] = value
    return leaves


def unflatten(flat: dict[tuple, object], strict: bool = True) -> dict:
    """
    Rebuild nested maps from key paths.

    A path that is both a value and a map raises ValueError, or with
    strict=False keeps the map and drops the value.
    """
    nested: dict = {}
    # Deepest paths first, so every parent slot is already a map
    for path in sorted(flat, key=lambda p: (-len(p), p)):
        node = nested
        *parents, leaf = path
        for part in parents:
            node = node.setdefault(part, {})
        if leaf in node:
            if strict:
                raise ValueError(f"Property path {'.'.join(path)} is both a value and a map")
            continue
        node[leaf] = flat[path]
    return nested


class StatAccumulator:
    """
    Collects numeric samples per property path.

    Accumulators built over disjoint shards of a selection merge into the
    same result as one built over the whole selection.
    """

    def __init__(self):
        self.count = 0
        self.samples: dict[tuple, list[float]] = {}

    def add(self, properties: Optional[dict]):
        self.count += 1
        for path, value in flatten_numeric(properties).items():
            self.samples.setdefault(path, []).append(value)

    def extend(self, records: Iterable[dict]):
        for record in records:
            self.add(record.get("properties"))
        return self

    def merge(self, other: "StatAccumulator") -> "StatAccumulator":
        merged = StatAccumulator()
        merged.count = self.count + other.count
        for source in (self.samples, other.samples):
            for path, values in source.items():
                merged.samples.setdefault(path, []).extend(values)
        return merged

    def reduce(self, stat: Shape) -> dict:
        """AggregationResult: {count, properties}; properties is None when count is 0."""
        if not stat.is_aggregate:
            raise ValidationError(f"{stat.value} is not an aggregate shape", field="what")
        if self.count == 0:
            return {"count": 0, "properties": None}

        reduced = {}
        for path, values in self.samples.items():
            arr = np.sort(np.asarray(values, dtype=float))
            if stat is Shape.MIN:
                value = arr[0]
            elif stat is Shape.MAX:
                value = arr[-1]
            elif stat is Shape.AVG:
                value = arr.mean()
            elif stat is Shape.VAR:
                value = arr.var(ddof=0)
            else:
                value = arr.std(ddof=0)
            reduced[path] = value.item()
        return {"count": self.count, "properties": unflatten(reduced, strict=False)}


def aggregate(records: Iterable[dict], stat: Shape) -> dict:
    return StatAccumulator().extend(records).reduce(stat)


def project(record: dict, shape: Shape, shape_fields: Iterable[str] = ("geometry",)) -> dict:
    """Project a geometry record to KEY, SHAPE or DATA."""
    out = {"geometry_hash": record.get("geometry_hash")}
    if "distance" in record:
        out["distance"] = record["distance"]
    if shape is Shape.KEY:
        return out
    for name in shape_fields:
        if name in record:
            out[name] = record[name]
    if shape is Shape.DATA:
        out["properties"] = record.get("properties")
    return out


def project_observation(record: dict, shape: Shape) -> dict:
    """Project a time-series record; KEY keeps the three-part identity, SHAPE adds std_terms."""
    out = {name: record.get(name) for name in OBSERVATION_KEY_FIELDS}
    if shape is Shape.KEY:
        return out
    out["std_terms"] = record.get("std_terms") or []
    if shape is Shape.DATA:
        out["properties"] = record.get("properties")
    return out


def strip_properties(bucket: dict) -> dict:
    """KEY view of a grouped bucket: the bucket's identity and dates, no payload."""
    out = {k: v for k, v in bucket.items() if k not in ("properties", "std_date_series")}
    if "std_date_series" in bucket:
        out["std_date_series"] = [{"std_date": m.get("std_date")} for m in bucket["std_date_series"]]
    return out


def aggregate_bucket(bucket: dict, stat: Shape) -> dict:
    """Replace a bucket's payload with the aggregate of its members."""
    if "std_date_series" in bucket:
        members = bucket["std_date_series"]
    else:
        members = [bucket]
    out = {k: v for k, v in bucket.items() if k not in ("properties", "std_date_series")}
    out.update(aggregate(members, stat))
    return out
