"""
Grouping strategies for filtered observation streams.

  - none: pass-through
  - span: one bucket per std_date_span, members as {std_date, properties}
  - date: one bucket per std_date, member properties deep-merged
  - area: one bucket per source geometry, coarsest resolution first, each
    with its own count / date range / term summary

Members inside every bucket are ascending by std_date.

Deep-merge conflicts (two observations on the same date writing the same
scalar key) are settled by merge order: members are merged sorted by
(std_date, source radius descending, geometry_hash), last write wins. With
nested drought areas that means the finest-resolution source wins.
"""

import copy
from enum import Enum
from typing import Callable, Iterable, Optional

from core.errors import ValidationError


class GroupBy(str, Enum):
    NONE = "none"
    SPAN = "span"
    DATE = "date"
    AREA = "area"

    @classmethod
    def parse(cls, value) -> "GroupBy":
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        token = str(value).strip().lower().replace("_", "")
        aliases = {"timespan": "span", "sourcearea": "area", "": "none"}
        try:
            return cls(aliases.get(token, token))
        except ValueError:
            raise ValidationError(
                f"Group must be none, span, date or area, got {value!r}", field="group",
            ) from None


def by_date_key(observation: dict) -> str:
    return observation.get("std_date") or ""


def deep_merge(target: dict, source: dict) -> dict:
    """Recursively merge `source` into `target` (in place); nested dicts merge key-wise."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _unique_terms(observations: Iterable[dict]) -> list[str]:
    terms = set()
    for obs in observations:
        terms.update(obs.get("std_terms") or ())
    return sorted(terms)


def summarize(observations: list[dict]) -> dict:
    """Count, date range and term list of a set of observations."""
    dates = [obs["std_date"] for obs in observations if obs.get("std_date")]
    return {
        "count": len(observations),
        "std_date_start": min(dates) if dates else None,
        "std_date_end": max(dates) if dates else None,
        "std_terms": _unique_terms(observations),
    }


def group_by_span(observations: list[dict]) -> list[dict]:
    """One bucket per span (day, month, year), each holding its dated series."""
    buckets: dict[str, list[dict]] = {}
    for obs in sorted(observations, key=by_date_key):
        buckets.setdefault(obs.get("std_date_span"), []).append(
            {"std_date": obs.get("std_date"), "properties": obs.get("properties") or {}}
        )
    return [
        {"std_date_span": span, "std_date_series": series}
        for span, series in sorted(buckets.items(), key=lambda item: item[0] or "")
    ]


def group_by_date(
    observations: list[dict],
    merge_order: Optional[Callable[[dict], tuple]] = None,
) -> list[dict]:
    """
    One bucket per std_date with the deep merge of all properties on that date.

    `merge_order` ranks observations sharing a date; later ranks overwrite
    earlier ones on scalar conflicts. Defaults to geometry_hash.
    """
    if merge_order is None:
        merge_order = lambda obs: (obs.get("geometry_hash") or "",)  # noqa: E731
    ordered = sorted(observations, key=lambda obs: (by_date_key(obs), *merge_order(obs)))

    buckets: dict[str, dict] = {}
    for obs in ordered:
        merged = buckets.setdefault(obs.get("std_date"), {})
        deep_merge(merged, obs.get("properties") or {})
    return [{"std_date": date, "properties": props} for date, props in buckets.items()]


def group_by_area(
    observations: list[dict],
    sources: dict[str, dict],
    radius_field: Optional[str],
    shape_fields: Iterable[str] = ("geometry",),
) -> list[dict]:
    """
    One bucket per source geometry that has members, ordered by radius descending.

    Each bucket carries the source's shape fields, its summary (count,
    std_date_start, std_date_end, std_terms) and its ascending date series.
    """
    members: dict[str, list[dict]] = {}
    for obs in sorted(observations, key=by_date_key):
        members.setdefault(obs.get("geometry_hash"), []).append(obs)

    def radius(geometry_hash: str) -> float:
        value = (sources.get(geometry_hash) or {}).get(radius_field) if radius_field else None
        return float(value) if value is not None else 0.0

    buckets = []
    for geometry_hash in sorted(members, key=lambda h: (-radius(h), h)):
        source = sources.get(geometry_hash) or {}
        bucket = {"geometry_hash": geometry_hash}
        for name in shape_fields:
            if name in source:
                bucket[name] = source[name]
        bucket.update(summarize(members[geometry_hash]))
        bucket["std_date_series"] = [
            {"std_date": obs.get("std_date"), "properties": obs.get("properties") or {}}
            for obs in members[geometry_hash]
        ]
        buckets.append(bucket)
    return buckets


def summarize_by_span(observations: list[dict]) -> list[dict]:
    spans: dict[str, list[dict]] = {}
    for obs in observations:
        spans.setdefault(obs.get("std_date_span"), []).append(obs)
    return [
        {"std_date_span": span, **summarize(members)}
        for span, members in sorted(spans.items(), key=lambda item: item[0] or "")
    ]


def summarize_by_area(
    observations: list[dict],
    sources: dict[str, dict],
    radius_field: Optional[str],
    shape_fields: Iterable[str] = ("geometry",),
) -> list[dict]:
    buckets = group_by_area(observations, sources, radius_field, shape_fields)
    for bucket in buckets:
        bucket.pop("std_date_series", None)
    return buckets
