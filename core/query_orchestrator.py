"""
Query orchestrator: builds an immutable query plan and runs it against a store.

Stages, each skipped when the plan does not ask for it:

  1. validate      build_plan() rejects malformed input with ValidationError
  2. spatial       store.scan_where() (or scan() when no predicate is given)
  3. descriptor    inclusive range on a dataset-mapped property
  4. attribute     ALL/ANY terms
  5. temporal      date range and spans (time-series datasets)
  6. grouping      none / span / date / area
  7. shape         KEY / SHAPE / DATA projection or MIN..VAR aggregation
  8. sort          ASC / DESC / NO
  9. paginate      start / limit (selections only)

A stage that leaves nothing short-circuits to an empty result. Store failures
propagate unchanged; nothing here retries or caches.

Usage:
    plan = build_plan("worldclim", spatial=PointAt(45.0, 9.0), shape="DATA")
    result = execute(plan, MemoryStore({...}))
    result.payload  # list of records, or an aggregation dict
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from core import attribute_filter, grouping, result_shaper, temporal_filter
from core.attribute_filter import MatchMode
from core.datasets import DatasetConfig, get_dataset, resolve_path
from core.errors import ValidationError
from core.grouping import GroupBy
from core.result_shaper import Shape
from core.spatial_predicates import DistanceRange, SpatialPredicate
from core.store import Store
from core.temporal_filter import DateSpan

logger = logging.getLogger(__name__)


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"
    NO = "NO"

    @classmethod
    def parse(cls, value) -> "SortOrder":
        if value is None:
            return cls.ASC
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                f"Sort must be ASC, DESC or NO, got {value!r}", field="sort",
            ) from None


class SummaryBy(str, Enum):
    ALL = "all"
    SPAN = "span"
    AREA = "area"


@dataclass(frozen=True)
class DescriptorRange:
    """Inclusive range on a logical descriptor (area, elevation, slope, ...)."""
    descriptor: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def matches(self, value) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value > self.max_value:
            return False
        return True


@dataclass(frozen=True)
class QueryPlan:
    dataset: DatasetConfig
    spatial: Optional[SpatialPredicate] = None
    terms: tuple = ()
    mode: MatchMode = MatchMode.ALL
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    spans: frozenset = field(default_factory=frozenset)
    group: GroupBy = GroupBy.NONE
    shape: Shape = Shape.DATA
    sort: SortOrder = SortOrder.ASC
    start: int = 0
    limit: Optional[int] = None
    descriptor_range: Optional[DescriptorRange] = None
    project_terms: bool = False

    @property
    def observation_level(self) -> bool:
        """Whether the query runs over the dataset's time series rather than its shapes."""
        if not self.dataset.has_observations:
            return False
        return bool(
            self.group is not GroupBy.NONE
            or self.start_date or self.end_date
            or self.spans or self.terms
        )

    @property
    def spatial_field(self) -> Optional[str]:
        return self.dataset.spatial_field(self.spatial.kind) if self.spatial else None

    def describe(self) -> str:
        parts = [self.dataset.name, self.shape.value]
        if self.spatial:
            parts.append(self.spatial.kind)
        if self.terms:
            parts.append(f"{self.mode.value}{list(self.terms)}")
        if self.start_date or self.end_date:
            parts.append(f"{self.start_date or ''}..{self.end_date or ''}")
        if self.group is not GroupBy.NONE:
            parts.append(f"group={self.group.value}")
        return " ".join(parts)


@dataclass
class QueryResult:
    records: list = field(default_factory=list)
    aggregate: Optional[dict] = None

    @property
    def payload(self) -> Union[list, dict]:
        return self.aggregate if self.aggregate is not None else self.records

    @property
    def is_empty(self) -> bool:
        if self.aggregate is not None:
            return self.aggregate.get("count", 0) == 0
        return not self.records


def _non_negative_int(value, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got {value!r}", field=name) from None
    if number < 0:
        raise ValidationError(f"{name} must be >= 0, got {number}", field=name)
    return number


def build_plan(
    dataset: Union[str, DatasetConfig],
    spatial: Optional[SpatialPredicate] = None,
    terms: Optional[Iterable[str]] = None,
    mode=MatchMode.ALL,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    spans: Optional[Iterable] = None,
    group=GroupBy.NONE,
    shape=Shape.DATA,
    sort=SortOrder.ASC,
    start: Optional[int] = 0,
    limit: Optional[int] = None,
    descriptor_range: Optional[DescriptorRange] = None,
    project_terms: bool = False,
) -> QueryPlan:
    """Validate request parameters into a QueryPlan; raises ValidationError."""
    config = dataset if isinstance(dataset, DatasetConfig) else get_dataset(dataset)

    terms = tuple(dict.fromkeys(t for t in (terms or ()) if t))
    group = GroupBy.parse(group)
    if group is not GroupBy.NONE and not config.has_observations:
        raise ValidationError(
            f"Dataset {config.name} has no time series to group by {group.value}", field="group",
        )
    if descriptor_range is not None:
        config.descriptor_path(descriptor_range.descriptor)

    return QueryPlan(
        dataset=config,
        spatial=spatial,
        terms=terms,
        mode=MatchMode.parse(mode),
        start_date=temporal_filter.validate_date(start_date, "start_date"),
        end_date=temporal_filter.validate_date(end_date, "end_date"),
        spans=frozenset(DateSpan.parse(s) for s in (spans or ())),
        group=group,
        shape=Shape.parse(shape),
        sort=SortOrder.parse(sort),
        start=_non_negative_int(start, "start") or 0,
        limit=_non_negative_int(limit, "limit"),
        descriptor_range=descriptor_range,
        project_terms=project_terms,
    )


def _empty(plan: QueryPlan, stage: str) -> QueryResult:
    logger.debug("Query %s: no records after %s stage", plan.describe(), stage)
    if plan.shape.is_aggregate and plan.group is GroupBy.NONE:
        return QueryResult(aggregate={"count": 0, "properties": None})
    return QueryResult()


def _select_shapes(plan: QueryPlan, store: Store) -> list[dict]:
    """Spatial and descriptor stages over the dataset's geometry collection."""
    collection = plan.dataset.collection
    if plan.spatial is None:
        records = list(store.scan(collection))
    else:
        field_name = plan.spatial_field
        records = list(store.scan_where(collection, plan.spatial, field_name))
        if isinstance(plan.spatial, DistanceRange):
            records = [dict(r, distance=plan.spatial.distance(r, field_name)) for r in records]

    if records and plan.descriptor_range is not None:
        path = plan.dataset.descriptor_path(plan.descriptor_range.descriptor)
        records = [r for r in records if plan.descriptor_range.matches(resolve_path(r, path))]
    return records


def _filter_observations(plan: QueryPlan, store: Store, sources: dict) -> list[dict]:
    """Attribute and temporal stages over the related time-series collection."""
    observations = list(store.scan_related(plan.dataset.observations, sources))
    observations = [
        obs for obs in observations
        if attribute_filter.matches(plan.terms, obs.get("std_terms"), plan.mode)
        and temporal_filter.in_range(obs.get("std_date"), plan.start_date, plan.end_date)
        and temporal_filter.matches_span(obs.get("std_date_span"), plan.spans)
    ]
    if plan.project_terms and plan.terms:
        projected = []
        for obs in observations:
            properties = attribute_filter.keep_terms(obs.get("properties"), plan.terms)
            projected.append(dict(obs, properties=properties, std_terms=sorted(properties)))
        observations = projected
    return observations


def _radius(plan: QueryPlan, sources: dict, geometry_hash: str) -> float:
    field_name = plan.dataset.radius_field
    value = (sources.get(geometry_hash) or {}).get(field_name) if field_name else None
    return float(value) if value is not None else 0.0


def _group(plan: QueryPlan, observations: list[dict], sources: dict) -> list[dict]:
    if plan.group is GroupBy.SPAN:
        return grouping.group_by_span(observations)
    if plan.group is GroupBy.DATE:
        return grouping.group_by_date(
            observations,
            merge_order=lambda obs: (
                -_radius(plan, sources, obs.get("geometry_hash")),
                obs.get("geometry_hash") or "",
            ),
        )
    return grouping.group_by_area(
        observations, sources, plan.dataset.radius_field, plan.dataset.shape_fields,
    )


def _sort_key(plan: QueryPlan, record: dict):
    # Observations carry no distance or descriptor of their own
    if plan.observation_level:
        value = (record.get("std_date") or "", record.get("geometry_hash") or "",
                 record.get("std_date_span") or "")
    elif isinstance(plan.spatial, DistanceRange):
        value = record.get("distance")
    elif plan.descriptor_range is not None:
        value = resolve_path(record, plan.dataset.descriptor_path(plan.descriptor_range.descriptor))
    else:
        value = record.get("geometry_hash") or ""
    return (value is None, value if value is not None else 0)


def _paginate(plan: QueryPlan, items: list) -> list:
    if plan.limit is None:
        return items[plan.start:]
    return items[plan.start:plan.start + plan.limit]


def execute(plan: QueryPlan, store: Store) -> QueryResult:
    """Run a plan to completion. Raises StoreFailure if the store does."""
    logger.debug("Executing query: %s", plan.describe())

    shapes = _select_shapes(plan, store)
    if not shapes:
        return _empty(plan, "spatial")

    if not plan.observation_level:
        if plan.terms:
            shapes = [
                r for r in shapes
                if attribute_filter.matches(
                    plan.terms, resolve_path(r, plan.dataset.terms_field), plan.mode,
                )
            ]
            if not shapes:
                return _empty(plan, "attribute")
        if plan.shape.is_aggregate:
            return QueryResult(aggregate=result_shaper.aggregate(shapes, plan.shape))
        shaped = [
            (_sort_key(plan, r), result_shaper.project(r, plan.shape, plan.dataset.shape_fields))
            for r in shapes
        ]
        return QueryResult(records=_paginate(plan, _sorted(plan, shaped)))

    sources = {r["geometry_hash"]: r for r in shapes if r.get("geometry_hash")}
    observations = _filter_observations(plan, store, sources)
    if not observations:
        return _empty(plan, "temporal")

    if plan.group is GroupBy.NONE:
        if plan.shape.is_aggregate:
            return QueryResult(aggregate=result_shaper.aggregate(observations, plan.shape))
        shaped = [
            (_sort_key(plan, obs), result_shaper.project_observation(obs, plan.shape))
            for obs in observations
        ]
        return QueryResult(records=_paginate(plan, _sorted(plan, shaped)))

    # Buckets come in strategy order; DESC reverses it, members stay ascending
    buckets = _group(plan, observations, sources)
    if plan.sort is SortOrder.DESC:
        buckets.reverse()
    if plan.shape.is_aggregate:
        return QueryResult(records=[result_shaper.aggregate_bucket(b, plan.shape) for b in buckets])
    if plan.shape is Shape.KEY:
        buckets = [result_shaper.strip_properties(b) for b in buckets]
    return QueryResult(records=_paginate(plan, buckets))


def _sorted(plan: QueryPlan, keyed: list[tuple]) -> list[dict]:
    if plan.sort is not SortOrder.NO:
        keyed = sorted(keyed, key=lambda pair: pair[0], reverse=plan.sort is SortOrder.DESC)
    return [item for _, item in keyed]


def execute_summary(plan: QueryPlan, store: Store, by=SummaryBy.ALL) -> list[dict]:
    """
    Metadata view of a time-series query: count, date range and terms.

    Returns one summary overall, per span, or per source area. A query that
    matches no observations summarizes to [].
    """
    by = SummaryBy(by)
    if not plan.dataset.has_observations:
        raise ValidationError(f"Dataset {plan.dataset.name} has no time series", field="dataset")

    shapes = _select_shapes(plan, store)
    if not shapes:
        logger.debug("Summary %s: no source shapes", plan.describe())
        return []
    sources = {r["geometry_hash"]: r for r in shapes if r.get("geometry_hash")}
    observations = _filter_observations(plan, store, sources)
    if not observations:
        logger.debug("Summary %s: no observations", plan.describe())
        return []

    if by is SummaryBy.SPAN:
        return grouping.summarize_by_span(observations)
    if by is SummaryBy.AREA:
        return grouping.summarize_by_area(
            observations, sources, plan.dataset.radius_field, plan.dataset.shape_fields,
        )
    return [grouping.summarize(observations)]
