"""Tests for core.query_orchestrator against the in-memory store."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.errors import StoreFailure, ValidationError
from core.geometry_identity import geometry_hash
from core.query_orchestrator import (
    DescriptorRange, SortOrder, SummaryBy, build_plan, execute, execute_summary,
)
from core.spatial_predicates import Contains, DistanceRange, Intersects, PointAt, ShapeKey
from core.store import Store
from sample_data import box, point

UNIT_A = geometry_hash(box(8, 44, 10, 46))
UNIT_B = geometry_hash(box(20, 50, 22, 52))
COARSE = geometry_hash(box(0, 40, 20, 50))
FINE = geometry_hash(box(8, 44, 10, 46))


class ExplodingStore(Store):
    """Fails the test if the store is ever touched."""

    def scan(self, collection):
        raise AssertionError("store accessed")

    def scan_where(self, collection, predicate, field_name):
        raise AssertionError("store accessed")

    def scan_related(self, collection, geometry_hashes):
        raise AssertionError("store accessed")


class TestBuildPlan:
    def test_defaults(self):
        plan = build_plan("worldclim")
        assert plan.sort is SortOrder.ASC
        assert plan.start == 0
        assert plan.limit is None
        assert not plan.observation_level

    def test_unknown_dataset(self):
        with pytest.raises(ValidationError) as exc:
            build_plan("nope")
        assert exc.value.field == "dataset"

    @pytest.mark.parametrize("kwargs,field", [
        ({"mode": "SOME"}, "which"),
        ({"start_date": "2010-01"}, "start_date"),
        ({"end_date": "x"}, "end_date"),
        ({"spans": ["week"]}, "std_date_span"),
        ({"shape": "SUM"}, "what"),
        ({"sort": "UP"}, "sort"),
        ({"start": -1}, "start"),
        ({"limit": -5}, "limit"),
    ])
    def test_rejected_parameters(self, kwargs, field):
        with pytest.raises(ValidationError) as exc:
            build_plan("unit_shapes", **kwargs)
        assert exc.value.field == field

    def test_grouping_requires_time_series(self):
        with pytest.raises(ValidationError):
            build_plan("worldclim", group="date")

    def test_unknown_descriptor(self):
        with pytest.raises(ValidationError) as exc:
            build_plan("unit_shapes", descriptor_range=DescriptorRange("depth", 0, 1))
        assert exc.value.field == "descriptor"

    def test_observation_level(self):
        assert build_plan("unit_shapes", start_date="2010").observation_level
        assert build_plan("unit_shapes", terms=["tas"]).observation_level
        assert build_plan("unit_shapes", group="span").observation_level
        assert not build_plan("unit_shapes").observation_level
        assert not build_plan("species_occurrences", terms=["a"]).observation_level

    def test_plan_is_immutable(self):
        plan = build_plan("worldclim")
        with pytest.raises(AttributeError):
            plan.limit = 5

    def test_invalid_input_rejected_before_store_access(self):
        with pytest.raises(ValidationError):
            execute(build_plan("worldclim", shape="NOPE"), ExplodingStore())


class TestClickSelection:
    def test_point_selects_covering_polygon(self, memory_store):
        plan = build_plan("unit_shapes", spatial=PointAt(45.0, 9.0), shape="DATA")
        result = execute(plan, memory_store).payload
        assert [r["geometry_hash"] for r in result] == [UNIT_A]
        assert result[0]["properties"]["unit_id"] == "A"
        assert "geometry" in result[0]

    def test_point_outside_everything(self, memory_store):
        plan = build_plan("unit_shapes", spatial=PointAt(0.0, 0.0))
        assert execute(plan, memory_store).payload == []

    def test_worldclim_click_tests_bounds(self, memory_store):
        plan = build_plan("worldclim", spatial=PointAt(45.06, 9.16))
        result = execute(plan, memory_store).payload
        assert [r["geometry_hash"] for r in result] == [geometry_hash(point(9.15, 45.05))]


class TestContainsSelection:
    def test_boundary_point_follows_face_rule(self, memory_store):
        plan = build_plan("worldclim", spatial=Contains(box(9.0, 45.0, 9.25, 45.1)), shape="KEY")
        hashes = {r["geometry_hash"] for r in execute(plan, memory_store).payload}
        assert hashes == {geometry_hash(point(9.05, 45.05)), geometry_hash(point(9.15, 45.05))}

    def test_west_edge_point_is_included(self, memory_store):
        plan = build_plan("worldclim", spatial=Contains(box(9.05, 45.0, 9.2, 45.1)), shape="KEY")
        hashes = {r["geometry_hash"] for r in execute(plan, memory_store).payload}
        assert hashes == {geometry_hash(point(9.05, 45.05)), geometry_hash(point(9.15, 45.05))}


class TestDistanceSelection:
    def test_sorted_by_distance_descending(self, memory_store):
        plan = build_plan(
            "worldclim", spatial=DistanceRange(point(9.05, 45.05), 0, 20000),
            shape="DATA", sort="DESC",
        )
        result = execute(plan, memory_store).payload
        distances = [r["distance"] for r in result]
        assert len(result) == 3
        assert distances == sorted(distances, reverse=True)
        assert distances[-1] == pytest.approx(0.0, abs=1e-6)

    def test_range_excludes_far_cells(self, memory_store):
        plan = build_plan("worldclim", spatial=DistanceRange(point(9.05, 45.05), 1000, 10000))
        result = execute(plan, memory_store).payload
        assert [r["geometry_hash"] for r in result] == [geometry_hash(point(9.15, 45.05))]

    def test_min_above_max_is_empty_not_error(self, memory_store):
        plan = build_plan("worldclim", spatial=DistanceRange(point(9.05, 45.05), 10000, 1000))
        assert execute(plan, memory_store).payload == []

    def test_key_shape_keeps_distance(self, memory_store):
        plan = build_plan("worldclim", spatial=DistanceRange(point(9.05, 45.05), 0, 20000), shape="KEY")
        assert set(execute(plan, memory_store).payload[0]) == {"geometry_hash", "distance"}


class TestAggregation:
    def test_statistics_over_selection(self, memory_store):
        reference = box(9.0, 45.0, 9.3, 45.1)
        expected = {"MIN": 10, "MAX": 30, "AVG": 20.0, "VAR": 66.6667, "STD": 8.1650}
        for what, value in expected.items():
            plan = build_plan("worldclim", spatial=Intersects(reference), shape=what)
            result = execute(plan, memory_store).payload
            assert result["count"] == 3
            assert result["properties"]["bio1"] == pytest.approx(value, abs=1e-3)
            assert "label" not in result["properties"]

    def test_pagination_ignored(self, memory_store):
        plan = build_plan("worldclim", spatial=Intersects(box(9.0, 45.0, 9.3, 45.1)),
                          shape="AVG", start=2, limit=0)
        assert execute(plan, memory_store).payload["count"] == 3

    def test_empty_selection_gives_zero_count(self, memory_store):
        plan = build_plan("worldclim", spatial=PointAt(0.0, 0.0), shape="AVG")
        assert execute(plan, memory_store).payload == {"count": 0, "properties": None}


class TestPagination:
    def test_limit_zero_is_empty(self, memory_store):
        plan = build_plan("worldclim", limit=0)
        assert execute(plan, memory_store).payload == []

    def test_start_past_end_is_empty(self, memory_store):
        plan = build_plan("worldclim", start=10)
        assert execute(plan, memory_store).payload == []

    def test_window(self, memory_store):
        everything = execute(build_plan("worldclim", shape="KEY"), memory_store).payload
        page = execute(build_plan("worldclim", shape="KEY", start=1, limit=1), memory_store).payload
        assert page == everything[1:2]

    def test_key_and_data_select_same_records(self, memory_store):
        reference = box(0, 0, 40, 60)
        data = execute(build_plan("species_occurrences", spatial=Intersects(reference), shape="DATA"),
                       memory_store).payload
        keys = execute(build_plan("species_occurrences", spatial=Intersects(reference), shape="KEY"),
                       memory_store).payload
        assert {r["geometry_hash"] for r in keys} == {r["geometry_hash"] for r in data}
        assert len(keys) == 3


class TestDescriptorRange:
    def test_range_filter(self, memory_store):
        plan = build_plan("unit_shapes", descriptor_range=DescriptorRange("area", 50, 200))
        assert [r["geometry_hash"] for r in execute(plan, memory_store).payload] == [UNIT_A]

    def test_sorted_by_descriptor(self, memory_store):
        plan = build_plan("unit_shapes", descriptor_range=DescriptorRange("alt", 0, 5000), sort="DESC")
        assert [r["geometry_hash"] for r in execute(plan, memory_store).payload] == [UNIT_B, UNIT_A]

    def test_open_ended(self, memory_store):
        plan = build_plan("unit_shapes", descriptor_range=DescriptorRange("slope", min_value=10))
        assert [r["geometry_hash"] for r in execute(plan, memory_store).payload] == [UNIT_B]


class TestSpeciesTerms:
    @pytest.mark.parametrize("terms,mode,expected", [
        ([], "ALL", 3),
        (["a", "b"], "ALL", 1),
        (["a", "b"], "ANY", 2),
        (["b", "c"], "any", 2),
        (["z"], "ANY", 0),
    ])
    def test_species_filter(self, memory_store, terms, mode, expected):
        plan = build_plan("species_occurrences", terms=terms, mode=mode)
        assert len(execute(plan, memory_store).payload) == expected

    def test_combined_with_distance(self, memory_store):
        plan = build_plan(
            "species_occurrences", spatial=DistanceRange(point(9.0, 45.0), 0, 100000),
            terms=["a"], mode="ALL",
        )
        assert len(execute(plan, memory_store).payload) == 2


class TestRemoteSensing:
    def test_grouped_by_span(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span")
        buckets = execute(plan, memory_store).payload
        assert [b["std_date_span"] for b in buckets] == [
            "std_date_span_day", "std_date_span_month", "std_date_span_year",
        ]
        assert [m["std_date"] for m in buckets[0]["std_date_series"]] == ["20100101", "20100102"]

    def test_span_filter(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span", spans=["month"])
        buckets = execute(plan, memory_store).payload
        assert len(buckets) == 1
        assert buckets[0]["std_date_series"] == [{"std_date": "201001", "properties": {"tas": 12.0}}]

    def test_terms_keep_only_requested_properties(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span",
                          terms=["pr"], mode="ANY", project_terms=True)
        buckets = execute(plan, memory_store).payload
        assert [b["std_date_span"] for b in buckets] == ["std_date_span_day", "std_date_span_year"]
        assert buckets[0]["std_date_series"] == [
            {"std_date": "20100101", "properties": {"pr": 2.0}},
            {"std_date": "20100102", "properties": {"pr": 3.0}},
        ]

    def test_date_range(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span",
                          start_date="20100102", end_date="20101231")
        buckets = execute(plan, memory_store).payload
        assert [m["std_date"] for b in buckets for m in b["std_date_series"]] == ["20100102"]

    def test_grouped_aggregate(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span", shape="AVG")
        day = execute(plan, memory_store).payload[0]
        assert day["std_date_span"] == "std_date_span_day"
        assert day["count"] == 2
        assert day["properties"] == {"pr": 2.5, "tas": 10.0}

    def test_grouped_key_drops_properties(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span", shape="KEY")
        day = execute(plan, memory_store).payload[0]
        assert day["std_date_series"] == [{"std_date": "20100101"}, {"std_date": "20100102"}]

    def test_ungrouped_observations_sorted_by_date(self, memory_store):
        plan = build_plan("unit_shapes", start_date="2010", shape="KEY")
        result = execute(plan, memory_store).payload
        dates = [r["std_date"] for r in result]
        assert dates == sorted(dates)
        assert len(result) == 5

    def test_span_summary(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A))
        spans = execute_summary(plan, memory_store, by=SummaryBy.SPAN)
        assert spans[0] == {
            "std_date_span": "std_date_span_day", "count": 2,
            "std_date_start": "20100101", "std_date_end": "20100102", "std_terms": ["pr", "tas"],
        }

    def test_summary_without_observations_is_empty(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), terms=["snow"])
        assert execute_summary(plan, memory_store) == []


class TestDroughtObservatory:
    def test_grouped_by_area_coarsest_first(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0), group="area")
        areas = execute(plan, memory_store).payload
        assert [a["geometry_hash"] for a in areas] == [COARSE, FINE]
        assert areas[0]["count"] == 2
        assert areas[0]["geometry_point_radius"] == 50000.0
        assert areas[1]["std_terms"] == ["cdi", "spi"]

    def test_grouped_by_date_finest_area_wins(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0), group="date")
        dates = execute(plan, memory_store).payload
        assert [d["std_date"] for d in dates] == ["20200101", "20200102"]
        assert dates[0]["properties"] == {
            "spi": {"value": 2.0, "quality": "low"}, "region": "coarse", "cdi": 3,
        }

    def test_only_covering_areas(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(42.0, 2.0), group="area")
        assert [a["geometry_hash"] for a in execute(plan, memory_store).payload] == [COARSE]

    def test_terms_all(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0), group="date",
                          terms=["spi", "cdi"], mode="ALL")
        assert [d["std_date"] for d in execute(plan, memory_store).payload] == ["20200101"]

    def test_date_pagination(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0), group="date",
                          start=1, limit=5)
        assert [d["std_date"] for d in execute(plan, memory_store).payload] == ["20200102"]

    def test_area_summary(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0))
        summaries = execute_summary(plan, memory_store, by="area")
        assert [s["geometry_hash"] for s in summaries] == [COARSE, FINE]
        assert "std_date_series" not in summaries[0]

    def test_overall_summary(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0), start_date="20200102")
        assert execute_summary(plan, memory_store) == [{
            "count": 1, "std_date_start": "20200102", "std_date_end": "20200102", "std_terms": ["spi"],
        }]

    def test_summary_requires_time_series(self, memory_store):
        with pytest.raises(ValidationError):
            execute_summary(build_plan("worldclim"), memory_store)


class TestStoreFailure:
    def test_missing_collection_propagates(self, memory_store):
        with pytest.raises(StoreFailure) as exc:
            execute(build_plan("chelsa"), memory_store)
        assert exc.value.collection == "chelsa"


class TestObservationOrdering:
    def test_distance_filtered_series_sorted_by_date(self, memory_store):
        def dates(sort):
            plan = build_plan(
                "unit_shapes", spatial=DistanceRange(point(9.0, 45.0), 0, 5e6),
                terms=["tas"], shape="KEY", sort=sort,
            )
            return [r["std_date"] for r in execute(plan, memory_store).payload]

        assert dates("DESC") == ["20100101", "20100101", "201001", "2010"]
        assert dates("ASC") == ["2010", "201001", "20100101", "20100101"]

    def test_descriptor_filtered_series_sorted_by_date(self, memory_store):
        plan = build_plan(
            "unit_shapes", descriptor_range=DescriptorRange("alt", 0, 1000),
            start_date="2010", shape="KEY", sort="DESC",
        )
        result = execute(plan, memory_store).payload
        assert [r["std_date"] for r in result] == ["20100102", "20100101", "201001", "2010"]

    def test_grouped_dates_descending(self, memory_store):
        plan = build_plan("drought_observatory", spatial=PointAt(45.0, 9.0), group="date", sort="DESC")
        assert [d["std_date"] for d in execute(plan, memory_store).payload] == ["20200102", "20200101"]

    def test_grouped_spans_descending_members_ascending(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), group="span", sort="DESC")
        buckets = execute(plan, memory_store).payload
        assert [b["std_date_span"] for b in buckets] == [
            "std_date_span_year", "std_date_span_month", "std_date_span_day",
        ]
        assert [m["std_date"] for m in buckets[-1]["std_date_series"]] == ["20100101", "20100102"]


class TestTermProjection:
    def test_std_terms_follow_projected_properties(self, memory_store):
        plan = build_plan("unit_shapes", terms=["pr"], mode="ANY", shape="DATA", project_terms=True)
        result = execute(plan, memory_store).payload
        assert len(result) == 3
        for record in result:
            assert record["std_terms"] == ["pr"]
            assert sorted(record["properties"]) == record["std_terms"]

    def test_projected_summary_lists_only_requested_terms(self, memory_store):
        plan = build_plan("unit_shapes", spatial=ShapeKey(UNIT_A), terms=["pr"], mode="ANY",
                          project_terms=True)
        assert execute_summary(plan, memory_store)[0]["std_terms"] == ["pr"]
