"""Tests for core.grouping (bucketing, deep merge and summaries)."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.errors import ValidationError
from core.grouping import (
    GroupBy, deep_merge, group_by_area, group_by_date, group_by_span,
    summarize, summarize_by_area, summarize_by_span,
)


def obs(geometry_hash, date, span, properties):
    return {
        "geometry_hash": geometry_hash,
        "std_date": date,
        "std_date_span": f"std_date_span_{span}",
        "std_terms": sorted(properties),
        "properties": properties,
    }


@pytest.fixture()
def series():
    return [
        obs("a", "20100102", "day", {"pr": 3.0}),
        obs("a", "2010", "year", {"tas": 11.0}),
        obs("a", "20100101", "day", {"tas": 10.0, "pr": 2.0}),
        obs("a", "201001", "month", {"tas": 12.0}),
    ]


class TestGroupByParse:
    @pytest.mark.parametrize("token,expected", [
        (None, GroupBy.NONE), ("none", GroupBy.NONE), ("span", GroupBy.SPAN),
        ("timeSpan", GroupBy.SPAN), ("DATE", GroupBy.DATE), ("area", GroupBy.AREA),
    ])
    def test_tokens(self, token, expected):
        assert GroupBy.parse(token) is expected

    def test_unknown_raises(self):
        with pytest.raises(ValidationError):
            GroupBy.parse("week")


class TestDeepMerge:
    def test_nested_maps_merge_keywise(self):
        target = {"spi": {"value": 1.0, "quality": "low"}, "region": "coarse"}
        deep_merge(target, {"spi": {"value": 2.0}, "cdi": 3})
        assert target == {"spi": {"value": 2.0, "quality": "low"}, "region": "coarse", "cdi": 3}

    def test_source_is_not_aliased(self):
        source = {"spi": {"value": 2.0}}
        target = deep_merge({}, source)
        target["spi"]["value"] = 9.0
        assert source["spi"]["value"] == 2.0


class TestGroupBySpan:
    def test_one_bucket_per_span(self, series):
        buckets = group_by_span(series)
        assert [b["std_date_span"] for b in buckets] == [
            "std_date_span_day", "std_date_span_month", "std_date_span_year",
        ]

    def test_members_ascending_by_date(self, series):
        day = group_by_span(series)[0]
        assert [m["std_date"] for m in day["std_date_series"]] == ["20100101", "20100102"]
        assert day["std_date_series"][0]["properties"] == {"tas": 10.0, "pr": 2.0}


class TestGroupByDate:
    def test_merges_properties_on_same_date(self):
        records = [
            obs("b", "20200101", "day", {"spi": {"value": 2.0}}),
            obs("a", "20200101", "day", {"spi": {"quality": "low"}, "region": "x"}),
            obs("a", "20200102", "day", {"spi": {"value": 1.5}}),
        ]
        buckets = group_by_date(records)
        assert [b["std_date"] for b in buckets] == ["20200101", "20200102"]
        assert buckets[0]["properties"] == {"spi": {"value": 2.0, "quality": "low"}, "region": "x"}

    def test_conflict_resolved_by_merge_order(self):
        records = [
            obs("fine", "20200101", "day", {"spi": 2.0}),
            obs("coarse", "20200101", "day", {"spi": 1.0}),
        ]
        radius = {"coarse": 50000.0, "fine": 5000.0}
        by_radius = group_by_date(records, merge_order=lambda o: (-radius[o["geometry_hash"]],))
        assert by_radius[0]["properties"]["spi"] == 2.0

    def test_default_order_is_independent_of_input_order(self):
        records = [
            obs("b", "20200101", "day", {"spi": 2.0}),
            obs("a", "20200101", "day", {"spi": 1.0}),
        ]
        assert group_by_date(records) == group_by_date(list(reversed(records)))
        assert group_by_date(records)[0]["properties"]["spi"] == 2.0


class TestGroupByArea:
    def test_areas_ordered_by_radius_descending(self):
        sources = {
            "fine": {"geometry_hash": "fine", "geometry_point_radius": 5000.0, "geometry": {"type": "Point"}},
            "coarse": {"geometry_hash": "coarse", "geometry_point_radius": 50000.0},
        }
        records = [
            obs("fine", "20200101", "day", {"cdi": 3}),
            obs("coarse", "20200102", "day", {"spi": 1.5}),
            obs("coarse", "20200101", "day", {"spi": 1.0}),
        ]
        buckets = group_by_area(records, sources, "geometry_point_radius",
                                ("geometry", "geometry_point_radius"))
        assert [b["geometry_hash"] for b in buckets] == ["coarse", "fine"]

        coarse = buckets[0]
        assert coarse["count"] == 2
        assert coarse["std_date_start"] == "20200101"
        assert coarse["std_date_end"] == "20200102"
        assert coarse["std_terms"] == ["spi"]
        assert coarse["geometry_point_radius"] == 50000.0
        assert [m["std_date"] for m in coarse["std_date_series"]] == ["20200101", "20200102"]
        assert buckets[1]["geometry"] == {"type": "Point"}

    def test_sources_without_members_are_omitted(self):
        sources = {"a": {"geometry_point_radius": 1.0}, "b": {"geometry_point_radius": 2.0}}
        buckets = group_by_area([obs("a", "2020", "year", {"x": 1})], sources, "geometry_point_radius")
        assert [b["geometry_hash"] for b in buckets] == ["a"]


class TestSummaries:
    def test_summarize(self, series):
        assert summarize(series) == {
            "count": 4,
            "std_date_start": "2010",
            "std_date_end": "20100102",
            "std_terms": ["pr", "tas"],
        }

    def test_summarize_empty(self):
        assert summarize([]) == {
            "count": 0, "std_date_start": None, "std_date_end": None, "std_terms": [],
        }

    def test_summarize_by_span(self, series):
        spans = summarize_by_span(series)
        assert [s["std_date_span"] for s in spans] == [
            "std_date_span_day", "std_date_span_month", "std_date_span_year",
        ]
        assert spans[0]["count"] == 2
        assert spans[0]["std_terms"] == ["pr", "tas"]

    def test_summarize_by_area_has_no_series(self):
        sources = {"a": {"geometry_point_radius": 1.0}}
        summaries = summarize_by_area([obs("a", "2020", "year", {"x": 1})], sources, "geometry_point_radius")
        assert summaries == [{
            "geometry_hash": "a", "count": 1, "std_date_start": "2020",
            "std_date_end": "2020", "std_terms": ["x"],
        }]
