"""
test_band_service.py — Tests for the band request orchestration.

Validates:
  - Day / resolution parsing
  - Fetch → classify → dissolve → exclusive → tiers
  - Caching across tiers and days
  - Point lookup
"""

from unittest.mock import MagicMock

import pytest
from shapely.geometry import box, mapping

from wssi_bands.api.band_service import (
    InvalidDayError,
    build_tier_results,
    get_day_bands,
    lookup_point,
    parse_day,
    parse_resolution,
)
from wssi_bands.cache.band_cache import BandCache
from wssi_bands.source.wssi_client import MockWSSIClient, UpstreamTimeoutError

STAMP = "Tue, 20 Jan 2026 06:00:00 GMT"


def _feature(geom, impact):
    return {"type": "Feature", "geometry": mapping(geom),
            "properties": {"impact": impact}}


NESTED = [
    _feature(box(-96, 38, -92, 42), "Major"),
    _feature(box(-95, 39, -93, 41), "Extreme"),
    _feature(box(-80, 30, -79, 31), "Heavy Rain"),
]


class TestParsing:
    """Request parameter validation."""

    @pytest.mark.parametrize("value, expected", [
        ("1", 1), ("2", 2), (" 3 ", 3), (1, 1),
    ])
    def test_valid_days(self, value, expected):
        assert parse_day(value) == expected

    @pytest.mark.parametrize("value", ["0", "4", "-1", "abc", "", None, "1.5"])
    def test_invalid_days(self, value):
        with pytest.raises(InvalidDayError):
            parse_day(value)

    def test_invalid_day_is_value_error(self):
        assert issubclass(InvalidDayError, ValueError)

    @pytest.mark.parametrize("value, expected", [
        ("detail", "detail"), ("overview", "overview"),
        (None, "overview"), ("hires", "overview"), ("DETAIL", "overview"),
    ])
    def test_resolution(self, value, expected):
        assert parse_resolution(value) == expected


class TestBuildTierResults:
    """Pipeline over raw features."""

    def test_both_tiers(self):
        tiers, notes = build_tier_results(NESTED, 1, STAMP)

        assert set(tiers) == {"overview", "detail"}
        assert notes == []
        for tier in tiers.values():
            categories = [f["properties"]["category"]
                          for f in tier["geojson"]["features"]]
            assert categories == ["major", "extreme"]
            assert tier["metrics"]["feature_count"] == 2
            assert tier["metrics"]["bytes"] == len(tier["payload"].encode())

    def test_valid_time_copied(self):
        tiers, _ = build_tier_results(NESTED, 3, STAMP)
        for feature in tiers["detail"]["geojson"]["features"]:
            assert feature["properties"]["valid_time"] == STAMP
            assert feature["properties"]["day"] == 3

    def test_no_features(self):
        tiers, _ = build_tier_results([], 1, STAMP)
        for tier in tiers.values():
            assert tier["geojson"]["features"] == []
            assert tier["metrics"]["feature_count"] == 0
            assert tier["metrics"]["vertex_count"] == 0

    def test_only_unresolvable(self):
        tiers, _ = build_tier_results(NESTED[2:], 1, STAMP)
        assert tiers["overview"]["geojson"]["features"] == []

    def test_idempotent(self):
        first, _ = build_tier_results(NESTED, 1, STAMP)
        second, _ = build_tier_results(NESTED, 1, STAMP)
        assert first["overview"]["payload"] == second["overview"]["payload"]
        assert first["detail"]["payload"] == second["detail"]["payload"]


class TestGetDayBands:
    """Caching and response shape."""

    def setup_method(self):
        self.now = [1_000.0]
        self.cache = BandCache(ttl_seconds=900, clock=lambda: self.now[0])
        self.client = MockWSSIClient(features=NESTED, last_modified=STAMP)

    def test_response_shape(self):
        result = get_day_bands("1", "detail", cache=self.cache,
                               client=self.client)

        assert result["day"] == 1
        assert result["resolution"] == "detail"
        assert result["last_modified"] == STAMP
        assert result["cached"] is False
        assert isinstance(result["processing_ms"], int)
        assert result["geojson"]["type"] == "FeatureCollection"

    def test_second_tier_served_from_cache(self):
        """One fetch populates both tiers."""
        get_day_bands(1, "overview", cache=self.cache, client=self.client)
        result = get_day_bands(1, "detail", cache=self.cache,
                               client=self.client)

        assert result["cached"] is True
        assert result["processing_ms"] is None
        assert self.client.calls == 1

    def test_refetch_after_ttl(self):
        get_day_bands(1, cache=self.cache, client=self.client)
        self.now[0] += 901
        result = get_day_bands(1, cache=self.cache, client=self.client)

        assert result["cached"] is False
        assert self.client.calls == 2

    def test_returned_geojson_does_not_alter_cache(self):
        """Editing a response leaves the next cached response intact."""
        first = get_day_bands(1, cache=self.cache, client=self.client)
        first["geojson"]["features"].clear()
        first["metrics"]["feature_count"] = 0

        second = get_day_bands(1, cache=self.cache, client=self.client)
        assert second["cached"] is True
        assert len(second["geojson"]["features"]) == 2
        assert second["metrics"]["feature_count"] == 2

    def test_days_cached_separately(self):
        get_day_bands(1, cache=self.cache, client=self.client)
        get_day_bands(2, cache=self.cache, client=self.client)
        assert self.client.calls == 2

    def test_invalid_day_skips_fetch(self):
        with pytest.raises(InvalidDayError):
            get_day_bands("4", cache=self.cache, client=self.client)
        assert self.client.calls == 0

    def test_upstream_error_not_cached(self):
        failing = MagicMock()
        failing.fetch_day.side_effect = UpstreamTimeoutError(
            "NOAA API timeout - try again")

        with pytest.raises(UpstreamTimeoutError):
            get_day_bands(1, cache=self.cache, client=failing)
        assert self.cache.get(1) is None

        result = get_day_bands(1, cache=self.cache, client=self.client)
        assert result["cached"] is False


class TestLookupPoint:
    """Most severe band at a location."""

    def setup_method(self):
        self.cache = BandCache(ttl_seconds=900)
        self.client = MockWSSIClient(features=NESTED, last_modified=STAMP)

    def test_core(self):
        result = lookup_point(1, 40.0, -94.0, cache=self.cache,
                              client=self.client)
        assert result["category"] == "extreme"
        assert result["severity_order"] == 5
        assert result["display_label"] == "High Risk"

    def test_ring(self):
        result = lookup_point(1, 41.6, -95.6, cache=self.cache,
                              client=self.client)
        assert result["category"] == "major"

    def test_outside(self):
        result = lookup_point(1, 30.5, -79.5, cache=self.cache,
                              client=self.client)
        assert result["category"] is None
        assert result["valid_time"] == STAMP
