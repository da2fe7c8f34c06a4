"""
test_dissolve.py — Tests for same-category dissolve.

Validates:
  - Empty / single / multiple inputs
  - A failing union step skips only its own feature
  - Self-intersecting input never raises
"""

from unittest.mock import patch

import pytest
import shapely
from shapely.geometry import Polygon, box
from shapely.ops import unary_union

from wssi_bands.geometry.dissolve import dissolve, dissolve_buckets
from wssi_bands.geometry.severity import Severity

_real_union = shapely.union


class TestDissolve:
    """Pairwise union behaviour."""

    def test_empty_returns_none(self):
        assert dissolve([]) is None

    def test_single_returned_unchanged(self):
        geom = box(0, 0, 1, 1)
        assert dissolve([geom]) is geom

    def test_overlapping_merged(self):
        result = dissolve([box(0, 0, 2, 2), box(1, 1, 3, 3)])
        assert result.geom_type == "Polygon"
        assert result.area == pytest.approx(7.0)

    def test_disjoint_become_multipolygon(self):
        result = dissolve([box(0, 0, 1, 1), box(5, 5, 6, 6)])
        assert result.geom_type == "MultiPolygon"
        assert result.area == pytest.approx(2.0)


class TestDissolveFailures:
    """Malformed inputs degrade, never abort."""

    def test_failed_step_skips_only_that_feature(self):
        """Five minor features, the third breaks its union step."""
        good = [box(i, 0, i + 1.5, 1) for i in (0, 2, 4, 6)]
        bad = Polygon([(0, 0), (10, 10), (10, 0), (0, 10)])
        geometries = [good[0], good[1], bad, good[2], good[3]]

        def flaky_union(left, right, *args, **kwargs):
            if right is bad:
                raise shapely.errors.GEOSException(
                    "TopologyException: Input geom 1 is invalid")
            return _real_union(left, right, *args, **kwargs)

        with patch.object(shapely, "union", side_effect=flaky_union):
            result = dissolve(geometries, label="minor")

        expected = unary_union(good)
        assert result is not None
        assert result.symmetric_difference(expected).area == pytest.approx(0.0)

    def test_self_intersecting_input_does_not_raise(self):
        bowtie = Polygon([(0, 0), (2, 2), (2, 0), (0, 2)])
        result = dissolve([box(5, 5, 6, 6), bowtie, box(7, 7, 8, 8)])
        assert result is not None
        assert result.contains(box(5.1, 5.1, 5.9, 5.9))
        assert result.contains(box(7.1, 7.1, 7.9, 7.9))

    def test_every_step_failing_keeps_first(self):
        first = box(0, 0, 1, 1)
        with patch.object(shapely, "union",
                          side_effect=RuntimeError("boom")):
            result = dissolve([first, box(2, 2, 3, 3), box(4, 4, 5, 5)])
        assert result is first


class TestDissolveBuckets:
    """Per-category dissolve."""

    def test_all_categories_present(self):
        buckets = {Severity.MAJOR: [box(0, 0, 1, 1), box(1, 0, 2, 1)]}
        dissolved = dissolve_buckets(buckets)

        assert set(dissolved) == set(Severity)
        assert dissolved[Severity.MAJOR].area == pytest.approx(2.0)
        assert dissolved[Severity.EXTREME] is None
