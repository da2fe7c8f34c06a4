"""
test_metrics.py — Tests for payload size and complexity counts.
"""

import json

from wssi_bands.geometry.metrics import (
    collect_metrics,
    count_geometry,
    serialize_collection,
)

SQUARE = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]
HOLE = [[0.2, 0.2], [0.4, 0.2], [0.4, 0.4], [0.2, 0.2]]


class TestCountGeometry:
    """Per-geometry counts."""

    def test_polygon_with_hole(self):
        geom = {"type": "Polygon", "coordinates": [SQUARE, HOLE]}
        assert count_geometry(geom) == (9, 1)

    def test_multipolygon(self):
        geom = {"type": "MultiPolygon", "coordinates": [[SQUARE], [SQUARE]]}
        assert count_geometry(geom) == (10, 2)

    def test_missing_or_other(self):
        assert count_geometry(None) == (0, 0)
        assert count_geometry({"type": "Point", "coordinates": [0, 0]}) == \
            (0, 0)


class TestCollectMetrics:
    """Aggregated counts over a FeatureCollection."""

    def test_empty_collection(self):
        """Counts are zero; bytes still measure the envelope."""
        fc = {"type": "FeatureCollection", "features": []}
        metrics = collect_metrics(fc)

        assert metrics["feature_count"] == 0
        assert metrics["vertex_count"] == 0
        assert metrics["component_count"] == 0
        assert metrics["bytes"] == len(serialize_collection(fc))

    def test_totals(self):
        fc = {"type": "FeatureCollection", "features": [
            {"type": "Feature", "properties": {},
             "geometry": {"type": "Polygon", "coordinates": [SQUARE]}},
            {"type": "Feature", "properties": {},
             "geometry": {"type": "MultiPolygon",
                          "coordinates": [[SQUARE, HOLE], [SQUARE]]}},
        ]}
        metrics = collect_metrics(fc)

        assert metrics["feature_count"] == 2
        assert metrics["vertex_count"] == 5 + 9 + 5
        assert metrics["component_count"] == 3

    def test_bytes_match_payload(self):
        fc = {"type": "FeatureCollection", "features": [
            {"type": "Feature", "properties": {"display_label": "Risque élevé"},
             "geometry": {"type": "Polygon", "coordinates": [SQUARE]}},
        ]}
        payload = serialize_collection(fc)
        metrics = collect_metrics(fc, payload=payload)

        assert metrics["bytes"] == len(payload.encode("utf-8"))

    def test_serialization_compact(self):
        payload = serialize_collection({"type": "FeatureCollection",
                                        "features": []})
        assert " " not in payload
        assert json.loads(payload)["features"] == []
