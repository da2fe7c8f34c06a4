"""
metrics.py — Size and complexity counts for a rendered tier.

Counts are reported in response headers and logs so payload growth is
visible without downloading the body.
"""

import json


def serialize_collection(feature_collection: dict) -> str:
    """Compact JSON used for both the response body and the byte count."""
    return json.dumps(feature_collection, separators=(",", ":"))


def count_geometry(geometry: dict) -> tuple[int, int]:
    """
    Count ring coordinates and polygon parts of a GeoJSON geometry.

    Returns:
        Tuple of (vertices, components).
    """
    if not geometry:
        return 0, 0
    geom_type = geometry.get("type")
    coords = geometry.get("coordinates") or []

    if geom_type == "Polygon":
        return sum(len(ring) for ring in coords), 1
    if geom_type == "MultiPolygon":
        vertices = sum(len(ring) for polygon in coords for ring in polygon)
        return vertices, len(coords)
    return 0, 0


def collect_metrics(feature_collection: dict,
                    payload: str | None = None) -> dict:
    """
    Aggregate counts over a rendered FeatureCollection.

    Args:
        feature_collection: Output of ``resolution.run_tier``.
        payload: Pre-serialised body, if already built.

    Returns:
        Dict with ``feature_count``, ``vertex_count``, ``component_count``
        and ``bytes`` (UTF-8 length of the serialised body).
    """
    features = feature_collection.get("features", [])
    vertices = 0
    components = 0
    for feature in features:
        v, c = count_geometry(feature.get("geometry"))
        vertices += v
        components += c

    if payload is None:
        payload = serialize_collection(feature_collection)

    return {
        "feature_count": len(features),
        "vertex_count": vertices,
        "component_count": components,
        "bytes": len(payload.encode("utf-8")),
    }
