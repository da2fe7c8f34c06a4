"""
mock_features.py — Synthetic WSSI FeatureCollections for local runs.

Mimics the upstream product: a gridded impact index thresholded into
nested, stair-stepped polygons (one set per severity), with overlapping
categories and one feature the classifier cannot resolve.  Used by
``MockWSSIClient`` so the whole pipeline runs without network access.
"""

import logging

import numpy as np
from shapely.geometry import box, mapping
from shapely.ops import unary_union

logger = logging.getLogger(__name__)

# Grid cell size in degrees — coarse enough to show raster stair-steps
CELL_DEG = 0.2

# Study area: central CONUS, shifted east one step per forecast day
BBOX = {
    "min_lon": -100.0,
    "max_lon": -86.0,
    "min_lat": 36.0,
    "max_lat": 44.0,
}
DAY_SHIFT_DEG = 1.5

# Impact index thresholds, lowest category first
THRESHOLDS = (
    ("Winter Weather Area", 0.15),
    ("Minor", 0.30),
    ("Moderate", 0.50),
    ("Major", 0.70),
    ("Extreme", 0.88),
)

MOCK_LAST_MODIFIED = "Mon, 19 Jan 2026 12:00:00 GMT"


def generate_impact_grid(day: int = 1, seed: int | None = None) -> tuple:
    """
    Build a synthetic impact-index grid for one forecast day.

    Args:
        day: Forecast day (moves the storm east).
        seed: Optional RNG seed for reproducible noise.

    Returns:
        Tuple of (lon_edges, lat_edges, index) where ``index`` is a 2D
        array of values in [0, 1], one per cell.
    """
    rng = np.random.default_rng(seed)
    shift = (day - 1) * DAY_SHIFT_DEG

    lon_edges = np.arange(BBOX["min_lon"], BBOX["max_lon"] + CELL_DEG, CELL_DEG)
    lat_edges = np.arange(BBOX["min_lat"], BBOX["max_lat"] + CELL_DEG, CELL_DEG)
    lon_c = (lon_edges[:-1] + lon_edges[1:]) / 2
    lat_c = (lat_edges[:-1] + lat_edges[1:]) / 2
    xx, yy = np.meshgrid(lon_c, lat_c)

    # Elongated storm footprint, SW–NE tilt
    cx, cy = -94.0 + shift, 40.0
    dx, dy = xx - cx, yy - cy
    u = (dx + 0.4 * dy) / 4.5
    v = (dy - 0.2 * dx) / 2.0
    index = np.exp(-0.5 * (u ** 2 + v ** 2))

    index += rng.normal(0, 0.02, size=index.shape)
    index = np.clip(index, 0.0, 1.0)

    return lon_edges, lat_edges, index


def _cells_to_polygon(lon_edges, lat_edges, mask: np.ndarray):
    rows, cols = np.nonzero(mask)
    cells = [
        box(lon_edges[c], lat_edges[r], lon_edges[c + 1], lat_edges[r + 1])
        for r, c in zip(rows, cols)
    ]
    if not cells:
        return None
    return unary_union(cells)


def generate_mock_features(day: int = 1, seed: int | None = 42) -> list:
    """
    Generate raw upstream-style features for one day.

    The lowest category is split into a west and an east feature that
    share a seam, and an unlabelled feature is appended, so dissolve and
    the classifier's drop path are both exercised.

    Returns:
        List of GeoJSON Feature dicts.
    """
    lon_edges, lat_edges, index = generate_impact_grid(day, seed=seed)
    mid_col = index.shape[1] // 2
    features = []
    object_id = 1

    for label, threshold in THRESHOLDS:
        mask = index >= threshold
        pieces = [mask]
        if label == THRESHOLDS[0][0]:
            west = mask.copy()
            west[:, mid_col:] = False
            east = mask.copy()
            east[:, :mid_col] = False
            pieces = [west, east]

        for piece in pieces:
            polygon = _cells_to_polygon(lon_edges, lat_edges, piece)
            if polygon is None:
                continue
            features.append({
                "type": "Feature",
                "geometry": mapping(polygon),
                "properties": {
                    "OBJECTID": object_id,
                    "impact": label,
                    "product": "Overall Impact",
                },
            })
            object_id += 1

    features.append({
        "type": "Feature",
        "geometry": mapping(box(-80.0, 30.0, -79.0, 31.0)),
        "properties": {"OBJECTID": object_id, "impact": "Outside Coverage"},
    })

    logger.info("Generated %d mock WSSI features for day %d",
                len(features), day)
    return features
