"""
resolution.py — Per-tier simplify/smooth/filter pipeline for exclusive bands.

Each exclusive band is projected to EPSG:3857 once and run through:

    1. pre-simplify      fast Douglas-Peucker, cuts vertices before buffering
    2. smoothing         buffer out, buffer back in (detail tier only)
    3. post-simplify     topology-preserving, on the smoothed shape
    4. vertex cap        re-simplify with growing tolerance if still too dense
    5. re-clip           remove area already rendered by higher bands
    6. fragment filter   drop parts below the tier's minimum area
    7. area check        drop the band if what is left is below minimum

Stages 1–5 fall back to their input geometry on failure.  Bands are
processed from extreme down so stage 5 can see what the higher bands
actually rendered, then emitted lowest first so a renderer that paints
features in order overpaints correctly.

Tier parameters (metres in EPSG:3857, areas in km²)
---------------------------------------------------

    Tier       pre     smoothing        post    min area
    ────────   ─────   ──────────────   ─────   ────────
    overview   10 km   off              4 km    500
    detail     2 km    5 km out / in    750 m   50
"""

import logging
import time
from dataclasses import dataclass

import shapely
from shapely.geometry import MultiPolygon, mapping

from wssi_bands.geometry.geometry_ops import (
    StageResult,
    geodesic_area_km2,
    is_blank,
    part_areas_km2,
    polygon_parts,
    repair,
    run_stage,
    safe_difference,
    safe_union,
    to_mercator,
    to_wgs84,
    vertex_count,
)
from wssi_bands.geometry.severity import (
    PRESENTATION,
    SEVERITY_DESCENDING,
)

logger = logging.getLogger(__name__)

# Mapbox triangulation starts failing well above this per feature
MAX_VERTICES_PER_FEATURE = 15000
VERTEX_CAP_ATTEMPTS = 5
VERTEX_CAP_GROWTH = 1.5


@dataclass(frozen=True)
class TierConfig:
    """Simplification and filtering parameters for one output tier."""

    name: str
    pre_simplify_m: float
    use_smoothing: bool
    buffer_out_m: float
    buffer_in_m: float
    buffer_steps: int
    post_simplify_m: float
    min_area_km2: float
    max_vertices: int = MAX_VERTICES_PER_FEATURE
    reclip_to_higher: bool = True
    grid_size_deg: float | None = 1e-5


OVERVIEW = TierConfig(
    name="overview",
    pre_simplify_m=10000,
    use_smoothing=False,
    buffer_out_m=0,
    buffer_in_m=0,
    buffer_steps=0,
    post_simplify_m=4000,
    min_area_km2=500,
)

DETAIL = TierConfig(
    name="detail",
    pre_simplify_m=2000,
    use_smoothing=True,
    buffer_out_m=5000,
    buffer_in_m=5000,
    buffer_steps=2,
    post_simplify_m=750,
    min_area_km2=50,
)

TIERS = {tier.name: tier for tier in (OVERVIEW, DETAIL)}


# ── Stage functions (EPSG:3857) ─────────────────────────────────────

def _pre_simplify(geom, tolerance: float):
    return repair(geom.simplify(tolerance, preserve_topology=False))


def _smooth(geom, out_m: float, in_m: float, steps: int):
    quad_segs = max(1, steps)
    grown = geom.buffer(out_m, quad_segs=quad_segs)
    return repair(grown.buffer(-in_m, quad_segs=quad_segs))


def _post_simplify(geom, tolerance: float):
    return repair(geom.simplify(tolerance, preserve_topology=True))


def _cap_vertices(geom, tolerance: float, max_vertices: int):
    attempts = 0
    while vertex_count(geom) > max_vertices and attempts < VERTEX_CAP_ATTEMPTS:
        tolerance *= VERTEX_CAP_GROWTH
        logger.debug("Vertex count %d > %d, re-simplifying at %.0fm",
                     vertex_count(geom), max_vertices, tolerance)
        geom = _post_simplify(geom, tolerance)
        attempts += 1
    if vertex_count(geom) > max_vertices:
        logger.warning("Could not reduce vertices under %d after %d attempts",
                       max_vertices, VERTEX_CAP_ATTEMPTS)
    return geom


def _drop_small_parts(geom, min_area_km2: float):
    parts = polygon_parts(geom)
    _, areas = part_areas_km2(to_wgs84(geom))
    kept = [part for part, keep in zip(parts, areas >= min_area_km2) if keep]
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return MultiPolygon(kept)


def _snap_to_grid(geom, grid_size: float):
    return repair(shapely.set_precision(geom, grid_size))


# ── Band pipeline ───────────────────────────────────────────────────

def _track(stage: str, result: StageResult, notes: list, label: str):
    if result.degraded:
        notes.append(f"{label}: {stage} failed ({result.error})")
    logger.debug("%s %s: %d vertices", label, stage,
                 vertex_count(result.geometry))
    return result.geometry


def process_band(geometry, tier: TierConfig, higher=None,
                 label: str = "band") -> tuple:
    """
    Run one exclusive band through the tier pipeline.

    Args:
        geometry: Band geometry in WGS84 lon/lat.
        tier: Tier parameters.
        higher: Union (EPSG:3857) of bands already rendered above this
                one in the same tier, or ``None``.
        label: Name used in logs and notes.

    Returns:
        Tuple of (mercator_geometry, wgs84_geometry, notes). Both
        geometries are ``None`` when the band is dropped for this tier.
    """
    notes = []
    if is_blank(geometry):
        return None, None, notes

    projected = run_stage("project", to_mercator, geometry)
    if projected.degraded:
        notes.append(f"{label}: projection failed ({projected.error})")
        return None, None, notes
    geom = projected.geometry

    geom = _track("pre-simplify",
                  run_stage("pre-simplify", _pre_simplify, geom,
                            tier.pre_simplify_m),
                  notes, label)

    if tier.use_smoothing and not is_blank(geom):
        geom = _track("smoothing",
                      run_stage("smoothing", _smooth, geom,
                                tier.buffer_out_m, tier.buffer_in_m,
                                tier.buffer_steps),
                      notes, label)

    if not is_blank(geom):
        geom = _track("post-simplify",
                      run_stage("post-simplify", _post_simplify, geom,
                                tier.post_simplify_m),
                      notes, label)

    if not is_blank(geom):
        geom = _track("vertex-cap",
                      run_stage("vertex-cap", _cap_vertices, geom,
                                tier.post_simplify_m, tier.max_vertices),
                      notes, label)

    if tier.reclip_to_higher and not is_blank(geom):
        geom = _track("re-clip", safe_difference(geom, higher), notes, label)

    if is_blank(geom):
        logger.info("Dropping %s (%s): empty after simplification",
                    label, tier.name)
        return None, None, notes

    filtered = run_stage("fragment-filter", _drop_small_parts, geom,
                         tier.min_area_km2)
    geom = _track("fragment-filter", filtered, notes, label)
    if is_blank(geom):
        logger.info("Dropping %s (%s): every part below %.0f km²",
                    label, tier.name, tier.min_area_km2)
        return None, None, notes

    result = run_stage("unproject", to_wgs84, geom)
    if result.degraded:
        notes.append(f"{label}: unprojection failed ({result.error})")
        return None, None, notes
    output = result.geometry

    if tier.grid_size_deg:
        snapped = run_stage("snap", _snap_to_grid, output, tier.grid_size_deg)
        output = _track("snap", snapped, notes, label)

    try:
        area = geodesic_area_km2(output)
    except Exception as e:
        notes.append(f"{label}: area check failed ({e})")
        return None, None, notes

    if is_blank(output) or area < tier.min_area_km2:
        logger.info("Dropping %s (%s): area %.0f km² < %.0f km²",
                    label, tier.name, area, tier.min_area_km2)
        return None, None, notes

    return geom, output, notes


def render_feature(severity, geometry, day: int, valid_time: str) -> dict:
    """Build the GeoJSON feature served for one band."""
    info = PRESENTATION[severity]
    return {
        "type": "Feature",
        "geometry": mapping(geometry),
        "properties": {
            "day": day,
            "category": severity.category,
            "display_label": info["display_label"],
            "original_label": info["original_label"],
            "color": info["color"],
            "severity_order": int(severity),
            "valid_time": valid_time,
        },
    }


def run_tier(bands: dict, tier: TierConfig, day: int,
             valid_time: str) -> tuple[dict, list]:
    """
    Produce the render-ready FeatureCollection for one tier.

    Args:
        bands: Exclusive bands keyed by severity (WGS84, may be ``None``).
        tier: Tier parameters.
        day: Forecast day, copied into feature properties.
        valid_time: Upstream ``Last-Modified`` stamp.

    Returns:
        Tuple of (FeatureCollection dict sorted by ascending
        ``severity_order``, degradation notes).
    """
    start = time.perf_counter()
    features = []
    notes = []
    rendered_above = None

    for severity in SEVERITY_DESCENDING:
        band = bands.get(severity)
        if band is None:
            continue

        mercator, output, band_notes = process_band(
            band, tier, higher=rendered_above, label=severity.category,
        )
        notes.extend(band_notes)
        if output is None:
            continue

        features.append(render_feature(severity, output, day, valid_time))

        merged = safe_union(rendered_above, mercator)
        if not merged.degraded:
            rendered_above = merged.geometry

    features.sort(key=lambda f: f["properties"]["severity_order"])

    logger.info("Tier %s: %d bands in %.0fms", tier.name, len(features),
                (time.perf_counter() - start) * 1000)
    return {"type": "FeatureCollection", "features": features}, notes
