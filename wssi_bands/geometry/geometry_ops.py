"""
geometry_ops.py — Fault-tolerant Shapely primitives shared by every stage.

Upstream WSSI polygons are machine-converted from a raster grid and are
routinely invalid, so every union/difference/buffer/simplify call in the
pipeline goes through :func:`run_stage`, which returns a
:class:`StageResult` instead of raising.  A failed stage carries the
pre-stage geometry forward with ``degraded=True``.

Distances are metres in EPSG:3857 (what the tiers are tuned in); areas are
geodesic km² on the WGS84 ellipsoid.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
import shapely
from pyproj import Geod, Transformer
from shapely.geometry import MultiPolygon
from shapely.geometry.polygon import orient
from shapely.validation import make_valid

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"
WEB_MERCATOR = "EPSG:3857"

# Web Mercator is undefined at the poles
MAX_MERCATOR_LAT = 85.05112878

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")

_GEOD = Geod(ellps="WGS84")


@dataclass(frozen=True)
class StageResult:
    """Outcome of one geometry stage."""

    geometry: object
    degraded: bool = False
    error: str | None = None


def run_stage(name: str, func, geometry, *args, **kwargs) -> StageResult:
    """
    Apply ``func(geometry, *args, **kwargs)`` and capture any failure.

    Args:
        name: Stage label used in log messages.
        func: Callable returning the transformed geometry.
        geometry: Input geometry (kept as the fallback result).

    Returns:
        StageResult with the new geometry, or the input geometry and
        ``degraded=True`` if ``func`` raised.
    """
    try:
        return StageResult(func(geometry, *args, **kwargs))
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        logger.warning("Stage '%s' failed, keeping input geometry: %s",
                       name, error)
        return StageResult(geometry, degraded=True, error=error)


# ── Shape helpers ───────────────────────────────────────────────────

def is_blank(geometry) -> bool:
    return geometry is None or geometry.is_empty


def polygon_parts(geometry) -> list:
    """Flatten any geometry into its Polygon members."""
    if is_blank(geometry):
        return []
    if geometry.geom_type == "Polygon":
        return [geometry]
    if hasattr(geometry, "geoms"):
        return [part for member in geometry.geoms
                for part in polygon_parts(member)]
    return []


def polygonal(geometry):
    """
    Reduce a geometry to a Polygon/MultiPolygon, dropping lines and points
    that overlay operations can leave behind.

    Returns:
        Polygon, MultiPolygon, or ``None`` when nothing areal remains.
    """
    if is_blank(geometry):
        return None
    if geometry.geom_type in POLYGONAL_TYPES:
        return geometry
    parts = polygon_parts(geometry)
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return MultiPolygon(parts)


def repair(geometry):
    """Make a geometry valid and polygonal; ``buffer(0)`` as last resort."""
    if is_blank(geometry) or geometry.is_valid:
        return polygonal(geometry)
    try:
        return polygonal(make_valid(geometry))
    except Exception as e:
        logger.debug("make_valid failed (%s), trying buffer(0)", e)
        return polygonal(geometry.buffer(0))


def vertex_count(geometry) -> int:
    """Total ring coordinates, closing points included."""
    if is_blank(geometry):
        return 0
    return int(shapely.get_num_coordinates(geometry))


# ── Set operations ──────────────────────────────────────────────────

def safe_union(left, right) -> StageResult:
    """
    Union two geometries, either of which may be ``None``.

    On failure the left-hand geometry is returned with ``degraded=True``.
    """
    if is_blank(right):
        return StageResult(left)
    if is_blank(left):
        return StageResult(right)
    result = run_stage("union", shapely.union, left, right)
    if result.degraded:
        return result
    return StageResult(polygonal(result.geometry))


def safe_difference(left, right) -> StageResult:
    """
    Subtract ``right`` from ``left``.

    On failure the un-subtracted left-hand geometry is returned with
    ``degraded=True``; the band may then overlap ``right``.
    """
    if is_blank(left):
        return StageResult(None)
    if is_blank(right):
        return StageResult(left)
    result = run_stage("difference", shapely.difference, left, right)
    if result.degraded:
        return result
    return StageResult(polygonal(result.geometry))


# ── Projection ──────────────────────────────────────────────────────

@lru_cache(maxsize=None)
def _transformer(source: str, target: str) -> Transformer:
    return Transformer.from_crs(source, target, always_xy=True)


def _reproject(geometry, source: str, target: str, clamp: bool = False):
    transformer = _transformer(source, target)

    def _apply(coords: np.ndarray) -> np.ndarray:
        xs, ys = coords[:, 0], coords[:, 1]
        if clamp:
            ys = np.clip(ys, -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT)
        x2, y2 = transformer.transform(xs, ys)
        return np.column_stack([x2, y2])

    return shapely.transform(geometry, _apply)


def to_mercator(geometry):
    """WGS84 lon/lat → EPSG:3857 metres."""
    return _reproject(geometry, WGS84, WEB_MERCATOR, clamp=True)


def to_wgs84(geometry):
    """EPSG:3857 metres → WGS84 lon/lat."""
    return _reproject(geometry, WEB_MERCATOR, WGS84)


# ── Area ────────────────────────────────────────────────────────────

def geodesic_area_km2(geometry) -> float:
    """Geodesic area of a lon/lat polygonal geometry in km²."""
    total = 0.0
    for part in polygon_parts(geometry):
        area, _ = _GEOD.geometry_area_perimeter(orient(part, sign=1.0))
        total += abs(area)
    return total / 1_000_000


def part_areas_km2(geometry) -> tuple[list, np.ndarray]:
    """Return the Polygon parts of ``geometry`` and their areas in km²."""
    parts = polygon_parts(geometry)
    areas = np.array([geodesic_area_km2(p) for p in parts], dtype=float)
    return parts, areas
