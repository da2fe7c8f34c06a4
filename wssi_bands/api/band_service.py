"""
band_service.py — Core WSSI band endpoint logic.

Orchestrates the full workflow for one forecast day:
  1. Serve from the band cache if the day's entry is still fresh
  2. Fetch raw impact polygons from the MapServer
  3. Classify features into severity buckets
  4. Dissolve each bucket
  5. Peel overlapping categories into exclusive bands
  6. Run the overview and detail tier pipelines
  7. Collect metrics and install the cache entry

Both tiers are always computed together: fetching and banding dominate
the cost, and they are shared.

Response schema (``get_day_bands``):
    {
      "day": int,
      "resolution": "overview" | "detail",
      "geojson": FeatureCollection (a fresh copy; the cache keeps its own),
      "payload": str,
      "metrics": {feature_count, vertex_count, component_count, bytes},
      "last_modified": str,
      "cached": bool,
      "processing_ms": int | None
    }
"""

import json
import logging
import time

from shapely.geometry import Point, shape

from wssi_bands.cache.band_cache import CacheEntry, get_default_cache
from wssi_bands.geometry.dissolve import dissolve_buckets
from wssi_bands.geometry.exclusive import build_exclusive_bands
from wssi_bands.geometry.metrics import collect_metrics, serialize_collection
from wssi_bands.geometry.resolution import TIERS, run_tier
from wssi_bands.geometry.severity import bucket_features
from wssi_bands.source.wssi_client import get_wssi_client

logger = logging.getLogger(__name__)

VALID_DAYS = (1, 2, 3)
DEFAULT_RESOLUTION = "overview"


class InvalidDayError(ValueError):
    """Day index outside 1–3; rejected before any fetch."""


def parse_day(value) -> int:
    """Parse and range-check a day index."""
    try:
        day = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidDayError(
            "Invalid day parameter. Must be 1, 2, or 3.") from None
    if day not in VALID_DAYS:
        raise InvalidDayError("Invalid day parameter. Must be 1, 2, or 3.")
    return day


def parse_resolution(value: str | None) -> str:
    """Anything other than ``detail`` means ``overview``."""
    return "detail" if value == "detail" else DEFAULT_RESOLUTION


def build_tier_results(features: list, day: int,
                       last_modified: str) -> tuple[dict, list]:
    """
    Run the geometry pipeline over raw features for every tier.

    Args:
        features: Upstream GeoJSON features.
        day: Forecast day.
        last_modified: Upstream validity stamp copied to every band.

    Returns:
        Tuple of (tiers, notes). ``tiers`` maps tier name to
        ``{"geojson", "payload", "metrics"}``; ``notes`` lists degraded
        geometry steps.
    """
    stage_start = time.perf_counter()
    buckets = bucket_features(features)
    dissolved = dissolve_buckets(buckets)
    logger.info("Classify + dissolve: %.0fms",
                (time.perf_counter() - stage_start) * 1000)

    stage_start = time.perf_counter()
    bands, notes = build_exclusive_bands(dissolved)
    logger.info("Exclusive bands: %.0fms",
                (time.perf_counter() - stage_start) * 1000)

    tiers = {}
    for name, tier in TIERS.items():
        geojson, tier_notes = run_tier(bands, tier, day, last_modified)
        notes.extend(f"{name}: {note}" for note in tier_notes)

        payload = serialize_collection(geojson)
        metrics = collect_metrics(geojson, payload=payload)
        tiers[name] = {"geojson": geojson, "payload": payload,
                       "metrics": metrics}

        logger.info(
            "%s: %df, %dv, %dc, %.1fKB", name,
            metrics["feature_count"], metrics["vertex_count"],
            metrics["component_count"], metrics["bytes"] / 1024,
        )

    if notes:
        logger.warning("Day %d computed with %d degraded steps",
                       day, len(notes))
    return tiers, notes


def compute_day(day: int, client=None, clock=time.time) -> CacheEntry:
    """
    Fetch and process one day from scratch.

    Raises:
        WSSIFetchError: Upstream timeout, status or network failure.
    """
    client = client or get_wssi_client()

    fetch_start = time.perf_counter()
    raw = client.fetch_day(day)
    logger.info("WSSI fetch: %.0fms", (time.perf_counter() - fetch_start) * 1000)

    tiers, notes = build_tier_results(raw["features"], day,
                                      raw["last_modified"])
    return CacheEntry(
        tiers=tiers,
        last_modified=raw["last_modified"],
        timestamp=clock(),
        notes=notes,
    )


def get_day_bands(
    day: int,
    resolution: str = DEFAULT_RESOLUTION,
    cache=None,
    client=None,
) -> dict:
    """
    Handle a band request for one day and tier.

    Args:
        day: Forecast day, 1–3.
        resolution: ``overview`` or ``detail``.
        cache: BandCache to use (defaults to the shared instance).
        client: WSSI client (defaults to ``get_wssi_client()``).

    Returns:
        Structured response dict (see module docstring).

    Raises:
        InvalidDayError: Day outside 1–3.
        WSSIFetchError: Upstream failure on a cache miss.
    """
    day = parse_day(day)
    resolution = parse_resolution(resolution)
    cache = cache or get_default_cache()

    logger.info("Band request: day=%d res=%s", day, resolution)
    start = time.perf_counter()

    entry, cached = cache.get_or_compute(
        day, lambda: compute_day(day, client=client, clock=cache.clock),
    )
    result = entry.result(resolution)

    processing_ms = None
    if not cached:
        processing_ms = int((time.perf_counter() - start) * 1000)

    logger.info("Band response: day=%d res=%s cached=%s features=%d",
                day, resolution, cached, result["metrics"]["feature_count"])

    return {
        "day": day,
        "resolution": resolution,
        "geojson": json.loads(result["payload"]),
        "payload": result["payload"],
        "metrics": dict(result["metrics"]),
        "last_modified": entry.last_modified,
        "cached": cached,
        "processing_ms": processing_ms,
    }


def lookup_point(day: int, lat: float, lon: float,
                 cache=None, client=None) -> dict:
    """
    Find the most severe detail band covering a location.

    Args:
        day: Forecast day, 1–3.
        lat: Latitude in degrees.
        lon: Longitude in degrees.

    Returns:
        Dict with ``category``, ``severity_order`` and ``display_label``
        (all ``None`` when no band covers the point) plus ``valid_time``.
    """
    response = get_day_bands(day, "detail", cache=cache, client=client)
    point = Point(lon, lat)

    best = None
    for feature in response["geojson"]["features"]:
        props = feature["properties"]
        if best is not None and props["severity_order"] <= best["severity_order"]:
            continue
        if shape(feature["geometry"]).covers(point):
            best = props

    if best is None:
        return {
            "category": None,
            "severity_order": None,
            "display_label": None,
            "valid_time": response["last_modified"],
        }
    return {
        "category": best["category"],
        "severity_order": best["severity_order"],
        "display_label": best["display_label"],
        "valid_time": best["valid_time"],
    }
