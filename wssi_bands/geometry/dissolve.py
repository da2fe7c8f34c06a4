"""
dissolve.py — Merge all polygons of one severity into a single geometry.

Union is done pairwise, left to right, so that one malformed upstream
polygon only loses itself: a failing step skips its right-hand operand
and the running result carries forward.
"""

import logging

from wssi_bands.geometry.geometry_ops import safe_union
from wssi_bands.geometry.severity import Severity

logger = logging.getLogger(__name__)


def dissolve(geometries: list, label: str = "bucket"):
    """
    Union a list of polygonal geometries.

    Args:
        geometries: Shapely Polygon/MultiPolygon objects of one category.
        label: Name used in log messages.

    Returns:
        Polygon/MultiPolygon, or ``None`` only when ``geometries`` is
        empty.  Never raises.
    """
    if not geometries:
        return None
    if len(geometries) == 1:
        return geometries[0]

    result = geometries[0]
    skipped = 0

    for index, geom in enumerate(geometries[1:], start=1):
        step = safe_union(result, geom)
        if step.degraded:
            skipped += 1
            logger.warning("Dissolve %s: skipped feature %d (%s)",
                           label, index, step.error)
            continue
        if step.geometry is not None:
            result = step.geometry

    if skipped:
        logger.warning("Dissolve %s: %d/%d features skipped",
                       label, skipped, len(geometries))
    return result


def dissolve_buckets(buckets: dict) -> dict:
    """Dissolve every category bucket; empty buckets map to ``None``."""
    return {
        severity: dissolve(buckets.get(severity, []), label=severity.category)
        for severity in Severity
    }
