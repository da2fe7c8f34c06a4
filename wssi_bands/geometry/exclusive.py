"""
exclusive.py — Peel overlapping per-category geometry into exclusive bands.

Difference chain, highest severity first:

    band[extreme]  = dissolved[extreme]
    band[major]    = dissolved[major]    − acc        acc = band[extreme]
    band[moderate] = dissolved[moderate] − acc        acc ∪= band[major]
    ...

Every lower band gives up the area of every higher band, so each point
ends up in exactly one band: the most severe one that covers it.
"""

import logging

from wssi_bands.geometry.geometry_ops import (
    is_blank,
    safe_difference,
    safe_union,
)
from wssi_bands.geometry.severity import SEVERITY_DESCENDING, Severity

logger = logging.getLogger(__name__)


def build_exclusive_bands(dissolved: dict) -> tuple[dict, list]:
    """
    Convert overlapping dissolved geometries into non-overlapping bands.

    Args:
        dissolved: Mapping of :class:`Severity` to Polygon/MultiPolygon
                   (or ``None``).

    Returns:
        Tuple of (bands, notes). ``bands`` maps every severity to its
        exclusive geometry or ``None``; ``notes`` lists degraded steps.
        A failed difference leaves that band un-subtracted; a failed
        accumulator union keeps the previous accumulator.
    """
    bands = {severity: None for severity in Severity}
    notes = []
    acc = None

    for severity in SEVERITY_DESCENDING:
        source = dissolved.get(severity)

        diff = safe_difference(source, acc)
        if diff.degraded:
            notes.append(f"{severity.category}: difference failed ({diff.error})")
            logger.warning("Band %s left un-subtracted and may overlap "
                           "higher bands", severity.category)
        band = None if is_blank(diff.geometry) else diff.geometry
        bands[severity] = band

        merged = safe_union(acc, band)
        if merged.degraded:
            notes.append(f"{severity.category}: accumulator union failed "
                         f"({merged.error})")
        else:
            acc = merged.geometry

    logger.info(
        "Exclusive bands: %s",
        ", ".join(f"{s.category}={'yes' if bands[s] is not None else 'no'}"
                  for s in Severity),
    )
    return bands, notes
