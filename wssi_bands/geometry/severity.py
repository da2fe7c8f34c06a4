"""
severity.py — WSSI severity categories and the feature classifier.

Severity tiers (lowest to highest)
----------------------------------

    Order   Category    Display label    Upstream label
    ─────   ─────────   ─────────────    ───────────────────
    1       elevated    Marginal Risk    Winter Weather Area
    2       minor       Slight Risk      Minor Impacts
    3       moderate    Enhanced Risk    Moderate Impacts
    4       major       Moderate Risk    Major Impacts
    5       extreme     High Risk        Extreme Impacts

The ordinal drives the difference chain in ``exclusive.py``: each band
loses the area claimed by every band above it.
"""

import logging
from enum import IntEnum

from shapely.geometry import shape

logger = logging.getLogger(__name__)


class Severity(IntEnum):
    """Five WSSI impact levels, ordered by ``value``."""

    ELEVATED = 1
    MINOR = 2
    MODERATE = 3
    MAJOR = 4
    EXTREME = 5

    @property
    def category(self) -> str:
        return self.name.lower()


# Highest first — the order bands are peeled in
SEVERITY_DESCENDING = sorted(Severity, reverse=True)

PRESENTATION = {
    Severity.ELEVATED: {
        "display_label": "Marginal Risk",
        "original_label": "Winter Weather Area",
        "color": "#60A5FA",
    },
    Severity.MINOR: {
        "display_label": "Slight Risk",
        "original_label": "Minor Impacts",
        "color": "#2563EB",
    },
    Severity.MODERATE: {
        "display_label": "Enhanced Risk",
        "original_label": "Moderate Impacts",
        "color": "#7C3AED",
    },
    Severity.MAJOR: {
        "display_label": "Moderate Risk",
        "original_label": "Major Impacts",
        "color": "#A21CAF",
    },
    Severity.EXTREME: {
        "display_label": "High Risk",
        "original_label": "Extreme Impacts",
        "color": "#DC2626",
    },
}

# ── Classifier tables ───────────────────────────────────────────────

# Attribute keys the MapServer has used for the impact label, in the
# order they are trusted.
CANDIDATE_KEYS = (
    "impact",
    "idp_wssilabel",
    "label",
    "Label",
    "LABEL",
    "name",
    "Name",
)

EXACT_SYNONYMS = {
    Severity.EXTREME: {"extreme", "extreme impacts"},
    Severity.MAJOR: {"major", "major impacts"},
    Severity.MODERATE: {"moderate", "moderate impacts"},
    Severity.MINOR: {"minor", "minor impacts"},
    Severity.ELEVATED: {"elevated", "winter weather area", "wwa"},
}

SUBSTRING_KEYWORDS = {
    Severity.EXTREME: ("extreme",),
    Severity.MAJOR: ("major",),
    Severity.MODERATE: ("moderate",),
    Severity.MINOR: ("minor",),
    Severity.ELEVATED: ("elevated", "winter weather"),
}

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


def _match_value(value: str) -> Severity | None:
    """Resolve one normalised label; exact matches win over substrings."""
    for severity in SEVERITY_DESCENDING:
        if value in EXACT_SYNONYMS[severity]:
            return severity

    for severity in SEVERITY_DESCENDING:
        if any(word in value for word in SUBSTRING_KEYWORDS[severity]):
            return severity

    return None


def classify_feature(properties: dict | None) -> Severity | None:
    """
    Map a feature's attribute bag to a severity category.

    Args:
        properties: Free-form GeoJSON properties of one upstream feature.

    Returns:
        The resolved :class:`Severity`, or ``None`` when none of the
        candidate keys carries a recognised label.
    """
    if not properties or not isinstance(properties, dict):
        return None

    for key in CANDIDATE_KEYS:
        raw = properties.get(key)
        if not raw:
            continue
        severity = _match_value(str(raw).lower().strip())
        if severity is not None:
            return severity

    return None


def empty_buckets() -> dict:
    """Return one empty list per severity, lowest first."""
    return {severity: [] for severity in Severity}


def bucket_features(features: list) -> dict:
    """
    Group raw GeoJSON features into per-severity lists of Shapely
    geometries.

    Features without polygonal geometry, with geometry Shapely cannot
    parse, or without a recognisable label are dropped.

    Args:
        features: ``features`` array of the upstream FeatureCollection.

    Returns:
        Dict mapping every :class:`Severity` to a (possibly empty) list.
    """
    buckets = empty_buckets()
    unresolved = 0
    skipped = 0

    for feature in features:
        if not isinstance(feature, dict):
            skipped += 1
            continue
        geometry = feature.get("geometry")
        if (not isinstance(geometry, dict)
                or geometry.get("type") not in POLYGONAL_TYPES):
            skipped += 1
            continue

        severity = classify_feature(feature.get("properties"))
        if severity is None:
            unresolved += 1
            continue

        try:
            geom = shape(geometry)
        except Exception as e:
            logger.debug("Unparsable %s geometry skipped: %s",
                         severity.category, e)
            skipped += 1
            continue

        if geom.is_empty:
            skipped += 1
            continue

        buckets[severity].append(geom)

    logger.info(
        "Classified %d features: %s (unresolved=%d, skipped=%d)",
        len(features),
        ", ".join(f"{s.category}={len(buckets[s])}" for s in Severity),
        unresolved,
        skipped,
    )
    return buckets
