"""
main.py — CLI entry point for WSSI exclusive bands.

Usage:
    python main.py 1
    python main.py 2 --res detail --output day2_detail.geojson
    python main.py 1 --mock --verbose
    python main.py 1 --point 41.88,-87.63
"""

import argparse
import json
import logging
import sys

from wssi_bands.api.band_service import (
    InvalidDayError,
    get_day_bands,
    lookup_point,
)
from wssi_bands.source.wssi_client import WSSIFetchError, get_wssi_client


def _parse_point(value: str) -> tuple[float, float]:
    """Parse 'lat,lon' string to (lat, lon) tuple."""
    parts = value.strip().split(",")
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"Expected 'lat,lon', got '{value}'")
    return (float(parts[0]), float(parts[1]))


def main():
    parser = argparse.ArgumentParser(
        prog="wssi-bands",
        description="WSSI Exclusive Bands — render-ready winter impact polygons",
        epilog="Example: python main.py 1 --res detail --output day1.geojson",
    )
    parser.add_argument(
        "day",
        help="Forecast day (1, 2, or 3)",
    )
    parser.add_argument(
        "--res", "-r",
        choices=["overview", "detail"],
        default="overview",
        help="Output tier (default: overview)",
    )
    parser.add_argument(
        "--output", "-o",
        help="Path to write the GeoJSON FeatureCollection (optional)",
        default=None,
    )
    parser.add_argument(
        "--point", "-p",
        type=_parse_point,
        default=None,
        help="Report the band covering 'lat,lon' instead of writing bands",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use synthetic features instead of the NOAA MapServer",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    client = get_wssi_client(mock=args.mock)

    try:
        if args.point is not None:
            lat, lon = args.point
            print(json.dumps(lookup_point(args.day, lat, lon, client=client),
                             indent=2))
            return

        result = get_day_bands(args.day, args.res, client=client)
    except (InvalidDayError, WSSIFetchError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(result["payload"])
        logging.getLogger(__name__).info("Wrote %s", args.output)

    print(json.dumps({
        "day": result["day"],
        "resolution": result["resolution"],
        "last_modified": result["last_modified"],
        "metrics": result["metrics"],
        "processing_ms": result["processing_ms"],
    }, indent=2))


if __name__ == "__main__":
    main()
