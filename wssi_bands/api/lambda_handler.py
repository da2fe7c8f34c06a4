"""
lambda_handler.py — AWS Lambda + API Gateway wrapper for the WSSI band API.

Parses the ``day`` path parameter and ``res`` query parameter, delegates
to ``band_service.get_day_bands()``, and returns the FeatureCollection
with cache and metrics headers.

Expected API Gateway queries:
    GET /wssi/day/{day}?res=overview|detail
    GET /wssi/debug/{day}?res=overview|detail
"""

import json
import logging
import traceback

from wssi_bands.api.band_service import (
    InvalidDayError,
    get_day_bands,
    parse_resolution,
)
from wssi_bands.source.wssi_client import WSSIFetchError

logger = logging.getLogger(__name__)

SUCCESS_CACHE_CONTROL = "public, s-maxage=900, stale-while-revalidate=3600"
ERROR_CACHE_CONTROL = "public, max-age=30"

# Payload targets reported by the debug endpoint
TARGET_MAX_FEATURES = 5
TARGET_MAX_BYTES_KB = 500


def _configure_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _read_params(event: dict) -> tuple[str, str | None]:
    path = event.get("pathParameters") or {}
    query = event.get("queryStringParameters") or {}
    return path.get("day", ""), query.get("res")


def _error_response(status: int, message: str) -> dict:
    return {
        "statusCode": status,
        "headers": {
            "Content-Type": "application/json",
            "Cache-Control": ERROR_CACHE_CONTROL,
        },
        "body": json.dumps({
            "type": "FeatureCollection",
            "features": [],
            "error": message,
        }),
    }


def _bad_request(message: str) -> dict:
    return {
        "statusCode": 400,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"error": message}),
    }


def build_headers(result: dict) -> dict:
    """Informational response headers for a band result."""
    metrics = result["metrics"]
    headers = {
        "Content-Type": "application/json",
        "Cache-Control": SUCCESS_CACHE_CONTROL,
        "X-WSSI-Last-Modified": result["last_modified"],
        "X-WSSI-Features": str(metrics["feature_count"]),
        "X-WSSI-Vertices": str(metrics["vertex_count"]),
        "X-WSSI-Components": str(metrics["component_count"]),
        "X-WSSI-Bytes": str(metrics["bytes"]),
        "X-WSSI-Resolution": result["resolution"],
        "X-WSSI-Cached": "true" if result["cached"] else "false",
    }
    if result["processing_ms"] is not None:
        headers["X-WSSI-Processing-Time"] = str(result["processing_ms"])
    return headers


def handler(event, context, cache=None, client=None):
    """
    AWS Lambda entrypoint for the band API.

    Invoked via API Gateway HTTP API (v2 payload format).
    """
    _configure_logging()
    raw_day, raw_res = _read_params(event)

    try:
        result = get_day_bands(raw_day, parse_resolution(raw_res),
                               cache=cache, client=client)
        return {
            "statusCode": 200,
            "headers": build_headers(result),
            "body": result["payload"],
        }

    except InvalidDayError as e:
        logger.error("Invalid parameters: %s", e)
        return _bad_request(str(e))

    except WSSIFetchError as e:
        logger.error("Upstream failure: %s", e)
        return _error_response(500, str(e))

    except Exception as e:
        logger.error("Unhandled error: %s\n%s", e, traceback.format_exc())
        return _error_response(500, str(e) or "Unknown error")


def debug_handler(event, context, cache=None, client=None):
    """
    Report metrics and cache status for a day without the geometry body.
    """
    _configure_logging()
    raw_day, raw_res = _read_params(event)
    resolution = parse_resolution(raw_res)

    try:
        result = get_day_bands(raw_day, resolution, cache=cache, client=client)
    except InvalidDayError:
        return _bad_request("Invalid day")
    except Exception as e:
        logger.error("Debug request failed: %s", e)
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": str(e) or "Unknown error"}),
        }

    metrics = result["metrics"]
    body = {
        "day": result["day"],
        "resolution": resolution,
        "metrics": {
            **metrics,
            "bytes_kb": round(metrics["bytes"] / 1024, 1),
            "bytes_mb": round(metrics["bytes"] / 1024 / 1024, 2),
        },
        "status": {
            "cached": result["cached"],
            "processing_time_ms": result["processing_ms"],
            "last_modified": result["last_modified"],
        },
        "targets": {
            "max_features": TARGET_MAX_FEATURES,
            "max_bytes_kb": TARGET_MAX_BYTES_KB,
            "feature_ok": metrics["feature_count"] <= TARGET_MAX_FEATURES,
            "bytes_ok": metrics["bytes"] <= TARGET_MAX_BYTES_KB * 1024,
        },
    }
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
