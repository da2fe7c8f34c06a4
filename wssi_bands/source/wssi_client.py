"""
wssi_client.py — HTTP client for the WPC WSSI ArcGIS MapServer.

Fetches the Overall Impact layer for a forecast day as GeoJSON, with a
hard timeout.  Includes a ``MockWSSIClient`` for local testing that
returns synthetic features without network access.
"""

import json
import logging
import os
import socket
import time
from datetime import datetime, timezone
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from wssi_bands.source.mock_features import (
    MOCK_LAST_MODIFIED,
    generate_mock_features,
)

logger = logging.getLogger(__name__)

DEFAULT_MAPSERVER_BASE = (
    "https://mapservices.weather.noaa.gov/vector/rest/services/"
    "outlooks/wpc_wssi/MapServer"
)
DEFAULT_USER_AGENT = "wssi-bands"
DEFAULT_TIMEOUT_SECONDS = 25.0
READ_CHUNK_BYTES = 65536

# MapServer layer IDs for Overall_Impact_Day_{1,2,3}
LAYER_IDS = {1: 1, 2: 2, 3: 3}


# ── Errors ──────────────────────────────────────────────────────────

class WSSIFetchError(Exception):
    """Upstream fetch failed; the only error class that reaches callers."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeoutError(WSSIFetchError):
    retryable = True


class UpstreamStatusError(WSSIFetchError):
    pass


def _fallback_last_modified() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_read_timeout(resp, seconds: float) -> None:
    # http.client keeps the socket behind the buffered reader
    raw = getattr(getattr(resp, "fp", None), "raw", None)
    sock = getattr(raw, "_sock", None)
    if sock is not None:
        sock.settimeout(seconds)


def _read_body(resp, deadline: float) -> bytes:
    """
    Read the response body in chunks, abandoning it once ``deadline``
    (a ``time.monotonic()`` value) passes.

    The socket timeout only bounds each recv, so a slowly trickling
    upstream is cut off here instead.
    """
    chunks = []
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.error("WSSI body not complete before deadline")
            raise UpstreamTimeoutError("NOAA API timeout - try again")
        _set_read_timeout(resp, remaining)
        chunk = resp.read1(READ_CHUNK_BYTES)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


class WSSIClient:
    """
    HTTP client for the MapServer ``/{layer}/query`` endpoint.

    Args:
        base_url: MapServer root. Defaults to ``WSSI_MAPSERVER_BASE``.
        timeout: Seconds before the request is abandoned. Defaults to
                 ``WSSI_FETCH_TIMEOUT`` or 25.
        user_agent: Identifying client header. Defaults to
                    ``WSSI_USER_AGENT``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
    ):
        self.base_url = (
            base_url
            or os.environ.get("WSSI_MAPSERVER_BASE", DEFAULT_MAPSERVER_BASE)
        ).rstrip("/")
        self.timeout = (
            timeout if timeout is not None
            else float(os.environ.get("WSSI_FETCH_TIMEOUT",
                                      DEFAULT_TIMEOUT_SECONDS))
        )
        self.user_agent = (
            user_agent
            or os.environ.get("WSSI_USER_AGENT", DEFAULT_USER_AGENT)
        )

    def query_url(self, day: int) -> str:
        layer_id = LAYER_IDS.get(day)
        if layer_id is None:
            raise ValueError(f"Invalid day: {day}")
        return (
            f"{self.base_url}/{layer_id}/query"
            f"?where=1%3D1&outFields=*&f=geojson&returnGeometry=true"
        )

    def fetch_day(self, day: int) -> dict:
        """
        Fetch the raw impact polygons for one day.

        Args:
            day: Forecast day, 1–3.

        Returns:
            Dict with ``features`` (list of GeoJSON features) and
            ``last_modified`` (upstream ``Last-Modified``, else ``Date``,
            else the current UTC time).

        Raises:
            UpstreamTimeoutError: No complete response within the timeout.
            UpstreamStatusError: Non-2xx response.
            WSSIFetchError: Network failure or unreadable body.
        """
        url = self.query_url(day)
        logger.info("WSSI request: %s", url)

        req = Request(url, headers={
            "User-Agent": self.user_agent,
            "Accept": "application/geo+json, application/json",
        })

        deadline = time.monotonic() + self.timeout
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                headers = resp.headers
                body = _read_body(resp, deadline)
        except HTTPError as e:
            logger.error("WSSI upstream returned HTTP %s", e.code)
            raise UpstreamStatusError(
                f"NOAA API error: {e.code}", status_code=e.code,
            ) from e
        except (socket.timeout, TimeoutError) as e:
            raise UpstreamTimeoutError("NOAA API timeout - try again") from e
        except URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise UpstreamTimeoutError(
                    "NOAA API timeout - try again") from e
            logger.error("WSSI connection failed: %s", e)
            raise WSSIFetchError(f"NOAA API unavailable: {e.reason}") from e
        except OSError as e:
            logger.error("WSSI connection failed: %s", e)
            raise WSSIFetchError(f"NOAA API unavailable: {e}") from e

        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise WSSIFetchError(f"NOAA API returned invalid JSON: {e}") from e

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise UpstreamStatusError(
                f"NOAA API error: {error.get('message', 'unknown')}",
                status_code=error.get("code"),
            )

        last_modified = (
            headers.get("Last-Modified")
            or headers.get("Date")
            or _fallback_last_modified()
        )
        features = data.get("features") or []

        logger.info("Fetched %d raw WSSI features for day %d",
                    len(features), day)
        return {"features": features, "last_modified": last_modified}


class MockWSSIClient:
    """
    Mock client for testing.

    Returns synthetic nested impact polygons for each day, or a fixed
    feature list when one is supplied.
    """

    def __init__(self, features: list | None = None,
                 last_modified: str = MOCK_LAST_MODIFIED):
        self.features = features
        self.last_modified = last_modified
        self.calls = 0

    def fetch_day(self, day: int) -> dict:
        """Return mock features for ``day``."""
        if day not in LAYER_IDS:
            raise ValueError(f"Invalid day: {day}")
        self.calls += 1
        features = (
            self.features if self.features is not None
            else generate_mock_features(day)
        )
        return {"features": list(features), "last_modified": self.last_modified}


def get_wssi_client(mock: bool = False) -> WSSIClient | MockWSSIClient:
    """
    Factory function: returns the appropriate WSSI client.

    Args:
        mock: If True (or env ``WSSI_SOURCE_MOCK=1``), return
              MockWSSIClient.
    """
    if mock or os.environ.get("WSSI_SOURCE_MOCK", "0") == "1":
        logger.info("Using MockWSSIClient")
        return MockWSSIClient()
    return WSSIClient()
