# -----------------------------------------------------------------------------
# Read-only client for the dashboard REST server.
#
# The server is an external collaborator: it exposes one GET endpoint per
# panel and answers with JSON arrays (or a single object for system health).
# The client never raises for transport problems. Every fetch returns a
# `Result` so the loader can render whatever arrived and skip the rest.
#
# Blocking I/O uses `urllib.request` and runs in a worker thread via
# `asyncio.to_thread`; each attempt is bounded by `fetch_timeout_ms` and
# failed attempts are retried with exponential backoff. Unit tests patch the
# synchronous `_get()` seam so no real HTTP calls are made.
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from dashkeeper.core.result import Result, err, ok
from dashkeeper.core.settings import Settings, get_logger, load_settings

log = get_logger(__name__)

#: Panel source name -> REST path.
ENDPOINTS: dict[str, str] = {
    "metrics": "/api/metrics",
    "slow_queries": "/api/slow-queries",
    "admin_ajax": "/api/admin-ajax",
    "plugins": "/api/plugins",
    "system_health": "/api/system-health",
}


class FetchError(RuntimeError):
    """One failed HTTP attempt (network, status or decoding)."""


@dataclass(slots=True)
class DashboardClient:
    """Fetch panel payloads from the dashboard server.

    Parameters
    ----------
    base_url:
        Server root, e.g. ``"http://localhost:3000"``.
    timeout_ms:
        Per-attempt timeout.
    retries:
        Extra attempts after the first failure.
    backoff_ms:
        Base delay; attempt ``n`` waits ``backoff_ms * 2**n`` before retrying.
    time_range:
        Optional ``timeRange`` query parameter sent with every request.
    demo:
        Adds ``demo=true`` to every request.
    """

    base_url: str
    timeout_ms: int = 10_000
    retries: int = 2
    backoff_ms: int = 500
    time_range: str | None = None
    demo: bool = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> DashboardClient:
        cfg = settings or load_settings()
        fields: dict[str, Any] = {
            "base_url": cfg.api_base_url,
            "timeout_ms": cfg.fetch_timeout_ms,
            "retries": cfg.fetch_retries,
            "backoff_ms": cfg.fetch_backoff_ms,
        }
        fields.update(overrides)
        return cls(**fields)

    # --------------------------------------------------------------------- #
    # Public API
    # --------------------------------------------------------------------- #
    def url_for(self, path: str, params: Mapping[str, str] | None = None) -> str:
        query: dict[str, str] = {}
        if self.time_range:
            query["timeRange"] = self.time_range
        if self.demo:
            query["demo"] = "true"
        query.update(params or {})
        url = self.base_url.rstrip("/") + path
        return f"{url}?{urllib.parse.urlencode(query)}" if query else url

    async def fetch(self, path: str, params: Mapping[str, str] | None = None) -> Result[Any, str]:
        """GET ``path`` with retries; never raises for transport failures."""
        url = self.url_for(path, params)
        last_error = "no attempt made"
        for attempt in range(self.retries + 1):
            try:
                payload = await asyncio.wait_for(
                    asyncio.to_thread(self._get, url), self.timeout_ms / 1000
                )
                return ok(payload)
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.timeout_ms}ms"
            except FetchError as exc:
                last_error = str(exc)

            if attempt < self.retries:
                delay_ms = self.backoff_ms * 2**attempt
                log.warning("GET %s failed (%s); retrying in %dms", url, last_error, delay_ms)
                await asyncio.sleep(delay_ms / 1000)

        log.error("GET %s failed after %d attempt(s): %s", url, self.retries + 1, last_error)
        return err(last_error)

    async def fetch_source(self, name: str) -> Result[Any, str]:
        if name not in ENDPOINTS:
            return err(f"unknown data source {name!r}")
        return await self.fetch(ENDPOINTS[name])

    async def fetch_all(self, names: list[str] | None = None) -> dict[str, Result[Any, str]]:
        """Fetch several sources concurrently, keyed by source name."""
        wanted = names or list(ENDPOINTS)
        results = await asyncio.gather(*(self.fetch_source(n) for n in wanted))
        return dict(zip(wanted, results, strict=True))

    # --------------------------------------------------------------------- #
    # Internal helpers (test seams)
    # --------------------------------------------------------------------- #
    def _get(self, url: str) -> Any:
        """Perform a blocking GET and decode the JSON body.

        Raises
        ------
        FetchError
            On HTTP errors, network errors or an undecodable body.
        """
        request = urllib.request.Request(url=url, headers={"Accept": "application/json"}, method="GET")
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_ms / 1000) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            raise FetchError(f"HTTP {exc.code}: {exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise FetchError(f"network error: {exc.reason}") from exc
        except TimeoutError as exc:
            raise FetchError("socket timeout") from exc

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FetchError("response is not valid JSON") from exc


__all__ = ["ENDPOINTS", "DashboardClient", "FetchError"]
