"""NSE upstream client.

NSE rejects API calls without the cookies set by its landing page, so the
client warms a session once before the first API request. Timeouts belong to
this layer; retry belongs to the cache manager.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings
from tools.error_handler import DataError, NetworkError, ValidationError

logger = logging.getLogger(__name__)

QUOTE_API = "/api/NextApi/apiClient/GetQuoteApi"
INDEX_API = "/api/NextApi/apiClient/indexTrackerApi"

CORPORATE_FUNCTIONS = {
    "financials": "getFinancialStatus",
    "events": "getCorpEvents",
    "announcements": "getCorpAnnouncement",
    "actions": "getCorpAction",
}


class NSEClient:
    """Async JSON client for the NSE website APIs."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.nse_base_url,
            timeout=timeout or settings.nse_timeout,
            headers={
                "User-Agent": settings.nse_user_agent,
                "Accept": "application/json, text/plain, */*",
                "Referer": "https://www.nseindia.com/",
            },
            follow_redirects=True,
            transport=transport,
        )
        self._session_ready = False

    async def _ensure_session(self) -> None:
        if self._session_ready:
            return
        try:
            resp = await self._client.get("/", headers={"Accept": "text/html,application/xhtml+xml"})
        except httpx.HTTPError as exc:
            raise NetworkError(f"NSE session warm-up failed: {exc}", failed_step="NSE_SESSION") from exc
        if resp.status_code >= 400:
            raise NetworkError(
                f"NSE session warm-up failed {resp.status_code}",
                failed_step="NSE_SESSION",
                status_code=resp.status_code,
            )
        self._session_ready = True

    async def fetch_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        await self._ensure_session()
        logger.debug("NSE fetch path=%s params=%s", path, params)
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise NetworkError(f"NSE fetch failed for {path}: {exc}", failed_step="NSE_FETCH") from exc

        if resp.status_code >= 400:
            logger.error("NSE error status=%s path=%s", resp.status_code, path)
            if resp.status_code in (401, 403):
                # Cookies expired; warm up again on the next call
                self._session_ready = False
            raise NetworkError(
                f"NSE fetch failed {resp.status_code} {resp.reason_phrase}",
                failed_step="NSE_FETCH",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise DataError(f"NSE returned non-JSON payload for {path}", failed_step="NSE_FETCH") from exc

    async def fetch_quote(self, symbol: str) -> Dict[str, Any]:
        raw = await self.fetch_json(
            QUOTE_API,
            {"functionName": "getSymbolData", "marketType": "N", "series": "EQ", "symbol": symbol},
        )
        equity = (raw or {}).get("equityResponse") if isinstance(raw, dict) else None
        return equity[0] if equity else raw

    async def fetch_chart(self, symbol: str, days: str = "1D", identifier: Optional[str] = None) -> List[Any]:
        raw = await self.fetch_json(
            QUOTE_API,
            {"functionName": "getSymbolChartData", "symbol": identifier or f"{symbol}EQN", "days": days},
        )
        if not isinstance(raw, dict):
            return []
        return raw.get("grapthData") or raw.get("graphData") or []

    async def fetch_trends(self, symbol: str, identifier: Optional[str] = None) -> List[Any]:
        raw = await self.fetch_json(
            QUOTE_API,
            {"functionName": "getYearwiseData", "symbol": identifier or f"{symbol}EQN"},
        )
        return raw.get("data") or [] if isinstance(raw, dict) else []

    async def fetch_index_quote(self, index_name: str) -> Dict[str, Any]:
        raw = await self.fetch_json(INDEX_API, {"functionName": "getIndexData", "index": index_name})
        if isinstance(raw, dict) and isinstance(raw.get("data"), list) and raw["data"]:
            return raw["data"][0]
        return raw

    async def fetch_corporate(self, symbol: str, kind: str) -> Any:
        function_name = CORPORATE_FUNCTIONS.get(kind)
        if function_name is None:
            raise ValidationError(
                f"Unsupported corporate data type '{kind}'. Supported: {', '.join(CORPORATE_FUNCTIONS)}",
                failed_step="NSE_FETCH",
            )
        raw = await self.fetch_json(QUOTE_API, {"functionName": function_name, "symbol": symbol})
        return raw.get("data", raw) if isinstance(raw, dict) else raw

    async def aclose(self) -> None:
        await self._client.aclose()
