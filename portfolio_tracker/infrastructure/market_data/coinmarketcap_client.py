"""
CoinMarketCap Pro API client.
Thin async wrapper; every method is exactly one upstream HTTP call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

import httpx

from portfolio_tracker.domain.models import HistoricalQuote, Quote
from portfolio_tracker.infrastructure.market_data.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://pro-api.coinmarketcap.com"


class CoinMarketCapClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        convert: str = "USD",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValueError("CoinMarketCap API key missing")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.convert = convert.upper()
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.request_count = 0

    async def _request_json(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "deflate, gzip",
            "X-CMC_PRO_API_KEY": self.api_key,
        }
        self.request_count += 1
        logger.info("CoinMarketCap API call: %s params=%s", path, params or {})
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(url, headers=headers, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError(f"CoinMarketCap timeout on {path}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"CoinMarketCap request failed on {path}: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamUnavailableError(
                f"CoinMarketCap API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError(f"CoinMarketCap returned invalid JSON on {path}") from exc

        status = payload.get("status") or {}
        if status.get("error_code") not in (None, 0, "0"):
            raise UpstreamUnavailableError(
                f"CoinMarketCap API error {status.get('error_code')}: {status.get('error_message')}",
                status_code=response.status_code,
            )
        return payload

    # ------------------------------------------------------------------
    # LATEST
    # ------------------------------------------------------------------

    async def get_latest_listings(
        self,
        limit: int = 100,
        start: int = 1,
        sort: str = "market_cap",
        sort_dir: str = "desc",
    ) -> List[dict]:
        payload = await self._request_json(
            "/v1/cryptocurrency/listings/latest",
            params={
                "start": str(start),
                "limit": str(limit),
                "convert": self.convert,
                "sort": sort,
                "sort_dir": sort_dir,
                "cryptocurrency_type": "all",
            },
        )
        data = payload.get("data")
        return data if isinstance(data, list) else []

    async def get_quotes_latest(self, symbols: Iterable[str]) -> Dict[str, Any]:
        """
        One multi-symbol lookup. Unknown symbols are skipped upstream
        instead of failing the whole request.
        """
        joined = ",".join(sorted({s.upper() for s in symbols if s}))
        if not joined:
            return {}
        payload = await self._request_json(
            "/v2/cryptocurrency/quotes/latest",
            params={"symbol": joined, "convert": self.convert, "skip_invalid": "true"},
        )
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    async def get_global_metrics(self) -> dict:
        payload = await self._request_json(
            "/v1/global-metrics/quotes/latest",
            params={"convert": self.convert},
        )
        return payload.get("data") or {}

    # ------------------------------------------------------------------
    # HISTORICAL
    # ------------------------------------------------------------------

    async def get_historical_quotes(self, symbol: str, count: int = 30, interval: str = "1d") -> Any:
        payload = await self._request_json(
            "/v2/cryptocurrency/quotes/historical",
            params={
                "symbol": symbol.upper(),
                "count": str(count),
                "interval": interval,
                "convert": self.convert,
            },
        )
        return payload.get("data")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_quote(entry: dict, convert: str = "USD", fetched_at: Optional[datetime] = None) -> Optional[Quote]:
    """Build a Quote from a listings/quotes entry; None if it carries no price."""
    if not isinstance(entry, dict):
        return None
    quotes = entry.get("quote")
    usd = quotes.get(convert.upper()) if isinstance(quotes, dict) else None
    if not isinstance(usd, dict):
        return None
    price = _to_decimal(usd.get("price"))
    symbol = entry.get("symbol")
    if price is None or not symbol:
        return None

    if fetched_at is None:
        fetched_at = _parse_timestamp(usd.get("last_updated")) or datetime.now(tz=timezone.utc)

    return Quote(
        symbol=symbol,
        price=price,
        percent_change_24h=_to_decimal(usd.get("percent_change_24h")) or Decimal("0"),
        percent_change_7d=_to_decimal(usd.get("percent_change_7d")),
        market_cap=_to_decimal(usd.get("market_cap")),
        volume_24h=_to_decimal(usd.get("volume_24h")),
        fetched_at=fetched_at,
        name=entry.get("name"),
        crypto_id=entry.get("id"),
    )


def parse_historical_quotes(data: Any, convert: str = "USD") -> List[HistoricalQuote]:
    """
    Normalize the historical endpoint payload into a sorted series.

    Accepts `{"quotes": [...]}`, `{"BTC": [{"quotes": [...]}]}` and bare lists.
    Points without a positive price are dropped.
    """
    raw: List[dict] = []
    if isinstance(data, list):
        raw = data
    elif isinstance(data, dict):
        if isinstance(data.get("quotes"), list):
            raw = data["quotes"]
        else:
            for value in data.values():
                candidate = value[0] if isinstance(value, list) and value else value
                if isinstance(candidate, dict) and isinstance(candidate.get("quotes"), list):
                    raw = candidate["quotes"]
                    break

    series: List[HistoricalQuote] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        nested = (item.get("quote") or {}).get(convert.upper()) or {}
        ts = _parse_timestamp(item.get("timestamp") or nested.get("timestamp") or item.get("last_updated"))
        price = _to_decimal(nested.get("price", item.get("price")))
        if ts is None or price is None or price <= 0:
            continue
        series.append(HistoricalQuote(timestamp=ts, price=price))

    series.sort(key=lambda q: q.timestamp)
    return series
