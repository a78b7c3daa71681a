"""
Crypto Fear & Greed index (alternative.me).
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from portfolio_tracker.infrastructure.market_data.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.alternative.me/fng/"


class FearGreedClient:
    def __init__(
        self,
        url: str = DEFAULT_URL,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def get_latest(self) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(self.url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Fear & Greed request failed: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamUnavailableError(
                f"Fear & Greed API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json() or {}
        except ValueError as exc:
            raise UpstreamUnavailableError("Fear & Greed API returned invalid JSON") from exc

        data = payload.get("data") or []
        if not data:
            raise UpstreamUnavailableError("Fear & Greed API returned no data")
        return data[0]
