"""
Market data client protocols for type hints.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Protocol


class MarketDataClient(Protocol):
    async def get_latest_listings(self, limit: int = 100, start: int = 1) -> List[dict]:
        ...

    async def get_quotes_latest(self, symbols: Iterable[str]) -> Dict[str, Any]:
        ...

    async def get_global_metrics(self) -> dict:
        ...

    async def get_historical_quotes(self, symbol: str, count: int = 30, interval: str = "1d") -> Any:
        ...


class IndexClient(Protocol):
    async def get_latest(self) -> dict:
        ...
