"""
Historical Performance Service

• Daily price series per symbol (24h cache)
• Nearest-date join per day
• Approximation: days without data contribute 0
"""

import asyncio
import bisect
import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from portfolio_tracker.domain.models import HistoricalQuote, HistoryPoint, Portfolio
from portfolio_tracker.infrastructure.cache.quote_cache import TTLCache
from portfolio_tracker.infrastructure.market_data.coinmarketcap_client import parse_historical_quotes
from portfolio_tracker.infrastructure.market_data.errors import MarketDataError
from portfolio_tracker.infrastructure.market_data.types import MarketDataClient

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _utc_today() -> date:
    return datetime.now(tz=timezone.utc).date()


def date_range(days: int, today: date) -> List[date]:
    """`days` consecutive calendar days ending with `today`, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


class PriceSeries:
    """Daily series sorted by timestamp, with exact-date and nearest lookups."""

    def __init__(self, quotes: Sequence[HistoricalQuote]):
        self.quotes = sorted(quotes, key=lambda q: q.timestamp)
        self._stamps = [q.timestamp.timestamp() for q in self.quotes]
        self._by_date: Dict[date, Decimal] = {}
        for quote in self.quotes:
            self._by_date.setdefault(quote.date, quote.price)

    def __len__(self) -> int:
        return len(self.quotes)

    def price_at(self, day: date) -> Decimal:
        if not self.quotes:
            return ZERO

        exact = self._by_date.get(day)
        if exact is not None:
            return exact

        target = datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp()
        idx = bisect.bisect_left(self._stamps, target)
        if idx == 0:
            return self.quotes[0].price
        if idx == len(self._stamps):
            return self.quotes[-1].price

        before, after = idx - 1, idx
        # Ties go to the earlier point.
        if target - self._stamps[before] <= self._stamps[after] - target:
            return self.quotes[before].price
        return self.quotes[after].price


class HistoricalPerformanceService:
    def __init__(
        self,
        client: MarketDataClient,
        cache: TTLCache,
        ttl_hours: float = 24,
        today: Callable[[], date] = _utc_today,
    ):
        self.client = client
        self.cache = cache
        self.ttl_hours = ttl_hours
        self._today = today
        self.convert = getattr(client, "convert", "USD")

    async def get_historical_series(self, symbol: str, days: int = 30) -> List[HistoricalQuote]:
        symbol = symbol.upper()
        cache_key = f"{symbol}_{days}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            data = await self.client.get_historical_quotes(symbol, count=days, interval="1d")
        except MarketDataError as exc:
            logger.warning("Historical data unavailable for %s: %s", symbol, exc)
            return []

        series = parse_historical_quotes(data, self.convert)
        self.cache.set(cache_key, series, self.ttl_hours * 60)
        return series

    async def approximate_history(self, portfolio: Portfolio, days: int = 30) -> List[HistoryPoint]:
        """
        Approximate the portfolio value for each of the last `days` days.

        Uses today's holdings against historical prices. Symbols without
        data for a day add nothing, so totals can understate the true value
        when upstream coverage is incomplete.
        """
        if days < 1:
            raise ValueError("days must be at least 1")

        symbols = list(portfolio.symbols)
        fetched = await asyncio.gather(*(self.get_historical_series(s, days) for s in symbols))
        series: Dict[str, PriceSeries] = {s: PriceSeries(q) for s, q in zip(symbols, fetched)}

        history: List[HistoryPoint] = []
        for day in date_range(days, self._today()):
            total = ZERO
            for holding in portfolio.holdings:
                prices = series.get(holding.symbol)
                if prices is None or holding.amount <= 0:
                    continue
                price = prices.price_at(day)
                if price > 0:
                    total += holding.amount * price
            history.append(
                HistoryPoint(
                    date=day,
                    value=total,
                    timestamp=datetime.combine(day, time.min, tzinfo=timezone.utc),
                )
            )
        return history

    def clear_expired(self) -> int:
        return self.cache.sweep()
