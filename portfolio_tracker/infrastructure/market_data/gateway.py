"""
Market Data Gateway

• Cache first (fresh entries only)
• One upstream call for every symbol still missing
• Stale cache entries as fallback when the upstream fails
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Tuple

from portfolio_tracker.domain.models import Quote
from portfolio_tracker.infrastructure.cache.quote_cache import CachedResult, TwoTierCache
from portfolio_tracker.infrastructure.market_data.coinmarketcap_client import parse_quote
from portfolio_tracker.infrastructure.market_data.errors import (
    MarketDataError,
    PartialQuotesError,
    UpstreamUnavailableError,
)
from portfolio_tracker.infrastructure.market_data.types import IndexClient, MarketDataClient

logger = logging.getLogger(__name__)

STRATEGY_QUOTES = "quotes"
STRATEGY_LISTINGS = "listings"


def normalize_symbols(symbols: Iterable[str]) -> List[str]:
    """Uppercase, strip and dedupe, keeping first-seen order."""
    seen = dict.fromkeys((s or "").strip().upper() for s in symbols)
    return [s for s in seen if s]


class MarketDataGateway:
    def __init__(
        self,
        client: MarketDataClient,
        cache: TwoTierCache,
        fear_greed_client: Optional[IndexClient] = None,
        strategy: str = STRATEGY_QUOTES,
        listing_limit: int = 5000,
        quote_fresh_minutes: float = 5,
        quote_stale_minutes: float = 15,
        global_fresh_minutes: float = 10,
        global_stale_minutes: float = 30,
        fear_greed_fresh_minutes: float = 60,
        fear_greed_stale_minutes: float = 24 * 60,
        batch_timeout_seconds: float = 10.0,
    ):
        if strategy not in (STRATEGY_QUOTES, STRATEGY_LISTINGS):
            raise ValueError(f"Unknown market data strategy: {strategy}")
        self.client = client
        self.cache = cache
        self.fear_greed_client = fear_greed_client
        self.strategy = strategy
        self.listing_limit = listing_limit
        self.quote_fresh_minutes = quote_fresh_minutes
        self.quote_stale_minutes = quote_stale_minutes
        self.global_fresh_minutes = global_fresh_minutes
        self.global_stale_minutes = global_stale_minutes
        self.fear_greed_fresh_minutes = fear_greed_fresh_minutes
        self.fear_greed_stale_minutes = fear_greed_stale_minutes
        self.batch_timeout_seconds = batch_timeout_seconds
        self.convert = getattr(client, "convert", "USD")

        self.batch_requests = 0
        self.symbols_requested = 0
        self.symbols_from_cache = 0
        self.stale_fallbacks = 0

    @staticmethod
    def _quote_key(symbol: str) -> str:
        return f"quote:{symbol}"

    # ------------------------------------------------------------------
    # QUOTES
    # ------------------------------------------------------------------

    async def get_quotes_by_symbols(self, symbols: Iterable[str]) -> Dict[str, Optional[Quote]]:
        """
        Resolve quotes for a set of symbols.

        Every requested symbol is present in the result; symbols unknown
        upstream map to None. When the batch call fails, stale entries stand
        in for missing symbols. If some symbols still have nothing to serve,
        PartialQuotesError carries the partial map; if no requested symbol
        can be served at all, UpstreamUnavailableError is raised.
        """
        requested = normalize_symbols(symbols)
        self.symbols_requested += len(requested)

        resolved: Dict[str, Optional[Quote]] = {}
        stale: Dict[str, Optional[Quote]] = {}
        missing: List[str] = []

        for symbol in requested:
            hit = self.cache.lookup(self._quote_key(symbol))
            if hit is not None and not hit.is_stale:
                resolved[symbol] = hit.value
                continue
            missing.append(symbol)
            if hit is not None:
                stale[symbol] = hit.value

        self.symbols_from_cache += len(resolved)
        if not missing:
            return {s: resolved[s] for s in requested}

        try:
            fetched, fetched_at = await asyncio.wait_for(
                self._fetch_batch(missing), timeout=self.batch_timeout_seconds
            )
        except (UpstreamUnavailableError, asyncio.TimeoutError) as exc:
            return self._serve_fallback(requested, missing, resolved, stale, exc)

        for symbol in missing:
            quote = fetched.get(symbol)
            if quote is None:
                logger.warning("Symbol not found upstream: %s", symbol)
            self.cache.set(
                self._quote_key(symbol),
                quote,
                self.quote_fresh_minutes,
                self.quote_stale_minutes,
                stored_at=fetched_at,
            )
            resolved[symbol] = quote

        return {s: resolved[s] for s in requested}

    def _serve_fallback(
        self,
        requested: List[str],
        missing: List[str],
        resolved: Dict[str, Optional[Quote]],
        stale: Dict[str, Optional[Quote]],
        exc: BaseException,
    ) -> Dict[str, Optional[Quote]]:
        if stale:
            self.stale_fallbacks += 1
        resolved.update(stale)
        uncovered = [s for s in missing if s not in stale]

        if not uncovered:
            logger.warning("Quote batch failed, serving %d stale quotes: %s", len(missing), exc)
            return {s: resolved[s] for s in requested}

        message = f"Quote batch failed and no cached quotes for: {', '.join(uncovered)}"
        if not resolved:
            logger.error("Quote batch failed for %d symbols with no cached fallback: %s", len(missing), exc)
            raise UpstreamUnavailableError(message) from exc

        logger.warning(
            "Quote batch failed, serving %d cached quotes, %d unavailable: %s",
            len(resolved), len(uncovered), exc,
        )
        raise PartialQuotesError(
            message,
            quotes={s: resolved.get(s) for s in requested},
            unavailable=uncovered,
        ) from exc

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        quotes = await self.get_quotes_by_symbols([symbol])
        return next(iter(quotes.values()), None)

    async def _fetch_batch(self, symbols: List[str]) -> Tuple[Dict[str, Optional[Quote]], Optional[float]]:
        """Quotes for `symbols` plus the cache time of the payload they came from (None: now)."""
        self.batch_requests += 1
        if self.strategy == STRATEGY_LISTINGS:
            listing, listed_at = await self._get_fresh_listing()
            index = self._index_listing(listing)
            return {s: index.get(s) for s in symbols}, listed_at

        data = await self.client.get_quotes_latest(symbols)
        by_symbol = {key.upper(): value for key, value in data.items()}
        return {s: self._best_entry(by_symbol.get(s)) for s in symbols}, None

    def _best_entry(self, value: Any) -> Optional[Quote]:
        # Several coins can share a ticker; the best ranked one wins.
        entries = value if isinstance(value, list) else [value] if value else []
        ranked = sorted(
            (e for e in entries if isinstance(e, dict)),
            key=lambda e: e.get("cmc_rank") or float("inf"),
        )
        for entry in ranked:
            quote = parse_quote(entry, self.convert)
            if quote is not None:
                return quote
        return None

    def _index_listing(self, listing: List[dict]) -> Dict[str, Quote]:
        index: Dict[str, Quote] = {}
        for entry in listing:
            if not isinstance(entry, dict):
                continue
            symbol = (entry.get("symbol") or "").upper()
            if not symbol or symbol in index:
                continue
            quote = parse_quote(entry, self.convert)
            if quote is not None:
                index[symbol] = quote
        return index

    def _listing_key(self) -> str:
        return f"listings:{self.listing_limit}"

    def _fetch_listing(self) -> Awaitable[List[dict]]:
        return self.client.get_latest_listings(limit=self.listing_limit)

    async def _get_listing(self) -> List[dict]:
        """Listing for search/top; a stale copy is acceptable here."""
        return await self.cache.get_or_fetch(
            self._listing_key(),
            self._fetch_listing,
            self.quote_fresh_minutes,
            self.quote_stale_minutes,
            timeout=self.batch_timeout_seconds,
        )

    async def _get_fresh_listing(self) -> Tuple[List[dict], Optional[float]]:
        """
        Listing for quote batches: a fresh cached copy with its cache time,
        otherwise a refresh. A stale listing is never used to mint quotes.
        """
        key = self._listing_key()
        hit = self.cache.lookup(key)
        if hit is not None and not hit.is_stale:
            return hit.value, hit.stored_at
        listing = await self.cache.refresh(
            key,
            self._fetch_listing,
            self.quote_fresh_minutes,
            self.quote_stale_minutes,
            timeout=self.batch_timeout_seconds,
        )
        return listing, None

    # ------------------------------------------------------------------
    # LISTING LOOKUPS
    # ------------------------------------------------------------------

    async def search(self, query: str, limit: int = 10) -> List[Quote]:
        term = (query or "").strip().lower()
        if not term:
            return []
        matches: List[Quote] = []
        for entry in await self._get_listing():
            if not isinstance(entry, dict):
                continue
            name = (entry.get("name") or "").lower()
            symbol = (entry.get("symbol") or "").lower()
            if term in name or term in symbol:
                quote = parse_quote(entry, self.convert)
                if quote is not None:
                    matches.append(quote)
            if len(matches) >= limit:
                break
        return matches

    async def get_top(self, limit: int = 20) -> List[Quote]:
        listing = await self._get_listing()
        quotes = (parse_quote(entry, self.convert) for entry in listing[:limit])
        return [q for q in quotes if q is not None]

    # ------------------------------------------------------------------
    # MARKET OVERVIEW
    # ------------------------------------------------------------------

    async def get_global_metrics(self) -> CachedResult[dict]:
        return await self.cache.fetch_with_fallback(
            "global-metrics",
            self.client.get_global_metrics,
            self.global_fresh_minutes,
            self.global_stale_minutes,
        )

    async def get_fear_greed_index(self) -> CachedResult[dict]:
        if self.fear_greed_client is None:
            raise MarketDataError("Fear & Greed client not configured")
        return await self.cache.fetch_with_fallback(
            "fear-greed",
            self.fear_greed_client.get_latest,
            self.fear_greed_fresh_minutes,
            self.fear_greed_stale_minutes,
        )

    def cache_stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "strategy": self.strategy,
            "batch_requests": self.batch_requests,
            "symbols_requested": self.symbols_requested,
            "symbols_from_cache": self.symbols_from_cache,
            "stale_fallbacks": self.stale_fallbacks,
            "upstream_calls": getattr(self.client, "request_count", None),
        }
