import asyncio
from decimal import Decimal

import pytest

from portfolio_tracker.infrastructure.cache.quote_cache import TwoTierCache
from portfolio_tracker.infrastructure.market_data.errors import (
    MarketDataError,
    PartialQuotesError,
    UpstreamUnavailableError,
)
from portfolio_tracker.infrastructure.market_data.gateway import (
    STRATEGY_LISTINGS,
    MarketDataGateway,
    normalize_symbols,
)

from fakes import FakeClock, FakeMarketClient, cmc_entry


def test_normalize_symbols_dedupes_in_order():
    assert normalize_symbols([" btc", "ETH", "Btc", "", None, "sol "]) == ["BTC", "ETH", "SOL"]


def test_unknown_strategy_rejected(market_client, quote_cache):
    with pytest.raises(ValueError):
        MarketDataGateway(market_client, quote_cache, strategy="per_symbol")


@pytest.mark.asyncio
async def test_many_symbols_cost_one_upstream_call(quote_cache):
    symbols = [f"C{i}" for i in range(50)]
    client = FakeMarketClient(entries=[cmc_entry(s, i + 1, rank=i + 1) for i, s in enumerate(symbols)])
    gateway = MarketDataGateway(client, quote_cache)

    quotes = await gateway.get_quotes_by_symbols(symbols)

    assert client.request_count == 1
    assert list(quotes) == symbols
    assert quotes["C9"].price == Decimal("10")


@pytest.mark.asyncio
async def test_unknown_symbols_map_to_none_and_are_cached(gateway, market_client):
    quotes = await gateway.get_quotes_by_symbols(["btc", "NOPE"])

    assert quotes["BTC"].price == Decimal("60000")
    assert quotes["NOPE"] is None

    again = await gateway.get_quotes_by_symbols(["NOPE"])
    assert again == {"NOPE": None}
    assert market_client.request_count == 1


@pytest.mark.asyncio
async def test_only_missing_symbols_are_fetched(gateway, market_client):
    await gateway.get_quotes_by_symbols(["BTC"])
    await gateway.get_quotes_by_symbols(["BTC", "ETH"])

    assert market_client.calls == [("quotes", ("BTC",)), ("quotes", ("ETH",))]
    assert gateway.symbols_from_cache == 1


@pytest.mark.asyncio
async def test_fresh_cache_skips_upstream(gateway, market_client, clock):
    await gateway.get_quotes_by_symbols(["BTC", "ETH"])
    clock.advance(4)
    await gateway.get_quotes_by_symbols(["ETH", "BTC"])

    assert market_client.request_count == 1
    assert gateway.batch_requests == 1


@pytest.mark.asyncio
async def test_stale_quotes_served_when_upstream_fails(gateway, market_client, clock):
    first = await gateway.get_quotes_by_symbols(["BTC", "ETH"])

    clock.advance(6)
    market_client.fail = True
    second = await gateway.get_quotes_by_symbols(["BTC", "ETH"])

    assert second == first
    assert gateway.stale_fallbacks == 1
    assert market_client.request_count == 2


@pytest.mark.asyncio
async def test_failure_serves_cached_symbols_and_flags_the_rest(gateway, market_client, clock):
    first = await gateway.get_quotes_by_symbols(["BTC"])
    clock.advance(6)
    market_client.fail = True

    with pytest.raises(PartialQuotesError, match="ETH") as exc_info:
        await gateway.get_quotes_by_symbols(["BTC", "ETH"])

    assert exc_info.value.quotes == {"BTC": first["BTC"], "ETH": None}
    assert exc_info.value.unavailable == ["ETH"]
    assert gateway.stale_fallbacks == 1


@pytest.mark.asyncio
async def test_failure_with_nothing_cached_raises(gateway, market_client):
    market_client.fail = True

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await gateway.get_quotes_by_symbols(["BTC", "ETH"])
    assert not isinstance(exc_info.value, PartialQuotesError)


@pytest.mark.asyncio
async def test_expired_quotes_are_not_resurrected(gateway, market_client, clock):
    await gateway.get_quotes_by_symbols(["BTC"])
    clock.advance(16)
    market_client.fail = True

    with pytest.raises(UpstreamUnavailableError):
        await gateway.get_quotes_by_symbols(["BTC"])


@pytest.mark.asyncio
async def test_slow_upstream_times_out(quote_cache):
    class SlowClient(FakeMarketClient):
        async def get_quotes_latest(self, symbols):
            await asyncio.sleep(1)
            return {}

    gateway = MarketDataGateway(SlowClient(), quote_cache, batch_timeout_seconds=0.01)

    with pytest.raises(UpstreamUnavailableError):
        await gateway.get_quotes_by_symbols(["BTC"])


@pytest.mark.asyncio
async def test_shared_ticker_resolves_to_best_ranked_coin(quote_cache):
    class SharedTickerClient(FakeMarketClient):
        async def get_quotes_latest(self, symbols):
            self.calls.append(("quotes", tuple(symbols)))
            return {
                "UNI": [
                    cmc_entry("UNI", "0.01", rank=2400, name="Universe"),
                    cmc_entry("UNI", "7.5", rank=20, name="Uniswap"),
                ]
            }

    gateway = MarketDataGateway(SharedTickerClient(), quote_cache)
    quote = await gateway.get_quote("uni")

    assert quote.name == "Uniswap"
    assert quote.price == Decimal("7.5")


@pytest.mark.asyncio
async def test_listings_strategy_reuses_one_listing(market_client, quote_cache):
    gateway = MarketDataGateway(market_client, quote_cache, strategy=STRATEGY_LISTINGS)

    first = await gateway.get_quotes_by_symbols(["BTC", "DOGE"])
    second = await gateway.get_quotes_by_symbols(["SOL"])

    assert first["BTC"].price == Decimal("60000")
    assert first["DOGE"] is None
    assert second["SOL"].price == Decimal("150")
    assert market_client.calls == [("listings", 5000)]


@pytest.mark.asyncio
async def test_listings_quotes_age_with_their_listing(market_client, quote_cache, clock):
    gateway = MarketDataGateway(market_client, quote_cache, strategy=STRATEGY_LISTINGS)
    await gateway.get_quotes_by_symbols(["BTC"])

    clock.advance(4)
    await gateway.get_quotes_by_symbols(["ETH"])

    clock.advance(2)
    assert quote_cache.lookup("quote:ETH").is_stale
    assert market_client.calls == [("listings", 5000)]


@pytest.mark.asyncio
async def test_listings_strategy_never_serves_past_stale_window(market_client, quote_cache, clock):
    gateway = MarketDataGateway(market_client, quote_cache, strategy=STRATEGY_LISTINGS)
    await gateway.get_quotes_by_symbols(["BTC"])
    market_client.fail = True

    clock.advance(10)
    stale = await gateway.get_quotes_by_symbols(["BTC"])
    assert stale["BTC"].price == Decimal("60000")
    assert gateway.stale_fallbacks == 1

    clock.advance(14)
    with pytest.raises(UpstreamUnavailableError):
        await gateway.get_quotes_by_symbols(["BTC"])


@pytest.mark.asyncio
async def test_listings_timeout_cancels_upstream_call(quote_cache):
    class SlowListingClient(FakeMarketClient):
        cancelled = False

        async def get_latest_listings(self, limit: int = 100, start: int = 1):
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
            return []

    client = SlowListingClient()
    gateway = MarketDataGateway(client, quote_cache, strategy=STRATEGY_LISTINGS, batch_timeout_seconds=0.01)

    with pytest.raises(UpstreamUnavailableError):
        await gateway.get_quotes_by_symbols(["BTC"])

    await asyncio.sleep(0.05)
    assert client.cancelled is True


@pytest.mark.asyncio
async def test_search_and_top(gateway):
    matches = await gateway.search("bit")
    assert [q.symbol for q in matches] == ["BTC"]

    top = await gateway.get_top(limit=2)
    assert [q.symbol for q in top] == ["BTC", "ETH"]

    assert await gateway.search("   ") == []


@pytest.mark.asyncio
async def test_malformed_entries_are_skipped(quote_cache):
    class MalformedClient(FakeMarketClient):
        async def get_quotes_latest(self, symbols):
            return {"BAD": [{"symbol": "BAD", "quote": "n/a"}], "ODD": [{"symbol": "ODD", "quote": {"USD": 7}}]}

        async def get_latest_listings(self, limit: int = 100, start: int = 1):
            return ["garbage", {"symbol": "BAD", "quote": None}, cmc_entry("BTC", 60000, name="Bitcoin")]

    gateway = MarketDataGateway(MalformedClient(), quote_cache)

    assert await gateway.get_quotes_by_symbols(["BAD", "ODD"]) == {"BAD": None, "ODD": None}
    assert [q.symbol for q in await gateway.get_top(limit=3)] == ["BTC"]
    assert [q.symbol for q in await gateway.search("b")] == ["BTC"]


@pytest.mark.asyncio
async def test_global_metrics_cached_then_stale(gateway, market_client, clock):
    first = await gateway.get_global_metrics()
    cached = await gateway.get_global_metrics()

    assert first.cached is False
    assert cached.cached is True
    assert market_client.calls.count(("global",)) == 1

    clock.advance(11)
    market_client.fail = True
    stale = await gateway.get_global_metrics()
    assert stale.stale is True
    assert stale.value == first.value


@pytest.mark.asyncio
async def test_fear_greed_requires_client(market_client):
    gateway = MarketDataGateway(market_client, TwoTierCache(clock=FakeClock()))

    with pytest.raises(MarketDataError):
        await gateway.get_fear_greed_index()


@pytest.mark.asyncio
async def test_fear_greed_cached_for_an_hour(gateway, fear_greed_client, clock):
    await gateway.get_fear_greed_index()
    clock.advance(59)
    result = await gateway.get_fear_greed_index()

    assert result.cached is True
    assert fear_greed_client.calls == 1


@pytest.mark.asyncio
async def test_cache_stats_reports_counters(gateway):
    await gateway.get_quotes_by_symbols(["BTC", "ETH"])
    await gateway.get_quotes_by_symbols(["BTC"])

    stats = gateway.cache_stats()
    assert stats["strategy"] == "quotes"
    assert stats["batch_requests"] == 1
    assert stats["symbols_requested"] == 3
    assert stats["symbols_from_cache"] == 1
    assert stats["upstream_calls"] == 1
