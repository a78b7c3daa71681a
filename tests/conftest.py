from datetime import date
from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from portfolio_tracker.api.routes import crypto, health, portfolio
from portfolio_tracker.infrastructure.cache.quote_cache import TTLCache, TwoTierCache
from portfolio_tracker.infrastructure.market_data.gateway import MarketDataGateway
from portfolio_tracker.infrastructure.repositories.portfolio_repository import InMemoryPortfolioRepository
from portfolio_tracker.services.historical_performance_service import HistoricalPerformanceService
from portfolio_tracker.services.portfolio_performance_service import PortfolioPerformanceService

from fakes import FakeClock, FakeFearGreedClient, FakeMarketClient, cmc_entry, make_portfolio


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def market_client() -> FakeMarketClient:
    return FakeMarketClient(
        entries=[
            cmc_entry("BTC", 60000, 2, market_cap=1.2e12, volume_24h=3e10, rank=1, name="Bitcoin"),
            cmc_entry("ETH", 3000, -1, market_cap=3.6e11, volume_24h=1.5e10, rank=2, name="Ethereum"),
            cmc_entry("SOL", 150, 5, rank=5, name="Solana"),
        ],
        history={
            "BTC": {
                "quotes": [
                    {"timestamp": "2026-01-30T00:00:00.000Z", "quote": {"USD": {"price": 58000}}},
                    {"timestamp": "2026-01-31T00:00:00.000Z", "quote": {"USD": {"price": 59000}}},
                    {"timestamp": "2026-02-01T00:00:00.000Z", "quote": {"USD": {"price": 60000}}},
                ]
            },
        },
    )


@pytest.fixture()
def fear_greed_client() -> FakeFearGreedClient:
    return FakeFearGreedClient()


@pytest.fixture()
def quote_cache(clock) -> TwoTierCache:
    return TwoTierCache(default_fresh_minutes=5, default_stale_minutes=15, clock=clock)


@pytest.fixture()
def gateway(market_client, quote_cache, fear_greed_client) -> MarketDataGateway:
    return MarketDataGateway(market_client, quote_cache, fear_greed_client=fear_greed_client)


@pytest.fixture()
def repository() -> InMemoryPortfolioRepository:
    return InMemoryPortfolioRepository(
        [
            make_portfolio("core", {"BTC": "1.5", "ETH": "10"}, name="Core"),
            make_portfolio("alts", {"SOL": "20", "ETH": "2", "DOGE": "1000"}, name="Alts"),
            make_portfolio("empty", {}, name="Empty"),
        ]
    )


@pytest.fixture()
def performance_service(gateway, repository) -> PortfolioPerformanceService:
    return PortfolioPerformanceService(gateway, repository)


@pytest.fixture()
def historical_service(market_client, clock) -> HistoricalPerformanceService:
    return HistoricalPerformanceService(
        market_client,
        TTLCache(clock=clock),
        today=lambda: date(2026, 2, 1),
    )


@pytest.fixture()
async def app(gateway, performance_service, historical_service) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(portfolio.router, prefix="/api/v1/portfolios", tags=["Portfolios"])
    app.include_router(crypto.router, prefix="/api/v1/crypto", tags=["Crypto"])

    app.state.market_data_gateway = gateway
    app.state.performance_service = performance_service
    app.state.historical_service = historical_service
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
