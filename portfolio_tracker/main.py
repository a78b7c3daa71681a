"""
FastAPI Main Application
Crypto portfolio performance service
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging
from typing import AsyncGenerator

from portfolio_tracker.api.routes import crypto, health, portfolio
from portfolio_tracker.config import settings
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.infrastructure.cache.quote_cache import TTLCache, TwoTierCache
from portfolio_tracker.infrastructure.market_data.fear_greed_client import FearGreedClient
from portfolio_tracker.infrastructure.market_data.provider_factory import (
    build_client,
    build_gateway,
    build_historical_service,
    load_market_data_config,
    resolve_path,
)
from portfolio_tracker.infrastructure.repositories.portfolio_repository import (
    InMemoryPortfolioRepository,
    load_portfolios,
)
from portfolio_tracker.services.portfolio_performance_service import PortfolioPerformanceService

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

CACHE_SWEEP_INTERVAL_SECONDS = 60 * 60


async def _sweep_caches(*caches) -> None:
    while True:
        await asyncio.sleep(CACHE_SWEEP_INTERVAL_SECONDS)
        removed = sum(cache.sweep() for cache in caches)
        if removed:
            logger.info("🧹 Swept %d expired cache entries", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Builds caches, market data gateway and services once per process
    """
    logger.info("=" * 60)
    logger.info("🚀 Starting Portfolio Tracker")
    logger.info("=" * 60)

    # 1. Portfolios (read-only view over persistence)
    repository = InMemoryPortfolioRepository(load_portfolios(resolve_path(settings.PORTFOLIO_SEED_FILE)))
    app.state.portfolio_repository = repository

    # 2. Market data
    app.state.market_data_gateway = None
    app.state.performance_service = None
    app.state.historical_service = None
    sweeper = None

    market_cfg = load_market_data_config()
    try:
        client = build_client()
    except ValueError as e:
        logger.error(f"❌ Market data disabled: {e}")
        client = None

    if client is not None:
        quote_cache = TwoTierCache(
            default_fresh_minutes=float(market_cfg.get("quotes", {}).get("fresh_minutes", 5)),
            default_stale_minutes=float(market_cfg.get("quotes", {}).get("stale_minutes", 15)),
        )
        historical_cache = TTLCache()
        gateway = build_gateway(
            client,
            market_cfg,
            cache=quote_cache,
            fear_greed_client=FearGreedClient(
                url=settings.FEAR_GREED_URL,
                timeout_seconds=settings.MARKET_DATA_TIMEOUT_SECONDS,
            ),
        )
        app.state.market_data_gateway = gateway
        app.state.performance_service = PortfolioPerformanceService(gateway, repository)
        app.state.historical_service = build_historical_service(client, market_cfg, cache=historical_cache)
        sweeper = asyncio.create_task(_sweep_caches(quote_cache, historical_cache))
        logger.info(f"✅ Market data gateway ready (strategy={gateway.strategy})")

    logger.info(f"   ✅ API Server: http://{settings.API_HOST}:{settings.API_PORT}")

    yield

    logger.info("🛑 Shutting down Portfolio Tracker...")
    if sweeper and not sweeper.done():
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="Crypto Portfolio Tracker",
    description="Portfolio performance from batched, cached market quotes",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(portfolio.router, prefix="/api/v1/portfolios", tags=["Portfolios"])
app.include_router(crypto.router, prefix="/api/v1/crypto", tags=["Crypto"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portfolio_tracker.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
