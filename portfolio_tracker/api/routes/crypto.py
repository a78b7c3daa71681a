"""
Crypto market data routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import List
import logging

from portfolio_tracker.domain.schemas.crypto import BatchQuotesSchema, CachedPayloadSchema, QuoteSchema
from portfolio_tracker.infrastructure.market_data.errors import (
    MarketDataError,
    PartialQuotesError,
    UpstreamUnavailableError,
)
from portfolio_tracker.infrastructure.market_data.gateway import MarketDataGateway, normalize_symbols

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_BATCH_SYMBOLS = 100


def get_gateway(request: Request) -> MarketDataGateway:
    gateway = getattr(request.app.state, "market_data_gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Market data gateway not initialized")
    return gateway


@router.get("/batch", response_model=BatchQuotesSchema)
async def get_batch_quotes(
    symbols: str = Query(..., min_length=1, description="Comma-separated symbols"),
    gateway: MarketDataGateway = Depends(get_gateway),
):
    requested = normalize_symbols(symbols.split(","))
    if not requested:
        raise HTTPException(status_code=400, detail="At least one symbol is required")
    if len(requested) > MAX_BATCH_SYMBOLS:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {MAX_BATCH_SYMBOLS} symbols allowed per batch request",
        )

    unavailable: List[str] = []
    try:
        quotes = await gateway.get_quotes_by_symbols(requested)
    except PartialQuotesError as e:
        quotes, unavailable = e.quotes, list(e.unavailable)
    except UpstreamUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return BatchQuotesSchema(
        quotes={s: QuoteSchema.from_domain(q) if q else None for s, q in quotes.items()},
        not_found=[s for s, q in quotes.items() if q is None and s not in unavailable],
        unavailable=unavailable,
    )


@router.get("/search")
async def search_cryptocurrencies(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    gateway: MarketDataGateway = Depends(get_gateway),
):
    try:
        results = await gateway.search(q, limit)
    except UpstreamUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return [QuoteSchema.from_domain(quote) for quote in results]


@router.get("/global", response_model=CachedPayloadSchema)
async def get_global_metrics(gateway: MarketDataGateway = Depends(get_gateway)):
    try:
        result = await gateway.get_global_metrics()
    except MarketDataError as e:
        raise HTTPException(status_code=503, detail=f"Failed to fetch global metrics: {e}")
    return CachedPayloadSchema(data=result.value, cached=result.cached, stale=result.stale)


@router.get("/fear-greed", response_model=CachedPayloadSchema)
async def get_fear_greed(gateway: MarketDataGateway = Depends(get_gateway)):
    try:
        result = await gateway.get_fear_greed_index()
    except MarketDataError as e:
        raise HTTPException(status_code=503, detail=f"Failed to fetch Fear & Greed Index: {e}")
    return CachedPayloadSchema(data=result.value, cached=result.cached, stale=result.stale)


@router.get("/cache-stats")
async def get_cache_stats(gateway: MarketDataGateway = Depends(get_gateway)):
    return gateway.cache_stats()
