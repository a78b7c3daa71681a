"""
Portfolio API Routes
Performance, historical approximation and snapshot preview
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import List
import logging

from portfolio_tracker.domain.schemas.portfolio import (
    HistoricalPerformanceSchema,
    HistoryPointSchema,
    PortfolioPerformanceSchema,
)
from portfolio_tracker.domain.services.snapshot_builder import build_snapshot_data
from portfolio_tracker.services.errors import PortfolioNotFoundError
from portfolio_tracker.services.historical_performance_service import HistoricalPerformanceService
from portfolio_tracker.services.portfolio_performance_service import PortfolioPerformanceService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_performance_service(request: Request) -> PortfolioPerformanceService:
    service = getattr(request.app.state, "performance_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Performance service not initialized")
    return service


def get_historical_service(request: Request) -> HistoricalPerformanceService:
    service = getattr(request.app.state, "historical_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Historical service not initialized")
    return service


@router.get("/performance", response_model=List[PortfolioPerformanceSchema])
async def get_all_performances(
    service: PortfolioPerformanceService = Depends(get_performance_service),
):
    """Performance for every portfolio, priced with a single batched quote lookup."""
    try:
        results = await service.performance_for_all()
    except Exception as e:
        logger.exception("Failed to calculate portfolio performances")
        raise HTTPException(status_code=500, detail=f"Failed to calculate performances: {str(e)}")

    return [
        PortfolioPerformanceSchema.from_domain(portfolio.id, performance, name=portfolio.name)
        for portfolio, performance in results
    ]


@router.get("/{portfolio_id}/performance", response_model=PortfolioPerformanceSchema)
async def get_portfolio_performance(
    portfolio_id: str,
    service: PortfolioPerformanceService = Depends(get_performance_service),
):
    try:
        portfolio = await service.get_portfolio(portfolio_id)
        performance = await service.calculate_performance(portfolio)
    except PortfolioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception("Failed to calculate performance for %s", portfolio_id)
        raise HTTPException(status_code=500, detail=f"Failed to calculate performance: {str(e)}")

    return PortfolioPerformanceSchema.from_domain(portfolio.id, performance, name=portfolio.name)


@router.get("/{portfolio_id}/performance/historical", response_model=HistoricalPerformanceSchema)
async def get_historical_performance(
    portfolio_id: str,
    days: int = Query(30, ge=1, le=365),
    service: PortfolioPerformanceService = Depends(get_performance_service),
    historical: HistoricalPerformanceService = Depends(get_historical_service),
):
    try:
        portfolio = await service.get_portfolio(portfolio_id)
        points = await historical.approximate_history(portfolio, days)
    except PortfolioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception("Failed to approximate history for %s", portfolio_id)
        raise HTTPException(status_code=500, detail=f"Failed to fetch historical performance: {str(e)}")

    return HistoricalPerformanceSchema(
        portfolio_id=portfolio.id,
        days=days,
        points=[HistoryPointSchema.from_domain(p) for p in points],
    )


@router.get("/{portfolio_id}/snapshot")
async def preview_snapshot(
    portfolio_id: str,
    service: PortfolioPerformanceService = Depends(get_performance_service),
):
    """Snapshot document as the periodic snapshot job would store it."""
    try:
        portfolio = await service.get_portfolio(portfolio_id)
        performance = await service.calculate_performance(portfolio)
    except PortfolioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception("Failed to build snapshot for %s", portfolio_id)
        raise HTTPException(status_code=500, detail=f"Failed to build snapshot: {str(e)}")

    return build_snapshot_data(portfolio, performance)
