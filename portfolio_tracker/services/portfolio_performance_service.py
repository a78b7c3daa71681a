# portfolio_tracker/services/portfolio_performance_service.py

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from portfolio_tracker.domain.models import Portfolio, PortfolioPerformance, Quote
from portfolio_tracker.domain.services.performance_calculator import build_performance, empty_performance
from portfolio_tracker.infrastructure.market_data.errors import PartialQuotesError, UpstreamUnavailableError
from portfolio_tracker.infrastructure.market_data.gateway import MarketDataGateway, normalize_symbols
from portfolio_tracker.infrastructure.repositories.portfolio_repository import PortfolioRepository
from portfolio_tracker.services.errors import PortfolioNotFoundError

logger = logging.getLogger(__name__)


class BatchStrategy:
    """One gateway call for the union of all symbols, then pure math per portfolio."""

    name = "batch"

    def __init__(self, gateway: MarketDataGateway):
        self.gateway = gateway

    async def run(self, portfolios: Sequence[Portfolio]) -> Dict[str, PortfolioPerformance]:
        symbols = normalize_symbols(s for p in portfolios for s in p.symbols)
        quotes: Mapping[str, Optional[Quote]] = {}
        if symbols:
            quotes = await self.gateway.get_quotes_by_symbols(symbols)

        results: Dict[str, PortfolioPerformance] = {}
        for portfolio in portfolios:
            try:
                results[portfolio.id] = build_performance(portfolio.holdings, quotes)
            except Exception:
                logger.exception("Performance calculation failed for portfolio %s", portfolio.id)
                results[portfolio.id] = empty_performance(portfolio.holdings)
        return results


class PerPortfolioFallbackStrategy:
    """Independent best-effort calculation per portfolio; failures stay isolated."""

    name = "per_portfolio"

    def __init__(self, service: "PortfolioPerformanceService"):
        self.service = service

    async def run(self, portfolios: Sequence[Portfolio]) -> Dict[str, PortfolioPerformance]:
        outcomes = await asyncio.gather(
            *(self.service.calculate_performance(p) for p in portfolios),
            return_exceptions=True,
        )

        results: Dict[str, PortfolioPerformance] = {}
        for portfolio, outcome in zip(portfolios, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Failed to calculate performance for portfolio %s: %s", portfolio.id, outcome)
                continue
            results[portfolio.id] = outcome
        return results


class PortfolioPerformanceService:
    def __init__(self, gateway: MarketDataGateway, repository: Optional[PortfolioRepository] = None):
        self.gateway = gateway
        self.repository = repository
        self.batch_strategy = BatchStrategy(gateway)
        self.fallback_strategy = PerPortfolioFallbackStrategy(self)
        self.last_strategy: Optional[str] = None

    async def calculate_performance(self, portfolio: Portfolio) -> PortfolioPerformance:
        if not portfolio.holdings:
            return empty_performance()

        try:
            quotes = await self.gateway.get_quotes_by_symbols(portfolio.symbols)
        except PartialQuotesError as exc:
            logger.warning(
                "Market data partially unavailable for portfolio %s, zero values for: %s",
                portfolio.id,
                ", ".join(exc.unavailable),
            )
            quotes = exc.quotes
        except UpstreamUnavailableError as exc:
            logger.warning("Market data unavailable for portfolio %s, returning zero values: %s", portfolio.id, exc)
            return empty_performance(portfolio.holdings)

        performance = build_performance(portfolio.holdings, quotes)
        logger.info(
            "✅ Portfolio %s performance ready | value=%.2f change24h=%.2f%%",
            portfolio.id,
            performance.total_value,
            performance.total_change_percent_24h,
        )
        return performance

    async def calculate_many(self, portfolios: Sequence[Portfolio]) -> Dict[str, PortfolioPerformance]:
        if not portfolios:
            return {}

        try:
            results = await self.batch_strategy.run(portfolios)
            self.last_strategy = self.batch_strategy.name
            return results
        except UpstreamUnavailableError as exc:
            logger.warning(
                "Batch quote fetch failed for %d portfolios, falling back per portfolio: %s",
                len(portfolios), exc,
            )

        results = await self.fallback_strategy.run(portfolios)
        self.last_strategy = self.fallback_strategy.name
        return results

    # ------------------------------------------------------------------
    # Repository-backed entry points
    # ------------------------------------------------------------------

    async def get_portfolio(self, portfolio_id: str) -> Portfolio:
        if self.repository is None:
            raise RuntimeError("Portfolio repository not configured")
        portfolio = await self.repository.get_portfolio_by_id(portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    async def performance_for(self, portfolio_id: str) -> PortfolioPerformance:
        return await self.calculate_performance(await self.get_portfolio(portfolio_id))

    async def performance_for_all(self) -> List[tuple]:
        if self.repository is None:
            raise RuntimeError("Portfolio repository not configured")
        portfolios = await self.repository.get_all_portfolios()
        results = await self.calculate_many(portfolios)
        return [(p, results[p.id]) for p in portfolios if p.id in results]
