"""
PERFORMANCE CALCULATOR

Pure functions: holdings + quote map -> performance.
No I/O, no cache awareness. Data-quality problems (missing price,
zero or negative amount) degrade to zero values instead of raising.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from portfolio_tracker.domain.models import (
    AssetPerformance,
    Holding,
    HoldingPerformance,
    PortfolioMetrics,
    PortfolioPerformance,
    Quote,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def empty_holding_performance(holding: Holding) -> HoldingPerformance:
    return HoldingPerformance(symbol=holding.symbol, amount=holding.amount)


def compute_holding_performance(holding: Holding, quote: Optional[Quote]) -> HoldingPerformance:
    """Value one holding; a missing quote yields a zero-valued row."""
    if quote is None:
        logger.warning("No quote for %s, valuing holding at 0", holding.symbol)
        return empty_holding_performance(holding)

    pct = quote.percent_change_24h or ZERO
    total_value = holding.amount * quote.price if holding.amount > 0 else ZERO

    return HoldingPerformance(
        symbol=holding.symbol,
        amount=holding.amount,
        current_price=quote.price,
        total_value=total_value,
        price_change_24h=total_value * pct / HUNDRED,
        price_change_percent_24h=pct,
        market_cap=quote.market_cap,
        volume_24h=quote.volume_24h,
        crypto_id=quote.crypto_id,
        crypto_name=quote.name,
    )


def _with_weight(row: HoldingPerformance, total_value: Decimal) -> HoldingPerformance:
    weight = row.total_value / total_value * HUNDRED if total_value > 0 else ZERO
    return HoldingPerformance(
        symbol=row.symbol,
        amount=row.amount,
        current_price=row.current_price,
        total_value=row.total_value,
        price_change_24h=row.price_change_24h,
        price_change_percent_24h=row.price_change_percent_24h,
        portfolio_weight=weight,
        market_cap=row.market_cap,
        volume_24h=row.volume_24h,
        crypto_id=row.crypto_id,
        crypto_name=row.crypto_name,
    )


def weighted_return(rows: Iterable[HoldingPerformance]) -> Decimal:
    """Sum of weight x 24h percent, i.e. the blended portfolio return in percent."""
    return sum((r.portfolio_weight * r.price_change_percent_24h / HUNDRED for r in rows), ZERO)


def total_change_percent(
    total_value: Decimal,
    total_change: Decimal,
    fallback: Decimal,
) -> Decimal:
    """
    24h change relative to the value 24h ago.

    When that previous value is not positive the ratio is meaningless,
    so the weighted return is reported instead.
    """
    if total_value <= 0:
        return ZERO
    previous = total_value - total_change
    if previous <= 0:
        return fallback
    return total_change / previous * HUNDRED


def _asset(row: HoldingPerformance) -> AssetPerformance:
    return AssetPerformance(
        symbol=row.symbol,
        change_percent=row.price_change_percent_24h,
        change_24h=row.price_change_24h,
        total_value=row.total_value,
    )


def rank_performers(rows: Sequence[HoldingPerformance]):
    """Top and worst performer among rows with a positive value."""
    valued = [r for r in rows if r.total_value > 0]
    if not valued:
        return None, None
    ranked = sorted(valued, key=lambda r: r.price_change_percent_24h, reverse=True)
    return _asset(ranked[0]), _asset(ranked[-1])


def aggregate_portfolio(
    holding_performances: Sequence[HoldingPerformance],
    last_updated: Optional[datetime] = None,
) -> PortfolioPerformance:
    total_value = sum((r.total_value for r in holding_performances), ZERO)
    total_change = sum((r.price_change_24h for r in holding_performances), ZERO)

    rows = tuple(_with_weight(r, total_value) for r in holding_performances)
    blended = weighted_return(rows)
    top, worst = rank_performers(rows)

    return PortfolioPerformance(
        total_value=total_value,
        total_change_24h=total_change,
        total_change_percent_24h=total_change_percent(total_value, total_change, blended),
        weighted_return_percent=blended,
        holdings=rows,
        metrics=PortfolioMetrics(
            asset_count=len(rows),
            top_performer=top,
            worst_performer=worst,
            last_updated=last_updated,
        ),
    )


def empty_performance(holdings: Sequence[Holding] = ()) -> PortfolioPerformance:
    """Zero-valued performance; holdings (if any) appear as zero rows."""
    return aggregate_portfolio([empty_holding_performance(h) for h in holdings])


def build_performance(
    holdings: Sequence[Holding],
    quotes: Mapping[str, Optional[Quote]],
) -> PortfolioPerformance:
    """
    Value every holding against a shared quote map.

    Duplicate symbols are independent rows. `last_updated` is the newest
    quote timestamp used, so an unchanged quote map gives identical output.
    """
    rows = [compute_holding_performance(h, quotes.get(h.symbol)) for h in holdings]
    used = [quotes[h.symbol] for h in holdings if quotes.get(h.symbol) is not None]
    last_updated = max((q.fetched_at for q in used), default=None)
    return aggregate_portfolio(rows, last_updated=last_updated)
