"""
Snapshot payload for the periodic snapshot job.

The job owns scheduling and storage; this only shapes a computed
PortfolioPerformance into the JSON document it persists.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from portfolio_tracker.domain.models import Portfolio, PortfolioPerformance


def build_snapshot_data(
    portfolio: Portfolio,
    performance: PortfolioPerformance,
    taken_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    taken_at = taken_at or datetime.now(tz=timezone.utc)
    metrics = performance.metrics
    top = metrics.top_performer
    worst = metrics.worst_performer

    holdings = [
        {
            "symbol": h.symbol,
            "amount": float(h.amount),
            "current_price": float(h.current_price),
            "total_value": float(h.total_value),
            "price_change_24h": float(h.price_change_24h),
            "price_change_percent_24h": float(h.price_change_percent_24h),
            "portfolio_weight": float(h.portfolio_weight),
            "crypto_id": h.crypto_id,
            "crypto_name": h.crypto_name,
        }
        for h in performance.holdings
    ]

    return {
        "portfolio_id": portfolio.id,
        "calculated_at": taken_at.isoformat(),
        "weighted_return_percentage": float(performance.weighted_return_percent),
        "total_change_24h": float(performance.total_change_percent_24h),
        "asset_count": metrics.asset_count,
        "top_performer_symbol": top.symbol if top else None,
        "top_performer_change": float(top.change_percent) if top else None,
        "worst_performer_symbol": worst.symbol if worst else None,
        "worst_performer_change": float(worst.change_percent) if worst else None,
        "snapshot_data": {
            "portfolio_name": portfolio.name,
            "holdings": holdings,
            "total_value": float(performance.total_value),
            "total_change_24h": float(performance.total_change_24h),
            "total_change_percent_24h": float(performance.total_change_percent_24h),
            "metrics": {
                "asset_count": metrics.asset_count,
                "top_performer": {"symbol": top.symbol, "change_percent": float(top.change_percent)} if top else None,
                "worst_performer": {"symbol": worst.symbol, "change_percent": float(worst.change_percent)} if worst else None,
            },
            "timestamp": taken_at.isoformat(),
            "crypto_prices": {h.symbol: float(h.current_price) for h in performance.holdings if h.current_price > 0},
        },
    }
