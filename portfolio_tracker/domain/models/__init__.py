"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    Freshness,

    # Inputs
    Holding,
    Portfolio,
    Quote,
    HistoricalQuote,

    # Derived
    AssetPerformance,
    HistoryPoint,
    HoldingPerformance,
    PortfolioMetrics,
    PortfolioPerformance,
)

__all__ = [
    # Enums
    "Freshness",

    # Inputs
    "Holding",
    "Portfolio",
    "Quote",
    "HistoricalQuote",

    # Derived
    "AssetPerformance",
    "HistoryPoint",
    "HoldingPerformance",
    "PortfolioMetrics",
    "PortfolioPerformance",
]
