"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


ZERO = Decimal("0")


class Freshness(str, Enum):
    """Cache entry freshness"""
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Quote:
    """Market quote for one cryptocurrency - Immutable"""
    symbol: str
    price: Decimal
    percent_change_24h: Decimal
    fetched_at: datetime
    percent_change_7d: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    name: Optional[str] = None
    crypto_id: Optional[int] = None

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Quote symbol cannot be empty")
        object.__setattr__(self, "symbol", self.symbol.upper())


@dataclass(frozen=True)
class Holding:
    """A symbol/amount row inside a portfolio"""
    id: str
    symbol: str
    amount: Decimal

    def __post_init__(self):
        object.__setattr__(self, "symbol", (self.symbol or "").strip().upper())
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))


@dataclass(frozen=True)
class Portfolio:
    """Portfolio snapshot as handed over by the persistence layer"""
    id: str
    name: str
    holdings: Tuple[Holding, ...] = ()
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "holdings", tuple(self.holdings))

    @property
    def symbols(self) -> Tuple[str, ...]:
        """Distinct symbols in holding order"""
        return tuple(dict.fromkeys(h.symbol for h in self.holdings if h.symbol))


@dataclass(frozen=True)
class HoldingPerformance:
    """Per-holding performance - derived, never persisted"""
    symbol: str
    amount: Decimal
    current_price: Decimal = ZERO
    total_value: Decimal = ZERO
    price_change_24h: Decimal = ZERO
    price_change_percent_24h: Decimal = ZERO
    portfolio_weight: Decimal = ZERO
    market_cap: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    crypto_id: Optional[int] = None
    crypto_name: Optional[str] = None


@dataclass(frozen=True)
class AssetPerformance:
    """Top/worst performer summary"""
    symbol: str
    change_percent: Decimal
    change_24h: Decimal
    total_value: Decimal


@dataclass(frozen=True)
class PortfolioMetrics:
    asset_count: int
    top_performer: Optional[AssetPerformance] = None
    worst_performer: Optional[AssetPerformance] = None
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class PortfolioPerformance:
    """Portfolio-level aggregates - derived, never persisted"""
    total_value: Decimal
    total_change_24h: Decimal
    total_change_percent_24h: Decimal
    weighted_return_percent: Decimal
    metrics: PortfolioMetrics
    holdings: Tuple[HoldingPerformance, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class HistoricalQuote:
    """One point of a daily historical price series"""
    timestamp: datetime
    price: Decimal

    @property
    def date(self) -> date:
        return self.timestamp.date()


@dataclass(frozen=True)
class HistoryPoint:
    """Approximated portfolio value for one calendar day"""
    date: date
    value: Decimal
    timestamp: datetime
