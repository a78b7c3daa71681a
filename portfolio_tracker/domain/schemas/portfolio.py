import datetime as dt
from typing import List, Optional

from pydantic import BaseModel

from portfolio_tracker.domain.models import (
    AssetPerformance,
    HistoryPoint,
    HoldingPerformance,
    PortfolioPerformance,
)


class AssetPerformanceSchema(BaseModel):
    symbol: str
    change_percent: float
    change_24h: float
    total_value: float

    @classmethod
    def from_domain(cls, asset: Optional[AssetPerformance]) -> Optional["AssetPerformanceSchema"]:
        if asset is None:
            return None
        return cls(
            symbol=asset.symbol,
            change_percent=float(asset.change_percent),
            change_24h=float(asset.change_24h),
            total_value=float(asset.total_value),
        )


class HoldingPerformanceSchema(BaseModel):
    symbol: str
    amount: float
    current_price: float
    total_value: float
    price_change_24h: float
    price_change_percent_24h: float
    portfolio_weight: float
    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    crypto_id: Optional[int] = None
    crypto_name: Optional[str] = None

    @classmethod
    def from_domain(cls, row: HoldingPerformance) -> "HoldingPerformanceSchema":
        return cls(
            symbol=row.symbol,
            amount=float(row.amount),
            current_price=float(row.current_price),
            total_value=float(row.total_value),
            price_change_24h=float(row.price_change_24h),
            price_change_percent_24h=float(row.price_change_percent_24h),
            portfolio_weight=float(row.portfolio_weight),
            market_cap=float(row.market_cap) if row.market_cap is not None else None,
            volume_24h=float(row.volume_24h) if row.volume_24h is not None else None,
            crypto_id=row.crypto_id,
            crypto_name=row.crypto_name,
        )


class PortfolioMetricsSchema(BaseModel):
    asset_count: int
    top_performer: Optional[AssetPerformanceSchema] = None
    worst_performer: Optional[AssetPerformanceSchema] = None
    last_updated: Optional[dt.datetime] = None


class PortfolioPerformanceSchema(BaseModel):
    portfolio_id: str
    name: Optional[str] = None
    total_value: float
    total_change_24h: float
    total_change_percent_24h: float
    weighted_return_percent: float
    holdings: List[HoldingPerformanceSchema]
    metrics: PortfolioMetricsSchema

    @classmethod
    def from_domain(
        cls,
        portfolio_id: str,
        performance: PortfolioPerformance,
        name: Optional[str] = None,
    ) -> "PortfolioPerformanceSchema":
        metrics = performance.metrics
        return cls(
            portfolio_id=portfolio_id,
            name=name,
            total_value=float(performance.total_value),
            total_change_24h=float(performance.total_change_24h),
            total_change_percent_24h=float(performance.total_change_percent_24h),
            weighted_return_percent=float(performance.weighted_return_percent),
            holdings=[HoldingPerformanceSchema.from_domain(h) for h in performance.holdings],
            metrics=PortfolioMetricsSchema(
                asset_count=metrics.asset_count,
                top_performer=AssetPerformanceSchema.from_domain(metrics.top_performer),
                worst_performer=AssetPerformanceSchema.from_domain(metrics.worst_performer),
                last_updated=metrics.last_updated,
            ),
        )


class HistoryPointSchema(BaseModel):
    date: dt.date
    value: float
    timestamp: dt.datetime

    @classmethod
    def from_domain(cls, point: HistoryPoint) -> "HistoryPointSchema":
        return cls(date=point.date, value=float(point.value), timestamp=point.timestamp)


class HistoricalPerformanceSchema(BaseModel):
    portfolio_id: str
    days: int
    points: List[HistoryPointSchema]
