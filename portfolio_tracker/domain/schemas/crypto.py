from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from portfolio_tracker.domain.models import Quote


class QuoteSchema(BaseModel):
    symbol: str
    price: float
    percent_change_24h: float
    percent_change_7d: Optional[float] = None
    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    name: Optional[str] = None
    crypto_id: Optional[int] = None
    fetched_at: datetime

    @classmethod
    def from_domain(cls, quote: Quote) -> "QuoteSchema":
        def opt(value):
            return float(value) if value is not None else None

        return cls(
            symbol=quote.symbol,
            price=float(quote.price),
            percent_change_24h=float(quote.percent_change_24h),
            percent_change_7d=opt(quote.percent_change_7d),
            market_cap=opt(quote.market_cap),
            volume_24h=opt(quote.volume_24h),
            name=quote.name,
            crypto_id=quote.crypto_id,
            fetched_at=quote.fetched_at,
        )


class BatchQuotesSchema(BaseModel):
    quotes: Dict[str, Optional[QuoteSchema]]
    not_found: List[str]
    unavailable: List[str] = []


class CachedPayloadSchema(BaseModel):
    data: Dict[str, Any]
    cached: bool
    stale: bool
