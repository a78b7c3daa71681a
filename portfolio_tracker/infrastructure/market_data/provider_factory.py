"""
Market data gateway factory (config-driven).
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import yaml

from portfolio_tracker.config import settings
from portfolio_tracker.infrastructure.cache.quote_cache import TTLCache, TwoTierCache
from portfolio_tracker.infrastructure.market_data.coinmarketcap_client import CoinMarketCapClient
from portfolio_tracker.infrastructure.market_data.gateway import MarketDataGateway
from portfolio_tracker.services.historical_performance_service import HistoricalPerformanceService

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def resolve_path(path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def load_market_data_config(config_file: Optional[str] = None) -> Dict:
    app_file = resolve_path(config_file or settings.MARKET_DATA_CONFIG_FILE)
    if not app_file.exists():
        return {}
    with open(app_file, "r") as f:
        data = yaml.safe_load(f) or {}
    return data.get("market_data", {})


def build_client(api_key: Optional[str] = None) -> CoinMarketCapClient:
    api_key = (api_key if api_key is not None else settings.COINMARKETCAP_API_KEY) or ""
    if not api_key.strip():
        raise ValueError("COINMARKETCAP_API_KEY is not set")
    return CoinMarketCapClient(
        api_key=api_key,
        base_url=settings.COINMARKETCAP_BASE_URL,
        timeout_seconds=settings.MARKET_DATA_TIMEOUT_SECONDS,
    )


def build_gateway(
    client,
    app_config: Dict,
    cache: Optional[TwoTierCache] = None,
    fear_greed_client=None,
) -> MarketDataGateway:
    quotes_cfg = app_config.get("quotes", {})
    global_cfg = app_config.get("global_metrics", {})
    fng_cfg = app_config.get("fear_greed", {})

    fresh = float(quotes_cfg.get("fresh_minutes", 5))
    stale = float(quotes_cfg.get("stale_minutes", 15))
    return MarketDataGateway(
        client=client,
        cache=cache if cache is not None else TwoTierCache(default_fresh_minutes=fresh, default_stale_minutes=stale),
        fear_greed_client=fear_greed_client,
        strategy=str(app_config.get("strategy", "quotes")).lower(),
        listing_limit=int(app_config.get("listing_limit", 5000)),
        quote_fresh_minutes=fresh,
        quote_stale_minutes=stale,
        global_fresh_minutes=float(global_cfg.get("fresh_minutes", 10)),
        global_stale_minutes=float(global_cfg.get("stale_minutes", 30)),
        fear_greed_fresh_minutes=float(fng_cfg.get("fresh_minutes", 60)),
        fear_greed_stale_minutes=float(fng_cfg.get("stale_minutes", 1440)),
        batch_timeout_seconds=settings.MARKET_DATA_TIMEOUT_SECONDS,
    )


def build_historical_service(client, app_config: Dict, cache: Optional[TTLCache] = None) -> HistoricalPerformanceService:
    historical_cfg = app_config.get("historical", {})
    return HistoricalPerformanceService(
        client=client,
        cache=cache if cache is not None else TTLCache(),
        ttl_hours=float(historical_cfg.get("ttl_hours", 24)),
    )

