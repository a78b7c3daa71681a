import pytest

from portfolio_tracker.infrastructure.cache.quote_cache import TTLCache, TwoTierCache
from portfolio_tracker.infrastructure.market_data.gateway import STRATEGY_LISTINGS
from portfolio_tracker.infrastructure.market_data.provider_factory import (
    PROJECT_ROOT,
    build_client,
    build_gateway,
    build_historical_service,
    load_market_data_config,
    resolve_path,
)

from fakes import FakeMarketClient


def test_factory_requires_api_key(monkeypatch):
    from portfolio_tracker import config as config_module
    monkeypatch.setattr(config_module.settings, "COINMARKETCAP_API_KEY", "")
    with pytest.raises(ValueError):
        build_client()


def test_factory_builds_client_with_explicit_key():
    client = build_client(api_key="abc")
    assert client.api_key == "abc"
    assert client.convert == "USD"


def test_bundled_config_is_loaded():
    cfg = load_market_data_config()

    assert cfg["strategy"] == "quotes"
    assert cfg["quotes"]["fresh_minutes"] == 5
    assert cfg["fear_greed"]["stale_minutes"] == 1440


def test_missing_config_file_is_empty(tmp_path):
    assert load_market_data_config(str(tmp_path / "missing.yml")) == {}


def test_resolve_path_relative_to_project_root(tmp_path):
    assert resolve_path("config/app.yml") == PROJECT_ROOT / "config" / "app.yml"
    assert resolve_path(str(tmp_path)) == tmp_path


def test_build_gateway_from_config():
    gateway = build_gateway(
        FakeMarketClient(),
        {
            "strategy": "LISTINGS",
            "listing_limit": 200,
            "quotes": {"fresh_minutes": 2, "stale_minutes": 8},
            "fear_greed": {"fresh_minutes": 30},
        },
    )

    assert gateway.strategy == STRATEGY_LISTINGS
    assert gateway.listing_limit == 200
    assert gateway.quote_fresh_minutes == 2
    assert gateway.quote_stale_minutes == 8
    assert gateway.fear_greed_fresh_minutes == 30
    assert gateway.global_fresh_minutes == 10


def test_injected_empty_caches_are_kept():
    quote_cache = TwoTierCache()
    historical_cache = TTLCache()

    gateway = build_gateway(FakeMarketClient(), {}, cache=quote_cache)
    historical = build_historical_service(FakeMarketClient(), {}, cache=historical_cache)

    assert gateway.cache is quote_cache
    assert historical.cache is historical_cache


def test_build_historical_service_ttl():
    service = build_historical_service(FakeMarketClient(), {"historical": {"ttl_hours": 6}})
    assert service.ttl_hours == 6
