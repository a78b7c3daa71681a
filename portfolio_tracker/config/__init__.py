"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # ======================
    # Market Data
    # ======================
    COINMARKETCAP_API_KEY: Optional[str] = None
    COINMARKETCAP_BASE_URL: str = "https://pro-api.coinmarketcap.com"
    FEAR_GREED_URL: str = "https://api.alternative.me/fng/"
    MARKET_DATA_TIMEOUT_SECONDS: float = 10.0
    MARKET_DATA_CONFIG_FILE: str = "config/app.yml"

    # ======================
    # Portfolios
    # ======================
    PORTFOLIO_SEED_FILE: str = "config/portfolios.yml"

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
