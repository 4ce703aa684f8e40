from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./cryptodash.db"
    database_echo: bool = False

    # Binance public market data
    binance_base_url: str = "https://api.binance.com/api/v3"
    supported_coins: List[str] = ["BTC", "ETH", "XRP"]
    quote_currency: str = "USDT"

    # Price oracle rate limiting / retry
    oracle_request_delay_seconds: float = 0.1  # Minimum gap between requests
    oracle_timeout_seconds: float = 10.0
    oracle_max_retries: int = 2

    # Stop-order engine
    engine_enabled: bool = True
    stop_check_interval_seconds: float = 30.0
    sweep_concurrency: int = 5  # Orders evaluated in parallel per sweep
    shutdown_timeout_seconds: float = 60.0

    # Liquidation notifications
    notification_interval_seconds: float = 5.0  # Outbox dispatch cadence
    notification_timeout_seconds: float = 30.0  # Per notice

    # Moving averages
    moving_average_interval_seconds: float = 3600.0
    moving_average_periods: List[int] = [1, 2, 5, 9, 15]
    moving_average_retention_days: int = 30

    # Amazon SES (liquidation notifications)
    ses_enabled: bool = False
    ses_region: str = "us-east-1"
    ses_sender: str = "CryptoDash <noreply@cryptodash.local>"

    # Logging
    log_level: str = "INFO"

    @field_validator("supported_coins")
    @classmethod
    def normalize_coins(cls, v: List[str]) -> List[str]:
        """Coin symbols are always stored upper-case"""
        return [coin.strip().upper() for coin in v if coin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
