from functools import lru_cache
import json
from typing import Optional

from pydantic_settings import BaseSettings


def parse_cors_origins(value: str) -> list[str]:
    if not value:
        return []

    parsed: list[str]
    raw = value.strip()
    if raw.startswith("["):
        try:
            items = json.loads(raw)
            parsed = [str(item).strip() for item in items if str(item).strip()]
        except (TypeError, ValueError):
            parsed = []
    else:
        parsed = [origin.strip() for origin in raw.split(",") if origin.strip()]

    # Preserve order and remove duplicates.
    return list(dict.fromkeys(parsed))


class Settings(BaseSettings):
    app_name: str = "Budget Ledger"
    environment: str = "development"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    # Security
    secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Database
    database_url: str
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_pool_timeout: int = 15
    db_pool_recycle: int = 1200
    db_pool_pre_ping: bool = True
    db_connect_timeout: int = 5
    db_statement_timeout_ms: int = 10000

    # Redis (optional, rate limit window storage)
    redis_url: Optional[str] = None

    # Ledger
    default_base_currency: str = "USD"
    max_tags_per_transaction: int = 5
    idempotency_ttl_hours: int = 24
    idempotency_key_min_length: int = 10

    # Exchange rates
    exchange_rate_lookback_days: int = 60
    exchange_rate_recent_max_days: int = 7
    exchange_rate_outdated_max_days: int = 30
    exchange_rate_pivot_currency: str = "USD"

    # Exchange rate feed (exchangerate.host)
    exchange_rate_api_url: str = "https://api.exchangerate.host/timeframe"
    exchange_rate_api_key: Optional[str] = None
    exchange_rate_timeout_seconds: int = 15
    exchange_rate_retry_count: int = 2

    # Rate limiting
    rate_limit_enabled: bool = True
    default_rate_limit: str = "300/minute"
    transaction_write_rate_limit: str = "10/10 seconds;120/hour"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"
    auto_create_tables: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
