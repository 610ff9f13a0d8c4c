"""Centralized configuration for the NSE market cache engine."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Tiered Cache Configuration (seconds)
    hot_cache_ttl: int = 60
    hot_cache_check_period: int = 120
    main_cache_ttl: int = 300
    main_cache_check_period: int = 600
    static_cache_ttl: int = 3600
    static_cache_check_period: int = 1800

    # Market Hours Configuration (NSE - India)
    nse_open: str = "09:15"
    nse_close: str = "15:30"
    nse_timezone: str = "Asia/Kolkata"
    nse_holidays: List[str] = [
        "2025-02-26",
        "2025-03-14",
        "2025-03-31",
        "2025-04-10",
        "2025-04-14",
        "2025-04-18",
        "2025-05-01",
        "2025-08-15",
        "2025-08-27",
        "2025-10-02",
        "2025-10-21",
        "2025-10-22",
        "2025-11-05",
        "2025-12-25",
    ]

    # Retry Configuration
    retry_initial_delay_ms: int = 1000

    # Domain Cache Catalog (milliseconds)
    stock_quote_ttl_ms: int = 120_000
    stock_quote_poll_interval_ms: int = 30_000
    stock_quote_poll_max_age_ms: int = 60_000
    stock_chart_ttl_ms: int = 300_000
    index_quote_ttl_ms: int = 120_000
    index_quote_poll_interval_ms: int = 15_000
    index_quote_poll_max_age_ms: int = 30_000
    static_data_ttl_ms: int = 3_600_000
    corporate_data_ttl_ms: int = 3_600_000
    poll_retry_attempts: int = 3
    poll_backoff_multiplier: float = 2.0

    # Client Cache Configuration
    client_cache_dir: str = ".cache/client"
    client_cache_db: str = ".cache/client/bulk.db"
    client_cache_large_threshold: int = 50_000

    # Upstream (NSE) Configuration
    nse_base_url: str = "https://www.nseindia.com"
    nse_timeout: float = 15.0
    nse_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"

    # Durable Store Configuration
    durable_store_path: str = "market_data.db"

    # Technical Indicators Configuration
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std: float = 2.0
    atr_period: int = 14
    stochastic_k_period: int = 14
    stochastic_d_period: int = 3
    sma_period: int = 20
    ema_period: int = 20

    # Logging Configuration
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )


settings = Settings()
