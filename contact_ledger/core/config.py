"""
Application configuration.
All settings are loaded from environment variables (or a .env file).
Coin pricing values here are only the defaults for the admin-editable
pricing row; the engine reads the effective values per operation.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: database_url has no default - it MUST be set.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    # CORS: comma-separated origins. Empty = default list in main.py.
    cors_origins: str = ""

    # ===========================================
    # DATABASE (PostgreSQL in production, SQLite for local runs and tests)
    # ===========================================
    database_url: str  # Required, no default
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 1800  # recycle connections every 30 min
    # Postgres lock_timeout per transaction; a blocked unlock fails as Retryable after this.
    db_lock_timeout_ms: int = 3000
    # SQLite busy timeout (seconds) for BEGIN IMMEDIATE.
    sqlite_busy_timeout: float = 30.0

    # ===========================================
    # COIN PRICING (defaults for the pricing_settings row)
    # ===========================================
    cost_normal: int = 15
    cost_exclusive: int = 50
    max_slots: int = 4
    guarantee_percent: int = 30
    guarantee_window_days: int = 7

    # ===========================================
    # REFUNDS
    # ===========================================
    refund_reason_min_length: int = 20

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None  # Optional, but admin routes refuse every call without it

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("cost_normal", "cost_exclusive", "max_slots")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("coin costs and max_slots must be positive")
        return v

    @field_validator("guarantee_percent")
    @classmethod
    def validate_percent(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("guarantee_percent must be between 0 and 100")
        return v

    @field_validator("guarantee_window_days")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("guarantee_window_days cannot be negative")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
