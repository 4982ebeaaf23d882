"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Allocation policy knobs (period length, subscription bounds, low-season caps)
live here so operators can tune them per deployment.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from datetime import date
from decimal import Decimal
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # API SECURITY
    # ===================
    api_key: Optional[str] = Field(
        None,
        description="API key required on admin routes (disabled when unset)"
    )
    cron_secret: Optional[str] = Field(
        None,
        description="Bearer token expected by the cron endpoints"
    )

    # ===================
    # TELEGRAM (operator alerts)
    # ===================
    telegram_bot_token: Optional[str] = Field(
        None,
        description="Telegram bot token from @BotFather"
    )
    telegram_chat_id: Optional[str] = Field(
        None,
        description="Telegram chat ID for operator alerts"
    )

    # ===================
    # PUSH NOTIFICATIONS
    # ===================
    expo_push_url: str = Field(
        default="https://exp.host/--/api/v2/push/send",
        description="Expo push API endpoint"
    )
    expo_batch_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Tokens per Expo push request (Expo caps this at 100)"
    )
    notifications_enabled: bool = Field(
        default=True,
        description="Master switch for customer notifications"
    )
    notification_language: str = Field(
        default="en",
        pattern="^(en|es)$",
        description="Language for customer notifications and operator alerts"
    )

    # ===================
    # ALLOCATION PERIODS
    # ===================
    period_length_days: int = Field(
        default=7,
        ge=1,
        le=31,
        description="Length of one allocation period in days"
    )
    period_anchor_date: date = Field(
        default=date(2024, 1, 1),
        description="Any period start date; boundaries repeat every period_length_days from it"
    )

    # ===================
    # SUBSCRIPTIONS
    # ===================
    subscription_min_periods: int = Field(
        default=2,
        ge=1,
        le=52,
        description="Minimum number of periods a subscription can run"
    )
    subscription_max_periods: int = Field(
        default=4,
        ge=1,
        le=52,
        description="Maximum number of periods a subscription can run"
    )

    # ===================
    # LOW SEASON POLICY
    # ===================
    low_season_stock_threshold: int = Field(
        default=120,
        ge=0,
        description="Below this stock the stricter low-season cap applies"
    )
    low_season_small_cap: int = Field(
        default=20,
        ge=10,
        description="Per-order cap in low season when stock is under the threshold"
    )
    low_season_large_cap: int = Field(
        default=30,
        ge=10,
        description="Per-order cap in low season otherwise"
    )

    # ===================
    # GLOBAL SETTINGS DEFAULTS (seed the app_settings row)
    # ===================
    default_unit_price: Decimal = Field(
        default=Decimal("5.99"),
        ge=0,
        description="Price per bundle used for newly created periods"
    )
    default_max_subscription_quantity: int = Field(
        default=120,
        ge=0,
        description="Aggregate ceiling across all active subscriptions"
    )
    default_max_per_subscription: int = Field(
        default=30,
        ge=10,
        description="Ceiling for a single subscription"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def telegram_configured(self) -> bool:
        """Check if Telegram is properly configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
