"""
Application configuration using pydantic-settings.
Loads environment variables from .env file.

Nested config groups (EntitlementConfig, StoreConfig, FeatureFlagsConfig) are
env-overridable via the double-underscore delimiter, e.g.:
    ENTITLEMENTS__FREE_DAILY_QUOTA=5
    ENTITLEMENTS__STORE_TIMEOUT_SECONDS=1.5
    STORE__BACKEND=file
    FEATURE_FLAGS__MAINTENANCE_MODE=true
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EntitlementConfig(BaseModel):
    """Daily quotas, anomaly threshold and persistence keys."""

    free_daily_quota: int = 3
    monthly_daily_quota: int = 5
    annual_daily_quota: int = 10
    # Finite sentinel standing in for "unlimited"
    pro_daily_quota: int = 999

    anomaly_threshold: int = 3
    module_poll_interval_seconds: float = 5.0
    store_timeout_seconds: float = 2.0

    premium_status_key: str = "premium_status"
    ideas_used_key: str = "ideas_used"
    security_state_key: str = "security_state"
    promo_uses_prefix: str = "promo_uses:"


class StoreConfig(BaseModel):
    """Key-value store backend selection."""

    backend: Literal["memory", "file", "supabase"] = "file"
    file_path: str = ".waveup/store.json"
    supabase_table: str = "kv_store"


class FeatureFlagsConfig(BaseModel):
    """Locally provisioned module flags.

    Env-overridable via FEATURE_FLAGS__KEY format, e.g.:
        FEATURE_FLAGS__DISABLED_MODULES='["LEADERBOARD"]'
    """

    maintenance_mode: bool = False
    disabled_modules: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # AI idea generation
    openai_api_key: str = ""
    openai_ideas_model: str = "gpt-4o-mini"
    openai_ideas_max_tokens: int = 800

    # Supabase (synced store backend)
    supabase_url: str = ""
    supabase_secret_key: str = ""

    # App Settings
    debug: bool = False

    # Nested config groups (env-overridable via SECTION__KEY format)
    entitlements: EntitlementConfig = Field(default_factory=EntitlementConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    feature_flags: FeatureFlagsConfig = Field(default_factory=FeatureFlagsConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
