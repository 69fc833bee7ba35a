"""
Application configuration using pydantic-settings.
Loads environment variables from .env file.

Nested config groups (OpenAIConfig, BillingConfig, StripeConfig,
SupabaseTablesConfig) are env-overridable via the double-underscore
delimiter, e.g.:
    OPENAI__MODEL=gpt-4.1
    OPENAI__REQUEST_TIMEOUT_SECONDS=60
    BILLING__REQUIRE_PAYMENT_LINK=true
    STRIPE__WEBHOOK_SECRET=whsec_...
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAIConfig(BaseModel):
    """OpenAI Responses API call parameters."""

    model: str = "gpt-4.1-mini"
    max_output_tokens: int | None = None
    # Request-level timeout applied around the generation call
    request_timeout_seconds: float = 90.0


class BillingConfig(BaseModel):
    """Entitlement and quota enforcement knobs."""

    # When true, a subscription without a Stripe customer/subscription id
    # is treated as inactive even if its status says otherwise.
    require_payment_link: bool = False
    # Compare-and-set attempts before the ledger gives up on a contended counter
    max_reserve_attempts: int = Field(default=5, ge=1)


class StripeConfig(BaseModel):
    """Stripe webhook configuration."""

    secret_key: str = ""
    webhook_secret: str = ""
    price_basic: str = ""
    price_plus: str = ""


class SupabaseTablesConfig(BaseModel):
    """Table names used by the Supabase repositories."""

    subscriptions: str = "subscriptions"
    generation_usage: str = "generation_usage"
    meal_plans: str = "meal_plans"
    webhook_events: str = "stripe_webhook_events"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # API Keys
    openai_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_secret_key: str = ""

    # LangSmith / Observability
    langsmith_api_key: str = ""
    langsmith_project: str = "mealweek"
    langchain_tracing_v2: bool = False  # Explicit opt-in

    # App Settings
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000"]

    # Nested config groups (env-overridable via SECTION__KEY format)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    billing: BillingConfig = Field(default_factory=BillingConfig)
    stripe: StripeConfig = Field(default_factory=StripeConfig)
    tables: SupabaseTablesConfig = Field(default_factory=SupabaseTablesConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
