"""Subscription and entitlement models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class Tier(str, Enum):
    """Subscription levels."""

    BASIC = "basic"
    PLUS = "plus"


class SubscriptionStatus(str, Enum):
    """Lifecycle status of a subscription record."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INACTIVE = "inactive"


class Style(str, Enum):
    """Meal plan style tags a request can ask for."""

    CHEAP = "cheap"
    QUICK = "quick"
    BALANCED = "balanced"
    VEGETARIAN = "vegetarian"
    TRADITIONAL = "traditional"
    EXOTIC = "exotic"
    FIT = "fit"


class SubscriptionRecord(BaseModel):
    """Persisted subscription state for a user (one row per user)."""

    user_id: str
    tier: Tier = Tier.BASIC
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    trial_until: datetime | None = None
    current_period_end: datetime | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("trial_until", "current_period_end", "created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        """Timestamps stored without an offset are UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Entitlement(BaseModel):
    """What a subscription record grants at a given instant. Never persisted."""

    effective_tier: Tier
    in_trial: bool
    generation_limit_per_week: int = Field(ge=0)
    calories_enabled: bool
    allowed_styles: frozenset[Style]

    def allows_style(self, style: Style) -> bool:
        return style in self.allowed_styles


class SubscriptionSnapshot(BaseModel):
    """Normalized Stripe subscription payload."""

    subscription_id: str
    customer_id: str
    status: str
    price_id: str
    current_period_end: datetime | None = None
    trial_end: datetime | None = None
    user_id: str | None = None
