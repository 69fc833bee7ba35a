"""Stripe API wrapper."""

import asyncio
from datetime import UTC, datetime
from typing import Any

import stripe

from app.config import StripeConfig
from app.models.subscription import SubscriptionSnapshot, Tier


def _as_dict(obj: Any) -> dict:
    if type(obj) is dict:
        return obj
    # StripeObject: to_dict() on current SDKs, to_dict_recursive() on older ones
    return obj.to_dict() if hasattr(obj, "to_dict") else obj.to_dict_recursive()


def _to_datetime(timestamp: int | None) -> datetime | None:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=UTC)


class StripeService:
    """Encapsulates the Stripe SDK calls used by the webhook route."""

    def __init__(self, config: StripeConfig) -> None:
        if not config.secret_key:
            raise ValueError("Stripe secret key is required")

        self.config = config
        stripe.api_key = config.secret_key

    @property
    def price_mapping(self) -> dict[str, Tier]:
        mapping = {
            self.config.price_basic: Tier.BASIC,
            self.config.price_plus: Tier.PLUS,
        }
        return {price_id: tier for price_id, tier in mapping.items() if price_id}

    def verify_webhook_event(self, payload: bytes, signature: str | None) -> dict:
        if not self.config.webhook_secret:
            raise ValueError("Stripe webhook secret is not configured")
        if not signature:
            raise ValueError("Missing Stripe-Signature header")

        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature,
            secret=self.config.webhook_secret,
        )
        return _as_dict(event)

    async def fetch_subscription_snapshot(
        self, subscription_id: str, *, user_id: str | None = None
    ) -> SubscriptionSnapshot:
        subscription = await asyncio.to_thread(stripe.Subscription.retrieve, subscription_id)
        return self.subscription_snapshot_from_object(subscription, user_id=user_id)

    def subscription_snapshot_from_object(
        self, subscription_obj: dict | Any, *, user_id: str | None = None
    ) -> SubscriptionSnapshot:
        subscription = _as_dict(subscription_obj)

        items = (subscription.get("items") or {}).get("data") or []
        if not items:
            raise ValueError("Stripe subscription has no items")

        price_id = (items[0].get("price") or {}).get("id")
        if not price_id:
            raise ValueError("Stripe subscription is missing price id")

        # Newer API versions moved the billing period onto the subscription item
        period_end = subscription.get("current_period_end") or items[0].get("current_period_end")

        metadata = subscription.get("metadata") or {}
        derived_user_id = user_id or metadata.get("user_id")

        return SubscriptionSnapshot(
            subscription_id=str(subscription.get("id", "")),
            customer_id=str(subscription.get("customer", "")),
            status=str(subscription.get("status", "")),
            price_id=str(price_id),
            current_period_end=_to_datetime(period_end),
            trial_end=_to_datetime(subscription.get("trial_end")),
            user_id=derived_user_id,
        )
