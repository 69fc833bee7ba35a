"""
Entitlement resolution.

Pure functions of a subscription record and the current time: no I/O and
no hidden state, so the same inputs always produce the same entitlement.
"""

from datetime import datetime

from app.constants import ALLOWED_STYLES, WEEKLY_LIMITS
from app.models.subscription import (
    Entitlement,
    SubscriptionRecord,
    SubscriptionStatus,
    Tier,
)

MISSING_STRIPE_LINK = "MISSING_STRIPE_LINK"
NOT_ACTIVE = "NOT_ACTIVE"


def in_trial(record: SubscriptionRecord, now: datetime) -> bool:
    return record.trial_until is not None and record.trial_until > now


def resolve_entitlement(record: SubscriptionRecord, now: datetime) -> Entitlement:
    """Derive the effective tier, weekly quota and feature flags.

    An unexpired trial upgrades any tier to plus.
    """
    trialing = in_trial(record, now)
    effective_tier = Tier.PLUS if trialing else record.tier

    return Entitlement(
        effective_tier=effective_tier,
        in_trial=trialing,
        generation_limit_per_week=WEEKLY_LIMITS[effective_tier],
        calories_enabled=effective_tier == Tier.PLUS,
        allowed_styles=ALLOWED_STYLES[effective_tier],
    )


def inactive_reason(
    record: SubscriptionRecord,
    now: datetime,
    *,
    require_payment_link: bool = False,
) -> str | None:
    """Return why the record may not generate, or None when it may.

    ``active`` counts until ``current_period_end`` (open-ended when unset),
    ``trialing`` counts until ``trial_until``; every other status is inactive.
    """
    if record.status == SubscriptionStatus.ACTIVE:
        active = record.current_period_end is None or record.current_period_end > now
    elif record.status == SubscriptionStatus.TRIALING:
        active = in_trial(record, now)
    else:
        active = False

    if require_payment_link and not (record.stripe_customer_id or record.stripe_subscription_id):
        return MISSING_STRIPE_LINK
    if not active:
        return NOT_ACTIVE
    return None


def is_subscription_active(
    record: SubscriptionRecord,
    now: datetime,
    *,
    require_payment_link: bool = False,
) -> bool:
    return inactive_reason(record, now, require_payment_link=require_payment_link) is None
