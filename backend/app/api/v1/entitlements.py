"""Entitlement and weekly usage reporting for the authenticated user."""

from datetime import date, datetime, timedelta

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.auth import CurrentUser
from app.config import get_settings
from app.models.outcomes import RejectionCode
from app.models.subscription import Style, SubscriptionStatus, Tier
from app.services.entitlements import is_subscription_active, resolve_entitlement
from app.services.quota_ledger import QuotaLedger, UsageStoreError
from app.services.request_validator import parse_week_start
from app.services.subscription_service import SubscriptionService, SubscriptionStoreError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/entitlements", tags=["entitlements"])


class EntitlementsResponse(BaseModel):
    """Subscription state, resolved entitlement and usage for one week."""

    tier: Tier
    status: SubscriptionStatus
    trial_until: datetime | None = None
    current_period_end: datetime | None = None
    effective_tier: Tier
    in_trial: bool
    generation_limit_per_week: int
    calories_enabled: bool
    allowed_styles: list[Style]
    week_start: date
    can_generate: bool
    used: int
    remaining: int


def _get_services(request: Request) -> tuple[SubscriptionService, QuotaLedger]:
    subscription_service = getattr(request.app.state, "subscription_service", None)
    ledger = getattr(request.app.state, "quota_ledger", None)
    if subscription_service is None or ledger is None:
        raise HTTPException(status_code=503, detail="Entitlement service unavailable")
    return subscription_service, ledger


def _error(status_code: int, code: RejectionCode, **detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"code": code.value, **detail}})


def current_week_start(now: datetime) -> date:
    """Monday of the week containing ``now``."""
    today = now.date()
    return today - timedelta(days=today.weekday())


@router.get("", response_model=EntitlementsResponse)
async def get_entitlements(
    request: Request,
    user: CurrentUser,
    week_start: str | None = Query(default=None, description="YYYY-MM-DD; defaults to this week"),
):
    """Return what the caller may do this week, provisioning a trial on first use."""
    subscription_service, ledger = _get_services(request)
    now = subscription_service.now_provider()

    if week_start is None:
        week = current_week_start(now)
    else:
        week = parse_week_start(week_start)
        if week is None:
            return _error(400, RejectionCode.INVALID_WEEK_START, field="week_start")

    try:
        record = await subscription_service.get_or_provision(user.id)
    except SubscriptionStoreError as e:
        logger.error("subscription_read_failed", error=str(e))
        return _error(500, RejectionCode.SUBSCRIPTION_READ_FAILED, message=str(e))

    try:
        used = await ledger.get_usage(user.id, week)
    except UsageStoreError as e:
        logger.error("usage_read_failed", error=str(e))
        return _error(500, RejectionCode.USAGE_STORE_FAILED, message=str(e))

    entitlement = resolve_entitlement(record, now)
    active = is_subscription_active(
        record, now, require_payment_link=get_settings().billing.require_payment_link
    )
    remaining = max(0, entitlement.generation_limit_per_week - used)

    return EntitlementsResponse(
        tier=record.tier,
        status=record.status,
        trial_until=record.trial_until,
        current_period_end=record.current_period_end,
        effective_tier=entitlement.effective_tier,
        in_trial=entitlement.in_trial,
        generation_limit_per_week=entitlement.generation_limit_per_week,
        calories_enabled=entitlement.calories_enabled,
        allowed_styles=sorted(entitlement.allowed_styles, key=lambda style: style.value),
        week_start=week,
        can_generate=active and remaining > 0,
        used=used,
        remaining=remaining,
    )
