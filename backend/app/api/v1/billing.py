"""Stripe webhook endpoint that keeps subscription records in sync."""

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel

from app.services.stripe_service import StripeService
from app.services.subscription_service import SubscriptionService, SubscriptionStoreError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])

SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
}


class WebhookResponse(BaseModel):
    """Stripe webhook processing response."""

    received: bool
    processed: bool


def _get_subscription_service(request: Request) -> SubscriptionService:
    service = getattr(request.app.state, "subscription_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Subscription service unavailable")
    return service


def _get_stripe_service(request: Request) -> StripeService:
    service = getattr(request.app.state, "stripe_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Stripe not configured")
    return service


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
) -> WebhookResponse:
    """Process Stripe webhooks and sync subscription state."""
    subscription_service = _get_subscription_service(request)
    stripe_service = _get_stripe_service(request)
    payload = await request.body()

    try:
        event = stripe_service.verify_webhook_event(payload, stripe_signature)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.warning("stripe_webhook_signature_invalid", error=str(e))
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    event_id = str(event.get("id", ""))
    if not event_id:
        raise HTTPException(status_code=400, detail="Stripe event has no id")

    is_new = await subscription_service.process_webhook_event_id(event_id)
    if not is_new:
        return WebhookResponse(received=True, processed=False)

    event_type = str(event.get("type", ""))
    try:
        await _apply_event(event, subscription_service, stripe_service)
    except SubscriptionStoreError as e:
        logger.error("stripe_webhook_apply_failed", event_id=event_id, event_type=event_type, error=str(e))
        await _release_event(subscription_service, event_id)
        raise HTTPException(status_code=500, detail="Subscription store unavailable") from e
    except Exception:
        await _release_event(subscription_service, event_id)
        raise

    logger.info("stripe_webhook_processed", event_id=event_id, event_type=event_type)
    return WebhookResponse(received=True, processed=True)


async def _release_event(subscription_service: SubscriptionService, event_id: str) -> None:
    """Forget the event id so Stripe's redelivery is applied instead of skipped."""
    try:
        await subscription_service.release_webhook_event_id(event_id)
    except SubscriptionStoreError as e:
        logger.error("stripe_webhook_release_failed", event_id=event_id, error=str(e))


async def _apply_event(
    event: dict,
    subscription_service: SubscriptionService,
    stripe_service: StripeService,
) -> None:
    event_id = event.get("id")
    event_type = str(event.get("type", ""))
    data_object = (event.get("data") or {}).get("object") or {}
    price_mapping = stripe_service.price_mapping

    if event_type == "checkout.session.completed":
        subscription_id = data_object.get("subscription")
        customer_id = data_object.get("customer")
        user_id = data_object.get("client_reference_id") or (data_object.get("metadata") or {}).get("user_id")
        if subscription_id and customer_id:
            try:
                snapshot = await stripe_service.fetch_subscription_snapshot(
                    str(subscription_id), user_id=user_id
                )
                await subscription_service.apply_subscription_snapshot(
                    snapshot, price_mapping=price_mapping
                )
            except ValueError as e:
                logger.warning("stripe_checkout_snapshot_invalid", event_id=event_id, error=str(e))
    elif event_type in SUBSCRIPTION_EVENTS:
        try:
            snapshot = stripe_service.subscription_snapshot_from_object(data_object)
            await subscription_service.apply_subscription_snapshot(
                snapshot, price_mapping=price_mapping
            )
        except ValueError as e:
            logger.warning("stripe_subscription_snapshot_invalid", event_id=event_id, error=str(e))
    elif event_type == "invoice.payment_failed":
        customer_id = data_object.get("customer")
        if customer_id:
            await subscription_service.mark_past_due(str(customer_id))
