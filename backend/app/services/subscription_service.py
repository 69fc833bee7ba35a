"""Subscription records: lazy trial provisioning and Stripe synchronization."""

from datetime import UTC, datetime, timedelta
from typing import Protocol

import httpx
import structlog
from postgrest.exceptions import APIError

from app.constants import STRIPE_STATUS_MAP, TRIAL_DAYS
from app.models.subscription import (
    SubscriptionRecord,
    SubscriptionSnapshot,
    SubscriptionStatus,
    Tier,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SubscriptionStoreError(Exception):
    """The subscription store could not be read or written."""


class SubscriptionRepository(Protocol):
    """Storage contract for subscription records."""

    async def get(self, user_id: str) -> SubscriptionRecord | None:
        """Fetch the record for a user."""

    async def get_by_customer_id(self, customer_id: str) -> SubscriptionRecord | None:
        """Fetch the record linked to a Stripe customer."""

    async def insert_if_absent(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert unless a row already exists; return whichever row is stored."""

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Persist record state."""

    async def mark_webhook_processed(self, event_id: str) -> bool:
        """Record webhook idempotency key.

        Returns True when the event is new; False if already seen.
        """

    async def unmark_webhook_processed(self, event_id: str) -> None:
        """Forget an idempotency key so a redelivery of the event is applied."""


class InMemorySubscriptionRepository:
    """In-memory repository used for tests and local fallback."""

    def __init__(self) -> None:
        self.records: dict[str, SubscriptionRecord] = {}
        self.processed_events: set[str] = set()

    async def get(self, user_id: str) -> SubscriptionRecord | None:
        record = self.records.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def get_by_customer_id(self, customer_id: str) -> SubscriptionRecord | None:
        for record in self.records.values():
            if record.stripe_customer_id == customer_id:
                return record.model_copy(deep=True)
        return None

    async def insert_if_absent(self, record: SubscriptionRecord) -> SubscriptionRecord:
        stored = self.records.setdefault(record.user_id, record.model_copy(deep=True))
        return stored.model_copy(deep=True)

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        self.records[record.user_id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def mark_webhook_processed(self, event_id: str) -> bool:
        if event_id in self.processed_events:
            return False
        self.processed_events.add(event_id)
        return True

    async def unmark_webhook_processed(self, event_id: str) -> None:
        self.processed_events.discard(event_id)


class SupabaseSubscriptionRepository:
    """Supabase-backed repository for subscription records."""

    def __init__(self, client, subscriptions_table: str, webhook_events_table: str):
        self.client = client
        self.subscriptions_table = subscriptions_table
        self.webhook_events_table = webhook_events_table

    async def _select_one(self, column: str, value: str) -> SubscriptionRecord | None:
        try:
            response = (
                await self.client.table(self.subscriptions_table)
                .select("*")
                .eq(column, value)
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise SubscriptionStoreError(str(e)) from e
        rows = response.data or []
        if not rows:
            return None
        return SubscriptionRecord.model_validate(rows[0])

    async def get(self, user_id: str) -> SubscriptionRecord | None:
        return await self._select_one("user_id", user_id)

    async def get_by_customer_id(self, customer_id: str) -> SubscriptionRecord | None:
        return await self._select_one("stripe_customer_id", customer_id)

    async def insert_if_absent(self, record: SubscriptionRecord) -> SubscriptionRecord:
        payload = record.model_dump(mode="json", exclude_none=True)
        try:
            await (
                self.client.table(self.subscriptions_table)
                .upsert(payload, on_conflict="user_id", ignore_duplicates=True)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise SubscriptionStoreError(str(e)) from e
        # A concurrent first query may have won the insert; read back the survivor.
        stored = await self.get(record.user_id)
        return stored or record

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        payload = record.model_dump(mode="json")
        payload.pop("created_at", None)
        try:
            response = (
                await self.client.table(self.subscriptions_table)
                .upsert(payload, on_conflict="user_id")
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise SubscriptionStoreError(str(e)) from e
        rows = response.data or []
        if not rows:
            return record
        return SubscriptionRecord.model_validate(rows[0])

    async def mark_webhook_processed(self, event_id: str) -> bool:
        try:
            existing = (
                await self.client.table(self.webhook_events_table)
                .select("event_id")
                .eq("event_id", event_id)
                .limit(1)
                .execute()
            )
            if existing.data:
                return False

            await self.client.table(self.webhook_events_table).insert(
                {"event_id": event_id, "processed_at": _utcnow().isoformat()}
            ).execute()
        except (APIError, httpx.HTTPError) as e:
            raise SubscriptionStoreError(str(e)) from e
        return True

    async def unmark_webhook_processed(self, event_id: str) -> None:
        try:
            await (
                self.client.table(self.webhook_events_table)
                .delete()
                .eq("event_id", event_id)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise SubscriptionStoreError(str(e)) from e


class SubscriptionService:
    """Reads subscription records, provisioning a trial on first use, and
    applies Stripe subscription changes to them."""

    def __init__(self, repository: SubscriptionRepository, now_provider=_utcnow) -> None:
        self.repository = repository
        self.now_provider = now_provider

    def new_trial_record(self, user_id: str) -> SubscriptionRecord:
        now = self.now_provider()
        return SubscriptionRecord(
            user_id=user_id,
            tier=Tier.BASIC,
            status=SubscriptionStatus.TRIALING,
            trial_until=now + timedelta(days=TRIAL_DAYS),
            created_at=now,
            updated_at=now,
        )

    async def get_or_provision(self, user_id: str) -> SubscriptionRecord:
        record = await self.repository.get(user_id)
        if record is not None:
            return record

        record = await self.repository.insert_if_absent(self.new_trial_record(user_id))
        logger.info(
            "subscription_trial_provisioned",
            user_id=user_id,
            trial_until=record.trial_until.isoformat() if record.trial_until else None,
        )
        return record

    async def apply_subscription_snapshot(
        self,
        snapshot: SubscriptionSnapshot,
        *,
        price_mapping: dict[str, Tier],
    ) -> SubscriptionRecord | None:
        record: SubscriptionRecord | None = None
        if snapshot.user_id:
            record = await self.repository.get(snapshot.user_id)
        if record is None:
            record = await self.repository.get_by_customer_id(snapshot.customer_id)

        if record is None:
            if not snapshot.user_id:
                logger.warning(
                    "subscription_snapshot_user_missing",
                    customer_id=snapshot.customer_id,
                    subscription_id=snapshot.subscription_id,
                )
                return None
            record = SubscriptionRecord(user_id=snapshot.user_id, created_at=self.now_provider())

        mapped_tier = price_mapping.get(snapshot.price_id)
        if mapped_tier is None:
            logger.warning(
                "subscription_snapshot_unknown_price",
                price_id=snapshot.price_id,
                subscription_id=snapshot.subscription_id,
            )

        record.tier = mapped_tier or Tier.BASIC
        record.status = SubscriptionStatus(
            STRIPE_STATUS_MAP.get(snapshot.status, SubscriptionStatus.INACTIVE.value)
        )
        record.current_period_end = snapshot.current_period_end
        record.trial_until = snapshot.trial_end
        record.stripe_customer_id = snapshot.customer_id
        record.stripe_subscription_id = snapshot.subscription_id
        record.updated_at = self.now_provider()

        stored = await self.repository.upsert(record)
        logger.info(
            "subscription_snapshot_applied",
            user_id=stored.user_id,
            tier=stored.tier.value,
            status=stored.status.value,
        )
        return stored

    async def mark_past_due(self, customer_id: str) -> SubscriptionRecord | None:
        record = await self.repository.get_by_customer_id(customer_id)
        if record is None:
            return None
        record.status = SubscriptionStatus.PAST_DUE
        record.updated_at = self.now_provider()
        return await self.repository.upsert(record)

    async def process_webhook_event_id(self, event_id: str) -> bool:
        return await self.repository.mark_webhook_processed(event_id)

    async def release_webhook_event_id(self, event_id: str) -> None:
        await self.repository.unmark_webhook_processed(event_id)
