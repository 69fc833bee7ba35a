"""
Weekly generation quota ledger.

The counter for a ``(user_id, week_start)`` pair is only ever moved with a
compare-and-set, so concurrent requests (possibly in different processes)
can both pass the pre-check but only as many as the limit allows will
advance the counter. A reservation advances the counter up front; it is
either committed once the generated plan is accepted and saved, or rolled
back, which gives the slot back.
"""

import uuid
from datetime import UTC, date, datetime
from typing import Protocol

import httpx
import structlog
from postgrest.exceptions import APIError

from app.models.usage import (
    Denied,
    ReservationState,
    Reserved,
    ReserveResult,
    UsageReservation,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UsageStoreError(Exception):
    """The usage counter store failed or stayed contended."""


class UsageRepository(Protocol):
    """Storage contract for weekly usage counters."""

    async def ensure_counter(self, user_id: str, week_start: date) -> None:
        """Create the counter row at zero unless it already exists."""

    async def get_count(self, user_id: str, week_start: date) -> int:
        """Current count; zero when the row does not exist."""

    async def compare_and_set(
        self, user_id: str, week_start: date, expected: int, new: int
    ) -> bool:
        """Set count to ``new`` only if it still equals ``expected``."""


class InMemoryUsageRepository:
    """In-memory repository used for tests and local fallback.

    Each method runs without yielding to the event loop, so a single
    compare-and-set is atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self.counts: dict[tuple[str, date], int] = {}

    async def ensure_counter(self, user_id: str, week_start: date) -> None:
        self.counts.setdefault((user_id, week_start), 0)

    async def get_count(self, user_id: str, week_start: date) -> int:
        return self.counts.get((user_id, week_start), 0)

    async def compare_and_set(
        self, user_id: str, week_start: date, expected: int, new: int
    ) -> bool:
        key = (user_id, week_start)
        if self.counts.get(key, 0) != expected:
            return False
        self.counts[key] = new
        return True


class SupabaseUsageRepository:
    """Supabase-backed counters. The conditional UPDATE is atomic per row."""

    def __init__(self, client, table: str):
        self.client = client
        self.table = table

    async def ensure_counter(self, user_id: str, week_start: date) -> None:
        try:
            await (
                self.client.table(self.table)
                .upsert(
                    {"user_id": user_id, "week_start": week_start.isoformat(), "count": 0},
                    on_conflict="user_id,week_start",
                    ignore_duplicates=True,
                )
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise UsageStoreError(str(e)) from e

    async def get_count(self, user_id: str, week_start: date) -> int:
        try:
            response = (
                await self.client.table(self.table)
                .select("count")
                .eq("user_id", user_id)
                .eq("week_start", week_start.isoformat())
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise UsageStoreError(str(e)) from e
        rows = response.data or []
        return int(rows[0]["count"]) if rows else 0

    async def compare_and_set(
        self, user_id: str, week_start: date, expected: int, new: int
    ) -> bool:
        try:
            response = (
                await self.client.table(self.table)
                .update({"count": new, "updated_at": _utcnow().isoformat()})
                .eq("user_id", user_id)
                .eq("week_start", week_start.isoformat())
                .eq("count", expected)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise UsageStoreError(str(e)) from e
        return bool(response.data)


class QuotaLedger:
    """Reserve / commit / rollback over weekly usage counters."""

    def __init__(
        self,
        repository: UsageRepository,
        *,
        max_attempts: int = 5,
        now_provider=_utcnow,
    ) -> None:
        self.repository = repository
        self.max_attempts = max_attempts
        self.now_provider = now_provider

    async def get_usage(self, user_id: str, week_start: date) -> int:
        return await self.repository.get_count(user_id, week_start)

    async def try_reserve(self, user_id: str, week_start: date, limit: int) -> ReserveResult:
        """Advance the counter by one unless it already reached ``limit``.

        Denied never mutates the counter.
        """
        await self.repository.ensure_counter(user_id, week_start)

        for attempt in range(1, self.max_attempts + 1):
            used = await self.repository.get_count(user_id, week_start)
            if used >= limit:
                logger.info("quota_denied", user_id=user_id, week_start=str(week_start), used=used, limit=limit)
                return Denied(used=used, limit=limit)

            if await self.repository.compare_and_set(user_id, week_start, used, used + 1):
                reservation = UsageReservation(
                    reservation_id=str(uuid.uuid4()),
                    user_id=user_id,
                    week_start=week_start,
                    used_before=used,
                    limit=limit,
                    created_at=self.now_provider(),
                )
                logger.info(
                    "quota_reserved",
                    user_id=user_id,
                    week_start=str(week_start),
                    used_before=used,
                    limit=limit,
                    reservation_id=reservation.reservation_id,
                )
                return Reserved(reservation=reservation)

            logger.debug("quota_reserve_conflict", user_id=user_id, attempt=attempt)

        raise UsageStoreError(
            f"usage counter for {user_id}/{week_start} stayed contended after {self.max_attempts} attempts"
        )

    async def commit(self, reservation: UsageReservation) -> None:
        """Make the reserved consumption final. Idempotent."""
        if reservation.state != ReservationState.PENDING:
            return
        reservation.state = ReservationState.COMMITTED
        logger.info(
            "quota_committed",
            user_id=reservation.user_id,
            week_start=str(reservation.week_start),
            reservation_id=reservation.reservation_id,
        )

    async def rollback(self, reservation: UsageReservation) -> None:
        """Give the reserved slot back. Idempotent; a committed reservation is kept."""
        if reservation.state != ReservationState.PENDING:
            return

        for _ in range(self.max_attempts):
            used = await self.repository.get_count(reservation.user_id, reservation.week_start)
            if used <= 0:
                logger.warning(
                    "quota_rollback_counter_empty",
                    user_id=reservation.user_id,
                    reservation_id=reservation.reservation_id,
                )
                break
            if await self.repository.compare_and_set(
                reservation.user_id, reservation.week_start, used, used - 1
            ):
                break
        else:
            raise UsageStoreError(
                f"could not release reservation {reservation.reservation_id} after "
                f"{self.max_attempts} attempts"
            )

        reservation.state = ReservationState.RELEASED
        logger.info(
            "quota_released",
            user_id=reservation.user_id,
            week_start=str(reservation.week_start),
            reservation_id=reservation.reservation_id,
        )
