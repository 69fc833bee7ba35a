"""Persistence of generated meal plans, one row per user and week."""

from datetime import UTC, date, datetime
from typing import Any, Protocol

import httpx
import structlog
from postgrest.exceptions import APIError

from app.models.plan import GeneratedPlan

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PlanStoreError(Exception):
    """A generated plan could not be saved."""


class PlanRepository(Protocol):
    """Storage contract for generated plans."""

    async def save_plan(self, user_id: str, week_start: date, plan: GeneratedPlan) -> int:
        """Upsert the plan for (user_id, week_start); return the new generation_count."""


class InMemoryPlanRepository:
    """In-memory repository used for tests and local fallback."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, date], dict[str, Any]] = {}

    async def save_plan(self, user_id: str, week_start: date, plan: GeneratedPlan) -> int:
        key = (user_id, week_start)
        previous = self.rows.get(key, {}).get("generation_count", 0)
        self.rows[key] = {
            "plan": plan.model_dump(mode="json", exclude_none=True),
            "generation_count": previous + 1,
            "updated_at": _utcnow(),
        }
        return previous + 1


class SupabasePlanRepository:
    """Supabase-backed plan storage."""

    def __init__(self, client, table: str):
        self.client = client
        self.table = table

    async def save_plan(self, user_id: str, week_start: date, plan: GeneratedPlan) -> int:
        try:
            existing = (
                await self.client.table(self.table)
                .select("generation_count")
                .eq("user_id", user_id)
                .eq("week_start", week_start.isoformat())
                .limit(1)
                .execute()
            )
            rows = existing.data or []
            generation_count = (int(rows[0].get("generation_count") or 0) if rows else 0) + 1

            await (
                self.client.table(self.table)
                .upsert(
                    {
                        "user_id": user_id,
                        "week_start": week_start.isoformat(),
                        "plan": plan.model_dump(mode="json", exclude_none=True),
                        "generation_count": generation_count,
                        "updated_at": _utcnow().isoformat(),
                    },
                    on_conflict="user_id,week_start",
                )
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            raise PlanStoreError(str(e)) from e

        logger.info(
            "meal_plan_saved",
            user_id=user_id,
            week_start=str(week_start),
            generation_count=generation_count,
        )
        return generation_count
