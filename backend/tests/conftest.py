"""
Shared test fixtures for the MealWeek backend test suite.
"""

import json
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pytest
import structlog
from fastapi.testclient import TestClient

from app.constants import DAYS_PER_WEEK, MEALS
from app.models.subscription import SubscriptionRecord, SubscriptionStatus, Tier

FIXED_NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)
WEEK_START = date(2026, 3, 2)


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required environment variables for tests so Settings can be instantiated."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-fake-key-for-testing")
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("STRIPE__SECRET_KEY", raising=False)
    # Disable LangSmith tracing in tests
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")


@pytest.fixture(autouse=True)
def _configure_structlog_for_tests():
    """Configure structlog for tests using a simple, deterministic setup."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def client() -> TestClient:
    """FastAPI TestClient wrapping the main application."""
    # Clear the lru_cache so settings pick up test env vars
    from app.config import get_settings

    get_settings.cache_clear()

    from app.main import app

    return TestClient(app)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def week_start() -> date:
    return WEEK_START


@pytest.fixture
def trial_record() -> SubscriptionRecord:
    """Fresh user: basic tier inside the trial window."""
    return SubscriptionRecord(
        user_id="user-1",
        tier=Tier.BASIC,
        status=SubscriptionStatus.TRIALING,
        trial_until=FIXED_NOW + timedelta(days=10),
        created_at=FIXED_NOW - timedelta(days=4),
    )


@pytest.fixture
def basic_record() -> SubscriptionRecord:
    """Paying basic subscriber whose trial ended long ago."""
    return SubscriptionRecord(
        user_id="user-1",
        tier=Tier.BASIC,
        status=SubscriptionStatus.ACTIVE,
        trial_until=FIXED_NOW - timedelta(days=30),
        current_period_end=FIXED_NOW + timedelta(days=20),
        stripe_customer_id="cus_1",
        stripe_subscription_id="sub_1",
    )


def build_plan_dict(
    *,
    skip_recipes: tuple[str, ...] = (),
    days: int = DAYS_PER_WEEK,
    key_style: str = "d{day}_{meal}",
) -> dict[str, Any]:
    """A realistic generated plan, optionally with holes punched in it."""
    plan_days = []
    for day in range(1, days + 1):
        plan_days.append(
            {
                "day": day,
                "day_name": f"Day {day}",
                "date": (WEEK_START + timedelta(days=day - 1)).isoformat(),
                "breakfast": f"Oat porridge {day}",
                "lunch": f"Lentil soup {day}",
                "dinner": f"Baked potatoes {day}",
                "note": "",
                "breakfast_kcal": 450,
                "lunch_kcal": 700,
                "dinner_kcal": 650,
                "total_kcal": 1800,
            }
        )

    recipes = {}
    for day in range(1, DAYS_PER_WEEK + 1):
        for meal in MEALS:
            canonical = f"d{day}_{meal.value}"
            if canonical in skip_recipes:
                continue
            recipes[key_style.format(day=day, meal=meal.value)] = {
                "title": f"{meal.value.title()} {day}",
                "time_min": 20,
                "portions": 2,
                "ingredients": [{"name": "potatoes", "quantity": "500 g"}],
                "steps": ["Prepare", "Cook"],
            }

    return {
        "summary": {
            "people": 2,
            "weekly_budget_eur": 80,
            "shopping_trips_per_week": 2,
            "repeat_days_max": 2,
            "estimated_total_cost_eur": 74,
            "savings_tips": ["Buy seasonal vegetables"],
            "weekly_total_kcal": 25200,
            "avg_daily_kcal": 3600,
        },
        "days": plan_days,
        "shopping": [
            {
                "trip": 1,
                "covers_days": "1-4",
                "estimated_cost_eur": 40,
                "items": [{"name": "potatoes", "quantity": "2 kg"}],
            }
        ],
        "recipes": recipes,
    }


@pytest.fixture
def plan_dict():
    return build_plan_dict


@pytest.fixture
def plan_json():
    def _plan_json(**kwargs) -> str:
        return json.dumps(build_plan_dict(**kwargs))

    return _plan_json
