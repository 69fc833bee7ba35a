"""
Completeness check for generated meal plans.

Turns the raw upstream text into a GeneratedPlan or explains why it cannot:
    - ParseError: no JSON object could be recovered (raw text kept)
    - IncompleteError: recipe keys or day ordinals are missing, all listed

This module knows nothing about subscriptions; the calorie policy applied
afterwards takes the entitlement flag as a plain argument.
"""

import json
import math
import re
from typing import Any

from pydantic import ValidationError

from app.constants import (
    DAY_KCAL_FIELDS,
    DAYS_PER_WEEK,
    REQUIRED_RECIPE_KEYS,
    SUMMARY_KCAL_FIELDS,
)
from app.models.plan import GeneratedPlan, IncompleteError, ParseError, PlanCheckResult

RECIPE_KEY_PATTERN = re.compile(r"^d(\d+)[-_]?(breakfast|lunch|dinner)$", re.IGNORECASE)


def _finite_or_none(literal: str) -> float | None:
    value = float(literal)
    return value if math.isfinite(value) else None


def _loads(text: str) -> Any:
    # Non-finite numbers cannot be written back out as JSON.
    return json.loads(text, parse_float=_finite_or_none, parse_constant=lambda _: None)


def parse_plan_text(text: str) -> Any | None:
    """Parse JSON, falling back to the span between the first '{' and last '}'.

    ``1e999``, ``NaN`` and ``Infinity`` are read as null.
    """
    try:
        return _loads(text)
    except (json.JSONDecodeError, TypeError):
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        return _loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None


def normalize_recipe_key(key: str) -> str:
    """Rewrite d{N}{meal}, d{N}-{meal} and d{N}_{meal} to d{N}_{meal}.

    Keys that match none of these are returned stripped but otherwise unchanged.
    """
    stripped = (key or "").strip()
    match = RECIPE_KEY_PATTERN.match(stripped)
    if not match:
        return stripped
    return f"d{int(match.group(1))}_{match.group(2).lower()}"


def normalize_plan(raw: dict[str, Any]) -> dict[str, Any]:
    """Canonicalize recipe keys and keep at most seven days. Returns a copy."""
    plan = json.loads(json.dumps(raw))

    recipes = plan.get("recipes")
    if isinstance(recipes, dict):
        plan["recipes"] = {normalize_recipe_key(str(key)): value for key, value in recipes.items()}

    days = plan.get("days")
    if isinstance(days, list):
        plan["days"] = days[:DAYS_PER_WEEK]

    return plan


def missing_recipe_keys(plan: dict[str, Any]) -> list[str]:
    recipes = plan.get("recipes")
    if not isinstance(recipes, dict):
        recipes = {}
    return [key for key in REQUIRED_RECIPE_KEYS if not recipes.get(key)]


def _day_ordinal(entry: Any, position: int) -> int | None:
    if not isinstance(entry, dict):
        return None
    value = entry.get("day")
    if value is None:
        value = position
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def missing_day_ordinals(plan: dict[str, Any]) -> list[int]:
    days = plan.get("days")
    if not isinstance(days, list):
        days = []
    present = {_day_ordinal(entry, position) for position, entry in enumerate(days, start=1)}
    return [ordinal for ordinal in range(1, DAYS_PER_WEEK + 1) if ordinal not in present]


def validate_and_normalize(raw_text: str) -> PlanCheckResult:
    parsed = parse_plan_text(raw_text)
    if parsed is None:
        return ParseError(reason="no JSON object found", text=raw_text)
    if not isinstance(parsed, dict):
        return ParseError(reason="JSON root is not an object", text=raw_text)

    plan = normalize_plan(parsed)

    missing = missing_recipe_keys(plan)
    missing_days = missing_day_ordinals(plan)
    if missing or missing_days:
        return IncompleteError(missing=missing, missing_days=missing_days)

    try:
        return GeneratedPlan.model_validate(plan)
    except ValidationError as e:
        return ParseError(reason=f"plan does not match schema: {e.error_count()} errors", text=raw_text)


# ---------------------------------------------------------------------------
# Calorie policy
# ---------------------------------------------------------------------------


def _coerce_number(value: Any, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return number if math.isfinite(number) else fallback


def apply_calorie_policy(
    plan: GeneratedPlan, *, calories_enabled: bool, people: str
) -> GeneratedPlan:
    """Fill per-person calorie figures, or strip every calorie field.

    ``summary.people`` is always coerced to a number, defaulting to the
    requested head count.
    """
    result = plan.model_copy(deep=True)
    summary = result.summary
    head_count = _coerce_number(summary.people, _coerce_number(people, 1.0) or 1.0)
    summary.people = int(head_count) if head_count.is_integer() else head_count

    if calories_enabled:
        head_count = max(1.0, head_count)
        summary.avg_daily_kcal_per_person = round(
            _coerce_number(summary.avg_daily_kcal, 0.0) / head_count
        )
        summary.weekly_total_kcal_per_person = round(
            _coerce_number(summary.weekly_total_kcal, 0.0) / head_count
        )
        return result

    for day in result.days:
        for field in DAY_KCAL_FIELDS:
            setattr(day, field, None)
    for field in SUMMARY_KCAL_FIELDS:
        setattr(summary, field, None)
    return result
