"""
Request validation against the caller's entitlement.

Checks run in a fixed order and stop at the first failure:
    1. week_start is a YYYY-MM-DD calendar date
    2. the style is permitted for the effective tier
    3. numeric knobs are clamped into range (never rejected)
"""

import re
from datetime import date

from app.constants import (
    DEFAULT_BUDGET,
    DEFAULT_LANGUAGE,
    DEFAULT_PEOPLE,
    DEFAULT_REPEAT_DAYS,
    DEFAULT_SHOPPING_TRIPS,
    DEFAULT_STYLE,
    REPEAT_DAYS_RANGE,
    SHOPPING_TRIPS_RANGE,
    STYLE_ALIASES,
)
from app.models.plan import GenerationRequest, Language, PlanParameters, RequestError
from app.models.subscription import Entitlement, Style

WEEK_START_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_week_start(value: str | None) -> date | None:
    """Return the date for a strict YYYY-MM-DD string, else None."""
    text = (value or "").strip()
    if not WEEK_START_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def parse_style(value: str | None) -> Style | None:
    text = (value or "").strip().lower()
    if not text:
        return DEFAULT_STYLE
    if text in STYLE_ALIASES:
        return STYLE_ALIASES[text]
    try:
        return Style(text)
    except ValueError:
        return None


def parse_language(value: str | None) -> Language:
    text = (value or "").strip().lower()
    try:
        return Language(text)
    except ValueError:
        return DEFAULT_LANGUAGE


def clamp_int(value: str | int | float | None, bounds: tuple[int, int], default: int) -> int:
    """Coerce to int and clamp into ``bounds``; unreadable values use ``default``."""
    low, high = bounds
    try:
        number = int(float(value)) if value not in (None, "") else default
    except (TypeError, ValueError, OverflowError):
        number = default
    return min(high, max(low, number))


def _text(value: str | int | float | None, default: str = "") -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


def validate_request(
    request: GenerationRequest, entitlement: Entitlement
) -> PlanParameters | RequestError:
    week_start = parse_week_start(request.week_start)
    if week_start is None:
        return RequestError(code="INVALID_WEEK_START", field="week_start", value=request.week_start)

    style = parse_style(request.style)
    if style is None or not entitlement.allows_style(style):
        return RequestError(
            code="STYLE_NOT_ALLOWED",
            field="style",
            value=style.value if style else (request.style or "").strip(),
        )

    return PlanParameters(
        week_start=week_start,
        language=parse_language(request.language),
        people=_text(request.people, DEFAULT_PEOPLE),
        budget=_text(request.budget, DEFAULT_BUDGET),
        intolerances=_text(request.intolerances),
        avoid=_text(request.avoid),
        have=_text(request.have),
        favorites=_text(request.favorites),
        style=style,
        shopping_trips=clamp_int(request.shopping_trips, SHOPPING_TRIPS_RANGE, DEFAULT_SHOPPING_TRIPS),
        repeat_days=clamp_int(request.repeat_days, REPEAT_DAYS_RANGE, DEFAULT_REPEAT_DAYS),
    )
