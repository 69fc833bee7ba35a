"""
Data models for meal plan generation.

Covers the incoming request, the validated parameters the prompt is built
from, and the generated plan artifact together with the results the
completeness check can produce.
"""

from datetime import date, timedelta
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from app.models.subscription import Style

Scalar = str | int | float


class Language(str, Enum):
    """Languages the plan text can be written in."""

    SK = "sk"
    EN = "en"
    UK = "uk"


class Meal(str, Enum):
    """Meal slots of a plan day."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class GenerationRequest(BaseModel):
    """Raw request body. Accepts snake_case and camelCase field names.

    Everything is optional here so shape problems surface as domain
    rejections from the request validator rather than as 422s.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    week_start: str = ""
    language: str | None = None
    people: Scalar | None = None
    budget: Scalar | None = None
    intolerances: str | None = None
    avoid: str | None = None
    have: str | None = None
    favorites: str | None = None
    style: str | None = None
    shopping_trips: Scalar | None = None
    repeat_days: Scalar | None = None


class PlanParameters(BaseModel):
    """A request that passed validation, with defaults and clamping applied."""

    week_start: date
    language: Language = Language.SK
    people: str = "1"
    budget: str = "0"
    intolerances: str = ""
    avoid: str = ""
    have: str = ""
    favorites: str = ""
    style: Style = Style.CHEAP
    shopping_trips: int = Field(default=2, ge=1, le=4)
    repeat_days: int = Field(default=2, ge=1, le=3)

    def day_dates(self) -> list[date]:
        """Dates of the seven plan days starting at week_start."""
        return [self.week_start + timedelta(days=offset) for offset in range(7)]


class RequestError(BaseModel):
    """Why a request was rejected before any quota or upstream cost."""

    kind: Literal["request_error"] = "request_error"
    code: Literal["INVALID_WEEK_START", "STYLE_NOT_ALLOWED"]
    field: str
    value: str | None = None


# ---------------------------------------------------------------------------
# Generated artifact
# ---------------------------------------------------------------------------


def _as_list(value: Any) -> Any:
    """None becomes an empty list and a lone value a one-item list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


LooseList = Annotated[list[Any], BeforeValidator(_as_list)]


class _LenientModel(BaseModel):
    """Keeps any extra keys the model decided to return.

    Only the shape the completeness check relies on is enforced. Leaf values
    are kept as written, whatever their JSON type.
    """

    model_config = ConfigDict(extra="allow")


class PlanSummary(_LenientModel):
    people: Any = None
    weekly_budget_eur: Any = None
    shopping_trips_per_week: Any = None
    repeat_days_max: Any = None
    estimated_total_cost_eur: Any = None
    savings_tips: LooseList = Field(default_factory=list)
    weekly_total_kcal: Any = None
    avg_daily_kcal: Any = None
    weekly_total_kcal_per_person: Any = None
    avg_daily_kcal_per_person: Any = None


class PlanDay(_LenientModel):
    day: Any = None
    day_name: Any = None
    date: Any = None
    breakfast: Any = ""
    lunch: Any = ""
    dinner: Any = ""
    note: Any = None
    breakfast_kcal: Any = None
    lunch_kcal: Any = None
    dinner_kcal: Any = None
    total_kcal: Any = None


class QuantifiedItem(_LenientModel):
    name: Any = ""
    quantity: Any = None

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_value(cls, data: Any) -> Any:
        # "200 g oats" instead of {"name": ..., "quantity": ...}
        if isinstance(data, (dict, BaseModel)):
            return data
        return {"name": data}


ItemList = Annotated[list[QuantifiedItem], BeforeValidator(_as_list)]


class ShoppingTrip(_LenientModel):
    trip: Any = None
    covers_days: Any = None
    estimated_cost_eur: Any = None
    items: ItemList = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_value(cls, data: Any) -> Any:
        if isinstance(data, (dict, BaseModel)):
            return data
        return {"note": data}


class Recipe(_LenientModel):
    title: Any = ""
    time_min: Any = None
    portions: Any = None
    ingredients: ItemList = Field(default_factory=list)
    steps: LooseList = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_value(cls, data: Any) -> Any:
        if isinstance(data, (dict, BaseModel)):
            return data
        if isinstance(data, list):
            return {"steps": data}
        return {"title": data}


class GeneratedPlan(_LenientModel):
    """A structurally complete weekly plan: 7 days and 21 keyed recipes."""

    summary: PlanSummary = Field(default_factory=PlanSummary)
    days: Annotated[list[PlanDay], BeforeValidator(_as_list)] = Field(default_factory=list)
    shopping: Annotated[list[ShoppingTrip], BeforeValidator(_as_list)] = Field(
        default_factory=list
    )
    recipes: dict[str, Recipe] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_missing_sections(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not isinstance(data.get("summary"), (dict, PlanSummary)):
            data["summary"] = {}
        if not isinstance(data.get("recipes"), dict):
            data["recipes"] = {}
        return data


class ParseError(BaseModel):
    """The upstream text could not be read as a plan. The text is kept for display."""

    kind: Literal["parse_error"] = "parse_error"
    reason: str
    text: str


class IncompleteError(BaseModel):
    """The plan parsed but misses required recipe keys or day ordinals."""

    kind: Literal["incomplete"] = "incomplete"
    missing: list[str] = Field(default_factory=list)
    missing_days: list[int] = Field(default_factory=list)


PlanCheckResult = GeneratedPlan | ParseError | IncompleteError


# ---------------------------------------------------------------------------
# Upstream envelopes
# ---------------------------------------------------------------------------


class TextEnvelope(BaseModel):
    """Envelope carrying a flat output_text field."""

    kind: Literal["text"] = "text"
    output_text: str


class ChunkedEnvelope(BaseModel):
    """Envelope carrying a list of typed output items / content chunks."""

    kind: Literal["chunked"] = "chunked"
    output: list[Any]


class UnrecognizedEnvelope(BaseModel):
    """Anything else the service sent back."""

    kind: Literal["unrecognized"] = "unrecognized"
    payload: Any = None


ResponseEnvelope = TextEnvelope | ChunkedEnvelope | UnrecognizedEnvelope


class RawCompletion(BaseModel):
    """Flattened text returned by the generation service."""

    kind: Literal["raw"] = "raw"
    text: str
    envelope: Literal["text", "chunked", "unrecognized"]


class UpstreamError(BaseModel):
    """The generation service failed. ``detail`` is the upstream body verbatim."""

    kind: Literal["upstream_error"] = "upstream_error"
    status: int | None = None
    detail: Any = None
    timed_out: bool = False
