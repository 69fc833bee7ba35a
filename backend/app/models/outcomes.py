"""
Outcome models for the generation pipeline.

Expected business rejections (inactive subscription, disallowed style,
exhausted quota, bad upstream artifact) are values, not exceptions: the
orchestrator always returns one of ``PlanGenerated`` or ``GenerationRejected``.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.models.plan import GeneratedPlan


class GenerationState(str, Enum):
    """States of the generation pipeline, including its error exits."""

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    RESERVING = "reserving"
    GENERATING = "generating"
    VERIFYING = "verifying"
    COMMITTING = "committing"
    DONE = "done"

    # Error exits
    UNAUTHORIZED = "unauthorized"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    REQUEST_REJECTED = "request_rejected"
    QUOTA_EXCEEDED = "quota_exceeded"
    UPSTREAM_FAILED = "upstream_failed"
    OUTPUT_REJECTED = "output_rejected"
    PERSIST_FAILED = "persist_failed"
    STORE_UNAVAILABLE = "store_unavailable"


class RejectionCode(str, Enum):
    """Machine-readable error codes returned to the client."""

    UNAUTHORIZED = "UNAUTHORIZED"
    SUBSCRIPTION_READ_FAILED = "SUBSCRIPTION_READ_FAILED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"
    INVALID_WEEK_START = "INVALID_WEEK_START"
    STYLE_NOT_ALLOWED = "STYLE_NOT_ALLOWED"
    WEEKLY_LIMIT_REACHED = "WEEKLY_LIMIT_REACHED"
    USAGE_STORE_FAILED = "USAGE_STORE_FAILED"
    OPENAI_UPSTREAM_ERROR = "OPENAI_UPSTREAM_ERROR"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    INVALID_PLAN_JSON = "INVALID_PLAN_JSON"
    MISSING_RECIPES = "MISSING_RECIPES"
    MISSING_DAYS = "MISSING_DAYS"


class GenerationRejected(BaseModel):
    """The call ended at an error exit. No quota was consumed."""

    kind: Literal["rejected"] = "rejected"
    code: RejectionCode
    state: GenerationState
    detail: dict[str, Any] = Field(default_factory=dict)


class PlanWarning(BaseModel):
    """Non-fatal problem attached to a generated plan."""

    code: Literal["PLAN_SAVE_FAILED"]
    message: str


class PlanGenerated(BaseModel):
    """A validated plan. ``persisted`` is False when saving failed and the
    generation was therefore not charged."""

    kind: Literal["generated"] = "generated"
    plan: GeneratedPlan
    persisted: bool = True
    used: int | None = None
    limit: int | None = None
    warning: PlanWarning | None = None


GenerationOutcome = PlanGenerated | GenerationRejected
