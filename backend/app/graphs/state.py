"""
LangGraph state definitions.

This file defines the state that flows through the meal plan generation graph:
authenticate -> resolve -> validate -> reserve -> generate -> verify -> commit

Each node reads what it needs from state and adds its results. A node that
ends the call at an error exit sets ``outcome``; the graph then stops.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.outcomes import GenerationOutcome, GenerationState
from app.models.plan import GeneratedPlan, GenerationRequest, PlanParameters
from app.models.subscription import Entitlement, SubscriptionRecord
from app.models.usage import UsageReservation


class GenerationGraphState(BaseModel):
    """
    State that flows through the generation pipeline.

    Documents the keys of the dict LangGraph passes between nodes.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # === INPUT ===
    token: str | None = Field(default=None, description="Bearer credential as presented")
    request: GenerationRequest = Field(description="Raw request body")

    # === AUTHENTICATION ===
    user_id: str | None = Field(default=None, description="Verified user id")

    # === RESOLUTION ===
    record: SubscriptionRecord | None = Field(default=None, description="Subscription row")
    entitlement: Entitlement | None = Field(default=None, description="Resolved entitlement")

    # === VALIDATION ===
    params: PlanParameters | None = Field(default=None, description="Validated parameters")

    # === RESERVATION ===
    reservation: UsageReservation | None = Field(default=None, description="Pending quota slot")

    # === GENERATION / VERIFICATION ===
    raw_text: str | None = Field(default=None, description="Flattened upstream text")
    plan: GeneratedPlan | None = Field(default=None, description="Accepted plan")

    # === RESULT ===
    current_state: GenerationState = Field(default=GenerationState.IDLE)
    outcome: GenerationOutcome | None = Field(
        default=None, description="Set once the call reaches Done or an error exit"
    )


def create_initial_state(token: str | None, request: GenerationRequest) -> dict[str, Any]:
    """
    Create the initial state for one generation call.

    Args:
        token: Bearer credential, or None when the header was absent
        request: Raw request body

    Returns:
        Initial state dictionary
    """
    return {
        "token": token,
        "request": request,
        "user_id": None,
        "record": None,
        "entitlement": None,
        "params": None,
        "reservation": None,
        "raw_text": None,
        "plan": None,
        "current_state": GenerationState.IDLE,
        "outcome": None,
    }
