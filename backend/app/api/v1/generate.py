"""
Meal plan generation API endpoint.

Endpoints:
- POST /api/v1/generate - Generate a weekly meal plan for the caller

The route is a thin shell around the compiled generation graph: it hands over
the bearer credential and the raw body, then maps the outcome to HTTP.
"""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from app.auth import BearerCredentials, bearer_token
from app.graphs.generation_graph import run_generation
from app.models.outcomes import GenerationOutcome, GenerationRejected, RejectionCode
from app.models.plan import GenerationRequest

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["generation"])

REJECTION_STATUS: dict[RejectionCode, int] = {
    RejectionCode.UNAUTHORIZED: 401,
    RejectionCode.INVALID_WEEK_START: 400,
    RejectionCode.SUBSCRIPTION_INACTIVE: 402,
    RejectionCode.STYLE_NOT_ALLOWED: 403,
    RejectionCode.WEEKLY_LIMIT_REACHED: 429,
    RejectionCode.SUBSCRIPTION_READ_FAILED: 500,
    RejectionCode.USAGE_STORE_FAILED: 500,
    RejectionCode.OPENAI_UPSTREAM_ERROR: 500,
    RejectionCode.UPSTREAM_TIMEOUT: 500,
    RejectionCode.INVALID_PLAN_JSON: 500,
    RejectionCode.MISSING_RECIPES: 500,
    RejectionCode.MISSING_DAYS: 500,
}


def outcome_to_response(outcome: GenerationOutcome) -> JSONResponse:
    """Map a generation outcome to the client-facing JSON envelope."""
    if isinstance(outcome, GenerationRejected):
        body = {"error": {"code": outcome.code.value, **outcome.detail}}
        return JSONResponse(status_code=REJECTION_STATUS[outcome.code], content=body)

    content: dict[str, Any] = {
        "ok": True,
        "kind": "json",
        "plan": outcome.plan.model_dump(mode="json", exclude_none=True),
    }
    if outcome.warning is not None:
        content["warning"] = outcome.warning.model_dump()
    else:
        content["usage"] = {"used": outcome.used, "limit": outcome.limit}
    return JSONResponse(status_code=200, content=content)


@router.post("/generate")
async def generate_meal_plan(
    body: GenerationRequest,
    request: Request,
    credentials: BearerCredentials,
) -> JSONResponse:
    """
    Generate a weekly meal plan.

    Authentication happens inside the pipeline so that a missing or invalid
    token produces the same error envelope as every other rejection.
    """
    graph = getattr(request.app.state, "generation_graph", None)
    if graph is None:
        raise HTTPException(status_code=503, detail="Meal plan generation is not configured")

    outcome = await run_generation(graph, bearer_token(credentials), body)
    logger.info(
        "generate_request_finished",
        kind=outcome.kind,
        code=outcome.code.value if isinstance(outcome, GenerationRejected) else None,
    )
    return outcome_to_response(outcome)
