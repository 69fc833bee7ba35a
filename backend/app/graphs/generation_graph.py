"""
LangGraph definition for the meal plan generation pipeline.

The graph walks the generation state machine:
1. authenticate: resolve the bearer credential to a user (fails closed)
2. resolve: load or provision the subscription and derive the entitlement
3. validate: check the request against the entitlement
4. reserve: take one slot of the weekly quota
5. generate: call OpenAI once, under the request timeout
6. verify: parse the output and check the plan is complete
7. commit: save the plan and make the quota consumption final

Any node may stop the run by setting ``outcome``; conditional edges then go
straight to END. Once a slot is reserved, every exit other than a committed
plan releases it, including timeouts and cancellation.

Usage:
    graph = build_generation_graph(...)
    outcome = await run_generation(graph, token, request)
"""

import asyncio
from typing import Any, Callable

import structlog
from langgraph.graph import END, StateGraph

from app.graphs.state import create_initial_state
from app.models.outcomes import (
    GenerationOutcome,
    GenerationRejected,
    GenerationState,
    PlanGenerated,
    PlanWarning,
    RejectionCode,
)
from app.models.plan import (
    GenerationRequest,
    IncompleteError,
    ParseError,
    RequestError,
    UpstreamError,
)
from app.models.usage import Denied, UsageReservation
from app.prompts.meal_plan import build_meal_plan_prompt
from app.services.entitlements import inactive_reason, resolve_entitlement
from app.services.plan_store import PlanRepository, PlanStoreError
from app.services.plan_validator import apply_calorie_policy, validate_and_normalize
from app.services.quota_ledger import QuotaLedger, UsageStoreError
from app.services.request_validator import validate_request
from app.services.subscription_service import SubscriptionService, SubscriptionStoreError

logger = structlog.get_logger(__name__)


# Type alias for state (using dict for LangGraph compatibility)
GraphState = dict[str, Any]


def _exit(
    state: GraphState,
    exit_state: GenerationState,
    code: RejectionCode,
    **detail: Any,
) -> GraphState:
    logger.info("generation_rejected", state=exit_state.value, code=code.value)
    return {
        **state,
        "current_state": exit_state,
        "outcome": GenerationRejected(code=code, state=exit_state, detail=detail),
    }


async def _release(ledger: QuotaLedger, reservation: UsageReservation | None) -> None:
    if reservation is None:
        return
    try:
        await ledger.rollback(reservation)
    except UsageStoreError as e:
        logger.error(
            "quota_release_failed",
            reservation_id=reservation.reservation_id,
            error=str(e),
        )


async def authenticate_node(state: GraphState, *, identity_provider) -> GraphState:
    """Node 1: Resolve the bearer credential. Nothing else runs without a user."""
    user = await identity_provider.authenticate(state.get("token"))
    if user is None:
        return _exit(state, GenerationState.UNAUTHORIZED, RejectionCode.UNAUTHORIZED)

    structlog.contextvars.bind_contextvars(user_id=user.id)
    return {**state, "token": None, "user_id": user.id, "current_state": GenerationState.RESOLVING}


async def resolve_node(
    state: GraphState,
    *,
    subscription_service: SubscriptionService,
    now_provider: Callable,
    require_payment_link: bool,
) -> GraphState:
    """Node 2: Load (or provision) the subscription and resolve the entitlement."""
    try:
        record = await subscription_service.get_or_provision(state["user_id"])
    except SubscriptionStoreError as e:
        logger.error("subscription_read_failed", error=str(e))
        return _exit(
            state,
            GenerationState.STORE_UNAVAILABLE,
            RejectionCode.SUBSCRIPTION_READ_FAILED,
            message=str(e),
        )

    now = now_provider()
    reason = inactive_reason(record, now, require_payment_link=require_payment_link)
    if reason is not None:
        return _exit(
            state,
            GenerationState.SUBSCRIPTION_INACTIVE,
            RejectionCode.SUBSCRIPTION_INACTIVE,
            plan=record.tier.value,
            status=record.status.value,
            reason=reason,
        )

    return {
        **state,
        "record": record,
        "entitlement": resolve_entitlement(record, now),
        "current_state": GenerationState.VALIDATING,
    }


async def validate_node(state: GraphState) -> GraphState:
    """Node 3: Check the request shape and whether the style is allowed."""
    entitlement = state["entitlement"]
    result = validate_request(state["request"], entitlement)

    if isinstance(result, RequestError):
        if result.code == "STYLE_NOT_ALLOWED":
            return _exit(
                state,
                GenerationState.REQUEST_REJECTED,
                RejectionCode.STYLE_NOT_ALLOWED,
                style=result.value,
                plan=entitlement.effective_tier.value,
            )
        return _exit(
            state,
            GenerationState.REQUEST_REJECTED,
            RejectionCode.INVALID_WEEK_START,
            field=result.field,
        )

    return {**state, "params": result, "current_state": GenerationState.RESERVING}


async def reserve_node(state: GraphState, *, ledger: QuotaLedger) -> GraphState:
    """Node 4: Take a quota slot. A denial ends the run before OpenAI is called."""
    entitlement = state["entitlement"]
    try:
        result = await ledger.try_reserve(
            state["user_id"],
            state["params"].week_start,
            entitlement.generation_limit_per_week,
        )
    except UsageStoreError as e:
        logger.error("usage_reserve_failed", error=str(e))
        return _exit(
            state,
            GenerationState.STORE_UNAVAILABLE,
            RejectionCode.USAGE_STORE_FAILED,
            message=str(e),
        )

    if isinstance(result, Denied):
        return _exit(
            state,
            GenerationState.QUOTA_EXCEEDED,
            RejectionCode.WEEKLY_LIMIT_REACHED,
            used=result.used,
            limit=result.limit,
            plan=entitlement.effective_tier.value,
        )

    return {
        **state,
        "reservation": result.reservation,
        "current_state": GenerationState.GENERATING,
    }


async def generate_node(
    state: GraphState,
    *,
    generator,
    ledger: QuotaLedger,
    timeout_seconds: float,
) -> GraphState:
    """Node 5: One upstream call. No lock is held while it is in flight."""
    reservation = state["reservation"]
    prompt = build_meal_plan_prompt(
        state["params"], calories_enabled=state["entitlement"].calories_enabled
    )

    try:
        result = await asyncio.wait_for(generator.generate(prompt), timeout=timeout_seconds)
    except TimeoutError:
        result = UpstreamError(
            detail={"message": f"generation timed out after {timeout_seconds:g}s"},
            timed_out=True,
        )
    except (asyncio.CancelledError, Exception):
        await _release(ledger, reservation)
        raise

    if isinstance(result, UpstreamError):
        await _release(ledger, reservation)
        logger.warning("generation_upstream_failed", status=result.status, timed_out=result.timed_out)
        return _exit(
            state,
            GenerationState.UPSTREAM_FAILED,
            RejectionCode.UPSTREAM_TIMEOUT if result.timed_out else RejectionCode.OPENAI_UPSTREAM_ERROR,
            status=result.status,
            detail=result.detail,
        )

    return {**state, "raw_text": result.text, "current_state": GenerationState.VERIFYING}


async def verify_node(state: GraphState, *, ledger: QuotaLedger) -> GraphState:
    """Node 6: Accept only complete plans; anything else gives the slot back."""
    reservation = state["reservation"]
    try:
        result = validate_and_normalize(state["raw_text"] or "")
        if isinstance(result, (ParseError, IncompleteError)):
            plan = None
        else:
            plan = apply_calorie_policy(
                result,
                calories_enabled=state["entitlement"].calories_enabled,
                people=state["params"].people,
            )
    except (asyncio.CancelledError, Exception):
        await _release(ledger, reservation)
        raise

    if isinstance(result, ParseError):
        await _release(ledger, reservation)
        return _exit(
            state,
            GenerationState.OUTPUT_REJECTED,
            RejectionCode.INVALID_PLAN_JSON,
            reason=result.reason,
            text=result.text,
        )

    if isinstance(result, IncompleteError):
        await _release(ledger, reservation)
        return _exit(
            state,
            GenerationState.OUTPUT_REJECTED,
            RejectionCode.MISSING_RECIPES if result.missing else RejectionCode.MISSING_DAYS,
            missing=result.missing,
            missing_days=result.missing_days,
        )

    return {**state, "plan": plan, "current_state": GenerationState.COMMITTING}


async def commit_node(
    state: GraphState,
    *,
    plan_repository: PlanRepository,
    ledger: QuotaLedger,
) -> GraphState:
    """Node 7: Save the plan, then make the quota consumption final."""
    reservation = state["reservation"]
    plan = state["plan"]

    try:
        await plan_repository.save_plan(state["user_id"], state["params"].week_start, plan)
    except PlanStoreError as e:
        logger.error("meal_plan_save_failed", error=str(e))
        await _release(ledger, reservation)
        return {
            **state,
            "current_state": GenerationState.PERSIST_FAILED,
            "outcome": PlanGenerated(
                plan=plan,
                persisted=False,
                warning=PlanWarning(code="PLAN_SAVE_FAILED", message=str(e)),
            ),
        }
    except (asyncio.CancelledError, Exception):
        await _release(ledger, reservation)
        raise

    await ledger.commit(reservation)
    logger.info("generation_completed", week_start=str(reservation.week_start))
    return {
        **state,
        "current_state": GenerationState.DONE,
        "outcome": PlanGenerated(
            plan=plan,
            used=reservation.used_before + 1,
            limit=reservation.limit,
        ),
    }


def _continue_to(next_node: str) -> Callable[[GraphState], str]:
    def route(state: GraphState) -> str:
        return END if state.get("outcome") is not None else next_node

    return route


def build_generation_graph(
    *,
    identity_provider,
    subscription_service: SubscriptionService,
    ledger: QuotaLedger,
    generator,
    plan_repository: PlanRepository,
    timeout_seconds: float,
    require_payment_link: bool = False,
    now_provider: Callable | None = None,
) -> StateGraph:
    """
    Build the generation graph.

    Args:
        identity_provider: Resolves bearer tokens to users
        subscription_service: Loads and provisions subscription records
        ledger: Weekly quota ledger
        generator: Object with ``async generate(prompt)`` returning
            RawCompletion or UpstreamError
        plan_repository: Plan persistence
        timeout_seconds: Request-level timeout around the upstream call
        require_payment_link: Treat records without a Stripe link as inactive
        now_provider: Clock; defaults to the subscription service's clock

    Returns:
        Compiled StateGraph ready for execution
    """
    clock = now_provider or subscription_service.now_provider
    graph = StateGraph(dict)

    # Each async node is wrapped in an async function (not a lambda) so
    # LangGraph awaits the coroutine.

    async def authenticate(state: GraphState) -> GraphState:
        return await authenticate_node(state, identity_provider=identity_provider)

    async def resolve(state: GraphState) -> GraphState:
        return await resolve_node(
            state,
            subscription_service=subscription_service,
            now_provider=clock,
            require_payment_link=require_payment_link,
        )

    async def reserve(state: GraphState) -> GraphState:
        return await reserve_node(state, ledger=ledger)

    async def generate(state: GraphState) -> GraphState:
        return await generate_node(
            state, generator=generator, ledger=ledger, timeout_seconds=timeout_seconds
        )

    async def verify(state: GraphState) -> GraphState:
        return await verify_node(state, ledger=ledger)

    async def commit(state: GraphState) -> GraphState:
        return await commit_node(state, plan_repository=plan_repository, ledger=ledger)

    graph.add_node("authenticate", authenticate)
    graph.add_node("resolve", resolve)
    graph.add_node("validate", validate_node)
    graph.add_node("reserve", reserve)
    graph.add_node("generate", generate)
    graph.add_node("verify", verify)
    graph.add_node("commit", commit)

    graph.set_entry_point("authenticate")
    pipeline = ["authenticate", "resolve", "validate", "reserve", "generate", "verify", "commit"]
    for current, following in zip(pipeline, pipeline[1:]):
        graph.add_conditional_edges(current, _continue_to(following), {following: following, END: END})
    graph.add_edge("commit", END)

    return graph.compile()


async def run_generation(
    graph: Any, token: str | None, request: GenerationRequest
) -> GenerationOutcome:
    """Run one generation call through the compiled graph."""
    final_state = await graph.ainvoke(create_initial_state(token, request))
    return final_state["outcome"]
