"""
MealWeek Backend - Main FastAPI Application.

This is the entry point for the MealWeek backend API. It generates weekly
meal plans with OpenAI, gated by the caller's subscription and a weekly
generation quota.

Run with:
    uvicorn app.main:app --reload
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import acreate_client
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from app.api.v1.billing import router as billing_router
from app.api.v1.entitlements import router as entitlements_router
from app.api.v1.generate import router as generate_router
from app.auth import SupabaseIdentityProvider
from app.config import get_settings
from app.constants import API_TITLE, API_VERSION
from app.graphs.generation_graph import build_generation_graph
from app.logging_config import setup_logging
from app.middleware import RequestContextMiddleware
from app.services.meal_plan_generator import MealPlanGenerator
from app.services.plan_store import InMemoryPlanRepository, SupabasePlanRepository
from app.services.quota_ledger import InMemoryUsageRepository, QuotaLedger, SupabaseUsageRepository
from app.services.stripe_service import StripeService
from app.services.subscription_service import (
    InMemorySubscriptionRepository,
    SubscriptionService,
    SupabaseSubscriptionRepository,
)

# Get settings before logging setup so we know the debug flag
settings = get_settings()

# Propagate LangSmith settings into os.environ so the SDK can find them.
# pydantic-settings reads .env into the Settings model but does NOT inject
# values into os.environ, which is where langsmith and openai_client.py look.
if settings.langchain_tracing_v2 and settings.langsmith_api_key:
    os.environ["LANGCHAIN_TRACING_V2"] = "true"
    os.environ["LANGSMITH_API_KEY"] = settings.langsmith_api_key
    os.environ["LANGSMITH_PROJECT"] = settings.langsmith_project

# Configure logging
setup_logging(settings.debug)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler for startup and shutdown."""
    logger.info("api_startup", cors_origins=settings.cors_origins)

    # Initialize Supabase async client
    supabase_client: AsyncSupabaseClient | None = None
    if settings.supabase_url and settings.supabase_secret_key:
        try:
            supabase_client = await acreate_client(
                settings.supabase_url,
                settings.supabase_secret_key,
            )
            logger.info("supabase_configured")
        except Exception as e:
            logger.warning("supabase_init_failed", error=str(e))
    else:
        logger.warning(
            "supabase_not_configured",
            detail="Generation returns 503; subscriptions and usage are kept in memory",
        )

    tables = settings.tables
    if supabase_client is not None:
        subscription_repository = SupabaseSubscriptionRepository(
            supabase_client, tables.subscriptions, tables.webhook_events
        )
        usage_repository = SupabaseUsageRepository(supabase_client, tables.generation_usage)
        plan_repository = SupabasePlanRepository(supabase_client, tables.meal_plans)
        identity_provider = SupabaseIdentityProvider(supabase_client)
    else:
        subscription_repository = InMemorySubscriptionRepository()
        usage_repository = InMemoryUsageRepository()
        plan_repository = InMemoryPlanRepository()
        identity_provider = None

    subscription_service = SubscriptionService(subscription_repository)
    quota_ledger = QuotaLedger(
        usage_repository, max_attempts=settings.billing.max_reserve_attempts
    )

    stripe_service: StripeService | None = None
    if settings.stripe.secret_key:
        stripe_service = StripeService(settings.stripe)
        logger.info("stripe_configured")
    else:
        logger.warning("stripe_not_configured", detail="Billing webhook returns 503")

    # Compile the graph only when every collaborator is available
    generation_graph = None
    if not settings.openai_api_key:
        logger.warning("openai_key_missing", detail="Meal plan generation will not work")
    elif identity_provider is None:
        logger.warning("generation_disabled", detail="No identity provider configured")
    else:
        logger.info("openai_configured", model=settings.openai.model)
        generator = MealPlanGenerator(settings.openai_api_key, settings.openai)
        generation_graph = build_generation_graph(
            identity_provider=identity_provider,
            subscription_service=subscription_service,
            ledger=quota_ledger,
            generator=generator,
            plan_repository=plan_repository,
            timeout_seconds=settings.openai.request_timeout_seconds,
            require_payment_link=settings.billing.require_payment_link,
        )

    _app.state.supabase = supabase_client
    _app.state.identity_provider = identity_provider
    _app.state.subscription_service = subscription_service
    _app.state.quota_ledger = quota_ledger
    _app.state.plan_repository = plan_repository
    _app.state.stripe_service = stripe_service
    _app.state.generation_graph = generation_graph

    logger.info("services_initialized", generation_enabled=generation_graph is not None)

    yield

    logger.info("api_shutdown")


# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description=(
        "Weekly meal plan generation with shopping lists and recipes, "
        "limited by subscription tier and a weekly generation quota."
    ),
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Request context middleware must come before CORS so every response gets
# the X-Request-ID header (including preflight OPTIONS responses).
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(generate_router, prefix="/api/v1")
app.include_router(entitlements_router, prefix="/api/v1")
app.include_router(billing_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "description": "Weekly meal plan generation API",
        "docs": "/docs",
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}
