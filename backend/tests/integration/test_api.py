"""Integration tests for the HTTP surface: info endpoints and POST /generate."""

from datetime import UTC, date, datetime, timedelta

from fastapi.testclient import TestClient

from app.api.v1.generate import REJECTION_STATUS, outcome_to_response
from app.auth import AuthenticatedUser
from app.graphs.generation_graph import build_generation_graph
from app.models.outcomes import GenerationRejected, GenerationState, RejectionCode
from app.models.plan import RawCompletion, UpstreamError
from app.models.subscription import SubscriptionRecord, SubscriptionStatus, Tier
from app.services.plan_store import InMemoryPlanRepository, PlanStoreError
from app.services.quota_ledger import InMemoryUsageRepository, QuotaLedger
from app.services.subscription_service import InMemorySubscriptionRepository, SubscriptionService

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)
WEEK = date(2026, 3, 2)
AUTH = {"Authorization": "Bearer good-token"}


class FakeIdentityProvider:
    async def authenticate(self, token):
        return AuthenticatedUser(id="user-1") if token == "good-token" else None


class FakeGenerator:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def generate(self, prompt: str):
        self.calls += 1
        return self.results.pop(0)


class FailingPlanRepository:
    async def save_plan(self, user_id, week_start, plan) -> int:
        raise PlanStoreError("write timeout")


def install_pipeline(
    client: TestClient,
    *results,
    record: SubscriptionRecord | None = None,
    plans=None,
) -> tuple[InMemoryUsageRepository, FakeGenerator]:
    subscriptions = InMemorySubscriptionRepository()
    if record is not None:
        subscriptions.records[record.user_id] = record
    usage = InMemoryUsageRepository()
    generator = FakeGenerator(*results)
    client.app.state.generation_graph = build_generation_graph(
        identity_provider=FakeIdentityProvider(),
        subscription_service=SubscriptionService(subscriptions, now_provider=lambda: NOW),
        ledger=QuotaLedger(usage),
        generator=generator,
        plan_repository=plans or InMemoryPlanRepository(),
        timeout_seconds=5.0,
    )
    return usage, generator


def basic_paid_record() -> SubscriptionRecord:
    return SubscriptionRecord(
        user_id="user-1",
        tier=Tier.BASIC,
        status=SubscriptionStatus.ACTIVE,
        trial_until=NOW - timedelta(days=60),
        stripe_customer_id="cus_1",
    )


class TestInfoEndpoints:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "MealWeek API"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_request_id_header_generated(self, client):
        response = client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 36

    def test_request_id_header_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-abc"})

        assert response.headers["X-Request-ID"] == "trace-abc"


class TestGenerateEndpoint:
    def test_unconfigured_pipeline_returns_503(self, client):
        client.app.state.generation_graph = None

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 503

    def test_success_returns_plan_and_usage(self, client, plan_json):
        usage, _ = install_pipeline(client, RawCompletion(text=plan_json(), envelope="text"))

        response = client.post(
            "/api/v1/generate",
            json={"weekStart": "2026-03-02", "people": 2, "style": "exotic"},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["kind"] == "json"
        assert body["usage"] == {"used": 1, "limit": 5}
        assert len(body["plan"]["recipes"]) == 21
        assert body["plan"]["summary"]["avg_daily_kcal_per_person"] == 1800
        assert usage.counts[("user-1", WEEK)] == 1

    def test_missing_token_returns_401(self, client):
        _, generator = install_pipeline(client)

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"})

        assert response.status_code == 401
        assert response.json() == {"error": {"code": "UNAUTHORIZED"}}
        assert generator.calls == 0

    def test_invalid_week_start_returns_400(self, client):
        install_pipeline(client)

        response = client.post("/api/v1/generate", json={"week_start": "02/03/2026"}, headers=AUTH)

        assert response.status_code == 400
        assert response.json() == {"error": {"code": "INVALID_WEEK_START", "field": "week_start"}}

    def test_inactive_subscription_returns_402(self, client):
        record = basic_paid_record().model_copy(update={"status": SubscriptionStatus.PAST_DUE})
        install_pipeline(client, record=record)

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 402
        assert response.json()["error"]["code"] == "SUBSCRIPTION_INACTIVE"
        assert response.json()["error"]["status"] == "past_due"

    def test_style_not_allowed_returns_403(self, client):
        install_pipeline(client, record=basic_paid_record())

        response = client.post(
            "/api/v1/generate",
            json={"week_start": "2026-03-02", "style": "exotic"},
            headers=AUTH,
        )

        assert response.status_code == 403
        assert response.json() == {
            "error": {"code": "STYLE_NOT_ALLOWED", "style": "exotic", "plan": "basic"}
        }

    def test_weekly_limit_returns_429(self, client):
        usage, generator = install_pipeline(client, record=basic_paid_record())
        usage.counts[("user-1", WEEK)] = 3

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 429
        assert response.json() == {
            "error": {"code": "WEEKLY_LIMIT_REACHED", "used": 3, "limit": 3, "plan": "basic"}
        }
        assert generator.calls == 0

    def test_upstream_error_returns_500_with_body(self, client):
        body = {"error": {"message": "model overloaded"}}
        usage, _ = install_pipeline(client, UpstreamError(status=503, detail=body))

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {
            "error": {"code": "OPENAI_UPSTREAM_ERROR", "status": 503, "detail": body}
        }
        assert usage.counts[("user-1", WEEK)] == 0

    def test_missing_recipes_returns_500(self, client, plan_json):
        usage, _ = install_pipeline(
            client, RawCompletion(text=plan_json(skip_recipes=("d7_dinner",)), envelope="text")
        )

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {
            "error": {"code": "MISSING_RECIPES", "missing": ["d7_dinner"], "missing_days": []}
        }
        assert usage.counts[("user-1", WEEK)] == 0

    def test_invalid_json_returns_raw_text(self, client):
        install_pipeline(client, RawCompletion(text="Sorry!", envelope="text"))

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INVALID_PLAN_JSON"
        assert response.json()["error"]["text"] == "Sorry!"

    def test_persist_failure_returns_plan_with_warning(self, client, plan_json):
        usage, _ = install_pipeline(
            client,
            RawCompletion(text=plan_json(), envelope="text"),
            plans=FailingPlanRepository(),
        )

        response = client.post("/api/v1/generate", json={"week_start": "2026-03-02"}, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["warning"]["code"] == "PLAN_SAVE_FAILED"
        assert "usage" not in body
        assert len(body["plan"]["days"]) == 7
        assert usage.counts[("user-1", WEEK)] == 0


class TestRejectionStatusMap:
    def test_every_code_has_a_status(self):
        assert set(REJECTION_STATUS) == set(RejectionCode)

    def test_outcome_to_response_is_json(self):
        response = outcome_to_response(
            GenerationRejected(
                code=RejectionCode.UPSTREAM_TIMEOUT,
                state=GenerationState.UPSTREAM_FAILED,
                detail={"status": None},
            )
        )

        assert response.status_code == 500
