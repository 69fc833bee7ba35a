"""Unit tests for the generation graph state helpers."""

from app.graphs.state import GenerationGraphState, create_initial_state
from app.models.outcomes import GenerationState
from app.models.plan import GenerationRequest


class TestCreateInitialState:
    def test_has_every_documented_key(self):
        state = create_initial_state("token", GenerationRequest(week_start="2026-03-02"))

        assert set(state) == set(GenerationGraphState.model_fields)

    def test_starts_idle_without_outcome(self):
        state = create_initial_state(None, GenerationRequest())

        assert state["current_state"] == GenerationState.IDLE
        assert state["outcome"] is None
        assert state["token"] is None

    def test_validates_against_state_model(self):
        state = create_initial_state("token", GenerationRequest(week_start="2026-03-02"))

        model = GenerationGraphState.model_validate(state)

        assert model.request.week_start == "2026-03-02"
        assert model.reservation is None
