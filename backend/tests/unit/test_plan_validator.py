"""Unit tests for plan parsing, completeness checks and the calorie policy."""

import json

import pytest

from app.constants import REQUIRED_RECIPE_KEYS
from app.models.plan import GeneratedPlan, IncompleteError, ParseError
from app.services.plan_validator import (
    apply_calorie_policy,
    missing_day_ordinals,
    normalize_recipe_key,
    parse_plan_text,
    validate_and_normalize,
)


class TestNormalizeRecipeKey:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("d1_breakfast", "d1_breakfast"),
            ("d1breakfast", "d1_breakfast"),
            ("d3-lunch", "d3_lunch"),
            ("D7_Dinner", "d7_dinner"),
            (" d2lunch ", "d2_lunch"),
            ("d01_dinner", "d1_dinner"),
        ],
    )
    def test_variants_collapse_to_canonical(self, raw, expected):
        assert normalize_recipe_key(raw) == expected

    def test_unrelated_key_is_left_alone(self):
        assert normalize_recipe_key("snack") == "snack"


class TestParsePlanText:
    def test_strict_json(self):
        assert parse_plan_text('{"a": 1}') == {"a": 1}

    def test_json_wrapped_in_prose(self):
        text = 'Here is your plan:\n```json\n{"a": {"b": 2}}\n```\nEnjoy!'

        assert parse_plan_text(text) == {"a": {"b": 2}}

    def test_no_braces(self):
        assert parse_plan_text("sorry, I cannot do that") is None

    def test_broken_json(self):
        assert parse_plan_text('{"a": 1,') is None

    def test_non_finite_numbers_become_null(self):
        parsed = parse_plan_text('{"a": 1e999, "b": NaN, "c": -Infinity, "d": 1.5}')

        assert parsed == {"a": None, "b": None, "c": None, "d": 1.5}


class TestValidateAndNormalize:
    def test_complete_plan_is_accepted(self, plan_json):
        result = validate_and_normalize(plan_json())

        assert isinstance(result, GeneratedPlan)
        assert len(result.days) == 7
        assert set(result.recipes) == set(REQUIRED_RECIPE_KEYS)

    @pytest.mark.parametrize("key_style", ["d{day}{meal}", "d{day}-{meal}", "D{day}_{meal}"])
    def test_key_variants_are_canonicalized(self, plan_json, key_style):
        result = validate_and_normalize(plan_json(key_style=key_style))

        assert isinstance(result, GeneratedPlan)
        assert sorted(result.recipes) == sorted(REQUIRED_RECIPE_KEYS)

    def test_missing_recipe_is_reported(self, plan_json):
        result = validate_and_normalize(plan_json(skip_recipes=("d7_dinner",)))

        assert isinstance(result, IncompleteError)
        assert result.missing == ["d7_dinner"]
        assert result.missing_days == []

    def test_every_missing_recipe_is_listed(self, plan_json):
        result = validate_and_normalize(
            plan_json(skip_recipes=("d1_breakfast", "d4_lunch", "d7_dinner"))
        )

        assert result.missing == ["d1_breakfast", "d4_lunch", "d7_dinner"]

    def test_empty_recipe_counts_as_missing(self, plan_dict):
        plan = plan_dict()
        plan["recipes"]["d2_lunch"] = {}

        result = validate_and_normalize(json.dumps(plan))

        assert isinstance(result, IncompleteError)
        assert result.missing == ["d2_lunch"]

    def test_missing_days_are_reported(self, plan_json):
        result = validate_and_normalize(plan_json(days=5))

        assert isinstance(result, IncompleteError)
        assert result.missing_days == [6, 7]

    def test_extra_days_are_truncated(self, plan_dict):
        plan = plan_dict()
        plan["days"].append(dict(plan["days"][0], day=8))

        result = validate_and_normalize(json.dumps(plan))

        assert isinstance(result, GeneratedPlan)
        assert len(result.days) == 7

    def test_prose_around_json_is_tolerated(self, plan_json):
        result = validate_and_normalize("Sure!\n" + plan_json() + "\nBon appetit.")

        assert isinstance(result, GeneratedPlan)

    def test_unparseable_text_keeps_raw_text(self):
        result = validate_and_normalize("no plan today")

        assert isinstance(result, ParseError)
        assert result.text == "no plan today"

    def test_non_object_root_is_parse_error(self):
        result = validate_and_normalize("[1, 2, 3]")

        assert isinstance(result, ParseError)

    def test_unknown_keys_survive(self, plan_dict):
        plan = plan_dict()
        plan["chef_notes"] = "use a cast iron pan"

        result = validate_and_normalize(json.dumps(plan))

        assert result.model_dump()["chef_notes"] == "use a cast iron pan"

    def test_accepted_plan_revalidates_after_serialization(self, plan_json):
        first = validate_and_normalize(plan_json())
        dumped = json.dumps(first.model_dump(mode="json"))

        second = validate_and_normalize(dumped)

        assert isinstance(second, GeneratedPlan)
        assert second == first

    def test_days_without_ordinals_use_position(self, plan_dict):
        plan = plan_dict()
        for entry in plan["days"]:
            entry.pop("day")

        assert missing_day_ordinals(plan) == []

    def test_overflowing_day_ordinal_is_missing(self, plan_dict):
        plan = plan_dict()
        plan["days"][0]["day"] = float("inf")

        assert missing_day_ordinals(plan) == [1]

    @pytest.mark.parametrize(
        "loosen",
        [
            pytest.param(lambda plan: plan.update(summary=None), id="summary_null"),
            pytest.param(lambda plan: plan.pop("summary"), id="summary_absent"),
            pytest.param(
                lambda plan: plan["recipes"].update(d1_breakfast="Oat porridge"),
                id="recipe_string",
            ),
            pytest.param(
                lambda plan: plan["recipes"]["d1_lunch"].update(steps=[{"n": 1, "text": "Boil"}]),
                id="steps_objects",
            ),
            pytest.param(
                lambda plan: plan["summary"].update(savings_tips="Buy in bulk"),
                id="tips_string",
            ),
            pytest.param(
                lambda plan: plan["recipes"]["d2_dinner"].update(ingredients=["500 g potatoes"]),
                id="ingredients_strings",
            ),
            pytest.param(
                lambda plan: plan["recipes"]["d3_dinner"].update(title=42, time_min="about 20"),
                id="odd_leaf_types",
            ),
            pytest.param(lambda plan: plan.update(shopping="one big trip"), id="shopping_string"),
        ],
    )
    def test_complete_plan_with_loose_leaf_shapes_is_accepted(self, plan_dict, loosen):
        plan = plan_dict()
        loosen(plan)

        result = validate_and_normalize(json.dumps(plan))

        assert isinstance(result, GeneratedPlan)
        json.dumps(result.model_dump(mode="json"))

    def test_bare_string_recipe_becomes_title(self, plan_dict):
        plan = plan_dict()
        plan["recipes"]["d1_breakfast"] = "Oat porridge"

        result = validate_and_normalize(json.dumps(plan))

        assert result.recipes["d1_breakfast"].title == "Oat porridge"

    def test_lone_savings_tip_becomes_list(self, plan_dict):
        plan = plan_dict()
        plan["summary"]["savings_tips"] = "Buy in bulk"

        result = validate_and_normalize(json.dumps(plan))

        assert result.summary.savings_tips == ["Buy in bulk"]

    def test_string_ingredients_become_named_items(self, plan_dict):
        plan = plan_dict()
        plan["recipes"]["d2_dinner"]["ingredients"] = ["500 g potatoes"]

        result = validate_and_normalize(json.dumps(plan))

        assert result.recipes["d2_dinner"].ingredients[0].name == "500 g potatoes"


class TestApplyCaloriePolicy:
    def _plan(self, plan_json) -> GeneratedPlan:
        return validate_and_normalize(plan_json())

    def test_enabled_computes_per_person_values(self, plan_json):
        plan = apply_calorie_policy(self._plan(plan_json), calories_enabled=True, people="2")

        assert plan.summary.people == 2
        assert plan.summary.avg_daily_kcal_per_person == 1800
        assert plan.summary.weekly_total_kcal_per_person == 12600
        assert plan.days[0].total_kcal == 1800

    def test_disabled_strips_every_calorie_field(self, plan_json):
        plan = apply_calorie_policy(self._plan(plan_json), calories_enabled=False, people="2")

        dumped = plan.model_dump(exclude_none=True)
        assert "weekly_total_kcal" not in dumped["summary"]
        assert "avg_daily_kcal" not in dumped["summary"]
        assert "avg_daily_kcal_per_person" not in dumped["summary"]
        for day in dumped["days"]:
            assert not {"breakfast_kcal", "lunch_kcal", "dinner_kcal", "total_kcal"} & set(day)

    def test_people_falls_back_to_request(self, plan_dict):
        plan = plan_dict()
        plan["summary"]["people"] = "a family"
        parsed = validate_and_normalize(json.dumps(plan))

        result = apply_calorie_policy(parsed, calories_enabled=True, people="3")

        assert result.summary.people == 3
        assert result.summary.avg_daily_kcal_per_person == 1200

    def test_zero_people_does_not_divide_by_zero(self, plan_dict):
        plan = plan_dict()
        plan["summary"]["people"] = 0
        parsed = validate_and_normalize(json.dumps(plan))

        result = apply_calorie_policy(parsed, calories_enabled=True, people="0")

        assert result.summary.avg_daily_kcal_per_person == 3600

    def test_input_plan_is_not_mutated(self, plan_json):
        original = self._plan(plan_json)

        apply_calorie_policy(original, calories_enabled=False, people="2")

        assert original.summary.weekly_total_kcal == 25200

    def test_null_summary_uses_requested_people(self, plan_dict):
        plan = plan_dict()
        plan["summary"] = None
        parsed = validate_and_normalize(json.dumps(plan))

        result = apply_calorie_policy(parsed, calories_enabled=True, people="2")

        assert result.summary.people == 2
        assert result.summary.avg_daily_kcal_per_person == 0

    def test_oversized_people_falls_back_to_request(self, plan_dict):
        plan = plan_dict()
        plan["summary"]["people"] = 10**400
        parsed = validate_and_normalize(json.dumps(plan))

        result = apply_calorie_policy(parsed, calories_enabled=True, people="3")

        assert result.summary.people == 3
