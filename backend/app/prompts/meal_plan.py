"""
Prompt for weekly meal plan generation.

The instructions are in English; the plan text itself is requested in the
user's language through LANGUAGE_RULES. The JSON schema block mirrors
GeneratedPlan and the 21 canonical recipe keys checked by plan_validator.

Usage:
    from app.prompts.meal_plan import build_meal_plan_prompt
    prompt = build_meal_plan_prompt(params, calories_enabled=True)
"""

from app.constants import DAY_NAMES, LANGUAGE_RULES, STYLE_HINTS
from app.models.plan import PlanParameters

MEAL_PLAN_PROMPT = """Return ONLY valid JSON (no other text).
{language_rule}

Create a 7-day meal plan (breakfast/lunch/dinner).
Goal: save time and money.

Parameters:
- people: {people}
- weekly_budget_eur: {budget}
- shopping_trips_per_week: {shopping_trips}
- repeat_days_max: {repeat_days}

Hard restriction:
- forbidden_ingredients: {intolerances}

Preferences:
- avoid: {avoid}
- favorites: {favorites}
- have_at_home: {have}

Style:
- {style_hint}

Week:
{dates_block}

Rules:
- Batch cooking, reuse ingredients across days.
- Split shopping into exactly {shopping_trips} trips.
- Provide realistic quantities.
{calories_block}
SHOPPING:
- For each trip include estimated_cost_eur.

RECIPES:
- Generate a recipe for EVERY meal: breakfast, lunch and dinner.
- Keys must be exactly: d{{day}}_{{meal}} where meal is breakfast|lunch|dinner.
- That means 21 recipes total.

JSON schema (follow exactly):
{{
  "summary": {{
    "people": number,
    "weekly_budget_eur": number,
    "shopping_trips_per_week": number,
    "repeat_days_max": number,
    "estimated_total_cost_eur": number,
    "savings_tips": string[]{summary_calories}
  }},
  "days": [
    {{
      "day": 1,
      "day_name": string,
      "date": "YYYY-MM-DD",
      "breakfast": string,
      "lunch": string,
      "dinner": string,
      "note": string{day_calories}
    }}
  ],
  "shopping": [
    {{
      "trip": 1,
      "covers_days": "1-3",
      "estimated_cost_eur": number,
      "items": [
        {{ "name": string, "quantity": string }}
      ]
    }}
  ],
  "recipes": {{
    "d1_breakfast": {{
      "title": string,
      "time_min": number,
      "portions": number,
      "ingredients": [{{ "name": string, "quantity": string }}],
      "steps": string[]
    }}
  }}
}}

Counts:
- days must be exactly 7 (day 1..7)
- shopping must be exactly {shopping_trips} trips
- recipes must include ALL 21 keys (d1_breakfast..d7_dinner)
"""

CALORIES_ENABLED_BLOCK = """
CALORIES:
- Calories must be per person/serving.
- For each day include breakfast_kcal, lunch_kcal, dinner_kcal and total_kcal.
- In summary include weekly_total_kcal and avg_daily_kcal (for the whole household).
"""

CALORIES_DISABLED_BLOCK = """
CALORIES:
- Do NOT include any calorie fields in days or summary (no *_kcal, no totals).
"""

SUMMARY_CALORIES_SCHEMA = """,
    "weekly_total_kcal": number,
    "avg_daily_kcal": number"""

DAY_CALORIES_SCHEMA = """,
      "breakfast_kcal": number,
      "lunch_kcal": number,
      "dinner_kcal": number,
      "total_kcal": number"""


def build_dates_block(params: PlanParameters) -> str:
    """One line per plan day: ordinal, localized day name and ISO date."""
    names = DAY_NAMES[params.language]
    return "\n".join(
        f"- day {index + 1}: {names[day.weekday()]}, date: {day.isoformat()}"
        for index, day in enumerate(params.day_dates())
    )


def build_meal_plan_prompt(params: PlanParameters, *, calories_enabled: bool) -> str:
    """Build the full generation prompt. Deterministic for equal inputs."""
    return MEAL_PLAN_PROMPT.format(
        language_rule=LANGUAGE_RULES[params.language],
        people=params.people,
        budget=params.budget,
        shopping_trips=params.shopping_trips,
        repeat_days=params.repeat_days,
        intolerances=params.intolerances or "none",
        avoid=params.avoid or "none",
        favorites=params.favorites or "none",
        have=params.have or "none",
        style_hint=STYLE_HINTS[params.style][params.language],
        dates_block=build_dates_block(params),
        calories_block=CALORIES_ENABLED_BLOCK if calories_enabled else CALORIES_DISABLED_BLOCK,
        summary_calories=SUMMARY_CALORIES_SCHEMA if calories_enabled else "",
        day_calories=DAY_CALORIES_SCHEMA if calories_enabled else "",
    )
