"""
Business logic constants for the MealWeek application.

These values are stable across environments (dev/staging/prod) and do not
need env-var overrides. For operational parameters that vary per environment
(timeouts, model names, table names), see config.py.
"""

from app.models.plan import Language, Meal
from app.models.subscription import Style, Tier

API_TITLE = "MealWeek API"
API_VERSION = "0.1.0"

# --- Trial provisioned on a user's first entitlement query ---
TRIAL_DAYS = 14

# --- Weekly generation quota per effective tier ---
WEEKLY_LIMITS: dict[Tier, int] = {
    Tier.BASIC: 3,
    Tier.PLUS: 5,
}

# --- Styles each effective tier may request ---
BASIC_STYLES: frozenset[Style] = frozenset(
    {Style.CHEAP, Style.QUICK, Style.BALANCED, Style.VEGETARIAN}
)
PLUS_STYLES: frozenset[Style] = BASIC_STYLES | {Style.TRADITIONAL, Style.EXOTIC, Style.FIT}

ALLOWED_STYLES: dict[Tier, frozenset[Style]] = {
    Tier.BASIC: BASIC_STYLES,
    Tier.PLUS: PLUS_STYLES,
}

DEFAULT_STYLE = Style.CHEAP
DEFAULT_LANGUAGE = Language.SK

# Style values sent by older clients
STYLE_ALIASES: dict[str, Style] = {
    "lacne": Style.CHEAP,
    "lacné": Style.CHEAP,
    "rychle": Style.QUICK,
    "vyvazene": Style.BALANCED,
    "vegetarianske": Style.VEGETARIAN,
    "tradicne": Style.TRADITIONAL,
    "exoticke": Style.EXOTIC,
}

# --- Request parameter bounds (out-of-range values are clamped) ---
SHOPPING_TRIPS_RANGE = (1, 4)
REPEAT_DAYS_RANGE = (1, 3)
DEFAULT_SHOPPING_TRIPS = 2
DEFAULT_REPEAT_DAYS = 2
DEFAULT_PEOPLE = "1"
DEFAULT_BUDGET = "0"

# --- Plan structure ---
DAYS_PER_WEEK = 7
MEALS: tuple[Meal, ...] = (Meal.BREAKFAST, Meal.LUNCH, Meal.DINNER)
REQUIRED_RECIPE_KEYS: tuple[str, ...] = tuple(
    f"d{day}_{meal.value}" for day in range(1, DAYS_PER_WEEK + 1) for meal in MEALS
)

DAY_KCAL_FIELDS = ("breakfast_kcal", "lunch_kcal", "dinner_kcal", "total_kcal")
SUMMARY_KCAL_FIELDS = (
    "weekly_total_kcal",
    "avg_daily_kcal",
    "avg_daily_kcal_per_person",
    "weekly_total_kcal_per_person",
)

# --- Prompt text ---
DAY_NAMES: dict[Language, tuple[str, ...]] = {
    Language.SK: ("Pondelok", "Utorok", "Streda", "Štvrtok", "Piatok", "Sobota", "Nedeľa"),
    Language.EN: ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
    Language.UK: ("Понеділок", "Вівторок", "Середа", "Четвер", "П’ятниця", "Субота", "Неділя"),
}

LANGUAGE_RULES: dict[Language, str] = {
    Language.SK: "Všetko píš po slovensky.",
    Language.EN: "Write everything in English.",
    Language.UK: "Пиши все українською.",
}

STYLE_HINTS: dict[Style, dict[Language, str]] = {
    Style.CHEAP: {
        Language.SK: "Uprednostni čo najlacnejšie jedlá z bežných surovín.",
        Language.EN: "Prefer the cheapest meals from common ingredients.",
        Language.UK: "Надавай перевагу найдешевшим стравам зі звичайних продуктів.",
    },
    Style.QUICK: {
        Language.SK: "Uprednostni veľmi rýchle jedlá (max 20–30 min).",
        Language.EN: "Prefer very quick meals (max 20–30 min).",
        Language.UK: "Надавай перевагу дуже швидким стравам (макс 20–30 хв).",
    },
    Style.BALANCED: {
        Language.SK: "Uprednostni vyvážené jedlá (bielkoviny, zelenina, prílohy), stále rozumná cena.",
        Language.EN: "Prefer balanced meals (protein + veggies + sides), still budget-friendly.",
        Language.UK: "Надавай перевагу збалансованим стравам (білок + овочі + гарнір), бюджетно.",
    },
    Style.VEGETARIAN: {
        Language.SK: "Vegetariánske: bez mäsa a rýb (vajcia a mliečne OK).",
        Language.EN: "Vegetarian: no meat or fish (eggs and dairy OK).",
        Language.UK: "Вегетаріанське: без м’яса та риби (яйця й молочне можна).",
    },
    Style.TRADITIONAL: {
        Language.SK: "Tradičné: domáca poctivá strava.",
        Language.EN: "Traditional home-style meals.",
        Language.UK: "Традиційні домашні страви.",
    },
    Style.EXOTIC: {
        Language.SK: "Exotické: inšpirácie Ázia/Mexiko/fusion z bežne dostupných surovín.",
        Language.EN: "Exotic inspirations (Asia/Mexico/fusion) using common store ingredients.",
        Language.UK: "Екзотика (Азія/Мексика/fusion) зі звичайних продуктів.",
    },
    Style.FIT: {
        Language.SK: "Fit: viac bielkovín, viac zeleniny, menej cukru.",
        Language.EN: "Fit: more protein and veggies, less sugar.",
        Language.UK: "Fit: більше білка й овочів, менше цукру.",
    },
}

# --- Stripe subscription status → record status ---
STRIPE_STATUS_MAP: dict[str, str] = {
    "active": "active",
    "trialing": "trialing",
    "past_due": "past_due",
    "unpaid": "past_due",
    "canceled": "canceled",
    "incomplete_expired": "canceled",
}
