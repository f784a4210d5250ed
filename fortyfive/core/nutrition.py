"""BMR-based calorie and macro targets.

Maintenance calories = BMR x activity factor. Goals shift that by a fixed
400 kcal; protein is set per kg of bodyweight and the remaining calories are
split between carbs and fats by goal.

Activity factors:
  sedentary (little/no exercise)      1.2
  light (1-3 days/week)               1.375
  moderate (3-5 days/week)            1.55
  very_active (6-7 days/week)         1.725
  athlete (physical job + training)   1.9
"""
import logging
import math
from datetime import datetime, timedelta

from fortyfive.core.schemas import BodyMetrics, Macros, MealEntry, NutritionTarget
from fortyfive.core.units import round_half_up

logger = logging.getLogger(__name__)

MIN_PROTEIN_PER_KG = 1.6
MIN_DAILY_CALORIES = 1200

TARGET_VALIDITY = timedelta(days=1)
MEAL_VALIDITY = timedelta(hours=2)

_ACTIVITY_FACTORS = {
    "sedentary": 1.2,
    "light": 1.375,
    "lightly_active": 1.375,
    "moderate": 1.55,
    "moderately_active": 1.55,
    "very_active": 1.725,
    "very": 1.725,
    "athlete": 1.9,
    "extremely_active": 1.9,
}
DEFAULT_ACTIVITY_FACTOR = 1.55

_GAIN_GOALS = ("muscle_gain", "bulk")
_LOSS_GOALS = ("fat_loss", "cut")

# goal -> (protein g/kg, carb share of the non-protein calories, fat share)
_MACRO_SPLITS = {
    "gain": (2.2, 0.60, 0.40),
    "loss": (2.4, 0.40, 0.60),
    "maintenance": (2.0, 0.55, 0.45),
}

WORKOUT_DAY_EXTRA_CALORIES = 100
WORKOUT_DAY_EXTRA_CARBS = 30
WORKOUT_DAY_FEWER_FATS = 10


def _goal_family(goal: str) -> str:
    g = goal.lower()
    if g in _GAIN_GOALS:
        return "gain"
    if g in _LOSS_GOALS:
        return "loss"
    return "maintenance"


def activity_factor(activity_level: str) -> float:
    return _ACTIVITY_FACTORS.get(activity_level.lower(), DEFAULT_ACTIVITY_FACTOR)


def calculate_daily_calories(
    bmr: float,
    goal: str,
    activity_level: str,
    is_workout_day: bool = False,
) -> int:
    maintenance = bmr * activity_factor(activity_level)

    family = _goal_family(goal)
    if family == "gain":
        target = maintenance + 400
    elif family == "loss":
        target = maintenance - 400
    else:
        target = maintenance

    # only the exact goal name "fat_loss" skips the training-day bonus; "cut" keeps it
    if is_workout_day and goal != "fat_loss":
        target += WORKOUT_DAY_EXTRA_CALORIES

    return round_half_up(target)


def _macros(protein: float, carbs: float, fats: float) -> Macros:
    return Macros(
        protein=float(round_half_up(protein)),
        carbs=float(round_half_up(carbs)),
        fats=float(round_half_up(fats)),
    )


def _split_remaining(
    calories: float, protein: float, goal: str, is_workout_day: bool
) -> tuple[float, float]:
    """Carb and fat grams for the calories protein leaves over, never below 0 g."""
    _, carb_share, fat_share = _MACRO_SPLITS[_goal_family(goal)]

    remaining = max(calories - protein * 4, 0.0)
    carbs = remaining * carb_share / 4
    fats = remaining * fat_share / 9

    # carb cycling
    if is_workout_day:
        carbs += WORKOUT_DAY_EXTRA_CARBS
        fats -= WORKOUT_DAY_FEWER_FATS

    return max(carbs, 0.0), max(fats, 0.0)


def calculate_macros(
    calories: int,
    weight_kg: float,
    goal: str,
    is_workout_day: bool = False,
    now: datetime | None = None,
) -> NutritionTarget:
    protein = weight_kg * _MACRO_SPLITS[_goal_family(goal)][0]
    carbs, fats = _split_remaining(calories, protein, goal, is_workout_day)

    created = now or datetime.now()
    return NutritionTarget(
        daily_calories=calories,
        macros=_macros(protein, carbs, fats),
        is_workout_day=is_workout_day,
        created_at=created,
        valid_until=created + TARGET_VALIDITY,
    )


def calculate_from_body_metrics(
    metrics: BodyMetrics,
    goal: str,
    activity_level: str,
    is_workout_day: bool = False,
    now: datetime | None = None,
) -> NutritionTarget:
    calories = calculate_daily_calories(metrics.bmr, goal, activity_level, is_workout_day)
    target = calculate_macros(calories, metrics.weight, goal, is_workout_day, now=now)
    return target.model_copy(update={"user_id": metrics.user_id, "bmr": metrics.bmr})


def _meal_target(protein: float, carbs: float, fats: float, now: datetime | None) -> NutritionTarget:
    created = now or datetime.now()
    return NutritionTarget(
        daily_calories=round_half_up(protein * 4 + carbs * 4 + fats * 9),
        macros=_macros(protein, carbs, fats),
        created_at=created,
        valid_until=created + MEAL_VALIDITY,
    )


def calculate_post_workout_meal(weight_kg: float, now: datetime | None = None) -> NutritionTarget:
    """High carb, moderate-high protein, minimal fat for the 30-60 min after training."""
    return _meal_target(weight_kg * 0.4, weight_kg * 0.8, 5.0, now)


def calculate_pre_workout_meal(weight_kg: float, now: datetime | None = None) -> NutritionTarget:
    """Moderate carbs and protein, low fat, 1-2 hours before training."""
    return _meal_target(weight_kg * 0.3, weight_kg * 0.6, 8.0, now)


def validate_nutrition_target(target: NutritionTarget, weight_kg: float) -> bool:
    if target.macros.protein < weight_kg * MIN_PROTEIN_PER_KG:
        return False
    if target.daily_calories < MIN_DAILY_CALORIES:
        return False
    return True


def clamp_nutrition_target(
    target: NutritionTarget, weight_kg: float, goal: str = "maintenance"
) -> NutritionTarget:
    """
    Lift protein and calories up to their floors.

    Carbs and fats are re-split by goal from the calories the clamped protein
    leaves over, floored at 0 g.
    """
    min_protein = float(math.ceil(weight_kg * MIN_PROTEIN_PER_KG))
    protein = max(target.macros.protein, min_protein)
    calories = max(target.daily_calories, MIN_DAILY_CALORIES)
    if protein == target.macros.protein and calories == target.daily_calories:
        return target

    carbs, fats = _split_remaining(calories, protein, goal, target.is_workout_day)
    macros = _macros(protein, carbs, fats)

    logger.warning(
        "Clamped nutrition target %s: calories %s -> %s, protein %s -> %s",
        target.id, target.daily_calories, calories, target.macros.protein, protein,
    )
    return target.model_copy(update={"daily_calories": calories, "macros": macros})


def adjust_for_recovery(target: NutritionTarget, recovery_score: float) -> NutritionTarget:
    """
    Trim calories on poorly recovered days while holding protein.

    Moderate recovery (50-69): calories -5%, carbs -10%.
    Poor recovery (<50): calories -10%, carbs -20%, protein +5%.
    """
    if recovery_score >= 70:
        return target

    macros = target.macros
    if recovery_score >= 50:
        calories = target.daily_calories * 0.95
        new_macros = _macros(macros.protein, macros.carbs * 0.90, macros.fats)
    else:
        calories = target.daily_calories * 0.90
        new_macros = _macros(macros.protein * 1.05, macros.carbs * 0.80, macros.fats)

    return target.model_copy(
        update={"daily_calories": round_half_up(calories), "macros": new_macros}
    )


def _format_time(t: datetime) -> str:
    hour = t.hour
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    return f"{display_hour}:{t.minute:02d} {period}"


def plan_meal_timing(workout_time: datetime, daily_target: NutritionTarget) -> dict[str, str]:
    """Clock times and portions for the meals around a scheduled workout."""
    macros = daily_target.macros
    pre = workout_time - timedelta(hours=1, minutes=30)
    post = workout_time + timedelta(minutes=45)

    plan = {
        "pre_workout": (
            f"{_format_time(pre)}: Pre-workout meal "
            f"({round_half_up(macros.carbs * 0.25)}g carbs, light protein)"
        ),
    }
    if workout_time.hour >= 17:
        plan["intra_workout"] = "During workout: Stay hydrated, optional BCAAs"
    plan["post_workout"] = (
        f"{_format_time(post)}: Post-workout meal "
        f"({round_half_up(macros.carbs * 0.30)}g carbs, {round_half_up(macros.protein * 0.35)}g protein)"
    )
    return plan


def build_meal_entry(
    meal_name: str,
    calories: float,
    macros: Macros,
    timestamp: datetime,
    meal_type: str = "snack",
    servings: float = 1.0,
    meal_id: str | None = None,
) -> MealEntry:
    """Scale one serving's calories and macros to the servings eaten."""
    return MealEntry(
        meal_id=meal_id,
        meal_name=meal_name,
        calories=round_half_up(calories * servings),
        macros=Macros(
            protein=macros.protein * servings,
            carbs=macros.carbs * servings,
            fats=macros.fats * servings,
        ),
        timestamp=timestamp,
        meal_type=meal_type,
        servings=servings,
    )


# ----- Static advice -----

def get_meal_timing_recommendations(goal: str, has_workout_today: bool = False) -> dict[str, str]:
    if has_workout_today:
        return {
            "pre_workout": "1-2 hours before training",
            "post_workout": "30-60 minutes after training",
            "breakfast": "Within 1 hour of waking",
            "lunch": "4-5 hours after breakfast",
            "dinner": "3-4 hours before bed",
            "note": "Time your biggest carb meal around your workout",
        }

    return {
        "breakfast": "Within 1 hour of waking",
        "lunch": "4-5 hours after breakfast",
        "snack": "Mid-afternoon if needed",
        "dinner": "3-4 hours before bed",
        "note": "Spread protein evenly across meals (30-40g per meal)",
    }


def get_dietary_recommendations(goal: str) -> list[str]:
    family = _goal_family(goal)
    if family == "gain":
        return [
            "Prioritize whole foods over supplements",
            "Eat every 3-4 hours (5-6 meals/day)",
            "Include complex carbs with each meal",
            "Consume 30-40g protein per meal",
            "Stay hydrated (3-4L water/day)",
            "Don't skip post-workout nutrition",
        ]
    if family == "loss":
        return [
            "Prioritize protein to preserve muscle",
            "Include vegetables with every meal",
            "Time carbs around workouts",
            "Avoid liquid calories",
            "Track portion sizes carefully",
            "Eat slower, practice mindful eating",
        ]
    return [
        "Maintain consistent meal timing",
        "Focus on whole, nutrient-dense foods",
        "Balance macros across the day",
        "Listen to hunger cues",
        "Stay hydrated",
        "Adjust based on energy levels",
    ]


def get_protein_sources() -> list[str]:
    return [
        "Chicken breast (lean)",
        "Turkey breast",
        "Lean beef (90/10)",
        "Fish (salmon, tuna, tilapia)",
        "Eggs and egg whites",
        "Greek yogurt",
        "Cottage cheese",
        "Protein powder (whey/plant-based)",
        "Tofu and tempeh",
        "Legumes (lentils, chickpeas)",
    ]


def get_carb_sources(goal: str) -> list[str]:
    if goal == "fat_loss":
        return [
            "Sweet potato",
            "Oatmeal",
            "Quinoa",
            "Brown rice",
            "Vegetables (broccoli, spinach)",
            "Berries",
            "Beans and lentils",
        ]

    return [
        "Rice (white/brown)",
        "Pasta",
        "Bread",
        "Oatmeal",
        "Potatoes",
        "Sweet potato",
        "Fruits (banana, apple)",
        "Quinoa",
    ]


def get_fat_sources() -> list[str]:
    return [
        "Avocado",
        "Olive oil",
        "Nuts (almonds, walnuts)",
        "Nut butter",
        "Fatty fish (salmon)",
        "Eggs",
        "Chia seeds",
        "Flaxseeds",
        "Dark chocolate (85%+)",
    ]
