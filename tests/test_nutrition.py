"""
Unit tests for calorie targets, macro splits and nutrition advice.
"""

from datetime import datetime, timedelta

import pytest

from fortyfive.core import nutrition
from fortyfive.core.schemas import BodyMetrics, Macros, NutritionTarget

NOW = datetime(2024, 3, 1, 8, 0)


def _target(calories, protein, carbs, fats):
    return NutritionTarget(
        daily_calories=calories,
        macros=Macros(protein=protein, carbs=carbs, fats=fats),
        created_at=NOW,
        valid_until=NOW + timedelta(days=1),
    )


def test_daily_calories_fat_loss():
    """Test BMR 1600, fat loss, moderate activity gives 1600 x 1.55 - 400."""
    assert nutrition.calculate_daily_calories(1600, "fat_loss", "moderate") == 2080


@pytest.mark.parametrize(
    "goal,expected",
    [
        ("muscle_gain", 2880),
        ("bulk", 2880),
        ("cut", 2080),
        ("maintenance", 2480),
        ("recomp", 2480),
    ],
)
def test_daily_calories_by_goal(goal, expected):
    """Test gain goals add 400, loss goals subtract 400, others keep maintenance."""
    assert nutrition.calculate_daily_calories(1600, goal, "moderate") == expected


def test_activity_factors():
    """Test each activity level scales BMR by its factor; unknown levels use 1.55."""
    assert nutrition.calculate_daily_calories(2000, "maintenance", "sedentary") == 2400
    assert nutrition.calculate_daily_calories(2000, "maintenance", "light") == 2750
    assert nutrition.calculate_daily_calories(2000, "maintenance", "very_active") == 3450
    assert nutrition.calculate_daily_calories(2000, "maintenance", "athlete") == 3800
    assert nutrition.calculate_daily_calories(2000, "maintenance", "couch") == 3100


def test_workout_day_bonus():
    """Test training days add 100 kcal except for the fat_loss goal."""
    assert nutrition.calculate_daily_calories(1600, "maintenance", "moderate", True) == 2580
    assert nutrition.calculate_daily_calories(1600, "fat_loss", "moderate", True) == 2080
    assert nutrition.calculate_daily_calories(1600, "cut", "moderate", True) == 2180
    # the goal name is matched exactly
    assert nutrition.calculate_daily_calories(1600, "FAT_LOSS", "moderate", True) == 2180


def test_macros_fat_loss():
    """Test 2080 kcal at 70 kg on fat loss splits into 168 / 141 / 94 grams."""
    target = nutrition.calculate_macros(2080, 70, "fat_loss", now=NOW)
    assert target.macros.protein == 168
    assert target.macros.carbs == 141
    assert target.macros.fats == 94
    assert target.daily_calories == 2080
    assert target.valid_until == NOW + timedelta(days=1)


def test_macros_muscle_gain_and_maintenance():
    """Test the protein per kg and carb/fat shares for the other goal families."""
    gain = nutrition.calculate_macros(3000, 80, "muscle_gain", now=NOW)
    # protein 176 g -> 2296 kcal left, 60/40
    assert gain.macros.protein == 176
    assert gain.macros.carbs == 344
    assert gain.macros.fats == 102

    maint = nutrition.calculate_macros(2500, 80, "maintenance", now=NOW)
    # protein 160 g -> 1860 kcal left, 55/45
    assert maint.macros.protein == 160
    assert maint.macros.carbs == 256
    assert maint.macros.fats == 93


def test_macros_workout_day_carb_cycling():
    """Test training days move 30 g onto carbs and take 10 g off fats."""
    rest = nutrition.calculate_macros(2080, 70, "fat_loss", now=NOW)
    train = nutrition.calculate_macros(2080, 70, "fat_loss", is_workout_day=True, now=NOW)
    assert train.macros.carbs == rest.macros.carbs + 30
    assert train.macros.fats == rest.macros.fats - 10
    assert train.is_workout_day


def test_total_calories_four_four_nine():
    """Test macro calories follow the 4-4-9 rule."""
    macros = Macros(protein=168, carbs=141, fats=94)
    assert macros.total_calories == 168 * 4 + 141 * 4 + 94 * 9
    assert macros.protein_percent + macros.carbs_percent + macros.fats_percent == pytest.approx(100.0)


def test_percentages_with_no_calories():
    """Test empty macros report zero percentages."""
    macros = Macros(protein=0, carbs=0, fats=0)
    assert macros.total_calories == 0
    assert macros.protein_percent == 0.0


def test_from_body_metrics_carries_user_and_bmr():
    """Test the target is built from the metrics' BMR and weight."""
    metrics = BodyMetrics(user_id="u1", timestamp=NOW, weight=70.0, bmr=1600)
    target = nutrition.calculate_from_body_metrics(metrics, "fat_loss", "moderate", now=NOW)
    assert target.user_id == "u1"
    assert target.bmr == 1600
    assert target.daily_calories == 2080
    assert target.calorie_adjustment == 480


def test_target_validity_window():
    """Test a target expires once valid_until has passed."""
    target = nutrition.calculate_macros(2080, 70, "fat_loss", now=NOW)
    assert target.is_valid(NOW + timedelta(hours=23))
    assert not target.is_valid(NOW + timedelta(days=1))


def test_post_workout_meal():
    """Test post-workout meal is 0.4 g/kg protein, 0.8 g/kg carbs, 5 g fat."""
    meal = nutrition.calculate_post_workout_meal(80, now=NOW)
    assert meal.macros.protein == 32
    assert meal.macros.carbs == 64
    assert meal.macros.fats == 5
    assert meal.daily_calories == 32 * 4 + 64 * 4 + 45
    assert meal.valid_until == NOW + timedelta(hours=2)


def test_pre_workout_meal():
    """Test pre-workout meal is 0.3 g/kg protein, 0.6 g/kg carbs, 8 g fat."""
    meal = nutrition.calculate_pre_workout_meal(80, now=NOW)
    assert meal.macros.protein == 24
    assert meal.macros.carbs == 48
    assert meal.macros.fats == 8
    assert meal.daily_calories == 24 * 4 + 48 * 4 + 72


def test_validation_floors():
    """Test protein must reach 1.6 g/kg and calories 1200."""
    assert nutrition.validate_nutrition_target(_target(2080, 168, 141, 94), 70)
    assert not nutrition.validate_nutrition_target(_target(2080, 100, 141, 94), 70)
    assert not nutrition.validate_nutrition_target(_target(1100, 168, 50, 30), 70)
    assert nutrition.validate_nutrition_target(_target(1200, 112, 50, 30), 70)


def test_clamp_lifts_floors_and_resplits_the_rest():
    """Test clamping raises protein and calories and re-splits carbs and fats by goal."""
    clamped = nutrition.clamp_nutrition_target(_target(1100, 100, 120, 40), 70)
    assert clamped.daily_calories == 1200
    assert clamped.macros.protein == 112
    # (1200 - 448) x 55% / 4 and x 45% / 9
    assert clamped.macros.carbs == 103
    assert clamped.macros.fats == 38
    assert nutrition.validate_nutrition_target(clamped, 70)


def test_macros_never_go_negative():
    """Test protein calories above the target leave zero fat rather than negative grams."""
    target = nutrition.calculate_macros(680, 90, "fat_loss", is_workout_day=True, now=NOW)
    assert target.macros.protein == 216
    assert target.macros.carbs == 30
    assert target.macros.fats == 0


def test_clamp_heavy_lifter_on_a_low_target():
    """Test a clamped workout-day target keeps non-negative grams near its calories."""
    raw = nutrition.calculate_macros(680, 90, "fat_loss", is_workout_day=True, now=NOW)
    clamped = nutrition.clamp_nutrition_target(raw, 90, "fat_loss")

    assert clamped.daily_calories == 1200
    assert clamped.macros.protein == 216
    assert clamped.macros.carbs == 64
    assert clamped.macros.fats == 12
    assert clamped.macros.total_calories == pytest.approx(1200, abs=50)


def test_clamp_keeps_valid_target():
    """Test a valid target comes back as-is."""
    target = _target(2080, 168, 141, 94)
    assert nutrition.clamp_nutrition_target(target, 70) is target


def test_adjust_for_recovery_bands():
    """Test recovery trims calories and carbs and protects protein."""
    target = _target(2000, 160, 200, 70)

    assert nutrition.adjust_for_recovery(target, 75) is target

    moderate = nutrition.adjust_for_recovery(target, 60)
    assert moderate.daily_calories == 1900
    assert moderate.macros.carbs == 180
    assert moderate.macros.protein == 160
    assert moderate.macros.fats == 70

    poor = nutrition.adjust_for_recovery(target, 40)
    assert poor.daily_calories == 1800
    assert poor.macros.carbs == 160
    assert poor.macros.protein == 168
    assert target.daily_calories == 2000


def test_meal_timing_evening_workout():
    """Test an evening session gets pre, intra and post-workout entries."""
    plan = nutrition.plan_meal_timing(datetime(2024, 3, 1, 18, 0), _target(2080, 168, 140, 94))
    assert plan == {
        "pre_workout": "4:30 PM: Pre-workout meal (35g carbs, light protein)",
        "intra_workout": "During workout: Stay hydrated, optional BCAAs",
        "post_workout": "6:45 PM: Post-workout meal (42g carbs, 59g protein)",
    }


def test_meal_timing_morning_workout():
    """Test a morning session has no intra-workout entry and uses AM times."""
    plan = nutrition.plan_meal_timing(datetime(2024, 3, 1, 7, 0), _target(2080, 168, 140, 94))
    assert list(plan) == ["pre_workout", "post_workout"]
    assert plan["pre_workout"].startswith("5:30 AM")
    assert plan["post_workout"].startswith("7:45 AM")


def test_static_advice():
    """Test goal-specific advice lists."""
    assert nutrition.get_meal_timing_recommendations("fat_loss", True)["pre_workout"] == "1-2 hours before training"
    assert "snack" in nutrition.get_meal_timing_recommendations("fat_loss")
    assert nutrition.get_dietary_recommendations("bulk")[0] == "Prioritize whole foods over supplements"
    assert nutrition.get_dietary_recommendations("cut")[0] == "Prioritize protein to preserve muscle"
    assert nutrition.get_dietary_recommendations("maintenance")[0] == "Maintain consistent meal timing"
    assert "Berries" in nutrition.get_carb_sources("fat_loss")
    assert "Pasta" in nutrition.get_carb_sources("muscle_gain")
    assert len(nutrition.get_protein_sources()) == 10
    assert "Avocado" in nutrition.get_fat_sources()
