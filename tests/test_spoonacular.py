"""
Tests for the Spoonacular client against a mocked transport.
"""

from datetime import date, datetime, timedelta

import httpx
import pytest

from fortyfive.clients.spoonacular import SpoonacularClient
from fortyfive.core.errors import MealApiError, QuotaExceededError
from fortyfive.core.schemas import Macros, NutritionTarget

SEARCH_RESULT = {
    "id": 715497,
    "title": "Berry Banana Breakfast Smoothie",
    "readyInMinutes": 5,
    "image": "https://img.spoonacular.com/recipes/715497-312x231.jpg",
    "sourceUrl": "https://example.com/smoothie",
    "extendedIngredients": [
        {"name": "banana", "original": "1 banana"},
        {"name": "greek yogurt"},
    ],
    "nutrition": {
        "nutrients": [
            {"name": "Calories", "amount": 410.7, "unit": "kcal"},
            {"name": "Protein", "amount": 32.5, "unit": "g"},
            {"name": "Carbohydrates", "amount": 55.0, "unit": "g"},
            {"name": "Fat", "amount": 6.2, "unit": "g"},
            {"name": "Sugar", "amount": 30.0, "unit": "g"},
        ]
    },
}


def _client(handler):
    return SpoonacularClient(api_key="test-key", transport=httpx.MockTransport(handler))


def test_search_recipes_sends_constraints_and_parses_nutrients():
    """Test complex search passes only the set filters and parses macros."""
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"results": [SEARCH_RESULT]})

    meals = _client(handler).search_recipes(
        min_protein=30, max_calories=600, exclude_ingredients=["peanut", "shellfish"], number=5
    )

    assert seen["path"] == "/recipes/complexSearch"
    params = seen["params"]
    assert params["apiKey"] == "test-key"
    assert params["minProtein"] == "30"
    assert params["maxCalories"] == "600"
    assert params["excludeIngredients"] == "peanut,shellfish"
    assert params["number"] == "5"
    assert params["addRecipeNutrition"] == "true"
    assert "diet" not in params
    assert "maxReadyTime" not in params

    [meal] = meals
    assert meal.id == "715497"
    assert meal.calories == 410
    assert meal.macros == Macros(protein=32.5, carbs=55.0, fats=6.2)
    assert meal.prep_time_minutes == 5
    assert [i.name for i in meal.ingredients] == ["1 banana", "greek yogurt"]


def test_post_workout_and_quick_presets():
    """Test the preset searches apply their fixed constraints."""
    calls = []

    def handler(request):
        calls.append(dict(request.url.params))
        return httpx.Response(200, json={"results": []})

    client = _client(handler)
    client.get_post_workout_meals()
    client.get_quick_meals()
    client.get_high_protein_meals(min_protein=40)

    assert calls[0]["minProtein"] == "30"
    assert calls[0]["maxCalories"] == "600"
    assert calls[1]["maxReadyTime"] == "20"
    assert calls[2]["minProtein"] == "40"


def test_search_for_target_splits_daily_target_into_meals():
    """Test target search sizes one meal as a third of the day."""
    calls = []

    def handler(request):
        calls.append(dict(request.url.params))
        return httpx.Response(200, json={"results": []})

    now = datetime(2024, 6, 1, 8)
    target = NutritionTarget(
        daily_calories=2080,
        macros=Macros(protein=168, carbs=141, fats=94),
        created_at=now,
        valid_until=now + timedelta(days=1),
    )
    _client(handler).search_for_target(target)

    assert calls[0]["maxCalories"] == "693"
    assert calls[0]["minProtein"] == "56"


def test_generate_meal_plan():
    """Test the daily meal plan is parsed with its nutrient totals."""

    def handler(request):
        assert request.url.path == "/mealplanner/generate"
        assert request.url.params["targetCalories"] == "2080"
        assert request.url.params["timeFrame"] == "day"
        return httpx.Response(
            200,
            json={
                "meals": [
                    {"id": 1, "title": "Oats", "readyInMinutes": 10, "servings": 1, "sourceUrl": "https://x/1"},
                    {"id": 2, "title": "Chicken Rice", "readyInMinutes": 30, "servings": 2},
                ],
                "nutrients": {"calories": 2079.4, "protein": 150.2, "fat": 70.1, "carbohydrates": 210.5},
            },
        )

    plan = _client(handler).generate_meal_plan(2080, day=date(2024, 6, 1))

    assert plan.date == date(2024, 6, 1)
    assert [m.name for m in plan.meals] == ["Oats", "Chicken Rice"]
    assert plan.total_calories == 2079
    assert plan.total_carbs == 210.5
    assert plan.meals[1].servings == 2


def test_get_recipe_parses_instructions():
    """Test recipe detail pulls the first instruction set's steps."""

    def handler(request):
        assert request.url.path == "/recipes/715497/information"
        assert request.url.params["includeNutrition"] == "true"
        return httpx.Response(
            200,
            json={
                **SEARCH_RESULT,
                "servings": 2,
                "summary": "A quick smoothie.",
                "analyzedInstructions": [{"steps": [{"step": "Blend."}, {"step": "Serve."}]}],
            },
        )

    recipe = _client(handler).get_recipe(715497)

    assert recipe.name == "Berry Banana Breakfast Smoothie"
    assert recipe.servings == 2
    assert recipe.instructions == ["Blend.", "Serve."]
    assert recipe.calories == 410


def test_quota_exceeded_maps_to_its_own_error():
    """Test HTTP 402 raises QuotaExceededError."""
    client = _client(lambda request: httpx.Response(402, json={"message": "quota"}))
    with pytest.raises(QuotaExceededError) as exc:
        client.search_recipes()
    assert exc.value.status_code == 402


def test_other_failures_raise_meal_api_error():
    """Test non-200 answers and transport errors raise MealApiError."""
    failing = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(MealApiError) as exc:
        failing.get_recipe(1)
    assert exc.value.status_code == 500
    assert not isinstance(exc.value, QuotaExceededError)

    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(MealApiError):
        _client(unreachable).search_recipes()
