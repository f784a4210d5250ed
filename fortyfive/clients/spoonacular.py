"""Spoonacular recipe and meal-plan API client.

Free tier: 150 requests/day. Docs: https://spoonacular.com/food-api/docs
"""
import logging
from datetime import date as DateType
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from fortyfive.core.config import settings
from fortyfive.core.errors import MealApiError, QuotaExceededError
from fortyfive.core.schemas import Macros, NutritionTarget
from fortyfive.core.units import round_half_up

logger = logging.getLogger(__name__)

_NUTRIENT_FIELDS = {
    "Calories": "calories",
    "Protein": "protein",
    "Carbohydrates": "carbs",
    "Fat": "fats",
}


class Ingredient(BaseModel):
    name: str
    amount: float = 1.0
    unit: str = "unit"


class Meal(BaseModel):
    id: str
    name: str
    calories: int
    macros: Macros
    prep_time_minutes: int = 0
    # Spoonacular does not rate difficulty
    difficulty: str = "medium"
    image_url: Optional[str] = None
    recipe_url: Optional[str] = None
    ingredients: list[Ingredient] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    servings: Optional[int] = None


class RecipeDetail(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None
    prep_time: int = 0
    servings: int = 1
    calories: int
    macros: Macros
    ingredients: list[Ingredient] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    recipe_url: Optional[str] = None
    summary: Optional[str] = None


class DailyMealPlan(BaseModel):
    date: DateType
    meals: list[Meal]
    total_calories: int
    total_protein: float
    total_carbs: float
    total_fat: float


# ---------- Parsing ----------

def _nutrients(data: dict[str, Any]) -> dict[str, float]:
    values = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fats": 0.0}
    nutrition = data.get("nutrition") or {}
    for nutrient in nutrition.get("nutrients") or []:
        field = _NUTRIENT_FIELDS.get(nutrient.get("name"))
        if field is not None:
            values[field] = float(nutrient.get("amount") or 0)
    return values


def _ingredients(data: dict[str, Any]) -> list[Ingredient]:
    return [
        Ingredient(name=i.get("original") or i.get("name") or "Unknown")
        for i in data.get("extendedIngredients") or []
    ]


def parse_search_result(data: dict[str, Any]) -> Meal:
    n = _nutrients(data)
    return Meal(
        id=str(data["id"]),
        name=data["title"],
        calories=int(n["calories"]),
        macros=Macros(protein=n["protein"], carbs=n["carbs"], fats=n["fats"]),
        prep_time_minutes=data.get("readyInMinutes") or 0,
        image_url=data.get("image"),
        recipe_url=data.get("sourceUrl"),
        ingredients=_ingredients(data),
    )


def parse_plan_meal(data: dict[str, Any]) -> Meal:
    return Meal(
        id=str(data["id"]),
        name=data["title"],
        calories=int(data.get("calories") or 0),
        macros=Macros(
            protein=float(data.get("protein") or 0),
            carbs=float(data.get("carbs") or 0),
            fats=float(data.get("fat") or 0),
        ),
        prep_time_minutes=data.get("readyInMinutes") or 0,
        image_url=data.get("image"),
        recipe_url=data.get("sourceUrl"),
        servings=data.get("servings"),
    )


def parse_meal_plan(data: dict[str, Any], day: Optional[DateType] = None) -> DailyMealPlan:
    nutrients = data.get("nutrients") or {}
    return DailyMealPlan(
        date=day or DateType.today(),
        meals=[parse_plan_meal(m) for m in data.get("meals") or []],
        total_calories=int(nutrients.get("calories") or 0),
        total_protein=float(nutrients.get("protein") or 0),
        total_carbs=float(nutrients.get("carbohydrates") or 0),
        total_fat=float(nutrients.get("fat") or 0),
    )


def parse_recipe_detail(data: dict[str, Any]) -> RecipeDetail:
    n = _nutrients(data)

    instructions: list[str] = []
    analyzed = data.get("analyzedInstructions") or []
    if analyzed:
        instructions = [step["step"] for step in analyzed[0].get("steps") or []]

    return RecipeDetail(
        id=str(data["id"]),
        name=data["title"],
        image_url=data.get("image"),
        prep_time=data.get("readyInMinutes") or 0,
        servings=data.get("servings") or 1,
        calories=int(n["calories"]),
        macros=Macros(protein=n["protein"], carbs=n["carbs"], fats=n["fats"]),
        ingredients=_ingredients(data),
        instructions=instructions,
        recipe_url=data.get("sourceUrl"),
        summary=data.get("summary"),
    )


# ---------- Client ----------

class SpoonacularClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.spoonacular.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> Optional["SpoonacularClient"]:
        if not settings.SPOONACULAR_API_KEY:
            return None
        return cls(
            api_key=settings.SPOONACULAR_API_KEY,
            base_url=settings.SPOONACULAR_API_BASE,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def _get(self, path: str, params: dict[str, Any], what: str) -> Any:
        query = {"apiKey": self.api_key, **{k: v for k, v in params.items() if v is not None}}
        url = f"{self.base_url}{path}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.get(url, params=query)
        except httpx.HTTPError as e:
            logger.warning("Spoonacular %s request failed: %s", what, e)
            raise MealApiError(f"Error {what}: {e}") from e

        if resp.status_code == 402:
            logger.warning("Spoonacular quota exceeded while %s", what)
            raise QuotaExceededError(
                "API quota exceeded. Free tier: 150 requests/day. "
                "Please try again tomorrow or upgrade your plan.",
                status_code=402,
            )
        if resp.status_code != 200:
            raise MealApiError(
                f"Failed {what}: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise MealApiError(f"Error {what}: invalid JSON response") from e

    def search_recipes(
        self,
        min_protein: Optional[int] = None,
        max_calories: Optional[int] = None,
        max_prep_time: Optional[int] = None,
        exclude_ingredients: Optional[list[str]] = None,
        diet: Optional[str] = None,
        intolerances: Optional[str] = None,
        cuisine: Optional[str] = None,
        number: int = 10,
        offset: int = 0,
    ) -> list[Meal]:
        """Complex search by nutritional constraints."""
        params = {
            "number": number,
            "offset": offset,
            "addRecipeInformation": "true",
            "fillIngredients": "true",
            "addRecipeNutrition": "true",
            "minProtein": min_protein,
            "maxCalories": max_calories,
            "maxReadyTime": max_prep_time,
            "excludeIngredients": ",".join(exclude_ingredients) if exclude_ingredients else None,
            "diet": diet or None,
            "intolerances": intolerances or None,
            "cuisine": cuisine or None,
        }
        data = self._get("/recipes/complexSearch", params, "searching recipes")
        return [parse_search_result(r) for r in data.get("results") or []]

    def generate_meal_plan(
        self,
        target_calories: int,
        diet: Optional[str] = None,
        exclude_ingredients: Optional[list[str]] = None,
        intolerances: Optional[str] = None,
        day: Optional[DateType] = None,
    ) -> DailyMealPlan:
        params = {
            "timeFrame": "day",
            "targetCalories": target_calories,
            "diet": diet or None,
            "exclude": ",".join(exclude_ingredients) if exclude_ingredients else None,
            "intolerances": intolerances or None,
        }
        data = self._get("/mealplanner/generate", params, "generating meal plan")
        return parse_meal_plan(data, day)

    def get_recipe(self, recipe_id: int) -> RecipeDetail:
        data = self._get(
            f"/recipes/{recipe_id}/information",
            {"includeNutrition": "true"},
            "fetching recipe",
        )
        return parse_recipe_detail(data)

    def get_quick_meals(self, max_prep_time: int = 20, **kwargs) -> list[Meal]:
        return self.search_recipes(max_prep_time=max_prep_time, **kwargs)

    def get_post_workout_meals(self, **kwargs) -> list[Meal]:
        """High protein and carbs, capped at 600 kcal."""
        return self.search_recipes(min_protein=30, max_calories=600, **kwargs)

    def get_high_protein_meals(self, min_protein: int = 30, **kwargs) -> list[Meal]:
        return self.search_recipes(min_protein=min_protein, **kwargs)

    def search_for_target(
        self,
        target: NutritionTarget,
        meals_per_day: int = 3,
        **kwargs,
    ) -> list[Meal]:
        """Recipes sized for one of ``meals_per_day`` equal meals of a daily target."""
        return self.search_recipes(
            min_protein=round_half_up(target.macros.protein / meals_per_day),
            max_calories=round_half_up(target.daily_calories / meals_per_day),
            **kwargs,
        )

    def find_alternatives(self, meal: Meal | RecipeDetail, **kwargs) -> list[Meal]:
        """Swap candidates: up to 20% more calories, at least 80% of the protein."""
        return self.search_recipes(
            max_calories=round_half_up(meal.calories * 1.2),
            min_protein=round_half_up(meal.macros.protein * 0.8),
            **kwargs,
        )
