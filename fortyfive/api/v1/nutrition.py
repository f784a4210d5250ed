from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fortyfive.api.deps import get_meal_client, parse_date
from fortyfive.clients.spoonacular import SpoonacularClient
from fortyfive.core import nutrition, store
from fortyfive.core.db import get_db
from fortyfive.core.errors import MealApiError, QuotaExceededError
from fortyfive.core.planner import build_nutrition_target
from fortyfive.core.schemas import DailyLog, Macros, NutritionTarget

router = APIRouter(tags=["nutrition"])

MEAL_KINDS = ("target", "post_workout", "high_protein", "quick")


class TargetRequest(BaseModel):
    goal: Optional[str] = None
    activity_level: Optional[str] = None
    is_workout_day: bool = False
    use_recovery: bool = False


class ValidationRequest(BaseModel):
    daily_calories: int
    protein: float
    carbs: float
    fats: float
    weight_kg: float
    goal: str = "maintenance"


def _target_out(target: NutritionTarget) -> dict:
    macros = target.macros
    return {
        **target.model_dump(mode="json"),
        "macro_calories": macros.total_calories,
        "protein_percent": macros.protein_percent,
        "carbs_percent": macros.carbs_percent,
        "fats_percent": macros.fats_percent,
        "calorie_adjustment": target.calorie_adjustment,
    }


def _latest_weight(db: Session, user_id: str) -> float:
    latest = store.get_latest_body_metrics(db, user_id)
    if latest is None:
        raise HTTPException(404, "No body metrics recorded")
    return latest.weight


def _stored_target(db: Session, user_id: str) -> NutritionTarget:
    target = store.load_nutrition_target(db, user_id)
    if target is None:
        raise HTTPException(404, "No nutrition target calculated")
    return target


# ---------- Stateless ----------

@router.post("/nutrition/validate")
def validate_target(payload: ValidationRequest):
    target = NutritionTarget(
        daily_calories=payload.daily_calories,
        macros=Macros(protein=payload.protein, carbs=payload.carbs, fats=payload.fats),
        created_at=datetime.now(),
        valid_until=datetime.now(),
    )
    valid = nutrition.validate_nutrition_target(target, payload.weight_kg)
    clamped = nutrition.clamp_nutrition_target(target, payload.weight_kg, payload.goal)
    return {
        "valid": valid,
        "min_protein_g": payload.weight_kg * nutrition.MIN_PROTEIN_PER_KG,
        "min_calories": nutrition.MIN_DAILY_CALORIES,
        "clamped_calories": clamped.daily_calories,
        "clamped_protein_g": clamped.macros.protein,
        "clamped_carbs_g": clamped.macros.carbs,
        "clamped_fats_g": clamped.macros.fats,
    }


@router.get("/nutrition/advice")
def get_advice(goal: str = "maintenance", has_workout_today: bool = False):
    return {
        "goal": goal,
        "meal_timing": nutrition.get_meal_timing_recommendations(goal, has_workout_today),
        "dietary": nutrition.get_dietary_recommendations(goal),
        "protein_sources": nutrition.get_protein_sources(),
        "carb_sources": nutrition.get_carb_sources(goal),
        "fat_sources": nutrition.get_fat_sources(),
    }


# ---------- Per user ----------

@router.post("/users/{user_id}/nutrition/target")
def calculate_target(user_id: str, payload: TargetRequest, db: Session = Depends(get_db)):
    """Compute, floor-check and persist today's nutrition target."""
    planned = build_nutrition_target(
        db,
        user_id,
        goal=payload.goal,
        activity_level=payload.activity_level,
        is_workout_day=payload.is_workout_day,
        use_recovery=payload.use_recovery,
    )
    if planned is None:
        raise HTTPException(404, "No body metrics recorded; cannot calculate a target")
    db.commit()

    return {
        "status": "ok",
        "valid": planned.valid,
        "clamped": planned.clamped,
        "recovery_score": planned.recovery_score,
        "issues": [i.value for i in planned.issues],
        "target": _target_out(planned.target),
    }


@router.get("/users/{user_id}/nutrition/target")
def get_target(user_id: str, db: Session = Depends(get_db)):
    target = _stored_target(db, user_id)
    return {
        "status": "ok",
        "needs_recalculation": store.needs_target_recalculation(db, user_id),
        "target": _target_out(target),
    }


@router.get("/users/{user_id}/nutrition/pre-workout-meal")
def get_pre_workout_meal(user_id: str, db: Session = Depends(get_db)):
    target = nutrition.calculate_pre_workout_meal(_latest_weight(db, user_id))
    return {"status": "ok", "meal": _target_out(target)}


@router.get("/users/{user_id}/nutrition/post-workout-meal")
def get_post_workout_meal(user_id: str, db: Session = Depends(get_db)):
    target = nutrition.calculate_post_workout_meal(_latest_weight(db, user_id))
    return {"status": "ok", "meal": _target_out(target)}


@router.get("/users/{user_id}/nutrition/meal-timing")
def get_meal_timing(
    user_id: str,
    workout_time: datetime = Query(..., description="ISO8601 time of the planned workout"),
    db: Session = Depends(get_db),
):
    target = _stored_target(db, user_id)
    return {"status": "ok", "plan": nutrition.plan_meal_timing(workout_time, target)}


def _call_recipe_api(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except MealApiError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/users/{user_id}/nutrition/meals")
def search_meals(
    user_id: str,
    kind: str = Query("target", description="target, post_workout, high_protein or quick"),
    number: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    client: SpoonacularClient = Depends(get_meal_client),
):
    if kind not in MEAL_KINDS:
        raise HTTPException(400, f"Unknown meal kind: {kind}")

    profile = store.load_profile(db, user_id)
    filters = {
        "diet": profile.diet,
        "exclude_ingredients": profile.excluded_ingredients or None,
        "intolerances": profile.intolerances,
        "number": number,
    }

    if kind == "target":
        meals = _call_recipe_api(client.search_for_target, _stored_target(db, user_id), **filters)
    elif kind == "post_workout":
        meals = _call_recipe_api(client.get_post_workout_meals, **filters)
    elif kind == "high_protein":
        meals = _call_recipe_api(client.get_high_protein_meals, **filters)
    else:
        meals = _call_recipe_api(client.get_quick_meals, **filters)

    return {"status": "ok", "kind": kind, "count": len(meals), "meals": meals}


@router.post("/users/{user_id}/nutrition/meal-plan")
def generate_meal_plan(
    user_id: str,
    db: Session = Depends(get_db),
    client: SpoonacularClient = Depends(get_meal_client),
):
    """One-day meal plan sized to the stored daily calorie target."""
    target = _stored_target(db, user_id)
    profile = store.load_profile(db, user_id)
    plan = _call_recipe_api(
        client.generate_meal_plan,
        target.daily_calories,
        diet=profile.diet,
        exclude_ingredients=profile.excluded_ingredients or None,
        intolerances=profile.intolerances,
    )
    return {"status": "ok", "plan": plan}


@router.get("/recipes/{recipe_id}")
def get_recipe(recipe_id: int, client: SpoonacularClient = Depends(get_meal_client)):
    return _call_recipe_api(client.get_recipe, recipe_id)


@router.get("/users/{user_id}/nutrition/meals/{recipe_id}/alternatives")
def find_meal_alternatives(
    user_id: str,
    recipe_id: int,
    number: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    client: SpoonacularClient = Depends(get_meal_client),
):
    """Recipes that can stand in for a meal: similar calories, comparable protein."""
    recipe = _call_recipe_api(client.get_recipe, recipe_id)
    profile = store.load_profile(db, user_id)
    meals = _call_recipe_api(
        client.find_alternatives,
        recipe,
        diet=profile.diet,
        exclude_ingredients=profile.excluded_ingredients or None,
        intolerances=profile.intolerances,
        number=number,
    )
    meals = [m for m in meals if m.id != recipe.id]
    return {"status": "ok", "recipe_id": recipe.id, "count": len(meals), "meals": meals}


# ---------- Daily log ----------

class MealLogIn(BaseModel):
    """Per-serving values; the stored entry is scaled by ``servings``."""

    meal_name: str
    calories: float = Field(..., ge=0)
    protein: float = Field(0.0, ge=0)
    carbs: float = Field(0.0, ge=0)
    fats: float = Field(0.0, ge=0)
    meal_type: str = "snack"
    servings: float = Field(1.0, gt=0)
    meal_id: Optional[str] = None
    timestamp: Optional[datetime] = Field(None, description="ISO8601, defaults to now")


class LogUpdate(BaseModel):
    workout_completed: Optional[bool] = None
    notes: Optional[str] = None


def _log_out(log: DailyLog) -> dict:
    return {
        **log.model_dump(mode="json"),
        "total_calories": log.total_calories,
        "total_macros": log.total_macros,
        "remaining_calories": log.remaining_calories,
        "calorie_progress": log.calorie_progress,
        "protein_progress": log.protein_progress,
        "carbs_progress": log.carbs_progress,
        "fats_progress": log.fats_progress,
        "target_met": log.target_met,
        "meal_counts": {t: log.meal_count(t) for t in ("breakfast", "lunch", "dinner", "snack")},
    }


@router.post("/users/{user_id}/nutrition/log")
def log_meal(user_id: str, payload: MealLogIn, db: Session = Depends(get_db)):
    """Record a meal against the day's nutrition target."""
    entry = nutrition.build_meal_entry(
        payload.meal_name,
        payload.calories,
        Macros(protein=payload.protein, carbs=payload.carbs, fats=payload.fats),
        (payload.timestamp or datetime.now()).replace(tzinfo=None),
        meal_type=payload.meal_type,
        servings=payload.servings,
        meal_id=payload.meal_id,
    )
    log = store.log_meal(db, user_id, entry)
    if log is None:
        raise HTTPException(404, "No nutrition target calculated; cannot open a daily log")
    db.commit()
    return {"status": "ok", "entry_id": entry.id, "log": _log_out(log)}


@router.get("/users/{user_id}/nutrition/log/{date_str}")
def get_daily_log(user_id: str, date_str: str, db: Session = Depends(get_db)):
    day = parse_date(date_str)
    log = store.get_daily_log(db, user_id, day)
    if log is None:
        return {"status": "ok", "date": day.isoformat(), "found": False}
    return {"status": "ok", "found": True, "log": _log_out(log)}


@router.patch("/users/{user_id}/nutrition/log/{date_str}")
def update_daily_log(user_id: str, date_str: str, payload: LogUpdate, db: Session = Depends(get_db)):
    day = parse_date(date_str)
    log = store.get_daily_log(db, user_id, day)
    if log is None:
        raise HTTPException(404, "No nutrition log for that day")
    log = log.model_copy(update=payload.model_dump(exclude_unset=True))
    store.save_daily_log(db, log)
    db.commit()
    return {"status": "ok", "log": _log_out(log)}


@router.delete("/users/{user_id}/nutrition/log/{date_str}/meals/{entry_id}")
def delete_logged_meal(user_id: str, date_str: str, entry_id: str, db: Session = Depends(get_db)):
    log = store.remove_logged_meal(db, user_id, parse_date(date_str), entry_id)
    if log is None:
        raise HTTPException(404, "Meal not found in that day's log")
    db.commit()
    return {"status": "ok", "log": _log_out(log)}


@router.get("/users/{user_id}/nutrition/log-stats")
def get_log_stats(
    user_id: str,
    start: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to 7 days before end"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: Session = Depends(get_db),
):
    end_date = parse_date(end)
    start_date = parse_date(start) if start else end_date - timedelta(days=6)
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start must not be after end")

    logs = store.get_daily_logs_range(db, user_id, start_date, end_date)
    return {
        "status": "ok",
        "start": start_date.isoformat(),
        "end": end_date.isoformat(),
        "days_logged": len(logs),
        "average_daily_calories": store.average_daily_calories(db, user_id, start_date, end_date),
        "adherence_rate": store.adherence_rate(db, user_id, start_date, end_date),
        "workout_days": sum(1 for log in logs if log.workout_completed),
    }
