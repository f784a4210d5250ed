"""Persistence helpers. Every call is scoped by an explicit user_id.

Functions add/modify rows on the session but never commit; the caller owns
the transaction.
"""
import logging
from datetime import date as DateType, datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from fortyfive.core.preprocessing import completeness_score
from fortyfive.core.schemas import BodyMetrics, DailyLog, MealEntry, NutritionTarget, UserProfile
from fortyfive.models.body_metrics import BodyMetricsEntry
from fortyfive.models.nutrition_log import NutritionLog
from fortyfive.models.preference import UserPreference

logger = logging.getLogger(__name__)

NUTRITION_TARGET_KEY = "nutrition_target"
_PROFILE_KEYS = (
    "sex",
    "birth_date",
    "height_cm",
    "goal",
    "activity_level",
    "diet",
    "intolerances",
    "excluded_ingredients",
)


# ----- Body metrics -----

def to_body_metrics(entry: BodyMetricsEntry) -> BodyMetrics:
    return BodyMetrics(
        user_id=entry.user_id,
        timestamp=entry.timestamp,
        weight=entry.weight_kg,
        body_fat=entry.body_fat_pct or 0.0,
        skeletal_muscle=entry.skeletal_muscle_kg or 0.0,
        bmi=entry.bmi or 0.0,
        bmr=entry.bmr_kcal or 0,
        height=entry.height_cm,
        lean_body_mass=entry.lean_body_mass_kg,
        waist_circumference=entry.waist_cm,
        source=entry.source or "manual",
    )


def _apply(entry: BodyMetricsEntry, m: BodyMetrics) -> None:
    entry.timestamp = m.timestamp
    entry.weight_kg = m.weight
    entry.body_fat_pct = m.body_fat
    entry.skeletal_muscle_kg = m.skeletal_muscle
    entry.bmi = m.bmi
    entry.bmr_kcal = m.bmr
    entry.height_cm = m.height
    entry.lean_body_mass_kg = m.lean_body_mass
    entry.waist_cm = m.waist_circumference
    entry.source = m.source


def upsert_body_metrics(db: Session, user_id: str, metrics: BodyMetrics) -> BodyMetricsEntry:
    """
    Insert or replace the (user, day) snapshot.

    A stored reading that is strictly more complete than the incoming one is
    kept; otherwise the incoming reading replaces it.
    """
    d = metrics.day
    existing = (
        db.query(BodyMetricsEntry)
        .filter(BodyMetricsEntry.user_id == user_id)
        .filter(BodyMetricsEntry.date == d)
        .one_or_none()
    )

    if existing is None:
        entry = BodyMetricsEntry(user_id=user_id, date=d)
        _apply(entry, metrics)
        db.add(entry)
        db.flush()
        return entry

    if completeness_score(to_body_metrics(existing)) > completeness_score(metrics):
        logger.debug("Kept more complete body metrics for %s on %s", user_id, d)
        return existing

    _apply(existing, metrics)
    return existing


def get_body_metrics_for_date(db: Session, user_id: str, d: DateType) -> Optional[BodyMetrics]:
    entry = (
        db.query(BodyMetricsEntry)
        .filter(BodyMetricsEntry.user_id == user_id)
        .filter(BodyMetricsEntry.date == d)
        .one_or_none()
    )
    return to_body_metrics(entry) if entry else None


def get_body_metrics_range(
    db: Session, user_id: str, start: DateType, end: DateType
) -> list[BodyMetrics]:
    """Snapshots with start <= date <= end, oldest first."""
    rows = (
        db.query(BodyMetricsEntry)
        .filter(BodyMetricsEntry.user_id == user_id)
        .filter(BodyMetricsEntry.date >= start)
        .filter(BodyMetricsEntry.date <= end)
        .order_by(BodyMetricsEntry.date.asc())
        .all()
    )
    return [to_body_metrics(r) for r in rows]


def get_latest_body_metrics(
    db: Session, user_id: str, on_or_before: DateType | None = None
) -> Optional[BodyMetrics]:
    q = db.query(BodyMetricsEntry).filter(BodyMetricsEntry.user_id == user_id)
    if on_or_before is not None:
        q = q.filter(BodyMetricsEntry.date <= on_or_before)
    entry = q.order_by(BodyMetricsEntry.date.desc()).first()
    return to_body_metrics(entry) if entry else None


def list_body_metric_dates(db: Session, user_id: str) -> list[DateType]:
    rows = (
        db.query(BodyMetricsEntry.date)
        .filter(BodyMetricsEntry.user_id == user_id)
        .order_by(BodyMetricsEntry.date)
        .all()
    )
    return [r[0] for r in rows]


def average_weight(db: Session, user_id: str, start: DateType, end: DateType) -> Optional[float]:
    avg = (
        db.query(func.avg(BodyMetricsEntry.weight_kg))
        .filter(BodyMetricsEntry.user_id == user_id)
        .filter(BodyMetricsEntry.date >= start)
        .filter(BodyMetricsEntry.date <= end)
        .scalar()
    )
    return float(avg) if avg is not None else None


# ----- Preferences -----

def _preference_row(db: Session, user_id: str, key: str) -> Optional[UserPreference]:
    return (
        db.query(UserPreference)
        .filter(UserPreference.user_id == user_id)
        .filter(UserPreference.key == key)
        .one_or_none()
    )


def get_preference(db: Session, user_id: str, key: str, default: Any = None) -> Any:
    row = _preference_row(db, user_id, key)
    if row is None:
        return default
    return row.value


def set_preference(db: Session, user_id: str, key: str, value: Any) -> None:
    row = _preference_row(db, user_id, key)
    if row is None:
        db.add(UserPreference(user_id=user_id, key=key, value=value))
        db.flush()
    else:
        row.value = value


def delete_preference(db: Session, user_id: str, key: str) -> bool:
    row = _preference_row(db, user_id, key)
    if row is None:
        return False
    db.delete(row)
    return True


def load_profile(db: Session, user_id: str) -> UserProfile:
    rows = (
        db.query(UserPreference)
        .filter(UserPreference.user_id == user_id)
        .filter(UserPreference.key.in_(_PROFILE_KEYS))
        .all()
    )
    values = {r.key: r.value for r in rows if r.value is not None}
    return UserProfile(user_id=user_id, **values)


def save_profile(db: Session, profile: UserProfile) -> None:
    data = profile.model_dump(mode="json", include=set(_PROFILE_KEYS))
    for key, value in data.items():
        set_preference(db, profile.user_id, key, value)


def save_nutrition_target(db: Session, target: NutritionTarget) -> None:
    set_preference(db, target.user_id, NUTRITION_TARGET_KEY, target.model_dump(mode="json"))


def load_nutrition_target(db: Session, user_id: str) -> Optional[NutritionTarget]:
    data = get_preference(db, user_id, NUTRITION_TARGET_KEY)
    if data is None:
        return None
    return NutritionTarget.model_validate(data)


def needs_target_recalculation(db: Session, user_id: str, now: datetime | None = None) -> bool:
    target = load_nutrition_target(db, user_id)
    if target is None:
        return True
    return not target.is_valid(now)


# ----- Daily nutrition log -----

def to_daily_log(row: NutritionLog) -> DailyLog:
    return DailyLog(
        user_id=row.user_id,
        date=row.date,
        meals=[MealEntry.model_validate(m) for m in row.meals or []],
        target_calories=row.target_calories,
        target_macros={
            "protein": row.target_protein_g,
            "carbs": row.target_carbs_g,
            "fats": row.target_fats_g,
        },
        workout_completed=bool(row.workout_completed),
        notes=row.notes,
    )


def _log_row(db: Session, user_id: str, d: DateType) -> Optional[NutritionLog]:
    return (
        db.query(NutritionLog)
        .filter(NutritionLog.user_id == user_id)
        .filter(NutritionLog.date == d)
        .one_or_none()
    )


def get_daily_log(db: Session, user_id: str, d: DateType) -> Optional[DailyLog]:
    row = _log_row(db, user_id, d)
    return to_daily_log(row) if row else None


def get_daily_logs_range(db: Session, user_id: str, start: DateType, end: DateType) -> list[DailyLog]:
    """Logs with start <= date <= end, oldest first."""
    rows = (
        db.query(NutritionLog)
        .filter(NutritionLog.user_id == user_id)
        .filter(NutritionLog.date >= start)
        .filter(NutritionLog.date <= end)
        .order_by(NutritionLog.date.asc())
        .all()
    )
    return [to_daily_log(r) for r in rows]


def save_daily_log(db: Session, log: DailyLog) -> NutritionLog:
    """Insert or replace the (user, day) log."""
    row = _log_row(db, log.user_id, log.date)
    if row is None:
        row = NutritionLog(user_id=log.user_id, date=log.date)
        db.add(row)

    row.target_calories = log.target_calories
    row.target_protein_g = log.target_macros.protein
    row.target_carbs_g = log.target_macros.carbs
    row.target_fats_g = log.target_macros.fats
    row.actual_calories = log.total_calories
    row.meals = [m.model_dump(mode="json") for m in log.meals]
    row.workout_completed = log.workout_completed
    row.notes = log.notes
    db.flush()
    return row


def log_meal(db: Session, user_id: str, entry: MealEntry) -> Optional[DailyLog]:
    """
    Append a meal to the log for the entry's day.

    The first meal of a day opens the log against the stored nutrition target.
    Returns None when the user has no target yet.
    """
    d = entry.timestamp.date()
    log = get_daily_log(db, user_id, d)
    if log is None:
        target = load_nutrition_target(db, user_id)
        if target is None:
            return None
        log = DailyLog(
            user_id=user_id,
            date=d,
            target_calories=target.daily_calories,
            target_macros=target.macros,
        )

    log = log.model_copy(update={"meals": [*log.meals, entry]})
    save_daily_log(db, log)
    return log


def remove_logged_meal(db: Session, user_id: str, d: DateType, entry_id: str) -> Optional[DailyLog]:
    """Drop one meal from a day's log; None when the log or the meal doesn't exist."""
    log = get_daily_log(db, user_id, d)
    if log is None:
        return None
    meals = [m for m in log.meals if m.id != entry_id]
    if len(meals) == len(log.meals):
        return None

    log = log.model_copy(update={"meals": meals})
    save_daily_log(db, log)
    return log


def average_daily_calories(db: Session, user_id: str, start: DateType, end: DateType) -> Optional[float]:
    avg = (
        db.query(func.avg(NutritionLog.actual_calories))
        .filter(NutritionLog.user_id == user_id)
        .filter(NutritionLog.date >= start)
        .filter(NutritionLog.date <= end)
        .scalar()
    )
    return float(avg) if avg is not None else None


def adherence_rate(db: Session, user_id: str, start: DateType, end: DateType) -> float:
    """Percentage of logged days whose calories landed within 5% of target."""
    logs = get_daily_logs_range(db, user_id, start, end)
    if not logs:
        return 0.0
    return sum(1 for log in logs if log.target_met) / len(logs) * 100
