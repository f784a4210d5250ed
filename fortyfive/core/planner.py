"""Daily recovery report and persisted nutrition target for one user."""
import logging
from dataclasses import dataclass, field
from datetime import date as DateType, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from fortyfive.core import recovery, store
from fortyfive.core.errors import ErrorKind
from fortyfive.core.health_source import HealthSource
from fortyfive.core.nutrition import (
    adjust_for_recovery,
    calculate_from_body_metrics,
    clamp_nutrition_target,
    validate_nutrition_target,
)
from fortyfive.core.schemas import HealthKind, NutritionTarget, RecoveryReport
from fortyfive.core.sync import (
    fetch_active_calories,
    fetch_recovery_metrics,
    fetch_yearly_average_bmr,
)

logger = logging.getLogger(__name__)

TREND_WINDOW = timedelta(days=7)


@dataclass
class PlannedTarget:
    target: NutritionTarget
    valid: bool
    clamped: bool
    recovery_score: Optional[float] = None
    # MISSING_DATA: BMR estimated; VALIDATION_FAILURE: clamped to the floors
    issues: list[ErrorKind] = field(default_factory=list)


def _average_hrv(source: HealthSource, user_id: str, day: DateType) -> Optional[float]:
    end = datetime.combine(day, time.max)
    samples = source.fetch(user_id, HealthKind.HRV, end - TREND_WINDOW, end).unwrap_or([])
    if not samples:
        return None
    return sum(v for _, v in samples) / len(samples)


def compute_recovery_score(db: Session, user_id: str, day: DateType) -> float:
    report = build_recovery_report(db, user_id, day)
    return report.recovery_score


def build_recovery_report(db: Session, user_id: str, day: DateType) -> RecoveryReport:
    """
    Score a day and attach the insights, recommendation and warning.

    Weight stability is judged against the 7-day average weight, HRV against
    the 7-day average HRV.
    """
    source = HealthSource(db)
    metrics = fetch_recovery_metrics(source, user_id, day)

    latest = store.get_latest_body_metrics(db, user_id, day)
    avg_weight = store.average_weight(db, user_id, day - TREND_WINDOW, day)
    avg_hrv = _average_hrv(source, user_id, day)

    score = recovery.calculate_recovery_score(day, metrics, latest, avg_weight)

    return RecoveryReport(
        user_id=user_id,
        date=day,
        recovery_score=score,
        metrics=metrics,
        insights=recovery.get_recovery_insights(score, metrics, avg_hrv),
        recommendation=recovery.get_workout_recommendation(score),
        should_warn=recovery.should_warn_before_workout(score),
        warning_message=recovery.get_workout_warning_message(score),
        avg_weight_kg=avg_weight,
        avg_hrv_ms=avg_hrv,
        active_calories_kcal=fetch_active_calories(source, user_id, day),
    )


def build_nutrition_target(
    db: Session,
    user_id: str,
    goal: Optional[str] = None,
    activity_level: Optional[str] = None,
    is_workout_day: bool = False,
    use_recovery: bool = False,
    now: Optional[datetime] = None,
) -> Optional[PlannedTarget]:
    """
    Compute today's target from the latest body metrics and persist it.

    Goal and activity level default to the stored profile. A target that
    breaks the protein or calorie floor is clamped before it is saved.
    Returns None when the user has no body metrics yet.
    """
    now = now or datetime.now()
    latest = store.get_latest_body_metrics(db, user_id, now.date())
    if latest is None:
        return None

    profile = store.load_profile(db, user_id)
    goal = goal or profile.goal
    activity_level = activity_level or profile.activity_level

    issues: list[ErrorKind] = []
    if latest.bmr <= 0:
        issues.append(ErrorKind.MISSING_DATA)
        bmr = fetch_yearly_average_bmr(db, user_id, now, weight_kg=latest.weight)
        latest = latest.model_copy(update={"bmr": bmr})

    target = calculate_from_body_metrics(latest, goal, activity_level, is_workout_day, now=now)

    score = None
    if use_recovery:
        score = compute_recovery_score(db, user_id, now.date())
        target = adjust_for_recovery(target, score)

    valid = validate_nutrition_target(target, latest.weight)
    clamped = False
    if not valid:
        target = clamp_nutrition_target(target, latest.weight, goal)
        clamped = True
        issues.append(ErrorKind.VALIDATION_FAILURE)

    store.save_nutrition_target(db, target)
    logger.info(
        "Nutrition target for %s: %s kcal (goal=%s, activity=%s, workout_day=%s)",
        user_id, target.daily_calories, goal, activity_level, is_workout_day,
    )
    return PlannedTarget(
        target=target, valid=valid, clamped=clamped, recovery_score=score, issues=issues
    )
