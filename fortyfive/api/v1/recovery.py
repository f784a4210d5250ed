from datetime import date as DateType, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fortyfive.api.deps import parse_date
from fortyfive.core import recovery
from fortyfive.core.db import get_db
from fortyfive.core.planner import build_recovery_report, compute_recovery_score
from fortyfive.core.schemas import BodyMetrics, RecoveryMetrics, RecoveryReport, WorkoutPlan

router = APIRouter(tags=["recovery"])


class RecoveryInputs(BaseModel):
    """Scores supplied metrics directly, without reading stored samples."""

    date: DateType
    sleep_hours: float
    hrv: float
    resting_hr: float
    weight_kg: Optional[float] = Field(None, gt=0)
    avg_weight_kg: Optional[float] = Field(None, gt=0)
    avg_hrv: Optional[float] = None


def _intensity(score: float) -> dict:
    factor, sets = recovery.get_intensity_adjustment(score)
    return {"intensity_factor": factor, "volume_reduction_sets": sets}


@router.post("/recovery/score")
def score_recovery(payload: RecoveryInputs):
    metrics = RecoveryMetrics(
        date=payload.date,
        sleep_hours=payload.sleep_hours,
        hrv=payload.hrv,
        resting_hr=payload.resting_hr,
    )
    latest = None
    if payload.weight_kg:
        latest = BodyMetrics(
            user_id="",
            timestamp=datetime.combine(payload.date, datetime.min.time()),
            weight=payload.weight_kg,
        )

    score = recovery.calculate_recovery_score(payload.date, metrics, latest, payload.avg_weight_kg)
    return {
        "recovery_score": score,
        "insights": recovery.get_recovery_insights(score, metrics, payload.avg_hrv),
        "recommendation": recovery.get_workout_recommendation(score),
        **_intensity(score),
    }


@router.get("/users/{user_id}/recovery", response_model=RecoveryReport)
def get_recovery_report(
    user_id: str,
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: Session = Depends(get_db),
):
    return build_recovery_report(db, user_id, parse_date(date))


@router.get("/users/{user_id}/recovery/recommendation")
def get_recommendation(
    user_id: str,
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: Session = Depends(get_db),
):
    day = parse_date(date)
    score = compute_recovery_score(db, user_id, day)
    return {
        "date": day.isoformat(),
        "recovery_score": score,
        "recommendation": recovery.get_workout_recommendation(score),
        **_intensity(score),
    }


@router.post("/users/{user_id}/recovery/adjust-workout")
def adjust_workout(
    user_id: str,
    plan: WorkoutPlan,
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: Session = Depends(get_db),
):
    """Annotate a planned workout with today's recovery-based adjustment."""
    day = parse_date(date)
    score = compute_recovery_score(db, user_id, day)
    if not plan.user_id:
        plan = plan.model_copy(update={"user_id": user_id})

    return {
        "date": day.isoformat(),
        "recovery_score": score,
        "workout": recovery.adjust_workout_intensity(plan, score),
        "should_warn": recovery.should_warn_before_workout(score),
        "warning_message": recovery.get_workout_warning_message(score),
        **_intensity(score),
    }
