"""Recovery score and workout-intensity guidance.

Score = sleep quality x 0.4 + HRV status x 0.4 + weight stability x 0.2,
clamped to 0-100. Higher scores mean better readiness for hard training.
"""
import logging
from datetime import date as DateType

from fortyfive.core.schemas import (
    BodyMetrics,
    RecoveryInsights,
    RecoveryMetrics,
    WorkoutPlan,
)

logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_SCORE = 70.0

SLEEP_WEIGHT = 0.4
HRV_WEIGHT = 0.4
WEIGHT_STABILITY_WEIGHT = 0.2

# sets removed per exercise when the session is called off entirely
REMOVE_ALL_SETS = 999


def sleep_score(sleep_hours: float) -> float:
    if sleep_hours >= 8.0:
        return 100.0
    elif sleep_hours >= 7.0:
        return 85.0
    elif sleep_hours >= 6.0:
        return 65.0
    elif sleep_hours >= 5.0:
        return 45.0
    else:
        return 25.0


def _hrv_subscore(hrv: float) -> float:
    if hrv >= 70:
        return 100.0
    elif hrv >= 50:
        return 80.0
    elif hrv >= 30:
        return 60.0
    elif hrv >= 20:
        return 40.0
    else:
        return 20.0


def _resting_hr_subscore(resting_hr: float) -> float:
    # lower is better
    if resting_hr <= 50:
        return 100.0
    elif resting_hr <= 60:
        return 85.0
    elif resting_hr <= 70:
        return 70.0
    elif resting_hr <= 80:
        return 55.0
    else:
        return 40.0


def hrv_score(hrv: float, resting_hr: float) -> float:
    """HRV carries 70% of this component, resting HR the other 30%."""
    return _hrv_subscore(hrv) * 0.7 + _resting_hr_subscore(resting_hr) * 0.3


def weight_stability_score(latest: BodyMetrics | None, avg_weight: float | None) -> float:
    """
    Score the change between the latest weigh-in and the recent average.

    Rapid change in either direction points at overtraining or under-eating.
    Without a baseline the weight is assumed stable.
    """
    if latest is None or not avg_weight:
        return 100.0

    change_pct = abs(latest.weight - avg_weight) / avg_weight * 100

    if change_pct <= 0.5:
        return 100.0
    elif change_pct <= 1.0:
        return 90.0
    elif change_pct <= 2.0:
        return 75.0
    elif change_pct <= 3.0:
        return 55.0
    else:
        return 30.0


def calculate_recovery_score(
    date: DateType,
    recovery_metrics: RecoveryMetrics | None,
    latest_body_metrics: BodyMetrics | None = None,
    avg_weight: float | None = None,
) -> float:
    """Calculate the daily recovery score (0-100).

    Args:
        date: Day being scored
        recovery_metrics: Sleep/HRV/RHR for that day, None when unavailable
        latest_body_metrics: Most recent weigh-in
        avg_weight: Recent average weight (kg); defaults to the latest weight

    Returns:
        Score in [0, 100]; 70.0 when there is no data or the inputs are unusable
    """
    if recovery_metrics is None:
        logger.warning("No recovery metrics for %s; using default score", date)
        return DEFAULT_RECOVERY_SCORE

    try:
        baseline = avg_weight
        if baseline is None and latest_body_metrics is not None:
            baseline = latest_body_metrics.weight

        total = (
            sleep_score(recovery_metrics.sleep_hours) * SLEEP_WEIGHT
            + hrv_score(recovery_metrics.hrv, recovery_metrics.resting_hr) * HRV_WEIGHT
            + weight_stability_score(latest_body_metrics, baseline) * WEIGHT_STABILITY_WEIGHT
        )
    except (TypeError, ValueError, ZeroDivisionError) as e:
        logger.warning("Recovery score for %s fell back to default: %s", date, e)
        return DEFAULT_RECOVERY_SCORE

    return max(0.0, min(total, 100.0))


def get_workout_recommendation(recovery_score: float) -> str:
    if recovery_score < 40:
        return "🛑 Critical recovery needed. Take a rest day or do light stretching/walking only."
    elif recovery_score < 50:
        return "⚠️ Low recovery detected. Consider a rest day or very light mobility work."
    elif recovery_score < 60:
        return "😐 Below-average recovery. Reduce intensity by 20-30% and cut volume by 1 set per exercise."
    elif recovery_score < 70:
        return "😐 Moderate recovery. Reduce intensity by 10-15% today and focus on technique."
    elif recovery_score < 85:
        return "👍 Good recovery. Proceed with planned workout at normal intensity."
    else:
        return "💪 Excellent recovery! Perfect day for progressive overload - increase weight or reps!"


def _overall_status(recovery_score: float) -> str:
    if recovery_score >= 85:
        return "Excellent"
    elif recovery_score >= 70:
        return "Good"
    elif recovery_score >= 50:
        return "Moderate"
    return "Poor"


def _sleep_status(sleep_hours: float) -> str:
    if sleep_hours >= 8:
        band = "Excellent"
    elif sleep_hours >= 7:
        band = "Good"
    elif sleep_hours >= 6:
        band = "Moderate"
    else:
        band = "Poor"
    return f"{band} ({sleep_hours:.1f}h)"


def _hrv_status(hrv: float) -> str:
    if hrv >= 70:
        band = "Excellent"
    elif hrv >= 50:
        band = "Good"
    elif hrv >= 30:
        band = "Moderate"
    else:
        band = "Low"
    return f"{band} ({int(hrv)} ms)"


def get_recovery_insights(
    recovery_score: float,
    metrics: RecoveryMetrics | None,
    avg_hrv: float | None,
) -> RecoveryInsights:
    if metrics is None:
        return RecoveryInsights(
            overall_status="Unknown",
            sleep_status="No data",
            hrv_status="No data",
            recommendations=["Connect Apple Health to track recovery metrics"],
        )

    recommendations: list[str] = []

    if metrics.sleep_hours < 7:
        recommendations.append("Prioritize 7-9 hours of sleep tonight")

    if metrics.hrv < 40 and avg_hrv is not None and metrics.hrv < avg_hrv * 0.85:
        recommendations.append("HRV is 15%+ below your average - reduce workout intensity")

    if metrics.resting_hr > 75:
        recommendations.append("Elevated resting heart rate - consider stress management")

    if recovery_score < 60:
        recommendations.append("Focus on nutrition: increase protein and hydration")
        recommendations.append("Consider active recovery: light walk or stretching")

    if not recommendations:
        recommendations.append("Recovery is on track - maintain current routine")

    return RecoveryInsights(
        overall_status=_overall_status(recovery_score),
        sleep_status=_sleep_status(metrics.sleep_hours),
        hrv_status=_hrv_status(metrics.hrv),
        recommendations=recommendations,
    )


def get_intensity_adjustment(recovery_score: float) -> tuple[float, int]:
    """Return (weight factor, sets to drop per exercise) for a recovery score."""
    if recovery_score >= 70:
        return 1.0, 0
    elif recovery_score < 40:
        return 0.0, REMOVE_ALL_SETS
    elif recovery_score < 50:
        return 0.7, 2
    elif recovery_score < 60:
        return 0.8, 1
    else:
        return 0.9, 0


def adjust_workout_intensity(planned_workout: WorkoutPlan, recovery_score: float) -> WorkoutPlan:
    """
    Annotate a planned workout with the adjustment today's recovery calls for.

    Only the notes and the cancelled flag change. Rewriting weights and sets
    is left to the caller, using ``get_intensity_adjustment``.
    """
    if recovery_score >= 70:
        return planned_workout

    intensity_factor, volume_reduction = get_intensity_adjustment(recovery_score)

    if intensity_factor == 0.0:
        return planned_workout.model_copy(
            update={
                "cancelled": True,
                "notes": "⚠️ WORKOUT CANCELLED - Critical recovery needed. Rest day recommended.",
            }
        )

    reduction_pct = int(round((1 - intensity_factor) * 100))
    if recovery_score < 50:
        note = (
            f"\n⚠️ AUTO-ADJUSTED: Recovery score low ({recovery_score:.1f}/100). "
            f"Recommend reducing intensity by {reduction_pct}% and volume by {volume_reduction} set(s)."
        )
    else:
        note = (
            f"\nℹ️ ADJUSTED: Moderate recovery ({recovery_score:.1f}/100). "
            f"Consider reducing intensity by {reduction_pct}%."
        )

    return planned_workout.model_copy(update={"notes": (planned_workout.notes or "") + note})


def should_warn_before_workout(recovery_score: float) -> bool:
    return recovery_score < 50


def get_workout_warning_message(recovery_score: float) -> str:
    if recovery_score < 40:
        return (
            f"Your recovery score is critically low ({recovery_score:.0f}/100). "
            "Your body needs rest to adapt and grow. Consider taking a rest day."
        )
    elif recovery_score < 50:
        return (
            f"Your recovery score is low ({recovery_score:.0f}/100). "
            "We've reduced the workout intensity. Listen to your body and stop if needed."
        )
    return ""
