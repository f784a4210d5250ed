"""Pull raw health samples into daily BodyMetrics / RecoveryMetrics."""
import logging
from dataclasses import dataclass
from datetime import date as DateType, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from fortyfive.core import store
from fortyfive.core.health_source import HealthSource
from fortyfive.core.preprocessing import (
    BMR_LOOKBACK,
    age_on,
    build_body_metrics,
    build_recovery_metrics,
    deduplicate_body_metrics,
    yearly_average_bmr,
)
from fortyfive.core.schemas import HealthKind, RecoveryMetrics
from fortyfive.core.units import normalize_height_cm

logger = logging.getLogger(__name__)

# first sync with nothing stored looks this far back
INITIAL_SYNC_WINDOW = timedelta(days=90)

BODY_KINDS = [
    HealthKind.WEIGHT,
    HealthKind.BODY_FAT,
    HealthKind.LEAN_BODY_MASS,
    HealthKind.BMI,
    HealthKind.WAIST,
]


@dataclass
class SyncResult:
    days: int
    bmr: int


def day_bounds(day: DateType) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def resolve_height_cm(source: HealthSource, user_id: str, profile_height: float | None) -> float | None:
    """Latest height reading, falling back to the profile value."""
    latest = source.latest(user_id, HealthKind.HEIGHT).unwrap_or(None)
    if latest is not None:
        return normalize_height_cm(latest[1])
    return normalize_height_cm(profile_height)


def fetch_yearly_average_bmr(
    db: Session,
    user_id: str,
    as_of: datetime,
    weight_kg: float | None = None,
) -> int:
    """Yearly basal-energy average with the profile feeding the Harris-Benedict fallback."""
    source = HealthSource(db)
    profile = store.load_profile(db, user_id)

    samples = source.fetch(user_id, HealthKind.BASAL_ENERGY, as_of - BMR_LOOKBACK, as_of).unwrap_or([])

    if weight_kg is None:
        latest = store.get_latest_body_metrics(db, user_id, as_of.date())
        weight_kg = latest.weight if latest else None

    return yearly_average_bmr(
        samples,
        as_of,
        weight_kg=weight_kg,
        height_cm=resolve_height_cm(source, user_id, profile.height_cm),
        sex=profile.sex,
        age=age_on(profile.birth_date, as_of.date()),
    )


def sync_body_metrics(
    db: Session,
    user_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> SyncResult:
    """
    Build daily BodyMetrics from the stored samples and upsert them.

    Without an explicit start the sync resumes from the latest stored day, or
    looks back 90 days when nothing is stored yet.
    """
    end = end or datetime.now()
    if start is None:
        latest = store.get_latest_body_metrics(db, user_id)
        start = datetime.combine(latest.day, time.min) if latest else end - INITIAL_SYNC_WINDOW

    source = HealthSource(db)
    readings = source.fetch_many(user_id, BODY_KINDS, start, end)

    weights = readings[HealthKind.WEIGHT]
    latest_weight = weights[-1][1] if weights else None

    profile = store.load_profile(db, user_id)
    height_cm = resolve_height_cm(source, user_id, profile.height_cm)
    bmr = fetch_yearly_average_bmr(db, user_id, end, weight_kg=latest_weight)

    metrics = deduplicate_body_metrics(build_body_metrics(user_id, readings, height_cm, bmr))
    for m in metrics:
        store.upsert_body_metrics(db, user_id, m)

    logger.info(
        "Synced %s body metric day(s) for %s between %s and %s (BMR %s)",
        len(metrics), user_id, start.date(), end.date(), bmr,
    )
    return SyncResult(days=len(metrics), bmr=bmr)


def fetch_recovery_metrics(source: HealthSource, user_id: str, day: DateType) -> Optional[RecoveryMetrics]:
    """
    Recovery inputs for one calendar day.

    Returns None when the health source itself is unavailable, so the scorer
    falls back to its default. Merely missing samples use population defaults.
    """
    start, end = day_bounds(day)
    results = {
        kind: source.fetch(user_id, kind, start, end)
        for kind in (HealthKind.SLEEP, HealthKind.HRV, HealthKind.RESTING_HEART_RATE)
    }
    if any(not r.ok for r in results.values()):
        logger.warning("Recovery metrics for %s on %s unavailable", user_id, day)
        return None

    metrics = build_recovery_metrics(
        day,
        results[HealthKind.SLEEP].value,
        results[HealthKind.HRV].value,
        results[HealthKind.RESTING_HEART_RATE].value,
    )
    if metrics.defaulted:
        logger.info("Recovery metrics for %s on %s used defaults for %s", user_id, day, metrics.defaulted)
    return metrics


def fetch_active_calories(source: HealthSource, user_id: str, day: DateType) -> float:
    start, end = day_bounds(day)
    samples = source.fetch(user_id, HealthKind.ACTIVE_ENERGY, start, end).unwrap_or([])
    return sum(v for _, v in samples)
