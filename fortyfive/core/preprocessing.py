"""Turn raw health readings into BodyMetrics / RecoveryMetrics.

Runs over collections the caller has already fetched; nothing here does I/O.
"""
import logging
from collections import defaultdict
from datetime import date as DateType, datetime, timedelta
from typing import Iterable, Mapping, Sequence

from fortyfive.core.schemas import BodyMetrics, HealthKind, RecoveryMetrics, Sample
from fortyfive.core.units import normalize_waist_cm, round_half_up

logger = logging.getLogger(__name__)

BMR_LOOKBACK = timedelta(days=365)
# below this a yearly average is a data problem, not a metabolism
MIN_PLAUSIBLE_BMR = 800
LAST_RESORT_BMR = 1200

DEFAULT_HEIGHT_CM = 175.0
# skeletal muscle is roughly 45% of lean mass
SKELETAL_MUSCLE_SHARE = 0.45

DEFAULT_SLEEP_HOURS = 7.0
DEFAULT_HRV_MS = 35.0
DEFAULT_RESTING_HR = 67.0


# ----- BMR -----

def harris_benedict_bmr(
    weight_kg: float | None,
    height_cm: float | None,
    sex: str | None,
    age: int | None,
) -> int | None:
    """Revised Harris-Benedict estimate; None when any input is missing."""
    if weight_kg is None or height_cm is None or sex is None or age is None:
        return None

    if sex.lower() == "male":
        bmr = 88.362 + (13.397 * weight_kg) + (4.799 * height_cm) - (5.677 * age)
    else:
        bmr = 447.593 + (9.247 * weight_kg) + (3.098 * height_cm) - (4.330 * age)
    return round_half_up(bmr)


def age_on(birth_date: DateType | None, today: DateType) -> int | None:
    if birth_date is None:
        return None
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def _fallback_bmr(weight_kg, height_cm, sex, age) -> int:
    bmr = harris_benedict_bmr(weight_kg, height_cm, sex, age)
    if bmr is None:
        logger.warning(
            "Missing data for BMR estimate (height=%s, weight=%s, sex=%s, age=%s); using %s kcal",
            height_cm, weight_kg, sex, age, LAST_RESORT_BMR,
        )
        return LAST_RESORT_BMR
    logger.info("Estimated BMR %s kcal/day with Harris-Benedict", bmr)
    return bmr


def yearly_average_bmr(
    samples: Iterable[Sample],
    as_of: datetime,
    *,
    weight_kg: float | None = None,
    height_cm: float | None = None,
    sex: str | None = None,
    age: int | None = None,
) -> int:
    """
    Average daily basal energy over the trailing year.

    Readings are summed per calendar day first (devices report basal energy in
    many small chunks), then the daily totals are averaged. An empty history
    or an implausible average falls back to Harris-Benedict, then to 1200.
    """
    start = as_of - BMR_LOOKBACK
    daily: dict[DateType, float] = defaultdict(float)
    for ts, value in samples:
        if start <= ts <= as_of:
            daily[ts.date()] += value

    if not daily:
        logger.warning("No basal energy readings in the last year; estimating BMR")
        return _fallback_bmr(weight_kg, height_cm, sex, age)

    avg = round_half_up(sum(daily.values()) / len(daily))
    logger.debug("Yearly average BMR %s kcal/day from %s days", avg, len(daily))

    if avg < MIN_PLAUSIBLE_BMR:
        logger.warning("Yearly average BMR %s kcal looks too low; estimating instead", avg)
        return _fallback_bmr(weight_kg, height_cm, sex, age)

    return avg


# ----- Deduplication -----

def completeness_score(metrics: BodyMetrics) -> int:
    """How many of the core fields carry a real (non-zero) value."""
    return sum(
        1
        for v in (metrics.weight, metrics.body_fat, metrics.skeletal_muscle, metrics.bmr)
        if v > 0
    )


def deduplicate_body_metrics(metrics: Sequence[BodyMetrics]) -> list[BodyMetrics]:
    """
    Keep one reading per calendar day: the most complete one.

    Ties keep the reading seen first. Output is newest first.
    """
    by_day: dict[DateType, list[BodyMetrics]] = defaultdict(list)
    for m in metrics:
        by_day[m.day].append(m)

    # max() returns the first maximal element, which gives first-seen on ties
    kept = [max(day_metrics, key=completeness_score) for day_metrics in by_day.values()]
    kept.sort(key=lambda m: m.timestamp, reverse=True)
    return kept


# ----- Assembly -----

def build_body_metrics(
    user_id: str,
    readings: Mapping[HealthKind, Sequence[Sample]],
    height_cm: float | None,
    bmr: int,
    source: str = "apple_health",
) -> list[BodyMetrics]:
    """
    Group readings per calendar day into BodyMetrics, newest first.

    Days without a weight reading are dropped. Lean mass and BMI come from the
    readings when present and are derived from weight otherwise. Every day gets
    the same (yearly average) BMR.
    """
    height = height_cm or DEFAULT_HEIGHT_CM
    per_day: dict[DateType, dict[HealthKind, float]] = defaultdict(dict)

    for kind in (
        HealthKind.WEIGHT,
        HealthKind.BODY_FAT,
        HealthKind.LEAN_BODY_MASS,
        HealthKind.BMI,
        HealthKind.WAIST,
    ):
        for ts, value in readings.get(kind, ()):
            if kind is HealthKind.WAIST:
                value = normalize_waist_cm(value)
            # later readings on the same day win
            per_day[ts.date()][kind] = value

    metrics: list[BodyMetrics] = []
    for day, data in per_day.items():
        weight = data.get(HealthKind.WEIGHT)
        if weight is None or weight <= 0:
            continue

        body_fat = data.get(HealthKind.BODY_FAT, 0.0)

        if HealthKind.LEAN_BODY_MASS in data:
            lean_mass = data[HealthKind.LEAN_BODY_MASS]
        elif body_fat > 0:
            lean_mass = weight - weight * (body_fat / 100)
        else:
            lean_mass = 0.0

        if HealthKind.BMI in data:
            bmi = data[HealthKind.BMI]
        else:
            height_m = height / 100
            bmi = weight / (height_m * height_m)

        metrics.append(
            BodyMetrics(
                user_id=user_id,
                timestamp=datetime(day.year, day.month, day.day),
                weight=weight,
                body_fat=body_fat,
                skeletal_muscle=lean_mass * SKELETAL_MUSCLE_SHARE if lean_mass > 0 else 0.0,
                bmi=bmi,
                bmr=bmr,
                height=height,
                lean_body_mass=lean_mass,
                waist_circumference=data.get(HealthKind.WAIST),
                source=source,
            )
        )

    metrics.sort(key=lambda m: m.timestamp, reverse=True)
    return metrics


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def build_recovery_metrics(
    day: DateType,
    sleep: Sequence[Sample],
    hrv: Sequence[Sample],
    resting_hr: Sequence[Sample],
) -> RecoveryMetrics:
    """
    Sleep is summed over the day's sessions; HRV and resting HR are averaged.

    Missing values fall back to typical adult figures (7 h, 35 ms, 67 bpm).
    """
    defaulted: list[str] = []

    sleep_hours = sum(v for _, v in sleep)
    if sleep_hours == 0.0:
        sleep_hours = DEFAULT_SLEEP_HOURS
        defaulted.append("sleep_hours")

    avg_hrv = _mean([v for _, v in hrv])
    if avg_hrv == 0.0:
        avg_hrv = DEFAULT_HRV_MS
        defaulted.append("hrv")

    avg_rhr = _mean([v for _, v in resting_hr])
    if avg_rhr == 0.0:
        avg_rhr = DEFAULT_RESTING_HR
        defaulted.append("resting_hr")

    return RecoveryMetrics(
        date=day,
        sleep_hours=sleep_hours,
        hrv=avg_hrv,
        resting_hr=avg_rhr,
        defaulted=defaulted,
    )
