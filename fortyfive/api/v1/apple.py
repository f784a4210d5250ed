from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, Iterator

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fortyfive.core.db import get_db
from fortyfive.core.errors import ErrorKind
from fortyfive.core.schemas import HealthKind
from fortyfive.core.sync import BODY_KINDS, sync_body_metrics
from fortyfive.core.units import (
    normalize_height_cm,
    normalize_waist_cm,
    to_cm,
    to_hours,
    to_kcal,
    to_kg,
)
from fortyfive.models.health_sample import HealthSample

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users/{user_id}", tags=["apple-health"])


def _as_float(value: Any, unit: str | None) -> float | None:
    if value is None or not isinstance(value, (int, float)):
        return None
    return float(value)


def _waist(value: Any, unit: str | None) -> float | None:
    if unit:
        return to_cm(value, unit)
    return normalize_waist_cm(_as_float(value, unit))


def _height(value: Any, unit: str | None) -> float | None:
    if unit:
        return to_cm(value, unit)
    return normalize_height_cm(_as_float(value, unit))


# Health Auto Export type name -> (kind, converter to canonical units)
# readings of these kinds must be > 0
_POSITIVE_KINDS = {
    HealthKind.WEIGHT,
    HealthKind.LEAN_BODY_MASS,
    HealthKind.BMI,
    HealthKind.WAIST,
    HealthKind.HEIGHT,
}

_TYPES: Dict[str, tuple[HealthKind, Callable[[Any, str | None], float | None]]] = {
    "BodyMass": (HealthKind.WEIGHT, to_kg),
    "weight_body_mass": (HealthKind.WEIGHT, to_kg),
    "BodyFatPercentage": (HealthKind.BODY_FAT, _as_float),
    "body_fat_percentage": (HealthKind.BODY_FAT, _as_float),
    "LeanBodyMass": (HealthKind.LEAN_BODY_MASS, to_kg),
    "lean_body_mass": (HealthKind.LEAN_BODY_MASS, to_kg),
    "BodyMassIndex": (HealthKind.BMI, _as_float),
    "body_mass_index": (HealthKind.BMI, _as_float),
    "WaistCircumference": (HealthKind.WAIST, _waist),
    "waist_circumference": (HealthKind.WAIST, _waist),
    "Height": (HealthKind.HEIGHT, _height),
    "height": (HealthKind.HEIGHT, _height),
    "BasalEnergyBurned": (HealthKind.BASAL_ENERGY, to_kcal),
    "basal_energy_burned": (HealthKind.BASAL_ENERGY, to_kcal),
    "ActiveEnergyBurned": (HealthKind.ACTIVE_ENERGY, to_kcal),
    "active_energy": (HealthKind.ACTIVE_ENERGY, to_kcal),
    "SleepAnalysis": (HealthKind.SLEEP, to_hours),
    "sleep_analysis": (HealthKind.SLEEP, to_hours),
    "HeartRateVariabilitySDNN": (HealthKind.HRV, _as_float),
    "heart_rate_variability": (HealthKind.HRV, _as_float),
    "RestingHeartRate": (HealthKind.RESTING_HEART_RATE, _as_float),
    "resting_heart_rate": (HealthKind.RESTING_HEART_RATE, _as_float),
}


def _parse_dt(dt_str: str | None) -> datetime | None:
    """ISO-8601 or Auto Export's "2024-01-15 07:30:00 -0500"; returned as naive wall-clock time."""
    if not dt_str or not isinstance(dt_str, str):
        return None
    if dt_str.endswith("Z"):
        dt_str = dt_str[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(dt_str)
    except ValueError:
        try:
            dt = datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S %z")
        except ValueError:
            return None
    return dt.replace(tzinfo=None)


def _record_value(rec: Dict[str, Any]) -> Any:
    for key in ("value", "qty", "totalSleep", "asleep"):
        if rec.get(key) is not None:
            return rec[key]
    return None


def _iter_records(payload: Dict[str, Any]) -> Iterator[tuple[str, Dict[str, Any], str | None]]:
    """
    Yield (type name, record, unit) from either payload shape:
    {TypeName: [records]} or Auto Export's {"data": {"metrics": [{name, units, data}]}}.
    """
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("metrics"), list):
        for metric in data["metrics"]:
            if not isinstance(metric, dict):
                continue
            for rec in metric.get("data") or []:
                if isinstance(rec, dict):
                    yield metric.get("name", ""), rec, rec.get("unit") or metric.get("units")
        return

    for data_type, records in payload.items():
        if not isinstance(records, list):
            continue
        for rec in records:
            if isinstance(rec, dict):
                yield data_type, rec, rec.get("unit")


@router.post("/apple-health")
def apple_health(
    user_id: str,
    payload: Dict[str, Any],
    sync: bool = Query(True, description="Rebuild daily body metrics for the ingested days"),
    db: Session = Depends(get_db),
):
    """
    Ingest a Health Auto Export JSON payload as raw samples in canonical units.
    Re-sending the same reading updates it instead of duplicating it.
    """
    rows: Dict[tuple, HealthSample] = {}
    skipped = 0
    rejected: Counter = Counter()
    body_days: set = set()

    for data_type, rec, unit in _iter_records(payload):
        mapping = _TYPES.get(data_type)
        dt = _parse_dt(rec.get("date") or rec.get("startDate"))
        if mapping is None or dt is None:
            skipped += 1
            continue

        kind, convert = mapping
        value = convert(_record_value(rec), unit)
        if value is None:
            skipped += 1
            continue
        if kind in _POSITIVE_KINDS and value <= 0:
            rejected[ErrorKind.IMPLAUSIBLE_VALUE.value] += 1
            continue

        source = rec.get("source") or "apple_health"
        key = (kind.value, dt, source)
        row = rows.get(key)
        if row is None:
            row = (
                db.query(HealthSample)
                .filter(HealthSample.user_id == user_id)
                .filter(HealthSample.kind == kind.value)
                .filter(HealthSample.timestamp == dt)
                .filter(HealthSample.source == source)
                .one_or_none()
            )
        if row is None:
            row = HealthSample(user_id=user_id, kind=kind.value, timestamp=dt, source=source)
            db.add(row)
        row.value = value
        row.unit = unit
        rows[key] = row

        if kind in BODY_KINDS:
            body_days.add(dt.date())

    try:
        db.flush()
        synced_days = 0
        if sync and body_days:
            start = datetime.combine(min(body_days), datetime.min.time())
            end = datetime.combine(max(body_days), datetime.max.time())
            synced_days = sync_body_metrics(db, user_id, start, end).days
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Apple ingest for %s failed: %s", user_id, e)
        raise HTTPException(status_code=500, detail=f"Apple ingest failed: {e}")

    logger.info("Apple ingest for %s: %s samples, %s skipped", user_id, len(rows), skipped)
    return {
        "status": "ok",
        "stored": len(rows),
        "skipped": skipped,
        "rejected": dict(rejected),
        "synced_days": synced_days,
        "dates": sorted({k[1].date().isoformat() for k in rows}),
    }
