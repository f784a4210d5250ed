from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError, model_validator
from sqlalchemy.orm import Session

from fortyfive.api.deps import parse_date
from fortyfive.core import store
from fortyfive.core.db import get_db
from fortyfive.core.preprocessing import deduplicate_body_metrics
from fortyfive.core.schemas import BodyMetrics
from fortyfive.core.sync import sync_body_metrics
from fortyfive.core.units import kg_to_lb, lb_to_kg, normalize_height_cm, normalize_waist_cm

router = APIRouter(prefix="/users/{user_id}/body-metrics", tags=["body-metrics"])


# ---------- Pydantic schemas ----------

class BodyMetricsIn(BaseModel):
    timestamp: datetime = Field(..., description="ISO8601 timestamp of measurement")

    # Weight, either unit
    weight_kg: float | None = None
    weight_lb: float | None = None

    body_fat_pct: float | None = None
    skeletal_muscle_kg: float | None = None
    bmi: float | None = None
    bmr_kcal: int | None = None

    height_cm: float | None = None
    lean_body_mass_kg: float | None = None
    waist_cm: float | None = None

    source: str | None = "manual"

    @model_validator(mode="after")
    def validate_weight_positive(self):
        if self.weight_kg is None and self.weight_lb is None:
            raise ValueError("weight_kg or weight_lb is required")
        if self.weight_kg is not None and self.weight_kg <= 0:
            raise ValueError("weight_kg must be greater than 0 when provided")
        if self.weight_lb is not None and self.weight_lb <= 0:
            raise ValueError("weight_lb must be greater than 0 when provided")
        return self

    def to_metrics(self, user_id: str) -> BodyMetrics:
        weight = self.weight_kg if self.weight_kg is not None else lb_to_kg(self.weight_lb)
        return BodyMetrics(
            user_id=user_id,
            timestamp=self.timestamp.replace(tzinfo=None),
            weight=weight,
            body_fat=self.body_fat_pct or 0.0,
            skeletal_muscle=self.skeletal_muscle_kg or 0.0,
            bmi=self.bmi or 0.0,
            bmr=self.bmr_kcal or 0,
            height=normalize_height_cm(self.height_cm),
            lean_body_mass=self.lean_body_mass_kg,
            waist_circumference=normalize_waist_cm(self.waist_cm),
            source=self.source or "manual",
        )


class BodyMetricsBatchIn(BaseModel):
    measurements: list[BodyMetricsIn]


def _serialize(m: BodyMetrics) -> dict:
    return {
        "date": m.day.isoformat(),
        "timestamp": m.timestamp.isoformat(),
        "weight_kg": m.weight,
        "weight_lb": kg_to_lb(m.weight),
        "body_fat_pct": m.body_fat,
        "skeletal_muscle_kg": m.skeletal_muscle,
        "bmi": m.bmi,
        "bmr_kcal": m.bmr,
        "height_cm": m.height,
        "lean_body_mass_kg": m.calculated_lean_body_mass,
        "waist_cm": m.waist_circumference,
        "source": m.source,
    }


# ---------- Endpoints ----------

@router.post("/ingest")
def ingest_body_metrics(user_id: str, payload: BodyMetricsBatchIn, db: Session = Depends(get_db)):
    """
    Store manual or scale measurements. Several readings for the same day
    collapse to the most complete one.
    """
    try:
        metrics = [m.to_metrics(user_id) for m in payload.measurements]
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    kept = deduplicate_body_metrics(metrics)
    for m in kept:
        store.upsert_body_metrics(db, user_id, m)
    db.commit()

    return {
        "status": "ok",
        "received": len(metrics),
        "saved": len(kept),
        "dates": sorted(m.day.isoformat() for m in kept),
    }


@router.post("/sync")
def sync(
    user_id: str,
    start: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to the latest stored day"),
    end: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: Session = Depends(get_db),
):
    """Rebuild daily body metrics from the ingested Apple Health samples."""
    start_dt = datetime.combine(parse_date(start), datetime.min.time()) if start else None
    end_dt = datetime.combine(parse_date(end), datetime.max.time()) if end else None
    if start_dt and end_dt and start_dt > end_dt:
        raise HTTPException(status_code=400, detail="start must not be after end")

    result = sync_body_metrics(db, user_id, start_dt, end_dt)
    db.commit()
    return {"status": "ok", "days": result.days, "bmr_kcal": result.bmr}


@router.get("/dates")
def list_body_metric_dates(user_id: str, db: Session = Depends(get_db)):
    """
    Return all dates (YYYY-MM-DD) where we have a body-metrics snapshot.
    """
    dates = [d.isoformat() for d in store.list_body_metric_dates(db, user_id)]
    return {"status": "ok", "dates": dates}


@router.get("/daily/{date_str}")
def get_body_metrics_for_date(user_id: str, date_str: str, db: Session = Depends(get_db)):
    target_date = parse_date(date_str)
    m = store.get_body_metrics_for_date(db, user_id, target_date)
    if not m:
        return {"status": "ok", "date": target_date.isoformat(), "found": False}
    return {"status": "ok", "found": True, **_serialize(m)}


@router.get("/latest")
def get_latest_body_metrics(user_id: str, db: Session = Depends(get_db)):
    m = store.get_latest_body_metrics(db, user_id)
    if not m:
        raise HTTPException(404, "No body metrics recorded")
    return {"status": "ok", **_serialize(m)}


@router.get("/range")
def get_body_metrics_range(
    user_id: str,
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start must not be after end")

    metrics = store.get_body_metrics_range(db, user_id, start_date, end_date)
    return {"status": "ok", "count": len(metrics), "items": [_serialize(m) for m in metrics]}
