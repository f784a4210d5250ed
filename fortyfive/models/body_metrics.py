# fortyfive/models/body_metrics.py

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, Integer, String, UniqueConstraint

from fortyfive.core.db import Base


class BodyMetricsEntry(Base):
    """
    Authoritative body-composition snapshot for one user and calendar day.
    A more complete reading for the same day replaces the row in place.
    """

    __tablename__ = "body_metrics"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_body_metrics_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    # When the measurement happened
    timestamp = Column(DateTime, nullable=False)
    # Calendar day the snapshot belongs to
    date = Column(Date, nullable=False, index=True)

    weight_kg = Column(Float, nullable=False)
    body_fat_pct = Column(Float, default=0.0)
    skeletal_muscle_kg = Column(Float, default=0.0)
    bmi = Column(Float, default=0.0)
    bmr_kcal = Column(Integer, default=0)

    height_cm = Column(Float)
    lean_body_mass_kg = Column(Float)
    waist_cm = Column(Float)

    # apple_health, manual, scale, ...
    source = Column(String(64), default="manual")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
