from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, Integer, String, UniqueConstraint

from fortyfive.core.db import Base


class NutritionLog(Base):
    """
    Meals eaten by one user on one calendar day, with a copy of the target
    they were logged against.
    """

    __tablename__ = "nutrition_logs"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_nutrition_log_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    target_calories = Column(Integer, nullable=False)
    target_protein_g = Column(Float, nullable=False)
    target_carbs_g = Column(Float, nullable=False)
    target_fats_g = Column(Float, nullable=False)

    # Consumed calories, kept alongside the meals for range averages
    actual_calories = Column(Integer, default=0)
    meals = Column(JSON, nullable=False, default=list)

    workout_completed = Column(Boolean, default=False)
    notes = Column(String(500))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
