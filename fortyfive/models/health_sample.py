from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint

from fortyfive.core.db import Base


class HealthSample(Base):
    """Raw reading from Apple Health, already converted to canonical units."""

    __tablename__ = "health_samples"
    __table_args__ = (
        UniqueConstraint("user_id", "kind", "timestamp", "source", name="uq_health_sample"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    kind = Column(String(32), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    value = Column(Float, nullable=False)
    unit = Column(String(16))
    source = Column(String(64), default="apple_health")

    created_at = Column(DateTime, default=datetime.utcnow)
