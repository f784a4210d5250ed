"""Read side of the raw health-sample store.

This is the boundary where data-source failures stop: every call returns a
Result, and a database error becomes SOURCE_UNAVAILABLE instead of an
exception.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fortyfive.core.errors import ErrorKind, Result
from fortyfive.core.schemas import HealthKind, Sample
from fortyfive.models.health_sample import HealthSample

logger = logging.getLogger(__name__)

_KNOWN_KINDS = {k.value for k in HealthKind}


class HealthSource:
    def __init__(self, db: Session):
        self.db = db

    def fetch(
        self,
        user_id: str,
        kind: HealthKind | str,
        start: datetime,
        end: datetime,
    ) -> Result[list[Sample]]:
        """(timestamp, value) pairs with start <= timestamp <= end, oldest first."""
        kind_value = kind.value if isinstance(kind, HealthKind) else str(kind)
        if kind_value not in _KNOWN_KINDS:
            logger.debug("Unknown health kind %r requested; returning no samples", kind_value)
            return Result.success([])

        try:
            rows = (
                self.db.query(HealthSample.timestamp, HealthSample.value)
                .filter(HealthSample.user_id == user_id)
                .filter(HealthSample.kind == kind_value)
                .filter(HealthSample.timestamp >= start)
                .filter(HealthSample.timestamp <= end)
                .order_by(HealthSample.timestamp)
                .all()
            )
        except SQLAlchemyError as e:
            logger.warning("Health source unavailable for %s/%s: %s", user_id, kind_value, e)
            return Result.failure(ErrorKind.SOURCE_UNAVAILABLE, str(e))

        return Result.success([(ts, float(v)) for ts, v in rows])

    def fetch_many(
        self,
        user_id: str,
        kinds: list[HealthKind],
        start: datetime,
        end: datetime,
    ) -> dict[HealthKind, list[Sample]]:
        """Fetch several kinds at once; a failed kind contributes no samples."""
        return {k: self.fetch(user_id, k, start, end).unwrap_or([]) for k in kinds}

    def latest(self, user_id: str, kind: HealthKind) -> Result[Sample | None]:
        """Most recent reading of a kind, or a successful None when there is none."""
        try:
            row = (
                self.db.query(HealthSample.timestamp, HealthSample.value)
                .filter(HealthSample.user_id == user_id)
                .filter(HealthSample.kind == kind.value)
                .order_by(HealthSample.timestamp.desc())
                .first()
            )
        except SQLAlchemyError as e:
            logger.warning("Health source unavailable for %s/%s: %s", user_id, kind.value, e)
            return Result.failure(ErrorKind.SOURCE_UNAVAILABLE, str(e))

        if row is None:
            return Result.success(None)
        return Result.success((row[0], float(row[1])))
