from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..database import session_scope
from ..errors import DuplicateSubmissionError, NotFoundError, StorageError
from ..models.stat_daily import NUMERIC_FIELDS, StatDaily
from ..services.summa import RegionAggregate

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatRepository:
    """
    Persistence for daily reports.

    Every method commits (or rolls back) before returning, so callers can
    update the in-memory aggregate knowing the row is durable. SQLAlchemy
    errors never escape: they are translated into statcounter.errors.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, report: StatDaily) -> StatDaily:
        try:
            self.session.add(report)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateSubmissionError(
                f"report already exists for region={report.region_id} "
                f"name={report.name!r} date={report.report_date}"
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"failed to save report: {exc}") from exc

        self.session.refresh(report)
        return report

    def get_one(
        self,
        region_id: int,
        name: str,
        report_date: date,
        *,
        for_update: bool = False,
    ) -> StatDaily:
        q = select(StatDaily).where(
            StatDaily.region_id == region_id,
            StatDaily.name == name,
            StatDaily.report_date == report_date,
        )
        if for_update:
            # SELECT ... FOR UPDATE where supported; SQLite ignores it.
            q = q.with_for_update().execution_options(populate_existing=True)
        try:
            row = self.session.exec(q).first()
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to load report: {exc}") from exc

        if row is None:
            raise NotFoundError(f"no report for region={region_id} name={name!r} date={report_date}")
        return row

    def update(
        self,
        region_id: int,
        name: str,
        report_date: date,
        changes: Mapping[str, Any],
    ) -> Tuple[RegionAggregate, StatDaily]:
        """
        Apply numeric changes to one report.

        Returns (values before the update, updated row). Fields absent from
        `changes` keep their stored value; differences are recomputed by the
        model's update hook from the merged plan/fact values.

        The row is read with a row lock, so on Postgres concurrent corrections
        of one report serialize and each sees the other's result as its old
        values. SQLite has no row locks: two overlapping corrections can both
        read the same old values and the aggregate drifts until the next purge.
        """
        row = self.get_one(region_id, name, report_date, for_update=True)
        old = RegionAggregate.from_values(row)

        for field in NUMERIC_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(row, field, changes[field])
        row.updated_at = utcnow()

        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"failed to update report: {exc}") from exc

        self.session.refresh(row)
        return old, row

    def delete_older_than(self, cutoff: date) -> int:
        """Delete every report dated strictly before `cutoff`."""
        try:
            result = self.session.execute(delete(StatDaily).where(StatDaily.report_date < cutoff))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"failed to delete reports older than {cutoff}: {exc}") from exc

        return int(result.rowcount or 0)

    def list_for_day(
        self,
        region_id: int,
        day: date,
        name: Optional[str] = None,
    ) -> List[StatDaily]:
        q = select(StatDaily).where(
            StatDaily.region_id == region_id,
            StatDaily.report_date == day,
        )
        if name:
            q = q.where(StatDaily.name == name)
        q = q.order_by(StatDaily.name)

        try:
            rows = list(self.session.exec(q).all())
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to list reports: {exc}") from exc

        if not rows:
            raise NotFoundError(f"no reports for region={region_id} date={day}")
        return rows


def delete_stats_older_than(cutoff: date, bind: Optional[Engine] = None) -> int:
    """
    Standalone purge for the background retention job, which has no request
    session of its own.
    """
    with session_scope(bind) as db:
        deleted = StatRepository(db).delete_older_than(cutoff)
    logger.debug("purged %s reports dated before %s", deleted, cutoff)
    return deleted
