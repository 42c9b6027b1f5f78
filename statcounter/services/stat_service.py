from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, List, Mapping, Optional

from ..errors import BadRequestError
from ..models.stat_daily import NUMERIC_FIELDS, StatDaily
from ..repositories.stats import StatRepository
from .summa import AggregateStore


def today_local() -> date:
    return datetime.now().astimezone().date()


def parse_report_date(raw: Optional[str], *, today: date, window_days: int) -> date:
    """
    Validate a YYYY-MM-DD query date that must fall within the last
    `window_days` days.
    """
    if not raw:
        raise BadRequestError("Date parameter is required (format: YYYY-MM-DD)")
    try:
        day = datetime.strptime(raw.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise BadRequestError("Invalid date format. Use YYYY-MM-DD")

    if day < today - timedelta(days=window_days):
        raise BadRequestError(f"Requested date is older than {window_days} days")
    return day


class StatService:
    """
    Report submission and correction.

    Ordering is always persist first, aggregate second: if the repository
    raises, the aggregate is never touched.
    """

    def __init__(
        self,
        repository: StatRepository,
        summa: AggregateStore,
        *,
        history_window_days: int = 30,
    ) -> None:
        self.repository = repository
        self.summa = summa
        self.history_window_days = history_window_days

    def submit(
        self,
        region_id: int,
        name: str,
        values: Mapping[str, Any],
        *,
        today: Optional[date] = None,
    ) -> StatDaily:
        report = StatDaily(
            region_id=region_id,
            name=name,
            report_date=today or today_local(),
            **{k: values[k] for k in NUMERIC_FIELDS if values.get(k) is not None},
        )
        saved = self.repository.create(report)
        self.summa.add(region_id, saved)
        return saved

    def correct(
        self,
        region_id: int,
        name: str,
        changes: Mapping[str, Any],
        *,
        today: Optional[date] = None,
    ) -> StatDaily:
        """
        Patch today's report for `name`. The repository hands back the stored
        values it replaced, read under a row lock where the database has one.
        On SQLite two overlapping corrections of the same report can read the
        same old values; the aggregate then drifts until the next purge.
        """
        old, updated = self.repository.update(region_id, name, today or today_local(), changes)
        self.summa.update(region_id, old, updated)
        return updated

    def reports_for_today(
        self,
        region_id: int,
        *,
        name: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[StatDaily]:
        return self.repository.list_for_day(region_id, today or today_local(), name=name)

    def reports_for_date(
        self,
        region_id: int,
        raw_date: Optional[str],
        *,
        name: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[StatDaily]:
        day = parse_report_date(
            raw_date,
            today=today or today_local(),
            window_days=self.history_window_days,
        )
        return self.repository.list_for_day(region_id, day, name=name)
