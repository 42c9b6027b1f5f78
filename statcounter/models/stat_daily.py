from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import UniqueConstraint, event
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Plan/fact/difference triples, summed with 2-decimal rounding.
FLOAT_FIELDS: Tuple[str, ...] = (
    "seed_plan",
    "seed_fact",
    "seed_dif",
    "pumpkin_plan",
    "pumpkin_fact",
    "pumpkin_dif",
    "peanut_plan",
    "peanut_fact",
    "peanut_dif",
)

# Independent counters, summed exactly.
INT_FIELDS: Tuple[str, ...] = (
    "akb1",
    "akb2",
    "newtt",
    "mix",
    "npone",
    "set_shelving",
    "dmp",
    "top_five",
    "news",
)

NUMERIC_FIELDS: Tuple[str, ...] = FLOAT_FIELDS + INT_FIELDS


class StatDaily(SQLModel, table=True):
    """
    One daily report from one submitter in one region.

    The *_dif columns are always fact - plan. They are recomputed on every
    insert and update, so whatever a client sends for them is ignored.
    """

    __tablename__ = "stat_daily"
    __table_args__ = (
        # At most one report per submitter per region per calendar day.
        UniqueConstraint("region_id", "name", "report_date", name="uq_statdaily_region_name_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    region_id: int = Field(foreign_key="regions.id", index=True)
    name: str = Field(index=True, max_length=64)
    report_date: date = Field(index=True)

    seed_plan: float = Field(default=0.0)
    seed_fact: float = Field(default=0.0)
    seed_dif: float = Field(default=0.0)

    pumpkin_plan: float = Field(default=0.0)
    pumpkin_fact: float = Field(default=0.0)
    pumpkin_dif: float = Field(default=0.0)

    peanut_plan: float = Field(default=0.0)
    peanut_fact: float = Field(default=0.0)
    peanut_dif: float = Field(default=0.0)

    akb1: int = Field(default=0)
    akb2: int = Field(default=0)
    newtt: int = Field(default=0)
    mix: int = Field(default=0)
    npone: int = Field(default=0)
    set_shelving: int = Field(default=0)
    dmp: int = Field(default=0)
    top_five: int = Field(default=0)
    news: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def compute_differences(self) -> None:
        self.seed_dif = (self.seed_fact or 0.0) - (self.seed_plan or 0.0)
        self.pumpkin_dif = (self.pumpkin_fact or 0.0) - (self.pumpkin_plan or 0.0)
        self.peanut_dif = (self.peanut_fact or 0.0) - (self.peanut_plan or 0.0)


@event.listens_for(StatDaily, "before_insert")
def _statdaily_before_insert(mapper, connection, target: StatDaily) -> None:  # noqa: ANN001
    target.compute_differences()


@event.listens_for(StatDaily, "before_update")
def _statdaily_before_update(mapper, connection, target: StatDaily) -> None:  # noqa: ANN001
    target.compute_differences()
