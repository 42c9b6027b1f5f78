from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Region(SQLModel, table=True):
    """
    A reporting tenant. Users, reports and the in-memory aggregate are all
    scoped to exactly one region.
    """

    __tablename__ = "regions"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True, max_length=128)

    created_at: datetime = Field(default_factory=utcnow)
