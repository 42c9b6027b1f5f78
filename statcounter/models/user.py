from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class User(SQLModel, table=True):
    """
    A person who submits daily reports for their region.

    Notes:
    - username doubles as the submitter key on StatDaily.name
    - password_hash is a pbkdf2 string produced by services.auth.hash_password
    """

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)

    username: str = Field(index=True, unique=True, max_length=64)
    password_hash: str = Field(max_length=256)
    role: UserRole = Field(default=UserRole.USER, index=True)

    region_id: int = Field(foreign_key="regions.id", index=True)

    created_at: datetime = Field(default_factory=utcnow)
