from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from ..config import settings
from ..database import get_db
from ..models.user import UserRole
from ..repositories.stats import StatRepository
from ..services.stat_service import StatService
from ..services.summa import AggregateStore


@dataclass(frozen=True)
class SessionUser:
    """
    Identity stored in the signed session cookie at login.
    """
    user_id: int
    username: str
    role: str
    region_id: int
    region_name: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def get_summa(request: Request) -> AggregateStore:
    return request.app.state.summa


def get_stat_service(
    db: Session = Depends(get_db),
    summa: AggregateStore = Depends(get_summa),
) -> StatService:
    return StatService(
        StatRepository(db),
        summa,
        history_window_days=settings.history_window_days,
    )


def current_user(request: Request) -> SessionUser:
    data = request.session
    user_id = data.get("user_id")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    region_id = int(data.get("region_id") or 0)
    if region_id == 0:
        raise HTTPException(status_code=401, detail="Region is not defined")

    return SessionUser(
        user_id=int(user_id),
        username=str(data.get("username") or ""),
        role=str(data.get("role") or UserRole.USER.value),
        region_id=region_id,
        region_name=str(data.get("region_name") or ""),
    )


def require_admin(user: SessionUser = Depends(current_user)) -> SessionUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
