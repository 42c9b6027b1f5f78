from __future__ import annotations

from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field as PydField
from sqlmodel import Session, select

from ..database import get_db
from ..errors import BadRequestError, DuplicateUserError, NotFoundError, StatError
from ..models.region import Region
from ..models.user import User, UserRole
from ..services.auth import authenticate, create_user, delete_user, get_user, list_users, update_user
from .deps import SessionUser, current_user, require_admin

router = APIRouter(prefix="/auth", tags=["auth"])


# -----------------------------
# Schemas
# -----------------------------

class LoginRequest(BaseModel):
    username: str = PydField(..., min_length=1)
    password: str = PydField(..., min_length=1)


class UserCreate(BaseModel):
    username: str = PydField(..., min_length=1, max_length=64)
    password: str = PydField(..., min_length=3)
    role: UserRole = UserRole.USER
    region_id: int


class UserPatch(BaseModel):
    """
    Partial update. Any field omitted is left unchanged.
    """
    username: Optional[str] = PydField(default=None, min_length=1, max_length=64)
    password: Optional[str] = PydField(default=None, min_length=3)
    role: Optional[UserRole] = None
    region_id: Optional[int] = None


# -----------------------------
# Helpers
# -----------------------------

def _raise_http(exc: StatError) -> NoReturn:
    if isinstance(exc, BadRequestError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail="User not found")
    if isinstance(exc, DuplicateUserError):
        raise HTTPException(status_code=409, detail="Username already exists")
    raise HTTPException(status_code=500, detail="Database operation failed")


def _user_out(user: User, region_names: Dict[int, str]) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "region_id": user.region_id,
        "region_name": region_names.get(user.region_id, ""),
    }


def _region_names(db: Session) -> Dict[int, str]:
    return {r.id: r.name for r in db.exec(select(Region)).all()}


# -----------------------------
# Session
# -----------------------------

@router.post("/login")
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    user = authenticate(db, payload.username.strip(), payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    region = db.get(Region, user.region_id)
    region_name = region.name if region else ""

    request.session.clear()
    request.session.update(
        {
            "user_id": user.id,
            "username": user.username,
            "role": user.role.value,
            "region_id": user.region_id,
            "region_name": region_name,
        }
    )

    return {
        "success": True,
        "user_id": user.id,
        "username": user.username,
        "role": user.role.value,
        "region_id": user.region_id,
        "region_name": region_name,
    }


@router.post("/logout")
def logout(request: Request) -> Dict[str, Any]:
    request.session.clear()
    return {"success": True}


@router.get("/me")
def me(user: SessionUser = Depends(current_user)) -> Dict[str, Any]:
    return {
        "success": True,
        "user_id": user.user_id,
        "username": user.username,
        "role": user.role,
        "region_id": user.region_id,
        "region_name": user.region_name,
    }


@router.get("/regions")
def list_regions(
    _: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    regions = db.exec(select(Region).order_by(Region.name)).all()
    return [{"id": r.id, "name": r.name} for r in regions]


# -----------------------------
# User management (admin only)
# -----------------------------

@router.get("/users")
def get_users(
    _: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    names = _region_names(db)
    return [_user_out(u, names) for u in list_users(db)]


@router.get("/users/{user_id}")
def get_user_by_id(
    user_id: int,
    _: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        user = get_user(db, user_id)
    except StatError as exc:
        _raise_http(exc)
    return _user_out(user, _region_names(db))


@router.post("/users", status_code=201)
def post_user(
    payload: UserCreate,
    _: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        user = create_user(
            db,
            username=payload.username,
            password=payload.password,
            region_id=payload.region_id,
            role=payload.role,
        )
    except StatError as exc:
        _raise_http(exc)
    return {"success": True, "user": _user_out(user, _region_names(db))}


@router.patch("/users/{user_id}")
def patch_user(
    user_id: int,
    payload: UserPatch,
    _: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        user = update_user(db, user_id, **payload.model_dump(exclude_none=True))
    except StatError as exc:
        _raise_http(exc)
    return {"success": True, "user": _user_out(user, _region_names(db))}


@router.delete("/users/{user_id}")
def remove_user(
    user_id: int,
    _: SessionUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        delete_user(db, user_id)
    except StatError as exc:
        _raise_http(exc)
    return {"success": True}
