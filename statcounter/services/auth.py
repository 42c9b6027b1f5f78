from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select
from werkzeug.security import check_password_hash, generate_password_hash

from ..errors import BadRequestError, DuplicateUserError, NotFoundError, StorageError
from ..models.region import Region
from ..models.user import User, UserRole

logger = logging.getLogger(__name__)

_METHOD = "pbkdf2:sha256"


def hash_password(password: str, *, iterations: Optional[int] = None) -> str:
    """
    Hash in werkzeug's pbkdf2:sha256:<iterations>$<salt>$<hex> form.
    `iterations` defaults to werkzeug's own work factor.
    """
    if not password:
        raise ValueError("password is required")
    method = f"{_METHOD}:{iterations}" if iterations else _METHOD
    return generate_password_hash(password, method=method, salt_length=16)


def verify_password(pwhash: str, password: str) -> bool:
    if not pwhash or not password:
        return False
    try:
        return check_password_hash(pwhash, password)
    except ValueError:
        # unknown hash method
        return False


def authenticate(session: Session, username: str, password: str) -> Optional[User]:
    """
    Return the user when the credentials match, else None.
    Unknown usernames and bad passwords are indistinguishable to the caller.
    """
    user = session.exec(select(User).where(User.username == username)).first()
    if user is None or not verify_password(user.password_hash, password):
        logger.info("login failed for username=%r", username)
        return None

    logger.info("login ok username=%r role=%s region_id=%s", user.username, user.role.value, user.region_id)
    return user


# -----------------------------
# User management (admin)
# -----------------------------

def _clean_username(raw: str) -> str:
    username = (raw or "").strip()
    if not username:
        raise BadRequestError("username is required")
    return username


def _require_region(session: Session, region_id: int) -> Region:
    region = session.get(Region, region_id)
    if region is None:
        raise BadRequestError(f"region {region_id} not found")
    return region


def _save(session: Session, user: User, action: str) -> User:
    username = user.username
    try:
        session.add(user)
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise DuplicateUserError(f"username {username!r} is already taken") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(f"failed to {action} user {username!r}: {exc}") from exc

    session.refresh(user)
    return user


def list_users(session: Session) -> List[User]:
    return list(session.exec(select(User).order_by(User.username)).all())


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"user {user_id} not found")
    return user


def create_user(
    session: Session,
    *,
    username: str,
    password: str,
    region_id: int,
    role: UserRole = UserRole.USER,
) -> User:
    """
    Create a user in an existing region.

    Raises BadRequestError for an unknown region and DuplicateUserError when
    the username is taken.
    """
    _require_region(session, region_id)
    user = User(
        username=_clean_username(username),
        password_hash=hash_password(password),
        role=role,
        region_id=region_id,
    )
    user = _save(session, user, "create")
    logger.info("user created username=%r role=%s region_id=%s", user.username, user.role.value, user.region_id)
    return user


def update_user(
    session: Session,
    user_id: int,
    *,
    username: Optional[str] = None,
    password: Optional[str] = None,
    region_id: Optional[int] = None,
    role: Optional[UserRole] = None,
) -> User:
    """Partial update: None leaves a field unchanged."""
    user = get_user(session, user_id)

    if region_id is not None:
        _require_region(session, region_id)
        user.region_id = region_id
    if username is not None:
        user.username = _clean_username(username)
    if password is not None:
        user.password_hash = hash_password(password)
    if role is not None:
        user.role = role

    user = _save(session, user, "update")
    logger.info("user updated id=%s username=%r", user.id, user.username)
    return user


def delete_user(session: Session, user_id: int) -> None:
    user = get_user(session, user_id)
    try:
        session.delete(user)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(f"failed to delete user {user_id}: {exc}") from exc
    logger.info("user deleted id=%s", user_id)
