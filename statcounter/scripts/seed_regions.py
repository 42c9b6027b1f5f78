from __future__ import annotations

import os
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from statcounter.database import init_db, session_scope
from statcounter.models.region import Region
from statcounter.models.user import User, UserRole
from statcounter.services.auth import hash_password


DEFAULT_REGIONS: List[str] = ["Krasnodar", "Rostov", "Stavropol"]


def _split_csv(raw: str) -> List[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


def parse_users(raw: str) -> List[Tuple[str, str, str, UserRole]]:
    """
    Parse SEED_USERS entries of the form username:password:region[:role].
    Malformed entries are skipped.
    """
    users: List[Tuple[str, str, str, UserRole]] = []
    for token in _split_csv(raw):
        parts = [p.strip() for p in token.split(":")]
        if len(parts) not in (3, 4) or not all(parts[:3]):
            print(f"skipping malformed SEED_USERS entry: {token!r}")
            continue
        role = UserRole.USER
        if len(parts) == 4:
            try:
                role = UserRole(parts[3].lower())
            except ValueError:
                print(f"skipping {parts[0]!r}: unknown role {parts[3]!r}")
                continue
        users.append((parts[0], parts[1], parts[2], role))
    return users


def upsert_region(session: Session, name: str) -> Region:
    existing: Optional[Region] = session.exec(select(Region).where(Region.name == name)).first()
    if existing:
        return existing

    region = Region(name=name)
    session.add(region)
    session.flush()
    return region


def upsert_user(
    session: Session,
    username: str,
    password: str,
    region: Region,
    role: UserRole = UserRole.USER,
) -> User:
    """
    Create the user or refresh password/role/region on an existing one.
    """
    existing: Optional[User] = session.exec(select(User).where(User.username == username)).first()
    if existing:
        existing.password_hash = hash_password(password)
        existing.role = role
        existing.region_id = region.id
        session.add(existing)
        return existing

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        region_id=region.id,
    )
    session.add(user)
    return user


def main() -> None:
    init_db()

    region_names = _split_csv(os.getenv("SEED_REGIONS", "")) or DEFAULT_REGIONS
    users = parse_users(os.getenv("SEED_USERS", ""))
    admin_username = os.getenv("SEED_ADMIN_USERNAME", "admin").strip() or "admin"
    admin_password = os.getenv("SEED_ADMIN_PASSWORD", "").strip()

    with session_scope() as session:
        regions = {name: upsert_region(session, name) for name in region_names}

        for username, password, region_name, role in users:
            region = regions.get(region_name) or upsert_region(session, region_name)
            regions[region_name] = region
            upsert_user(session, username, password, region, role)

        if admin_password:
            upsert_user(session, admin_username, admin_password, regions[region_names[0]], UserRole.ADMIN)

        total_regions = len(session.exec(select(Region)).all())
        total_users = len(session.exec(select(User)).all())

    print(f"Seeded/updated regions: {total_regions} (users: {total_users})")
    if not admin_password:
        print("SEED_ADMIN_PASSWORD not set; admin user left unchanged.")


if __name__ == "__main__":
    main()
