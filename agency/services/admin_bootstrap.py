from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agency.core.config import settings
from agency.core.security import ADMIN_ROLE, hash_password, verify_password
from agency.models.admin_user import AdminUser

DEFAULT_ADMIN_NAME = "Site admin"


def normalize_admin_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def get_admin_by_email(db: Session, email: str, *, active_only: bool = True) -> AdminUser | None:
    normalized = normalize_admin_email(email)
    if not normalized:
        return None
    query = db.query(AdminUser).filter(func.lower(AdminUser.email) == normalized)
    if active_only:
        query = query.filter(AdminUser.is_active.is_(True))
    return query.first()


def ensure_bootstrap_admin_for_login(db: Session, email: str, password: str) -> AdminUser | None:
    """Create or repair the configured bootstrap admin when its credentials are used.

    Returns ``None`` unless bootstrap is enabled and both email and password
    match the configured ones.
    """
    if not settings.ADMIN_BOOTSTRAP_ENABLED:
        return None

    bootstrap_email = normalize_admin_email(settings.ADMIN_BOOTSTRAP_EMAIL)
    bootstrap_password = str(settings.ADMIN_BOOTSTRAP_PASSWORD or "")
    if not bootstrap_email or not bootstrap_password:
        return None
    if normalize_admin_email(email) != bootstrap_email or str(password or "") != bootstrap_password:
        return None

    name = str(settings.ADMIN_BOOTSTRAP_NAME or "").strip() or DEFAULT_ADMIN_NAME
    user = get_admin_by_email(db, bootstrap_email, active_only=False)
    if user is None:
        user = AdminUser(
            role=ADMIN_ROLE,
            name=name,
            email=bootstrap_email,
            password_hash=hash_password(bootstrap_password),
            is_active=True,
        )
    else:
        user.role = ADMIN_ROLE
        user.is_active = True
        if not str(user.name or "").strip():
            user.name = name
        if not verify_password(bootstrap_password, str(user.password_hash or "")):
            user.password_hash = hash_password(bootstrap_password)
    db.add(user)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return get_admin_by_email(db, bootstrap_email)
    db.refresh(user)
    return user
