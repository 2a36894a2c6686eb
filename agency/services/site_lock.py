from __future__ import annotations

import hmac
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agency.core.config import settings
from agency.db.session import SessionLocal
from agency.services.site_settings import read_site_value, write_site_value

_LOG = logging.getLogger("agency.site_gate")

SITE_LOCK_KEY = "site_lock"


def get_site_lock_enabled(db: Session) -> bool:
    value = read_site_value(db, SITE_LOCK_KEY)
    if isinstance(value, dict):
        return value.get("enabled") is True
    return False


def set_site_lock_enabled(db: Session, enabled: bool, *, responsible: str | None = None) -> bool:
    write_site_value(db, SITE_LOCK_KEY, {"enabled": bool(enabled)}, responsible=responsible)
    return bool(enabled)


def site_lock_enabled_safe(db: Session) -> bool:
    """Lock flag for public callers; a failed lookup reads as unlocked."""
    try:
        return get_site_lock_enabled(db)
    except SQLAlchemyError as exc:
        _LOG.error("site lock lookup failed, treating site as unlocked: %s", exc)
        db.rollback()
        return False


def lookup_site_lock() -> bool:
    """Session-owning lookup used by the gate middleware."""
    db = SessionLocal()
    try:
        return site_lock_enabled_safe(db)
    finally:
        db.close()


def check_unlock_password(candidate: str | None) -> bool:
    expected = str(settings.SITE_LOCK_PASSWORD or "")
    if not expected:
        return False
    return hmac.compare_digest(str(candidate or "").encode("utf-8"), expected.encode("utf-8"))
