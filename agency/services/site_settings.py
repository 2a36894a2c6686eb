from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agency.models.common import DEFAULT_RESPONSIBLE
from agency.models.site_config import SiteConfig


def read_site_value(db: Session, key: str) -> Any:
    """Stored JSON for ``key``; ``None`` when the row does not exist."""
    row = db.query(SiteConfig).filter(SiteConfig.key == key).first()
    return None if row is None else row.value


def write_site_value(db: Session, key: str, value: Any, *, responsible: str | None = None) -> SiteConfig:
    row = db.query(SiteConfig).filter(SiteConfig.key == key).first()
    if row is None:
        row = SiteConfig(key=key)
    row.value = value
    row.responsible = str(responsible or "").strip() or DEFAULT_RESPONSIBLE
    db.add(row)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(row)
    return row
