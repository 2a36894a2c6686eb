from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agency.core.deps import require_admin
from agency.db.session import get_db
from agency.schemas.admin import FaqConfigIn, SiteLockOut, SiteLockUpdate
from agency.services.faq import get_faq, save_faq
from agency.services.site_lock import get_site_lock_enabled, set_site_lock_enabled

router = APIRouter()


@router.get("/faq")
def read_faq(db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    return get_faq(db)


@router.put("/faq")
def update_faq(payload: FaqConfigIn, db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    try:
        return save_faq(db, payload.to_payload(), responsible=str(admin.get("email") or ""))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="Could not save FAQ") from exc


@router.get("/site-lock", response_model=SiteLockOut)
def read_site_lock(db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    try:
        return SiteLockOut(enabled=get_site_lock_enabled(db))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="Could not read site lock") from exc


@router.put("/site-lock", response_model=SiteLockOut)
def update_site_lock(payload: SiteLockUpdate, db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    try:
        enabled = set_site_lock_enabled(db, payload.enabled, responsible=str(admin.get("email") or ""))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="Could not save site lock") from exc
    return SiteLockOut(enabled=enabled)
