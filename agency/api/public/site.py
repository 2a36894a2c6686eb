from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from agency.api.public.common import client_ip, rate_limit_or_429
from agency.core.config import settings
from agency.db.session import get_db
from agency.schemas.admin import SiteLockOut, SiteUnlockIn
from agency.services.faq import get_faq
from agency.services.rate_limit import unlock_key
from agency.services.site_lock import check_unlock_password, site_lock_enabled_safe

router = APIRouter()

UNLOCK_ATTEMPTS = 10
UNLOCK_WINDOW_SECONDS = 900


@router.get("/faq")
def read_faq(db: Session = Depends(get_db)):
    return get_faq(db)


@router.get("/site-lock", response_model=SiteLockOut)
def read_site_lock(db: Session = Depends(get_db)):
    return SiteLockOut(enabled=site_lock_enabled_safe(db))


@router.post("/site-unlock")
def site_unlock(payload: SiteUnlockIn, request: Request, response: Response, db: Session = Depends(get_db)):
    if not site_lock_enabled_safe(db):
        return {"ok": True}
    rate_limit_or_429(unlock_key(client_ip(request)), limit=UNLOCK_ATTEMPTS, window_seconds=UNLOCK_WINDOW_SECONDS)
    if not check_unlock_password(payload.password):
        raise HTTPException(status_code=401, detail="Incorrect password")
    response.set_cookie(
        key=settings.SITE_UNLOCK_COOKIE,
        value="1",
        max_age=int(settings.SITE_UNLOCK_COOKIE_MAX_AGE_DAYS) * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="lax",
    )
    return {"ok": True}
