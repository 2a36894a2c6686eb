from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from agency.core.config import settings
from agency.core.deps import get_current_admin
from agency.core.security import create_admin_token, hash_password, verify_password
from agency.db.session import get_db
from agency.models.admin_user import AdminUser
from agency.schemas.admin import AdminLogin, AdminMe, AdminPasswordChange, AdminToken
from agency.services.admin_bootstrap import (
    ensure_bootstrap_admin_for_login,
    get_admin_by_email,
    normalize_admin_email,
)

router = APIRouter()


def _require_user(db: Session, user_id: str) -> AdminUser:
    try:
        uid_value = UUID(str(user_id or "").strip())
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    row = db.query(AdminUser).filter(AdminUser.id == uid_value).first()
    if row is None or not row.is_active:
        raise HTTPException(status_code=404, detail="User not found")
    return row


@router.post("/login", response_model=AdminToken)
def login(payload: AdminLogin, db: Session = Depends(get_db)):
    email = normalize_admin_email(payload.email)
    user = ensure_bootstrap_admin_for_login(db, email, payload.password)
    if user is None:
        user = get_admin_by_email(db, email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_admin_token(subject=str(user.id), email=user.email, role=user.role)
    return AdminToken(access_token=token)


@router.get("/me", response_model=AdminMe)
def me(admin: dict = Depends(get_current_admin), db: Session = Depends(get_db)):
    user = _require_user(db, str(admin.get("sub") or ""))
    return AdminMe(id=str(user.id), email=user.email, name=user.name, role=user.role, image_url=user.image_url)


@router.post("/password")
def change_password(
    payload: AdminPasswordChange,
    admin: dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    user = _require_user(db, str(admin.get("sub") or ""))
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if len(payload.new_password) < settings.ADMIN_MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"New password must be at least {settings.ADMIN_MIN_PASSWORD_LENGTH} characters",
        )
    user.password_hash = hash_password(payload.new_password)
    db.add(user)
    db.commit()
    return {"ok": True}
