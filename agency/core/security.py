from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from passlib.context import CryptContext

from agency.core.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ADMIN_ROLE = "ADMIN"

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm="HS256")

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])

def create_admin_token(*, subject: str, email: str, role: str) -> str:
    return create_jwt(
        {"sub": subject, "email": email, "role": role},
        settings.ADMIN_JWT_SECRET,
        timedelta(minutes=settings.ADMIN_JWT_TTL_MINUTES),
    )

def read_admin_claims(token: str | None) -> dict | None:
    """Decode an admin token without raising; None when absent or invalid."""
    raw = str(token or "").strip()
    if not raw:
        return None
    try:
        return decode_jwt(raw, settings.ADMIN_JWT_SECRET)
    except JWTError:
        return None
