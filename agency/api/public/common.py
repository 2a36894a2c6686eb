from fastapi import HTTPException, Request

from agency.core.config import settings
from agency.services.rate_limit import get_rate_limiter


def client_ip(request: Request) -> str:
    xff = str(request.headers.get("x-forwarded-for") or "").strip()
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    client = request.client
    return str(client.host if client else "unknown")


def rate_limit_or_429(key: str, *, limit: int | None = None, window_seconds: int | None = None) -> None:
    limiter = get_rate_limiter()
    result = limiter.hit(
        key,
        limit=int(max(limit if limit is not None else settings.SUBMIT_RATE_LIMIT, 1)),
        window_seconds=int(max(window_seconds or settings.SUBMIT_RATE_LIMIT_WINDOW_SECONDS, 1)),
    )
    if not result.allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Too many requests. Try again in {max(result.retry_after_seconds, 1)} seconds.",
            headers={"Retry-After": str(max(result.retry_after_seconds, 1))},
        )
