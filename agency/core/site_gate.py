from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.concurrency import run_in_threadpool

from agency.core.config import settings
from agency.core.security import ADMIN_ROLE, read_admin_claims
from agency.services.site_lock import lookup_site_lock

_LOG = logging.getLogger("agency.site_gate")

SIGNIN_PATH = "/auth/signin"
COMING_SOON_PATH = "/coming-soon"
ALLOWED_EXACT = frozenset(
    {
        COMING_SOON_PATH,
        "/api/public/site-unlock",
        "/api/public/site-lock",
        "/health",
        "/favicon.ico",
        "/robots.txt",
        "/sitemap.xml",
    }
)
ALLOWED_PREFIXES = ("/api/admin/", "/assets/")


@dataclass
class GateDecision:
    status_code: int
    location: str | None = None
    detail: str | None = None

    def to_response(self) -> Response:
        if self.location is not None:
            return RedirectResponse(self.location, status_code=self.status_code)
        return JSONResponse({"detail": self.detail}, status_code=self.status_code)


def _target(path: str, query: str) -> str:
    return f"{path}?{query}" if query else path


def is_admin_page(path: str) -> bool:
    return path == "/admin" or path.startswith("/admin/")


def is_lock_exempt(path: str) -> bool:
    return path in ALLOWED_EXACT or path.startswith(ALLOWED_PREFIXES)


def admin_token_from(request: Request) -> str | None:
    header = str(request.headers.get("authorization") or "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.ADMIN_COOKIE_NAME)


def decide(
    path: str,
    query: str,
    *,
    admin_claims: dict | None,
    unlock_cookie: str | None,
    lock_enabled: Callable[[], bool],
) -> GateDecision | None:
    """What the gate does with one request; ``None`` lets it through.

    ``lock_enabled`` is only called for paths the lock can apply to.
    """
    if is_admin_page(path):
        if admin_claims is None:
            return GateDecision(307, location=f"{SIGNIN_PATH}?{urlencode({'callbackUrl': _target(path, query)})}")
        if admin_claims.get("role") != ADMIN_ROLE:
            return GateDecision(403, detail="Forbidden")
        return None

    if is_lock_exempt(path):
        return None
    if not lock_enabled():
        return None
    if unlock_cookie == "1":
        return None
    if path.startswith("/api/"):
        return GateDecision(423, detail="Site is locked")
    return GateDecision(307, location=f"{COMING_SOON_PATH}?{urlencode({'next': _target(path, query)})}")


def install_site_gate(app: FastAPI, lock_lookup: Callable[[], bool] | None = None) -> None:
    def _lock_enabled() -> bool:
        return (lock_lookup or lookup_site_lock)()

    @app.middleware("http")
    async def _site_gate_middleware(request: Request, call_next):
        path = request.url.path
        claims = read_admin_claims(admin_token_from(request)) if is_admin_page(path) else None
        lock_state: dict[str, bool] = {}

        if not is_admin_page(path) and not is_lock_exempt(path):
            lock_state["enabled"] = await run_in_threadpool(_lock_enabled)

        decision = decide(
            path,
            request.url.query,
            admin_claims=claims,
            unlock_cookie=request.cookies.get(settings.SITE_UNLOCK_COOKIE),
            lock_enabled=lambda: lock_state.get("enabled", False),
        )
        if decision is None:
            return await call_next(request)
        _LOG.info("gate blocked %s %s status=%s", request.method, path, decision.status_code)
        return decision.to_response()
