from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from agency.core.config import settings
from agency.core.http_hardening import install_http_hardening
from agency.core.site_gate import install_site_gate
from agency.api.public.router import router as public_router
from agency.api.admin.router import router as admin_router
from agency.services.email_service import email_provider_health

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
# gate first so the hardening middleware wraps its responses too
install_site_gate(app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_http_hardening(app)

app.include_router(public_router, prefix="/api/public")
app.include_router(admin_router, prefix="/api/admin")

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})

@app.get("/health")
def health():
    return {"status": "ok", "email": email_provider_health()["status"]}
