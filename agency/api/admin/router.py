from fastapi import APIRouter
from agency.api.admin import auth, forms, settings

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["AdminAuth"])
router.include_router(forms.router, prefix="/forms", tags=["AdminForms"])
router.include_router(settings.router, prefix="/settings", tags=["AdminSettings"])
