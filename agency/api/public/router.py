from fastapi import APIRouter
from agency.api.public import forms, site

router = APIRouter()
router.include_router(forms.router, prefix="/forms", tags=["PublicForms"])
router.include_router(site.router, tags=["PublicSite"])
