from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from agency.api.deps import get_form_store
from agency.core.deps import require_admin
from agency.services.form_builder import (
    SEVERITY_ERROR,
    FormSchemaValidationError,
    blocking_issues,
    ensure_valid_field_list,
    validate_field_list,
)
from agency.services.form_config import FormConfigStore, FormConfigStoreError, FormNotFoundError, ensure_form_key
from agency.services.form_schema import fields_to_wire, normalize_fields

router = APIRouter()


def _form_key_or_404(form_key: str) -> str:
    try:
        return ensure_form_key(form_key)
    except FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{form_key}")
def get_form(form_key: str, store: FormConfigStore = Depends(get_form_store), admin: dict = Depends(require_admin)):
    return store.get(_form_key_or_404(form_key))


@router.put("/{form_key}")
def put_form(
    form_key: str,
    payload: dict[str, Any] = Body(...),
    store: FormConfigStore = Depends(get_form_store),
    admin: dict = Depends(require_admin),
):
    key = _form_key_or_404(form_key)
    try:
        warnings = ensure_valid_field_list(payload.get("fields"))
    except FormSchemaValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": f"Form has {len(exc.issues)} invalid field setting(s)",
                "issues": [issue.to_dict() for issue in exc.issues],
            },
        ) from exc
    try:
        saved = store.put(key, payload, responsible=str(admin.get("email") or ""))
    except FormConfigStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"ok": True, "config": saved, "warnings": [issue.to_dict() for issue in warnings]}


@router.post("/{form_key}/validate")
def validate_form(
    form_key: str,
    payload: dict[str, Any] = Body(...),
    admin: dict = Depends(require_admin),
):
    key = _form_key_or_404(form_key)
    issues = validate_field_list(payload.get("fields"))
    valid = not blocking_issues(issues)
    return {
        "valid": valid,
        "errors": [issue.to_dict() for issue in issues if issue.severity == SEVERITY_ERROR],
        "warnings": [issue.to_dict() for issue in issues if issue.severity != SEVERITY_ERROR],
        "fields": fields_to_wire(normalize_fields(payload.get("fields"), key)) if valid else [],
    }
