from dataclasses import dataclass, field
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.datastructures import UploadFile

from agency.api.deps import get_form_store
from agency.api.public.common import client_ip, rate_limit_or_429
from agency.services.email_service import EmailDeliveryError, send_email_message
from agency.services.form_config import FormConfigStore, FormNotFoundError, ensure_form_key
from agency.services.form_schema import normalize_fields
from agency.services.rate_limit import submission_key
from agency.services.submissions import (
    MissingRecipientError,
    SubmissionValidationError,
    SubmittedFile,
    collect_values,
    deliver_submission,
    prepare_submission,
)

router = APIRouter()


@dataclass
class RawSubmission:
    items: list[tuple[str, Any]] = field(default_factory=list)
    files: list[SubmittedFile] = field(default_factory=list)


async def read_submission(request: Request) -> RawSubmission:
    """Multipart/urlencoded form data or a flat JSON object."""
    content_type = str(request.headers.get("content-type") or "").lower()
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Submission must be a JSON object")
        return RawSubmission(items=list(body.items()))

    form = await request.form()
    raw = RawSubmission()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if not value.filename:
                continue
            raw.files.append(
                SubmittedFile(
                    field_name=key,
                    filename=value.filename,
                    content=await value.read(),
                    content_type=value.content_type or "application/octet-stream",
                )
            )
        else:
            raw.items.append((key, value))
    return raw


def _form_key_or_404(form_key: str) -> str:
    try:
        return ensure_form_key(form_key)
    except FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{form_key}")
def get_form(form_key: str, store: FormConfigStore = Depends(get_form_store)):
    return store.get(_form_key_or_404(form_key))


@router.post("/{form_key}/submit")
def submit_form(
    form_key: str,
    request: Request,
    raw: RawSubmission = Depends(read_submission),
    store: FormConfigStore = Depends(get_form_store),
):
    key = _form_key_or_404(form_key)
    rate_limit_or_429(submission_key(key, client_ip(request)))

    config = store.get(key)
    fields = normalize_fields(config["fields"], key)
    values = collect_values(fields, raw.items)
    try:
        prepared = prepare_submission(key, fields, values, raw.files)
    except SubmissionValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Please check the highlighted fields.",
                "errors": [problem.to_dict() for problem in exc.problems],
            },
        ) from exc

    try:
        deliver_submission(prepared, config, send=send_email_message)
    except MissingRecipientError as exc:
        raise HTTPException(status_code=500, detail="Form recipient is not configured") from exc
    except EmailDeliveryError as exc:
        raise HTTPException(status_code=502, detail="Could not send your message. Please try again later.") from exc
    return {"ok": True, "message": config["successMessage"]}
