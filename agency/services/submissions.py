from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field as dc_field
from datetime import date, datetime, time
from typing import Any, Callable, Iterable, Mapping
from urllib.parse import urlparse

from agency.core.config import settings
from agency.schemas.forms import FieldSchema
from agency.services.email_service import (
    EmailAttachment,
    EmailDeliveryError,
    looks_like_email,
    send_email_message,
)
from agency.services.form_schema import (
    clean_str,
    coerce_flag,
    coerce_number,
    filter_visible_values,
    normalize_fields,
    visible_fields,
)

_LOG = logging.getLogger("agency.forms")

SubmissionValue = str | list[str]

_WS_RE = re.compile(r"\s+")
_PHONE_RE = re.compile(r"^\+?[0-9 ()./-]+$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")

SUBJECT_PREFIXES = {
    "enquire": "New enquiry",
    "join": "New roster application",
    "contact": "New contact message",
}
ACK_SUBJECTS = {
    "enquire": "We received your enquiry",
    "join": "We received your application",
    "contact": "We received your message",
}
NAME_FIELD_CANDIDATES = ("contact_name", "full_name", "name")


@dataclass
class SubmittedFile:
    field_name: str
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class SubmissionProblem:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class SubmissionValidationError(Exception):
    def __init__(self, problems: Iterable[SubmissionProblem]):
        self.problems = list(problems)
        super().__init__("; ".join(f"{p.field}: {p.message}" for p in self.problems))


class MissingRecipientError(Exception):
    pass


@dataclass
class PreparedSubmission:
    form_key: str
    values: dict[str, SubmissionValue]
    attachments: list[SubmittedFile] = dc_field(default_factory=list)
    labels: dict[str, str] = dc_field(default_factory=dict)


def one_line(value: Any, limit: int = 300) -> str:
    text = _WS_RE.sub(" ", str(value or "")).strip()
    return text[:limit]


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else ""
    if value is None:
        return ""
    return str(value).strip()


def collect_values(fields: Iterable[FieldSchema], items: Iterable[tuple[str, Any]]) -> dict[str, SubmissionValue]:
    """Fold raw (key, value) pairs into one value per known field.

    Multi-value fields keep every non-empty entry in order; others keep the
    first one. Keys no field declares are ignored.
    """
    by_name = {f.name: f for f in fields if f.type != "file"}
    out: dict[str, SubmissionValue] = {}
    for key, raw in items:
        target = by_name.get(key)
        if target is None:
            continue
        entries = raw if isinstance(raw, (list, tuple)) else [raw]
        texts = [_as_text(entry) for entry in entries]
        if target.is_multi_value:
            bucket = out.setdefault(key, [])
            if isinstance(bucket, list):
                bucket.extend(text for text in texts if text and text not in bucket)
        elif key not in out:
            out[key] = texts[0] if texts else ""
    return out


def _is_empty(value: Any) -> bool:
    if isinstance(value, list):
        return not value
    return not clean_str(value)


def _check_email(field: FieldSchema, value: str) -> str | None:
    return None if looks_like_email(value) else "Enter a valid email address."


def _check_tel(field: FieldSchema, value: str) -> str | None:
    digits = sum(ch.isdigit() for ch in value)
    if not _PHONE_RE.fullmatch(value) or digits < 6:
        return "Enter a valid phone number."
    return None


def _check_url(field: FieldSchema, value: str) -> str | None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return "Enter a valid URL starting with http:// or https://."
    return None


def _check_number(field: FieldSchema, value: str) -> str | None:
    number = coerce_number(value)
    if number is None:
        return "Enter a number."
    if field.min is not None and number < field.min:
        return f"Must be at least {field.min}."
    if field.max is not None and number > field.max:
        return f"Must be at most {field.max}."
    return None


def _check_date(field: FieldSchema, value: str) -> str | None:
    try:
        date.fromisoformat(value)
    except ValueError:
        return "Enter a date as YYYY-MM-DD."
    return None


def _check_time(field: FieldSchema, value: str) -> str | None:
    if not _TIME_RE.fullmatch(value):
        return "Enter a time as HH:MM."
    try:
        time.fromisoformat(value)
    except ValueError:
        return "Enter a time as HH:MM."
    return None


def _check_datetime(field: FieldSchema, value: str) -> str | None:
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return "Enter a date and time."
    return None


def _check_choice(field: FieldSchema, value: Any) -> str | None:
    options = set(field.options or ())
    chosen = value if isinstance(value, list) else [value]
    unknown = [item for item in chosen if item not in options]
    if unknown:
        return f"Unknown option: {unknown[0]}."
    return None


FIELD_VALUE_CHECKS: dict[str, Callable[[FieldSchema, Any], str | None]] = {
    "email": _check_email,
    "tel": _check_tel,
    "url": _check_url,
    "number": _check_number,
    "date": _check_date,
    "time": _check_time,
    "datetime": _check_datetime,
    "select": _check_choice,
    "radio": _check_choice,
    "multiselect": _check_choice,
    "checkboxgroup": _check_choice,
}


def _check_files(field: FieldSchema, files: list[SubmittedFile]) -> str | None:
    max_bytes = int(settings.SUBMIT_MAX_FILE_MB) * 1024 * 1024
    if len(files) > 1 and not field.multiple_files:
        return "Only one file is allowed."
    for item in files:
        if item.size > max_bytes:
            return f"{item.filename} is larger than {settings.SUBMIT_MAX_FILE_MB} MB."
    return None


def prepare_submission(
    form_key: str,
    raw_fields: Any,
    values: Mapping[str, SubmissionValue],
    files: Iterable[SubmittedFile] = (),
) -> PreparedSubmission:
    """Validate a submission against the form's current fields.

    Only fields visible for these values are checked and kept. Every problem
    is reported at once through ``SubmissionValidationError``.
    """
    fields = normalize_fields(raw_fields, form_key)
    shown = visible_fields(fields, values)
    kept = filter_visible_values(fields, values)
    shown_files = {f.name: f for f in shown if f.type == "file"}
    uploads = [item for item in files if item.field_name in shown_files and item.size > 0]

    problems: list[SubmissionProblem] = []
    for field in shown:
        if field.type == "file":
            own = [item for item in uploads if item.field_name == field.name]
            if field.required and not own:
                problems.append(SubmissionProblem(field.name, f"{field.label} is required."))
            elif own:
                message = _check_files(field, own)
                if message:
                    problems.append(SubmissionProblem(field.name, message))
            continue

        value = kept.get(field.name)
        if field.type == "checkbox":
            checked = coerce_flag(value)
            if field.required and not checked:
                problems.append(SubmissionProblem(field.name, f"{field.label} must be checked."))
            if field.name in kept:
                kept[field.name] = "yes" if checked else "no"
            continue
        if _is_empty(value):
            kept.pop(field.name, None)
            if field.required:
                problems.append(SubmissionProblem(field.name, f"{field.label} is required."))
            continue
        check = FIELD_VALUE_CHECKS.get(field.type)
        message = check(field, value) if check else None
        if message:
            problems.append(SubmissionProblem(field.name, message))

    max_files = int(settings.SUBMIT_MAX_FILES)
    if len(uploads) > max_files:
        problems.append(SubmissionProblem("files", f"At most {max_files} files can be attached."))

    if problems:
        raise SubmissionValidationError(problems)
    return PreparedSubmission(
        form_key=form_key,
        values=kept,
        attachments=uploads,
        labels={f.name: f.label for f in shown},
    )


def resolve_recipient(form_key: str, config: Mapping[str, Any]) -> str:
    candidates = [config.get("recipientEmail"), settings.INTERNAL_EMAIL]
    if form_key == "contact":
        candidates.append(config.get("contactEmail"))
    for candidate in candidates:
        value = clean_str(candidate)
        if value:
            return value
    raise MissingRecipientError(f"No recipient configured for form '{form_key}'")


def sender_for(form_key: str) -> str:
    return {
        "enquire": settings.ENQUIRE_FROM_EMAIL,
        "join": settings.JOIN_FROM_EMAIL,
        "contact": settings.CONTACT_FROM_EMAIL,
    }.get(form_key) or settings.SMTP_FROM


def submitter_name(prepared: PreparedSubmission) -> str:
    for name in NAME_FIELD_CANDIDATES:
        value = prepared.values.get(name)
        if isinstance(value, str) and value.strip():
            return one_line(value, 120)
    return ""


def submitter_email(prepared: PreparedSubmission) -> str:
    value = prepared.values.get("email")
    if isinstance(value, str) and looks_like_email(value):
        return one_line(value, 200)
    return ""


def build_subject(prepared: PreparedSubmission) -> str:
    prefix = SUBJECT_PREFIXES.get(prepared.form_key, "New submission")
    name = submitter_name(prepared)
    return f"{prefix} from {name}" if name else prefix


def build_body(prepared: PreparedSubmission) -> str:
    lines = []
    for name, value in prepared.values.items():
        label = prepared.labels.get(name, name)
        text = ", ".join(value) if isinstance(value, list) else value
        if "\n" in text:
            lines.append(f"{label}:\n{text.strip()}")
        else:
            lines.append(f"{label}: {one_line(text, 2000)}")
    if prepared.attachments:
        names = ", ".join(item.filename for item in prepared.attachments)
        lines.append(f"Attachments: {names}")
    return "\n".join(lines) + "\n"


def deliver_submission(
    prepared: PreparedSubmission,
    config: Mapping[str, Any],
    *,
    send: Callable[..., dict[str, Any]] = send_email_message,
) -> dict[str, Any]:
    """Send the submission to the form's inbox, then acknowledge the sender.

    A failed acknowledgement is logged and does not fail the submission.
    ``EmailDeliveryError`` from the main delivery propagates.
    """
    recipient = resolve_recipient(prepared.form_key, config)
    reply_to = submitter_email(prepared) or None
    result = send(
        to=recipient,
        subject=build_subject(prepared),
        body=build_body(prepared),
        sender=sender_for(prepared.form_key),
        reply_to=reply_to,
        attachments=[
            EmailAttachment(filename=item.filename, content=item.content, content_type=item.content_type)
            for item in prepared.attachments
        ],
    )
    _LOG.info(
        "submission delivered form=%s fields=%s files=%s",
        prepared.form_key,
        len(prepared.values),
        len(prepared.attachments),
    )

    if reply_to:
        send_acknowledgement(prepared, config, to=reply_to, send=send)
    return result


def send_acknowledgement(
    prepared: PreparedSubmission,
    config: Mapping[str, Any],
    *,
    to: str,
    send: Callable[..., dict[str, Any]] = send_email_message,
) -> None:
    name = submitter_name(prepared)
    greeting = f"Hi {name}," if name else "Hi,"
    message = clean_str(config.get("successMessage")) or "Thanks, we will be in touch soon."
    try:
        send(
            to=to,
            subject=ACK_SUBJECTS.get(prepared.form_key, "We received your message"),
            body=f"{greeting}\n\n{message}\n",
            sender=sender_for(prepared.form_key),
        )
    except EmailDeliveryError as exc:
        _LOG.warning("acknowledgement not sent form=%s error=%s", prepared.form_key, exc)
