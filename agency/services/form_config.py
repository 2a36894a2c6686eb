from __future__ import annotations

import copy
import logging
from threading import Lock
from typing import Any, Mapping, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agency.models.common import DEFAULT_RESPONSIBLE
from agency.models.form_config import FormConfig
from agency.schemas.forms import FORM_KEYS
from agency.services.form_schema import clean_str, fields_to_wire, normalize_fields

_LOG = logging.getLogger("agency.forms")

SOCIAL_PLATFORMS = ("instagram", "x", "tiktok", "youtube", "linkedin", "facebook", "soundcloud")

# Copy keys shared by every lead form. Empty values fall back to the defaults.
BASE_COPY_KEYS = (
    "eyebrow",
    "title",
    "lead",
    "buttonLabel",
    "modalKicker",
    "modalTitle",
    "modalLead",
    "submitLabel",
    "successMessage",
)
EXTRA_COPY_KEYS = {
    "enquire": ("consultCallLabel", "consultCallUrl"),
    "join": (),
    "contact": ("contactEmail",),
}
# Keys an admin may save as "" to hide the element on the site.
CLEARABLE_COPY_KEYS = {
    "enquire": frozenset({"consultCallLabel", "consultCallUrl"}),
    "join": frozenset(),
    "contact": frozenset({"eyebrow", "lead", "contactEmail"}),
}

DEFAULT_FIELDS: dict[str, list[dict[str, Any]]] = {
    "enquire": [
        {
            "id": "enq_type",
            "name": "enq_type",
            "label": "What is this about?",
            "type": "radio",
            "required": True,
            "options": ["Booking", "Partnership", "General"],
        },
        {"id": "contact_name", "name": "contact_name", "label": "Your name", "type": "text", "required": True},
        {"id": "email", "name": "email", "label": "Email address", "type": "email", "required": True},
        {"id": "phone", "name": "phone", "label": "Phone number", "type": "tel", "required": False},
        {"id": "event_date", "name": "event_date", "label": "Event date", "type": "date", "required": False},
        {"id": "event_time", "name": "event_time", "label": "Event time", "type": "time", "required": False},
        {"id": "location", "name": "location", "label": "Location", "type": "text", "required": False},
        {"id": "message", "name": "message", "label": "Details", "type": "textarea", "required": True},
    ],
    "join": [
        {
            "id": "role",
            "name": "role",
            "label": "Are you a musician or DJ?",
            "type": "radio",
            "required": True,
            "options": ["DJ", "Musician"],
        },
        {
            "id": "instrument",
            "name": "instrument",
            "label": "If musician, what do you play?",
            "type": "text",
            "required": False,
            "placeholder": "e.g. Saxophone, keys, percussion",
            "showIf": {"field": "role", "equals": "Musician"},
        },
        {"id": "full_name", "name": "full_name", "label": "Full legal or birth name", "type": "text", "required": True},
        {"id": "email", "name": "email", "label": "Email address", "type": "email", "required": True},
        {"id": "phone", "name": "phone", "label": "Mobile number", "type": "tel", "required": True},
        {"id": "dob", "name": "dob", "label": "Date of birth", "type": "date", "required": True},
        {"id": "address", "name": "address", "label": "Full address", "type": "textarea", "required": True},
        {"id": "genres", "name": "genres", "label": "Favourite genres", "type": "textarea", "required": False},
    ],
    "contact": [
        {"id": "name", "name": "name", "label": "Your name", "type": "text", "required": True},
        {"id": "email", "name": "email", "label": "Email address", "type": "email", "required": True},
        {"id": "message", "name": "message", "label": "Message", "type": "textarea", "required": True},
    ],
}

DEFAULT_COPY: dict[str, dict[str, Any]] = {
    "enquire": {
        "eyebrow": "For venues & events",
        "title": "Enquire about DJs and live music.",
        "lead": (
            "We curate DJs and musicians for restaurants, bars and event spaces, matching artists "
            "to your brand, guest profile and schedule."
        ),
        "buttonLabel": "Open enquiry form",
        "consultCallLabel": "Book consultant call",
        "consultCallUrl": "",
        "modalKicker": "Enquire Now",
        "modalTitle": "Tell us about your venue or event.",
        "modalLead": "Share a few details about your space, schedule and music brief and we will match you with the right artists.",
        "submitLabel": "Send enquiry",
        "successMessage": "Thanks, we will be in touch shortly.",
    },
    "join": {
        "eyebrow": "For artists & collectives",
        "title": "Join the roster.",
        "lead": "DJs, musicians and live acts who care about atmosphere, consistency and good hospitality.",
        "buttonLabel": "Open application form",
        "modalKicker": "Join us",
        "modalTitle": "Tell us about your sound.",
        "modalLead": "Share links, socials and a short intro. We review every application and get back if there is a fit.",
        "submitLabel": "Apply to join",
        "successMessage": "Thanks, we will review your submission and follow up.",
    },
    "contact": {
        "eyebrow": "LET'S CONNECT",
        "title": "Get in touch",
        "lead": "General enquiries",
        "buttonLabel": "Open contact form",
        "contactEmail": "",
        "contactPhone": None,
        "socialLinks": [],
        "modalKicker": "Contact",
        "modalTitle": "Send us a message.",
        "modalLead": "We will get back to you shortly.",
        "submitLabel": "Send message",
        "successMessage": "Thanks, we will be in touch soon.",
    },
}


class FormNotFoundError(LookupError):
    pass


class FormConfigStoreError(Exception):
    pass


def ensure_form_key(form_key: str) -> str:
    key = str(form_key or "").strip().lower()
    if key not in FORM_KEYS:
        raise FormNotFoundError(f"Unknown form: {form_key}")
    return key


def default_form_config(form_key: str) -> dict[str, Any]:
    key = ensure_form_key(form_key)
    config = copy.deepcopy(DEFAULT_COPY[key])
    config["recipientEmail"] = None
    config["fields"] = fields_to_wire(normalize_fields(DEFAULT_FIELDS[key], key))
    return config


def sanitize_social_links(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, (list, tuple)):
        return []
    out: list[dict[str, str]] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        platform = clean_str(item.get("platform")).lower()
        url = clean_str(item.get("url"))
        if platform in SOCIAL_PLATFORMS and url:
            out.append({"platform": platform, "url": url})
    return out


def sanitize_copy(form_key: str, raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy strings for one form, defaults filled in where a value is missing."""
    key = ensure_form_key(form_key)
    source = raw if isinstance(raw, Mapping) else {}
    defaults = DEFAULT_COPY[key]
    clearable = CLEARABLE_COPY_KEYS[key]
    out: dict[str, Any] = {}
    for name in BASE_COPY_KEYS + EXTRA_COPY_KEYS[key]:
        value = source.get(name)
        if isinstance(value, str) and (value.strip() or name in clearable):
            out[name] = value.strip()
        else:
            out[name] = defaults[name]
    if key == "contact":
        out["contactPhone"] = clean_str(source.get("contactPhone")) or None
        out["socialLinks"] = sanitize_social_links(source.get("socialLinks"))
    return out


def build_form_config(
    form_key: str,
    content: Mapping[str, Any] | None,
    recipient_email: str | None,
    raw_fields: Any,
) -> dict[str, Any]:
    key = ensure_form_key(form_key)
    config = sanitize_copy(key, content)
    config["recipientEmail"] = clean_str(recipient_email) or None
    fields = normalize_fields(raw_fields, key)
    if not fields:
        fields = normalize_fields(DEFAULT_FIELDS[key], key)
    config["fields"] = fields_to_wire(fields)
    return config


def split_form_config(form_key: str, payload: Mapping[str, Any]) -> tuple[dict[str, Any], str | None, list[dict[str, Any]]]:
    """Inverse of ``build_form_config``: (content, recipient email, wire fields)."""
    config = build_form_config(form_key, payload, payload.get("recipientEmail"), payload.get("fields"))
    recipient = config.pop("recipientEmail")
    fields = config.pop("fields")
    return config, recipient, fields


class FormConfigStore(Protocol):
    def get(self, form_key: str) -> dict[str, Any]:
        ...

    def put(self, form_key: str, config: Mapping[str, Any], *, responsible: str | None = None) -> dict[str, Any]:
        ...


class SqlFormConfigStore:
    """One ``form_configs`` row per form key; ``put`` replaces it wholesale."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, form_key: str) -> dict[str, Any]:
        key = ensure_form_key(form_key)
        try:
            row = self.db.query(FormConfig).filter(FormConfig.key == key).first()
        except SQLAlchemyError:
            _LOG.exception("form config read failed; serving defaults key=%s", key)
            self.db.rollback()
            return default_form_config(key)
        if row is None:
            return default_form_config(key)
        return build_form_config(key, row.content, row.recipient_email, row.fields)

    def put(self, form_key: str, config: Mapping[str, Any], *, responsible: str | None = None) -> dict[str, Any]:
        key = ensure_form_key(form_key)
        content, recipient, fields = split_form_config(key, config)
        try:
            row = self.db.query(FormConfig).filter(FormConfig.key == key).first()
            if row is None:
                row = FormConfig(key=key)
            row.content = content
            row.recipient_email = recipient
            row.fields = fields
            row.responsible = str(responsible or "").strip() or DEFAULT_RESPONSIBLE
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            self.db.rollback()
            _LOG.error("form config write failed key=%s error=%s", key, exc)
            raise FormConfigStoreError(f"Could not save form '{key}'") from exc
        return build_form_config(key, row.content, row.recipient_email, row.fields)


class InMemoryFormConfigStore:
    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}
        self._lock = Lock()

    def get(self, form_key: str) -> dict[str, Any]:
        key = ensure_form_key(form_key)
        with self._lock:
            stored = self._data.get(key)
        if stored is None:
            return default_form_config(key)
        return build_form_config(key, stored["content"], stored["recipient_email"], stored["fields"])

    def put(self, form_key: str, config: Mapping[str, Any], *, responsible: str | None = None) -> dict[str, Any]:
        key = ensure_form_key(form_key)
        content, recipient, fields = split_form_config(key, config)
        with self._lock:
            self._data[key] = {"content": content, "recipient_email": recipient, "fields": fields}
        return build_form_config(key, content, recipient, fields)
