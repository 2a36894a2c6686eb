from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping

from agency.schemas.forms import (
    FIELD_KEY_RE,
    FIELD_TYPE_ALIASES,
    FIELD_TYPES,
    OPTION_TYPES,
    FieldSchema,
    ShowIf,
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_TRUE_STRINGS = {"true", "1", "yes", "on"}


def clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _finite(value: int | float) -> int | float | None:
    try:
        return value if math.isfinite(value) else None
    except OverflowError:
        # int too large for a float
        return None


def coerce_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    text = clean_str(value)
    if not text:
        return None
    try:
        return _finite(int(text))
    except ValueError:
        pass
    try:
        parsed = float(text)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return clean_str(value).lower() in _TRUE_STRINGS


def normalize_field_type(raw: Any) -> str:
    value = clean_str(raw).lower()
    value = FIELD_TYPE_ALIASES.get(value, value)
    return value if value in FIELD_TYPES else "text"


def slugify_key(text: str) -> str:
    slug = _SLUG_RE.sub("_", str(text or "").lower()).strip("_")
    if slug and not slug[0].isalpha():
        slug = f"field_{slug}"
    return slug


def derive_field_name(raw_name: Any, label: str, index: int) -> str:
    name = clean_str(raw_name)
    if FIELD_KEY_RE.fullmatch(name):
        return name
    return slugify_key(label) or f"field_{index + 1}"


def parse_options(raw: Any) -> tuple[str, ...]:
    """Accepts a list of strings or the builder's one-option-per-line text."""
    if isinstance(raw, str):
        items: Iterable[Any] = raw.splitlines()
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        return ()
    out: list[str] = []
    for item in items:
        text = clean_str(item)
        if text and text not in out:
            out.append(text)
    return tuple(out)


def stable_field_id(explicit: Any, name: str, index: int, prefix: str) -> str:
    # never random: the builder keys option drafts by this id
    value = clean_str(explicit)
    if value:
        return value
    if name:
        return f"{prefix}_{name}"
    return f"{prefix}_{index}"


def _parse_show_if(raw: Any) -> ShowIf | None:
    if not isinstance(raw, Mapping):
        return None
    field = clean_str(raw.get("field"))
    equals = clean_str(raw.get("equals"))
    if not field or not equals:
        return None
    return ShowIf(field=field, equals=equals)


def normalize_field(item: Any, index: int, prefix: str) -> FieldSchema | None:
    if isinstance(item, FieldSchema):
        item = item.to_wire()
    if not isinstance(item, Mapping):
        return None

    raw_label = clean_str(item.get("label"))
    raw_name = clean_str(item.get("name"))
    if not raw_label and not raw_name:
        return None

    label = raw_label or f"Field {index + 1}"
    name = derive_field_name(raw_name, label, index)
    field_type = normalize_field_type(item.get("type"))

    data: dict[str, Any] = {
        "id": stable_field_id(item.get("id"), name, index, prefix),
        "name": name,
        "label": label,
        "type": field_type,
        "required": coerce_flag(item.get("required")),
    }

    placeholder = clean_str(item.get("placeholder"))
    if placeholder:
        data["placeholder"] = placeholder
    help_text = clean_str(item.get("helpText"))
    if help_text:
        data["help_text"] = help_text

    if field_type in OPTION_TYPES:
        options = parse_options(item.get("options"))
        if options:
            data["options"] = options
        else:
            # an empty choice list cannot be answered
            data["type"] = "text"

    if field_type == "number":
        low = coerce_number(item.get("min"))
        high = coerce_number(item.get("max"))
        step = coerce_number(item.get("step"))
        if low is not None and high is not None and low > high:
            low, high = high, low
        if low is not None:
            data["min"] = low
        if high is not None:
            data["max"] = high
        if step is not None and step > 0:
            data["step"] = step

    if field_type == "file":
        accept = clean_str(item.get("accept"))
        if accept:
            data["accept"] = accept
        data["multiple_files"] = coerce_flag(item.get("multipleFiles"))

    show_if = _parse_show_if(item.get("showIf"))
    if show_if is not None:
        data["show_if"] = show_if

    return FieldSchema(**data)


def _dedupe_id(base: str, index: int, seen: set[str]) -> str:
    candidate = f"{base}_{index}"
    counter = 2
    while candidate in seen:
        candidate = f"{base}_{index}_{counter}"
        counter += 1
    return candidate


def normalize_fields(raw: Any, prefix: str) -> list[FieldSchema]:
    """Turn untrusted JSON into a list of fields.

    Bad entries are dropped or coerced, never raised, so one broken field
    cannot take the public form down. Input order is preserved and the result
    is a fixed point:
    ``normalize_fields(normalize_fields(x, p), p) == normalize_fields(x, p)``.
    Duplicate names are passed through; see ``validate_field_list``.
    """
    if not isinstance(raw, (list, tuple)):
        return []
    out: list[FieldSchema] = []
    seen_ids: set[str] = set()
    for index, item in enumerate(raw):
        field = normalize_field(item, index, prefix)
        if field is None:
            continue
        if field.id in seen_ids:
            field = field.model_copy(update={"id": _dedupe_id(field.id, index, seen_ids)})
        seen_ids.add(field.id)
        out.append(field)
    return out


def fields_to_wire(fields: Iterable[FieldSchema]) -> list[dict[str, Any]]:
    return [field.to_wire() for field in fields]


def is_visible(field: FieldSchema, values: Mapping[str, Any] | None) -> bool:
    rule = field.show_if
    if rule is None:
        return True
    current = (values or {}).get(rule.field)
    if isinstance(current, (list, tuple, set, frozenset)):
        return rule.equals in current
    if current is None:
        current = ""
    return str(current) == rule.equals


def visible_fields(fields: Iterable[FieldSchema], values: Mapping[str, Any] | None) -> list[FieldSchema]:
    return [field for field in fields if is_visible(field, values)]


def filter_visible_values(
    fields: Iterable[FieldSchema],
    values: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Values of the currently visible fields only, in field order.

    Hidden fields may still hold a cached answer in ``values``; it is not
    cleared there, only left out of what gets delivered.
    """
    source = values or {}
    out: dict[str, Any] = {}
    for field in visible_fields(fields, source):
        if field.name in source:
            out[field.name] = source[field.name]
    return out
