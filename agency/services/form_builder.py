from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping

from agency.schemas.forms import FIELD_KEY_RE, FIELD_TYPE_ALIASES, FIELD_TYPES, OPTION_TYPES, FieldSchema
from agency.services.form_schema import (
    clean_str,
    coerce_number,
    fields_to_wire,
    normalize_fields,
    parse_options,
)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

NUMBER_ATTRS = ("min", "max", "step")
FILE_ATTRS = ("accept", "multipleFiles")


@dataclass
class FieldIssue:
    index: int
    message: str
    field_id: str | None = None
    name: str | None = None
    severity: str = SEVERITY_ERROR

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class FormSchemaValidationError(Exception):
    def __init__(self, issues: Iterable[FieldIssue]):
        self.issues = list(issues)
        super().__init__(describe_issues(self.issues))


def describe_issues(issues: Iterable[FieldIssue]) -> str:
    return "; ".join(f"Field #{issue.index + 1}: {issue.message}" for issue in issues)


def _authoring_type(raw: Any) -> str:
    value = clean_str(raw).lower()
    return FIELD_TYPE_ALIASES.get(value, value) or "text"


def _check_field(entry: Mapping[str, Any], index: int, name_counts: Counter, names: set[str]) -> list[FieldIssue]:
    field_id = clean_str(entry.get("id")) or None
    name = clean_str(entry.get("name"))
    issues: list[FieldIssue] = []

    def add(message: str, severity: str = SEVERITY_ERROR) -> None:
        issues.append(FieldIssue(index=index, message=message, field_id=field_id, name=name or None, severity=severity))

    if not clean_str(entry.get("label")):
        add("Label is required.")

    if not name:
        add("Field name (key) is required.")
    else:
        if not FIELD_KEY_RE.fullmatch(name):
            add("Field name must start with a letter and use letters, numbers or underscore only (e.g. venue_city).")
        if name_counts[name] > 1:
            add(f"Field name (key) must be unique: '{name}' is used {name_counts[name]} times.")

    field_type = _authoring_type(entry.get("type"))
    if field_type not in FIELD_TYPES:
        add(f"Unknown field type '{field_type}'.")

    if field_type in OPTION_TYPES and not parse_options(entry.get("options")):
        add("This field type needs at least 1 option.")

    if field_type == "number":
        bounds: dict[str, Any] = {}
        for attr in NUMBER_ATTRS:
            raw = entry.get(attr)
            if raw is None or raw == "":
                continue
            value = coerce_number(raw)
            if value is None:
                add(f"{attr.capitalize()} must be a number.")
            else:
                bounds[attr] = value
        if "min" in bounds and "max" in bounds and bounds["min"] > bounds["max"]:
            add(f"Invalid bounds: min greater than max ({bounds['min']} > {bounds['max']}).")
        if "step" in bounds and bounds["step"] <= 0:
            add("Step must be greater than 0.")

    show_if = entry.get("showIf")
    if isinstance(show_if, Mapping):
        target = clean_str(show_if.get("field"))
        equals = clean_str(show_if.get("equals"))
        if (target and not equals) or (equals and not target):
            add("Show-if needs both a field and a value; it will be ignored.", SEVERITY_WARNING)
        elif target and target == name:
            add("Show-if points at the field itself; the field will never be shown.", SEVERITY_WARNING)
        elif target and target not in names:
            add(f"Show-if references unknown field '{target}'; the field will never be shown.", SEVERITY_WARNING)

    return issues


def validate_field_list(raw_fields: Any) -> list[FieldIssue]:
    """Authoring-time check of a whole field list.

    Runs over every entry and reports every problem found; nothing is fixed
    up here. Entries with severity ``error`` block a save, ``warning`` does not.
    """
    if not isinstance(raw_fields, (list, tuple)):
        return [FieldIssue(index=-1, message="Fields must be a list.")]

    entries: list[Mapping[str, Any] | None] = []
    for item in raw_fields:
        if isinstance(item, FieldSchema):
            item = item.to_wire()
        entries.append(item if isinstance(item, Mapping) else None)

    name_counts = Counter(clean_str(entry.get("name")) for entry in entries if entry is not None)
    names = {name for name in name_counts if name}

    issues: list[FieldIssue] = []
    for index, entry in enumerate(entries):
        if entry is None:
            issues.append(FieldIssue(index=index, message="Field must be an object."))
            continue
        issues.extend(_check_field(entry, index, name_counts, names))
    return issues


def blocking_issues(issues: Iterable[FieldIssue]) -> list[FieldIssue]:
    return [issue for issue in issues if issue.severity == SEVERITY_ERROR]


def ensure_valid_field_list(raw_fields: Any) -> list[FieldIssue]:
    """Raises with all errors at once; returns the remaining warnings."""
    issues = validate_field_list(raw_fields)
    errors = blocking_issues(issues)
    if errors:
        raise FormSchemaValidationError(errors)
    return [issue for issue in issues if issue.severity != SEVERITY_ERROR]


class FormBuilder:
    """Editing session over one form's field list.

    Fields are kept as raw wire dicts because they are allowed to be invalid
    while an admin is still typing. Options drafts hold the one-option-per-line
    text of selectable fields, keyed by field id, and live only as long as
    this builder does.
    """

    def __init__(self, form_key: str, fields: Iterable[Any] = ()):
        self.form_key = form_key
        self._fields: list[dict[str, Any]] = fields_to_wire(normalize_fields(list(fields), form_key))
        self._drafts: dict[str, str] = {}
        self._new_counter = 0
        for field in self._fields:
            if field.get("type") in OPTION_TYPES:
                self._drafts[field["id"]] = "\n".join(field.get("options") or [])

    @property
    def fields(self) -> list[dict[str, Any]]:
        return [dict(field) for field in self._fields]

    @property
    def drafts(self) -> dict[str, str]:
        return dict(self._drafts)

    def _index_of(self, field_id: str) -> int:
        for index, field in enumerate(self._fields):
            if field.get("id") == field_id:
                return index
        raise KeyError(f"Unknown field id: {field_id}")

    def _next_id(self) -> str:
        taken = {field.get("id") for field in self._fields}
        while True:
            self._new_counter += 1
            candidate = f"{self.form_key}_new_{self._new_counter}"
            if candidate not in taken:
                return candidate

    def add_field(self, field_type: str = "text", label: str = "New field", name: str = "") -> str:
        field_id = self._next_id()
        field = {"id": field_id, "name": name, "label": label, "type": field_type, "required": False}
        self._fields.append(field)
        if field_type in OPTION_TYPES:
            self._drafts[field_id] = ""
        return field_id

    def update_field(self, field_id: str, **changes: Any) -> dict[str, Any]:
        """Apply wire-keyed changes; a ``None`` value clears the attribute."""
        index = self._index_of(field_id)
        current = self._fields[index]
        updated = dict(current)
        for key, value in changes.items():
            if value is None:
                updated.pop(key, None)
            else:
                updated[key] = value

        old_type, new_type = current.get("type"), updated.get("type")
        if new_type != old_type:
            if old_type in OPTION_TYPES and new_type not in OPTION_TYPES:
                updated.pop("options", None)
                self._drafts.pop(field_id, None)
            if old_type == "number":
                for attr in NUMBER_ATTRS:
                    updated.pop(attr, None)
            if old_type == "file":
                for attr in FILE_ATTRS:
                    updated.pop(attr, None)
            if new_type in OPTION_TYPES and field_id not in self._drafts:
                self._drafts[field_id] = "\n".join(updated.get("options") or [])

        if "options" in changes and new_type in OPTION_TYPES:
            self._drafts[field_id] = "\n".join(parse_options(changes["options"] or []))

        self._fields[index] = updated
        return dict(updated)

    def set_show_if_text(self, field_id: str, text: str) -> None:
        """Parse the ``field=value`` shorthand; anything incomplete clears the rule."""
        field_key, _, equals = str(text or "").strip().partition("=")
        field_key, equals = field_key.strip(), equals.strip()
        if not field_key or not equals:
            self.update_field(field_id, showIf=None)
            return
        self.update_field(field_id, showIf={"field": field_key, "equals": equals})

    def move_field(self, field_id: str, to_index: int) -> bool:
        from_index = self._index_of(field_id)
        if to_index < 0 or to_index >= len(self._fields):
            return False
        field = self._fields.pop(from_index)
        self._fields.insert(to_index, field)
        return True

    def remove_field(self, field_id: str) -> None:
        index = self._index_of(field_id)
        del self._fields[index]
        self._drafts.pop(field_id, None)

    def options_draft(self, field_id: str) -> str:
        if field_id in self._drafts:
            return self._drafts[field_id]
        field = self._fields[self._index_of(field_id)]
        return "\n".join(field.get("options") or [])

    def set_options_draft(self, field_id: str, text: str) -> None:
        self._index_of(field_id)
        self._drafts[field_id] = str(text or "")

    def commit_options(self) -> None:
        for field in self._fields:
            field_id = field.get("id")
            if field.get("type") in OPTION_TYPES and field_id in self._drafts:
                field["options"] = list(parse_options(self._drafts[field_id]))

    def validate(self) -> list[FieldIssue]:
        self.commit_options()
        return validate_field_list(self._fields)

    def build(self) -> list[FieldSchema]:
        self.commit_options()
        ensure_valid_field_list(self._fields)
        return normalize_fields(self._fields, self.form_key)
