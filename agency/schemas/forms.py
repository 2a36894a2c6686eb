from __future__ import annotations

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FORM_KEYS = ("enquire", "join", "contact")

FieldType = Literal[
    "text",
    "textarea",
    "email",
    "tel",
    "url",
    "number",
    "date",
    "time",
    "datetime",
    "select",
    "multiselect",
    "radio",
    "checkbox",
    "checkboxgroup",
    "file",
]

FIELD_TYPES: tuple[str, ...] = (
    "text",
    "textarea",
    "email",
    "tel",
    "url",
    "number",
    "date",
    "time",
    "datetime",
    "select",
    "multiselect",
    "radio",
    "checkbox",
    "checkboxgroup",
    "file",
)
# older enquire/join rows were saved with this spelling
FIELD_TYPE_ALIASES = {"checkboxes": "checkboxgroup"}
OPTION_TYPES = frozenset({"select", "multiselect", "radio", "checkboxgroup"})
MULTI_VALUE_TYPES = frozenset({"multiselect", "checkboxgroup"})
FIELD_KEY_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


class ShowIf(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    equals: str


class FieldSchema(BaseModel):
    """One configurable input of a lead form.

    Attributes that do not apply to ``type`` stay ``None`` and are left out of
    the wire representation, so re-normalizing after a type switch drops them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    label: str
    type: FieldType = "text"
    required: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = Field(default=None, alias="helpText")
    options: Optional[tuple[str, ...]] = None
    min: Optional[int | float] = None
    max: Optional[int | float] = None
    step: Optional[int | float] = None
    accept: Optional[str] = None
    multiple_files: Optional[bool] = Field(default=None, alias="multipleFiles")
    show_if: Optional[ShowIf] = Field(default=None, alias="showIf")

    @property
    def is_multi_value(self) -> bool:
        return self.type in MULTI_VALUE_TYPES or (self.type == "file" and bool(self.multiple_files))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

