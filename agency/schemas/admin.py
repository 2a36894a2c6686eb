from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional


class AdminLogin(BaseModel):
    email: str
    password: str


class AdminToken(BaseModel):
    access_token: str
    token_type: str = "Bearer"


class AdminMe(BaseModel):
    id: str
    email: str
    name: str
    role: str
    image_url: Optional[str] = None


class AdminPasswordChange(BaseModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("new_password")
    @classmethod
    def _strip_new_password(cls, value: str) -> str:
        return str(value or "").strip()


class SiteLockUpdate(BaseModel):
    enabled: bool


class SiteLockOut(BaseModel):
    enabled: bool


class SiteUnlockIn(BaseModel):
    password: Optional[str] = None


class FaqItemIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    category: Optional[str] = None
    question: str = ""
    answer: str = ""
    cta_type: Optional[str] = Field(default=None, alias="ctaType")
    cta_label: Optional[str] = Field(default=None, alias="ctaLabel")


class FaqConfigIn(BaseModel):
    eyebrow: Optional[str] = None
    title: Optional[str] = None
    lead: Optional[str] = None
    items: Optional[list[FaqItemIn]] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
