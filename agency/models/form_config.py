from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from agency.db.session import Base
from agency.models.common import ResponsibleMixin, TimestampMixin, UUIDMixin

class FormConfig(Base, UUIDMixin, TimestampMixin, ResponsibleMixin):
    __tablename__ = "form_configs"
    key: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)  # enquire|join|contact
    content: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    recipient_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    fields: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
