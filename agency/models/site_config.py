from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from agency.db.session import Base
from agency.models.common import ResponsibleMixin, TimestampMixin, UUIDMixin

class SiteConfig(Base, UUIDMixin, TimestampMixin, ResponsibleMixin):
    __tablename__ = "site_configs"
    key: Mapped[str] = mapped_column(String(80), unique=True, nullable=False, index=True)  # site_lock|faq
    value: Mapped[dict | None] = mapped_column(JSON, nullable=True)
