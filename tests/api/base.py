import os
import unittest
from unittest.mock import patch
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure settings can be initialized in test environments
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from agency.core.config import settings
from agency.core.security import ADMIN_ROLE, create_admin_token, hash_password
from agency.db.session import get_db
from agency.main import app
from agency.models.admin_user import AdminUser
from agency.models.form_config import FormConfig
from agency.models.site_config import SiteConfig
from agency.services.rate_limit import InMemoryRateLimiter
from agency.services.site_lock import set_site_lock_enabled, site_lock_enabled_safe

TABLES = (AdminUser, FormConfig, SiteConfig)


class ApiTestBase(unittest.TestCase):
    settings_overrides: dict = {}

    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        for model in TABLES:
            model.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        for model in reversed(TABLES):
            model.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            for model in TABLES:
                db.execute(delete(model))
            db.commit()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db

        self.limiter = InMemoryRateLimiter()
        self._patches = [
            patch("agency.api.public.common.get_rate_limiter", return_value=self.limiter),
            patch("agency.core.site_gate.lookup_site_lock", side_effect=self._lookup_site_lock),
        ]
        for item in self._patches:
            item.start()

        self._settings_backup = {}
        overrides = {"INTERNAL_EMAIL": "bookings@example.com", "EMAIL_PROVIDER": "dummy"}
        overrides.update(self.settings_overrides)
        for key, value in overrides.items():
            self._settings_backup[key] = getattr(settings, key)
            setattr(settings, key, value)

        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        for item in reversed(self._patches):
            item.stop()
        for key, value in self._settings_backup.items():
            setattr(settings, key, value)

    def set_setting(self, key: str, value):
        if key not in self._settings_backup:
            self._settings_backup[key] = getattr(settings, key)
        setattr(settings, key, value)

    def _lookup_site_lock(self) -> bool:
        with self.SessionLocal() as db:
            return site_lock_enabled_safe(db)

    def lock_site(self, enabled: bool = True) -> None:
        with self.SessionLocal() as db:
            set_site_lock_enabled(db, enabled)

    def create_admin(self, *, email: str = "owner@example.com", password: str = "secret-pass", role: str = ADMIN_ROLE) -> AdminUser:
        with self.SessionLocal() as db:
            user = AdminUser(
                role=role,
                name="Owner",
                email=email,
                password_hash=hash_password(password),
                is_active=True,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            db.expunge(user)
            return user

    def admin_headers(self, *, role: str = ADMIN_ROLE, email: str = "owner@example.com", subject: str | None = None) -> dict:
        token = create_admin_token(subject=subject or str(uuid4()), email=email, role=role)
        return {"Authorization": f"Bearer {token}"}
