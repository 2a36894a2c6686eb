import os
import unittest
from unittest.mock import Mock

from sqlalchemy import create_engine, delete
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from agency.models.form_config import FormConfig
from agency.services.form_config import (
    DEFAULT_COPY,
    FormConfigStoreError,
    FormNotFoundError,
    InMemoryFormConfigStore,
    SqlFormConfigStore,
    default_form_config,
    sanitize_copy,
)


class DefaultConfigTests(unittest.TestCase):
    def test_every_form_has_normalized_default_fields(self):
        for key in ("enquire", "join", "contact"):
            config = default_form_config(key)
            self.assertTrue(config["fields"])
            self.assertIsNone(config["recipientEmail"])
            self.assertEqual(config["title"], DEFAULT_COPY[key]["title"])

    def test_join_default_instrument_depends_on_role(self):
        fields = {field["name"]: field for field in default_form_config("join")["fields"]}
        self.assertEqual(fields["instrument"]["showIf"], {"field": "role", "equals": "Musician"})

    def test_unknown_form_key(self):
        with self.assertRaises(FormNotFoundError):
            default_form_config("newsletter")

    def test_copy_falls_back_to_defaults_except_clearable_keys(self):
        copy = sanitize_copy("enquire", {"title": "  ", "consultCallUrl": "", "lead": "Custom lead"})
        self.assertEqual(copy["title"], DEFAULT_COPY["enquire"]["title"])
        self.assertEqual(copy["consultCallUrl"], "")
        self.assertEqual(copy["lead"], "Custom lead")

    def test_contact_social_links_are_filtered(self):
        copy = sanitize_copy(
            "contact",
            {
                "eyebrow": "",
                "contactPhone": "  ",
                "socialLinks": [
                    {"platform": "Instagram", "url": "https://instagram.com/agency"},
                    {"platform": "myspace", "url": "https://myspace.com/agency"},
                    {"platform": "x", "url": ""},
                    "junk",
                ],
            },
        )
        self.assertEqual(copy["eyebrow"], "")
        self.assertIsNone(copy["contactPhone"])
        self.assertEqual(copy["socialLinks"], [{"platform": "instagram", "url": "https://instagram.com/agency"}])


class InMemoryStoreTests(unittest.TestCase):
    def test_never_saved_form_returns_default(self):
        store = InMemoryFormConfigStore()
        self.assertEqual(store.get("contact"), default_form_config("contact"))

    def test_put_replaces_the_whole_config(self):
        store = InMemoryFormConfigStore()
        store.put("enquire", {"title": "Book us", "fields": [{"name": "venue", "label": "Venue"}]})
        store.put("enquire", {"fields": [{"name": "city", "label": "City"}]})
        saved = store.get("enquire")
        self.assertEqual(saved["title"], DEFAULT_COPY["enquire"]["title"])
        self.assertEqual([field["name"] for field in saved["fields"]], ["city"])


class SqlStoreTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        FormConfig.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        FormConfig.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            db.execute(delete(FormConfig))
            db.commit()

    def test_missing_row_returns_default(self):
        with self.SessionLocal() as db:
            self.assertEqual(SqlFormConfigStore(db).get("join"), default_form_config("join"))

    def test_put_upserts_one_row_per_key(self):
        with self.SessionLocal() as db:
            store = SqlFormConfigStore(db)
            store.put(
                "join",
                {"title": "Join us", "recipientEmail": " talent@example.com ", "fields": [{"label": "Stage name"}]},
                responsible="owner@example.com",
            )
            saved = store.put("join", {"title": "Join the roster", "fields": [{"label": "Stage name"}]})
            self.assertEqual(db.query(FormConfig).count(), 1)

        self.assertEqual(saved["title"], "Join the roster")
        self.assertIsNone(saved["recipientEmail"])
        self.assertEqual(saved["fields"], [{"id": "join_stage_name", "name": "stage_name", "label": "Stage name", "type": "text", "required": False}])

        with self.SessionLocal() as db:
            row = db.query(FormConfig).filter(FormConfig.key == "join").one()
            self.assertEqual(row.responsible, "system")
            self.assertEqual(SqlFormConfigStore(db).get("join"), saved)

    def test_saved_empty_field_list_serves_default_fields(self):
        with self.SessionLocal() as db:
            saved = SqlFormConfigStore(db).put("contact", {"recipientEmail": "hi@example.com", "fields": []})
        self.assertEqual(saved["fields"], default_form_config("contact")["fields"])
        self.assertEqual(saved["recipientEmail"], "hi@example.com")

    def test_read_failure_serves_default(self):
        db = Mock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("database is down"))
        with self.assertLogs("agency.forms", level="ERROR"):
            config = SqlFormConfigStore(db).get("enquire")
        self.assertEqual(config, default_form_config("enquire"))
        db.rollback.assert_called_once()

    def test_write_failure_is_reported(self):
        db = Mock()
        db.query.return_value.filter.return_value.first.return_value = None
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        with self.assertRaises(FormConfigStoreError):
            SqlFormConfigStore(db).put("enquire", {"fields": []})
        db.rollback.assert_called_once()

    def test_unknown_key_is_not_found(self):
        with self.SessionLocal() as db:
            with self.assertRaises(FormNotFoundError):
                SqlFormConfigStore(db).get("careers")


if __name__ == "__main__":
    unittest.main()
