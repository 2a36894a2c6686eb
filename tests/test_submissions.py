import os
import unittest
from unittest.mock import Mock

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from agency.core.config import settings
from agency.services.email_service import EmailDeliveryError
from agency.services.form_config import DEFAULT_FIELDS, default_form_config
from agency.services.form_schema import normalize_fields
from agency.services.submissions import (
    MissingRecipientError,
    PreparedSubmission,
    SubmissionValidationError,
    SubmittedFile,
    build_body,
    build_subject,
    collect_values,
    deliver_submission,
    one_line,
    prepare_submission,
    resolve_recipient,
)

JOIN_VALUES = {
    "role": "DJ",
    "instrument": "Saxophone",
    "full_name": "Alex Doe",
    "email": "alex@example.com",
    "phone": "+44 7700 900123",
    "dob": "1990-05-01",
    "address": "1 High Street\nLondon",
    "genres": "House, disco",
}

UPLOAD_FIELDS = [
    {"name": "name", "label": "Name", "required": True},
    {"name": "has_press", "label": "Press kit?", "type": "radio", "options": ["yes", "no"]},
    {
        "name": "press_kit",
        "label": "Press kit",
        "type": "file",
        "multipleFiles": True,
        "showIf": {"field": "has_press", "equals": "yes"},
    },
    {"name": "guests", "label": "Guests", "type": "number", "min": 10, "max": 500},
    {"name": "days", "label": "Days", "type": "checkboxgroup", "options": ["Fri", "Sat"]},
    {"name": "terms", "label": "Terms", "type": "checkbox", "required": True},
]


class PrepareSubmissionTests(unittest.TestCase):
    def setUp(self):
        self._backup = {
            "SUBMIT_MAX_FILES": settings.SUBMIT_MAX_FILES,
            "SUBMIT_MAX_FILE_MB": settings.SUBMIT_MAX_FILE_MB,
        }

    def tearDown(self):
        for key, value in self._backup.items():
            setattr(settings, key, value)

    def test_hidden_instrument_is_dropped_for_djs(self):
        prepared = prepare_submission("join", DEFAULT_FIELDS["join"], JOIN_VALUES)
        self.assertNotIn("instrument", prepared.values)
        self.assertEqual(prepared.values["full_name"], "Alex Doe")

    def test_instrument_is_kept_for_musicians(self):
        prepared = prepare_submission("join", DEFAULT_FIELDS["join"], dict(JOIN_VALUES, role="Musician"))
        self.assertEqual(prepared.values["instrument"], "Saxophone")

    def test_all_problems_are_reported(self):
        values = dict(JOIN_VALUES, role="Drummer", email="not-an-email", dob="01/05/1990", full_name="  ")
        with self.assertRaises(SubmissionValidationError) as ctx:
            prepare_submission("join", DEFAULT_FIELDS["join"], values)
        problems = {problem.field: problem.message for problem in ctx.exception.problems}
        self.assertEqual(set(problems), {"role", "email", "dob", "full_name"})
        self.assertEqual(problems["full_name"], "Full legal or birth name is required.")
        self.assertIn("Unknown option", problems["role"])

    def test_optional_empty_values_are_left_out(self):
        prepared = prepare_submission("join", DEFAULT_FIELDS["join"], dict(JOIN_VALUES, genres=""))
        self.assertNotIn("genres", prepared.values)

    def test_number_multi_choice_and_checkbox_checks(self):
        values = {"name": "Venue", "guests": "5", "days": ["Fri", "Sun"]}
        with self.assertRaises(SubmissionValidationError) as ctx:
            prepare_submission("enquire", UPLOAD_FIELDS, values)
        problems = {problem.field: problem.message for problem in ctx.exception.problems}
        self.assertEqual(problems["guests"], "Must be at least 10.")
        self.assertEqual(problems["days"], "Unknown option: Sun.")
        self.assertEqual(problems["terms"], "Terms must be checked.")

        prepared = prepare_submission("enquire", UPLOAD_FIELDS, {"name": "Venue", "guests": "120", "terms": "on"})
        self.assertEqual(prepared.values["terms"], "yes")

    def test_files_only_for_visible_file_fields(self):
        files = [SubmittedFile(field_name="press_kit", filename="kit.pdf", content=b"%PDF-1.4")]
        hidden = prepare_submission("enquire", UPLOAD_FIELDS, {"name": "A", "has_press": "no", "terms": "1"}, files)
        self.assertEqual(hidden.attachments, [])

        shown = prepare_submission("enquire", UPLOAD_FIELDS, {"name": "A", "has_press": "yes", "terms": "1"}, files)
        self.assertEqual([item.filename for item in shown.attachments], ["kit.pdf"])

    def test_file_count_and_size_limits(self):
        settings.SUBMIT_MAX_FILES = 1
        settings.SUBMIT_MAX_FILE_MB = 1
        values = {"name": "A", "has_press": "yes", "terms": "1"}
        files = [
            SubmittedFile(field_name="press_kit", filename="a.pdf", content=b"a"),
            SubmittedFile(field_name="press_kit", filename="b.pdf", content=b"b" * (1024 * 1024 + 1)),
        ]
        with self.assertRaises(SubmissionValidationError) as ctx:
            prepare_submission("enquire", UPLOAD_FIELDS, values, files)
        problems = {problem.field: problem.message for problem in ctx.exception.problems}
        self.assertEqual(problems["press_kit"], "b.pdf is larger than 1 MB.")
        self.assertEqual(problems["files"], "At most 1 files can be attached.")

    def test_collect_values_folds_repeated_keys(self):
        fields = normalize_fields(UPLOAD_FIELDS, "enquire")
        values = collect_values(
            fields,
            [("days", "Fri"), ("days", "Sat"), ("days", "Fri"), ("name", "First"), ("name", "Second"), ("other", "x")],
        )
        self.assertEqual(values, {"days": ["Fri", "Sat"], "name": "First"})


class DeliveryTests(unittest.TestCase):
    def setUp(self):
        self._backup = {"INTERNAL_EMAIL": settings.INTERNAL_EMAIL}
        settings.INTERNAL_EMAIL = ""

    def tearDown(self):
        for key, value in self._backup.items():
            setattr(settings, key, value)

    def test_recipient_fallback_order(self):
        self.assertEqual(resolve_recipient("join", {"recipientEmail": "talent@example.com"}), "talent@example.com")
        settings.INTERNAL_EMAIL = "inbox@example.com"
        self.assertEqual(resolve_recipient("join", {"recipientEmail": None}), "inbox@example.com")
        settings.INTERNAL_EMAIL = ""
        self.assertEqual(resolve_recipient("contact", {"contactEmail": "hello@example.com"}), "hello@example.com")
        with self.assertRaises(MissingRecipientError):
            resolve_recipient("enquire", {"contactEmail": "hello@example.com"})

    def test_delivery_and_acknowledgement(self):
        config = default_form_config("join")
        config["recipientEmail"] = "talent@example.com"
        prepared = prepare_submission("join", config["fields"], JOIN_VALUES)
        send = Mock(return_value={"sent": True})

        deliver_submission(prepared, config, send=send)

        self.assertEqual(send.call_count, 2)
        main, ack = send.call_args_list
        self.assertEqual(main.kwargs["to"], "talent@example.com")
        self.assertEqual(main.kwargs["reply_to"], "alex@example.com")
        self.assertEqual(main.kwargs["subject"], "New roster application from Alex Doe")
        self.assertNotIn("Saxophone", main.kwargs["body"])
        self.assertEqual(ack.kwargs["to"], "alex@example.com")
        self.assertIn(config["successMessage"], ack.kwargs["body"])

    def test_failed_acknowledgement_does_not_fail_delivery(self):
        config = dict(default_form_config("join"), recipientEmail="talent@example.com")
        prepared = prepare_submission("join", config["fields"], JOIN_VALUES)
        send = Mock(side_effect=[{"sent": True}, EmailDeliveryError("mailbox full")])
        with self.assertLogs("agency.forms", level="WARNING"):
            deliver_submission(prepared, config, send=send)

    def test_main_delivery_failure_propagates(self):
        config = dict(default_form_config("join"), recipientEmail="talent@example.com")
        prepared = prepare_submission("join", config["fields"], JOIN_VALUES)
        send = Mock(side_effect=EmailDeliveryError("smtp down"))
        with self.assertRaises(EmailDeliveryError):
            deliver_submission(prepared, config, send=send)
        self.assertEqual(send.call_count, 1)

    def test_body_keeps_multiline_answers_and_lists(self):
        prepared = PreparedSubmission(
            form_key="contact",
            values={"name": "Sam", "topics": ["Weddings", "Bars"], "message": "Line one\nLine two"},
            labels={"name": "Your name", "topics": "Topics", "message": "Message"},
        )
        body = build_body(prepared)
        self.assertIn("Your name: Sam\n", body)
        self.assertIn("Topics: Weddings, Bars\n", body)
        self.assertIn("Message:\nLine one\nLine two\n", body)
        self.assertEqual(build_subject(prepared), "New contact message from Sam")

    def test_one_line(self):
        self.assertEqual(one_line("  a\r\n b\t c  "), "a b c")
        self.assertEqual(one_line("x" * 10, limit=4), "xxxx")


if __name__ == "__main__":
    unittest.main()
