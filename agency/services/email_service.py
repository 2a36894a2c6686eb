from __future__ import annotations

import base64
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import parseaddr
from typing import Any, Iterable, Sequence

import httpx

from agency.core.config import settings


class EmailDeliveryError(Exception):
    pass


logger = logging.getLogger("agency.email")

MOCK_PROVIDERS = {"", "dummy", "mock", "console"}
SERVICE_PROVIDERS = {"service", "email_service"}


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    def to_payload(self) -> dict[str, str]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "content_b64": base64.b64encode(self.content).decode("ascii"),
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "EmailAttachment":
        try:
            content = base64.b64decode(str(data.get("content_b64") or ""), validate=True)
        except ValueError as exc:
            raise EmailDeliveryError(f"Invalid attachment encoding: {data.get('filename')}") from exc
        return cls(
            filename=str(data.get("filename") or "attachment"),
            content=content,
            content_type=str(data.get("content_type") or "application/octet-stream"),
        )


def normalize_email(value: str | None) -> str:
    return str(value or "").strip().lower()


def looks_like_email(value: str | None) -> bool:
    _, address = parseaddr(str(value or ""))
    local, _, domain = address.partition("@")
    return bool(local) and "." in domain and " " not in address


def _provider() -> str:
    return str(settings.EMAIL_PROVIDER or "dummy").strip().lower()


def _mock_send(*, to: str, subject: str, reply_to: str | None, attachments: Sequence[EmailAttachment]) -> dict[str, Any]:
    logger.warning(
        "[EMAIL MOCK] to=%s subject=%r reply_to=%s attachments=%s",
        to,
        subject,
        reply_to or "-",
        len(attachments),
    )
    return {
        "provider": "mock_email",
        "status": "accepted",
        "message": "Email provider response mocked",
        "sent": False,
        "mocked": True,
    }


def _build_message(
    *,
    to: str,
    subject: str,
    body: str,
    sender: str,
    reply_to: str | None,
    attachments: Sequence[EmailAttachment],
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(body)
    for item in attachments:
        maintype, _, subtype = item.content_type.partition("/")
        if not subtype:
            maintype, subtype = "application", "octet-stream"
        filename = " ".join(str(item.filename or "").split()) or "attachment"
        msg.add_attachment(item.content, maintype=maintype, subtype=subtype, filename=filename)
    return msg


def send_email_via_smtp(
    *,
    to: str,
    subject: str,
    body: str,
    sender: str | None = None,
    reply_to: str | None = None,
    attachments: Iterable[EmailAttachment] = (),
) -> dict[str, Any]:
    host = str(settings.SMTP_HOST or "").strip()
    port = int(settings.SMTP_PORT or 0)
    username = str(settings.SMTP_USER or "").strip()
    password = str(settings.SMTP_PASSWORD or "").strip()
    from_address = str(sender or settings.SMTP_FROM or "").strip()
    use_tls = bool(settings.SMTP_USE_TLS)
    use_ssl = bool(settings.SMTP_USE_SSL)

    if not normalize_email(to):
        raise EmailDeliveryError("Recipient address is empty")
    if not host or not port or not from_address:
        raise EmailDeliveryError("SMTP_HOST/SMTP_PORT/SMTP_FROM are not configured")
    if use_tls and use_ssl:
        raise EmailDeliveryError("SMTP_USE_TLS and SMTP_USE_SSL cannot both be enabled")

    try:
        msg = _build_message(
            to=to,
            subject=subject,
            body=body,
            sender=from_address,
            reply_to=reply_to,
            attachments=list(attachments),
        )
    except ValueError as exc:
        raise EmailDeliveryError(f"Email message is malformed: {exc}") from exc
    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=15)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=15)
        with smtp as client:
            client.ehlo()
            if use_tls:
                client.starttls()
                client.ehlo()
            if username:
                client.login(username, password)
            client.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f"SMTP delivery failed: {exc}") from exc

    return {"provider": "smtp", "status": "accepted", "message": "Email sent", "sent": True}


def _send_via_email_service(
    *,
    to: str,
    subject: str,
    body: str,
    sender: str | None,
    reply_to: str | None,
    attachments: Sequence[EmailAttachment],
) -> dict[str, Any]:
    base_url = str(settings.EMAIL_SERVICE_URL or "").strip().rstrip("/")
    token = str(settings.INTERNAL_SERVICE_TOKEN or "").strip()
    if not base_url:
        raise EmailDeliveryError("EMAIL_SERVICE_URL is not configured")
    if not token:
        raise EmailDeliveryError("INTERNAL_SERVICE_TOKEN is not configured")
    try:
        with httpx.Client(timeout=15.0) as client:
            response = client.post(
                f"{base_url}/internal/send",
                headers={"X-Internal-Token": token},
                json={
                    "to": to,
                    "subject": subject,
                    "body": body,
                    "sender": sender,
                    "reply_to": reply_to,
                    "attachments": [item.to_payload() for item in attachments],
                },
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"email-service request failed: {exc}") from exc
    try:
        payload: dict[str, Any] = response.json() if response.content else {}
    except ValueError:
        payload = {}
    if response.status_code >= 400:
        detail = str(payload.get("detail") or response.text or response.status_code)
        raise EmailDeliveryError(f"email-service error: {detail}")
    return {
        "provider": "email-service",
        "status": "accepted",
        "message": "Email sent via email-service",
        "sent": True,
        "response": payload,
    }


def send_email_message(
    *,
    to: str,
    subject: str,
    body: str,
    sender: str | None = None,
    reply_to: str | None = None,
    attachments: Iterable[EmailAttachment] = (),
) -> dict[str, Any]:
    recipient = str(to or "").strip()
    if not recipient:
        raise EmailDeliveryError("Recipient address is empty")
    files = list(attachments)

    provider = _provider()
    if provider in MOCK_PROVIDERS:
        return _mock_send(to=recipient, subject=subject, reply_to=reply_to, attachments=files)
    if provider in SERVICE_PROVIDERS:
        return _send_via_email_service(
            to=recipient,
            subject=subject,
            body=body,
            sender=sender,
            reply_to=reply_to,
            attachments=files,
        )
    if provider == "smtp":
        return send_email_via_smtp(
            to=recipient,
            subject=subject,
            body=body,
            sender=sender,
            reply_to=reply_to,
            attachments=files,
        )
    raise EmailDeliveryError(f"Unknown EMAIL_PROVIDER: {provider}")


def email_provider_health() -> dict[str, Any]:
    provider = _provider()
    if provider in MOCK_PROVIDERS:
        return {
            "provider": "dummy",
            "status": "ok",
            "mode": "mock",
            "can_send": True,
            "checks": {"mock_mode": True},
            "issues": [],
        }

    if provider in SERVICE_PROVIDERS:
        base_url = str(settings.EMAIL_SERVICE_URL or "").strip().rstrip("/")
        token = str(settings.INTERNAL_SERVICE_TOKEN or "").strip()
        checks = {"email_service_url_configured": bool(base_url), "internal_service_token_configured": bool(token)}
        issues: list[str] = []
        if not base_url:
            issues.append("EMAIL_SERVICE_URL is not configured")
        if not token:
            issues.append("INTERNAL_SERVICE_TOKEN is not configured")
        can_send = all(checks.values())
        if can_send:
            try:
                with httpx.Client(timeout=5.0) as client:
                    response = client.get(f"{base_url}/health")
                if response.status_code >= 400:
                    can_send = False
                    issues.append(f"email-service unavailable: HTTP {response.status_code}")
            except httpx.HTTPError as exc:
                can_send = False
                issues.append(f"email-service unavailable: {exc}")
        return {
            "provider": "email-service",
            "status": "ok" if can_send else "degraded",
            "mode": "service",
            "can_send": can_send,
            "checks": checks,
            "issues": issues,
        }

    if provider == "smtp":
        checks = {
            "smtp_host_configured": bool(str(settings.SMTP_HOST or "").strip()),
            "smtp_from_configured": bool(str(settings.SMTP_FROM or "").strip()),
        }
        issues = []
        if not checks["smtp_host_configured"]:
            issues.append("SMTP_HOST is not configured")
        if not checks["smtp_from_configured"]:
            issues.append("SMTP_FROM is not configured")
        return {
            "provider": "smtp",
            "status": "ok" if all(checks.values()) else "degraded",
            "mode": "real",
            "can_send": all(checks.values()),
            "checks": checks,
            "issues": issues,
        }

    return {
        "provider": provider,
        "status": "error",
        "mode": "unknown",
        "can_send": False,
        "checks": {"provider_supported": False},
        "issues": [f"Unknown EMAIL_PROVIDER: {provider}"],
    }
