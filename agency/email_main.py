from __future__ import annotations

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from agency.core.config import settings
from agency.services.email_service import EmailAttachment, EmailDeliveryError, send_email_via_smtp

app = FastAPI(title="agency-email-service")


class InternalAttachment(BaseModel):
    filename: str
    content_type: str = "application/octet-stream"
    content_b64: str


class InternalEmailSend(BaseModel):
    to: str
    subject: str
    body: str
    sender: str | None = None
    reply_to: str | None = None
    attachments: list[InternalAttachment] = Field(default_factory=list)


@app.get("/health")
def health():
    return {"status": "ok", "service": "email-service"}


@app.post("/internal/send")
def internal_send(payload: InternalEmailSend, x_internal_token: str | None = Header(default=None)):
    expected = str(settings.INTERNAL_SERVICE_TOKEN or "").strip()
    if not expected:
        raise HTTPException(status_code=500, detail="INTERNAL_SERVICE_TOKEN is not configured")
    if str(x_internal_token or "").strip() != expected:
        raise HTTPException(status_code=401, detail="Invalid internal token")
    try:
        attachments = [EmailAttachment.from_payload(item.model_dump()) for item in payload.attachments]
        result = send_email_via_smtp(
            to=payload.to,
            subject=payload.subject,
            body=payload.body,
            sender=payload.sender,
            reply_to=payload.reply_to,
            attachments=attachments,
        )
    except EmailDeliveryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"status": "sent", "result": result}
