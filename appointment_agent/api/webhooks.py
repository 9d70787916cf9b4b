"""WhatsApp webhook endpoints for Meta Cloud API and Twilio.

Both providers POST to the same URL: Meta sends JSON, Twilio sends a
form-encoded body.  Every well-formed delivery is acknowledged right away
and processed in the background, so a slow model never causes the
provider to retry.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import PlainTextResponse

from appointment_agent import config
from appointment_agent.api.routes import get_dispatcher
from appointment_agent.api.schemas import WebhookAck
from appointment_agent.models import MessagingProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks")

TWIML_EMPTY = "<Response></Response>"


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    body: str
    message_id: str
    # Meta phone_number_id or the Twilio WhatsApp number the customer wrote to.
    recipient: str


# ── Payload parsing ──────────────────────────────────────────────────


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def parse_meta_payload(payload: dict[str, Any]) -> list[InboundMessage]:
    """Extract text messages from a WhatsApp Business Account webhook."""
    if not isinstance(payload, dict) or payload.get("object") != "whatsapp_business_account":
        return []

    messages: list[InboundMessage] = []
    for entry in _dicts(payload.get("entry")):
        for change in _dicts(entry.get("changes")):
            value = change.get("value")
            if not isinstance(value, dict):
                continue
            metadata = value.get("metadata")
            phone_number_id = metadata.get("phone_number_id") if isinstance(metadata, dict) else None
            if not phone_number_id:
                continue
            for raw in _dicts(value.get("messages")):
                text = raw.get("text")
                if raw.get("type") != "text" or not isinstance(text, dict):
                    continue
                body = text.get("body", "")
                sender = raw.get("from", "")
                if not sender or not body:
                    continue
                messages.append(
                    InboundMessage(
                        sender=sender,
                        body=body,
                        message_id=raw.get("id", ""),
                        recipient=phone_number_id,
                    )
                )
    return messages


def parse_twilio_form(form: dict[str, str]) -> InboundMessage | None:
    """Extract the message from a Twilio WhatsApp webhook form."""
    sender = form.get("From", "").replace("whatsapp:", "")
    body = form.get("Body", "")
    if not sender or not body:
        return None
    return InboundMessage(
        sender=sender,
        body=body,
        message_id=form.get("MessageSid", ""),
        recipient=form.get("To", "").replace("whatsapp:", ""),
    )


def verify_meta_signature(payload: bytes, signature: str | None, app_secret: str) -> bool:
    """Check Meta's ``X-Hub-Signature-256`` header against the raw body."""
    if not signature:
        return False
    expected = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/whatsapp", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
):
    """Meta's subscription handshake: echo the challenge if the token matches."""
    if mode == "subscribe" and config.WHATSAPP_VERIFY_TOKEN and token == config.WHATSAPP_VERIFY_TOKEN:
        logger.info("WhatsApp webhook verified")
        return challenge or ""
    logger.warning("WhatsApp webhook verification failed (mode=%s)", mode)
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/whatsapp")
async def receive_webhook(http_request: Request):
    """Accept an inbound WhatsApp delivery from Meta (JSON) or Twilio (form)."""
    content_type = http_request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            await _handle_meta(http_request)
        except Exception:
            logger.exception("Failed to handle Meta webhook")
        return WebhookAck()
    if "application/x-www-form-urlencoded" in content_type:
        try:
            await _handle_twilio(http_request)
        except Exception:
            logger.exception("Failed to handle Twilio webhook")
        return Response(content=TWIML_EMPTY, media_type="text/xml")
    raise HTTPException(status_code=400, detail="Unknown provider")


async def _handle_meta(http_request: Request) -> None:
    raw = await http_request.body()
    if config.META_APP_SECRET and not verify_meta_signature(
        raw, http_request.headers.get("X-Hub-Signature-256"), config.META_APP_SECRET,
    ):
        logger.warning("Dropping Meta webhook with an invalid signature")
        return

    try:
        payload = await http_request.json()
    except ValueError:
        logger.warning("Dropping Meta webhook with a malformed JSON body")
        return

    messages = parse_meta_payload(payload)
    if not messages:
        return

    dispatcher = get_dispatcher(http_request)
    repository = http_request.app.state.repository
    for message in messages:
        profile = await repository.find_business_by_channel(MessagingProvider.META, message.recipient)
        if profile is None:
            logger.error("No business configured for phone number ID %s", message.recipient)
            continue
        dispatcher.submit(profile.business_id, message.sender, message.body, message.message_id)


async def _handle_twilio(http_request: Request) -> None:
    raw = await http_request.body()
    form = dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True))
    message = parse_twilio_form(form)
    if message is None:
        return

    dispatcher = get_dispatcher(http_request)
    repository = http_request.app.state.repository
    profile = await repository.find_business_by_channel(MessagingProvider.TWILIO, message.recipient)
    if profile is None:
        logger.error("No business configured for Twilio number %s", message.recipient)
        return
    dispatcher.submit(profile.business_id, message.sender, message.body, message.message_id)
