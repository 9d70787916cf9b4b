"""Outbound WhatsApp delivery through Meta's Cloud API or Twilio.

Both senders raise :class:`~appointment_agent.errors.DeliveryFailed` on any
transport or provider error; the orchestrator logs it and moves on.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from appointment_agent.config import EXTERNAL_CALL_TIMEOUT_SECONDS, META_GRAPH_API_VERSION
from appointment_agent.errors import DeliveryFailed
from appointment_agent.models import MessagingChannel, MessagingProvider
from appointment_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class OutboundMessenger(Protocol):
    async def send(self, to: str, body: str) -> None: ...


class _HttpSender:
    provider = "messaging"

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._http = http_client

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        async with metrics.track(self.provider, "send"):
            try:
                if self._http is not None:
                    response = await self._http.post(url, **kwargs)
                else:
                    async with httpx.AsyncClient(timeout=EXTERNAL_CALL_TIMEOUT_SECONDS) as client:
                        response = await client.post(url, **kwargs)
            except httpx.HTTPError as exc:
                raise DeliveryFailed(f"{self.provider} request failed: {exc}") from exc
            if response.status_code >= 400:
                raise DeliveryFailed(
                    f"{self.provider} API error {response.status_code}: {response.text}"
                )
        return response


class MetaWhatsAppSender(_HttpSender):
    """Sends text messages through the WhatsApp Cloud API (Graph API)."""

    provider = "meta_whatsapp"

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_client)
        self._phone_number_id = phone_number_id
        self._access_token = access_token

    async def send(self, to: str, body: str) -> None:
        url = f"https://graph.facebook.com/{META_GRAPH_API_VERSION}/{self._phone_number_id}/messages"
        await self._post(
            url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            json={
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": body},
            },
        )
        logger.debug("Meta: delivered message to %s", to)


class TwilioWhatsAppSender(_HttpSender):
    """Sends WhatsApp messages through Twilio's Messages resource."""

    provider = "twilio_whatsapp"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_client)
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number

    async def send(self, to: str, body: str) -> None:
        url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"
        await self._post(
            url,
            auth=(self._account_sid, self._auth_token),
            data={
                "From": f"whatsapp:{self._from_number}",
                "To": f"whatsapp:{to}",
                "Body": body,
            },
        )
        logger.debug("Twilio: delivered message to %s", to)


def get_messenger(
    channel: MessagingChannel,
    http_client: httpx.AsyncClient | None = None,
) -> OutboundMessenger:
    """Build the sender for a business's configured channel."""
    if channel.provider == MessagingProvider.META:
        return MetaWhatsAppSender(channel.phone_number_id, channel.access_token, http_client)
    if channel.provider == MessagingProvider.TWILIO:
        return TwilioWhatsAppSender(
            channel.twilio_account_sid,
            channel.twilio_auth_token,
            channel.twilio_phone_number,
            http_client,
        )
    raise ValueError(f"Unknown WhatsApp provider: {channel.provider}")
