"""Async HTTP client for the Google Calendar API v3 with retry logic,
OAuth token refresh and an access-token cache.

Google Calendar API docs: https://developers.google.com/calendar/api/v3/reference
Each business owner authorises the app once; we keep their refresh token in
the booking repository and mint short-lived access tokens on demand.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Protocol

import httpx

from appointment_agent.config import (
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    GOOGLE_CALENDAR_BASE_URL,
    GOOGLE_CALENDAR_ID,
    GOOGLE_TOKEN_URL,
    get_secret,
)
from appointment_agent.errors import CalendarUnavailable
from appointment_agent.models import BusyInterval, CalendarCredentials, utcnow
from appointment_agent.services.cache import TTLCache
from appointment_agent.services.calendar import CalendarEvent
from appointment_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 0.5

# Refresh this long before Google's stated expiry.
TOKEN_EXPIRY_MARGIN = timedelta(seconds=60)

_CK_TOKEN = "google_token:"


class CredentialStore(Protocol):
    async def get_calendar_credentials(self, owner_id: str) -> CalendarCredentials | None: ...

    async def save_calendar_credentials(self, credentials: CalendarCredentials) -> None: ...


def _parse_rfc3339(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _rfc3339(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class GoogleCalendarClient:
    """Calendar gateway backed by the Google Calendar REST API.

    Access tokens are cached per owner until shortly before they expire.  A
    401 from Google drops the cached token and the request is retried once
    with a freshly minted one.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        calendar_id: str = GOOGLE_CALENDAR_ID,
        http_client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
    ):
        self._store = credential_store
        self._client_id = client_id
        self._client_secret = client_secret
        self._calendar_id = calendar_id
        self._http = http_client or httpx.AsyncClient(timeout=EXTERNAL_CALL_TIMEOUT_SECONDS)
        self._cache = cache or TTLCache()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── OAuth ────────────────────────────────────────────────────────

    async def _access_token(self, owner_id: str) -> str:
        cached = self._cache.get(f"{_CK_TOKEN}{owner_id}")
        if cached is not None:
            return cached

        credentials = await self._store.get_calendar_credentials(owner_id)
        if credentials is None or not credentials.refresh_token:
            raise CalendarUnavailable(f"No Google credentials connected for {owner_id}")

        now = utcnow()
        if (
            credentials.access_token
            and credentials.expires_at is not None
            and now < credentials.expires_at - TOKEN_EXPIRY_MARGIN
        ):
            self._remember_token(owner_id, credentials.access_token, credentials.expires_at)
            return credentials.access_token

        return await self._refresh(credentials)

    async def _refresh(self, credentials: CalendarCredentials) -> str:
        payload = {
            "client_id": self._client_id or get_secret("GOOGLE_CLIENT_ID"),
            "client_secret": self._client_secret or get_secret("GOOGLE_CLIENT_SECRET"),
            "refresh_token": credentials.refresh_token,
            "grant_type": "refresh_token",
        }
        async with metrics.track("google_calendar", "token_refresh"):
            try:
                response = await self._http.post(GOOGLE_TOKEN_URL, data=payload)
            except httpx.HTTPError as exc:
                raise CalendarUnavailable(f"Token refresh failed: {exc}") from exc
        if response.status_code >= 400:
            raise CalendarUnavailable(
                f"Token refresh rejected ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        data = response.json()
        credentials.access_token = data["access_token"]
        credentials.expires_at = utcnow() + timedelta(seconds=int(data.get("expires_in", 3600)))
        await self._store.save_calendar_credentials(credentials)
        self._remember_token(credentials.owner_id, credentials.access_token, credentials.expires_at)
        logger.info("Refreshed Google access token for %s", credentials.owner_id)
        return credentials.access_token

    def _remember_token(self, owner_id: str, token: str, expires_at: datetime) -> None:
        ttl = (expires_at - TOKEN_EXPIRY_MARGIN - utcnow()).total_seconds()
        if ttl > 0:
            self._cache.put(f"{_CK_TOKEN}{owner_id}", token, ttl_seconds=ttl)

    # ── Internal helpers ─────────────────────────────────────────────

    async def _request(
        self,
        owner_id: str,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        """Execute an authorised request with exponential-backoff retries."""
        last_error: Exception | None = None
        reauthorised = False
        attempt = 0
        while attempt < MAX_RETRIES:
            attempt += 1
            token = await self._access_token(owner_id)
            try:
                response = await self._http.request(
                    method,
                    f"{GOOGLE_CALENDAR_BASE_URL}{path}",
                    json=json_body,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Google Calendar attempt %d/%d failed (%s)",
                    attempt, MAX_RETRIES, type(exc).__name__,
                )
            else:
                if response.status_code == 401 and not reauthorised:
                    self._cache.invalidate(f"{_CK_TOKEN}{owner_id}")
                    credentials = await self._store.get_calendar_credentials(owner_id)
                    if credentials is not None:
                        credentials.expires_at = None
                        await self._refresh(credentials)
                    reauthorised = True
                    attempt -= 1
                    continue
                if allow_not_found and response.status_code in (404, 410):
                    return response
                if response.status_code >= 500:
                    last_error = CalendarUnavailable(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                    logger.warning(
                        "Google Calendar server error on attempt %d/%d", attempt, MAX_RETRIES,
                    )
                elif response.status_code >= 400:
                    raise CalendarUnavailable(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                else:
                    return response

            if attempt < MAX_RETRIES:
                await asyncio.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise CalendarUnavailable(
            f"Google Calendar request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Gateway API ──────────────────────────────────────────────────

    async def list_busy(
        self, owner_id: str, start_utc: datetime, end_utc: datetime,
    ) -> list[BusyInterval]:
        """Return busy intervals on the owner's calendar inside ``[start_utc, end_utc)``."""
        async with metrics.track("google_calendar", "freebusy"):
            response = await self._request(
                owner_id,
                "POST",
                "/freeBusy",
                json_body={
                    "timeMin": _rfc3339(start_utc),
                    "timeMax": _rfc3339(end_utc),
                    "items": [{"id": self._calendar_id}],
                },
            )
        calendar = response.json().get("calendars", {}).get(self._calendar_id, {})
        if calendar.get("errors"):
            raise CalendarUnavailable(f"freeBusy returned errors: {calendar['errors']}")
        return sorted(
            BusyInterval(_parse_rfc3339(b["start"]), _parse_rfc3339(b["end"]))
            for b in calendar.get("busy", [])
        )

    async def create_event(self, owner_id: str, event: CalendarEvent) -> str:
        """Insert an event and return its Google event id."""
        body = {
            "summary": event.summary,
            "description": event.description,
            "start": {"dateTime": _rfc3339(event.start_utc), "timeZone": event.timezone},
            "end": {"dateTime": _rfc3339(event.end_utc), "timeZone": event.timezone},
        }
        async with metrics.track("google_calendar", "events.insert"):
            response = await self._request(
                owner_id, "POST", f"/calendars/{self._calendar_id}/events", json_body=body,
            )
        event_id = response.json().get("id")
        if not event_id:
            raise CalendarUnavailable("Google Calendar did not return an event id")
        logger.info("Created calendar event %s for %s", event_id, owner_id)
        return event_id

    async def delete_event(self, owner_id: str, event_id: str) -> bool:
        """Delete an event.  Returns ``False`` if it was already gone."""
        async with metrics.track("google_calendar", "events.delete"):
            response = await self._request(
                owner_id,
                "DELETE",
                f"/calendars/{self._calendar_id}/events/{event_id}",
                allow_not_found=True,
            )
        if response.status_code in (404, 410):
            logger.info("Calendar event %s for %s was already deleted", event_id, owner_id)
            return False
        return True
