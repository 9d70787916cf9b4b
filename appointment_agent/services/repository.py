"""Booking repository contract and an in-memory implementation.

Persistent storage is owned by the surrounding application; the core only
needs the operations declared on :class:`BookingRepository`.  The in-memory
implementation backs the CLI, the default server wiring and the tests.  It
hands out copies so callers can never mutate stored state by accident.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Protocol

from appointment_agent.defaults import default_services
from appointment_agent.models import (
    Appointment,
    AppointmentStatus,
    BusinessProfile,
    CalendarCredentials,
    Conversation,
    MessagingProvider,
    Service,
)

logger = logging.getLogger(__name__)


class BookingRepository(Protocol):
    async def get_business(self, business_id: str) -> BusinessProfile | None: ...

    async def find_business_by_channel(
        self, provider: MessagingProvider, identifier: str,
    ) -> BusinessProfile | None: ...

    async def list_services(self, business_id: str, *, active_only: bool = True) -> list[Service]: ...

    async def get_service(self, service_id: str) -> Service | None: ...

    async def get_appointment(self, appointment_id: str) -> Appointment | None: ...

    async def save_appointment(self, appointment: Appointment) -> Appointment: ...

    async def set_appointment_status(
        self, appointment_id: str, status: AppointmentStatus,
    ) -> Appointment | None: ...

    async def get_conversation(self, business_id: str, customer_phone: str) -> Conversation | None: ...

    async def save_conversation(self, conversation: Conversation) -> None: ...

    async def get_calendar_credentials(self, owner_id: str) -> CalendarCredentials | None: ...

    async def save_calendar_credentials(self, credentials: CalendarCredentials) -> None: ...


class InMemoryBookingRepository:
    """Dict-backed repository; data is lost on process restart."""

    def __init__(self) -> None:
        self._businesses: dict[str, BusinessProfile] = {}
        self._services: dict[str, Service] = {}
        self._appointments: dict[str, Appointment] = {}
        self._conversations: dict[tuple[str, str], Conversation] = {}
        self._credentials: dict[str, CalendarCredentials] = {}

    # ── Setup ────────────────────────────────────────────────────────

    def add_business(self, profile: BusinessProfile) -> None:
        self._businesses[profile.business_id] = copy.deepcopy(profile)

    def add_service(self, service: Service) -> None:
        self._services[service.service_id] = copy.deepcopy(service)

    def add_calendar_credentials(self, credentials: CalendarCredentials) -> None:
        self._credentials[credentials.owner_id] = copy.deepcopy(credentials)

    def load_seed(self, path: str | Path) -> int:
        """Load businesses (and their services) from a JSON seed file.

        The file holds ``{"businesses": [...]}``; each entry is a business
        profile dict plus optional ``services`` and ``google_refresh_token``.
        A business without ``services`` gets the default catalog for its
        profession.  Returns the number of businesses loaded.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        entries: list[dict[str, Any]] = data.get("businesses", [])
        for entry in entries:
            profile = BusinessProfile.from_dict(entry)
            self.add_business(profile)

            services = entry.get("services")
            if services is None:
                services = [vars(s) for s in default_services(profile.profession)]
            for raw in services:
                self.add_service(
                    Service(
                        service_id=raw.get("service_id") or uuid.uuid4().hex,
                        business_id=profile.business_id,
                        name=raw["name"],
                        description=raw.get("description", ""),
                        price=raw["price"],
                        duration_minutes=raw["duration_minutes"],
                        is_active=raw.get("is_active", True),
                    )
                )

            refresh_token = entry.get("google_refresh_token")
            if refresh_token:
                self.add_calendar_credentials(
                    CalendarCredentials(owner_id=profile.business_id, refresh_token=refresh_token)
                )

        logger.info("Loaded %d business(es) from %s", len(entries), path)
        return len(entries)

    # ── Businesses ───────────────────────────────────────────────────

    async def get_business(self, business_id: str) -> BusinessProfile | None:
        return copy.deepcopy(self._businesses.get(business_id))

    async def find_business_by_channel(
        self, provider: MessagingProvider, identifier: str,
    ) -> BusinessProfile | None:
        for profile in self._businesses.values():
            channel = profile.channel
            if channel is None or not channel.is_active or channel.provider != provider:
                continue
            if provider == MessagingProvider.META and channel.phone_number_id == identifier:
                return copy.deepcopy(profile)
            if provider == MessagingProvider.TWILIO and channel.twilio_phone_number == identifier:
                return copy.deepcopy(profile)
        return None

    # ── Services ─────────────────────────────────────────────────────

    async def list_services(self, business_id: str, *, active_only: bool = True) -> list[Service]:
        return [
            copy.deepcopy(s)
            for s in self._services.values()
            if s.business_id == business_id and (s.is_active or not active_only)
        ]

    async def get_service(self, service_id: str) -> Service | None:
        return copy.deepcopy(self._services.get(service_id))

    # ── Appointments ─────────────────────────────────────────────────

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        return copy.deepcopy(self._appointments.get(appointment_id))

    async def save_appointment(self, appointment: Appointment) -> Appointment:
        """Insert or update an appointment.

        When an appointment with the same external event id already exists,
        that record is returned unchanged so a retried write never creates a
        duplicate booking.
        """
        if appointment.external_event_id:
            for existing in self._appointments.values():
                if existing.external_event_id == appointment.external_event_id:
                    return copy.deepcopy(existing)
        self._appointments[appointment.appointment_id] = copy.deepcopy(appointment)
        return copy.deepcopy(appointment)

    async def set_appointment_status(
        self, appointment_id: str, status: AppointmentStatus,
    ) -> Appointment | None:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            return None
        appointment.status = status
        return copy.deepcopy(appointment)

    def appointments(self) -> list[Appointment]:
        return [copy.deepcopy(a) for a in self._appointments.values()]

    # ── Conversations ────────────────────────────────────────────────

    async def get_conversation(self, business_id: str, customer_phone: str) -> Conversation | None:
        return copy.deepcopy(self._conversations.get((business_id, customer_phone)))

    async def save_conversation(self, conversation: Conversation) -> None:
        self._conversations[conversation.key] = copy.deepcopy(conversation)

    # ── Calendar credentials ─────────────────────────────────────────

    async def get_calendar_credentials(self, owner_id: str) -> CalendarCredentials | None:
        return copy.deepcopy(self._credentials.get(owner_id))

    async def save_calendar_credentials(self, credentials: CalendarCredentials) -> None:
        self._credentials[credentials.owner_id] = copy.deepcopy(credentials)
