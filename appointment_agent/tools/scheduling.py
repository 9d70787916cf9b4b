"""Scheduling tool implementations.

Each tool works on behalf of one business (``ToolContext.profile``) and
returns a small JSON-serialisable dict that is fed back to the model.
Domain failures are raised as :mod:`appointment_agent.errors` exceptions and
turned into ``{"error": ...}`` payloads by the registry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from appointment_agent.config import (
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    MAX_SLOTS_PRESENTED,
    SLOT_GRANULARITY_MINUTES,
)
from appointment_agent.errors import (
    AppointmentNotFound,
    CalendarUnavailable,
    ServiceNotFound,
    SlotUnavailable,
)
from appointment_agent.models import (
    Appointment,
    AppointmentStatus,
    BusinessProfile,
    Service,
    utcnow,
)
from appointment_agent.services.calendar import CalendarEvent, CalendarGateway
from appointment_agent.services.repository import BookingRepository
from appointment_agent.services.slot_engine import day_bounds_utc, free_slots
from appointment_agent.tools.schemas import (
    BookAppointmentArgs,
    CancelAppointmentArgs,
    GetAvailabilityArgs,
    NoArgs,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERSIST_ATTEMPTS = 3
PERSIST_BACKOFF_SECONDS = 0.2


@dataclass
class ToolContext:
    """Per-turn state shared by the tools.

    ``customer_name`` is filled in by a successful booking so the
    orchestrator can remember it on the conversation.
    """

    profile: BusinessProfile
    customer_phone: str
    customer_name: str | None = None
    now: Callable[[], datetime] = field(default=utcnow)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.profile.timezone)


class SchedulingTools:
    """The five scheduling operations, backed by a repository and a calendar."""

    def __init__(
        self,
        repository: BookingRepository,
        calendar: CalendarGateway,
        *,
        max_slots: int = MAX_SLOTS_PRESENTED,
        granularity_minutes: int = SLOT_GRANULARITY_MINUTES,
        timeout_seconds: float = EXTERNAL_CALL_TIMEOUT_SECONDS,
    ):
        self._repository = repository
        self._calendar = calendar
        self._max_slots = max_slots
        self._granularity = granularity_minutes
        self._timeout = timeout_seconds

    # ── Helpers ──────────────────────────────────────────────────────

    async def _calendar_call(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as exc:
            raise CalendarUnavailable(f"Calendar {operation} timed out") from exc

    async def _active_service(self, ctx: ToolContext, service_id: str) -> Service:
        service = await self._repository.get_service(service_id)
        if (
            service is None
            or service.business_id != ctx.profile.business_id
            or not service.is_active
        ):
            raise ServiceNotFound(f"Service {service_id!r} not found")
        return service

    def _parse_start(self, ctx: ToolContext, value: str) -> datetime:
        start = datetime.fromisoformat(value.strip())
        if start.tzinfo is None:
            start = start.replace(tzinfo=ctx.tz)
        return start

    async def _persist(self, appointment: Appointment) -> Appointment:
        """Upsert the appointment, retrying transient repository failures."""
        for attempt in range(1, PERSIST_ATTEMPTS + 1):
            try:
                return await self._repository.save_appointment(appointment)
            except Exception:
                if attempt == PERSIST_ATTEMPTS:
                    logger.error(
                        "Could not persist appointment for calendar event %s after %d attempts",
                        appointment.external_event_id, PERSIST_ATTEMPTS,
                    )
                    raise
                logger.warning(
                    "Persisting appointment failed (attempt %d/%d), retrying",
                    attempt, PERSIST_ATTEMPTS,
                )
                await asyncio.sleep(PERSIST_BACKOFF_SECONDS * attempt)
        raise AssertionError("unreachable")

    # ── Tools ────────────────────────────────────────────────────────

    async def get_services(self, ctx: ToolContext, args: NoArgs) -> dict[str, Any]:
        services = await self._repository.list_services(ctx.profile.business_id)
        return {"services": [s.to_summary() for s in services]}

    async def get_availability(self, ctx: ToolContext, args: GetAvailabilityArgs) -> dict[str, Any]:
        service = await self._active_service(ctx, args.service_id)
        day = date.fromisoformat(args.date.strip())
        tz = ctx.tz

        start_utc, end_utc = day_bounds_utc(day, tz)
        busy = await self._calendar_call(
            self._calendar.list_busy(ctx.profile.business_id, start_utc, end_utc),
            "free/busy lookup",
        )
        now = ctx.now()
        slots = [
            slot
            for slot in free_slots(
                day,
                ctx.profile.hours,
                busy,
                service.duration_minutes,
                granularity_minutes=self._granularity,
                tz=tz,
            )
            if slot.start > now
        ]
        logger.debug(
            "Availability %s on %s: %d free slot(s), %d busy interval(s)",
            service.name, day, len(slots), len(busy),
        )
        return {
            "date": day.isoformat(),
            "service_id": service.service_id,
            "duration_minutes": service.duration_minutes,
            "slots": [slot.to_dict() for slot in slots[: self._max_slots]],
            "total_available": len(slots),
        }

    async def book_appointment(self, ctx: ToolContext, args: BookAppointmentArgs) -> dict[str, Any]:
        service = await self._active_service(ctx, args.service_id)
        start = self._parse_start(ctx, args.datetime)
        start_utc = start.astimezone(UTC)
        end_utc = start_utc + timedelta(minutes=service.duration_minutes)
        owner_id = ctx.profile.business_id

        if start_utc <= ctx.now():
            raise SlotUnavailable("The requested time is in the past")

        busy = await self._calendar_call(
            self._calendar.list_busy(owner_id, start_utc, end_utc), "free/busy lookup",
        )
        if any(interval.overlaps(start_utc, end_utc) for interval in busy):
            raise SlotUnavailable("The requested time is no longer available")

        customer_name = args.customer_name.strip()
        event = CalendarEvent(
            summary=f"{service.name} - {customer_name}",
            description=(
                f"Service: {service.name}\nCustomer: {customer_name}\n"
                f"Phone: {args.customer_phone}\nPrice: ${service.price:g}"
            ),
            start_utc=start_utc,
            end_utc=end_utc,
            timezone=ctx.profile.timezone,
        )
        event_id = await self._calendar_call(
            self._calendar.create_event(owner_id, event), "event creation",
        )

        appointment = await self._persist(
            Appointment(
                business_id=owner_id,
                service_id=service.service_id,
                customer_name=customer_name,
                customer_phone=args.customer_phone,
                start=start_utc,
                end=end_utc,
                status=AppointmentStatus.SCHEDULED,
                external_event_id=event_id,
            )
        )
        ctx.customer_name = customer_name
        logger.info(
            "Booked %s for %s at %s (appointment %s)",
            service.name, args.customer_phone, start.isoformat(), appointment.appointment_id,
        )

        tz = ctx.tz
        return {
            "success": True,
            "appointment_id": appointment.appointment_id,
            "service": service.name,
            "customer_name": customer_name,
            "start": appointment.start.astimezone(tz).isoformat(),
            "end": appointment.end.astimezone(tz).isoformat(),
            "price": service.price,
            "status": appointment.status.value,
        }

    async def cancel_appointment(
        self, ctx: ToolContext, args: CancelAppointmentArgs,
    ) -> dict[str, Any]:
        appointment = await self._repository.get_appointment(args.appointment_id)
        if appointment is None or appointment.business_id != ctx.profile.business_id:
            raise AppointmentNotFound(f"Appointment {args.appointment_id!r} not found")

        if appointment.status == AppointmentStatus.CANCELLED:
            return {
                "success": True,
                "appointment_id": appointment.appointment_id,
                "status": AppointmentStatus.CANCELLED.value,
                "already_cancelled": True,
            }

        event_deleted = False
        if appointment.external_event_id:
            try:
                event_deleted = await self._calendar_call(
                    self._calendar.delete_event(
                        ctx.profile.business_id, appointment.external_event_id,
                    ),
                    "event deletion",
                )
            except CalendarUnavailable as exc:
                # The appointment is still cancelled locally.
                logger.warning(
                    "Could not delete calendar event %s: %s",
                    appointment.external_event_id, exc,
                )

        await self._repository.set_appointment_status(
            appointment.appointment_id, AppointmentStatus.CANCELLED,
        )
        logger.info("Cancelled appointment %s", appointment.appointment_id)
        return {
            "success": True,
            "appointment_id": appointment.appointment_id,
            "status": AppointmentStatus.CANCELLED.value,
            "calendar_event_deleted": event_deleted,
        }

    async def get_business_hours(self, ctx: ToolContext, args: NoArgs) -> dict[str, Any]:
        return {"hours": ctx.profile.hours.to_dict()}
