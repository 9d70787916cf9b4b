"""Calendar gateway contract and an in-process implementation.

The booking tools only ever talk to a :class:`CalendarGateway`.  Production
uses :class:`~appointment_agent.services.google_calendar.GoogleCalendarClient`;
the CLI and the test-suite use :class:`InMemoryCalendar`.

Every implementation raises :class:`~appointment_agent.errors.CalendarUnavailable`
when the calendar cannot serve a request, and ``delete_event`` returns
``False`` (rather than raising) for an event that is already gone.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from appointment_agent.models import BusyInterval

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarEvent:
    """Event to create on the owner's calendar (instants are UTC)."""

    summary: str
    start_utc: datetime
    end_utc: datetime
    timezone: str
    description: str = ""


class CalendarGateway(Protocol):
    async def list_busy(
        self, owner_id: str, start_utc: datetime, end_utc: datetime,
    ) -> list[BusyInterval]: ...

    async def create_event(self, owner_id: str, event: CalendarEvent) -> str: ...

    async def delete_event(self, owner_id: str, event_id: str) -> bool: ...


class InMemoryCalendar:
    """Calendar kept in process memory, one event list per owner."""

    def __init__(self) -> None:
        self._events: dict[str, dict[str, CalendarEvent]] = {}
        self._blocked: dict[str, list[BusyInterval]] = {}

    def block(self, owner_id: str, start_utc: datetime, end_utc: datetime) -> None:
        """Mark a range busy without an event (e.g. a personal appointment)."""
        self._blocked.setdefault(owner_id, []).append(BusyInterval(start_utc, end_utc))

    def events(self, owner_id: str) -> dict[str, CalendarEvent]:
        return dict(self._events.get(owner_id, {}))

    async def list_busy(
        self, owner_id: str, start_utc: datetime, end_utc: datetime,
    ) -> list[BusyInterval]:
        intervals = list(self._blocked.get(owner_id, []))
        intervals.extend(
            BusyInterval(event.start_utc, event.end_utc)
            for event in self._events.get(owner_id, {}).values()
        )
        return sorted(i for i in intervals if i.overlaps(start_utc, end_utc))

    async def create_event(self, owner_id: str, event: CalendarEvent) -> str:
        event_id = uuid.uuid4().hex
        self._events.setdefault(owner_id, {})[event_id] = event
        logger.debug("InMemoryCalendar: created %s for %s", event_id, owner_id)
        return event_id

    async def delete_event(self, owner_id: str, event_id: str) -> bool:
        removed = self._events.get(owner_id, {}).pop(event_id, None)
        return removed is not None
