"""Domain records shared by the slot engine, the tools and the orchestrator."""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class AIProvider(str, Enum):
    ANTHROPIC = "ANTHROPIC"
    OPENAI = "OPENAI"


class MessagingProvider(str, Enum):
    META = "META"
    TWILIO = "TWILIO"


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Role(str, Enum):
    CUSTOMER = "customer"
    ASSISTANT = "assistant"


# ── Business profile ─────────────────────────────────────────────────


@dataclass(frozen=True)
class DayHours:
    """Opening window for one weekday as ``HH:MM`` strings.

    Either field missing means the business is closed that day.
    """

    open: str | None = None
    close: str | None = None

    @property
    def is_closed(self) -> bool:
        return not self.open or not self.close


@dataclass(frozen=True)
class BusinessHours:
    """Weekly schedule keyed by lower-case weekday name."""

    days: dict[str, DayHours] = field(default_factory=dict)

    def for_weekday(self, weekday: int) -> DayHours:
        """Return the hours for ``weekday`` (0 = Monday, as ``date.weekday()``)."""
        return self.days.get(WEEKDAYS[weekday], DayHours())

    def to_dict(self) -> dict[str, dict[str, str | None]]:
        result = {}
        for name in WEEKDAYS:
            day = self.days.get(name, DayHours())
            if day.is_closed:
                result[name] = {"open": None, "close": None}
            else:
                result[name] = {"open": day.open, "close": day.close}
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BusinessHours:
        days = {}
        for name in WEEKDAYS:
            raw = data.get(name) or {}
            days[name] = DayHours(open=raw.get("open") or None, close=raw.get("close") or None)
        return cls(days=days)


@dataclass
class MessagingChannel:
    """Outbound WhatsApp channel credentials for one business."""

    provider: MessagingProvider
    phone_number_id: str = ""
    access_token: str = ""
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessagingChannel:
        return cls(
            provider=MessagingProvider(data["provider"]),
            phone_number_id=data.get("phone_number_id", ""),
            access_token=data.get("access_token", ""),
            twilio_account_sid=data.get("twilio_account_sid", ""),
            twilio_auth_token=data.get("twilio_auth_token", ""),
            twilio_phone_number=data.get("twilio_phone_number", ""),
            is_active=data.get("is_active", True),
        )


@dataclass
class BusinessProfile:
    business_id: str
    business_name: str
    profession: str = "Service Provider"
    timezone: str = "UTC"
    hours: BusinessHours = field(default_factory=BusinessHours)
    ai_provider: AIProvider = AIProvider.ANTHROPIC
    channel: MessagingChannel | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BusinessProfile:
        channel = data.get("channel")
        return cls(
            business_id=data["business_id"],
            business_name=data["business_name"],
            profession=data.get("profession", "Service Provider"),
            timezone=data.get("timezone", "UTC"),
            hours=BusinessHours.from_dict(data.get("hours", {})),
            ai_provider=AIProvider(data.get("ai_provider", AIProvider.ANTHROPIC.value)),
            channel=MessagingChannel.from_dict(channel) if channel else None,
        )


@dataclass
class Service:
    service_id: str
    business_id: str
    name: str
    price: float
    duration_minutes: int
    description: str = ""
    is_active: bool = True

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "duration_minutes": self.duration_minutes,
        }


@dataclass
class CalendarCredentials:
    owner_id: str
    refresh_token: str
    access_token: str | None = None
    expires_at: datetime | None = None


# ── Time ranges ──────────────────────────────────────────────────────


@dataclass(frozen=True, order=True)
class BusyInterval:
    """Occupied calendar range, half-open ``[start, end)``."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


# ── Appointments ─────────────────────────────────────────────────────


@dataclass
class Appointment:
    business_id: str
    service_id: str
    customer_name: str
    customer_phone: str
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    external_event_id: str | None = None
    appointment_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)


# ── Conversations ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, str]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Conversation:
    """Bounded transcript for one (business, customer) pair.

    ``turns`` is a ring: appending past ``max_turns`` drops the oldest turn,
    so what is persisted and what is sent to the model are always the same
    window.
    """

    business_id: str
    customer_phone: str
    max_turns: int = 20
    turns: deque[ConversationTurn] = field(default_factory=deque)
    customer_name: str | None = None
    last_message_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.turns = deque(self.turns, maxlen=self.max_turns)

    @property
    def key(self) -> tuple[str, str]:
        return (self.business_id, self.customer_phone)

    def append(self, role: Role, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content)
        self.turns.append(turn)
        self.last_message_at = turn.timestamp
        return turn
