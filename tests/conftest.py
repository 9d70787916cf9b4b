"""Shared test fixtures for the appointment agent test suite."""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from appointment_agent.drivers.base import FinalText, ModelDriver, NeutralMessage, Reply
from appointment_agent.errors import DeliveryFailed
from appointment_agent.models import (
    AIProvider,
    BusinessHours,
    BusinessProfile,
    DayHours,
    MessagingChannel,
    MessagingProvider,
    Service,
)
from appointment_agent.services.calendar import InMemoryCalendar
from appointment_agent.services.repository import InMemoryBookingRepository

# Monday 7 Jan 2030, 08:00 UTC: before opening time on a working day.
NOW = datetime(2030, 1, 7, 8, 0, tzinfo=UTC)
BUSINESS_ID = "biz-1"
CUSTOMER_PHONE = "+15550001111"


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so nothing reaches for a real secret.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-456")
    os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
    os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")


# ── Test doubles ─────────────────────────────────────────────────────


class ScriptedDriver(ModelDriver):
    """Model driver that replays a fixed list of replies.

    Each entry is either a :data:`Reply` or a callable receiving the
    history and returning one.  Once the script runs out the last entry is
    repeated.
    """

    provider = "scripted"

    def __init__(self, script: Sequence[Reply | Callable[[list[NeutralMessage]], Reply]]):
        self._script = list(script)
        self.calls: list[list[NeutralMessage]] = []
        self.system_prompts: list[str] = []

    async def respond(self, system_prompt, registry, history) -> Reply:
        self.calls.append(list(history))
        self.system_prompts.append(system_prompt)
        step = self._script[min(len(self.calls) - 1, len(self._script) - 1)]
        return step(list(history)) if callable(step) else step


class RecordingMessenger:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def send(self, to: str, body: str) -> None:
        if self.fail:
            raise DeliveryFailed("provider rejected the message")
        self.sent.append((to, body))


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def weekday_hours() -> BusinessHours:
    nine_to_five = DayHours("09:00", "17:00")
    return BusinessHours(
        days={
            "monday": nine_to_five,
            "tuesday": nine_to_five,
            "wednesday": nine_to_five,
            "thursday": nine_to_five,
            "friday": nine_to_five,
        }
    )


@pytest.fixture
def profile(weekday_hours) -> BusinessProfile:
    return BusinessProfile(
        business_id=BUSINESS_ID,
        business_name="Bright Smile Dental",
        profession="Dentist",
        timezone="UTC",
        hours=weekday_hours,
        ai_provider=AIProvider.ANTHROPIC,
        channel=MessagingChannel(
            provider=MessagingProvider.META,
            phone_number_id="PN-1",
            access_token="meta-token",
        ),
    )


@pytest.fixture
def repository(profile) -> InMemoryBookingRepository:
    repo = InMemoryBookingRepository()
    repo.add_business(profile)
    repo.add_service(
        Service(
            service_id="svc-cleaning",
            business_id=BUSINESS_ID,
            name="Routine Cleaning",
            description="Professional teeth cleaning and polishing",
            price=120,
            duration_minutes=45,
        )
    )
    repo.add_service(
        Service(
            service_id="svc-exam",
            business_id=BUSINESS_ID,
            name="Dental Exam",
            description="Comprehensive oral examination",
            price=80,
            duration_minutes=30,
        )
    )
    repo.add_service(
        Service(
            service_id="svc-retired",
            business_id=BUSINESS_ID,
            name="Retired Service",
            price=10,
            duration_minutes=30,
            is_active=False,
        )
    )
    return repo


@pytest.fixture
def calendar() -> InMemoryCalendar:
    return InMemoryCalendar()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def failing_messenger() -> RecordingMessenger:
    return RecordingMessenger(fail=True)


@pytest.fixture
def scripted_driver() -> Callable[..., ScriptedDriver]:
    return ScriptedDriver


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict | None = None, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data or {}
        mock.text = str(data)
        return mock

    return _make


@pytest.fixture
def final_text() -> Callable[[str], FinalText]:
    return FinalText
