"""Tests for the scheduling tools and the tool registry."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from appointment_agent.errors import CalendarUnavailable
from appointment_agent.models import AppointmentStatus, BusinessProfile
from appointment_agent.tools.registry import ToolRegistry
from appointment_agent.tools.scheduling import SchedulingTools, ToolContext
from appointment_agent.tools.schemas import TOOL_SPECS, TOOLSET_VERSION, ToolName

MONDAY = "2030-01-07"
PHONE = "+15550001111"


@pytest.fixture
def registry(repository, calendar) -> ToolRegistry:
    return ToolRegistry(SchedulingTools(repository, calendar))


@pytest.fixture
def ctx(profile, clock) -> ToolContext:
    return ToolContext(profile=profile, customer_phone=PHONE, now=clock)


def _run(registry: ToolRegistry, ctx: ToolContext, name: str, **arguments):
    return asyncio.run(registry.execute(ctx, name, arguments))


def _book(registry, ctx, when: str = "2030-01-07T10:00:00", service_id: str = "svc-exam"):
    return _run(
        registry, ctx, "book_appointment",
        service_id=service_id, customer_name="Ana Costa", customer_phone=PHONE, datetime=when,
    )


# ── Schemas ──────────────────────────────────────────────────────────


class TestToolSchemas:
    def test_exactly_five_tools(self):
        assert {spec.name for spec in TOOL_SPECS} == set(ToolName)
        assert len(TOOL_SPECS) == 5

    def test_parameters_carry_descriptions_and_required_fields(self):
        spec = next(s for s in TOOL_SPECS if s.name == ToolName.BOOK_APPOINTMENT)
        schema = spec.parameters()
        assert schema["type"] == "object"
        assert set(schema["required"]) == {"service_id", "customer_name", "customer_phone", "datetime"}
        assert "ISO 8601" in schema["properties"]["datetime"]["description"]
        assert "title" not in schema

    def test_no_argument_tools_have_empty_properties(self):
        spec = next(s for s in TOOL_SPECS if s.name == ToolName.GET_SERVICES)
        assert spec.parameters()["properties"] == {}


# ── Read-only tools ──────────────────────────────────────────────────


class TestGetServices:
    def test_lists_active_services(self, registry, ctx):
        result = _run(registry, ctx, "get_services")
        assert {s["id"] for s in result["services"]} == {"svc-cleaning", "svc-exam"}
        exam = next(s for s in result["services"] if s["id"] == "svc-exam")
        assert exam == {
            "id": "svc-exam",
            "name": "Dental Exam",
            "description": "Comprehensive oral examination",
            "price": 80,
            "duration_minutes": 30,
        }


class TestGetBusinessHours:
    def test_closed_days_are_null(self, registry, ctx):
        hours = _run(registry, ctx, "get_business_hours")["hours"]
        assert hours["monday"] == {"open": "09:00", "close": "17:00"}
        assert hours["sunday"] == {"open": None, "close": None}
        assert len(hours) == 7


class TestGetAvailability:
    def test_returns_capped_slots(self, registry, ctx):
        result = _run(registry, ctx, "get_availability", date=MONDAY, service_id="svc-exam")
        assert result["total_available"] == 16
        assert len(result["slots"]) == 8
        assert result["duration_minutes"] == 30
        assert result["slots"][0] == {
            "start": "2030-01-07T09:00:00+00:00",
            "end": "2030-01-07T09:30:00+00:00",
        }

    def test_skips_busy_calendar_time(self, registry, ctx, calendar):
        calendar.block(
            "biz-1", datetime(2030, 1, 7, 9, tzinfo=UTC), datetime(2030, 1, 7, 10, tzinfo=UTC),
        )
        result = _run(registry, ctx, "get_availability", date=MONDAY, service_id="svc-exam")
        assert result["slots"][0]["start"] == "2030-01-07T10:00:00+00:00"
        assert result["total_available"] == 14

    def test_drops_slots_in_the_past(self, registry, profile):
        ctx = ToolContext(
            profile=profile,
            customer_phone=PHONE,
            now=lambda: datetime(2030, 1, 7, 16, 5, tzinfo=UTC),
        )
        result = _run(registry, ctx, "get_availability", date=MONDAY, service_id="svc-exam")
        assert [s["start"] for s in result["slots"]] == ["2030-01-07T16:30:00+00:00"]

    def test_closed_day_has_no_slots(self, registry, ctx):
        result = _run(registry, ctx, "get_availability", date="2030-01-13", service_id="svc-exam")
        assert result["slots"] == []
        assert result["total_available"] == 0

    @pytest.mark.parametrize("service_id", ["nope", "svc-retired"])
    def test_unknown_or_inactive_service(self, registry, ctx, service_id):
        result = _run(registry, ctx, "get_availability", date=MONDAY, service_id=service_id)
        assert result["error"] == "service_not_found"

    def test_malformed_date(self, registry, ctx):
        result = _run(registry, ctx, "get_availability", date="next tuesday", service_id="svc-exam")
        assert result["error"] == "invalid_arguments"

    def test_calendar_failure_is_reported(self, repository, ctx):
        calendar = AsyncMock()
        calendar.list_busy.side_effect = CalendarUnavailable("Google is down")
        registry = ToolRegistry(SchedulingTools(repository, calendar))
        result = _run(registry, ctx, "get_availability", date=MONDAY, service_id="svc-exam")
        assert result == {"error": "calendar_unavailable", "message": "Google is down"}


# ── Booking ──────────────────────────────────────────────────────────


class TestBookAppointment:
    def test_books_and_persists(self, registry, ctx, repository, calendar):
        result = _book(registry, ctx)

        assert result["success"] is True
        assert result["start"] == "2030-01-07T10:00:00+00:00"
        assert result["end"] == "2030-01-07T10:30:00+00:00"
        assert result["status"] == "SCHEDULED"

        (appointment,) = repository.appointments()
        assert appointment.appointment_id == result["appointment_id"]
        assert appointment.status == AppointmentStatus.SCHEDULED
        events = calendar.events("biz-1")
        assert list(events) == [appointment.external_event_id]
        assert events[appointment.external_event_id].summary == "Dental Exam - Ana Costa"
        assert ctx.customer_name == "Ana Costa"

    def test_naive_time_is_in_business_timezone(self, registry, repository, profile, clock):
        profile.timezone = "America/New_York"
        ctx = ToolContext(profile=profile, customer_phone=PHONE, now=clock)

        result = _book(registry, ctx, when="2030-01-07T10:00:00")

        (appointment,) = repository.appointments()
        assert appointment.start == datetime(2030, 1, 7, 15, tzinfo=UTC)
        assert result["start"] == "2030-01-07T10:00:00-05:00"

    def test_booking_across_dst_change_keeps_real_duration(self, registry, repository, profile, clock):
        profile.timezone = "America/New_York"
        ctx = ToolContext(profile=profile, customer_phone=PHONE, now=clock)

        # 01:45 EDT; clocks fall back to 01:00 EST at 02:00.
        _book(registry, ctx, when="2030-11-03T01:45:00")

        (appointment,) = repository.appointments()
        assert appointment.start == datetime(2030, 11, 3, 5, 45, tzinfo=UTC)
        assert appointment.end == datetime(2030, 11, 3, 6, 15, tzinfo=UTC)

    def test_collision_is_rejected(self, registry, ctx, repository, calendar):
        calendar.block(
            "biz-1", datetime(2030, 1, 7, 10, 15, tzinfo=UTC), datetime(2030, 1, 7, 11, tzinfo=UTC),
        )
        result = _book(registry, ctx)
        assert result["error"] == "slot_unavailable"
        assert repository.appointments() == []
        assert calendar.events("biz-1") == {}

    def test_second_booking_of_same_slot_is_rejected(self, registry, ctx, repository):
        assert _book(registry, ctx)["success"] is True
        assert _book(registry, ctx)["error"] == "slot_unavailable"
        assert len(repository.appointments()) == 1

    def test_past_time_is_rejected(self, registry, ctx, repository):
        result = _book(registry, ctx, when="2030-01-07T07:00:00")
        assert result["error"] == "slot_unavailable"
        assert repository.appointments() == []

    def test_calendar_failure_persists_nothing(self, repository, ctx):
        calendar = AsyncMock()
        calendar.list_busy.return_value = []
        calendar.create_event.side_effect = CalendarUnavailable("quota exceeded")
        registry = ToolRegistry(SchedulingTools(repository, calendar))

        result = _book(registry, ctx)

        assert result["error"] == "calendar_unavailable"
        assert repository.appointments() == []
        assert ctx.customer_name is None

    def test_calendar_timeout_persists_nothing(self, repository, ctx):
        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        calendar = AsyncMock()
        calendar.list_busy.return_value = []
        calendar.create_event.side_effect = hang
        registry = ToolRegistry(SchedulingTools(repository, calendar, timeout_seconds=0.01))

        result = _book(registry, ctx)

        assert result["error"] == "calendar_unavailable"
        assert repository.appointments() == []

    @patch("appointment_agent.tools.scheduling.asyncio.sleep", new_callable=AsyncMock)
    def test_local_write_is_retried(self, mock_sleep, repository, calendar, ctx):
        real_save = repository.save_appointment
        attempts = []

        async def flaky(appointment):
            attempts.append(appointment.appointment_id)
            if len(attempts) == 1:
                raise ConnectionError("db blip")
            return await real_save(appointment)

        repository.save_appointment = flaky
        registry = ToolRegistry(SchedulingTools(repository, calendar))

        result = _book(registry, ctx)

        assert result["success"] is True
        assert len(attempts) == 2
        assert len(repository.appointments()) == 1
        mock_sleep.assert_awaited_once()

    def test_unknown_service(self, registry, ctx):
        assert _book(registry, ctx, service_id="nope")["error"] == "service_not_found"

    def test_other_business_service_is_not_bookable(self, registry, repository, clock):
        other = BusinessProfile(business_id="biz-2", business_name="Other")
        ctx = ToolContext(profile=other, customer_phone=PHONE, now=clock)
        assert _book(registry, ctx)["error"] == "service_not_found"

    def test_malformed_datetime(self, registry, ctx):
        assert _book(registry, ctx, when="tomorrow at 3")["error"] == "invalid_arguments"


# ── Cancelling ───────────────────────────────────────────────────────


class TestCancelAppointment:
    def test_book_then_cancel_round_trip(self, registry, ctx, repository, calendar):
        booked = _book(registry, ctx)

        result = _run(registry, ctx, "cancel_appointment", appointment_id=booked["appointment_id"])

        assert result["success"] is True
        assert result["status"] == "CANCELLED"
        assert result["calendar_event_deleted"] is True
        assert calendar.events("biz-1") == {}
        stored = asyncio.run(repository.get_appointment(booked["appointment_id"]))
        assert stored.status == AppointmentStatus.CANCELLED

    def test_cancelled_slot_becomes_available_again(self, registry, ctx):
        booked = _book(registry, ctx)
        _run(registry, ctx, "cancel_appointment", appointment_id=booked["appointment_id"])
        assert _book(registry, ctx)["success"] is True

    def test_cancelling_twice_reports_already_cancelled(self, registry, ctx):
        booked = _book(registry, ctx)
        _run(registry, ctx, "cancel_appointment", appointment_id=booked["appointment_id"])
        again = _run(registry, ctx, "cancel_appointment", appointment_id=booked["appointment_id"])
        assert again["success"] is True
        assert again["already_cancelled"] is True

    def test_unknown_appointment(self, registry, ctx):
        result = _run(registry, ctx, "cancel_appointment", appointment_id="missing")
        assert result["error"] == "appointment_not_found"

    def test_other_business_appointment_is_not_found(self, registry, ctx, clock):
        booked = _book(registry, ctx)
        other = ToolContext(
            profile=BusinessProfile(business_id="biz-2", business_name="Other"),
            customer_phone=PHONE,
            now=clock,
        )
        result = _run(registry, other, "cancel_appointment", appointment_id=booked["appointment_id"])
        assert result["error"] == "appointment_not_found"

    def test_event_already_deleted_is_fine(self, registry, ctx, repository, calendar):
        booked = _book(registry, ctx)
        (appointment,) = repository.appointments()
        asyncio.run(calendar.delete_event("biz-1", appointment.external_event_id))

        result = _run(registry, ctx, "cancel_appointment", appointment_id=booked["appointment_id"])

        assert result["success"] is True
        assert result["calendar_event_deleted"] is False

    def test_calendar_failure_still_cancels(self, registry, ctx, repository, calendar):
        booked = _book(registry, ctx)
        with patch.object(
            calendar, "delete_event", AsyncMock(side_effect=CalendarUnavailable("down")),
        ):
            result = _run(
                registry, ctx, "cancel_appointment", appointment_id=booked["appointment_id"],
            )
        assert result["success"] is True
        stored = asyncio.run(repository.get_appointment(booked["appointment_id"]))
        assert stored.status == AppointmentStatus.CANCELLED


# ── Registry totality ────────────────────────────────────────────────


class TestRegistryNeverRaises:
    def test_unknown_tool(self, registry, ctx):
        result = _run(registry, ctx, "delete_everything")
        assert result["error"] == "unknown_tool"

    def test_missing_arguments(self, registry, ctx):
        result = _run(registry, ctx, "get_availability", date=MONDAY)
        assert result["error"] == "invalid_arguments"

    def test_none_arguments_are_accepted_for_no_arg_tools(self, registry, ctx):
        result = asyncio.run(registry.execute(ctx, "get_services", None))
        assert "services" in result

    def test_unexpected_exception_becomes_internal_error(self, repository, calendar, ctx):
        tools = SchedulingTools(repository, calendar)
        registry = ToolRegistry(tools)
        with patch.object(tools, "get_services", AsyncMock(side_effect=KeyError("boom"))):
            result = _run(registry, ctx, "get_services")
        assert result["error"] == "internal_error"

    def test_execution_is_logged_with_toolset_version(self, registry, ctx, caplog):
        with caplog.at_level(logging.DEBUG, logger="appointment_agent.tools.registry"):
            _run(registry, ctx, "get_services")
        assert registry.version == TOOLSET_VERSION
        assert f"Executing tool get_services (toolset {TOOLSET_VERSION})" in caplog.text
