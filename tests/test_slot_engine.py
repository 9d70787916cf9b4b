"""Tests for the pure availability engine."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from appointment_agent.models import BusinessHours, BusyInterval, DayHours
from appointment_agent.services.slot_engine import day_bounds_utc, free_slots, parse_hhmm

MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 13)


def _hours(open_: str | None, close: str | None) -> BusinessHours:
    return BusinessHours(days={"monday": DayHours(open_, close)})


def _utc(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=UTC)


class TestParseHHMM:
    def test_parses_hours_and_minutes(self):
        assert parse_hhmm("09:30") == time(9, 30)

    def test_accepts_seconds(self):
        assert parse_hhmm("17:00:00") == time(17, 0)

    @pytest.mark.parametrize("value", ["9", "nine:thirty", "25:00", ""])
    def test_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            parse_hhmm(value)


class TestDayBounds:
    def test_utc_day(self):
        start, end = day_bounds_utc(MONDAY)
        assert start == _utc(0)
        assert end == _utc(0, day=MONDAY + timedelta(days=1))

    def test_local_day_is_shifted_to_utc(self):
        start, end = day_bounds_utc(MONDAY, ZoneInfo("America/New_York"))
        # EST is UTC-5 in January
        assert start == _utc(5)
        assert end - start == timedelta(hours=24)


class TestFreeSlots:
    def test_full_day_without_busy_intervals(self):
        slots = free_slots(MONDAY, _hours("09:00", "17:00"), [], 30, 30)
        assert len(slots) == 16
        assert (slots[0].start, slots[0].end) == (_utc(9), _utc(9, 30))
        assert (slots[-1].start, slots[-1].end) == (_utc(16, 30), _utc(17))

    def test_busy_interval_is_skipped(self):
        busy = [BusyInterval(_utc(10), _utc(10, 30))]
        slots = free_slots(MONDAY, _hours("09:00", "12:00"), busy, 30, 30)
        assert [(s.start.time(), s.end.time()) for s in slots] == [
            (time(9), time(9, 30)),
            (time(9, 30), time(10)),
            (time(10, 30), time(11)),
            (time(11), time(11, 30)),
            (time(11, 30), time(12)),
        ]

    def test_closed_day_returns_empty(self):
        assert free_slots(SUNDAY, _hours("09:00", "17:00"), [], 30) == []

    def test_day_with_only_open_time_is_closed(self):
        assert free_slots(MONDAY, _hours("09:00", None), [], 30) == []

    def test_close_before_open_returns_empty(self):
        assert free_slots(MONDAY, _hours("17:00", "09:00"), [], 30) == []

    def test_duration_longer_than_window_returns_empty(self):
        assert free_slots(MONDAY, _hours("09:00", "10:00"), [], 90) == []

    @pytest.mark.parametrize(
        ("window_minutes", "duration", "granularity"),
        [(480, 30, 30), (480, 45, 30), (480, 60, 15), (180, 90, 30), (60, 60, 60)],
    )
    def test_slot_count_formula(self, window_minutes, duration, granularity):
        close = _utc(9) + timedelta(minutes=window_minutes)
        hours = _hours("09:00", close.strftime("%H:%M"))
        slots = free_slots(MONDAY, hours, [], duration, granularity)
        assert len(slots) == (window_minutes - duration) // granularity + 1

    def test_slots_never_overlap_busy_and_stay_inside_window(self):
        busy = [
            BusyInterval(_utc(9, 15), _utc(9, 50)),
            BusyInterval(_utc(12), _utc(13)),
            BusyInterval(_utc(16, 40), _utc(18)),
        ]
        slots = free_slots(MONDAY, _hours("09:00", "17:00"), busy, 45, 15)
        assert slots
        for slot in slots:
            assert slot.end - slot.start == timedelta(minutes=45)
            assert _utc(9) <= slot.start and slot.end <= _utc(17)
            assert not any(b.overlaps(slot.start, slot.end) for b in busy)

    def test_back_to_back_busy_interval_is_not_a_collision(self):
        busy = [BusyInterval(_utc(9, 30), _utc(10))]
        slots = free_slots(MONDAY, _hours("09:00", "10:30"), busy, 30, 30)
        assert [s.start for s in slots] == [_utc(9), _utc(10)]

    def test_slots_are_strictly_increasing(self):
        slots = free_slots(MONDAY, _hours("09:00", "17:00"), [], 45, 15)
        starts = [s.start for s in slots]
        assert starts == sorted(set(starts))

    def test_is_deterministic(self):
        busy = [BusyInterval(_utc(11), _utc(11, 45))]
        first = free_slots(MONDAY, _hours("09:00", "17:00"), busy, 30, 30)
        second = free_slots(MONDAY, _hours("09:00", "17:00"), list(busy), 30, 30)
        assert first == second

    def test_slots_are_expressed_in_business_timezone(self):
        tz = ZoneInfo("Europe/Lisbon")
        slots = free_slots(MONDAY, _hours("09:00", "10:00"), [], 30, 30, tz=tz)
        assert slots[0].start.tzinfo == tz
        assert slots[0].start.hour == 9

    def test_busy_interval_in_utc_applies_to_local_hours(self):
        tz = ZoneInfo("America/New_York")
        # 14:00 UTC is 09:00 EST
        busy = [BusyInterval(_utc(14), _utc(14, 30))]
        slots = free_slots(MONDAY, _hours("09:00", "10:00"), busy, 30, 30, tz=tz)
        assert [s.start.hour * 60 + s.start.minute for s in slots] == [9 * 60 + 30]

    def test_slots_keep_real_duration_on_dst_fall_back(self):
        tz = ZoneInfo("America/New_York")
        fall_back = date(2030, 11, 3)  # 02:00 EDT becomes 01:00 EST
        hours = BusinessHours(days={"sunday": DayHours("00:30", "03:00")})

        slots = free_slots(fall_back, hours, [], 60, 30, tz=tz)

        # 00:30 EDT to 03:00 EST is three and a half real hours.
        assert len(slots) == 6
        assert all(s.end.astimezone(UTC) - s.start.astimezone(UTC) == timedelta(minutes=60) for s in slots)
        assert slots[0].start == datetime(2030, 11, 3, 4, 30, tzinfo=UTC)
        assert slots[-1].end == datetime(2030, 11, 3, 8, 0, tzinfo=UTC)

    @pytest.mark.parametrize(("duration", "granularity"), [(0, 30), (-15, 30), (30, 0)])
    def test_rejects_non_positive_lengths(self, duration, granularity):
        with pytest.raises(ValueError):
            free_slots(MONDAY, _hours("09:00", "17:00"), [], duration, granularity)
