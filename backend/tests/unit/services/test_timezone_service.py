# backend/tests/unit/services/test_timezone_service.py
"""
TimezoneService conversions, including the US daylight-saving transitions
of 2026 (spring forward on March 8, fall back on November 1).
"""

from datetime import date

import pytest

from lessonbook.core.exceptions import ValidationException
from lessonbook.services.timezone_service import (
    InvalidTimezoneException,
    NonexistentLocalTimeException,
    TimezoneService,
    parse_hhmm,
    parse_month,
    python_weekday_to_day_of_week,
)
from tests.factories import utc

NY = "America/New_York"


class TestLocalParts:
    def test_winter_offset(self):
        # Thursday 2026-01-08 19:00Z is 14:00 EST
        assert TimezoneService.to_local_parts(utc(2026, 1, 8, 19), NY) == (4, "14:00")

    def test_summer_offset(self):
        # Thursday 2026-07-09 18:00Z is 14:00 EDT
        assert TimezoneService.to_local_parts(utc(2026, 7, 9, 18), NY) == (4, "14:00")

    def test_local_day_can_differ_from_utc_day(self):
        # Monday 02:00Z is still Sunday evening in New York
        assert TimezoneService.to_local_parts(utc(2026, 1, 5, 2), NY) == (0, "21:00")

    def test_sunday_is_zero(self):
        assert python_weekday_to_day_of_week(6) == 0
        assert python_weekday_to_day_of_week(0) == 1
        assert python_weekday_to_day_of_week(5) == 6


class TestLocalToUtc:
    def test_uses_rules_of_the_given_date(self):
        assert TimezoneService.local_to_utc(date(2026, 3, 5), "14:00", NY) == utc(2026, 3, 5, 19)
        assert TimezoneService.local_to_utc(date(2026, 3, 12), "14:00", NY) == utc(2026, 3, 12, 18)

    def test_spring_forward_gap_raises(self):
        with pytest.raises(NonexistentLocalTimeException) as exc_info:
            TimezoneService.local_to_utc(date(2026, 3, 8), "02:30", NY)
        assert exc_info.value.code == "NONEXISTENT_LOCAL_TIME"
        assert exc_info.value.details["date"] == "2026-03-08"

    def test_fall_back_ambiguity_takes_first_occurrence(self):
        # 01:30 happens twice on 2026-11-01; the EDT instance comes first
        assert TimezoneService.local_to_utc(date(2026, 11, 1), "01:30", NY) == utc(2026, 11, 1, 5, 30)

    def test_round_trip_keeps_wall_clock(self):
        instant = TimezoneService.local_to_utc(date(2026, 6, 1), "09:15", NY)
        assert TimezoneService.to_local_parts(instant, NY) == (1, "09:15")


class TestNextOccurrence:
    def test_same_day_later_time(self):
        reference = utc(2026, 1, 8, 12)  # Thursday 07:00 local
        assert TimezoneService.local_parts_to_next_utc_instant(4, "14:00", NY, reference) == utc(
            2026, 1, 8, 19
        )

    def test_rolls_to_next_week_when_passed(self):
        reference = utc(2026, 1, 8, 20)  # Thursday 15:00 local
        assert TimezoneService.local_parts_to_next_utc_instant(4, "14:00", NY, reference) == utc(
            2026, 1, 15, 19
        )

    def test_skips_gap_week(self):
        reference = utc(2026, 3, 7, 12)
        assert TimezoneService.local_parts_to_next_utc_instant(0, "02:30", NY, reference) == utc(
            2026, 3, 15, 6, 30
        )

    def test_rejects_bad_day(self):
        with pytest.raises(ValidationException):
            TimezoneService.local_parts_to_next_utc_instant(7, "14:00", NY, utc(2026, 1, 1))


class TestBounds:
    def test_spring_forward_day_is_23_hours(self):
        start, end = TimezoneService.local_day_bounds_utc(date(2026, 3, 8), NY)
        assert (end - start).total_seconds() == 23 * 3600

    def test_month_bounds_follow_local_midnight(self):
        start, end = TimezoneService.month_bounds_utc("2026-02", NY)
        assert start == utc(2026, 2, 1, 5)
        assert end == utc(2026, 3, 1, 5)

    def test_december_rolls_into_next_year(self):
        _, end = TimezoneService.month_bounds_utc("2026-12", NY)
        assert end == utc(2027, 1, 1, 5)


class TestValidation:
    @pytest.mark.parametrize("value", ["9:00", "24:00", "12:60", "noon", ""])
    def test_bad_hhmm(self, value):
        with pytest.raises(ValidationException) as exc_info:
            parse_hhmm(value)
        assert exc_info.value.code == "INVALID_TIME_FORMAT"

    def test_unknown_timezone(self):
        with pytest.raises(InvalidTimezoneException) as exc_info:
            TimezoneService.get_timezone("Mars/Olympus_Mons")
        assert exc_info.value.code == "INVALID_TIMEZONE"

    def test_missing_timezone_is_not_defaulted(self):
        with pytest.raises(InvalidTimezoneException):
            TimezoneService.get_timezone(None)

    def test_boundary_default_applies_only_when_unset(self):
        assert TimezoneService.resolve_teacher_timezone("Europe/Berlin") == "Europe/Berlin"
        assert TimezoneService.resolve_teacher_timezone(None) == "America/New_York"

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            TimezoneService.ensure_utc(utc(2026, 1, 1).replace(tzinfo=None))
        assert exc_info.value.code == "NAIVE_DATETIME"

    def test_parse_month(self):
        assert parse_month("2026-02") == (2026, 2)
        with pytest.raises(ValidationException):
            parse_month("2026-13")

    def test_display_format(self):
        assert TimezoneService.format_for_display(utc(2026, 1, 8, 19), NY) == (
            "Thursday, January 8, 2026",
            "2:00 PM",
        )
