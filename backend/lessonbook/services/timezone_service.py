"""
Centralized timezone handling for lessonbook.

Rules:
- All storage and comparisons: UTC
- Availability windows and recurring slots: teacher-local wall clock
- Day of week: 0 = Sunday ... 6 = Saturday

This module never falls back to a default zone on its own; an unknown zone
is a configuration error. ``resolve_teacher_timezone`` is the one place the
configured default is applied, and only API-boundary callers use it.
"""

from datetime import date, datetime, time, timedelta, timezone
import re
from typing import Optional, Tuple

import pytz

from ..core.config import settings
from ..core.exceptions import ValidationException

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class InvalidTimezoneException(ValidationException):
    def __init__(self, timezone_str: Optional[str]):
        super().__init__(
            message=f"Unknown timezone: {timezone_str!r}",
            code="INVALID_TIMEZONE",
            details={"timezone": timezone_str},
        )


class NonexistentLocalTimeException(ValidationException):
    """Raised for wall-clock times skipped by a DST spring-forward."""

    def __init__(self, local_date: date, hhmm: str, timezone_str: str):
        super().__init__(
            message=(
                f"The time {hhmm} does not exist on {local_date.isoformat()} in "
                f"{timezone_str} due to Daylight Saving Time. Please select a different time."
            ),
            code="NONEXISTENT_LOCAL_TIME",
            details={"date": local_date.isoformat(), "time": hhmm, "timezone": timezone_str},
        )


def parse_hhmm(hhmm: str) -> time:
    if not isinstance(hhmm, str) or not HHMM_PATTERN.match(hhmm):
        raise ValidationException(
            f"Invalid time format: {hhmm!r}. Use HH:MM",
            code="INVALID_TIME_FORMAT",
            details={"value": hhmm},
        )
    hours, minutes = hhmm.split(":")
    return time(int(hours), int(minutes))


def python_weekday_to_day_of_week(weekday: int) -> int:
    """datetime.weekday() (Mon=0) to the stored convention (Sun=0)."""
    return (weekday + 1) % 7


class TimezoneService:
    """Converts between UTC instants and teacher-local (day, HH:MM) parts."""

    @staticmethod
    def get_timezone(tz_str: Optional[str]) -> pytz.BaseTzInfo:
        if not tz_str:
            raise InvalidTimezoneException(tz_str)
        try:
            return pytz.timezone(tz_str)
        except pytz.UnknownTimeZoneError:
            raise InvalidTimezoneException(tz_str)

    @staticmethod
    def resolve_teacher_timezone(tz_str: Optional[str]) -> str:
        """The single default-timezone policy: configured default when unset."""
        return tz_str or settings.default_timezone

    @staticmethod
    def ensure_utc(instant: datetime) -> datetime:
        if instant.tzinfo is None:
            raise ValidationException(
                "Datetimes must carry a UTC offset", code="NAIVE_DATETIME"
            )
        return instant.astimezone(timezone.utc)

    @staticmethod
    def utc_to_local(utc_dt: datetime, timezone_str: str) -> datetime:
        tz = TimezoneService.get_timezone(timezone_str)
        return TimezoneService.ensure_utc(utc_dt).astimezone(tz)

    @staticmethod
    def to_local_parts(utc_instant: datetime, timezone_str: str) -> Tuple[int, str]:
        """UTC instant -> (day_of_week with Sunday=0, "HH:MM") in ``timezone_str``."""
        local = TimezoneService.utc_to_local(utc_instant, timezone_str)
        return python_weekday_to_day_of_week(local.weekday()), local.strftime("%H:%M")

    @staticmethod
    def local_to_utc(local_date: date, hhmm: str, timezone_str: str) -> datetime:
        """
        Convert a local calendar date and wall-clock time to UTC.

        Uses the zone rules valid on ``local_date``. Ambiguous (fall-back)
        times resolve to the first occurrence; nonexistent (spring-forward)
        times raise NonexistentLocalTimeException.
        """
        tz = TimezoneService.get_timezone(timezone_str)
        naive_dt = datetime.combine(local_date, parse_hhmm(hhmm))
        try:
            local_dt = tz.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            local_dt = tz.localize(naive_dt, is_dst=True)
        except pytz.exceptions.NonExistentTimeError:
            raise NonexistentLocalTimeException(local_date, hhmm, timezone_str)
        return local_dt.astimezone(timezone.utc)

    @staticmethod
    def local_parts_to_next_utc_instant(
        day_of_week: int, hhmm: str, timezone_str: str, reference_instant: datetime
    ) -> datetime:
        """
        Earliest UTC instant at or after ``reference_instant`` whose local
        parts are (day_of_week, hhmm). A week whose occurrence falls in a DST
        gap is skipped.
        """
        if not 0 <= day_of_week <= 6:
            raise ValidationException(
                "day_of_week must be between 0 and 6", code="INVALID_DAY_OF_WEEK"
            )
        reference_local = TimezoneService.utc_to_local(reference_instant, timezone_str)
        current_day = python_weekday_to_day_of_week(reference_local.weekday())
        candidate_date = reference_local.date() + timedelta(days=(day_of_week - current_day) % 7)
        reference_utc = TimezoneService.ensure_utc(reference_instant)
        for _ in range(3):
            try:
                candidate = TimezoneService.local_to_utc(candidate_date, hhmm, timezone_str)
            except NonexistentLocalTimeException:
                candidate = None
            if candidate is not None and candidate >= reference_utc:
                return candidate
            candidate_date += timedelta(days=7)
        raise ValidationException(
            f"No occurrence of {DAY_NAMES[day_of_week]} {hhmm} found in {timezone_str}",
            code="NO_OCCURRENCE",
        )

    @staticmethod
    def local_day_bounds_utc(local_date: date, timezone_str: str) -> Tuple[datetime, datetime]:
        """UTC [start, end) covering one local calendar day (23-25 hours across DST)."""
        tz = TimezoneService.get_timezone(timezone_str)
        start = tz.localize(datetime.combine(local_date, time.min)).astimezone(timezone.utc)
        end = tz.localize(
            datetime.combine(local_date + timedelta(days=1), time.min)
        ).astimezone(timezone.utc)
        return start, end

    @staticmethod
    def month_bounds_utc(month: str, timezone_str: str) -> Tuple[datetime, datetime]:
        """UTC [start, end) of a "YYYY-MM" month in ``timezone_str``."""
        year, month_number = parse_month(month)
        first = date(year, month_number, 1)
        following = date(year + 1, 1, 1) if month_number == 12 else date(year, month_number + 1, 1)
        start, _ = TimezoneService.local_day_bounds_utc(first, timezone_str)
        end, _ = TimezoneService.local_day_bounds_utc(following, timezone_str)
        return start, end

    @staticmethod
    def format_for_display(utc_dt: datetime, timezone_str: str) -> Tuple[str, str]:
        """("Thursday, January 8, 2026", "2:00 PM") in the given zone."""
        local_dt = TimezoneService.utc_to_local(utc_dt, timezone_str)
        date_str = f"{local_dt.strftime('%A, %B')} {local_dt.day}, {local_dt.year}"
        time_str = local_dt.strftime("%I:%M %p").lstrip("0")
        return date_str, time_str


def parse_month(month: str) -> Tuple[int, int]:
    """Parse "YYYY-MM" into (year, month)."""
    match = re.match(r"^(\d{4})-(0[1-9]|1[0-2])$", month or "")
    if not match:
        raise ValidationException(
            f"Invalid month: {month!r}. Use YYYY-MM", code="INVALID_MONTH", details={"month": month}
        )
    return int(match.group(1)), int(match.group(2))
