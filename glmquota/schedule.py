"""Timezone, time-of-day parsing and next-run calculation for the daemon."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from glmquota.client import QuotaStatus
from glmquota.config import ScheduleConfig

IMMINENT_THRESHOLD = timedelta(minutes=20)
AUTO_FALLBACK_DELAY = timedelta(hours=4)

_INTEGER = re.compile(r"[+-]?[0-9]+")


class ScheduleError(ValueError):
    """A timezone, time of day or schedule could not be understood."""


def parse_range(text: str, low: int, high: int) -> int:
    """Parse a decimal integer and require ``low <= value <= high``."""
    stripped = text.strip()
    if not _INTEGER.fullmatch(stripped):
        raise ScheduleError("not a number")
    value = int(stripped)
    if value < low or value > high:
        raise ScheduleError(f"must be between {low} and {high}")
    return value


def is_utc_offset(spec: str) -> bool:
    """True when ``spec`` looks like ``UTC``, ``UTC+8``, ``+8`` or ``-3:30``."""
    upper = spec.strip().upper()
    if upper == "UTC" or upper.startswith(("UTC+", "UTC-")):
        return True
    return upper.startswith(("+", "-"))


def parse_utc_offset(spec: str) -> int:
    """Return the offset described by ``spec`` in seconds east of UTC."""
    upper = spec.strip().upper()
    if upper == "UTC":
        return 0
    if upper.startswith("UTC"):
        upper = upper[3:].strip()
    if not upper:
        raise ScheduleError("timezone is required")

    sign = 1
    if upper[0] == "+":
        upper = upper[1:]
    elif upper[0] == "-":
        sign = -1
        upper = upper[1:]
    else:
        raise ScheduleError("expected an offset like +8")

    parts = upper.split(":")
    if len(parts) > 2:
        raise ScheduleError("expected offset like +8 or +8:30")

    hours = parse_range(parts[0], 0, 23)
    minutes = parse_range(parts[1], 0, 59) if len(parts) == 2 else 0
    return sign * (hours * 3600 + minutes * 60)


def format_offset_label(offset: int) -> str:
    """Label an offset in seconds as ``UTC``, ``UTC+8`` or ``UTC-5:30``."""
    if offset == 0:
        return "UTC"
    sign = "+"
    if offset < 0:
        sign = "-"
        offset = -offset
    hours, rest = divmod(offset, 3600)
    minutes = rest // 60
    if minutes == 0:
        return f"UTC{sign}{hours}"
    return f"UTC{sign}{hours}:{minutes:02d}"


def parse_timezone(spec: str) -> tzinfo:
    """Resolve a UTC offset or an IANA zone name to a tzinfo."""
    spec = spec.strip()
    if not spec:
        raise ScheduleError("timezone is required")

    if is_utc_offset(spec):
        offset = parse_utc_offset(spec)
        return timezone(timedelta(seconds=offset), format_offset_label(offset))

    try:
        return ZoneInfo(spec)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ScheduleError("must be an offset like +8 or a valid IANA timezone") from None


def normalize_time(text: str) -> str:
    """Turn ``H``, ``H:M`` or ``H:M:S`` into ``HH:MM:SS``."""
    parts = text.split(":")
    if not 1 <= len(parts) <= 3:
        raise ScheduleError("expected H, H:M, or H:M:S format")

    hour = parse_range(parts[0], 0, 23)
    minute = second = 0
    if len(parts) >= 2:
        try:
            minute = parse_range(parts[1], 0, 59)
        except ScheduleError:
            raise ScheduleError("invalid minute") from None
    if len(parts) == 3:
        try:
            second = parse_range(parts[2], 0, 59)
        except ScheduleError:
            raise ScheduleError("invalid second") from None
    return f"{hour:02d}:{minute:02d}:{second:02d}"


def _resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.astimezone()
    return now


def _lenient(text: str, low: int, high: int) -> int:
    try:
        return parse_range(text, low, high)
    except ScheduleError:
        return 0


def _utc(when: datetime) -> datetime:
    return when.astimezone(timezone.utc)


def next_scheduled_time(schedule: ScheduleConfig, now: datetime | None = None) -> datetime:
    """The earliest upcoming time of day from a manual schedule."""
    try:
        loc = parse_timezone(schedule.timezone)
    except ScheduleError as exc:
        raise ScheduleError(f'bad timezone "{schedule.timezone}": {exc}') from exc

    now = _resolve_now(now)
    now_utc = _utc(now)
    local_now = now.astimezone(loc)
    earliest: datetime | None = None

    for entry in schedule.times:
        parts = entry.split(":")
        if len(parts) != 3:
            continue
        hour = _lenient(parts[0], 0, 23)
        minute = _lenient(parts[1], 0, 59)
        second = _lenient(parts[2], 0, 59)

        candidate = datetime(
            local_now.year, local_now.month, local_now.day, hour, minute, second, tzinfo=loc
        )
        if _utc(candidate) <= now_utc:
            candidate += timedelta(days=1)
        if earliest is None or _utc(candidate) < _utc(earliest):
            earliest = candidate

    if earliest is None:
        raise ScheduleError("no valid times in schedule")
    return earliest


def next_activation_time(
    quota: QuotaStatus, schedule: ScheduleConfig, now: datetime | None = None
) -> datetime:
    """When the daemon should next activate.

    Auto schedules follow the quota reset time; manual ones the next listed
    time. A reset that is imminent, now or relative to the next run, wins.
    """
    now = _resolve_now(now)

    if schedule.auto:
        if quota.reset_time is None:
            return now + AUTO_FALLBACK_DELAY
        normal = quota.reset_time
    else:
        normal = next_scheduled_time(schedule, now)

    if quota.reset_time is not None:
        until_reset = quota.reset_time - now
        until_next = normal - now
        if until_reset > timedelta(0) and (
            until_reset < IMMINENT_THRESHOLD or until_next < IMMINENT_THRESHOLD
        ):
            return quota.reset_time

    return normal