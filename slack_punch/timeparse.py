"""Interpretation of user-supplied time tokens in the fixed civil timezone."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from .errors import ParseError

JST = timezone(timedelta(hours=9), "Asia/Tokyo")

_COLON_FORM = re.compile(r"(\d{1,2}):(\d{2})")
_COMPACT_FORM = re.compile(r"(\d{2})(\d{2})")


def now_jst() -> datetime:
    return datetime.now(JST)


def to_rfc3339(moment: datetime) -> str:
    """Format an instant the way the HR service expects, e.g. ``2024-01-10T09:00:00+09:00``."""

    return moment.astimezone(JST).isoformat(timespec="seconds")


def parse_timestamp(token: str) -> datetime:
    """Parse a full RFC3339 timestamp; an offset is mandatory."""

    text = token.strip()
    if text[-1:] in {"Z", "z"}:
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ParseError(token) from exc
    if moment.tzinfo is None:
        raise ParseError(token)
    return moment


def parse_clock(token: str) -> time:
    """Parse ``HH:MM`` or ``HHMM`` into a time of day."""

    text = token.strip()
    match = _COLON_FORM.fullmatch(text) or _COMPACT_FORM.fullmatch(text)
    if not match:
        raise ParseError(token)
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ParseError(token)
    return time(hour, minute)


def _reference_day(reference: date) -> date:
    if isinstance(reference, datetime):
        if reference.tzinfo is not None:
            return reference.astimezone(JST).date()
        return reference.date()
    return reference


def normalize(
    token: str,
    reference: date,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> datetime:
    """Turn ``now``, an RFC3339 timestamp, ``HH:MM`` or ``HHMM`` into an aware instant.

    Clock-only forms land on the calendar day of ``reference`` in JST with
    seconds zeroed. Raises ``ParseError`` when no form matches.
    """

    text = (token or "").strip()
    if not text:
        raise ParseError(token or "")
    if text.lower() == "now":
        return (clock or now_jst)().astimezone(JST)

    try:
        return parse_timestamp(text).astimezone(JST)
    except ParseError:
        pass

    time_of_day = parse_clock(text)
    return datetime.combine(_reference_day(reference), time_of_day, tzinfo=JST)


def parse_day(token: str) -> date:
    try:
        return datetime.strptime(token.strip(), "%Y-%m-%d").date()
    except ValueError as exc:
        raise ParseError(token) from exc


def month_to_date(today: date) -> list[date]:
    """Every calendar day from the 1st of ``today``'s month through ``today``, ascending."""

    start = today.replace(day=1)
    return [start + timedelta(days=offset) for offset in range((today - start).days + 1)]


__all__ = [
    "JST",
    "now_jst",
    "to_rfc3339",
    "parse_timestamp",
    "parse_clock",
    "normalize",
    "parse_day",
    "month_to_date",
]
