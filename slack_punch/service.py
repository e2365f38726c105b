"""Attendance reconciliation between chat commands and the HR service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence

import humanize

from .db import Database
from .errors import BatchEntryError, NotFoundError, ParseError, PunchError
from .freee_client import ABSENCE_PATCH, FreeeClient, attendance_patch
from .models import (
    ADMIN_USER_ID,
    Absence,
    BulkEntry,
    Credential,
    Present,
    Reminder,
    ReportRow,
    User,
)
from .oauth import CredentialBroker
from .timeparse import JST, now_jst, parse_clock, parse_day, parse_timestamp, month_to_date

logger = logging.getLogger(__name__)

# Placeholder length of a work day; punch-in writes it as a provisional clock-out.
WORK_DAY = timedelta(hours=9)
MISSING_CLOCK_IN_GAP = timedelta(minutes=1)


def punch_in_patch(clock_in: datetime) -> Dict[str, Any]:
    return attendance_patch(clock_in, clock_in + WORK_DAY)


def resolve_clock_in(existing: Optional[str], clock_out: datetime) -> datetime:
    """Choose the clock-in to write alongside ``clock_out``.

    No remote clock-in: one minute before clock-out. A remote clock-in later
    than clock-out (or unreadable) is discarded in favour of a nine-hour day.
    """

    if not existing:
        return clock_out - MISSING_CLOCK_IN_GAP
    try:
        clock_in = parse_timestamp(existing)
    except ParseError:
        logger.warning("Discarding unreadable clock_in_at %r", existing)
        return clock_out - WORK_DAY
    if clock_in > clock_out:
        return clock_out - WORK_DAY
    return clock_in


def _entry_time(token: Any, day: date) -> datetime:
    if not isinstance(token, str) or not token.strip():
        raise ParseError(str(token))
    try:
        return parse_timestamp(token)
    except ParseError:
        return datetime.combine(day, parse_clock(token), tzinfo=JST)


def parse_bulk_entry(raw: Any, index: int) -> BulkEntry:
    """Parse the ``index``-th (0-based) raw bulk entry into ``Absence`` or ``Present``."""

    def fail() -> BatchEntryError:
        return BatchEntryError(humanize.ordinal(index + 1), applied=index)

    if not isinstance(raw, Mapping) or not raw.get("date"):
        raise fail()
    off = raw.get("off")
    if off is not None and not isinstance(off, bool):
        raise fail()
    try:
        day = parse_day(str(raw["date"]))
        if off:
            return Absence(day=day)
        return Present(
            day=day,
            clock_in=_entry_time(raw.get("in"), day),
            clock_out=_entry_time(raw.get("out"), day),
        )
    except ParseError as exc:
        raise fail() from exc


def bulk_patch(entry: BulkEntry) -> Dict[str, Any]:
    if isinstance(entry, Absence):
        return dict(ABSENCE_PATCH)
    return attendance_patch(entry.clock_in, entry.clock_out)


class AttendanceService:
    """High-level service that reconciles punches with the remote work records."""

    def __init__(
        self,
        database: Database,
        broker: CredentialBroker,
        clock: Callable[[], datetime] = now_jst,
    ) -> None:
        self.database = database
        self.broker = broker
        self.clock = clock

    @asynccontextmanager
    async def _records(self, user: User) -> AsyncIterator[FreeeClient]:
        async with self.broker.authorized_client(user) as http:
            yield FreeeClient(http)

    def _touch(self, user: User) -> None:
        user.last_used_at = self.clock()
        self.database.save(user)

    def today(self) -> date:
        return self.clock().astimezone(JST).date()

    # region Punches
    async def punch_in(self, user_id: str, at: Optional[datetime] = None) -> datetime:
        user = self.database.load(user_id)
        clock_in = (at or self.clock()).astimezone(JST)
        async with self._records(user) as records:
            await records.put_day(user.employee_id, clock_in.date(), punch_in_patch(clock_in))
        self._touch(user)
        return clock_in

    async def punch_out(self, user_id: str, at: Optional[datetime] = None) -> datetime:
        user = self.database.load(user_id)
        clock_out = (at or self.clock()).astimezone(JST)
        day = clock_out.date()
        async with self._records(user) as records:
            record = await records.get_day(user.employee_id, day)
            clock_in = resolve_clock_in(record.clock_in_at, clock_out)
            await records.put_day(user.employee_id, day, attendance_patch(clock_in, clock_out))
        self._touch(user)
        return clock_out

    async def punch_leave(self, user_id: str) -> date:
        user = self.database.load(user_id)
        day = self.today()
        async with self._records(user) as records:
            await records.put_day(user.employee_id, day, dict(ABSENCE_PATCH))
        self._touch(user)
        return day

    # endregion

    # region Batches and reports
    async def bulk_update(self, user_id: str, entries: Sequence[Any]) -> List[date]:
        """Write each entry in order; stop at the first bad entry or failed write.

        Entries written before a failure stay written.
        """

        user = self.database.load(user_id)
        applied: List[date] = []
        async with self._records(user) as records:
            for index, raw in enumerate(entries):
                entry = parse_bulk_entry(raw, index)
                await records.put_day(user.employee_id, entry.day, bulk_patch(entry))
                applied.append(entry.day)
        self._touch(user)
        logger.info("Bulk update for %s applied %d records", user_id, len(applied))
        return applied

    async def report(self, user_id: str) -> List[ReportRow]:
        user = self.database.load(user_id)
        rows: List[ReportRow] = []
        async with self._records(user) as records:
            for day in month_to_date(self.today()):
                record = await records.get_day(user.employee_id, day)
                if not record.is_normal_day:
                    continue
                rows.append(
                    ReportRow(
                        date=record.date or day.isoformat(),
                        clock_in=record.clock_in_at,
                        clock_out=record.clock_out_at,
                        off=record.is_absence,
                    )
                )
        self._touch(user)
        return rows

    async def is_normal_day(self, user_id: str) -> bool:
        user = self.database.load(user_id)
        async with self._records(user) as records:
            record = await records.get_day(user.employee_id, self.today())
        return record.is_normal_day

    # endregion

    # region Users
    async def register(
        self,
        user_id: str,
        channel_id: str,
        employee_id: str,
        code: Optional[str] = None,
    ) -> User:
        if employee_id == ADMIN_USER_ID or user_id == ADMIN_USER_ID:
            raise PunchError("'admin' is reserved for the shared credential")
        credential = await self.broker.oauth.exchange_code(code) if code else Credential()
        try:
            reminder = self.database.load(user_id).reminder
        except NotFoundError:
            reminder = Reminder()
        user = User(
            user_id=user_id,
            channel_id=channel_id,
            employee_id=employee_id,
            credential=credential,
            reminder=reminder,
        )
        self.database.save(user)
        logger.info("Registered %s as employee %s", user_id, employee_id)
        return user

    async def register_admin(self, channel_id: str, code: str) -> User:
        credential = await self.broker.oauth.exchange_code(code)
        admin = User(
            user_id=ADMIN_USER_ID,
            channel_id=channel_id,
            employee_id=ADMIN_USER_ID,
            credential=credential,
            reminder=Reminder(enabled=False),
        )
        self.database.save(admin)
        logger.info("Stored the shared admin credential")
        return admin

    def unregister(self, user_id: str) -> None:
        self.database.delete(user_id)
        logger.info("Removed %s", user_id)

    def profile(self, user_id: str) -> User:
        return self.database.load(user_id)

    def set_reminder(
        self,
        user_id: str,
        *,
        enabled: Optional[bool] = None,
        am: Optional[time] = None,
        pm: Optional[time] = None,
    ) -> Reminder:
        user = self.database.load(user_id)
        if enabled is not None:
            user.reminder.enabled = enabled
        if am is not None:
            user.reminder.am = am
        if pm is not None:
            user.reminder.pm = pm
        self.database.save(user)
        return user.reminder

    # endregion


__all__ = [
    "AttendanceService",
    "WORK_DAY",
    "punch_in_patch",
    "resolve_clock_in",
    "parse_bulk_entry",
    "bulk_patch",
]
