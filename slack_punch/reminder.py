"""Minute-granularity reminder loop that re-posts the punch prompt."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

import httpx

from .db import Database
from .errors import PunchError
from .models import Reminder
from .service import AttendanceService
from .slack_client import SlackApiError, SlackClient
from .timeparse import JST, now_jst

logger = logging.getLogger(__name__)


def is_reminder_due(moment: datetime, reminder: Reminder) -> bool:
    """True when ``moment`` falls in the exact AM or PM reminder minute (JST)."""

    if not reminder.enabled:
        return False
    local = moment.astimezone(JST) if moment.tzinfo else moment
    return any(
        local.hour == target.hour and local.minute == target.minute
        for target in (reminder.am, reminder.pm)
    )


def floor_to_minute(moment: datetime) -> datetime:
    return moment.replace(second=0, microsecond=0)


def seconds_until_next_minute(moment: datetime) -> float:
    elapsed = moment.second + moment.microsecond / 1_000_000
    return max(60.0 - elapsed, 0.0) + 0.05


class ReminderScheduler:
    """Scans registered users once per minute and prompts those whose reminder is due.

    A minute that passes without a tick is not caught up later.
    """

    def __init__(
        self,
        database: Database,
        slack: SlackClient,
        service: Optional[AttendanceService] = None,
        *,
        skip_holidays: bool = False,
        clock: Callable[[], datetime] = now_jst,
    ) -> None:
        self.database = database
        self.slack = slack
        self.service = service
        self.skip_holidays = skip_holidays
        self.clock = clock
        self._last_minute: Optional[datetime] = None

    async def _skip_for_holiday(self, user_id: str) -> bool:
        if not self.skip_holidays or self.service is None:
            return False
        try:
            return not await self.service.is_normal_day(user_id)
        except (PunchError, httpx.HTTPError) as exc:
            logger.warning("Could not read today's day pattern for %s: %s", user_id, exc)
            return False

    async def tick(self, moment: datetime) -> List[str]:
        prompted: List[str] = []
        for user in self.database.list_users():
            if not is_reminder_due(moment, user.reminder):
                continue
            if await self._skip_for_holiday(user.user_id):
                continue
            try:
                await self.slack.post_punch_prompt(user.channel_id, moment.astimezone(JST))
            except (SlackApiError, httpx.HTTPError) as exc:
                logger.error("Failed to post reminder to %s: %s", user.user_id, exc)
                continue
            prompted.append(user.user_id)
        if prompted:
            logger.info("Sent %d reminders for %s", len(prompted), moment.strftime("%H:%M"))
        return prompted

    async def run_once(self) -> List[str]:
        minute = floor_to_minute(self.clock().astimezone(JST))
        if minute == self._last_minute:
            return []
        self._last_minute = minute
        return await self.tick(minute)

    async def run(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as exc:  # noqa: BLE001
                logger.error("Reminder tick failed: %s", exc)
            await asyncio.sleep(seconds_until_next_minute(self.clock()))


__all__ = ["ReminderScheduler", "is_reminder_due", "floor_to_minute", "seconds_until_next_minute"]
