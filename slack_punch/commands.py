"""Chat command handling: turns Slack text and button actions into attendance calls."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import List, Optional, Set

import httpx

from .errors import BatchEntryError, ParseError, PunchError
from .models import ReportRow, User
from .service import AttendanceService
from .slack_client import ACTION_IN, ACTION_LEAVE, ACTION_OUT, SlackApiError, SlackClient
from .timeparse import JST, normalize, parse_clock, parse_timestamp

logger = logging.getLogger(__name__)

AUTH_CODE_LENGTH = 64

HELP_MESSAGE = """```
Usage:
	Integration:
		auth
		add [emp_id]
		add [emp_id] [code]
		admin add [code]

	Deintegration:
		remove

	Check In:
		in
		in now
		in 0930

	Check Out:
		out
		out now
		out 1810

	Off:
		leave
		off

	Records:
		report
		bulk [{"date": "2024-01-10", "in": "09:00", "out": "18:00"}, {"date": "2024-01-11", "off": true}]

	Reminder:
		reminder
		reminder on|off
		reminder 0900 1700

	Debug:
		me
```"""

PUNCH_REPLIES = {
    ACTION_IN: ":ok: You have punched in for today.",
    ACTION_OUT: ":ok: You have punched out for today.",
    ACTION_LEAVE: ":ok: You are off today. Enjoy :tada:",
}
INVALID_PARAMETERS = "Invalid parameters."
CANCELED = "Operation canceled."


def error_reply(exc: Exception) -> str:
    return f":warning: Error occurred: {exc}"


def _short_time(value: Optional[str]) -> str:
    if not value:
        return "--:--"
    try:
        return parse_timestamp(value).astimezone(JST).strftime("%H:%M")
    except ParseError:
        return value


def format_report(rows: List[ReportRow]) -> str:
    if not rows:
        return "No working days recorded this month yet."
    lines = []
    for row in rows:
        if row.off:
            lines.append(f"{row.date}  off")
        else:
            lines.append(f"{row.date}  {_short_time(row.clock_in)} - {_short_time(row.clock_out)}")
    return "```\n" + "\n".join(lines) + "\n```"


def format_profile(user: User) -> str:
    reminder = user.reminder
    state = "on" if reminder.enabled else "off"
    token = "own" if not user.credential.is_empty else "shared admin"
    last_used = user.last_used_at.astimezone(JST).strftime("%Y/%m/%d %H:%M") if user.last_used_at else "never"
    return "\n".join(
        [
            f"User: {user.user_id}",
            f"Employee ID: {user.employee_id}",
            f"Token: {token}",
            f"Reminder: {state} ({reminder.am:%H:%M} / {reminder.pm:%H:%M})",
            f"Last used: {last_used}",
        ]
    )


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```") and len(stripped) >= 6:
        stripped = stripped[3:-3]
    return stripped.replace("“", '"').replace("”", '"').strip()


class CommandHandler:
    """Routes direct-message commands and punch actions to the attendance service."""

    def __init__(self, service: AttendanceService, slack: SlackClient) -> None:
        self.service = service
        self.slack = slack
        self._pending: Set[asyncio.Task] = set()

    async def handle_punch(self, user_id: str, kind: str, at: Optional[datetime] = None) -> str:
        """Punch ``kind`` (in/out/leave) for ``user_id`` and return the reply to show."""

        try:
            if kind == ACTION_IN:
                await self.service.punch_in(user_id, at)
            elif kind == ACTION_OUT:
                await self.service.punch_out(user_id, at)
            elif kind == ACTION_LEAVE:
                await self.service.punch_leave(user_id)
            else:
                return INVALID_PARAMETERS
        except (PunchError, httpx.HTTPError) as exc:
            logger.error("error occurred for %s: %s", user_id, exc)
            return error_reply(exc)
        return PUNCH_REPLIES[kind]

    async def handle_message(self, user_id: str, channel_id: str, text: str) -> Optional[str]:
        """Return the reply for a chat message, or None when nothing should be said."""

        text = text.strip()
        words = text.split()
        if not words:
            return None
        command = words[0].lower()

        if text == "ping":
            return "pong"
        if text == "help":
            return HELP_MESSAGE
        if text == "me":
            try:
                return format_profile(self.service.profile(user_id))
            except PunchError as exc:
                return error_reply(exc)

        if not channel_id.startswith("D"):
            return None

        if text == "auth":
            url = self.service.broker.oauth.authorize_url()
            return f"Please open the following URL in your browser:\n{url}"
        if command == "admin" and len(words) > 1 and words[1] in {"add", "register"}:
            return await self._register_admin(channel_id, words[2:])
        if command in {"add", "register"}:
            return await self._register(user_id, channel_id, words[1:])
        if text in {"remove", "unregister"}:
            try:
                self.service.unregister(user_id)
            except PunchError as exc:
                logger.error("Failed to remove %s: %s", user_id, exc)
                return f":warning: Failed to remove '{user_id}'."
            return f":ok: '{user_id}' was removed successfully."
        if text in {ACTION_IN, ACTION_OUT}:
            await self.slack.post_punch_prompt(channel_id, self.service.clock().astimezone(JST))
            return None
        if command in {ACTION_IN, ACTION_OUT}:
            if len(words) != 2:
                return INVALID_PARAMETERS
            try:
                at = normalize(words[1], self.service.today(), clock=self.service.clock)
            except ParseError:
                return INVALID_PARAMETERS
            return await self.handle_punch(user_id, command, at)
        if text in {"leave", "off"}:
            return await self.handle_punch(user_id, ACTION_LEAVE)
        if command == "reminder":
            return self._reminder(user_id, words[1:])
        if text == "report":
            self._spawn(self.run_report(user_id, channel_id))
            return ":hourglass: Collecting this month's records..."
        if command == "bulk":
            payload = text[len(words[0]):]
            try:
                entries = json.loads(_strip_code_fence(payload))
            except ValueError:
                return INVALID_PARAMETERS
            if not isinstance(entries, list):
                return INVALID_PARAMETERS
            self._spawn(self.run_bulk(user_id, channel_id, entries))
            return f":hourglass: Updating {len(entries)} records..."
        return None

    # region Background work
    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every report or bulk update still running."""

        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _post(self, channel_id: str, text: str) -> None:
        try:
            await self.slack.post_message(channel_id, text)
        except (SlackApiError, httpx.HTTPError) as exc:
            logger.error("Failed to post message to %s: %s", channel_id, exc)

    async def run_report(self, user_id: str, channel_id: str) -> None:
        try:
            rows = await self.service.report(user_id)
        except (PunchError, httpx.HTTPError) as exc:
            logger.error("Report failed for %s: %s", user_id, exc)
            await self._post(channel_id, error_reply(exc))
            return
        await self._post(channel_id, format_report(rows))

    async def run_bulk(self, user_id: str, channel_id: str, entries: list) -> None:
        try:
            applied = await self.service.bulk_update(user_id, entries)
        except BatchEntryError as exc:
            logger.error("Bulk update failed for %s: %s", user_id, exc)
            await self._post(channel_id, f"{error_reply(exc)} ({exc.applied} earlier records were saved)")
            return
        except (PunchError, httpx.HTTPError) as exc:
            logger.error("Bulk update failed for %s: %s", user_id, exc)
            await self._post(channel_id, error_reply(exc))
            return
        await self._post(channel_id, f":ok: Updated {len(applied)} records.")

    # endregion

    # region Registration
    async def _register(self, user_id: str, channel_id: str, args: List[str]) -> str:
        if len(args) not in (1, 2):
            return INVALID_PARAMETERS
        employee_id = args[0]
        code = args[1] if len(args) == 2 else None
        if code is not None and len(code) != AUTH_CODE_LENGTH:
            return "Invalid authorization code."
        try:
            await self.service.register(user_id, channel_id, employee_id, code)
        except (PunchError, httpx.HTTPError) as exc:
            logger.error("Registration failed for %s: %s", user_id, exc)
            return error_reply(exc)
        if code:
            return ":ok: Saved your access token successfully."
        return ":ok: Saved your employee ID successfully."

    async def _register_admin(self, channel_id: str, args: List[str]) -> str:
        if len(args) != 1:
            return INVALID_PARAMETERS
        code = args[0]
        if len(code) != AUTH_CODE_LENGTH:
            return "Invalid authorization code."
        try:
            await self.service.register_admin(channel_id, code)
        except (PunchError, httpx.HTTPError) as exc:
            logger.error("Admin registration failed: %s", exc)
            return error_reply(exc)
        return ":ok: Saved the admin access token successfully."

    def _reminder(self, user_id: str, args: List[str]) -> str:
        try:
            if not args:
                reminder = self.service.profile(user_id).reminder
            elif len(args) == 1 and args[0] in {"on", "off"}:
                reminder = self.service.set_reminder(user_id, enabled=args[0] == "on")
            elif len(args) == 2:
                reminder = self.service.set_reminder(
                    user_id, enabled=True, am=parse_clock(args[0]), pm=parse_clock(args[1])
                )
            else:
                return INVALID_PARAMETERS
        except ParseError:
            return INVALID_PARAMETERS
        except PunchError as exc:
            return error_reply(exc)
        state = "on" if reminder.enabled else "off"
        return f":alarm_clock: Reminder is {state} ({reminder.am:%H:%M} / {reminder.pm:%H:%M})."

    # endregion


__all__ = ["CommandHandler", "HELP_MESSAGE", "format_report", "format_profile", "error_reply"]
