"""Tests for the minute-granularity reminder loop."""

import asyncio
import json
from datetime import datetime, time, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from slack_punch.models import Reminder, User
from slack_punch.reminder import ReminderScheduler, is_reminder_due, seconds_until_next_minute
from slack_punch.slack_client import SlackClient
from slack_punch.timeparse import JST

SCHEDULE = Reminder(enabled=True, am=time(9, 0), pm=time(17, 0))


def jst(hour, minute, second=0):
    return datetime(2024, 1, 10, hour, minute, second, tzinfo=JST)


@pytest.mark.parametrize("hour, minute", [(9, 0), (17, 0)])
def test_due_exactly_at_configured_minutes(hour, minute):
    assert is_reminder_due(jst(hour, minute), SCHEDULE)


@pytest.mark.parametrize("hour, minute", [(8, 59), (9, 1), (16, 59), (17, 1), (12, 0)])
def test_not_due_on_neighbouring_minutes(hour, minute):
    assert not is_reminder_due(jst(hour, minute), SCHEDULE)


def test_due_check_converts_to_jst():
    assert is_reminder_due(datetime(2024, 1, 10, 0, 0, tzinfo=timezone.utc), SCHEDULE)


def test_disabled_reminder_is_never_due():
    assert not is_reminder_due(jst(9, 0), Reminder(enabled=False))


def test_seconds_until_next_minute():
    assert seconds_until_next_minute(jst(9, 0, 30)) == pytest.approx(30.05)


@pytest.fixture
def users(database):
    database.save(User(user_id="U1", channel_id="D1", employee_id="E1"))
    database.save(User(user_id="U2", channel_id="D2", employee_id="E2", reminder=Reminder(enabled=False)))
    database.save(
        User(user_id="U3", channel_id="D3", employee_id="E3", reminder=Reminder(am=time(8, 30), pm=time(18, 0)))
    )
    database.save(User(user_id="admin", channel_id="DA", employee_id="admin"))


def test_tick_prompts_only_due_users_and_never_admin(database, slack, users):
    scheduler = ReminderScheduler(database, slack)

    assert asyncio.run(scheduler.tick(jst(9, 0))) == ["U1"]
    assert asyncio.run(scheduler.tick(jst(18, 0))) == ["U3"]
    assert asyncio.run(scheduler.tick(jst(9, 1))) == []
    assert slack.prompts == ["D1", "D3"]
    assert slack.prompt_moments == [jst(9, 0), jst(18, 0)]


def test_run_once_does_not_fire_twice_in_the_same_minute(database, slack, users):
    moments = iter([jst(9, 0, 1), jst(9, 0, 40), jst(9, 1, 0)])
    scheduler = ReminderScheduler(database, slack, clock=lambda: next(moments))

    assert asyncio.run(scheduler.run_once()) == ["U1"]
    assert asyncio.run(scheduler.run_once()) == []
    assert asyncio.run(scheduler.run_once()) == []
    assert slack.prompts == ["D1"]


def test_failed_post_does_not_stop_other_users(database, slack):
    database.save(User(user_id="U1", channel_id="D1", employee_id="E1"))
    database.save(User(user_id="U4", channel_id="D4", employee_id="E4"))
    slack.fail_channels.add("D1")
    scheduler = ReminderScheduler(database, slack)

    assert asyncio.run(scheduler.tick(jst(17, 0))) == ["U4"]


def test_holidays_are_skipped_when_enabled(database, slack, users):
    service = AsyncMock()
    service.is_normal_day.return_value = False
    scheduler = ReminderScheduler(database, slack, service, skip_holidays=True)

    assert asyncio.run(scheduler.tick(jst(9, 0))) == []
    service.is_normal_day.assert_awaited_once_with("U1")


@pytest.mark.parametrize(
    "broken",
    [
        httpx.Response(502, text="<html>Bad Gateway</html>"),
        httpx.Response(200, text="<html>Bad Gateway</html>"),
        httpx.Response(200, json={"ok": False, "error": "channel_not_found"}),
    ],
)
def test_bad_slack_reply_for_one_user_does_not_stop_the_tick(database, broken):
    database.save(User(user_id="U1", channel_id="D1", employee_id="E1"))
    database.save(User(user_id="U2", channel_id="D2", employee_id="E2"))
    posted = []

    def handler(request):
        body = json.loads(request.content)
        if body["channel"] == "D1":
            return broken
        posted.append(body)
        return httpx.Response(200, json={"ok": True})

    async def scenario():
        slack = SlackClient("xoxb-test", transport=httpx.MockTransport(handler))
        try:
            return await ReminderScheduler(database, slack).tick(jst(9, 0))
        finally:
            await slack.close()

    assert asyncio.run(scenario()) == ["U2"]
    assert posted[0]["text"] == "Punch for 2024/01/10?"
    assert posted[0]["blocks"][0]["text"]["text"] == "2024/01/10 09:00"
