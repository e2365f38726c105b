"""Pytest fixtures for Slack Punch tests."""

import json
import re
from datetime import datetime, timezone
from urllib.parse import parse_qsl

import httpx
import pytest

from slack_punch.config import Settings
from slack_punch.db import Database
from slack_punch.models import Credential, User
from slack_punch.oauth import CredentialBroker, OAuthClient
from slack_punch.service import AttendanceService
from slack_punch.slack_client import SlackApiError
from slack_punch.timeparse import JST

FIXED_NOW = datetime(2024, 1, 10, 12, 0, tzinfo=JST)
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)
LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)

_RECORD_PATH = re.compile(r"/employees/([^/]+)/work_records/(\d{4}-\d{2}-\d{2})$")


class FakeFreee:
    """In-memory stand-in for the HR work-record API and its token endpoint."""

    def __init__(self):
        self.records = {}
        self.day_patterns = {}
        self.gets = []
        self.puts = []
        self.authorizations = []
        self.token_requests = []
        self.token_status = 200
        self.next_token = {
            "access_token": "fresh-token",
            "refresh_token": "fresh-refresh",
            "token_type": "Bearer",
            "expires_in": 3600,
        }
        self.token_text = None
        self.raw_bodies = {}
        self.fail_get_on = set()
        self.fail_put_on = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth/token"):
            self.token_requests.append(dict(parse_qsl(request.content.decode())))
            if self.token_status != 200:
                return httpx.Response(self.token_status, text='{"error":"invalid_grant"}')
            if self.token_text is not None:
                return httpx.Response(200, text=self.token_text)
            return httpx.Response(200, json=self.next_token)

        match = _RECORD_PATH.search(request.url.path)
        if not match:
            return httpx.Response(404, text="no such resource")
        employee_id, day = match.groups()
        self.authorizations.append(request.headers.get("Authorization"))

        if request.method == "GET":
            self.gets.append((employee_id, day))
            if day in self.fail_get_on:
                return httpx.Response(500, text="internal error")
            if day in self.raw_bodies:
                return httpx.Response(200, text=self.raw_bodies[day])
            record = {
                "date": day,
                "day_pattern": self.day_patterns.get(day, "normal_day"),
                "clock_in_at": None,
                "clock_out_at": None,
                "is_absence": False,
            }
            record.update(self.records.get((employee_id, day), {}))
            return httpx.Response(200, json=record)

        if day in self.fail_put_on:
            return httpx.Response(400, text='{"message":"invalid work record"}')
        patch = json.loads(request.content)
        self.puts.append((employee_id, day, patch))
        self.records.setdefault((employee_id, day), {}).update(patch)
        return httpx.Response(200, json={"employee_id": employee_id, "date": day})


class RecordingSlack:
    """Records outbound Slack calls instead of sending them."""

    def __init__(self):
        self.messages = []
        self.prompts = []
        self.prompt_moments = []
        self.responses = []
        self.fail_channels = set()

    async def post_message(self, channel, text, blocks=None):
        self.messages.append((channel, text))
        return {"ok": True}

    async def post_punch_prompt(self, channel, moment):
        if channel in self.fail_channels:
            raise SlackApiError("chat.postMessage", "channel_not_found")
        self.prompts.append(channel)
        self.prompt_moments.append(moment)
        return {"ok": True}

    async def respond(self, response_url, text, *, replace_original=True):
        self.responses.append((response_url, text))

    async def close(self):
        return None


@pytest.fixture
def settings(tmp_path):
    return Settings(
        slack_bot_token="xoxb-test",
        verification_token="verify-me",
        oauth_client_id="client-id",
        oauth_client_secret="client-secret",
        database_path=tmp_path / "punch.db",
    )


@pytest.fixture
def database(settings):
    return Database(settings.database_path)


@pytest.fixture
def freee():
    return FakeFreee()


@pytest.fixture
def transport(freee):
    return httpx.MockTransport(freee)


@pytest.fixture
def oauth(settings, transport):
    return OAuthClient.from_settings(settings, transport=transport)


@pytest.fixture
def broker(database, oauth, settings, transport):
    return CredentialBroker(database, oauth, api_base=settings.api_base, transport=transport)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def service(database, broker, clock):
    return AttendanceService(database, broker, clock)


@pytest.fixture
def slack():
    return RecordingSlack()


@pytest.fixture
def user(database):
    """A registered user holding a valid token of their own."""
    record = User(
        user_id="U100",
        channel_id="D100",
        employee_id="E100",
        credential=Credential(access_token="own-token", refresh_token="own-refresh", expiry=FAR_FUTURE),
    )
    database.save(record)
    return record


@pytest.fixture
def admin(database):
    """The shared admin record, with an expired token."""
    record = User(
        user_id="admin",
        channel_id="D999",
        employee_id="admin",
        credential=Credential(access_token="admin-token", refresh_token="admin-refresh", expiry=LONG_AGO),
    )
    database.save(record)
    return record
