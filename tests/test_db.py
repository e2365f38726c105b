"""Tests for the keyed user store."""

from datetime import datetime, time, timezone

import pytest

from slack_punch.errors import NotFoundError
from slack_punch.models import Credential, Reminder, User


def test_save_and_load_round_trips_every_field(database):
    expiry = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)
    last_used = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)
    original = User(
        user_id="U1",
        channel_id="D1",
        employee_id="E1",
        credential=Credential(access_token="a", refresh_token="r", token_type="bearer", expiry=expiry),
        reminder=Reminder(enabled=False, am=time(8, 30), pm=time(18, 15)),
        last_used_at=last_used,
    )
    database.save(original)

    loaded = database.load("U1")
    assert loaded == original


def test_new_users_get_default_reminder(database):
    database.save(User(user_id="U2", channel_id="D2", employee_id="E2"))
    reminder = database.load("U2").reminder
    assert reminder.enabled is True
    assert reminder.am == time(9, 0)
    assert reminder.pm == time(17, 0)


def test_save_overwrites_the_record_for_the_same_user(database):
    database.save(User(user_id="U1", channel_id="D1", employee_id="E1"))
    database.save(User(user_id="U1", channel_id="D1", employee_id="E9"))

    users = database.list_users()
    assert len(users) == 1
    assert users[0].employee_id == "E9"


def test_load_missing_user_raises_not_found(database):
    with pytest.raises(NotFoundError):
        database.load("nobody")


def test_list_users_hides_admin_unless_asked(database, user, admin):
    assert [u.user_id for u in database.list_users()] == ["U100"]
    assert {u.user_id for u in database.list_users(include_admin=True)} == {"U100", "admin"}
    assert database.load_admin().credential.access_token == "admin-token"


def test_delete_removes_record(database, user):
    database.delete("U100")
    with pytest.raises(NotFoundError):
        database.load("U100")
    with pytest.raises(NotFoundError):
        database.delete("U100")
