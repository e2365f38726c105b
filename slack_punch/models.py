"""Dataclasses representing the attendance domain."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Optional, Union

ADMIN_USER_ID = "admin"
NORMAL_DAY = "normal_day"


@dataclass(slots=True)
class Credential:
    access_token: str = ""
    refresh_token: str = ""
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.access_token


@dataclass(slots=True)
class Reminder:
    enabled: bool = True
    am: time = time(9, 0)
    pm: time = time(17, 0)


@dataclass(slots=True)
class User:
    user_id: str
    channel_id: str
    employee_id: str
    credential: Credential = field(default_factory=Credential)
    reminder: Reminder = field(default_factory=Reminder)
    last_used_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.user_id == ADMIN_USER_ID or self.employee_id == ADMIN_USER_ID


@dataclass(slots=True)
class WorkRecord:
    """One employee's remote attendance record for one calendar day.

    Timestamps are kept as the RFC3339 strings the HR service returned.
    """

    date: str
    clock_in_at: Optional[str] = None
    clock_out_at: Optional[str] = None
    is_absence: bool = False
    day_pattern: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WorkRecord":
        return cls(
            date=payload.get("date") or "",
            clock_in_at=payload.get("clock_in_at"),
            clock_out_at=payload.get("clock_out_at"),
            is_absence=bool(payload.get("is_absence")),
            day_pattern=payload.get("day_pattern"),
        )

    @property
    def is_normal_day(self) -> bool:
        return self.day_pattern == NORMAL_DAY


@dataclass(slots=True)
class ReportRow:
    date: str
    clock_in: Optional[str]
    clock_out: Optional[str]
    off: bool

    def as_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "in": self.clock_in, "out": self.clock_out, "off": self.off}


@dataclass(slots=True)
class Absence:
    day: date


@dataclass(slots=True)
class Present:
    day: date
    clock_in: datetime
    clock_out: datetime


BulkEntry = Union[Absence, Present]


__all__ = [
    "ADMIN_USER_ID",
    "NORMAL_DAY",
    "Credential",
    "Reminder",
    "User",
    "WorkRecord",
    "ReportRow",
    "Absence",
    "Present",
    "BulkEntry",
]
