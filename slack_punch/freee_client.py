"""HTTP client for the HR service's per-day work-record resource."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict

import httpx

from .errors import RemoteRequestError
from .models import WorkRecord
from .timeparse import to_rfc3339

ABSENCE_PATCH: Dict[str, Any] = {"is_absence": True}


def work_record_path(employee_id: str, day: date) -> str:
    return f"/api/v1/employees/{employee_id}/work_records/{day.isoformat()}"


def attendance_patch(clock_in: datetime, clock_out: datetime) -> Dict[str, Any]:
    return {
        "break_records": [],
        "clock_in_at": to_rfc3339(clock_in),
        "clock_out_at": to_rfc3339(clock_out),
        "is_absence": False,
    }


def decode_json(response: httpx.Response) -> Dict[str, Any]:
    """Decode a JSON object body, raising ``RemoteRequestError`` when it is anything else."""

    try:
        payload = response.json()
    except ValueError as exc:
        raise RemoteRequestError(response.status_code, response.text) from exc
    if not isinstance(payload, dict):
        raise RemoteRequestError(response.status_code, response.text)
    return payload


class FreeeClient:
    """Reads and writes work records through an already-authorized ``httpx.AsyncClient``.

    Non-200 answers and undecodable bodies raise ``RemoteRequestError`` carrying the drained body.
    Nothing is retried here.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get_day(self, employee_id: str, day: date) -> WorkRecord:
        response = await self._client.get(work_record_path(employee_id, day))
        body = response.text
        if response.status_code != 200:
            raise RemoteRequestError(response.status_code, body)
        return WorkRecord.from_payload(decode_json(response))

    async def put_day(self, employee_id: str, day: date, patch: Dict[str, Any]) -> None:
        response = await self._client.put(work_record_path(employee_id, day), json=patch)
        body = response.text
        if response.status_code != 200:
            raise RemoteRequestError(response.status_code, body)


__all__ = ["FreeeClient", "ABSENCE_PATCH", "decode_json", "attendance_patch", "work_record_path"]
