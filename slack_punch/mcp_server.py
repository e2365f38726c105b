"""MCP server exposing attendance tools."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .oauth import CredentialBroker, OAuthClient
from .service import AttendanceService
from .timeparse import normalize, to_rfc3339


def create_mcp_server(service: AttendanceService) -> FastMCP:
    mcp = FastMCP("slack-punch")

    def _instant(at: Optional[str]):
        if not at:
            return None
        return normalize(at, service.today(), clock=service.clock)

    @mcp.tool()
    async def punch_in(user_id: str, at: Optional[str] = None) -> dict:
        """Punch in for today. `at` accepts now, HHMM, HH:MM or an RFC3339 timestamp."""

        clock_in = await service.punch_in(user_id, _instant(at))
        return {"user_id": user_id, "clock_in_at": to_rfc3339(clock_in)}

    @mcp.tool()
    async def punch_out(user_id: str, at: Optional[str] = None) -> dict:
        """Punch out for today, repairing a missing or inconsistent clock-in."""

        clock_out = await service.punch_out(user_id, _instant(at))
        return {"user_id": user_id, "clock_out_at": to_rfc3339(clock_out)}

    @mcp.tool()
    async def take_leave(user_id: str) -> dict:
        """Mark today as an absence."""

        day = await service.punch_leave(user_id)
        return {"user_id": user_id, "date": day.isoformat(), "is_absence": True}

    @mcp.tool()
    async def monthly_report(user_id: str) -> dict:
        """Return this month's working-day records up to today."""

        rows = await service.report(user_id)
        return {"user_id": user_id, "records": [row.as_dict() for row in rows]}

    @mcp.tool()
    async def bulk_update(user_id: str, entries: List[Dict[str, Any]]) -> dict:
        """Write several days at once; entries are {date, in, out} or {date, off: true}."""

        applied = await service.bulk_update(user_id, entries)
        return {"user_id": user_id, "applied": [day.isoformat() for day in applied]}

    return mcp


def main() -> None:  # pragma: no cover - io bound
    settings = load_settings()
    database = Database(settings.database_path)
    broker = CredentialBroker(
        database,
        OAuthClient.from_settings(settings),
        api_base=settings.api_base,
        timeout=settings.http_timeout,
    )
    create_mcp_server(AttendanceService(database, broker)).run()


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["create_mcp_server", "main"]
