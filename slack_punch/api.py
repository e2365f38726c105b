"""FastAPI application receiving Slack events and interactive button callbacks."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs

import httpx
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response, status

from .commands import CANCELED, PUNCH_REPLIES, CommandHandler
from .config import Settings, load_settings
from .db import Database
from .oauth import CredentialBroker, OAuthClient
from .reminder import ReminderScheduler
from .service import AttendanceService
from .slack_client import ACTION_CANCEL, SlackApiError, SlackClient
from .timeparse import now_jst

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    slack_client: Optional[SlackClient] = None,
    freee_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], datetime] = now_jst,
) -> FastAPI:
    settings = settings or load_settings()
    database = database or Database(settings.database_path)
    slack_client = slack_client or SlackClient(settings.slack_bot_token, settings.http_timeout)
    oauth = OAuthClient.from_settings(settings, transport=freee_transport)
    broker = CredentialBroker(
        database,
        oauth,
        api_base=settings.api_base,
        timeout=settings.http_timeout,
        transport=freee_transport,
    )
    service = AttendanceService(database, broker, clock)
    commands = CommandHandler(service, slack_client)
    scheduler = ReminderScheduler(
        database,
        slack_client,
        service,
        skip_holidays=settings.reminder_skip_holidays,
        clock=clock,
    )

    app = FastAPI(title="Slack Punch", version="1.0.0")
    app.state.service = service
    app.state.commands = commands
    app.state.scheduler = scheduler

    def verify_token(token: Optional[str]) -> None:
        if token != settings.verification_token:
            logger.error("Invalid verification token")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")

    async def handle_message_event(event: Dict[str, Any]) -> None:
        channel = event.get("channel", "")
        try:
            reply = await commands.handle_message(event["user"], channel, event.get("text", ""))
            if reply:
                await slack_client.post_message(channel, reply)
        except (SlackApiError, httpx.HTTPError) as exc:
            logger.error("Failed to handle message: %s", exc)

    async def handle_action(user_id: str, action: str, response_url: Optional[str]) -> None:
        if action == ACTION_CANCEL:
            text = CANCELED
        else:
            text = await commands.handle_punch(user_id, action)
        if not response_url:
            return
        try:
            await slack_client.respond(response_url, text)
        except httpx.HTTPError as exc:
            logger.error("Failed to answer interaction for %s: %s", user_id, exc)

    @app.on_event("startup")
    async def startup_event() -> None:  # pragma: no cover - io bound
        app.state.reminder_task = asyncio.create_task(scheduler.run())

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        task = getattr(app.state, "reminder_task", None)
        if task is not None:
            task.cancel()
        await slack_client.close()

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/slack/events")
    async def slack_events(request: Request, background: BackgroundTasks) -> Dict[str, Any]:
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="invalid json") from exc
        verify_token(body.get("token"))

        if body.get("type") == "url_verification":
            return {"challenge": body.get("challenge")}
        # Slack re-delivers events it thinks timed out; the first delivery is already being handled.
        if request.headers.get("X-Slack-Retry-Num"):
            return {"ok": True}

        event = body.get("event") or {}
        if (
            body.get("type") == "event_callback"
            and event.get("type") == "message"
            and not event.get("subtype")
            and not event.get("bot_id")
            and event.get("user")
        ):
            background.add_task(handle_message_event, event)
        return {"ok": True}

    @app.post("/slack/interaction")
    async def slack_interaction(request: Request, background: BackgroundTasks) -> Response:
        form = parse_qs((await request.body()).decode("utf-8"))
        raw = (form.get("payload") or [""])[0]
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.error("Failed to decode json message from slack: %s", raw)
            raise HTTPException(status_code=400, detail="invalid payload") from exc
        verify_token(payload.get("token"))

        actions = payload.get("actions") or []
        action = (actions[0].get("action_id") or actions[0].get("name")) if actions else None
        user_id = (payload.get("user") or {}).get("id")
        if not user_id or (action not in PUNCH_REPLIES and action != ACTION_CANCEL):
            logger.error("Invalid action was submitted: %s", action)
            raise HTTPException(status_code=400, detail="invalid action")

        background.add_task(handle_action, user_id, action, payload.get("response_url"))
        return Response(status_code=status.HTTP_200_OK)

    return app


__all__ = ["create_app"]
