"""HTTP client for interacting with Slack Web API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

SLACK_API_BASE = "https://slack.com/api"

ACTION_IN = "in"
ACTION_OUT = "out"
ACTION_LEAVE = "leave"
ACTION_CANCEL = "cancel"
PUNCH_BLOCK_ID = "punch"


class SlackApiError(RuntimeError):
    """Raised when Slack returns an error response."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API error for {method}: {error}")
        self.method = method
        self.error = error


def punch_prompt_blocks(moment: datetime) -> List[Dict[str, Any]]:
    """Block Kit payload offering punch in, punch out, leave and cancel buttons."""

    def button(action_id: str, text: str, style: Optional[str] = None) -> Dict[str, Any]:
        element: Dict[str, Any] = {
            "type": "button",
            "action_id": action_id,
            "value": action_id,
            "text": {"type": "plain_text", "text": text},
        }
        if style:
            element["style"] = style
        return element

    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": moment.strftime("%Y/%m/%d %H:%M")},
        },
        {
            "type": "actions",
            "block_id": PUNCH_BLOCK_ID,
            "elements": [
                button(ACTION_IN, "Punch in", "primary"),
                button(ACTION_OUT, "Punch out", "primary"),
                button(ACTION_LEAVE, "Leave", "danger"),
                button(ACTION_CANCEL, "Cancel"),
            ],
        },
    ]


class SlackClient:
    """Simple async wrapper around the Slack Web API endpoints used by Slack Punch."""

    def __init__(
        self,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=SLACK_API_BASE,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json; charset=utf-8",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        method = "chat.postMessage"
        payload: Dict[str, Any] = {"channel": channel, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        response = await self._client.post(method, json=payload)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as exc:
            raise SlackApiError(method, "invalid_response") from exc
        if not data.get("ok"):
            raise SlackApiError(method, data.get("error", "unknown_error"))
        return data

    async def post_punch_prompt(self, channel: str, moment: datetime) -> Dict[str, Any]:
        return await self.post_message(
            channel, f"Punch for {moment:%Y/%m/%d}?", blocks=punch_prompt_blocks(moment)
        )

    async def respond(self, response_url: str, text: str, *, replace_original: bool = True) -> None:
        """Answer an interaction through its ``response_url``."""

        response = await self._client.post(
            response_url,
            json={"text": text, "replace_original": replace_original},
        )
        response.raise_for_status()


__all__ = [
    "SlackClient",
    "SlackApiError",
    "punch_prompt_blocks",
    "ACTION_IN",
    "ACTION_OUT",
    "ACTION_LEAVE",
    "ACTION_CANCEL",
]
