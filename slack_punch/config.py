"""Configuration helpers for Slack Punch."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_API_BASE = "https://api.freee.co.jp/hr"
DEFAULT_AUTHORIZE_URL = "https://secure.freee.co.jp/oauth/authorize"
DEFAULT_TOKEN_URL = "https://api.freee.co.jp/oauth/token"
DEFAULT_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    slack_bot_token: str
    verification_token: str
    oauth_client_id: str
    oauth_client_secret: str
    database_path: Path
    api_base: str = DEFAULT_API_BASE
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    token_url: str = DEFAULT_TOKEN_URL
    redirect_uri: str = DEFAULT_REDIRECT_URI
    http_timeout: float = 10.0
    reminder_skip_holidays: bool = False


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    db_path = Path(os.getenv("DATABASE_PATH", "slack_punch.db")).expanduser()

    slack_token = os.getenv("SLACK_BOT_TOKEN")
    verification_token = os.getenv("SLACK_VERIFICATION_TOKEN")
    client_id = os.getenv("FREEE_CLIENT_ID")
    client_secret = os.getenv("FREEE_CLIENT_SECRET")

    if not slack_token:
        raise RuntimeError("SLACK_BOT_TOKEN must be configured")
    if not verification_token:
        raise RuntimeError("SLACK_VERIFICATION_TOKEN must be configured")
    if not client_id or not client_secret:
        raise RuntimeError("FREEE_CLIENT_ID and FREEE_CLIENT_SECRET must be configured")

    return Settings(
        slack_bot_token=slack_token,
        verification_token=verification_token,
        oauth_client_id=client_id,
        oauth_client_secret=client_secret,
        database_path=db_path,
        api_base=os.getenv("FREEE_API_BASE", DEFAULT_API_BASE).rstrip("/"),
        authorize_url=os.getenv("FREEE_AUTHORIZE_URL", DEFAULT_AUTHORIZE_URL),
        token_url=os.getenv("FREEE_TOKEN_URL", DEFAULT_TOKEN_URL),
        redirect_uri=os.getenv("FREEE_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        http_timeout=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
        reminder_skip_holidays=_env_flag("REMINDER_SKIP_HOLIDAYS"),
    )


__all__ = ["Settings", "load_settings"]
