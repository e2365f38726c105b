"""OAuth2 client for the HR service and the broker that hands out authorized HTTP clients."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlencode

import httpx

from .config import Settings
from .db import Database
from .errors import NoCredentialError, NotFoundError, RemoteRequestError
from .freee_client import decode_json
from .models import Credential, User

logger = logging.getLogger(__name__)

# Tokens this close to expiry are treated as expired.
EXPIRY_DELTA = timedelta(seconds=10)


class OAuthClient:
    """Authorization-code exchange and refresh-token grant against the vendor token endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        authorize_url: str,
        token_url: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self._authorize_url = authorize_url
        self._token_url = token_url
        self._redirect_uri = redirect_uri
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "OAuthClient":
        return cls(
            settings.oauth_client_id,
            settings.oauth_client_secret,
            authorize_url=settings.authorize_url,
            token_url=settings.token_url,
            redirect_uri=settings.redirect_uri,
            timeout=settings.http_timeout,
            transport=transport,
        )

    def authorize_url(self) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self._redirect_uri,
                "response_type": "code",
            }
        )
        return f"{self._authorize_url}?{query}"

    async def exchange_code(self, code: str) -> Credential:
        return await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )

    async def refresh(self, credential: Credential) -> Credential:
        renewed = await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": credential.refresh_token}
        )
        if not renewed.refresh_token:
            renewed.refresh_token = credential.refresh_token
        return renewed

    async def ensure_fresh(self, credential: Credential, *, now: Optional[datetime] = None) -> Credential:
        """Return ``credential`` untouched while it is valid, otherwise a refreshed one."""

        current = now or datetime.now(timezone.utc)
        if credential.expiry is not None and credential.expiry - EXPIRY_DELTA > current:
            return credential
        return await self.refresh(credential)

    async def _request_token(self, data: Dict[str, str]) -> Credential:
        form = {**data, "client_id": self.client_id, "client_secret": self.client_secret}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._token_url, data=form)
        if response.status_code != 200:
            raise RemoteRequestError(response.status_code, response.text)
        return credential_from_token_response(decode_json(response))


def credential_from_token_response(payload: Dict[str, Any]) -> Credential:
    expiry = None
    expires_in = payload.get("expires_in")
    if expires_in:
        expiry = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
    return Credential(
        access_token=payload.get("access_token", ""),
        refresh_token=payload.get("refresh_token", ""),
        token_type=payload.get("token_type") or "Bearer",
        expiry=expiry,
    )


def credential_owner(user: User, admin: Optional[User]) -> User:
    """Pick the record whose credential authorizes requests made for ``user``.

    A user's own token wins; otherwise the shared admin record is used.
    """

    if not user.credential.is_empty:
        return user
    if admin is None or admin.credential.is_empty:
        raise NoCredentialError(f"no access token is registered for '{user.user_id}' and no admin token is available")
    return admin


class CredentialBroker:
    """Refreshes and persists whichever credential a request will use."""

    def __init__(
        self,
        database: Database,
        oauth: OAuthClient,
        *,
        api_base: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.database = database
        self.oauth = oauth
        self._api_base = api_base
        self._timeout = timeout
        self._transport = transport

    async def fresh_credential(self, user: User) -> Credential:
        admin: Optional[User] = None
        if user.credential.is_empty:
            try:
                admin = self.database.load_admin()
            except NotFoundError as exc:
                raise NoCredentialError(
                    f"no access token is registered for '{user.user_id}' and the admin record is missing"
                ) from exc

        owner = credential_owner(user, admin)
        renewed = await self.oauth.ensure_fresh(owner.credential)
        if renewed.access_token != owner.credential.access_token:
            owner.credential = renewed
            self.database.save(owner)
            logger.info("Refreshed access token for %s", owner.user_id)
        return owner.credential

    @asynccontextmanager
    async def authorized_client(self, user: User) -> AsyncIterator[httpx.AsyncClient]:
        credential = await self.fresh_credential(user)
        async with httpx.AsyncClient(
            base_url=self._api_base,
            headers={"Authorization": f"{credential.token_type} {credential.access_token}"},
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            yield client


__all__ = [
    "OAuthClient",
    "CredentialBroker",
    "credential_owner",
    "credential_from_token_response",
]
