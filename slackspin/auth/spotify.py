"""Spotify PKCE authorization flow and in-memory token store."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import SpotifySettings
from ..errors import AuthErrorKind, Result
from .pkce import generate_pkce_pair


@dataclass(frozen=True)
class TokenRecord:
    """Snapshot of the Spotify credentials held by the process."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: float = 0.0
    pending_verifier: Optional[str] = None

    def access_token_valid(self, now: float) -> bool:
        return bool(self.access_token) and self.expires_at > now

    @property
    def authenticated(self) -> bool:
        return bool(self.refresh_token)


class TokenStore:
    """Holds the current :class:`TokenRecord`.

    Records are immutable and swapped whole, so a reader always sees a
    consistent access token, expiry and refresh token. ``lock`` serialises
    read-modify-write sequences such as a refresh.
    """

    def __init__(self, record: Optional[TokenRecord] = None) -> None:
        self._record = record or TokenRecord()
        self.lock = asyncio.Lock()

    @property
    def record(self) -> TokenRecord:
        return self._record

    def update(self, **changes: Any) -> TokenRecord:
        self._record = replace(self._record, **changes)
        return self._record


class TokenResponse(BaseModel):
    """Body returned by the Spotify token endpoint."""

    access_token: str
    token_type: str = Field(default="Bearer")
    expires_in: int = Field(default=3600, ge=0)
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class SpotifyAuthorizer:
    """Drive the authorization-code + PKCE flow and keep the access token fresh."""

    def __init__(
        self,
        settings: SpotifySettings,
        store: TokenStore,
        http: httpx.AsyncClient,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.http = http
        self.logger = logger or structlog.get_logger("slackspin.auth")
        self._clock = clock

    # ------------------------------------------------------------------
    # Authorization code flow
    # ------------------------------------------------------------------
    def begin_authorization(self) -> Tuple[str, str]:
        """Return ``(authorize_url, verifier)`` and remember the verifier as pending.

        Calling this again replaces any verifier still waiting for a callback.
        """

        pkce = generate_pkce_pair(self.settings.verifier_length)
        params = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "redirect_uri": self.settings.redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": pkce.code_challenge,
            "scope": " ".join(self.settings.scopes),
        }
        url = f"{self.settings.authorize_endpoint}?{urlencode(params)}"
        previous = self.store.record.pending_verifier
        self.store.update(pending_verifier=pkce.code_verifier)
        self.logger.info(
            "auth.authorization_requested",
            redirect_uri=self.settings.redirect_uri,
            replaced_pending=previous is not None,
        )
        return url, pkce.code_verifier

    async def complete_authorization(
        self,
        code: str,
        verifier: Optional[str] = None,
    ) -> Result[TokenRecord, AuthErrorKind]:
        """Exchange ``code`` for tokens using the pending verifier."""

        pending = self.store.record.pending_verifier
        if pending is None:
            self.logger.warning("auth.missing_verifier")
            return Result.failure(
                AuthErrorKind.MISSING_VERIFIER,
                "No code verifier found. Please restart the authentication flow.",
            )

        used_verifier = verifier or pending

        token = await self._request_token(
            {
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.settings.redirect_uri,
                "code_verifier": used_verifier,
            },
            event="auth.exchange_failed",
        )
        if token is None:
            return Result.failure(
                AuthErrorKind.EXCHANGE_FAILED,
                "Failed to exchange authorization code for tokens",
            )

        async with self.store.lock:
            current = self.store.record
            # A newer /auth request may have replaced the verifier mid-exchange.
            consumed = current.pending_verifier == used_verifier
            record = self.store.update(
                access_token=token.access_token,
                refresh_token=token.refresh_token or current.refresh_token,
                expires_at=self._clock() + token.expires_in,
                pending_verifier=None if consumed else current.pending_verifier,
            )
        self.logger.info("auth.authorized", expires_in=token.expires_in)
        return Result.success(record)

    def set_refresh_token(self, refresh_token: str) -> None:
        """Install a refresh token obtained elsewhere; the next token request refreshes."""

        self.store.update(refresh_token=refresh_token, access_token=None, expires_at=0.0)
        self.logger.info("auth.refresh_token_set")

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------
    async def get_valid_access_token(self) -> Result[str, AuthErrorKind]:
        """Return a usable access token, refreshing it when it has expired."""

        record = self.store.record
        if record.access_token_valid(self._clock()):
            return Result.success(record.access_token)

        if not record.refresh_token:
            self.logger.warning("auth.unauthenticated", message="No refresh token available")
            return Result.failure(AuthErrorKind.UNAUTHENTICATED, "No refresh token available")

        async with self.store.lock:
            # Another caller may have refreshed while this one waited.
            record = self.store.record
            if record.access_token_valid(self._clock()):
                return Result.success(record.access_token)
            if not record.refresh_token:
                return Result.failure(AuthErrorKind.UNAUTHENTICATED, "No refresh token available")

            token = await self._request_token(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": record.refresh_token,
                },
                auth=(self.settings.client_id, self.settings.client_secret),
                event="auth.refresh_failed",
            )
            if token is None:
                return Result.failure(AuthErrorKind.REFRESH_FAILED, "Failed to refresh access token")

            updated = self.store.update(
                access_token=token.access_token,
                expires_at=self._clock() + token.expires_in,
                refresh_token=self._next_refresh_token(record.refresh_token, token.refresh_token),
            )

        self.logger.info("auth.refreshed", expires_in=token.expires_in)
        return Result.success(updated.access_token)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _next_refresh_token(self, current: str, returned: Optional[str]) -> str:
        policy = self.settings.refresh_token_rotation
        if policy == "never":
            return current
        if returned:
            if returned != current:
                self.logger.info("auth.refresh_token_rotated")
            return returned
        if policy == "always":
            self.logger.warning("auth.refresh_token_not_rotated")
        return current

    async def _request_token(
        self,
        data: Dict[str, str],
        *,
        event: str,
        auth: Optional[Tuple[str, str]] = None,
    ) -> Optional[TokenResponse]:
        try:
            if auth is None:
                response = await self.http.post(self.settings.token_endpoint, data=data)
            else:
                response = await self.http.post(self.settings.token_endpoint, data=data, auth=auth)
        except httpx.HTTPError as exc:
            self.logger.error(event, reason="transport", error=str(exc))
            return None

        if not response.is_success:
            self.logger.error(
                event,
                reason="rejected",
                status=response.status_code,
                body=response.text[:500],
            )
            return None

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            self.logger.error(event, reason="malformed", error=str(exc))
            return None
