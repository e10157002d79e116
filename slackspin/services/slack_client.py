"""Slack profile photo and status updates."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from ..config import SlackSettings
from ..errors import PublishErrorKind, Result

_Outcome = Result[bool, PublishErrorKind]


@dataclass(frozen=True)
class PublishResult:
    """Outcome of the two independent profile updates."""

    image_updated: bool
    status_updated: bool
    image_error: Optional[PublishErrorKind] = None
    status_error: Optional[PublishErrorKind] = None

    def as_dict(self) -> Dict[str, bool]:
        return {"status": self.status_updated, "photo": self.image_updated}


class SlackService:
    """Push profile photos and statuses through the Slack Web API."""

    def __init__(
        self,
        settings: SlackSettings,
        http: httpx.AsyncClient,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.settings = settings
        self.http = http
        self.logger = logger or structlog.get_logger("slackspin.slack")

    def _url(self, method: str) -> str:
        return f"{self.settings.api_base.rstrip('/')}/{method}"

    async def publish(
        self,
        image_url: Optional[str],
        status_text: str,
        status_emoji: str,
        *,
        token: Optional[str] = None,
    ) -> PublishResult:
        """Update photo and status concurrently; one failing never stops the other.

        ``image_url`` of ``None`` leaves the photo untouched. Failures are
        logged and reported through the returned flags, never raised.
        """

        token = token or self.settings.token
        if not token:
            self.logger.error("slack.missing_token")
            return PublishResult(image_updated=False, status_updated=False)

        photo_outcome, status_outcome = await asyncio.gather(
            self._update_photo(image_url, token),
            self._update_status(status_text, status_emoji, token),
            return_exceptions=True,
        )
        photo = self._settle(photo_outcome, "photo")
        status = self._settle(status_outcome, "status")
        return PublishResult(
            image_updated=bool(photo.ok and photo.value),
            status_updated=bool(status.ok and status.value),
            image_error=photo.error,
            status_error=status.error,
        )

    def _settle(self, outcome: Any, target: str) -> _Outcome:
        if isinstance(outcome, BaseException):
            self.logger.error(
                "slack.update_crashed",
                target=target,
                error=repr(outcome),
                exc_info=outcome,
            )
            return Result.failure(PublishErrorKind.TRANSPORT_FAILED, str(outcome))
        return outcome

    async def _update_photo(self, image_url: Optional[str], token: str) -> _Outcome:
        if not image_url:
            return Result.success(False)

        try:
            image = await self.http.get(image_url, follow_redirects=True)
        except httpx.HTTPError as exc:
            self.logger.error("slack.image_fetch_failed", image_url=image_url, error=str(exc))
            return Result.failure(PublishErrorKind.IMAGE_FETCH_FAILED, str(exc))
        if not image.is_success:
            self.logger.error(
                "slack.image_fetch_failed",
                image_url=image_url,
                status=image.status_code,
            )
            return Result.failure(
                PublishErrorKind.IMAGE_FETCH_FAILED,
                f"Failed to fetch image: {image_url}",
            )

        content_type = image.headers.get("content-type", "application/octet-stream")
        outcome = await self._call(
            "users.setPhoto",
            token,
            files={"image": ("image", image.content, content_type)},
        )
        if outcome.ok:
            self.logger.info("slack.photo_updated", image_url=image_url)
        return outcome

    async def _update_status(self, text: str, emoji: str, token: str) -> _Outcome:
        outcome = await self._call(
            "users.profile.set",
            token,
            json={
                "profile": {
                    "status_text": text,
                    "status_emoji": emoji,
                    "status_expiration": 0,
                }
            },
        )
        if outcome.ok:
            self.logger.info("slack.status_updated", text=text, emoji=emoji)
        return outcome

    async def _call(self, method: str, token: str, **kwargs: Any) -> _Outcome:
        try:
            response = await self.http.post(
                self._url(method),
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            self.logger.error("slack.request_failed", method=method, error=str(exc))
            return Result.failure(PublishErrorKind.TRANSPORT_FAILED, str(exc))

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else None
            self.logger.error(
                "slack.request_rejected",
                method=method,
                status=response.status_code,
                error=error or "unknown_error",
            )
            return Result.failure(PublishErrorKind.PLATFORM_REJECTED, error or "unknown_error")
        return Result.success(True)
