"""Now-playing lookups against the Spotify Web API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..auth import SpotifyAuthorizer
from ..errors import AuthErrorKind, PollErrorKind, Result

ARTIST_DELIMITER = ", "

_AUTH_TO_POLL = {
    AuthErrorKind.UNAUTHENTICATED: PollErrorKind.UNAUTHENTICATED,
    AuthErrorKind.REFRESH_FAILED: PollErrorKind.REFRESH_FAILED,
}


@dataclass(frozen=True)
class TrackState:
    """Normalised view of what the user is listening to."""

    is_playing: bool
    track_name: Optional[str] = None
    artist_name: Optional[str] = None
    album_name: Optional[str] = None
    track_url: Optional[str] = None
    album_art_url: Optional[str] = None
    album_art: Optional[Tuple[Dict[str, Any], ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"isPlaying": self.is_playing}
        optional = {
            "trackName": self.track_name,
            "artistName": self.artist_name,
            "albumName": self.album_name,
            "trackUrl": self.track_url,
            "albumArtUrl": self.album_art_url,
            "albumArt": list(self.album_art) if self.album_art is not None else None,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


class _Image(BaseModel):
    url: str
    height: Optional[int] = None
    width: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class _Album(BaseModel):
    name: Optional[str] = None
    images: List[_Image] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class _Artist(BaseModel):
    name: str = ""

    model_config = ConfigDict(extra="ignore")


class _Item(BaseModel):
    name: Optional[str] = None
    artists: List[_Artist] = Field(default_factory=list)
    album: Optional[_Album] = None
    external_urls: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class CurrentlyPlayingPayload(BaseModel):
    """Subset of the ``/me/player/currently-playing`` body that is used."""

    is_playing: bool = False
    item: Optional[_Item] = None

    model_config = ConfigDict(extra="ignore")

    def to_track_state(self) -> TrackState:
        item = self.item
        if item is None:
            return TrackState(is_playing=self.is_playing)

        artist_names = [artist.name for artist in item.artists]
        images = item.album.images if item.album else []
        return TrackState(
            is_playing=self.is_playing,
            track_name=item.name,
            artist_name=ARTIST_DELIMITER.join(filter(None, artist_names)),
            album_name=item.album.name if item.album else None,
            track_url=item.external_urls.get("spotify"),
            album_art_url=images[0].url if images else None,
            album_art=tuple(image.model_dump() for image in images),
        )


class SpotifyService:
    """Poll the currently playing track using tokens from :class:`SpotifyAuthorizer`."""

    def __init__(
        self,
        authorizer: SpotifyAuthorizer,
        http: httpx.AsyncClient,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.authorizer = authorizer
        self.http = http
        self.logger = logger or structlog.get_logger("slackspin.spotify")

    @property
    def endpoint(self) -> str:
        return self.authorizer.settings.now_playing_endpoint

    async def poll(self) -> Result[TrackState, PollErrorKind]:
        token = await self.authorizer.get_valid_access_token()
        if not token.ok:
            return Result.failure(_AUTH_TO_POLL[token.error], token.message)

        try:
            response = await self.http.get(
                self.endpoint,
                headers={"Authorization": f"Bearer {token.value}"},
            )
        except httpx.HTTPError as exc:
            self.logger.error("spotify.poll_failed", reason="transport", error=str(exc))
            return Result.failure(PollErrorKind.FETCH_FAILED, str(exc))

        if response.status_code == 204:
            self.logger.debug("spotify.nothing_playing")
            return Result.success(TrackState(is_playing=False))

        if response.status_code != 200:
            self.logger.error(
                "spotify.poll_failed",
                reason="status",
                status=response.status_code,
                body=response.text[:500],
            )
            return Result.failure(
                PollErrorKind.FETCH_FAILED,
                f"Unexpected status {response.status_code} from Spotify",
            )

        try:
            payload = CurrentlyPlayingPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            self.logger.error("spotify.poll_failed", reason="malformed", error=str(exc))
            return Result.failure(PollErrorKind.MALFORMED_RESPONSE, "Malformed now-playing response")

        track = payload.to_track_state()
        self.logger.debug(
            "spotify.polled",
            is_playing=track.is_playing,
            track=track.track_name,
            artist=track.artist_name,
        )
        return Result.success(track)
