"""Mirror the current Spotify track into the Slack profile."""

from __future__ import annotations

from typing import Dict, Optional

from ..config import GlobalConfig
from ..errors import PollErrorKind
from ..services import TrackState
from .base import TickContext

# Auth gaps leave the current Slack status alone instead of clearing it.
SKIP_ERRORS = {PollErrorKind.UNAUTHENTICATED, PollErrorKind.REFRESH_FAILED}


class NowPlayingModule:
    """Poll Spotify and publish the playing track, or clear the status when idle."""

    name = "now_playing"

    def __init__(self, config: GlobalConfig) -> None:
        self.settings = config.now_playing
        self.last_run_summary: Dict[str, object] = {}

    def format_status(self, track: TrackState) -> str:
        return self.settings.status_template.format(
            track=track.track_name or "",
            artist=track.artist_name or "",
            album=track.album_name or "",
        )

    async def run(self, context: TickContext) -> Dict[str, object]:
        logger = context.logger
        spotify = context.spotify
        slack = context.slack

        if spotify is None or slack is None:
            logger.error("now_playing.no_clients")
            self.last_run_summary = {"status": "failed", "reason": "clients_unavailable"}
            return self.last_run_summary

        poll = await spotify.poll()
        if poll.error in SKIP_ERRORS:
            logger.info("now_playing.skipped", reason=poll.error.value, message=poll.message)
            self.last_run_summary = {"status": "skipped", "reason": poll.error.value}
            return self.last_run_summary

        track: Optional[TrackState] = poll.value if poll.ok else None
        if not poll.ok:
            logger.warning("now_playing.track_unavailable", reason=poll.error.value)

        if track is not None and track.is_playing and track.track_name:
            status_text = self.format_status(track)
            status_emoji = self.settings.status_emoji
            image_url = track.album_art_url
        else:
            status_text = ""
            status_emoji = ""
            image_url = None

        result = await slack.publish(image_url, status_text, status_emoji)

        if track is not None and track.is_playing and track.track_name:
            context.state.last_played = track
            logger.info(
                "now_playing.updated",
                track=track.track_name,
                artist=track.artist_name,
                status=result.status_updated,
                photo=result.image_updated,
            )
        else:
            logger.info("now_playing.cleared", status=result.status_updated)

        self.last_run_summary = {
            "status": "success" if result.status_updated else "failed",
            "currently_playing": (track or TrackState(is_playing=False)).to_dict(),
            "slack_updated": result.as_dict(),
        }
        if not poll.ok:
            self.last_run_summary["poll_error"] = poll.error.value
        return self.last_run_summary
