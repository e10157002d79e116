"""External service clients used by tick modules."""

from .slack_client import PublishResult, SlackService
from .spotify_client import SpotifyService, TrackState

__all__ = [
    "PublishResult",
    "SlackService",
    "SpotifyService",
    "TrackState",
]
