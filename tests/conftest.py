from typing import Callable, Dict, List, Tuple

import httpx
import pytest

from slackspin.app_context import AppContext, build_context
from slackspin.config import ConfigPaths, GlobalConfig

TOKEN_URL = "https://accounts.spotify.com/api/token"
NOW_PLAYING_URL = "https://api.spotify.com/v1/me/player/currently-playing"
SLACK_PHOTO_URL = "https://slack.com/api/users.setPhoto"
SLACK_PROFILE_URL = "https://slack.com/api/users.profile.set"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """Mock transport handler that routes by method + URL and keeps every request."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, url: str, handler: Handler) -> None:
        self.routes[(method, url)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        handler = self.routes.get((request.method, url))
        if handler is None:
            return httpx.Response(404, json={"error": "not routed"})
        return handler(request)

    def calls(self, url: str) -> List[httpx.Request]:
        return [
            request
            for request in self.requests
            if f"{request.url.scheme}://{request.url.host}{request.url.path}" == url
        ]


def slack_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


def token_response(access_token: str = "access-1", refresh_token=None, expires_in: int = 3600) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = {"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in}
        if refresh_token:
            payload["refresh_token"] = refresh_token
        return httpx.Response(200, json=payload)

    return handler


def playing_payload() -> dict:
    return {
        "is_playing": True,
        "item": {
            "name": "Windowlicker",
            "artists": [{"name": "Aphex Twin"}, {"name": "Guest"}],
            "album": {
                "name": "Windowlicker EP",
                "images": [
                    {"url": "https://i.scdn.co/image/large", "height": 640, "width": 640},
                    {"url": "https://i.scdn.co/image/small", "height": 64, "width": 64},
                ],
            },
            "external_urls": {"spotify": "https://open.spotify.com/track/abc"},
        },
    }


@pytest.fixture()
def global_config() -> GlobalConfig:
    return GlobalConfig.model_validate(
        {
            "spotify": {
                "client_id": "client",
                "client_secret": "secret",
                "base_url": "http://localhost:8000",
            },
            "slack": {"token": "xoxp-test"},
        }
    )


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_context(tmp_path, recorder, clock) -> Callable[[GlobalConfig], AppContext]:
    def _make(config: GlobalConfig) -> AppContext:
        http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return build_context(ConfigPaths.from_base_dir(tmp_path), config, http=http, clock=clock)

    return _make


@pytest.fixture()
def context(make_context, global_config) -> AppContext:
    return make_context(global_config)
