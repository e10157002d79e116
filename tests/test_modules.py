import asyncio
import json
import random

import httpx
import structlog

from slackspin.config import GlobalConfig, StatusEntry
from slackspin.modules import NowPlayingModule, RotationModule, TickContext, default_registry

from .conftest import (
    NOW_PLAYING_URL,
    SLACK_PHOTO_URL,
    SLACK_PROFILE_URL,
    TOKEN_URL,
    playing_payload,
    slack_ok,
)


def _tick_context(context, rng=None) -> TickContext:
    return TickContext(
        logger=structlog.get_logger("test"),
        config=context.global_config,
        state=context.state,
        spotify=context.spotify,
        slack=context.slack,
        rng=rng,
    )


def _profile(request: httpx.Request) -> dict:
    return json.loads(request.content)["profile"]


def test_registry_knows_both_modes():
    assert set(default_registry.modes()) == {"now_playing", "rotation"}
    assert default_registry.get("rotation") is RotationModule


def test_nothing_playing_clears_status(context, recorder, clock):
    context.state.tokens.update(access_token="tok", refresh_token="r", expires_at=clock.now + 600)
    recorder.route("GET", NOW_PLAYING_URL, lambda request: httpx.Response(204))
    recorder.route("POST", SLACK_PROFILE_URL, slack_ok)
    module = NowPlayingModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary["currently_playing"] == {"isPlaying": False}
    assert summary["slack_updated"] == {"status": True, "photo": False}
    assert _profile(recorder.calls(SLACK_PROFILE_URL)[0]) == {
        "status_text": "",
        "status_emoji": "",
        "status_expiration": 0,
    }
    assert recorder.calls(SLACK_PHOTO_URL) == []
    assert context.state.last_played is None


def test_playing_track_updates_photo_and_status(context, recorder, clock):
    context.state.tokens.update(access_token="tok", refresh_token="r", expires_at=clock.now + 600)
    recorder.route("GET", NOW_PLAYING_URL, lambda request: httpx.Response(200, json=playing_payload()))
    recorder.route("GET", "https://i.scdn.co/image/large", lambda request: httpx.Response(200, content=b"jpg"))
    recorder.route("POST", SLACK_PHOTO_URL, slack_ok)
    recorder.route("POST", SLACK_PROFILE_URL, slack_ok)
    module = NowPlayingModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary["status"] == "success"
    assert summary["slack_updated"] == {"status": True, "photo": True}
    profile = _profile(recorder.calls(SLACK_PROFILE_URL)[0])
    assert profile["status_text"] == "Playing: Windowlicker by Aphex Twin, Guest"
    assert profile["status_emoji"] == ":headphones:"
    assert context.state.last_played.track_name == "Windowlicker"


def test_unauthenticated_tick_skips_publish(context, recorder):
    module = NowPlayingModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary == {"status": "skipped", "reason": "unauthenticated"}
    assert recorder.requests == []


def test_refresh_failure_skips_publish(context, recorder):
    context.state.tokens.update(refresh_token="r")
    recorder.route("POST", TOKEN_URL, lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    module = NowPlayingModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary["status"] == "skipped"
    assert recorder.calls(SLACK_PROFILE_URL) == []


def test_fetch_failure_clears_status(context, recorder, clock):
    context.state.tokens.update(access_token="tok", refresh_token="r", expires_at=clock.now + 600)
    recorder.route("GET", NOW_PLAYING_URL, lambda request: httpx.Response(500))
    recorder.route("POST", SLACK_PROFILE_URL, slack_ok)
    module = NowPlayingModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary["poll_error"] == "fetch_failed"
    assert summary["slack_updated"] == {"status": True, "photo": False}
    assert _profile(recorder.calls(SLACK_PROFILE_URL)[0])["status_text"] == ""


def _rotation_context(make_context, global_config, images, statuses):
    config = global_config.model_copy(
        update={
            "rotation": global_config.rotation.model_copy(
                update={"images": images, "statuses": [StatusEntry(**entry) for entry in statuses]}
            )
        }
    )
    return make_context(config)


def test_rotation_scenario(make_context, global_config, recorder):
    context = _rotation_context(
        make_context,
        global_config,
        ["https://img.example.com/a.png", "https://img.example.com/b.png"],
        [{"text": "X", "emoji": ":x:"}],
    )
    for name in ("a.png", "b.png"):
        recorder.route("GET", f"https://img.example.com/{name}", lambda request: httpx.Response(200, content=b"png"))
    recorder.route("POST", SLACK_PHOTO_URL, slack_ok)
    recorder.route("POST", SLACK_PROFILE_URL, slack_ok)
    module = RotationModule(context.global_config)
    tick = _tick_context(context, rng=random.Random(11))
    rotation = context.state.rotation

    assert rotation.last_image_index == -1
    first = asyncio.run(module.run(tick))
    assert first["status"] == "success"
    assert first["status_entry"] == {"text": "X", "emoji": ":x:"}
    assert rotation.status_cursor == 0
    assert rotation.last_image_index == first["image_index"]

    second = asyncio.run(module.run(tick))
    assert second["image_index"] != first["image_index"]
    assert [_profile(request)["status_text"] for request in recorder.calls(SLACK_PROFILE_URL)] == ["X", "X"]


def test_rotation_cursor_advances_and_wraps(make_context, global_config, recorder):
    context = _rotation_context(
        make_context,
        global_config,
        ["https://img.example.com/a.png"],
        [{"text": "one", "emoji": ":one:"}, {"text": "two", "emoji": ":two:"}],
    )
    recorder.route("GET", "https://img.example.com/a.png", lambda request: httpx.Response(200, content=b"png"))
    recorder.route("POST", SLACK_PHOTO_URL, slack_ok)
    recorder.route("POST", SLACK_PROFILE_URL, slack_ok)
    module = RotationModule(context.global_config)
    tick = _tick_context(context)

    for _ in range(3):
        asyncio.run(module.run(tick))

    texts = [_profile(request)["status_text"] for request in recorder.calls(SLACK_PROFILE_URL)]
    assert texts == ["one", "two", "one"]
    assert context.state.rotation.status_cursor == 1
    assert context.state.rotation.last_image_index == 0


def test_rotation_advances_even_when_slack_fails(make_context, global_config, recorder):
    context = _rotation_context(
        make_context,
        global_config,
        ["https://img.example.com/a.png", "https://img.example.com/b.png"],
        [{"text": "one"}, {"text": "two"}],
    )
    module = RotationModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary["status"] == "failed"
    assert context.state.rotation.status_cursor == 1


def test_empty_rotation_is_noop(make_context, recorder):
    context = make_context(GlobalConfig.model_validate({"slack": {"token": "xoxp"}}))
    module = RotationModule(context.global_config)

    summary = asyncio.run(module.run(_tick_context(context)))

    assert summary == {"status": "noop", "reason": "empty_rotation"}
    assert recorder.requests == []
