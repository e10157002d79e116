from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from slackspin.config import GlobalConfig
from slackspin.web import CORS_HEADERS, create_app

from ..conftest import NOW_PLAYING_URL, SLACK_PROFILE_URL, TOKEN_URL, slack_ok, token_response


@pytest.fixture()
def client(context):
    return TestClient(create_app(context))


def _assert_cors(response):
    for header, value in CORS_HEADERS.items():
        assert response.headers[header] == value


def test_options_preflight(client):
    response = client.options("/anything")

    assert response.status_code == 200
    assert response.text == "ok"
    _assert_cors(response)


def test_auth_returns_authorize_url(client, context):
    response = client.get("/auth")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Please visit this URL to authorize the application"
    query = parse_qs(urlparse(payload["authUrl"]).query)
    assert query["code_challenge_method"] == ["S256"]
    assert context.state.tokens.record.pending_verifier is not None
    _assert_cors(response)


def test_callback_flow(client, context, recorder):
    recorder.route("POST", TOKEN_URL, token_response("access", refresh_token="refresh"))
    client.get("/auth")

    response = client.get("/callback", params={"code": "abc"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Authentication successful! You can now close this window.",
    }
    record = context.state.tokens.record
    assert record.refresh_token == "refresh"
    assert record.pending_verifier is None


def test_callback_requires_code(client):
    response = client.get("/callback")

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No authorization code provided"}
    _assert_cors(response)


def test_callback_requires_pending_verifier(client, recorder):
    response = client.get("/callback", params={"code": "abc"})

    assert response.status_code == 400
    assert "restart the authentication flow" in response.json()["error"]
    assert recorder.requests == []


def test_callback_exchange_failure(client, recorder):
    recorder.route("POST", TOKEN_URL, lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    client.get("/auth")

    response = client.get("/callback", params={"code": "abc"})

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_set_token_rejects_invalid_json(client):
    response = client.post(
        "/set-token",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid JSON body"}


def test_set_token_requires_token(client):
    response = client.post("/set-token", json={"somethingElse": 1})

    assert response.status_code == 400
    assert response.json()["error"] == "No refresh token provided"


def test_set_token_validates_by_refreshing(client, context, recorder):
    recorder.route("POST", TOKEN_URL, token_response("validated"))

    response = client.post("/set-token", json={"refreshToken": "manual"})

    assert response.status_code == 200
    assert response.json()["message"] == "Refresh token set and validated successfully"
    assert context.state.tokens.record.access_token == "validated"


def test_set_token_invalid_token(client, recorder):
    recorder.route("POST", TOKEN_URL, lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

    response = client.post("/set-token", json={"refreshToken": "bogus"})

    assert response.status_code == 400
    assert response.json()["error"] == "Refresh token was set but could not be validated"


def test_root_runs_one_cycle(client, context, recorder, clock):
    context.state.tokens.update(access_token="tok", refresh_token="r", expires_at=clock.now + 600)
    recorder.route("GET", NOW_PLAYING_URL, lambda request: httpx.Response(204))
    recorder.route("POST", SLACK_PROFILE_URL, slack_ok)

    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "currentlyPlaying": {"isPlaying": False},
        "slackUpdated": {"status": True, "photo": False},
    }
    _assert_cors(response)


def test_root_unauthenticated_does_not_touch_slack(client, recorder):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["slackUpdated"] == {"status": False, "photo": False}
    assert recorder.requests == []


def test_root_in_rotation_mode_reports_snapshot(make_context, recorder):
    config = GlobalConfig.model_validate(
        {
            "runtime": {"mode": "rotation"},
            "rotation": {
                "updates_per_minute": 10,
                "images": ["https://img.example.com/a.png"],
                "statuses": [{"text": "X", "emoji": ":x:"}],
            },
        }
    )
    client = TestClient(create_app(make_context(config)))

    payload = client.get("/").json()

    assert payload == {
        "success": True,
        "currentImage": None,
        "currentStatus": {"text": "X", "emoji": ":x:"},
        "totalImages": 1,
        "totalStatuses": 1,
        "interval": 6.0,
        "status": "idle",
    }
    assert recorder.requests == []


def test_status_reports_history(client):
    client.get("/")

    payload = client.get("/status").json()

    assert payload["mode"] == "now_playing"
    assert payload["authenticated"] is False
    assert payload["history"][-1]["status"] == "skipped"


def test_lifespan_starts_and_stops_scheduler(context):
    app = create_app(context, start_scheduler=True)
    supervisor = app.state.supervisor

    with TestClient(app) as client:
        assert supervisor.running
        jobs = client.get("/status").json()["jobs"]
        assert len(jobs) == 1

    assert not supervisor.running


def test_unexpected_error_is_json_with_cors(context):
    app = create_app(context)

    @app.get("/explode")
    async def explode():
        raise RuntimeError("boom")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/explode")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "boom"}
    _assert_cors(response)
