"""FastAPI interface for authorizing Spotify and triggering profile updates."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ..app_context import AppContext
from ..errors import AuthErrorKind
from ..supervisor import Supervisor

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def _json(payload: Dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers=CORS_HEADERS)


def _error(message: str, status_code: int) -> JSONResponse:
    return _json({"success": False, "error": message}, status_code=status_code)


def create_app(
    context: AppContext,
    *,
    supervisor: Optional[Supervisor] = None,
    start_scheduler: bool = False,
    hot_reload: bool = False,
) -> FastAPI:
    """Build the API around ``context``.

    When ``start_scheduler`` is set the supervisor starts with the app and is
    shut down, together with the shared HTTP client, when the app stops.
    """

    logger = structlog.get_logger("slackspin.web")
    supervisor = supervisor or Supervisor(
        context=context,
        logger=structlog.get_logger("slackspin.supervisor"),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if start_scheduler:
            supervisor.start(hot_reload=hot_reload)
        try:
            yield
        finally:
            if supervisor.running:
                await supervisor.shutdown()
            await context.aclose()

    app = FastAPI(title="Slackspin API", version="0.1.0", lifespan=lifespan)
    app.state.context = context
    app.state.supervisor = supervisor

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error("web.unhandled_error", path=request.url.path, exc_info=exc)
        return _error(str(exc) or exc.__class__.__name__, 500)

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return PlainTextResponse("ok", headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.get("/auth")
    async def auth():
        auth_url, _ = context.authorizer.begin_authorization()
        return _json(
            {
                "success": True,
                "authUrl": auth_url,
                "message": "Please visit this URL to authorize the application",
            }
        )

    @app.get("/callback")
    async def callback(code: Optional[str] = Query(default=None)):
        if not code:
            return _error("No authorization code provided", 400)

        result = await context.authorizer.complete_authorization(code)
        if result.error is AuthErrorKind.MISSING_VERIFIER:
            return _error(result.message or "No code verifier found.", 400)
        if not result.ok:
            return _error(result.message or "Failed to exchange authorization code for tokens", 500)

        return _json(
            {
                "success": True,
                "message": "Authentication successful! You can now close this window.",
            }
        )

    @app.post("/set-token")
    async def set_token(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return _error("Invalid JSON body", 400)

        refresh_token = body.get("refreshToken") if isinstance(body, dict) else None
        if not refresh_token or not isinstance(refresh_token, str):
            return _error("No refresh token provided", 400)

        context.authorizer.set_refresh_token(refresh_token)
        result = await context.authorizer.get_valid_access_token()
        if not result.ok:
            return _error("Refresh token was set but could not be validated", 400)

        return _json({"success": True, "message": "Refresh token set and validated successfully"})

    @app.get("/status")
    async def status(tail: int = Query(default=10, ge=1)):
        state = context.state
        return _json(
            {
                "success": True,
                "mode": supervisor.mode,
                "running": supervisor.running,
                "authenticated": state.tokens.record.authenticated,
                "lastPlayed": state.last_played.to_dict() if state.last_played else None,
                "jobs": supervisor.job_snapshot(),
                "history": state.history.tail(tail),
            }
        )

    @app.get("/")
    async def root():
        if supervisor.mode == "rotation":
            rotation = context.state.rotation
            current_status = rotation.current_status
            return _json(
                {
                    "success": True,
                    "currentImage": rotation.current_image,
                    "currentStatus": current_status.model_dump() if current_status else None,
                    "totalImages": len(rotation.images),
                    "totalStatuses": len(rotation.statuses),
                    "interval": supervisor.interval_seconds,
                    "status": "running" if supervisor.running else "idle",
                }
            )

        summary = await supervisor.run_tick()
        if "error" in summary:
            logger.error("web.tick_failed", error=summary["error"])
            return _error(str(summary["error"]), 500)

        return _json(
            {
                "success": True,
                "currentlyPlaying": summary.get("currently_playing", {"isPlaying": False}),
                "slackUpdated": summary.get("slack_updated", {"status": False, "photo": False}),
            }
        )

    return app
