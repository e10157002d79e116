"""Shared application context for the CLI, web API and scheduler."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx
import structlog

from .auth import SpotifyAuthorizer
from .config import ConfigPaths, GlobalConfig, load_global_config
from .services import SlackService, SpotifyService
from .state import AppState


@dataclass
class AppContext:
    """Resolved configuration plus the live clients and state built from it."""

    paths: ConfigPaths
    global_config: GlobalConfig
    state: AppState
    http: httpx.AsyncClient
    authorizer: SpotifyAuthorizer
    spotify: SpotifyService
    slack: SlackService

    async def aclose(self) -> None:
        await self.http.aclose()


def determine_paths(config_dir: Optional[Path]) -> ConfigPaths:
    """Resolve configuration paths based on optional CLI override."""

    return ConfigPaths.from_base_dir(config_dir) if config_dir else ConfigPaths.default()


def build_context(
    paths: ConfigPaths,
    global_config: GlobalConfig,
    *,
    http: Optional[httpx.AsyncClient] = None,
    state: Optional[AppState] = None,
    clock: Callable[[], float] = time.time,
) -> AppContext:
    """Wire services around one shared HTTP client with a bounded timeout."""

    http = http or httpx.AsyncClient(timeout=global_config.runtime.request_timeout)
    state = state or AppState()
    state.rotation.replace_items(global_config.rotation.images, global_config.rotation.statuses)

    authorizer = SpotifyAuthorizer(
        global_config.spotify,
        state.tokens,
        http,
        logger=structlog.get_logger("slackspin.auth"),
        clock=clock,
    )
    return AppContext(
        paths=paths,
        global_config=global_config,
        state=state,
        http=http,
        authorizer=authorizer,
        spotify=SpotifyService(authorizer, http, logger=structlog.get_logger("slackspin.spotify")),
        slack=SlackService(global_config.slack, http, logger=structlog.get_logger("slackspin.slack")),
    )


def load_context(paths: ConfigPaths) -> AppContext:
    """Load configuration from disk and the environment, then build the context."""

    return build_context(paths, load_global_config(paths.global_config))
