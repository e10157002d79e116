"""Base interfaces for Slackspin tick modules."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, TYPE_CHECKING

from structlog.stdlib import BoundLogger

from ..config import GlobalConfig

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..services import SlackService, SpotifyService
    from ..state import AppState


@dataclass
class TickContext:
    """Runtime context shared with modules when they execute."""

    logger: BoundLogger
    config: GlobalConfig
    state: "AppState"
    spotify: Optional["SpotifyService"] = None
    slack: Optional["SlackService"] = None
    rng: Optional[random.Random] = None


class TickModule(Protocol):
    """Protocol defining the required behaviour for tick modules."""

    name: str
    last_run_summary: Dict[str, object]

    async def run(self, context: TickContext) -> Dict[str, object]:
        """Execute one tick and return a summary."""


class TickModuleFactory(Protocol):
    """Factories create module instances from configuration."""

    def __call__(self, config: GlobalConfig) -> TickModule:
        ...
