"""In-memory runtime state shared by the scheduler and the web API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .auth import TokenStore
from .config import StatusEntry
from .services import TrackState

RUN_HISTORY_LIMIT = 20
NO_PREVIOUS_INDEX = -1


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RotationSet:
    """Images and statuses cycled in rotation mode.

    ``status_cursor`` walks the statuses in order; ``last_image_index`` only
    exists so the next image pick can avoid repeating the current one.
    """

    images: List[str] = field(default_factory=list)
    statuses: List[StatusEntry] = field(default_factory=list)
    status_cursor: int = 0
    last_image_index: int = NO_PREVIOUS_INDEX

    @property
    def empty(self) -> bool:
        return not self.images or not self.statuses

    @property
    def current_status(self) -> Optional[StatusEntry]:
        if not self.statuses:
            return None
        return self.statuses[self.status_cursor % len(self.statuses)]

    @property
    def current_image(self) -> Optional[str]:
        if 0 <= self.last_image_index < len(self.images):
            return self.images[self.last_image_index]
        return None

    def advance(self, image_index: int) -> None:
        """Record the image just published and step the status cursor."""

        self.last_image_index = image_index
        self.status_cursor = (self.status_cursor + 1) % len(self.statuses)

    def replace_items(self, images: Sequence[str], statuses: Sequence[StatusEntry]) -> None:
        self.images = list(images)
        self.statuses = list(statuses)
        self.status_cursor = self.status_cursor % len(self.statuses) if self.statuses else 0
        if self.last_image_index >= len(self.images):
            self.last_image_index = NO_PREVIOUS_INDEX


@dataclass
class TickHistory:
    """Bounded record of recent scheduler ticks."""

    runs: List[Dict[str, Any]] = field(default_factory=list)
    limit: int = RUN_HISTORY_LIMIT

    def _trim(self) -> None:
        if len(self.runs) > self.limit:
            del self.runs[: -self.limit]

    def begin_run(self, run_id: str, started_at: Optional[str] = None) -> None:
        self.runs.append(
            {
                "id": run_id,
                "status": "running",
                "started_at": started_at or _utcnow_iso(),
            }
        )
        self._trim()

    def complete_run(
        self,
        run_id: str,
        status: str,
        completed_at: Optional[str] = None,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        record = None
        for candidate in reversed(self.runs):
            if candidate.get("id") == run_id:
                record = candidate
                break

        if record is None:
            record = {
                "id": run_id,
                "started_at": completed_at or _utcnow_iso(),
            }
            self.runs.append(record)

        record["status"] = status
        record["completed_at"] = completed_at or _utcnow_iso()

        if error is not None:
            record["error"] = error
        else:
            record.pop("error", None)

        if details is not None:
            record["details"] = details
        else:
            record.pop("details", None)

        self._trim()

    def tail(self, count: int = 10) -> List[Dict[str, Any]]:
        return [dict(record) for record in self.runs[-count:]]

    @property
    def last(self) -> Optional[Dict[str, Any]]:
        return dict(self.runs[-1]) if self.runs else None


@dataclass
class AppState:
    """Everything the process keeps between ticks. Nothing here is persisted."""

    tokens: TokenStore = field(default_factory=TokenStore)
    rotation: RotationSet = field(default_factory=RotationSet)
    history: TickHistory = field(default_factory=TickHistory)
    last_played: Optional[TrackState] = None
