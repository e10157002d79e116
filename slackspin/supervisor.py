"""Periodic scheduler that drives the configured tick module."""

from __future__ import annotations

import asyncio
import random
import signal
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from watchfiles import awatch

from .app_context import AppContext
from .config import ConfigError, load_global_config
from .modules import ModuleRegistry, TickContext, TickModule, default_registry

TICK_JOB_ID = "slackspin-tick"


@dataclass
class Supervisor:
    """Run one tick module on a fixed interval, isolating each tick's failures."""

    context: AppContext
    logger: structlog.stdlib.BoundLogger
    registry: ModuleRegistry = default_registry
    rng: Optional[random.Random] = None
    _module: TickModule = field(init=False, repr=False)
    _scheduler: Optional[AsyncIOScheduler] = field(default=None, init=False, repr=False)
    _stop_event: Optional[asyncio.Event] = field(default=None, init=False, repr=False)
    _hot_reload_task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)
    _tick_in_flight: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._module = self.registry.get(self.mode)(self.context.global_config)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def mode(self) -> str:
        return self.context.global_config.runtime.mode

    @property
    def module(self) -> TickModule:
        return self._module

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def interval_seconds(self) -> float:
        config = self.context.global_config
        if self.mode == "rotation":
            return config.rotation.interval_seconds
        return float(config.now_playing.interval_seconds)

    def start(self, *, hot_reload: bool = False) -> None:
        """Register the tick job and start the scheduler on the running event loop.

        Rotation mode fires once immediately; polling mode waits one interval.
        """

        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        # Bound here: the app object is built before the server loop exists.
        self._scheduler = AsyncIOScheduler(event_loop=loop, timezone=timezone.utc)
        self._scheduler.add_listener(self._on_tick_skipped, EVENT_JOB_MAX_INSTANCES)
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)
        job_options: Dict[str, Any] = {}
        if self.mode == "rotation":
            job_options["next_run_time"] = datetime.now(timezone.utc)

        # max_instances=1 drops a firing while the previous tick is still in flight.
        self._scheduler.add_job(
            self.run_tick,
            trigger=trigger,
            id=TICK_JOB_ID,
            name=f"{self.mode}:tick",
            coalesce=True,
            max_instances=1,
            replace_existing=True,
            **job_options,
        )
        self._scheduler.start()
        self.logger.info(
            "supervisor.start",
            mode=self.mode,
            interval_seconds=self.interval_seconds,
            hot_reload=hot_reload,
        )

        if hot_reload:
            self._hot_reload_task = loop.create_task(self._watch_config())

    async def run_forever(self, *, hot_reload: bool = False) -> None:
        """Start the scheduler and block until SIGINT/SIGTERM."""

        self.start(hot_reload=hot_reload)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):  # pragma: no cover - platform specific
                loop.add_signal_handler(sig, self._stop_event.set)
        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    async def run_tick(self) -> Dict[str, object]:
        """Execute the tick module once; exceptions are logged and recorded, never raised.

        Manual ticks (the API root, the CLI) share this guard with the scheduled
        job, so a tick requested while another is in flight is dropped.
        """

        if self._tick_in_flight:
            self.logger.warning("supervisor.tick_skipped", reason="tick_in_progress", mode=self.mode)
            return {"status": "skipped", "reason": "tick_in_progress"}

        self._tick_in_flight = True
        try:
            return await self._run_tick()
        finally:
            self._tick_in_flight = False

    async def _run_tick(self) -> Dict[str, object]:
        history = self.context.state.history
        run_id = datetime.now(timezone.utc).isoformat()
        history.begin_run(run_id, started_at=run_id)
        tick_logger = self.logger.bind(mode=self.mode, run_id=run_id)

        tick_context = TickContext(
            logger=tick_logger,
            config=self.context.global_config,
            state=self.context.state,
            spotify=self.context.spotify,
            slack=self.context.slack,
            rng=self.rng,
        )

        try:
            summary = await self._module.run(tick_context)
        except Exception as exc:
            error_message = str(exc) or exc.__class__.__name__
            tick_logger.exception("supervisor.tick_failed", error=error_message)
            history.complete_run(
                run_id,
                status="failed",
                error=error_message,
                details={"stage": "module_execution"},
            )
            return {"status": "failed", "error": error_message}

        history.complete_run(run_id, status=str(summary.get("status", "success")), details=summary)
        return summary

    async def shutdown(self) -> None:
        if self._stop_event is not None and not self._stop_event.is_set():
            self._stop_event.set()

        if self.running:
            self._scheduler.shutdown(wait=False)

        if self._hot_reload_task is not None:
            self._hot_reload_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._hot_reload_task
            self._hot_reload_task = None

        self.logger.info("supervisor.shutdown")

    def job_snapshot(self) -> List[Dict[str, object]]:
        jobs = []
        now = datetime.now(timezone.utc)
        for job in self._scheduler.get_jobs() if self._scheduler is not None else []:
            next_run = job.next_run_time
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": next_run.isoformat() if next_run else None,
                    "missed": next_run < now if next_run else False,
                    "paused": next_run is None,
                }
            )
        return jobs

    # ------------------------------------------------------------------
    # Hot reload
    # ------------------------------------------------------------------
    def reload_rotation(self) -> bool:
        """Swap in rotation images/statuses from the config file on disk."""

        path = self.context.paths.global_config
        try:
            new_config = load_global_config(path, required=True)
        except ConfigError as exc:
            self.logger.error("supervisor.reload_failed", error=str(exc))
            return False

        rotation = self.context.state.rotation
        rotation.replace_items(new_config.rotation.images, new_config.rotation.statuses)
        self.logger.info(
            "supervisor.rotation_reloaded",
            images=len(rotation.images),
            statuses=len(rotation.statuses),
        )
        return True

    async def _watch_config(self) -> None:
        path = self.context.paths.global_config
        if not path.exists():
            self.logger.warning("supervisor.hot_reload_unavailable", path=str(path))
            return

        self.logger.info("supervisor.hot_reload_enabled", watched=str(path))
        async for changes in awatch(path, stop_event=self._stop_event):
            self.logger.info(
                "supervisor.config_change_detected",
                changes=[f"{change.name}:{changed_path}" for change, changed_path in changes],
            )
            self.reload_rotation()

    def _on_tick_skipped(self, event: JobSubmissionEvent) -> None:
        self.logger.warning(
            "supervisor.tick_skipped",
            reason="previous_tick_running",
            job_id=event.job_id,
        )
