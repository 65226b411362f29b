from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
from uuid import uuid4

from src.hive_alerts.errors import PartialSweepFailure
from src.hive_alerts.schemas.checks import (
    CheckTask,
    CheckTaskStatus,
    EvaluationResult,
    HiveFailure,
    SensorSample,
)
from src.hive_alerts.schemas.common import utc_now
from src.hive_alerts.services.alert_lifecycle import AlertLifecycleManager
from src.hive_alerts.services.sources import HiveDirectory, SensorSource

if TYPE_CHECKING:
    from src.hive_alerts.state import AppState

logger = logging.getLogger(__name__)

DEFAULT_MAX_TASKS = 500


class CheckScheduler:
    """
    Trigger surface for sweeps: run one now, or hand one to the event loop and return a handle.

    Task records are kept in process; finished ones beyond `max_tasks` are dropped oldest first.
    A running sweep is never cancelled by the scheduler.
    """

    def __init__(
        self,
        manager: AlertLifecycleManager,
        directory: HiveDirectory,
        source: SensorSource,
        max_tasks: int = DEFAULT_MAX_TASKS,
    ):
        self.manager = manager
        self.directory = directory
        self.source = source
        self.max_tasks = max(1, int(max_tasks))
        self._tasks: Dict[str, CheckTask] = {}
        self._runners: Dict[str, asyncio.Task] = {}
        self._lock = Lock()

    def _collect_samples(
        self, hive_id: Optional[str]
    ) -> Tuple[Dict[str, Optional[SensorSample]], List[HiveFailure]]:
        # A directory error means the hive list is unreachable: the whole check fails.
        hive_ids = [hive_id] if hive_id else self.directory.list_hive_ids()
        samples: Dict[str, Optional[SensorSample]] = {}
        failures: List[HiveFailure] = []
        for h in hive_ids:
            try:
                samples[h] = self.source.latest_sample(h)
            except Exception as exc:
                logger.exception("Loading latest sample failed for hiveId=%s", h)
                failures.append(HiveFailure(hive_id=h, error=str(exc), error_type=type(exc).__name__))
        return samples, failures

    # PUBLIC_INTERFACE
    def check_now(self, hive_id: Optional[str] = None) -> EvaluationResult:
        """Synchronous sweep over one hive, or every hive in the directory when hive_id is None."""
        samples, failures = self._collect_samples(hive_id)
        return self.manager.evaluate_all(samples, failures)

    # PUBLIC_INTERFACE
    async def schedule_check(self, hive_id: Optional[str] = None) -> str:
        """Queue a sweep on the running event loop and return its task id without waiting."""
        task = CheckTask(id=uuid4().hex, hive_id=hive_id)
        with self._lock:
            self._tasks[task.id] = task
            self._prune_locked()
        runner = asyncio.create_task(self._run(task.id, hive_id))
        self._runners[task.id] = runner
        runner.add_done_callback(lambda _t, task_id=task.id: self._runners.pop(task_id, None))
        logger.info("Scheduled alert check taskId=%s hiveId=%s", task.id, hive_id)
        return task.id

    # PUBLIC_INTERFACE
    def get_task(self, task_id: str) -> Optional[CheckTask]:
        """Snapshot of a task record, or None if unknown (or already pruned)."""
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    async def wait(self, task_id: str) -> Optional[CheckTask]:
        """Wait for a scheduled task to finish and return its final record."""
        runner = self._runners.get(task_id)
        if runner is not None:
            await runner
        return self.get_task(task_id)

    def _update(self, task_id: str, **fields) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is not None:
                self._tasks[task_id] = task.model_copy(update=fields)

    def _prune_locked(self) -> None:
        overflow = len(self._tasks) - self.max_tasks
        if overflow <= 0:
            return
        finished = [
            t for t in self._tasks.values() if t.status in (CheckTaskStatus.completed, CheckTaskStatus.failed)
        ]
        finished.sort(key=lambda t: t.created_at)
        for t in finished[:overflow]:
            del self._tasks[t.id]

    async def _run(self, task_id: str, hive_id: Optional[str]) -> None:
        self._update(task_id, status=CheckTaskStatus.running, started_at=utc_now())
        try:
            result = await asyncio.to_thread(self.check_now, hive_id)
        except PartialSweepFailure as exc:
            logger.error("Alert check taskId=%s failed for every hive", task_id)
            self._update(
                task_id, status=CheckTaskStatus.failed, result=exc.result, error=str(exc), finished_at=utc_now()
            )
            return
        except Exception as exc:
            logger.exception("Alert check taskId=%s failed", task_id)
            self._update(task_id, status=CheckTaskStatus.failed, error=str(exc), finished_at=utc_now())
            return
        self._update(task_id, status=CheckTaskStatus.completed, result=result, finished_at=utc_now())


# PUBLIC_INTERFACE
async def alert_check_loop(state: "AppState", shutdown_event: asyncio.Event) -> None:
    """
    Background loop that sweeps every hive on a fixed cadence.

    Each tick schedules a check through the same scheduler the API uses and waits for it,
    so ticks never overlap. Failures are recorded on the task and logged; the loop keeps going.
    """
    interval = max(1, int(state.config.alert_check_interval_sec))
    logger.info("Alert check loop started (interval=%ss)", interval)

    while not shutdown_event.is_set():
        tick_started = datetime.now(timezone.utc)
        try:
            task_id = await state.scheduler.schedule_check()
            await state.scheduler.wait(task_id)
        except Exception:
            logger.exception("Alert check tick failed")

        elapsed = (datetime.now(timezone.utc) - tick_started).total_seconds()
        sleep_for = max(0.1, interval - elapsed)
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=sleep_for)
        except asyncio.TimeoutError:
            pass

    logger.info("Alert check loop stopped")
