"""In-memory registry of background jobs, polled by clients for progress.

Tasks live only for the life of the process. A sweep thread drops finished
tasks once they are older than the retention window. Every mutation takes
the registry lock, so updates from job threads and reads from request
handlers never see a half-applied change.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from yt_briefing.config import get_task_config

log = logging.getLogger("yt_briefing.tasks")


class TaskStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BackgroundTask:
    id: str
    user_id: str
    channel_id: str
    channel_name: str
    status: TaskStatus
    total_videos: int
    processed_videos: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not TaskStatus.PROCESSING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "status": self.status.value,
            "total_videos": self.total_videos,
            "processed_videos": self.processed_videos,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskRegistry:
    def __init__(
        self,
        *,
        retention_seconds: Optional[float] = None,
        sweep_interval: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        cfg = get_task_config()
        self.retention = timedelta(seconds=cfg.retention_seconds if retention_seconds is None else retention_seconds)
        self.sweep_interval = cfg.sweep_interval if sweep_interval is None else sweep_interval
        self._clock = clock
        self._tasks: Dict[str, BackgroundTask] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------ mutations ------

    def create_task(self, user_id: str, channel_id: str, channel_name: str, total_videos: int) -> str:
        task_id = uuid.uuid4().hex
        task = BackgroundTask(
            id=task_id,
            user_id=user_id,
            channel_id=channel_id,
            channel_name=channel_name,
            status=TaskStatus.PROCESSING,
            total_videos=max(0, total_videos),
            processed_videos=0,
            started_at=self._clock(),
        )
        with self._lock:
            self._tasks[task_id] = task
        log.info("Task %s started: %s (%d video(s)) for user %s", task_id[:8], channel_name, total_videos, user_id)
        return task_id

    def set_total(self, task_id: str, total_videos: int) -> None:
        """Narrow or widen the expected item count once it is known."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.is_terminal:
                return
            task.total_videos = max(0, total_videos)
            task.processed_videos = min(task.processed_videos, task.total_videos)

    def update_progress(self, task_id: str, processed: int) -> None:
        """Record progress. Never moves backwards, never exceeds the total, ignored once terminal."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.is_terminal:
                return
            task.processed_videos = max(task.processed_videos, min(processed, task.total_videos))

    def advance(self, task_id: str, step: int = 1) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.is_terminal:
                return
            task.processed_videos = min(task.processed_videos + step, task.total_videos)

    def complete_task(self, task_id: str) -> None:
        self._finish(task_id, TaskStatus.COMPLETED, None)

    def fail_task(self, task_id: str, error: str) -> None:
        self._finish(task_id, TaskStatus.FAILED, error)

    def _finish(self, task_id: str, status: TaskStatus, error: Optional[str]) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.is_terminal:
                return
            task.status = status
            task.error = error
            task.completed_at = self._clock()
        if status is TaskStatus.FAILED:
            log.warning("Task %s failed: %s", task_id[:8], error)
        else:
            log.info("Task %s completed", task_id[:8])

    # ------ reads (snapshots) ------

    def get_task(self, task_id: str) -> Optional[BackgroundTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            return dataclasses.replace(task) if task else None

    def get_recent_tasks(self, user_id: str, limit: int = 10) -> List[BackgroundTask]:
        """The user's tasks, newest first by start time."""
        with self._lock:
            tasks = [dataclasses.replace(t) for t in self._tasks.values() if t.user_id == user_id]
        tasks.sort(key=lambda t: t.started_at, reverse=True)
        return tasks[:limit]

    def get_active_tasks(self, user_id: str) -> List[BackgroundTask]:
        with self._lock:
            tasks = [dataclasses.replace(t) for t in self._tasks.values() if t.user_id == user_id and not t.is_terminal]
        tasks.sort(key=lambda t: t.started_at, reverse=True)
        return tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    # ------ retention ------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop finished tasks whose completion is older than the retention window."""
        cutoff = (now or self._clock()) - self.retention
        with self._lock:
            expired = [
                tid for tid, t in self._tasks.items() if t.completed_at is not None and t.completed_at < cutoff
            ]
            for tid in expired:
                del self._tasks[tid]
        if expired:
            log.debug("Swept %d expired task(s)", len(expired))
        return len(expired)

    def start(self) -> None:
        """Start the periodic sweep thread (idempotent)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._sweep_loop, name="task-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                log.exception("Task sweep failed")
