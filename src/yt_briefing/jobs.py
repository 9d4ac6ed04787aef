"""Detached job execution: run work on a thread pool and report through the task registry."""
from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from yt_briefing.config import get_task_config
from yt_briefing.tasks import BackgroundTask, TaskRegistry

log = logging.getLogger("yt_briefing.jobs")


class JobSupervisor:
    """Owns the worker pool for fire-and-forget jobs.

    Each job body runs against an existing task id. A normal return marks the
    task completed; an escaping exception is logged and marks it failed with
    the exception's message. Nothing propagates to the caller that submitted.
    """

    def __init__(self, registry: TaskRegistry, max_workers: Optional[int] = None) -> None:
        self.registry = registry
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers or get_task_config().max_workers,
            thread_name_prefix="yt-briefing-job",
        )

    def submit(self, task_id: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        def _run() -> None:
            try:
                fn(*args, **kwargs)
            except Exception as exc:  # noqa: BLE001
                log.error("Job %s failed: %s", task_id[:8], exc)
                log.debug("Traceback:", exc_info=True)
                self.registry.fail_task(task_id, str(exc) or exc.__class__.__name__)
            else:
                self.registry.complete_task(task_id)

        return self._pool.submit(_run)

    def wait_for(self, task_id: str, timeout: Optional[float] = None, poll_interval: float = 0.5) -> Optional[BackgroundTask]:
        """Poll the registry until the task is terminal (or *timeout* elapses)."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            task = self.registry.get_task(task_id)
            if task is None or task.is_terminal:
                return task
            if deadline is not None and time.monotonic() >= deadline:
                return task
            time.sleep(poll_interval)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
