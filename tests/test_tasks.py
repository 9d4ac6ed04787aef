"""Tests for tasks: progress rules, terminal states, snapshots, retention sweep."""

import threading
from datetime import datetime, timedelta, timezone

from yt_briefing.tasks import TaskRegistry, TaskStatus


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += timedelta(seconds=seconds)


def _registry(clock=None, retention=3600):
    return TaskRegistry(retention_seconds=retention, sweep_interval=60, clock=clock or FakeClock())


class TestProgress:
    def test_create(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 3)
        task = reg.get_task(tid)
        assert task.status is TaskStatus.PROCESSING
        assert (task.processed_videos, task.total_videos) == (0, 3)
        assert task.completed_at is None

    def test_progress_is_monotonic_and_capped(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 3)
        reg.update_progress(tid, 2)
        reg.update_progress(tid, 1)
        assert reg.get_task(tid).processed_videos == 2
        reg.update_progress(tid, 9)
        assert reg.get_task(tid).processed_videos == 3

    def test_advance(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 2)
        reg.advance(tid)
        reg.advance(tid)
        reg.advance(tid)
        assert reg.get_task(tid).processed_videos == 2

    def test_set_total_narrows(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 5)
        reg.update_progress(tid, 3)
        reg.set_total(tid, 2)
        task = reg.get_task(tid)
        assert (task.processed_videos, task.total_videos) == (2, 2)

    def test_unknown_task_ignored(self):
        reg = _registry()
        reg.advance("nope")
        reg.complete_task("nope")
        assert reg.get_task("nope") is None


class TestTerminalStates:
    def test_complete(self):
        clock = FakeClock()
        reg = _registry(clock)
        tid = reg.create_task("u1", "UC1", "Chan", 1)
        clock.tick(5)
        reg.complete_task(tid)
        task = reg.get_task(tid)
        assert task.status is TaskStatus.COMPLETED
        assert task.completed_at == clock.now
        assert task.is_terminal

    def test_fail_records_error(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 1)
        reg.fail_task(tid, "quota exceeded")
        task = reg.get_task(tid)
        assert task.status is TaskStatus.FAILED
        assert task.error == "quota exceeded"

    def test_terminal_is_final(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 3)
        reg.complete_task(tid)
        reg.fail_task(tid, "late error")
        reg.advance(tid)
        reg.set_total(tid, 10)
        task = reg.get_task(tid)
        assert task.status is TaskStatus.COMPLETED
        assert task.error is None
        assert (task.processed_videos, task.total_videos) == (0, 3)


class TestReads:
    def test_snapshot_is_detached(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 3)
        snap = reg.get_task(tid)
        snap.processed_videos = 99
        assert reg.get_task(tid).processed_videos == 0

    def test_recent_newest_first_and_scoped(self):
        clock = FakeClock()
        reg = _registry(clock)
        first = reg.create_task("u1", "UC1", "One", 1)
        clock.tick(1)
        second = reg.create_task("u1", "UC2", "Two", 1)
        clock.tick(1)
        reg.create_task("u2", "UC3", "Other", 1)
        assert [t.id for t in reg.get_recent_tasks("u1")] == [second, first]
        assert [t.id for t in reg.get_recent_tasks("u1", limit=1)] == [second]

    def test_active_excludes_finished(self):
        reg = _registry()
        done = reg.create_task("u1", "UC1", "One", 1)
        running = reg.create_task("u1", "UC2", "Two", 1)
        reg.complete_task(done)
        assert [t.id for t in reg.get_active_tasks("u1")] == [running]

    def test_to_dict(self):
        reg = _registry()
        tid = reg.create_task("u1", "UC1", "Chan", 2)
        data = reg.get_task(tid).to_dict()
        assert data["status"] == "processing"
        assert data["completed_at"] is None
        assert data["started_at"].startswith("2024-05-01T12:00:00")


class TestSweep:
    def test_only_old_finished_tasks_removed(self):
        clock = FakeClock()
        reg = _registry(clock, retention=3600)
        old = reg.create_task("u1", "UC1", "Old", 1)
        reg.complete_task(old)
        running = reg.create_task("u1", "UC2", "Running", 1)
        clock.tick(1800)
        recent = reg.create_task("u1", "UC3", "Recent", 1)
        reg.fail_task(recent, "x")
        clock.tick(1801)
        assert reg.sweep() == 1
        assert reg.get_task(old) is None
        assert reg.get_task(running) is not None
        assert reg.get_task(recent) is not None
        assert len(reg) == 2

    def test_start_stop(self):
        reg = TaskRegistry(retention_seconds=0, sweep_interval=0.01)
        tid = reg.create_task("u1", "UC1", "Chan", 1)
        reg.complete_task(tid)
        swept = threading.Event()
        original = reg.sweep

        def _sweep(now=None):
            count = original(now)
            swept.set()
            return count

        reg.sweep = _sweep
        reg.start()
        reg.start()
        try:
            assert swept.wait(2)
        finally:
            reg.stop()
        assert reg.get_task(tid) is None


class TestConcurrentWriters:
    def test_parallel_advances_land_exactly(self):
        reg = _registry()
        per_task, steps = 4, 100
        tid = reg.create_task("u1", "UC1", "Chan", per_task * steps)
        other = reg.create_task("u2", "UC2", "Other", per_task * steps)
        seen = []

        def work(task_id):
            start.wait()
            for _ in range(steps):
                reg.advance(task_id)

        def watch():
            start.wait()
            for _ in range(200):
                seen.append(reg.get_task(tid).processed_videos)

        threads = [threading.Thread(target=work, args=(t,)) for t in [tid, other] * per_task]
        threads.append(threading.Thread(target=watch))
        start = threading.Barrier(len(threads))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert reg.get_task(tid).processed_videos == per_task * steps
        assert reg.get_task(other).processed_videos == per_task * steps
        assert seen == sorted(seen)
