"""Process-wide service wiring shared by the HTTP API, the CLI and the MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from yt_briefing.chat import ChatService
from yt_briefing.jobs import JobSupervisor
from yt_briefing.paths import resolve_db_path
from yt_briefing.pipeline import IntakePipeline
from yt_briefing.storage import Storage
from yt_briefing.tasks import TaskRegistry
from yt_briefing.youtube import YouTubeClient

log = logging.getLogger("yt_briefing.services")


@dataclass
class Services:
    storage: Storage
    youtube: YouTubeClient
    registry: TaskRegistry
    supervisor: JobSupervisor
    pipeline: IntakePipeline
    chat: ChatService

    def close(self, wait: bool = True) -> None:
        """Stop the sweep thread and the job workers."""
        self.registry.stop()
        self.supervisor.shutdown(wait=wait)


def build_services(
    db_path: Optional[Union[str, Path]] = None,
    *,
    storage: Optional[Storage] = None,
    youtube: Optional[YouTubeClient] = None,
    provider: str = "",
    start_sweeper: bool = True,
) -> Services:
    """Construct every long-lived component once, in dependency order."""
    if storage is None:
        storage = Storage(resolve_db_path(override=db_path))
        storage.ensure_schema()
    youtube = youtube or YouTubeClient()
    registry = TaskRegistry()
    if start_sweeper:
        registry.start()
    supervisor = JobSupervisor(registry)
    pipeline = IntakePipeline(storage, youtube, registry, supervisor, provider=provider)
    chat = ChatService(storage, provider=provider)
    log.debug("Services ready (db=%s, provider=%s)", storage.db_path, provider or "default")
    return Services(
        storage=storage,
        youtube=youtube,
        registry=registry,
        supervisor=supervisor,
        pipeline=pipeline,
        chat=chat,
    )
