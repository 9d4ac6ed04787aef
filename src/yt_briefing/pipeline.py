"""Video intake: subscribe, refresh and direct-URL flows feeding the summarizer.

Entry points validate synchronously, register a background task and hand
the per-video loop to the :class:`~yt_briefing.jobs.JobSupervisor`; they
return a :class:`JobAck` without waiting. Within a job, videos are handled
one at a time. A failure on one video is logged and the loop moves on;
progress advances once per video either way.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from yt_briefing.config import get_app_config
from yt_briefing.jobs import JobSupervisor
from yt_briefing.storage import Storage, SubscriptionRow, SummarySource
from yt_briefing.summarizer import SummaryPair, generate_video_summary
from yt_briefing.tasks import TaskRegistry
from yt_briefing.youtube import YouTubeClient, YouTubeVideo, extract_video_id

log = logging.getLogger("yt_briefing.pipeline")

DIRECT_CHANNEL_ID = "direct"
DIRECT_CHANNEL_NAME = "Direct summary"

MIN_VIDEO_COUNT = 1
MAX_VIDEO_COUNT = 10

# daily scan: how far back and how many per channel
NEW_VIDEO_WINDOW = timedelta(hours=24)
NEW_VIDEO_LIMIT = 10


class AlreadySubscribedError(ValueError):
    pass


class SubscriptionNotFoundError(LookupError):
    pass


class InvalidVideoUrlError(ValueError):
    pass


class VideoUnavailableError(LookupError):
    pass


@dataclass(frozen=True)
class JobAck:
    """Immediate answer to a job-triggering request."""

    message: str
    task_id: Optional[str] = None
    video_id: Optional[str] = None
    already_summarized: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "message": self.message,
            "task_id": self.task_id,
            "video_id": self.video_id,
            "already_summarized": self.already_summarized,
        }


@dataclass
class CheckResult:
    channels: int = 0
    new_videos: int = 0
    summaries: int = 0


SummarizeFn = Callable[..., SummaryPair]


def validate_video_count(video_count: Optional[int]) -> Optional[int]:
    if video_count is None:
        return None
    if not MIN_VIDEO_COUNT <= video_count <= MAX_VIDEO_COUNT:
        raise ValueError(f"video_count must be between {MIN_VIDEO_COUNT} and {MAX_VIDEO_COUNT}")
    return video_count


class IntakePipeline:
    def __init__(
        self,
        storage: Storage,
        youtube: YouTubeClient,
        registry: TaskRegistry,
        supervisor: JobSupervisor,
        *,
        summarize: SummarizeFn = generate_video_summary,
        provider: str = "",
    ) -> None:
        self.storage = storage
        self.youtube = youtube
        self.registry = registry
        self.supervisor = supervisor
        self.summarize = summarize
        self.provider = provider

    # ------ request-side entry points ------

    def subscribe(
        self,
        user_id: str,
        channel_id: str,
        channel_name: str,
        *,
        channel_thumbnail: Optional[str] = None,
        video_count: Optional[int] = None,
    ) -> JobAck:
        """Add a subscription and summarize the channel's latest videos in the background.

        Raises AlreadySubscribedError, before any task exists, when the
        (user, channel) pair is already present.
        """
        validate_video_count(video_count)
        inserted = self.storage.add_subscription(
            user_id=user_id,
            channel_id=channel_id,
            channel_name=channel_name,
            channel_thumbnail=channel_thumbnail,
            video_count=video_count,
        )
        if not inserted:
            raise AlreadySubscribedError("Already subscribed to this channel")

        count = video_count or self.default_video_count(user_id)
        task_id = self.registry.create_task(user_id, channel_id, channel_name, count)
        self.supervisor.submit(
            task_id, self.process_subscription_videos, task_id, user_id, channel_id, channel_name, count
        )
        return JobAck("Channel subscribed! Summaries are being generated.", task_id=task_id)

    def unsubscribe(self, user_id: str, channel_id: str) -> None:
        if not self.storage.remove_subscription(user_id, channel_id):
            raise SubscriptionNotFoundError("Subscription not found")

    def update_video_count(self, user_id: str, channel_id: str, video_count: Optional[int]) -> None:
        validate_video_count(video_count)
        if not self.storage.update_subscription_video_count(user_id, channel_id, video_count):
            raise SubscriptionNotFoundError("Subscription not found")

    def default_video_count(self, user_id: str) -> int:
        """Videos per channel when a subscription has no override: the user's setting, else the app default."""
        return self.storage.get_user_video_count(user_id) or get_app_config().default_video_count

    def set_default_video_count(self, user_id: str, video_count: Optional[int]) -> None:
        validate_video_count(video_count)
        self.storage.set_user_video_count(user_id, video_count)

    def refresh_channel(self, user_id: str, channel_id: str, channel_name: Optional[str] = None) -> JobAck:
        """Re-scan a subscribed channel, skipping videos this user already has summaries for."""
        sub: Optional[SubscriptionRow] = self.storage.get_subscription(user_id, channel_id)
        if sub is None:
            raise SubscriptionNotFoundError("Subscription not found")
        name = channel_name or sub["channel_name"]
        count = sub["video_count"] or self.default_video_count(user_id)
        task_id = self.registry.create_task(user_id, channel_id, name, count)
        self.supervisor.submit(
            task_id,
            self.process_subscription_videos,
            task_id,
            user_id,
            channel_id,
            name,
            count,
            skip_existing=True,
        )
        return JobAck("Refresh started.", task_id=task_id)

    def summarize_url(self, user_id: str, url: str) -> JobAck:
        """Summarize one pasted video URL for the user.

        Returns an already-summarized acknowledgement, with no task, when the
        user has a summary for that video.
        """
        video_id = extract_video_id(url)
        if not video_id:
            raise InvalidVideoUrlError(f"Not a valid YouTube video URL: {url}")

        if self.storage.get_user_summary_for_video(user_id, video_id):
            return JobAck("This video is already summarized.", video_id=video_id, already_summarized=True)

        video = self.youtube.get_video_details(video_id)
        if video is None:
            raise VideoUnavailableError(f"Could not load video details for {video_id}")

        self.storage.save_video(**video.as_row())
        task_id = self.registry.create_task(user_id, DIRECT_CHANNEL_ID, DIRECT_CHANNEL_NAME, 1)
        self.supervisor.submit(task_id, self.process_direct_video, task_id, user_id, video)
        return JobAck("Summary is being generated.", task_id=task_id, video_id=video_id)

    # ------ job bodies (run on the supervisor's workers) ------

    def process_subscription_videos(
        self,
        task_id: str,
        user_id: str,
        channel_id: str,
        channel_name: str,
        target_count: int,
        *,
        skip_existing: bool = False,
    ) -> None:
        """List the channel's recent videos and summarize each for the user.

        A listing failure escapes to the supervisor, which fails the task.
        """
        videos = self.youtube.get_channel_videos(channel_id, target_count)
        self.registry.set_total(task_id, len(videos))
        log.info("Processing %d video(s) from %s for user %s", len(videos), channel_name, user_id)

        for video in videos:
            try:
                self._process_video(user_id, video, SummarySource.SUBSCRIPTION, skip_existing=skip_existing)
            except Exception as exc:  # noqa: BLE001
                log.error("Failed to process video %s: %s", video.video_id, exc)
            finally:
                self.registry.advance(task_id)

    def process_direct_video(self, task_id: str, user_id: str, video: YouTubeVideo) -> None:
        try:
            self._process_video(user_id, video, SummarySource.DIRECT)
        except Exception as exc:  # noqa: BLE001
            log.error("Failed to process video %s: %s", video.video_id, exc)
        finally:
            self.registry.advance(task_id)

    def _process_video(
        self,
        user_id: str,
        video: YouTubeVideo,
        source: SummarySource,
        *,
        skip_existing: bool = False,
    ) -> bool:
        """Persist, summarize and store one video. Returns True if a summary was saved."""
        self.storage.save_video(**video.as_row())
        if skip_existing and self.storage.get_user_summary_for_video(user_id, video.video_id):
            log.debug("User %s already has a summary for %s, skipping", user_id, video.video_id)
            return False

        pair = self.summarize(
            self.storage,
            video.video_id,
            video.title,
            video.description,
            video.duration,
            provider=self.provider,
        )
        saved = self.storage.save_summary(
            user_id=user_id,
            video_id=video.video_id,
            brief=pair.brief,
            detailed=pair.detailed,
            source=source,
        )
        if saved:
            log.info("Summary saved for %s (user %s)", video.video_id, user_id)
        return saved

    # ------ scheduled scan ------

    def check_new_videos(self, now: Optional[datetime] = None) -> CheckResult:
        """Summarize videos published in the last day for every subscriber of their channel.

        Each channel is listed once however many users follow it. Videos
        already stored are skipped. Failures are isolated per channel and
        per subscriber.
        """
        result = CheckResult()
        by_channel: Dict[str, List[SubscriptionRow]] = OrderedDict()
        for sub in self.storage.list_all_subscriptions():
            by_channel.setdefault(sub["channel_id"], []).append(sub)
        if not by_channel:
            log.info("No subscriptions to check")
            return result

        since = (now or datetime.now(timezone.utc)) - NEW_VIDEO_WINDOW
        for channel_id, subs in by_channel.items():
            result.channels += 1
            try:
                self._check_channel(channel_id, subs, since, result)
            except Exception as exc:  # noqa: BLE001
                log.error("Error processing channel %s: %s", channel_id, exc)

        log.info(
            "Video check complete: %d channel(s), %d new video(s), %d summary(ies)",
            result.channels,
            result.new_videos,
            result.summaries,
        )
        return result

    def _check_channel(
        self, channel_id: str, subs: List[SubscriptionRow], since: datetime, result: CheckResult
    ) -> None:
        videos = self.youtube.get_channel_videos(channel_id, NEW_VIDEO_LIMIT, published_after=since)
        for video in videos:
            if self.storage.video_exists(video.video_id):
                continue
            self.storage.save_video(**video.as_row())
            result.new_videos += 1
            for sub in subs:
                try:
                    if self._process_video(sub["user_id"], video, SummarySource.SUBSCRIPTION):
                        result.summaries += 1
                except Exception as exc:  # noqa: BLE001
                    log.error("Error summarizing %s for user %s: %s", video.video_id, sub["user_id"], exc)
