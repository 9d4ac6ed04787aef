"""YouTube Data API v3 client: channel search, channel listings, video details."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import requests

from yt_briefing.config import get_youtube_config

log = logging.getLogger("yt_briefing.youtube")

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"

_VIDEO_ID_RE = re.compile(r"^[\w-]{11}$")
_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)

_YT_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtube-nocookie.com",
    "www.youtube-nocookie.com",
}
_SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
_PATH_PREFIXES = ("shorts", "embed", "v", "live")


class YouTubeAPIError(RuntimeError):
    """The Data API call failed or returned an unusable response."""


@dataclass(frozen=True)
class YouTubeChannel:
    id: str
    title: str
    description: str
    thumbnail: str
    subscriber_count: Optional[str] = None


@dataclass(frozen=True)
class YouTubeVideo:
    video_id: str
    channel_id: str
    title: str
    description: str
    published_at: str
    thumbnail_url: str
    duration: str

    def as_row(self) -> Dict[str, Any]:
        """Keyword arguments for :meth:`Storage.save_video`."""
        return asdict(self)


def parse_duration(duration: Optional[str]) -> int:
    """Convert an ISO-8601 duration (``PT1H2M10S``) to seconds; 0 when unparseable."""
    if not duration:
        return 0
    m = _DURATION_RE.match(duration.strip())
    if not m:
        return 0
    parts = {k: int(v) if v else 0 for k, v in m.groupdict().items()}
    return parts["days"] * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"]


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video id from a YouTube URL or bare id, else None.

    Accepts watch URLs (desktop, mobile, music), youtu.be short links and
    /shorts/, /embed/, /v/ and /live/ paths.
    """
    url = (url or "").strip()
    if not url:
        return None
    if _VIDEO_ID_RE.match(url):
        return url
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split("/") if s]

    candidate: Optional[str] = None
    if host in _SHORT_HOSTS:
        candidate = segments[0] if segments else None
    elif host in _YT_HOSTS:
        if segments[:1] == ["watch"]:
            candidate = (parse_qs(parsed.query).get("v") or [None])[0]
        elif len(segments) >= 2 and segments[0] in _PATH_PREFIXES:
            candidate = segments[1]
    if candidate and _VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def _thumbnail(snippet: Dict[str, Any]) -> str:
    thumbs = snippet.get("thumbnails") or {}
    for size in ("high", "medium", "default"):
        url = (thumbs.get(size) or {}).get("url")
        if url:
            return url
    return ""


def _video_from_item(item: Dict[str, Any]) -> YouTubeVideo:
    snippet = item.get("snippet") or {}
    return YouTubeVideo(
        video_id=item["id"],
        channel_id=snippet.get("channelId", ""),
        title=snippet.get("title", ""),
        description=snippet.get("description", ""),
        published_at=snippet.get("publishedAt", ""),
        thumbnail_url=_thumbnail(snippet),
        duration=(item.get("contentDetails") or {}).get("duration", ""),
    )


class YouTubeClient:
    """Small wrapper over the Data API REST endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        cfg = get_youtube_config()
        self.api_key = api_key if api_key is not None else cfg.api_key
        self.min_duration = cfg.min_duration_seconds
        self.max_pages = cfg.max_pages
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise YouTubeAPIError("YOUTUBE_API_KEY is not set")
        try:
            resp = self.session.get(
                f"{YOUTUBE_API_BASE}/{endpoint}",
                params={**params, "key": self.api_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.error("YouTube API %s failed: %s", endpoint, exc)
            raise YouTubeAPIError(f"YouTube API {endpoint} request failed: {exc}") from exc

    def search_channels(self, query: str, max_results: int = 10) -> List[YouTubeChannel]:
        data = self._get(
            "search",
            {"part": "snippet", "q": query, "type": "channel", "maxResults": max_results},
        )
        channels = []
        for item in data.get("items") or []:
            snippet = item.get("snippet") or {}
            channels.append(
                YouTubeChannel(
                    id=snippet.get("channelId") or (item.get("id") or {}).get("channelId", ""),
                    title=snippet.get("title", ""),
                    description=snippet.get("description", ""),
                    thumbnail=_thumbnail(snippet),
                )
            )
        return channels

    def get_channel_details(self, channel_id: str) -> Optional[YouTubeChannel]:
        data = self._get("channels", {"part": "snippet,statistics", "id": channel_id})
        items = data.get("items") or []
        if not items:
            return None
        item = items[0]
        snippet = item.get("snippet") or {}
        return YouTubeChannel(
            id=item.get("id", channel_id),
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            thumbnail=_thumbnail(snippet),
            subscriber_count=(item.get("statistics") or {}).get("subscriberCount"),
        )

    def _get_videos(self, video_ids: List[str]) -> List[YouTubeVideo]:
        if not video_ids:
            return []
        data = self._get("videos", {"part": "snippet,contentDetails", "id": ",".join(video_ids)})
        return [_video_from_item(item) for item in data.get("items") or []]

    def get_video_details(self, video_id: str) -> Optional[YouTubeVideo]:
        videos = self._get_videos([video_id])
        return videos[0] if videos else None

    def get_channel_videos(
        self,
        channel_id: str,
        count: int = 10,
        published_after: Optional[datetime] = None,
    ) -> List[YouTubeVideo]:
        """Return up to *count* of the channel's newest videos, Shorts excluded.

        Videos at or under the minimum duration (Shorts) are dropped, so the
        search is paginated until enough remain or the page cap is reached.
        Results are deduplicated by video id and kept in publish order.
        """
        found: List[YouTubeVideo] = []
        seen = set()
        page_token: Optional[str] = None

        for _ in range(self.max_pages):
            params: Dict[str, Any] = {
                "part": "snippet",
                "channelId": channel_id,
                "type": "video",
                "order": "date",
                "maxResults": min(count * 2, 50),
            }
            if published_after is not None:
                params["publishedAfter"] = published_after.strftime("%Y-%m-%dT%H:%M:%SZ")
            if page_token:
                params["pageToken"] = page_token

            data = self._get("search", params)
            items = data.get("items") or []
            if not items:
                break
            page_token = data.get("nextPageToken")

            ids = [(item.get("id") or {}).get("videoId") for item in items]
            for video in self._get_videos([vid for vid in ids if vid]):
                if parse_duration(video.duration) <= self.min_duration:
                    continue
                if video.video_id in seen:
                    continue
                seen.add(video.video_id)
                found.append(video)
                if len(found) >= count:
                    return found

            if not page_token:
                break

        log.debug("Listed %d video(s) for channel %s", len(found), channel_id)
        return found
