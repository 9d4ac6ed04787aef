"""Build the yt-dlp command line used for subtitle extraction."""
from __future__ import annotations

import functools
import shutil
import sys
from typing import List, Tuple

from yt_briefing.config import get_youtube_config


@functools.lru_cache(maxsize=1)
def _resolve_base() -> Tuple[str, ...]:
    """Detect yt-dlp binary once and cache the result."""
    if shutil.which("yt-dlp"):
        return ("yt-dlp",)
    return (sys.executable, "-m", "yt_dlp")


def yt_dlp_cmd() -> List[str]:
    """Return base yt-dlp command with sleep flags, optional cookies and PO token.

    Settings come from :func:`yt_briefing.config.get_youtube_config`:

      YT_BRIEFING_SLEEP_REQUESTS / YT_BRIEFING_SLEEP_SUBTITLES
          pause between HTTP requests and between subtitle downloads.
      YT_BRIEFING_COOKIES_BROWSER, else YT_BRIEFING_COOKIES_FILE
          session cookies (--cookies-from-browser / --cookies).
      YT_BRIEFING_PO_TOKEN
          proof-of-origin token passed as a youtube extractor arg.
    """
    cfg = get_youtube_config()
    base = list(_resolve_base())
    base += ["--sleep-requests", cfg.sleep_requests]
    base += ["--sleep-subtitles", cfg.sleep_subtitles]

    if cfg.cookies_browser:
        base += ["--cookies-from-browser", cfg.cookies_browser]
    elif cfg.cookies_file:
        base += ["--cookies", cfg.cookies_file]

    if cfg.po_token:
        base += ["--extractor-args", f"youtube:po_token={cfg.po_token}"]

    return base


def get_auth_config() -> dict:
    """Return current YouTube authentication configuration for diagnostics."""
    cfg = get_youtube_config()
    return {
        "cookies_browser": cfg.cookies_browser,
        "cookies_file": cfg.cookies_file,
        "po_token": bool(cfg.po_token),
        "api_key": bool(cfg.api_key),
    }


def video_url_for(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
