"""Fetch video transcripts via yt-dlp, cached in the videos table.

The cache is tri-state (see :class:`yt_briefing.storage.TranscriptState`):
a cached transcript is returned as-is, while never-attempted and
unavailable entries both trigger a fresh extraction.
"""

from __future__ import annotations

import logging
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from yt_briefing.config import get_youtube_config
from yt_briefing.storage import Storage, TranscriptState
from yt_briefing.yt_dlp_util import video_url_for, yt_dlp_cmd

log = logging.getLogger("yt_briefing.transcriber")


@dataclass(frozen=True)
class TranscriptResult:
    text: str
    available: bool


UNAVAILABLE = TranscriptResult(text="", available=False)


def _subs_to_plain_text(content: str) -> str:
    """Strip headers, timestamps, tags and consecutive duplicates; return plain text."""
    text_lines: list[str] = []
    prev_line = ""
    for line in content.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        upper = line.upper()
        if upper.startswith(("WEBVTT", "KIND:", "LANGUAGE:", "NOTE")):
            continue
        # SRT cue number
        if re.match(r"^\d+$", line):
            continue
        if re.match(r"^\d{2}:\d{2}(:\d{2})?[.,]\d{3}\s*-->\s*\d{2}:\d{2}", line):
            continue
        if re.match(r"^\s*(?:align|position|line|size):", line):
            continue
        line = re.sub(r"<[^>]+>", "", line).strip()
        # auto-captions repeat each line in the next cue
        if line and line != prev_line:
            text_lines.append(line)
            prev_line = line
    return "\n".join(text_lines)


def _find_subtitle_file(out_dir: Path) -> Optional[str]:
    """Return plain text of the first subtitle file written under *out_dir*, if any."""
    if not out_dir.exists():
        return None
    files = sorted(f for f in out_dir.rglob("*") if f.is_file() and f.suffix.lower() in (".vtt", ".srt"))
    if not files:
        return None
    raw = files[0].read_text(encoding="utf-8", errors="replace")
    return _subs_to_plain_text(raw)


def _build_sub_download_cmd(video_url: str, out_tmpl: str, sub_langs: str) -> List[str]:
    return yt_dlp_cmd() + [
        "--write-auto-sub",
        "--write-sub",
        "--skip-download",
        "--no-warnings",
        "--sub-format",
        "vtt/srt/best",
        "--sub-langs",
        sub_langs,
        "-o",
        out_tmpl,
        video_url,
    ]


def fetch_transcript(video_id: str) -> TranscriptResult:
    """Extract captions for *video_id*: preferred language first, then the fallback.

    yt-dlp often exits non-zero after writing a usable subtitle file (for
    example when one of several requested tracks fails), so the output
    directory is checked regardless of the exit code. A timeout or a missing
    binary means the transcript is unavailable; nothing is raised.
    """
    cfg = get_youtube_config()
    url = video_url_for(video_id)
    langs = [lang for lang in (cfg.subtitle_lang, cfg.fallback_subtitle_lang) if lang]

    with tempfile.TemporaryDirectory(prefix="yt_briefing_") as tmp:
        for attempt, sub_langs in enumerate(langs):
            out_dir = Path(tmp) / f"subs{attempt}"
            out_dir.mkdir(parents=True, exist_ok=True)
            out_tmpl = str(out_dir.resolve()).replace("\\", "/") + "/%(id)s.%(ext)s"
            cmd = _build_sub_download_cmd(url, out_tmpl, sub_langs)
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=cfg.subtitle_timeout,
                    cwd=str(out_dir),
                )
            except subprocess.TimeoutExpired:
                log.warning("yt-dlp timed out after %ss for %s", cfg.subtitle_timeout, video_id)
                return UNAVAILABLE
            except OSError as exc:
                log.warning("yt-dlp could not be started for %s: %s", video_id, exc)
                return UNAVAILABLE

            text = _find_subtitle_file(out_dir)
            if text and text.strip():
                if result.returncode != 0:
                    log.debug("yt-dlp exited %d for %s but wrote subtitles", result.returncode, video_id)
                return TranscriptResult(text=text, available=True)
            log.debug(
                "No %s subtitles for %s (exit %d): %s",
                sub_langs,
                video_id,
                result.returncode,
                (result.stderr or "").strip()[:200],
            )

    log.info("No transcript available for %s", video_id)
    return UNAVAILABLE


def get_or_fetch_transcript(storage: Storage, video_id: str) -> TranscriptResult:
    """Return the cached transcript, or extract one and record the outcome.

    Storage reads and writes are best-effort: a failure is logged and the
    freshly fetched text is still returned to the caller.
    """
    try:
        state, cached = storage.get_transcript(video_id)
    except Exception as exc:  # noqa: BLE001
        log.warning("Transcript cache read failed for %s: %s", video_id, exc)
        state, cached = TranscriptState.NEVER_ATTEMPTED, None

    if state is TranscriptState.CACHED and cached:
        log.debug("Transcript cache hit for %s", video_id)
        return TranscriptResult(text=cached, available=True)
    if state is TranscriptState.UNAVAILABLE:
        log.debug("Retrying transcript for %s after an earlier miss", video_id)

    result = fetch_transcript(video_id)
    try:
        if result.available:
            storage.set_transcript(video_id, result.text)
        else:
            storage.mark_transcript_unavailable(video_id)
    except Exception as exc:  # noqa: BLE001
        log.warning("Could not cache transcript for %s: %s", video_id, exc)
    return result
