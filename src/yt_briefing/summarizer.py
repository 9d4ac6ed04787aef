"""Generate brief and detailed video summaries, sized to the video's length.

Source text is the transcript when one can be extracted, otherwise the
video description, otherwise the title. Any failure collapses into a fixed
placeholder pair so one bad video never aborts a batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from yt_briefing.config import get_app_config, get_context_limits
from yt_briefing.llm import complete, invoke, resolve_provider
from yt_briefing.storage import Storage
from yt_briefing.transcriber import get_or_fetch_transcript
from yt_briefing.youtube import parse_duration

log = logging.getLogger("yt_briefing.summarizer")

NO_CONTENT_TEXT = "No content available to summarize."
FAILED_TEXT = "Failed to generate summary due to an error."

SHORT_VIDEO_SECONDS = 300
MEDIUM_VIDEO_SECONDS = 1200


@dataclass(frozen=True)
class SummaryPair:
    brief: str
    detailed: str


@dataclass(frozen=True)
class LengthTarget:
    """Requested sentence and key-point counts (inclusive ranges) for one length bucket.

    Each brief bullet is one sentence, so the brief asks for ``brief_sentences``
    bullets.
    """

    bucket: str
    brief_sentences: Tuple[int, int]
    detailed_sentences: Tuple[int, int]
    detailed_points: Tuple[int, int]
    detailed_scope: str


_TARGETS = {
    "short": LengthTarget("short", (2, 3), (5, 7), (2, 3), "covering the main points"),
    "medium": LengthTarget("medium", (3, 4), (10, 15), (4, 6), "including details and examples"),
    "long": LengthTarget("long", (4, 5), (20, 30), (5, 8), "including details, examples and insights"),
}


def categorize_video_length(duration_seconds: int) -> str:
    """short: under 5 min, medium: 5 to 20 min, long: 20 min and over."""
    if duration_seconds < SHORT_VIDEO_SECONDS:
        return "short"
    if duration_seconds < MEDIUM_VIDEO_SECONDS:
        return "medium"
    return "long"


def target_summary_length(duration_seconds: int) -> LengthTarget:
    return _TARGETS[categorize_video_length(duration_seconds)]


def _range(bounds: Tuple[int, int]) -> str:
    return f"{bounds[0]}-{bounds[1]}"


def _brief_prompt(content: str, target: LengthTarget, language: str) -> str:
    return (
        f"Summarize the key points of the video transcript below in {language}.\n"
        'State the information directly, without meta phrases such as "in this video" or "the speaker says".\n\n'
        "## One-line summary\n"
        "(the core message in one sentence)\n\n"
        "## Key points\n"
        f"({_range(target.brief_sentences)} bullet points, each a single sentence with a concrete fact)\n\n"
        "---\n"
        f"Transcript:\n{content}"
    )


def _detailed_system_prompt(target: LengthTarget, language: str) -> str:
    return (
        "You are an expert content analyst.\n"
        f"Analyse the video transcript and write a structured summary in {language}.\n\n"
        "[Principles]\n"
        '- State information directly. No meta phrases like "in the video" or "the speaker".\n'
        "- Ignore auto-caption errors, repetitions and filler; focus on substance.\n"
        "- Be concise and clear without dropping key information.\n"
        f"- Aim for {_range(target.detailed_sentences)} sentences in total, {target.detailed_scope}.\n\n"
        "[Output format]\n\n"
        "## One-line summary\n"
        "The core message in one sentence.\n\n"
        "## Key points\n"
        f"- The {_range(target.detailed_points)} most important points as bullets.\n"
        "- Each point is a complete sentence with concrete facts, figures or claims.\n\n"
        "## Details\n"
        "Split by topic with ### subheadings; explain each topic in 2-4 sentences with "
        "important examples, evidence or quotes.\n\n"
        "## Keywords\n"
        "Selected key terms, each explained in one sentence."
    )


def generate_video_summary(
    storage: Storage,
    video_id: str,
    title: str,
    description: str,
    duration: Optional[str] = None,
    *,
    provider: str = "",
    language: Optional[str] = None,
) -> SummaryPair:
    """Return a (brief, detailed) pair for one video. Never raises."""
    try:
        transcript = get_or_fetch_transcript(storage, video_id)
        if transcript.available and transcript.text.strip():
            content = transcript.text
        else:
            content = (description or "").strip() or (title or "").strip()
        if not content.strip():
            return SummaryPair(NO_CONTENT_TEXT, NO_CONTENT_TEXT)

        language = language or get_app_config().summary_language
        limits = get_context_limits(resolve_provider(provider))
        target = target_summary_length(parse_duration(duration))
        log.info(
            "Summarizing %s (%s video, transcript=%s, provider=%s)",
            video_id,
            target.bucket,
            transcript.available,
            provider or "default",
        )

        brief_result = invoke(
            [{"role": "user", "content": _brief_prompt(content[: limits.brief_transcript_chars], target, language)}],
            provider=provider,
        )
        detailed = complete(
            _detailed_system_prompt(target, language),
            f"Transcript:\n{content[: limits.detailed_transcript_chars]}",
            provider=provider,
        )

        brief = brief_result.content.strip() or "Unable to generate brief summary."
        return SummaryPair(brief=brief, detailed=detailed or "Unable to generate detailed summary.")
    except Exception as exc:  # noqa: BLE001
        log.error("Error generating summary for %s: %s", video_id, exc)
        log.debug("Traceback:", exc_info=True)
        return SummaryPair(FAILED_TEXT, FAILED_TEXT)
