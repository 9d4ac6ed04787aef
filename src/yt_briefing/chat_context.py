"""Fit a chat turn into the provider's input budget.

Sizes are *estimated* with :func:`estimate_tokens`, a characters/2 heuristic
tuned for mixed-script text. It is an approximation, not a tokenizer count;
the budgeting below only relies on it being additive and monotonic.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from yt_briefing.config import ContextLimits, get_context_limits
from yt_briefing.llm import complete

log = logging.getLogger("yt_briefing.chat_context")

# Share of the history budget the verbatim recent window may use; the rest
# is left for the synopsis of older turns.
RECENT_WINDOW_SHARE = 0.8

COMPACTION_MAX_TOKENS = 500
SUMMARY_HEADER = "[Previous conversation summary]"

COMPACTION_PROMPT = (
    "Summarize the conversation below concisely. Keep only the important "
    "questions, answers and conclusions. Write 3-5 sentences."
)

# Share of the input budget the system prompt may take; the rest is kept
# for history and the user message.
SYSTEM_PROMPT_SHARE = 0.5

_TITLE_CHARS = 300

Message = Dict[str, Any]
Estimator = Callable[[str], int]
Compactor = Callable[[str], str]


def estimate_tokens(text: str) -> int:
    """Approximate token count: ceil(len / 2). Not an exact tokenizer count."""
    return math.ceil(len(text or "") / 2)


def _clip(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"


def build_system_prompt(
    video: Mapping[str, Any],
    summary: Optional[Mapping[str, Any]],
    transcript: str,
    *,
    language: str,
    limits: ContextLimits,
) -> str:
    """Assemble the chat system prompt from the video's context.

    Parts are added in order (title, description, summary, transcript
    excerpt), each clipped to its cap from *limits*. The whole prompt is kept
    within ``SYSTEM_PROMPT_SHARE`` of the input budget, so later parts are
    shortened further when earlier ones use up the room.
    """
    max_chars = int(limits.input_token_budget * SYSTEM_PROMPT_SHARE) * 2
    prompt = "\n".join(
        [
            "You are an assistant answering questions about one YouTube video.",
            f"Always answer in {language}.",
            "Base your answers on the video context below. Use the web_search tool only "
            "when this context is not enough to answer (for example recent events or facts "
            "the video does not cover), and say when information comes from the web.",
        ]
    )
    body = (summary.get("detailed") or summary.get("brief") or "") if summary else ""
    parts = (
        ("Video title: ", video.get("title"), _TITLE_CHARS),
        ("Video description:\n", video.get("description"), limits.chat_description_chars),
        ("Summary:\n", body, limits.chat_summary_chars),
        ("Transcript excerpt:\n", transcript, limits.chat_transcript_chars),
    )
    for header, text, cap in parts:
        # two separator newlines plus the clip ellipsis
        room = max_chars - len(prompt) - len(header) - 3
        if room <= 0:
            break
        text = _clip(text or "", min(cap, room))
        if text:
            prompt += f"\n\n{header}{text}"
    return prompt


def _default_compactor(provider: str) -> Compactor:
    def compact(conversation: str) -> str:
        return complete(COMPACTION_PROMPT, conversation, provider=provider, max_tokens=COMPACTION_MAX_TOKENS)

    return compact


def _transcribe_turns(messages: Sequence[Mapping[str, Any]]) -> str:
    return "\n".join(
        f"{'User' if m['role'] == 'user' else 'Assistant'}: {m['content']}" for m in messages
    )


def build_chat_messages(
    system_prompt: str,
    history: Sequence[Mapping[str, Any]],
    user_message: str,
    provider: str = "",
    *,
    budget: Optional[int] = None,
    compact: Optional[Compactor] = None,
    estimate: Estimator = estimate_tokens,
) -> List[Message]:
    """Return ``[system, *history, user]`` trimmed to the input budget.

    When the full history does not fit, the newest messages are kept
    verbatim up to 80% of the history budget and everything older is
    condensed into a synopsis appended to the system prompt. If compaction
    fails the older turns are dropped. The synopsis is clipped so the
    estimated total never exceeds *budget*.
    """
    if budget is None:
        budget = get_context_limits(provider).input_token_budget
    history_budget = budget - estimate(system_prompt) - estimate(user_message)
    turns = [{"role": m["role"], "content": m["content"]} for m in history]
    sizes = [estimate(m["content"]) for m in turns]

    if sum(sizes) <= history_budget:
        return [{"role": "system", "content": system_prompt}, *turns, {"role": "user", "content": user_message}]

    window_budget = history_budget * RECENT_WINDOW_SHARE
    recent_tokens = 0
    split = len(turns)
    for i in range(len(turns) - 1, -1, -1):
        if recent_tokens + sizes[i] > window_budget:
            break
        recent_tokens += sizes[i]
        split = i
    old, recent = turns[:split], turns[split:]

    system = system_prompt
    room = history_budget - recent_tokens
    if old and room > 0:
        compactor = compact or _default_compactor(provider)
        try:
            synopsis = (compactor(_transcribe_turns(old)) or "").strip()
        except Exception as exc:  # noqa: BLE001
            log.warning("Chat compaction failed, keeping recent history only: %s", exc)
            synopsis = ""
        if synopsis:
            prefix = f"\n\n{SUMMARY_HEADER}\n"
            while synopsis and estimate(prefix + synopsis) > room:
                # shrink proportionally, at least one char per pass
                over = estimate(prefix + synopsis) - room
                synopsis = synopsis[: max(0, len(synopsis) - max(1, over))]
            if synopsis:
                system = system_prompt + prefix + synopsis
    log.debug("Compacted %d old message(s); kept %d recent", len(old), len(recent))

    return [{"role": "system", "content": system}, *recent, {"role": "user", "content": user_message}]
