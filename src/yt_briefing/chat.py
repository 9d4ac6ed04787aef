"""Per-video chat: context assembly, a bounded web-search tool loop, streaming replies.

A turn is prepared eagerly (lookups, prompt, budgeted messages, the user's
message saved) so validation errors surface before any output. The tool
loop then runs at most ``MAX_TOOL_ROUNDS`` model calls; tools are withdrawn
on the last one, which forces a plain answer.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from yt_briefing.chat_context import build_chat_messages, build_system_prompt
from yt_briefing.config import get_app_config, get_context_limits
from yt_briefing.llm import invoke, invoke_stream, resolve_provider
from yt_briefing.storage import ChatMessageRow, Storage
from yt_briefing.streaming import StreamAccumulator, ToolCall
from yt_briefing.transcriber import get_or_fetch_transcript
from yt_briefing.websearch import CHAT_TOOLS, execute_tool_call

log = logging.getLogger("yt_briefing.chat")

MAX_TOOL_ROUNDS = 3
FALLBACK_REPLY = "Unable to generate a response."
STREAM_ERROR_TEXT = "An error occurred while streaming the response."

Message = Dict[str, Any]
Event = Dict[str, str]


class VideoNotFoundError(LookupError):
    pass


@dataclass
class PreparedTurn:
    user_id: str
    video_id: str
    messages: List[Message]


class ChatService:
    def __init__(
        self,
        storage: Storage,
        *,
        provider: str = "",
        max_rounds: int = MAX_TOOL_ROUNDS,
        tools: Optional[List[Dict[str, Any]]] = None,
        execute_tool: Callable[[ToolCall], str] = execute_tool_call,
        language: Optional[str] = None,
    ) -> None:
        self.storage = storage
        self.provider = provider
        self.max_rounds = max(1, max_rounds)
        self.tools = CHAT_TOOLS if tools is None else tools
        self.execute_tool = execute_tool
        self.language = language

    # ------ history ------

    def history(self, user_id: str, video_id: str) -> List[ChatMessageRow]:
        return self.storage.get_chat_history(user_id, video_id)

    def clear(self, user_id: str, video_id: str) -> int:
        """Delete every message of the user's conversation about the video."""
        removed = self.storage.delete_chat_history(user_id, video_id)
        log.info("Cleared %d chat message(s) for %s / %s", removed, user_id, video_id)
        return removed

    # ------ turn preparation ------

    def prepare(self, user_id: str, video_id: str, message: str) -> PreparedTurn:
        """Look up context, build the budgeted message list and save the user's message.

        Raises ValueError for an empty message and VideoNotFoundError for an
        unknown video; nothing is saved in either case.
        """
        if not video_id or not (message or "").strip():
            raise ValueError("video_id and message are required")

        with ThreadPoolExecutor(max_workers=3) as pool:
            video_f = pool.submit(self.storage.get_video, video_id)
            summary_f = pool.submit(self.storage.get_user_summary_for_video, user_id, video_id)
            history_f = pool.submit(self.storage.get_chat_history, user_id, video_id)
            video, summary, history = video_f.result(), summary_f.result(), history_f.result()
        if video is None:
            raise VideoNotFoundError(f"Video not found: {video_id}")

        transcript = get_or_fetch_transcript(self.storage, video_id)
        limits = get_context_limits(resolve_provider(self.provider))
        system_prompt = build_system_prompt(
            video,
            summary,
            transcript.text if transcript.available else "",
            language=self.language or get_app_config().summary_language,
            limits=limits,
        )
        messages = build_chat_messages(
            system_prompt,
            history,
            message,
            self.provider,
            budget=limits.input_token_budget,
        )
        self.storage.save_chat_message(user_id=user_id, video_id=video_id, role="user", content=message)
        return PreparedTurn(user_id=user_id, video_id=video_id, messages=messages)

    def _round_tools(self, round_no: int) -> Dict[str, Any]:
        if round_no == self.max_rounds - 1 or not self.tools:
            return {"tools": None, "tool_choice": None}
        return {"tools": self.tools, "tool_choice": "auto"}

    def _run_tools(self, calls: List[ToolCall]) -> List[Message]:
        """Execute tool calls; results keep call order regardless of completion order."""
        if len(calls) == 1:
            results = [self.execute_tool(calls[0])]
        else:
            with ThreadPoolExecutor(max_workers=min(4, len(calls))) as pool:
                results = list(pool.map(self.execute_tool, calls))
        return [{"role": "tool", "tool_call_id": c.id, "content": r} for c, r in zip(calls, results)]

    def _save_reply(self, turn: PreparedTurn, content: str) -> None:
        self.storage.save_chat_message(
            user_id=turn.user_id, video_id=turn.video_id, role="assistant", content=content
        )

    # ------ request/response ------

    def send(self, user_id: str, video_id: str, message: str) -> str:
        """Run a full turn and return the assistant's reply.

        LLM transport errors propagate (as RuntimeError) after the user's
        message is saved; no assistant message is written in that case.
        """
        turn = self.prepare(user_id, video_id, message)
        messages = list(turn.messages)
        reply = FALLBACK_REPLY

        for round_no in range(self.max_rounds):
            result = invoke(messages, provider=self.provider, **self._round_tools(round_no))
            last = round_no == self.max_rounds - 1
            if result.tool_calls and not last:
                calls = [
                    ToolCall(id=tc["id"] or f"call_{i}", name=tc["name"], arguments=tc["arguments"])
                    for i, tc in enumerate(result.tool_calls)
                ]
                messages.append(
                    {
                        "role": "assistant",
                        "content": result.content or "",
                        "tool_calls": [c.as_message_entry() for c in calls],
                    }
                )
                messages.extend(self._run_tools(calls))
                continue
            reply = result.content.strip() or FALLBACK_REPLY
            break

        self._save_reply(turn, reply)
        return reply

    # ------ streaming ------

    def stream(
        self,
        user_id: str,
        video_id: str,
        message: str,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[Event]:
        """Prepare the turn now, then return an iterator of reply events.

        Events are ``{"content": text}``, ``{"searching": query}`` or
        ``{"error": text}``. Closing the iterator early, or setting *cancel*,
        stops reading from the model and skips saving the reply.
        """
        turn = self.prepare(user_id, video_id, message)
        return self._stream_turn(turn, cancel or threading.Event())

    def _stream_turn(self, turn: PreparedTurn, cancel: threading.Event) -> Iterator[Event]:
        messages = list(turn.messages)
        shown: List[str] = []

        try:
            for round_no in range(self.max_rounds):
                last = round_no == self.max_rounds - 1
                # intermediate rounds are buffered so tool deliberation stays hidden
                live = round_no == 0 or last
                acc = StreamAccumulator()
                upstream = invoke_stream(messages, provider=self.provider, **self._round_tools(round_no))
                try:
                    for chunk in upstream:
                        if cancel.is_set():
                            log.info("Chat stream cancelled for %s", turn.video_id)
                            return
                        delta = acc.feed(chunk)
                        if live and delta and not acc.wants_tools:
                            shown.append(delta)
                            yield {"content": delta}
                finally:
                    close = getattr(upstream, "close", None)
                    if close is not None:
                        close()

                if acc.wants_tools and not last:
                    calls = acc.tool_calls.calls()
                    messages.append(
                        {
                            "role": "assistant",
                            "content": acc.text,
                            "tool_calls": [c.as_message_entry() for c in calls],
                        }
                    )
                    for call in calls:
                        query = call.parsed_arguments().get("query")
                        if call.name == "web_search" and query:
                            yield {"searching": str(query)}
                    messages.extend(self._run_tools(calls))
                    if cancel.is_set():
                        return
                    continue

                if not live and acc.text:
                    shown.append(acc.text)
                    yield {"content": acc.text}
                break
        except Exception as exc:  # noqa: BLE001
            log.error("Chat stream failed for %s: %s", turn.video_id, exc)
            yield {"error": STREAM_ERROR_TEXT}
            partial = "".join(shown)
            if partial.strip():
                self._save_reply(turn, partial)
            return

        if cancel.is_set():
            return
        reply = "".join(shown)
        if not reply.strip():
            reply = FALLBACK_REPLY
            yield {"content": reply}
        self._save_reply(turn, reply)
