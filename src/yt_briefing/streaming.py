"""Incremental assembly of streamed chat completions, plus SSE framing.

Providers deliver a tool call as a series of deltas that share an ``index``:
the first usually carries the id and function name, later ones carry slices
of the JSON argument string. Any of those strings may be split at an
arbitrary point, so every fragment is appended in arrival order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

SSE_DONE = "data: [DONE]\n\n"


def sse_event(payload: Dict[str, Any]) -> str:
    """Frame one JSON payload as a server-sent event."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@dataclass
class ToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""

    def as_message_entry(self) -> Dict[str, Any]:
        """Shape used inside an assistant message's ``tool_calls`` list."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    def parsed_arguments(self) -> Dict[str, Any]:
        """Decode the argument string; malformed or non-object JSON yields {}."""
        try:
            value = json.loads(self.arguments or "{}")
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}


class ToolCallAccumulator:
    """Reassemble fragmented tool-call deltas keyed by call index."""

    def __init__(self) -> None:
        self._calls: Dict[int, ToolCall] = {}

    def add(
        self,
        index: int,
        *,
        call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> None:
        call = self._calls.setdefault(index, ToolCall())
        # ids arrive whole; keep the first one seen
        if call_id and not call.id:
            call.id = call_id
        if name:
            call.name += name
        if arguments:
            call.arguments += arguments

    def feed(self, deltas: Optional[Iterable[Any]]) -> bool:
        """Absorb SDK tool-call delta objects. Returns True if any were present."""
        seen = False
        for position, delta in enumerate(deltas or ()):
            seen = True
            index = getattr(delta, "index", None)
            function = getattr(delta, "function", None)
            self.add(
                position if index is None else index,
                call_id=getattr(delta, "id", None),
                name=getattr(function, "name", None) if function is not None else None,
                arguments=getattr(function, "arguments", None) if function is not None else None,
            )
        return seen

    def calls(self) -> List[ToolCall]:
        calls = [self._calls[i] for i in sorted(self._calls)]
        for position, call in enumerate(calls):
            if not call.id:
                call.id = f"call_{position}"
        return calls

    def __len__(self) -> int:
        return len(self._calls)


class StreamAccumulator:
    """Collect one streamed round: text, tool calls and the finish reason."""

    def __init__(self) -> None:
        self._parts: List[str] = []
        self.tool_calls = ToolCallAccumulator()
        self.finish_reason: Optional[str] = None

    def feed(self, chunk: Any) -> str:
        """Absorb one chunk and return its text delta ("" if none)."""
        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return ""
        choice = choices[0]
        if getattr(choice, "finish_reason", None):
            self.finish_reason = choice.finish_reason
        delta = getattr(choice, "delta", None)
        if delta is None:
            return ""
        self.tool_calls.feed(getattr(delta, "tool_calls", None))
        text = getattr(delta, "content", None) or ""
        if text:
            self._parts.append(text)
        return text

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def wants_tools(self) -> bool:
        return len(self.tool_calls) > 0
