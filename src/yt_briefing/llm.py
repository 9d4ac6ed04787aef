"""OpenAI-compatible LLM client; defaults to local Ollama when no API key is set.

Three call shapes are offered on top of one cached client per endpoint:
``complete`` (system + user text in, text out), ``invoke`` (full message
list and optional tools, returns a :class:`Completion`) and ``invoke_stream``
(same inputs, returns the SDK's chunk iterator).
"""

from __future__ import annotations

import logging
import socket
import threading
import time as _time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
from urllib.parse import urlparse

from openai import OpenAI

from yt_briefing.config import ContextLimits, LLMConfig, get_context_limits, get_llm_config, resolve_llm_config

log = logging.getLogger("yt_briefing.llm")

T = TypeVar("T")

__all__ = [
    "Completion",
    "check_connectivity",
    "complete",
    "get_client",
    "get_config_summary",
    "get_context_limits",
    "invoke",
    "invoke_stream",
    "resolve_provider",
]


@dataclass
class Completion:
    """Non-streaming chat result, reduced to what callers use."""

    content: str = ""
    tool_calls: List[Dict[str, str]] = field(default_factory=list)
    finish_reason: Optional[str] = None


def _config_for(provider: str = "") -> LLMConfig:
    if provider:
        return resolve_llm_config(provider)
    return get_llm_config()


def resolve_provider(provider: str = "") -> str:
    """Return the effective provider name (used to look up context limits)."""
    return _config_for(provider).provider


def get_model_name(model: Optional[str] = None, provider: str = "") -> str:
    """Return effective LLM model name from argument, env, or provider default."""
    return model or _config_for(provider).model


def check_connectivity(provider: str = "") -> None:
    """Fast pre-flight check: verify the LLM endpoint is reachable (TCP connect).

    Raises RuntimeError with actionable guidance if the endpoint is down.
    """
    cfg = _config_for(provider)
    parsed = urlparse(cfg.base_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        sock = socket.create_connection((host, port), timeout=5)
        sock.close()
    except OSError:
        if cfg.is_ollama:
            raise RuntimeError(
                f"Cannot connect to Ollama at {host}:{port}. "
                "Is Ollama running? Start it with: ollama serve\n"
                "Or set OPENAI_API_KEY (or YT_BRIEFING_LLM_PROVIDER) to use a hosted provider."
            )
        raise RuntimeError(
            f"Cannot connect to LLM endpoint at {host}:{port} ({cfg.base_url}). "
            "Check OPENAI_BASE_URL / YT_BRIEFING_LLM_PROVIDER and ensure the server is running."
        )


def get_config_summary(provider: str = "") -> dict:
    """Return current LLM configuration for diagnostics (used by ``yt-briefing doctor``)."""
    cfg = _config_for(provider)
    limits: ContextLimits = get_context_limits(cfg.provider)
    return {
        "provider": cfg.provider,
        "base_url": cfg.base_url,
        "api_key_set": bool(cfg.api_key and cfg.api_key != "ollama"),
        "model": cfg.model,
        "is_ollama": cfg.is_ollama,
        "input_token_budget": limits.input_token_budget,
    }


_clients: Dict[Tuple[str, str], Any] = {}
_clients_lock = threading.Lock()


def get_client(provider: str = "") -> Any:
    """Return an OpenAI client for the provider's endpoint, reused for keep-alive.

    One client is kept per (base_url, api_key) pair.
    """
    cfg = _config_for(provider)
    key = (cfg.base_url, cfg.api_key)
    with _clients_lock:
        client = _clients.get(key)
        if client is None:
            client = OpenAI(base_url=cfg.base_url, api_key=cfg.api_key)
            _clients[key] = client
        return client


_MAX_LLM_RETRIES = 3
_LLM_INITIAL_BACKOFF = 2  # seconds


def _is_transient(exc: Exception) -> bool:
    """Return True if the exception looks transient (worth retrying)."""
    msg = str(exc).lower()
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return True
    for code in ("429", "500", "502", "503", "504"):
        if code in msg:
            return True
    if "rate limit" in msg or "too many requests" in msg:
        return True
    if "timeout" in msg or "timed out" in msg:
        return True
    if "connection" in msg and ("refused" in msg or "reset" in msg or "error" in msg):
        return True
    return False


def _call_with_retries(fn: Callable[[], T], cfg: LLMConfig, max_retries: int) -> T:
    """Run *fn*, retrying transient failures with exponential backoff.

    Raises RuntimeError on persistent API errors so callers can handle gracefully.
    """
    backoff = _LLM_INITIAL_BACKOFF
    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt < max_retries and _is_transient(exc):
                log.warning(
                    "LLM call failed (attempt %d/%d), retrying in %ds: %s", attempt + 1, max_retries + 1, backoff, exc
                )
                _time.sleep(backoff)
                backoff = min(backoff * 2, 30)
                continue
            if cfg.is_ollama:
                log.error("LLM API call failed (Ollama at %s): %s", cfg.base_url, exc)
                raise RuntimeError(
                    f"LLM API call failed. Is Ollama running? Start with: ollama serve\nError: {exc}"
                ) from exc
            log.error("LLM API call failed (%s): %s", cfg.base_url, exc)
            raise RuntimeError(f"LLM API call failed ({cfg.base_url}): {exc}") from exc
    raise RuntimeError(f"LLM API call failed after {max_retries + 1} attempts")


def _request_kwargs(
    messages: List[Dict[str, Any]],
    *,
    model: Optional[str],
    provider: str,
    tools: Optional[List[Dict[str, Any]]],
    tool_choice: Optional[str],
    max_tokens: Optional[int],
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"model": get_model_name(model, provider), "messages": messages}
    if tools:
        kwargs["tools"] = tools
        if tool_choice:
            kwargs["tool_choice"] = tool_choice
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    return kwargs


def invoke(
    messages: List[Dict[str, Any]],
    *,
    tools: Optional[List[Dict[str, Any]]] = None,
    tool_choice: Optional[str] = None,
    provider: str = "",
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    max_retries: int = _MAX_LLM_RETRIES,
) -> Completion:
    """Non-streaming chat completion over a full message list."""
    cfg = _config_for(provider)
    client = get_client(provider)
    kwargs = _request_kwargs(
        messages, model=model, provider=provider, tools=tools, tool_choice=tool_choice, max_tokens=max_tokens
    )
    resp = _call_with_retries(lambda: client.chat.completions.create(**kwargs), cfg, max_retries)

    choice = resp.choices[0] if resp.choices else None
    if not choice or not getattr(choice, "message", None):
        log.warning("LLM returned no choices/message for model=%s", kwargs["model"])
        return Completion()
    message = choice.message
    calls = [
        {"id": tc.id or "", "name": tc.function.name or "", "arguments": tc.function.arguments or ""}
        for tc in (getattr(message, "tool_calls", None) or [])
    ]
    return Completion(content=message.content or "", tool_calls=calls, finish_reason=choice.finish_reason)


def invoke_stream(
    messages: List[Dict[str, Any]],
    *,
    tools: Optional[List[Dict[str, Any]]] = None,
    tool_choice: Optional[str] = None,
    provider: str = "",
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    max_retries: int = _MAX_LLM_RETRIES,
) -> Any:
    """Start a streaming chat completion and return the chunk iterator.

    Only opening the stream is retried; errors raised while iterating reach
    the caller unchanged. The returned object supports ``close()``.
    """
    cfg = _config_for(provider)
    client = get_client(provider)
    kwargs = _request_kwargs(
        messages, model=model, provider=provider, tools=tools, tool_choice=tool_choice, max_tokens=max_tokens
    )
    return _call_with_retries(lambda: client.chat.completions.create(stream=True, **kwargs), cfg, max_retries)


def complete(
    system_prompt: str,
    user_content: str,
    *,
    model: Optional[str] = None,
    provider: str = "",
    max_tokens: Optional[int] = None,
    max_retries: int = _MAX_LLM_RETRIES,
) -> str:
    """Call chat completion with one system and one user message; return stripped text."""
    result = invoke(
        [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        provider=provider,
        model=model,
        max_tokens=max_tokens,
        max_retries=max_retries,
    )
    return result.content.strip()
