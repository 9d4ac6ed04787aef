"""Centralized configuration from environment variables.

Typed frozen dataclasses with lru_cache accessors. Each config is read once
from env vars and cached for the process lifetime. Call ``<getter>.cache_clear()``
in tests to force re-read.
"""

from __future__ import annotations

import functools
import os
from dataclasses import dataclass
from typing import Dict


def _env(name: str, default: str = "") -> str:
    return (os.environ.get(name) or "").strip() or default


def _parse_int(raw: str, default: int, minimum: int = 0) -> int:
    """Parse an int from a raw env string, returning *default* on failure."""
    raw = raw.strip()
    if raw:
        try:
            return max(minimum, int(raw))
        except ValueError:
            pass
    return default


def _parse_float(raw: str, default: float) -> float:
    raw = raw.strip()
    if raw:
        try:
            return max(0.0, float(raw))
        except ValueError:
            pass
    return default


# ---------------------------------------------------------------------------
# YouTube / yt-dlp configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class YouTubeConfig:
    """YouTube Data API and yt-dlp related settings."""

    api_key: str  # YOUTUBE_API_KEY
    min_duration_seconds: int  # YT_BRIEFING_MIN_DURATION (Shorts cut-off)
    max_pages: int  # YT_BRIEFING_MAX_PAGES
    subtitle_timeout: float  # YT_BRIEFING_SUBTITLE_TIMEOUT
    subtitle_lang: str  # YT_BRIEFING_SUBTITLE_LANG
    fallback_subtitle_lang: str  # YT_BRIEFING_FALLBACK_SUBTITLE_LANG
    sleep_requests: str  # YT_BRIEFING_SLEEP_REQUESTS
    sleep_subtitles: str  # YT_BRIEFING_SLEEP_SUBTITLES
    cookies_browser: str  # YT_BRIEFING_COOKIES_BROWSER
    cookies_file: str  # YT_BRIEFING_COOKIES_FILE
    po_token: str  # YT_BRIEFING_PO_TOKEN


@functools.lru_cache(maxsize=1)
def get_youtube_config() -> YouTubeConfig:
    """Return YouTube config from environment variables (cached)."""
    return YouTubeConfig(
        api_key=_env("YOUTUBE_API_KEY"),
        min_duration_seconds=_parse_int(_env("YT_BRIEFING_MIN_DURATION"), 180),
        max_pages=_parse_int(_env("YT_BRIEFING_MAX_PAGES"), 5, minimum=1),
        subtitle_timeout=_parse_float(_env("YT_BRIEFING_SUBTITLE_TIMEOUT"), 30.0),
        subtitle_lang=_env("YT_BRIEFING_SUBTITLE_LANG", "en"),
        fallback_subtitle_lang=_env("YT_BRIEFING_FALLBACK_SUBTITLE_LANG", "en.*,a.en"),
        sleep_requests=_env("YT_BRIEFING_SLEEP_REQUESTS", "1"),
        sleep_subtitles=_env("YT_BRIEFING_SLEEP_SUBTITLES", "1"),
        cookies_browser=_env("YT_BRIEFING_COOKIES_BROWSER"),
        cookies_file=_env("YT_BRIEFING_COOKIES_FILE"),
        po_token=_env("YT_BRIEFING_PO_TOKEN"),
    )


# ---------------------------------------------------------------------------
# LLM configuration
# ---------------------------------------------------------------------------

OLLAMA_BASE_URL = "http://localhost:11434/v1"
OLLAMA_DEFAULT_MODEL = "mistral"


def _is_ollama(base_url: str) -> bool:
    return "11434" in base_url or "ollama" in base_url.lower()


@dataclass(frozen=True)
class ProviderEndpoint:
    """Where a named provider lives and which env var carries its key."""

    base_url: str
    api_key_env: str
    default_model: str


PROVIDERS: Dict[str, ProviderEndpoint] = {
    "openai": ProviderEndpoint("https://api.openai.com/v1", "OPENAI_API_KEY", "gpt-4o-mini"),
    "deepseek": ProviderEndpoint("https://api.deepseek.com/v1", "DEEPSEEK_API_KEY", "deepseek-chat"),
    "qwen": ProviderEndpoint(
        "https://dashscope.aliyuncs.com/compatible-mode/v1", "DASHSCOPE_API_KEY", "qwen-plus"
    ),
    "ollama": ProviderEndpoint(OLLAMA_BASE_URL, "", OLLAMA_DEFAULT_MODEL),
}


@dataclass(frozen=True)
class LLMConfig:
    """LLM endpoint settings."""

    provider: str  # YT_BRIEFING_LLM_PROVIDER (or derived)
    base_url: str  # OPENAI_BASE_URL
    api_key: str  # OPENAI_API_KEY / provider key
    model: str  # OPENAI_MODEL (or derived default)
    is_ollama: bool  # derived from base_url


def resolve_llm_config(provider: str = "") -> LLMConfig:
    """Resolve endpoint settings for *provider*, or the default endpoint when empty.

    Named providers read their own key variable. The default endpoint follows
    OPENAI_BASE_URL / OPENAI_API_KEY and falls back to local Ollama.
    """
    model_env = _env("OPENAI_MODEL")
    named = PROVIDERS.get(provider)
    if named is not None and provider != "openai":
        key = _env(named.api_key_env) if named.api_key_env else ""
        return LLMConfig(
            provider=provider,
            base_url=named.base_url,
            api_key=key or "ollama",
            model=model_env or named.default_model,
            is_ollama=_is_ollama(named.base_url),
        )

    base_url = _env("OPENAI_BASE_URL")
    api_key = _env("OPENAI_API_KEY")
    if base_url and _is_ollama(base_url):
        resolved_url, resolved_key, default_model = base_url, "ollama", OLLAMA_DEFAULT_MODEL
    elif not base_url:
        if api_key:
            resolved_url, resolved_key, default_model = "https://api.openai.com/v1", api_key, "gpt-4o-mini"
        else:
            resolved_url, resolved_key, default_model = OLLAMA_BASE_URL, "ollama", OLLAMA_DEFAULT_MODEL
    else:
        resolved_url, resolved_key, default_model = base_url, api_key or "ollama", "gpt-4o-mini"

    is_ollama = _is_ollama(resolved_url)
    return LLMConfig(
        provider=provider or ("ollama" if is_ollama else "openai"),
        base_url=resolved_url,
        api_key=resolved_key,
        model=model_env or default_model,
        is_ollama=is_ollama,
    )


@functools.lru_cache(maxsize=1)
def get_llm_config() -> LLMConfig:
    """Return LLM config for the configured default provider (cached)."""
    return resolve_llm_config(_env("YT_BRIEFING_LLM_PROVIDER").lower())


# ---------------------------------------------------------------------------
# Context limits per provider
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContextLimits:
    """Size budgets for one provider's context window.

    Token figures are estimates (see ``chat_context.estimate_tokens``);
    ``*_chars`` figures are character caps applied before prompting.
    """

    input_token_budget: int
    max_output_tokens: int
    brief_transcript_chars: int
    detailed_transcript_chars: int
    chat_transcript_chars: int
    chat_summary_chars: int
    chat_description_chars: int


# deepseek: 64K window - 8K output - 6K margin.
CONTEXT_LIMITS: Dict[str, ContextLimits] = {
    "openai": ContextLimits(100_000, 8_000, 30_000, 80_000, 40_000, 12_000, 4_000),
    "deepseek": ContextLimits(50_000, 8_000, 20_000, 60_000, 30_000, 10_000, 3_000),
    "qwen": ContextLimits(100_000, 8_000, 30_000, 80_000, 40_000, 12_000, 4_000),
    "ollama": ContextLimits(6_000, 2_000, 6_000, 8_000, 2_000, 2_000, 600),
}


def get_context_limits(provider: str) -> ContextLimits:
    """Return the limits row for *provider*; unknown names use the openai row."""
    return CONTEXT_LIMITS.get(provider, CONTEXT_LIMITS["openai"])


# ---------------------------------------------------------------------------
# Web search configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchConfig:
    """Web search tool settings."""

    tavily_api_key: str  # TAVILY_API_KEY
    max_results: int  # YT_BRIEFING_SEARCH_MAX_RESULTS
    content_chars: int  # YT_BRIEFING_SEARCH_CONTENT_CHARS
    timeout: float  # YT_BRIEFING_SEARCH_TIMEOUT


@functools.lru_cache(maxsize=1)
def get_search_config() -> SearchConfig:
    """Return web search config (cached)."""
    return SearchConfig(
        tavily_api_key=_env("TAVILY_API_KEY"),
        max_results=_parse_int(_env("YT_BRIEFING_SEARCH_MAX_RESULTS"), 5, minimum=1),
        content_chars=_parse_int(_env("YT_BRIEFING_SEARCH_CONTENT_CHARS"), 500, minimum=1),
        timeout=_parse_float(_env("YT_BRIEFING_SEARCH_TIMEOUT"), 30.0),
    )


# ---------------------------------------------------------------------------
# Background task configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaskConfig:
    """Retention and worker settings for background jobs."""

    retention_seconds: float  # YT_BRIEFING_TASK_TTL
    sweep_interval: float  # YT_BRIEFING_TASK_SWEEP_INTERVAL
    max_workers: int  # YT_BRIEFING_JOB_WORKERS


@functools.lru_cache(maxsize=1)
def get_task_config() -> TaskConfig:
    """Return background task config (cached)."""
    return TaskConfig(
        retention_seconds=_parse_float(_env("YT_BRIEFING_TASK_TTL"), 3600.0),
        sweep_interval=_parse_float(_env("YT_BRIEFING_TASK_SWEEP_INTERVAL"), 300.0) or 300.0,
        max_workers=_parse_int(_env("YT_BRIEFING_JOB_WORKERS"), 4, minimum=1),
    )


# ---------------------------------------------------------------------------
# Application-wide configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppConfig:
    """Application-wide settings."""

    log_level: str  # YT_BRIEFING_LOG_LEVEL
    data_dir_env: str  # YT_BRIEFING_DATA_DIR (raw env value)
    db_env: str  # YT_BRIEFING_DB (raw env value)
    summary_language: str  # YT_BRIEFING_LANGUAGE
    default_video_count: int  # YT_BRIEFING_DEFAULT_VIDEO_COUNT
    host: str  # YT_BRIEFING_HOST
    port: int  # YT_BRIEFING_PORT
    user_id: str  # YT_BRIEFING_USER (CLI identity)


@functools.lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Return application config from environment variables (cached)."""
    return AppConfig(
        log_level=_env("YT_BRIEFING_LOG_LEVEL", "INFO").upper(),
        data_dir_env=_env("YT_BRIEFING_DATA_DIR"),
        db_env=_env("YT_BRIEFING_DB"),
        summary_language=_env("YT_BRIEFING_LANGUAGE", "English"),
        default_video_count=_parse_int(_env("YT_BRIEFING_DEFAULT_VIDEO_COUNT"), 3, minimum=1),
        host=_env("YT_BRIEFING_HOST", "127.0.0.1"),
        port=_parse_int(_env("YT_BRIEFING_PORT"), 8000, minimum=1),
        user_id=_env("YT_BRIEFING_USER", "local"),
    )
