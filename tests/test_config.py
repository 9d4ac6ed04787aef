"""Tests for config.py: centralized configuration from environment variables."""

from unittest.mock import patch

from yt_briefing.config import (
    CONTEXT_LIMITS,
    get_app_config,
    get_context_limits,
    get_llm_config,
    get_search_config,
    get_task_config,
    get_youtube_config,
    resolve_llm_config,
)


# ---------------------------------------------------------------------------
# YouTubeConfig
# ---------------------------------------------------------------------------


class TestYouTubeConfig:
    def test_defaults_when_no_env(self):
        with patch.dict("os.environ", {}, clear=True):
            cfg = get_youtube_config()
        assert cfg.api_key == ""
        assert cfg.min_duration_seconds == 180
        assert cfg.max_pages == 5
        assert cfg.subtitle_timeout == 30.0
        assert cfg.subtitle_lang == "en"
        assert cfg.cookies_browser == ""
        assert cfg.po_token == ""

    def test_env_overrides(self):
        env = {
            "YOUTUBE_API_KEY": "yt-key",
            "YT_BRIEFING_MIN_DURATION": "60",
            "YT_BRIEFING_MAX_PAGES": "2",
            "YT_BRIEFING_COOKIES_BROWSER": "firefox",
        }
        with patch.dict("os.environ", env, clear=True):
            cfg = get_youtube_config()
        assert cfg.api_key == "yt-key"
        assert cfg.min_duration_seconds == 60
        assert cfg.max_pages == 2
        assert cfg.cookies_browser == "firefox"

    def test_invalid_numbers_fall_back(self):
        env = {"YT_BRIEFING_MAX_PAGES": "lots", "YT_BRIEFING_SUBTITLE_TIMEOUT": "soon"}
        with patch.dict("os.environ", env, clear=True):
            cfg = get_youtube_config()
        assert cfg.max_pages == 5
        assert cfg.subtitle_timeout == 30.0

    def test_max_pages_clamped_to_one(self):
        with patch.dict("os.environ", {"YT_BRIEFING_MAX_PAGES": "0"}, clear=True):
            assert get_youtube_config().max_pages == 1


# ---------------------------------------------------------------------------
# LLMConfig
# ---------------------------------------------------------------------------


class TestLLMConfig:
    def test_defaults_to_ollama_without_keys(self):
        with patch.dict("os.environ", {}, clear=True):
            cfg = get_llm_config()
        assert cfg.provider == "ollama"
        assert cfg.is_ollama is True
        assert cfg.base_url == "http://localhost:11434/v1"
        assert cfg.model == "mistral"

    def test_openai_key_selects_openai(self):
        with patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=True):
            cfg = get_llm_config()
        assert cfg.provider == "openai"
        assert cfg.base_url == "https://api.openai.com/v1"
        assert cfg.api_key == "sk-test"
        assert cfg.model == "gpt-4o-mini"

    def test_custom_base_url(self):
        env = {"OPENAI_BASE_URL": "https://llm.example.com/v1", "OPENAI_API_KEY": "k", "OPENAI_MODEL": "m1"}
        with patch.dict("os.environ", env, clear=True):
            cfg = get_llm_config()
        assert cfg.base_url == "https://llm.example.com/v1"
        assert cfg.model == "m1"
        assert cfg.is_ollama is False

    def test_named_provider_uses_its_own_key(self):
        env = {"YT_BRIEFING_LLM_PROVIDER": "DeepSeek", "DEEPSEEK_API_KEY": "ds-key", "OPENAI_API_KEY": "sk"}
        with patch.dict("os.environ", env, clear=True):
            cfg = get_llm_config()
        assert cfg.provider == "deepseek"
        assert cfg.base_url == "https://api.deepseek.com/v1"
        assert cfg.api_key == "ds-key"
        assert cfg.model == "deepseek-chat"

    def test_resolve_explicit_provider(self):
        with patch.dict("os.environ", {"DASHSCOPE_API_KEY": "dash"}, clear=True):
            cfg = resolve_llm_config("qwen")
        assert cfg.provider == "qwen"
        assert "dashscope" in cfg.base_url
        assert cfg.api_key == "dash"

    def test_cached(self):
        with patch.dict("os.environ", {}, clear=True):
            assert get_llm_config() is get_llm_config()


# ---------------------------------------------------------------------------
# Context limits
# ---------------------------------------------------------------------------


class TestContextLimits:
    def test_deepseek_budget_is_smaller(self):
        assert get_context_limits("deepseek").input_token_budget == 50_000
        assert get_context_limits("deepseek").input_token_budget < get_context_limits("openai").input_token_budget

    def test_unknown_provider_uses_openai_row(self):
        assert get_context_limits("mystery") == CONTEXT_LIMITS["openai"]

    def test_ollama_is_tight(self):
        assert get_context_limits("ollama").input_token_budget <= 8_000


# ---------------------------------------------------------------------------
# Search / task / app configs
# ---------------------------------------------------------------------------


class TestOtherConfigs:
    def test_search_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            cfg = get_search_config()
        assert cfg.tavily_api_key == ""
        assert cfg.max_results == 5
        assert cfg.content_chars == 500

    def test_task_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            cfg = get_task_config()
        assert cfg.retention_seconds == 3600.0
        assert cfg.sweep_interval == 300.0
        assert cfg.max_workers == 4

    def test_task_env_overrides(self):
        env = {"YT_BRIEFING_TASK_TTL": "60", "YT_BRIEFING_JOB_WORKERS": "0"}
        with patch.dict("os.environ", env, clear=True):
            cfg = get_task_config()
        assert cfg.retention_seconds == 60.0
        assert cfg.max_workers == 1

    def test_app_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            cfg = get_app_config()
        assert cfg.log_level == "INFO"
        assert cfg.summary_language == "English"
        assert cfg.default_video_count == 3
        assert cfg.port == 8000
        assert cfg.user_id == "local"

    def test_app_log_level_uppercased(self):
        with patch.dict("os.environ", {"YT_BRIEFING_LOG_LEVEL": "debug"}, clear=True):
            assert get_app_config().log_level == "DEBUG"
