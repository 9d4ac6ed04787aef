"""Tests for yt_dlp_util: command construction from YouTube config."""
import sys
from unittest.mock import patch

import pytest

from yt_briefing.yt_dlp_util import _resolve_base, get_auth_config, video_url_for, yt_dlp_cmd

_SLEEP = ["--sleep-requests", "1", "--sleep-subtitles", "1"]


@pytest.fixture(autouse=True)
def _fresh_base(monkeypatch):
    _resolve_base.cache_clear()
    for name in ("YT_BRIEFING_COOKIES_BROWSER", "YT_BRIEFING_COOKIES_FILE", "YT_BRIEFING_PO_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("YT_BRIEFING_SLEEP_REQUESTS", raising=False)
    monkeypatch.delenv("YT_BRIEFING_SLEEP_SUBTITLES", raising=False)
    yield
    _resolve_base.cache_clear()


def test_prefers_binary_when_available():
    with patch("yt_briefing.yt_dlp_util.shutil.which", return_value="/usr/bin/yt-dlp"):
        assert yt_dlp_cmd() == ["yt-dlp"] + _SLEEP


def test_falls_back_to_module():
    with patch("yt_briefing.yt_dlp_util.shutil.which", return_value=None):
        assert yt_dlp_cmd()[:3] == [sys.executable, "-m", "yt_dlp"]


def test_browser_cookies_take_precedence(monkeypatch):
    monkeypatch.setenv("YT_BRIEFING_COOKIES_BROWSER", "firefox")
    monkeypatch.setenv("YT_BRIEFING_COOKIES_FILE", "/tmp/cookies.txt")
    with patch("yt_briefing.yt_dlp_util.shutil.which", return_value="/usr/bin/yt-dlp"):
        cmd = yt_dlp_cmd()
    assert cmd[-2:] == ["--cookies-from-browser", "firefox"]
    assert "--cookies" not in cmd


def test_po_token_and_sleep_overrides(monkeypatch):
    monkeypatch.setenv("YT_BRIEFING_PO_TOKEN", "tok")
    monkeypatch.setenv("YT_BRIEFING_SLEEP_SUBTITLES", "5")
    with patch("yt_briefing.yt_dlp_util.shutil.which", return_value="/usr/bin/yt-dlp"):
        cmd = yt_dlp_cmd()
    assert cmd[cmd.index("--sleep-subtitles") + 1] == "5"
    assert cmd[-2:] == ["--extractor-args", "youtube:po_token=tok"]


def test_auth_config_hides_secrets(monkeypatch):
    monkeypatch.setenv("YOUTUBE_API_KEY", "secret")
    monkeypatch.setenv("YT_BRIEFING_PO_TOKEN", "tok")
    auth = get_auth_config()
    assert auth["api_key"] is True
    assert auth["po_token"] is True
    assert "secret" not in str(auth)


def test_video_url():
    assert video_url_for("dQw4w9WgXcQ") == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
