"""Tests for transcriber: mock yt-dlp subtitle output; assert the transcript cache."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

from yt_briefing.storage import TranscriptState
from yt_briefing.transcriber import (
    UNAVAILABLE,
    TranscriptResult,
    _subs_to_plain_text,
    fetch_transcript,
    get_or_fetch_transcript,
)

VTT = """WEBVTT
Kind: captions
Language: en

00:00:00.000 --> 00:00:02.500 align:start position:0%
Hello <c>world</c>.

00:00:02.500 --> 00:00:05.000
Hello world.

00:00:05.000 --> 00:00:07.000
This is a transcript.
"""


def _fake_run(write_for_langs=("en",), returncode=0):
    """Return a subprocess.run stand-in that writes a .vtt for the given --sub-langs values."""

    def _run(cmd, **kwargs):
        langs = cmd[cmd.index("--sub-langs") + 1]
        out_tmpl = cmd[cmd.index("-o") + 1]
        if langs in write_for_langs:
            out_dir = Path(out_tmpl).parent
            (out_dir / "dQw4w9WgXcQ.en.vtt").write_text(VTT, encoding="utf-8")
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="ERROR: something")

    return _run


def test_subs_to_plain_text_vtt():
    out = _subs_to_plain_text(VTT)
    assert out.splitlines() == ["Hello world.", "This is a transcript."]
    assert "-->" not in out
    assert "WEBVTT" not in out


def test_subs_to_plain_text_srt():
    srt = """1
00:00:00,000 --> 00:00:02,500
First line.

2
00:00:02,500 --> 00:00:05,000
Second line.
"""
    assert _subs_to_plain_text(srt) == "First line.\nSecond line."


class TestFetchTranscript:
    def test_primary_language(self):
        with patch("yt_briefing.transcriber.subprocess.run", side_effect=_fake_run()) as run:
            result = fetch_transcript("dQw4w9WgXcQ")
        assert result.available is True
        assert "This is a transcript." in result.text
        assert run.call_count == 1

    def test_fallback_language(self):
        with patch("yt_briefing.transcriber.subprocess.run", side_effect=_fake_run(("en.*,a.en",))) as run:
            result = fetch_transcript("dQw4w9WgXcQ")
        assert result.available is True
        assert run.call_count == 2

    def test_nonzero_exit_with_file_still_succeeds(self):
        with patch("yt_briefing.transcriber.subprocess.run", side_effect=_fake_run(returncode=1)):
            result = fetch_transcript("dQw4w9WgXcQ")
        assert result.available is True

    def test_no_subtitles_is_unavailable(self):
        with patch("yt_briefing.transcriber.subprocess.run", side_effect=_fake_run(write_for_langs=())):
            assert fetch_transcript("dQw4w9WgXcQ") == UNAVAILABLE

    def test_timeout_is_unavailable(self):
        with patch(
            "yt_briefing.transcriber.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="yt-dlp", timeout=30),
        ):
            assert fetch_transcript("dQw4w9WgXcQ") == UNAVAILABLE

    def test_missing_binary_is_unavailable(self):
        with patch("yt_briefing.transcriber.subprocess.run", side_effect=FileNotFoundError("yt-dlp")):
            assert fetch_transcript("dQw4w9WgXcQ") == UNAVAILABLE

    def test_command_carries_timeout(self, monkeypatch):
        monkeypatch.setenv("YT_BRIEFING_SUBTITLE_TIMEOUT", "12")
        with patch("yt_briefing.transcriber.subprocess.run", side_effect=_fake_run()) as run:
            fetch_transcript("dQw4w9WgXcQ")
        assert run.call_args.kwargs["timeout"] == 12.0
        assert "https://www.youtube.com/watch?v=dQw4w9WgXcQ" in run.call_args.args[0]


class TestGetOrFetchTranscript:
    def test_cache_hit_skips_fetch(self, store, video_row):
        store.save_video(**video_row)
        store.set_transcript(video_row["video_id"], "cached text")
        with patch("yt_briefing.transcriber.fetch_transcript") as fetch:
            result = get_or_fetch_transcript(store, video_row["video_id"])
        fetch.assert_not_called()
        assert result == TranscriptResult(text="cached text", available=True)

    def test_miss_fetches_and_caches(self, store, video_row):
        store.save_video(**video_row)
        fetched = TranscriptResult(text="fresh", available=True)
        with patch("yt_briefing.transcriber.fetch_transcript", return_value=fetched):
            assert get_or_fetch_transcript(store, video_row["video_id"]) == fetched
        assert store.get_transcript(video_row["video_id"]) == (TranscriptState.CACHED, "fresh")

    def test_unavailable_is_recorded_and_retried(self, store, video_row):
        vid = video_row["video_id"]
        store.save_video(**video_row)
        with patch("yt_briefing.transcriber.fetch_transcript", return_value=UNAVAILABLE):
            assert get_or_fetch_transcript(store, vid).available is False
        assert store.get_transcript(vid) == (TranscriptState.UNAVAILABLE, None)

        fetched = TranscriptResult(text="now there", available=True)
        with patch("yt_briefing.transcriber.fetch_transcript", return_value=fetched) as fetch:
            assert get_or_fetch_transcript(store, vid).text == "now there"
        fetch.assert_called_once_with(vid)

    def test_storage_failure_still_returns_text(self, video_row):
        broken = MagicMock()
        broken.get_transcript.side_effect = RuntimeError("db locked")
        broken.set_transcript.side_effect = RuntimeError("db locked")
        fetched = TranscriptResult(text="fresh", available=True)
        with patch("yt_briefing.transcriber.fetch_transcript", return_value=fetched):
            assert get_or_fetch_transcript(broken, video_row["video_id"]) == fetched
