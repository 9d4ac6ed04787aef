"""Tests for storage: subscriptions, videos, transcript cache, summaries, chat messages."""

import sqlite3

import pytest

from yt_briefing.storage import Storage, SummarySource, TranscriptState


def _sub(store, user="u1", channel="UC1", name="Chan", count=None):
    return store.add_subscription(user_id=user, channel_id=channel, channel_name=name, video_count=count)


class TestSchema:
    def test_ensure_schema_idempotent(self, store):
        store.ensure_schema()
        store.ensure_schema()
        assert store.list_all_subscriptions() == []

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            Storage("")


class TestSubscriptions:
    def test_add_and_get(self, store):
        assert _sub(store, count=5) is True
        row = store.get_subscription("u1", "UC1")
        assert row["channel_name"] == "Chan"
        assert row["video_count"] == 5

    def test_duplicate_is_rejected(self, store):
        assert _sub(store) is True
        assert _sub(store, name="Other") is False
        assert len(store.list_subscriptions("u1")) == 1
        assert store.get_subscription("u1", "UC1")["channel_name"] == "Chan"

    def test_same_channel_different_users(self, store):
        _sub(store, user="u1")
        _sub(store, user="u2")
        assert len(store.list_all_subscriptions()) == 2
        assert len(store.list_subscriptions("u2")) == 1

    def test_remove(self, store):
        _sub(store)
        assert store.remove_subscription("u1", "UC1") is True
        assert store.remove_subscription("u1", "UC1") is False
        assert store.get_subscription("u1", "UC1") is None

    def test_update_video_count(self, store):
        _sub(store)
        assert store.update_subscription_video_count("u1", "UC1", 7) is True
        assert store.get_subscription("u1", "UC1")["video_count"] == 7
        assert store.update_subscription_video_count("u1", "UC1", None) is True
        assert store.get_subscription("u1", "UC1")["video_count"] is None

    def test_update_missing_subscription(self, store):
        assert store.update_subscription_video_count("u1", "nope", 3) is False


class TestUserSettings:
    def test_unset_is_none(self, store):
        assert store.get_user_video_count("u1") is None

    def test_set_overwrite_and_clear(self, store):
        store.set_user_video_count("u1", 5)
        store.set_user_video_count("u2", 2)
        store.set_user_video_count("u1", 8)
        assert store.get_user_video_count("u1") == 8
        assert store.get_user_video_count("u2") == 2
        store.set_user_video_count("u1", None)
        assert store.get_user_video_count("u1") is None


class TestVideos:
    def test_save_is_idempotent(self, store, video_row):
        assert store.save_video(**video_row) is True
        assert store.save_video(**{**video_row, "title": "Changed"}) is False
        assert store.get_video(video_row["video_id"])["title"] == "A talk"

    def test_video_exists(self, store, video_row):
        assert store.video_exists(video_row["video_id"]) is False
        store.save_video(**video_row)
        assert store.video_exists(video_row["video_id"]) is True

    def test_new_video_transcript_never_attempted(self, store, video_row):
        store.save_video(**video_row)
        assert store.get_video(video_row["video_id"])["transcript_state"] == "never_attempted"


class TestTranscriptCache:
    def test_unknown_video_is_never_attempted(self, store):
        assert store.get_transcript("missing") == (TranscriptState.NEVER_ATTEMPTED, None)

    def test_cached_text(self, store, video_row):
        store.save_video(**video_row)
        store.set_transcript(video_row["video_id"], "hello there")
        assert store.get_transcript(video_row["video_id"]) == (TranscriptState.CACHED, "hello there")

    def test_unavailable_has_no_text(self, store, video_row):
        store.save_video(**video_row)
        store.mark_transcript_unavailable(video_row["video_id"])
        assert store.get_transcript(video_row["video_id"]) == (TranscriptState.UNAVAILABLE, None)

    def test_reset(self, store, video_row):
        store.save_video(**video_row)
        store.set_transcript(video_row["video_id"], "text")
        store.reset_transcript(video_row["video_id"])
        assert store.get_transcript(video_row["video_id"]) == (TranscriptState.NEVER_ATTEMPTED, None)


class TestSummaries:
    def test_save_and_get(self, store, video_row):
        store.save_video(**video_row)
        assert store.save_summary(
            user_id="u1", video_id=video_row["video_id"], brief="b", detailed="d", source=SummarySource.DIRECT
        )
        row = store.get_user_summary_for_video("u1", video_row["video_id"])
        assert row["brief"] == "b"
        assert row["source"] == "direct"

    def test_one_summary_per_user_and_video(self, store, video_row):
        store.save_video(**video_row)
        vid = video_row["video_id"]
        assert store.save_summary(user_id="u1", video_id=vid, brief="first", detailed="d") is True
        assert store.save_summary(user_id="u1", video_id=vid, brief="second", detailed="d") is False
        assert store.get_user_summary_for_video("u1", vid)["brief"] == "first"
        assert store.save_summary(user_id="u2", video_id=vid, brief="other user", detailed="d") is True

    def test_summary_requires_video(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            store.save_summary(user_id="u1", video_id="nosuchvideo", brief="b", detailed="d")

    def test_invalid_source_rejected(self, store, video_row):
        store.save_video(**video_row)
        with pytest.raises(ValueError):
            store.save_summary(user_id="u1", video_id=video_row["video_id"], brief="b", detailed="d", source="rss")

    def test_list_joins_video_metadata(self, store, video_row):
        store.save_video(**video_row)
        store.save_summary(user_id="u1", video_id=video_row["video_id"], brief="b", detailed="d")
        rows = store.list_user_summaries("u1")
        assert len(rows) == 1
        assert rows[0]["title"] == "A talk"
        assert store.list_user_summaries("u2") == []

    def test_delete_last_summary_resets_transcript(self, store, video_row):
        vid = video_row["video_id"]
        store.save_video(**video_row)
        store.set_transcript(vid, "text")
        store.save_summary(user_id="u1", video_id=vid, brief="b", detailed="d")
        assert store.delete_summary("u1", vid) is True
        assert store.get_transcript(vid) == (TranscriptState.NEVER_ATTEMPTED, None)

    def test_delete_keeps_transcript_while_others_remain(self, store, video_row):
        vid = video_row["video_id"]
        store.save_video(**video_row)
        store.set_transcript(vid, "text")
        store.save_summary(user_id="u1", video_id=vid, brief="b", detailed="d")
        store.save_summary(user_id="u2", video_id=vid, brief="b", detailed="d")
        assert store.delete_summary("u1", vid) is True
        assert store.get_transcript(vid) == (TranscriptState.CACHED, "text")

    def test_delete_missing_summary(self, store):
        assert store.delete_summary("u1", "nothing") is False


class TestChatMessages:
    def test_history_in_insertion_order(self, store):
        store.save_chat_message(user_id="u1", video_id="v1", role="user", content="q1")
        store.save_chat_message(user_id="u1", video_id="v1", role="assistant", content="a1")
        store.save_chat_message(user_id="u1", video_id="v1", role="user", content="q2")
        history = store.get_chat_history("u1", "v1")
        assert [m["content"] for m in history] == ["q1", "a1", "q2"]

    def test_history_scoped_by_user_and_video(self, store):
        store.save_chat_message(user_id="u1", video_id="v1", role="user", content="mine")
        store.save_chat_message(user_id="u2", video_id="v1", role="user", content="theirs")
        store.save_chat_message(user_id="u1", video_id="v2", role="user", content="other video")
        assert [m["content"] for m in store.get_chat_history("u1", "v1")] == ["mine"]

    def test_invalid_role_rejected(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            store.save_chat_message(user_id="u1", video_id="v1", role="system", content="x")

    def test_delete_history(self, store):
        store.save_chat_message(user_id="u1", video_id="v1", role="user", content="q")
        store.save_chat_message(user_id="u1", video_id="v1", role="assistant", content="a")
        store.save_chat_message(user_id="u2", video_id="v1", role="user", content="keep")
        assert store.delete_chat_history("u1", "v1") == 2
        assert store.get_chat_history("u1", "v1") == []
        assert len(store.get_chat_history("u2", "v1")) == 1
