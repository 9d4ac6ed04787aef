"""Storage layer: SQLite CRUD for subscriptions, videos, transcripts, summaries and chat messages."""
from contextlib import contextmanager
from enum import Enum
import logging
from pathlib import Path
import sqlite3
from typing import Any, Dict, Generator, List, Optional, Tuple, TypedDict, Union

from yt_briefing.init_db import get_schema_sql

log = logging.getLogger("yt_briefing.storage")


class TranscriptState(str, Enum):
    """Cache state of a video's transcript column."""

    NEVER_ATTEMPTED = "never_attempted"
    UNAVAILABLE = "unavailable"
    CACHED = "cached"


class SummarySource(str, Enum):
    SUBSCRIPTION = "subscription"
    DIRECT = "direct"


# ---------------------------------------------------------------------------
# TypedDict row types: give callers type-safe access to dict keys.
# ---------------------------------------------------------------------------


class SubscriptionRow(TypedDict):
    id: int
    user_id: str
    channel_id: str
    channel_name: str
    channel_thumbnail: Optional[str]
    video_count: Optional[int]
    created_at: str


class VideoRow(TypedDict):
    video_id: str
    channel_id: str
    title: str
    description: str
    published_at: Optional[str]
    thumbnail_url: Optional[str]
    duration: Optional[str]
    transcript: Optional[str]
    transcript_state: str
    created_at: str


class SummaryRow(TypedDict):
    id: int
    user_id: str
    video_id: str
    brief: str
    detailed: Optional[str]
    source: str
    created_at: str


class ChatMessageRow(TypedDict):
    id: int
    user_id: str
    video_id: str
    role: str
    content: str
    created_at: str


# ---------------------------------------------------------------------------
# Storage class
# ---------------------------------------------------------------------------

def _dict_row(cursor: sqlite3.Cursor, row: tuple) -> Dict[str, Any]:
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


class Storage:
    """Thin SQLite wrapper. Every call opens its own short-lived connection,
    so one instance can be shared by request handlers and job threads."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        if not self.db_path or str(self.db_path).strip() in ("", "."):
            raise ValueError(
                "Database path is empty. Pass --db a file path (e.g. ./yt_briefing.db) or set YT_BRIEFING_DB."
            )

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = _dict_row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield a connection for batch operations; commit on success, rollback on error."""
        conn = self._conn()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._conn()
        try:
            conn.executescript(get_schema_sql())
            conn.commit()
        finally:
            conn.close()

    # ------ Subscriptions ------

    def add_subscription(
        self,
        *,
        user_id: str,
        channel_id: str,
        channel_name: str,
        channel_thumbnail: Optional[str] = None,
        video_count: Optional[int] = None,
    ) -> bool:
        """Insert a subscription. Returns False if (user, channel) already exists."""
        conn = self._conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO subscriptions (user_id, channel_id, channel_name, channel_thumbnail, video_count)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, channel_id) DO NOTHING
                """,
                (user_id, channel_id, channel_name, channel_thumbnail, video_count),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_subscription(self, user_id: str, channel_id: str) -> Optional[SubscriptionRow]:
        conn = self._conn()
        try:
            cur = conn.execute(
                "SELECT * FROM subscriptions WHERE user_id = ? AND channel_id = ?",
                (user_id, channel_id),
            )
            return cur.fetchone()  # type: ignore[return-value]
        finally:
            conn.close()

    def list_subscriptions(self, user_id: str) -> List[SubscriptionRow]:
        conn = self._conn()
        try:
            cur = conn.execute(
                "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
            return cur.fetchall()  # type: ignore[return-value]
        finally:
            conn.close()

    def list_all_subscriptions(self) -> List[SubscriptionRow]:
        conn = self._conn()
        try:
            cur = conn.execute("SELECT * FROM subscriptions ORDER BY channel_id, id")
            return cur.fetchall()  # type: ignore[return-value]
        finally:
            conn.close()

    def remove_subscription(self, user_id: str, channel_id: str) -> bool:
        conn = self._conn()
        try:
            cur = conn.execute(
                "DELETE FROM subscriptions WHERE user_id = ? AND channel_id = ?",
                (user_id, channel_id),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def update_subscription_video_count(self, user_id: str, channel_id: str, video_count: Optional[int]) -> bool:
        conn = self._conn()
        try:
            cur = conn.execute(
                "UPDATE subscriptions SET video_count = ? WHERE user_id = ? AND channel_id = ?",
                (video_count, user_id, channel_id),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    # ------ User settings ------

    def get_user_video_count(self, user_id: str) -> Optional[int]:
        """The user's default videos-per-channel, or None when unset."""
        conn = self._conn()
        try:
            row = conn.execute("SELECT video_count FROM user_settings WHERE user_id = ?", (user_id,)).fetchone()
            return row["video_count"] if row else None
        finally:
            conn.close()

    def set_user_video_count(self, user_id: str, video_count: Optional[int]) -> None:
        """Store the user's default videos-per-channel; None clears it."""
        conn = self._conn()
        try:
            conn.execute(
                """
                INSERT INTO user_settings (user_id, video_count) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    video_count = excluded.video_count,
                    updated_at = datetime('now')
                """,
                (user_id, video_count),
            )
            conn.commit()
        finally:
            conn.close()

    # ------ Videos ------

    def save_video(
        self,
        *,
        video_id: str,
        channel_id: str,
        title: str = "",
        description: str = "",
        published_at: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
        duration: Optional[str] = None,
    ) -> bool:
        """Insert video metadata once per video id.

        A second save for the same id is a silent no-op; returns True only
        when a row was actually created.
        """
        conn = self._conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO videos (video_id, channel_id, title, description, published_at, thumbnail_url, duration)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(video_id) DO NOTHING
                """,
                (video_id, channel_id, title or "", description or "", published_at, thumbnail_url, duration),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_video(self, video_id: str) -> Optional[VideoRow]:
        conn = self._conn()
        try:
            cur = conn.execute("SELECT * FROM videos WHERE video_id = ?", (video_id,))
            return cur.fetchone()  # type: ignore[return-value]
        finally:
            conn.close()

    def video_exists(self, video_id: str) -> bool:
        conn = self._conn()
        try:
            cur = conn.execute("SELECT 1 FROM videos WHERE video_id = ?", (video_id,))
            return cur.fetchone() is not None
        finally:
            conn.close()

    # ------ Transcript cache ------

    def get_transcript(self, video_id: str) -> Tuple[TranscriptState, Optional[str]]:
        """Return (state, text). Text is only set when state is CACHED.

        A video with no row at all reports NEVER_ATTEMPTED.
        """
        conn = self._conn()
        try:
            cur = conn.execute(
                "SELECT transcript, transcript_state FROM videos WHERE video_id = ?",
                (video_id,),
            )
            row = cur.fetchone()
        finally:
            conn.close()
        if row is None:
            return (TranscriptState.NEVER_ATTEMPTED, None)
        state = TranscriptState(row["transcript_state"])
        if state is TranscriptState.CACHED:
            return (state, row["transcript"] or "")
        return (state, None)

    def set_transcript(self, video_id: str, text: str) -> None:
        self._write_transcript(video_id, text, TranscriptState.CACHED)

    def mark_transcript_unavailable(self, video_id: str) -> None:
        self._write_transcript(video_id, None, TranscriptState.UNAVAILABLE)

    def reset_transcript(self, video_id: str) -> None:
        self._write_transcript(video_id, None, TranscriptState.NEVER_ATTEMPTED)

    def _write_transcript(self, video_id: str, text: Optional[str], state: TranscriptState) -> None:
        conn = self._conn()
        try:
            conn.execute(
                "UPDATE videos SET transcript = ?, transcript_state = ? WHERE video_id = ?",
                (text, state.value, video_id),
            )
            conn.commit()
        finally:
            conn.close()

    # ------ Summaries ------

    def save_summary(
        self,
        *,
        user_id: str,
        video_id: str,
        brief: str,
        detailed: Optional[str],
        source: Union[SummarySource, str] = SummarySource.SUBSCRIPTION,
    ) -> bool:
        """Insert a user's summary. Returns False when the user already has one for the video."""
        source_value = SummarySource(source).value
        conn = self._conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO summaries (user_id, video_id, brief, detailed, source)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, video_id) DO NOTHING
                """,
                (user_id, video_id, brief, detailed, source_value),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_user_summary_for_video(self, user_id: str, video_id: str) -> Optional[SummaryRow]:
        conn = self._conn()
        try:
            cur = conn.execute(
                "SELECT * FROM summaries WHERE user_id = ? AND video_id = ?",
                (user_id, video_id),
            )
            return cur.fetchone()  # type: ignore[return-value]
        finally:
            conn.close()

    def list_user_summaries(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Return the user's summaries joined with video metadata, newest first."""
        conn = self._conn()
        try:
            cur = conn.execute(
                """
                SELECT s.id, s.video_id, s.brief, s.detailed, s.source, s.created_at,
                       v.title, v.channel_id, v.published_at, v.duration
                FROM summaries s
                JOIN videos v ON v.video_id = s.video_id
                WHERE s.user_id = ?
                ORDER BY s.created_at DESC, s.id DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            return cur.fetchall()
        finally:
            conn.close()

    def delete_summary(self, user_id: str, video_id: str) -> bool:
        """Delete the user's summary for a video.

        When no summary references the video any more, its transcript cache is
        reset to never-attempted so the next summary re-fetches captions.
        """
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM summaries WHERE user_id = ? AND video_id = ?",
                (user_id, video_id),
            )
            if cur.rowcount == 0:
                return False
            remaining = conn.execute(
                "SELECT COUNT(*) AS cnt FROM summaries WHERE video_id = ?",
                (video_id,),
            ).fetchone()["cnt"]
            if remaining == 0:
                conn.execute(
                    "UPDATE videos SET transcript = NULL, transcript_state = ? WHERE video_id = ?",
                    (TranscriptState.NEVER_ATTEMPTED.value, video_id),
                )
                log.debug("Reset transcript cache for %s (no summaries left)", video_id)
            return True

    # ------ Chat messages ------

    def get_chat_history(self, user_id: str, video_id: str) -> List[ChatMessageRow]:
        conn = self._conn()
        try:
            cur = conn.execute(
                "SELECT * FROM chat_messages WHERE user_id = ? AND video_id = ? ORDER BY id",
                (user_id, video_id),
            )
            return cur.fetchall()  # type: ignore[return-value]
        finally:
            conn.close()

    def save_chat_message(self, *, user_id: str, video_id: str, role: str, content: str) -> int:
        conn = self._conn()
        try:
            cur = conn.execute(
                "INSERT INTO chat_messages (user_id, video_id, role, content) VALUES (?, ?, ?, ?)",
                (user_id, video_id, role, content),
            )
            conn.commit()
            return int(cur.lastrowid)
        finally:
            conn.close()

    def delete_chat_history(self, user_id: str, video_id: str) -> int:
        conn = self._conn()
        try:
            cur = conn.execute(
                "DELETE FROM chat_messages WHERE user_id = ? AND video_id = ?",
                (user_id, video_id),
            )
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()
