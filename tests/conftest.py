"""Pytest fixtures: temp DB for tests."""

import pytest

from yt_briefing import storage
from yt_briefing.config import (
    get_app_config,
    get_llm_config,
    get_search_config,
    get_task_config,
    get_youtube_config,
)

_CACHED_GETTERS = (
    get_youtube_config,
    get_llm_config,
    get_app_config,
    get_search_config,
    get_task_config,
)


@pytest.fixture(autouse=True)
def _clear_config_caches():
    """Clear all config lru_caches before each test so env var patches take effect."""
    for getter in _CACHED_GETTERS:
        getter.cache_clear()
    yield
    for getter in _CACHED_GETTERS:
        getter.cache_clear()


@pytest.fixture
def db_path(tmp_path):
    """Path to a temporary DB file (created and schema applied by storage)."""
    return str(tmp_path / "test.db")


@pytest.fixture
def store(db_path):
    """Storage instance with temp DB; DB is created and schema applied."""
    st = storage.Storage(db_path=db_path)
    st.ensure_schema()
    return st


@pytest.fixture
def video_row():
    """Keyword arguments for a stored video."""
    return {
        "video_id": "dQw4w9WgXcQ",
        "channel_id": "UC123",
        "title": "A talk",
        "description": "About things",
        "published_at": "2024-05-01T10:00:00Z",
        "thumbnail_url": "https://i.ytimg.com/x.jpg",
        "duration": "PT10M",
    }
