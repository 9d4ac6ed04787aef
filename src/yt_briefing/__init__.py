"""yt-briefing: channel subscriptions, AI video summaries and per-video chat."""

__version__ = "0.1.0"
