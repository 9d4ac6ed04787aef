"""MCP server: tools list_subscriptions, list_summaries, summarize_video, get_task, list_tasks, ask_about_video."""

from __future__ import annotations

import logging
from typing import Optional

from yt_briefing.config import get_app_config
from yt_briefing.services import Services, build_services

log = logging.getLogger("yt_briefing.mcp_server")


_services_instance: Optional[Services] = None


def _get_services() -> Services:
    global _services_instance
    if _services_instance is None:
        _services_instance = build_services()
    return _services_instance


def run_mcp_server() -> None:
    try:
        from mcp.server.fastmcp import FastMCP
    except ImportError:
        raise SystemExit("MCP server requires the mcp package. Install with: pip install yt-briefing[mcp]")

    mcp = FastMCP("yt-briefing", json_response=True)
    services_factory = _get_services

    def _user(user_id: Optional[str]) -> str:
        return user_id or get_app_config().user_id

    @mcp.tool()
    def list_subscriptions(user_id: Optional[str] = None) -> dict:
        """List the user's channel subscriptions."""
        svc = services_factory()
        subs = svc.storage.list_subscriptions(_user(user_id))
        return {
            "subscriptions": [
                {"channel_id": s["channel_id"], "channel_name": s["channel_name"], "video_count": s["video_count"]}
                for s in subs
            ]
        }

    @mcp.tool()
    def list_summaries(user_id: Optional[str] = None, limit: int = 20) -> dict:
        """List the user's video summaries, newest first (brief and detailed text)."""
        svc = services_factory()
        rows = svc.storage.list_user_summaries(_user(user_id), limit=limit)
        return {
            "summaries": [
                {
                    "video_id": r["video_id"],
                    "title": r.get("title", ""),
                    "brief": r["brief"],
                    "detailed": r.get("detailed") or "",
                }
                for r in rows
            ]
        }

    @mcp.tool()
    def summarize_video(video_url: str, user_id: Optional[str] = None) -> dict:
        """Start summarizing one YouTube video. Poll get_task with the returned task_id."""
        svc = services_factory()
        try:
            ack = svc.pipeline.summarize_url(_user(user_id), video_url)
        except (ValueError, LookupError) as exc:
            return {"error": str(exc)}
        return ack.to_dict()

    @mcp.tool()
    def get_task(task_id: str) -> dict:
        """Return the status and progress of a background summarization task."""
        svc = services_factory()
        task = svc.registry.get_task(task_id)
        if task is None:
            return {"error": f"Task not found: {task_id}"}
        return task.to_dict()

    @mcp.tool()
    def list_tasks(user_id: Optional[str] = None, active_only: bool = False, limit: int = 10) -> dict:
        """List recent background tasks for the user, newest first."""
        svc = services_factory()
        user = _user(user_id)
        if active_only:
            tasks = svc.registry.get_active_tasks(user)
        else:
            tasks = svc.registry.get_recent_tasks(user, limit=limit)
        return {"tasks": [t.to_dict() for t in tasks]}

    @mcp.tool()
    def ask_about_video(video_id: str, question: str, user_id: Optional[str] = None) -> dict:
        """Ask a question about a stored video; the answer may use web search."""
        svc = services_factory()
        try:
            answer = svc.chat.send(_user(user_id), video_id, question)
        except (ValueError, LookupError) as exc:
            return {"error": str(exc)}
        return {"video_id": video_id, "answer": answer}

    mcp.run(transport="stdio")


if __name__ == "__main__":
    run_mcp_server()
