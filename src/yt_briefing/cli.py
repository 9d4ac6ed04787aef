"""CLI entrypoint: serve the API, manage subscriptions, summarize videos, chat, daily check."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Ensure output appears in terminal (e.g. when run as pip-installed console_scripts)
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(line_buffering=True)
if hasattr(sys.stderr, "reconfigure"):
    sys.stderr.reconfigure(line_buffering=True)

from yt_briefing import __version__
from yt_briefing.config import get_app_config
from yt_briefing.paths import resolve_db_path
from yt_briefing.services import Services, build_services
from yt_briefing.tasks import BackgroundTask

log = logging.getLogger("yt_briefing.cli")

# Module-level quiet flag: set once in main(), read-only afterward.
_quiet = False


def _hint(*lines: str) -> None:
    """Print next-step hints to stderr.  Suppressed when --quiet is active."""
    if _quiet:
        return
    sys.stderr.write("\n")
    for line in lines:
        sys.stderr.write(f"  {line}\n")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _format_task(task: BackgroundTask) -> str:
    line = (
        f"{task.id[:8]}  {task.status.value:<10}  {task.processed_videos}/{task.total_videos}  "
        f"{task.channel_name}"
    )
    if task.error:
        line += f"  ({task.error})"
    return line


def _wait(svc: Services, task_id: Optional[str], label: str) -> None:
    """Block until the job finishes; the registry lives in this process only."""
    if not task_id:
        return
    log.info("%s: task %s started", label, task_id[:8])
    task = svc.supervisor.wait_for(task_id)
    if task is None:
        return
    print(_format_task(task))
    if task.error:
        raise SystemExit(f"{label} failed: {task.error}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yt-briefing",
        description="Subscribe to YouTube channels, get AI summaries of new videos, chat about them.",
        epilog=(
            "LLM provider: set YT_BRIEFING_LLM_PROVIDER (openai, deepseek, qwen, ollama) or "
            "OPENAI_BASE_URL / OPENAI_API_KEY.  Channel listing needs YOUTUBE_API_KEY; "
            "chat web search needs TAVILY_API_KEY."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to SQLite DB (default: <data-dir>/data/yt_briefing.db)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Data directory for the database (default: YT_BRIEFING_DATA_DIR or cwd)",
    )
    parser.add_argument(
        "--user",
        default=None,
        dest="user_id",
        help="User id to act as (default: YT_BRIEFING_USER or 'local')",
    )
    parser.add_argument(
        "--provider",
        default="",
        help="LLM provider for this run (overrides YT_BRIEFING_LLM_PROVIDER)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress next-step hints after commands (for scripting/piping)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind address (default: YT_BRIEFING_HOST or 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: YT_BRIEFING_PORT or 8000)")
    p_serve.set_defaults(func=_cmd_serve)

    p_search = subparsers.add_parser("search-channels", help="Search YouTube channels by name")
    p_search.add_argument("query", help="Search text")
    p_search.set_defaults(func=_cmd_search_channels)

    p_sub = subparsers.add_parser("subscribe", help="Subscribe to a channel and summarize its latest videos")
    p_sub.add_argument("channel_id", help="YouTube channel id (UC...)")
    p_sub.add_argument("--name", default=None, help="Channel name (looked up when omitted)")
    p_sub.add_argument("--count", type=int, default=None, help="Videos to summarize, 1-10 (default 3)")
    p_sub.add_argument("--no-wait", action="store_true", help="Return once the job is queued")
    p_sub.set_defaults(func=_cmd_subscribe)

    p_unsub = subparsers.add_parser("unsubscribe", help="Remove a channel subscription")
    p_unsub.add_argument("channel_id")
    p_unsub.set_defaults(func=_cmd_unsubscribe)

    p_list = subparsers.add_parser("subscriptions", help="List your subscriptions")
    p_list.set_defaults(func=_cmd_subscriptions)

    p_count = subparsers.add_parser("set-count", help="Change how many videos a subscription summarizes")
    p_count.add_argument("channel_id")
    p_count.add_argument("count", type=int, nargs="?", default=None, help="1-10; omit to reset to the default")
    p_count.set_defaults(func=_cmd_set_count)

    p_default = subparsers.add_parser("set-default-count", help="Set your default videos per channel")
    p_default.add_argument("count", type=int, nargs="?", default=None, help="1-10; omit to reset to the app default")
    p_default.set_defaults(func=_cmd_set_default_count)

    p_refresh = subparsers.add_parser("refresh", help="Re-scan a subscribed channel for unsummarized videos")
    p_refresh.add_argument("channel_id")
    p_refresh.set_defaults(func=_cmd_refresh)

    p_sum = subparsers.add_parser("summarize", help="Summarize a single video by URL")
    p_sum.add_argument("url", help="Video URL (watch, youtu.be, shorts, embed, live) or bare id")
    p_sum.set_defaults(func=_cmd_summarize)

    p_summaries = subparsers.add_parser("summaries", help="List your summaries, newest first")
    p_summaries.add_argument("--limit", type=int, default=20)
    p_summaries.add_argument("--json", action="store_true", help="Print JSON")
    p_summaries.set_defaults(func=_cmd_summaries)

    p_delete = subparsers.add_parser("delete-summary", help="Delete your summary of a video")
    p_delete.add_argument("video_id")
    p_delete.set_defaults(func=_cmd_delete_summary)

    p_chat = subparsers.add_parser("chat", help="Ask a question about a summarized video (streams the answer)")
    p_chat.add_argument("video_id")
    p_chat.add_argument("message")
    p_chat.set_defaults(func=_cmd_chat)

    p_history = subparsers.add_parser("chat-history", help="Show the conversation about a video")
    p_history.add_argument("video_id")
    p_history.set_defaults(func=_cmd_chat_history)

    p_clear = subparsers.add_parser("clear-chat", help="Delete the conversation about a video")
    p_clear.add_argument("video_id")
    p_clear.set_defaults(func=_cmd_clear_chat)

    p_check = subparsers.add_parser(
        "check-new",
        help="Summarize videos published in the last 24h for every subscriber (run daily from cron)",
    )
    p_check.set_defaults(func=_cmd_check_new)

    p_doctor = subparsers.add_parser("doctor", help="Check your setup: yt-dlp, API keys, LLM endpoint")
    p_doctor.set_defaults(func=_cmd_doctor)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging: default INFO; YT_BRIEFING_LOG_LEVEL overrides (e.g. DEBUG, WARNING).
    app = get_app_config()
    logging.basicConfig(
        format="%(levelname)s: %(message)s",
        level=getattr(logging, app.log_level, logging.INFO),
        stream=sys.stderr,
    )

    global _quiet  # noqa: PLW0603
    _quiet = getattr(args, "quiet", False)

    args.user_id = (args.user_id or app.user_id).strip() or "local"
    db_path = resolve_db_path(args.data_dir, args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    svc = build_services(db_path, provider=args.provider, start_sweeper=args.command == "serve")
    try:
        args.func(args, svc)
    except KeyboardInterrupt:
        log.info("Interrupted.")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:  # noqa: BLE001
        log.error("yt-briefing error: %s", e)
        log.debug("Traceback:", exc_info=True)
        sys.exit(1)
    finally:
        svc.close(wait=False)


def _cmd_serve(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.api import run_server

    app = get_app_config()
    run_server(args.host or app.host, args.port or app.port, services=svc)


def _cmd_search_channels(args: argparse.Namespace, svc: Services) -> None:
    channels = svc.youtube.search_channels(args.query)
    if not channels:
        print("No channels found.")
        return
    for ch in channels:
        print(f"{ch.id}  {ch.title}")
    _hint("\U0001f4a1 Next: yt-briefing subscribe CHANNEL_ID")


def _cmd_subscribe(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.pipeline import AlreadySubscribedError

    name = args.name
    thumbnail = None
    if not name:
        channel = svc.youtube.get_channel_details(args.channel_id)
        if channel is None:
            raise SystemExit(f"Channel not found: {args.channel_id}")
        name, thumbnail = channel.title, channel.thumbnail
    try:
        ack = svc.pipeline.subscribe(
            args.user_id, args.channel_id, name, channel_thumbnail=thumbnail, video_count=args.count
        )
    except AlreadySubscribedError as e:
        raise SystemExit(str(e))
    except ValueError as e:
        raise SystemExit(str(e))
    print(ack.message)
    if not args.no_wait:
        _wait(svc, ack.task_id, "Subscribe")
        _hint("\U0001f4a1 Next: yt-briefing summaries")


def _cmd_unsubscribe(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.pipeline import SubscriptionNotFoundError

    try:
        svc.pipeline.unsubscribe(args.user_id, args.channel_id)
    except SubscriptionNotFoundError as e:
        raise SystemExit(str(e))
    print(f"Unsubscribed from {args.channel_id}")


def _cmd_subscriptions(args: argparse.Namespace, svc: Services) -> None:
    subs = svc.storage.list_subscriptions(args.user_id)
    if not subs:
        print("No subscriptions.")
        _hint("\U0001f4a1 Find a channel: yt-briefing search-channels \"channel name\"")
        return
    default = svc.pipeline.default_video_count(args.user_id)
    for sub in subs:
        print(f"{sub['channel_id']}  {sub['channel_name']}  (videos: {sub['video_count'] or default})")


def _cmd_set_count(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.pipeline import SubscriptionNotFoundError

    try:
        svc.pipeline.update_video_count(args.user_id, args.channel_id, args.count)
    except (SubscriptionNotFoundError, ValueError) as e:
        raise SystemExit(str(e))
    print(f"Video count for {args.channel_id}: {args.count or 'default'}")


def _cmd_set_default_count(args: argparse.Namespace, svc: Services) -> None:
    try:
        svc.pipeline.set_default_video_count(args.user_id, args.count)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"Default videos per channel: {svc.pipeline.default_video_count(args.user_id)}")


def _cmd_refresh(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.pipeline import SubscriptionNotFoundError

    try:
        ack = svc.pipeline.refresh_channel(args.user_id, args.channel_id)
    except SubscriptionNotFoundError as e:
        raise SystemExit(str(e))
    print(ack.message)
    _wait(svc, ack.task_id, "Refresh")


def _cmd_summarize(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.pipeline import InvalidVideoUrlError, VideoUnavailableError

    try:
        ack = svc.pipeline.summarize_url(args.user_id, args.url)
    except (InvalidVideoUrlError, VideoUnavailableError) as e:
        raise SystemExit(str(e))
    print(ack.message)
    _wait(svc, ack.task_id, "Summarize")
    summary = svc.storage.get_user_summary_for_video(args.user_id, ack.video_id or "")
    if summary:
        print()
        print(summary["brief"])
        _hint(f"\U0001f4a1 Next: yt-briefing chat {ack.video_id} \"your question\"")


def _cmd_summaries(args: argparse.Namespace, svc: Services) -> None:
    rows = svc.storage.list_user_summaries(args.user_id, limit=args.limit)
    if args.json:
        _print_json(rows)
        return
    if not rows:
        print("No summaries yet.")
        return
    for row in rows:
        print(f"[{row['video_id']}] {row.get('title') or ''}")
        print(f"    {row['brief']}")


def _cmd_delete_summary(args: argparse.Namespace, svc: Services) -> None:
    if not svc.storage.delete_summary(args.user_id, args.video_id):
        raise SystemExit(f"No summary for {args.video_id}")
    print(f"Deleted summary for {args.video_id}")


def _cmd_chat(args: argparse.Namespace, svc: Services) -> None:
    from yt_briefing.chat import VideoNotFoundError

    try:
        events = svc.chat.stream(args.user_id, args.video_id, args.message)
    except (VideoNotFoundError, ValueError) as e:
        raise SystemExit(str(e))
    failed = False
    for event in events:
        if "content" in event:
            sys.stdout.write(event["content"])
            sys.stdout.flush()
        elif "searching" in event:
            sys.stderr.write(f"\n[searching: {event['searching']}]\n")
        elif "error" in event:
            sys.stderr.write(f"\n{event['error']}\n")
            failed = True
    sys.stdout.write("\n")
    if failed:
        sys.exit(1)


def _cmd_chat_history(args: argparse.Namespace, svc: Services) -> None:
    messages = svc.chat.history(args.user_id, args.video_id)
    if not messages:
        print("No messages.")
        return
    for msg in messages:
        print(f"{msg['role']}: {msg['content']}")
        print()


def _cmd_clear_chat(args: argparse.Namespace, svc: Services) -> None:
    removed = svc.chat.clear(args.user_id, args.video_id)
    print(f"Removed {removed} message(s)")


def _cmd_check_new(args: argparse.Namespace, svc: Services) -> None:
    result = svc.pipeline.check_new_videos()
    print(f"Channels: {result.channels}")
    print(f"New videos: {result.new_videos}")
    print(f"Summaries: {result.summaries}")


def _cmd_doctor(args: argparse.Namespace, svc: Services) -> None:
    """Pre-flight checks: yt-dlp, YouTube API key, web search key, LLM endpoint."""
    import shutil
    import subprocess

    from yt_briefing.config import get_search_config
    from yt_briefing.llm import check_connectivity, get_config_summary
    from yt_briefing.yt_dlp_util import get_auth_config

    counts = {"ok": 0, "warn": 0, "fail": 0}

    def _ok(msg: str) -> None:
        counts["ok"] += 1
        print(f"  ✅ OK   {msg}")

    def _warn(msg: str) -> None:
        counts["warn"] += 1
        print(f"  ⚠️  WARN {msg}")

    def _fail(msg: str) -> None:
        counts["fail"] += 1
        print(f"  ❌ FAIL {msg}")

    print("yt-briefing doctor")
    print("=" * 50)
    print()

    print("[1/4] yt-dlp installation (transcripts)")
    yt_dlp_path = shutil.which("yt-dlp")
    if yt_dlp_path:
        try:
            ver = subprocess.run(["yt-dlp", "--version"], capture_output=True, text=True, timeout=10)
            _ok(f"yt-dlp found: {yt_dlp_path} (version {(ver.stdout or '').strip()})")
        except (OSError, subprocess.SubprocessError):
            _ok(f"yt-dlp found: {yt_dlp_path} (could not get version)")
    else:
        _warn("yt-dlp not on PATH; falling back to 'python -m yt_dlp'")
    auth = get_auth_config()
    if auth["cookies_browser"] or auth["cookies_file"]:
        _ok("Cookies configured for yt-dlp")
    print()

    print("[2/4] YouTube Data API")
    if auth["api_key"]:
        _ok("YOUTUBE_API_KEY is set")
    else:
        _fail("YOUTUBE_API_KEY is not set. Channel search, subscriptions and URL summaries need it.")
    print()

    print("[3/4] Web search (chat tool)")
    if get_search_config().tavily_api_key:
        _ok("TAVILY_API_KEY is set")
    else:
        _warn("TAVILY_API_KEY is not set. Chat web searches will report that search is unavailable.")
    print()

    print("[4/4] LLM endpoint")
    llm = get_config_summary(args.provider)
    print(f"       Provider: {llm['provider']}")
    print(f"       Endpoint: {llm['base_url']}")
    print(f"       Model:    {llm['model']}")
    print(f"       Budget:   {llm['input_token_budget']} input tokens")
    try:
        check_connectivity(args.provider)
        _ok(f"LLM endpoint reachable ({llm['base_url']})")
    except RuntimeError as e:
        _fail(f"LLM endpoint unreachable. {e}")
    print()

    print("=" * 50)
    print(f"Summary: {counts['ok']} OK, {counts['warn']} warnings, {counts['fail']} failures")
    if counts["fail"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
