"""HTTP API (FastAPI): job triggers, task polling, chat (plain and SSE streaming).

The caller's identity comes from the ``X-User-Id`` header; session handling
is expected to live in front of this service.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from yt_briefing import __version__
from yt_briefing.chat import VideoNotFoundError
from yt_briefing.pipeline import (
    AlreadySubscribedError,
    InvalidVideoUrlError,
    SubscriptionNotFoundError,
    VideoUnavailableError,
)
from yt_briefing.services import Services, build_services
from yt_briefing.streaming import SSE_DONE, sse_event
from yt_briefing.youtube import YouTubeAPIError

log = logging.getLogger("yt_briefing.api")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SubscribeRequest(BaseModel):
    channel_id: str
    channel_name: str
    channel_thumbnail: Optional[str] = None
    video_count: Optional[int] = None


class VideoCountRequest(BaseModel):
    video_count: Optional[int] = None


class RefreshRequest(BaseModel):
    channel_name: Optional[str] = None


class DirectSummaryRequest(BaseModel):
    url: str


class ChatRequest(BaseModel):
    message: str


class ChatStreamRequest(BaseModel):
    video_id: Optional[str] = None
    message: Optional[str] = None


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the app. Without *services*, they are created on startup and closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services or build_services()
        try:
            yield
        finally:
            if owned:
                app.state.services.close(wait=False)

    app = FastAPI(title="yt-briefing", version=__version__, lifespan=lifespan)
    if services is not None:
        app.state.services = services

    def get_services(request: Request) -> Services:
        return request.app.state.services

    # ------ subscriptions ------

    @app.get("/api/subscriptions")
    def list_subscriptions(user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        return svc.storage.list_subscriptions(user_id)

    @app.post("/api/subscriptions")
    def subscribe(body: SubscribeRequest, user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        try:
            ack = svc.pipeline.subscribe(
                user_id,
                body.channel_id,
                body.channel_name,
                channel_thumbnail=body.channel_thumbnail,
                video_count=body.video_count,
            )
        except AlreadySubscribedError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return ack.to_dict()

    @app.delete("/api/subscriptions/{channel_id}")
    def unsubscribe(channel_id: str, user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        try:
            svc.pipeline.unsubscribe(user_id, channel_id)
        except SubscriptionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return {"success": True}

    @app.patch("/api/subscriptions/{channel_id}")
    def update_subscription(
        channel_id: str,
        body: VideoCountRequest,
        user_id: str = Depends(current_user),
        svc: Services = Depends(get_services),
    ):
        try:
            svc.pipeline.update_video_count(user_id, channel_id, body.video_count)
        except SubscriptionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"success": True}

    @app.post("/api/subscriptions/{channel_id}/refresh")
    def refresh_channel(
        channel_id: str,
        body: Optional[RefreshRequest] = None,
        user_id: str = Depends(current_user),
        svc: Services = Depends(get_services),
    ):
        try:
            ack = svc.pipeline.refresh_channel(user_id, channel_id, body.channel_name if body else None)
        except SubscriptionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return ack.to_dict()

    @app.get("/api/channels/search")
    def search_channels(q: str, svc: Services = Depends(get_services), user_id: str = Depends(current_user)):
        try:
            return [asdict(c) for c in svc.youtube.search_channels(q)]
        except YouTubeAPIError as exc:
            raise HTTPException(status_code=502, detail=str(exc))

    # ------ settings ------

    @app.get("/api/settings")
    def get_settings(user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        return {"video_count": svc.pipeline.default_video_count(user_id)}

    @app.put("/api/settings")
    def update_settings(
        body: VideoCountRequest,
        user_id: str = Depends(current_user),
        svc: Services = Depends(get_services),
    ):
        try:
            svc.pipeline.set_default_video_count(user_id, body.video_count)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"video_count": svc.pipeline.default_video_count(user_id)}

    # ------ summaries ------

    @app.get("/api/summaries")
    def list_summaries(limit: int = 50, user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        return svc.storage.list_user_summaries(user_id, limit=limit)

    @app.post("/api/summaries/direct")
    def summarize_url(
        body: DirectSummaryRequest, user_id: str = Depends(current_user), svc: Services = Depends(get_services)
    ):
        try:
            ack = svc.pipeline.summarize_url(user_id, body.url)
        except InvalidVideoUrlError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except VideoUnavailableError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except YouTubeAPIError as exc:
            raise HTTPException(status_code=502, detail=str(exc))
        return ack.to_dict()

    @app.delete("/api/summaries/{video_id}")
    def delete_summary(video_id: str, user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        if not svc.storage.delete_summary(user_id, video_id):
            raise HTTPException(status_code=404, detail="Summary not found")
        return {"success": True}

    # ------ background tasks ------

    @app.get("/api/tasks")
    def recent_tasks(
        limit: int = 10,
        active: bool = False,
        user_id: str = Depends(current_user),
        svc: Services = Depends(get_services),
    ):
        if active:
            return [t.to_dict() for t in svc.registry.get_active_tasks(user_id)]
        return [t.to_dict() for t in svc.registry.get_recent_tasks(user_id, limit=limit)]

    # ------ chat ------

    @app.get("/api/chat/{video_id}/history")
    def chat_history(video_id: str, user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        return svc.chat.history(user_id, video_id)

    @app.post("/api/chat/stream")
    async def chat_stream(
        body: ChatStreamRequest,
        request: Request,
        user_id: str = Depends(current_user),
        svc: Services = Depends(get_services),
    ):
        if not body.video_id or not (body.message or "").strip():
            raise HTTPException(status_code=400, detail="video_id and message are required")
        cancel = threading.Event()
        try:
            events = await run_in_threadpool(svc.chat.stream, user_id, body.video_id, body.message, cancel)
        except VideoNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:  # noqa: BLE001
            log.error("Chat stream setup failed: %s", exc)
            raise HTTPException(status_code=500, detail="Chat processing failed")

        async def event_source() -> AsyncIterator[str]:
            # headers are sent by now; failures can only be reported in-band
            try:
                async for event in iterate_in_threadpool(events):
                    if await request.is_disconnected():
                        log.info("Client disconnected from chat stream for %s", body.video_id)
                        cancel.set()
                        return
                    yield sse_event(event)
            except Exception as exc:  # noqa: BLE001
                log.error("Chat stream error: %s", exc)
                yield sse_event({"error": "An error occurred while streaming the response."})
            finally:
                cancel.set()
            yield SSE_DONE

        return StreamingResponse(event_source(), media_type="text/event-stream", headers=SSE_HEADERS)

    @app.post("/api/chat/{video_id}")
    def chat_send(
        video_id: str, body: ChatRequest, user_id: str = Depends(current_user), svc: Services = Depends(get_services)
    ):
        try:
            reply = svc.chat.send(user_id, video_id, body.message)
        except VideoNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except RuntimeError as exc:
            log.error("Chat failed for %s: %s", video_id, exc)
            raise HTTPException(status_code=502, detail="The language model request failed")
        return {"role": "assistant", "content": reply}

    @app.delete("/api/chat/{video_id}")
    def chat_clear(video_id: str, user_id: str = Depends(current_user), svc: Services = Depends(get_services)):
        svc.chat.clear(user_id, video_id)
        return {"success": True}

    return app


def run_server(host: str, port: int, services: Optional[Services] = None) -> None:
    import uvicorn

    uvicorn.run(create_app(services), host=host, port=port, log_level="info")
