from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from console.config import dlog
from console.errors import ConsoleError, NotFoundError, ServiceError, ValidationError
from console.export import build_export
from console.webui.auth import Operator, public_auth_config, require_operator
from console.webui.state import ConsoleRuntimeState
from console.webui.templates import CONSOLE_INDEX_HTML


def _http_error(e: ConsoleError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ServiceError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _require_user_mgmt(state: ConsoleRuntimeState) -> None:
    if not state.auth.allow_user_mgmt:
        raise HTTPException(status_code=403, detail="User management not enabled.")


def _view_payload(state: ConsoleRuntimeState) -> Dict[str, Any]:
    payload = state.coordinator.view.snapshot()
    payload["filters"] = state.filters.snapshot()["data"]
    payload["channel_state"] = state.coordinator.state.value
    return payload


def create_console_router(state: ConsoleRuntimeState) -> APIRouter:
    """Create the /admin router: dashboard page plus its JSON API."""
    guard = require_operator(state.auth)
    router = APIRouter(prefix="/admin", dependencies=[Depends(guard)])
    coordinator = state.coordinator

    @router.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def console_index() -> HTMLResponse:
        return HTMLResponse(content=CONSOLE_INDEX_HTML)

    @router.get("/dashboard", response_class=HTMLResponse, include_in_schema=False)
    async def console_dashboard() -> HTMLResponse:
        return HTMLResponse(content=CONSOLE_INDEX_HTML)

    @router.get("/health")
    async def console_health():
        return {
            "status": "ok",
            "uptime_seconds": int(time.time() - state.start_time),
            "config": public_auth_config(state.auth),
            "channel_state": coordinator.state.value,
            "remote_configured": state.settings.remote_configured,
        }

    @router.get("/api/status")
    async def console_status():
        hub = state.local_hub
        return {
            "status": "ok",
            "uptime_seconds": int(time.time() - state.start_time),
            "coordinator": coordinator.status(),
            "channel": {
                "mode": state.settings.channel_mode,
                "topic": state.settings.broadcast_topic,
                "local_subscribers": hub.subscriber_count if hub else None,
            },
            "filters": state.filters.snapshot(),
            "metrics": state.metrics.summary(),
        }

    # ---------- display regions ----------
    @router.get("/api/view")
    async def console_view():
        return _view_payload(state)

    @router.get("/api/history")
    async def console_history():
        return coordinator.view.history_snapshot()

    @router.get("/api/videos")
    async def console_videos():
        return coordinator.view.videos_snapshot()

    @router.post("/api/filters")
    async def console_filters(payload: dict):
        try:
            state.filters.update(payload or {})
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        await coordinator.run_refresh_now(state.filters.context())
        return _view_payload(state)

    @router.post("/api/refresh")
    async def console_refresh():
        state.filters.clear_history_filters()
        await coordinator.run_refresh_now(state.filters.context())
        return _view_payload(state)

    @router.post("/api/visibility")
    async def console_visibility(payload: dict):
        visible = bool((payload or {}).get("visible", True))
        if visible:
            await coordinator.on_visible()
        return {"status": "ok", "visible": visible, "coordinator": coordinator.status()}

    @router.post("/api/broadcast")
    async def console_broadcast(payload: dict):
        hub = state.local_hub
        if hub is None:
            raise HTTPException(status_code=409, detail="Broadcasts go through the realtime service in this mode.")
        event = str((payload or {}).get("event") or "*")
        body = (payload or {}).get("payload")
        delivered = hub.publish(event, body if isinstance(body, dict) else {})
        return {"status": "ok", "event": event, "delivered": delivered}

    # ---------- display users ----------
    @router.get("/api/users")
    async def console_users_list():
        try:
            users = await run_in_threadpool(state.queries.list_display_users)
        except ConsoleError as e:
            raise _http_error(e)
        return {
            "status": "ok",
            "users": [{"username": u.username, "created_at": u.created_at} for u in users],
        }

    @router.post("/api/users")
    async def console_users_create(payload: dict, operator: Operator = Depends(guard)):
        _require_user_mgmt(state)
        username = (payload or {}).get("username")
        password = (payload or {}).get("password")
        try:
            created = await run_in_threadpool(state.manager.create_display_user, username, password)
        except ConsoleError as e:
            if not isinstance(e, ValidationError):
                state.events.error("User create failed", str(e), actor=operator.username)
            raise _http_error(e)
        state.events.add("User created", created, actor=operator.username)
        return {"status": "ok", "username": created}

    @router.delete("/api/users/{username}")
    async def console_users_delete(username: str, operator: Operator = Depends(guard)):
        _require_user_mgmt(state)
        try:
            removed = await run_in_threadpool(state.manager.delete_display_user, username)
        except ConsoleError as e:
            state.events.error("User delete failed", f"{username}: {e}", actor=operator.username)
            raise _http_error(e)
        state.events.add("User deleted", f"{username} ({removed} videos removed)", actor=operator.username)
        await coordinator.run_refresh_now()
        return {"status": "ok", "username": username, "videos_removed": removed}

    # ---------- videos ----------
    @router.put("/api/videos")
    async def console_videos_upload(
        request: Request,
        user: str = "",
        filename: str = "",
        operator: Operator = Depends(guard),
    ):
        if not state.auth.allow_uploads:
            raise HTTPException(status_code=403, detail="Uploads not enabled.")
        content = await request.body()
        content_type = request.headers.get("content-type") or "application/octet-stream"
        try:
            record = await run_in_threadpool(
                lambda: state.manager.upload_video(
                    user,
                    os.path.basename(filename),
                    content,
                    uploaded_by=operator.username,
                    content_type=content_type,
                )
            )
        except ConsoleError as e:
            if not isinstance(e, ValidationError):
                state.events.error("Upload failed", f"{filename} -> {user}: {e}", actor=operator.username)
            raise _http_error(e)
        state.events.add("Video uploaded", f"{record['filename']} -> {user}", actor=operator.username)
        await coordinator.run_refresh_now()
        return {"status": "ok", "video": record}

    @router.delete("/api/videos/{video_id}")
    async def console_videos_delete(
        video_id: str,
        storage_path: Optional[str] = None,
        operator: Operator = Depends(guard),
    ):
        if storage_path is None:
            shown = next((v for v in coordinator.view.videos.rows if str(v.id) == video_id), None)
            storage_path = shown.storage_path if shown else None
        try:
            await run_in_threadpool(state.manager.delete_video, video_id, storage_path)
        except ConsoleError as e:
            state.events.error("Video delete failed", f"{video_id}: {e}", actor=operator.username)
            raise _http_error(e)
        state.events.add("Video deleted", storage_path or video_id, actor=operator.username)
        await coordinator.run_refresh_now()
        return {"status": "ok", "id": video_id}

    # ---------- export ----------
    @router.get("/api/export")
    async def console_export(
        mode: str = "all",
        user: str = "",
        date: str = "",
        start: str = "",
        end: str = "",
        operator: Operator = Depends(guard),
    ):
        started = time.time()
        try:
            result = await run_in_threadpool(
                lambda: build_export(
                    state.queries,
                    mode,
                    user=user,
                    date=date,
                    start=start,
                    end=end,
                    tz=state.settings.timezone,
                )
            )
        except ConsoleError as e:
            if not isinstance(e, (ValidationError, NotFoundError)):
                state.metrics.record("export", error=str(e), duration_ms=(time.time() - started) * 1000)
            raise _http_error(e)
        state.metrics.record("export", rows=result.count, duration_ms=(time.time() - started) * 1000)
        state.events.add("History exported", f"{result.filename} ({result.count} records)", actor=operator.username)
        dlog("history_export", {"filename": result.filename, "count": result.count})
        return Response(
            content=result.content,
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="{result.filename}"',
                "X-Export-Count": str(result.count),
            },
        )

    # ---------- metrics & activity ----------
    @router.get("/api/metrics")
    async def console_metrics():
        return state.metrics.summary()

    @router.post("/metrics/reset")
    async def console_metrics_reset(operator: Operator = Depends(guard)):
        if not state.auth.allow_reset:
            raise HTTPException(status_code=403, detail="Metrics reset not enabled.")
        state.metrics.reset()
        state.events.add("Metrics reset", None, actor=operator.username)
        return {"status": "ok", "reset_at": int(time.time())}

    @router.get("/logs")
    async def console_logs():
        return {
            "status": "ok",
            "events": state.events.snapshot(),
            "persisted": bool(state.events.path),
            "path": state.events.path,
        }

    @router.get("/logs/download", response_class=PlainTextResponse)
    async def console_logs_download():
        return PlainTextResponse(content=state.events.export_lines(), media_type="application/x-ndjson")

    return router
