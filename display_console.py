from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from console.channel import LocalBroadcastHub, RealtimeChannel
from console.config import dlog, load_console_settings
from console.coordinator import RefreshCoordinator
from console.filters import FilterStore
from console.management import DisplayManager
from console.metrics import metrics
from console.queries import QueryExecutor
from console.supabase_client import SupabaseClient
from console.timefmt import today_ist
from console.views import ConsoleView
from console.webui.auth import load_operator_auth_config
from console.webui.routes import create_console_router
from console.webui.state import ActivityLog, ConsoleRuntimeState


# Local Supabase stack default; used only when SUPABASE_URL is unset.
LOCAL_SUPABASE_URL = "http://127.0.0.1:54321"


load_dotenv()
settings = load_console_settings()

# Enable metrics persistence if configured.
if settings.metrics_file:
    metrics.configure_persistence(settings.metrics_file)
    dlog("metrics_persistence_enabled", settings.metrics_file)

if not settings.remote_configured:
    dlog("supabase_not_configured", "SUPABASE_URL/SUPABASE_KEY missing; fetches will fail until set")

client = SupabaseClient(url=settings.supabase_url or LOCAL_SUPABASE_URL, api_key=settings.supabase_key or "")
queries = QueryExecutor(client)
manager = DisplayManager(client, queries, bucket=settings.videos_bucket)

if settings.channel_mode == "realtime" and settings.remote_configured:
    channel = RealtimeChannel(
        supabase_url=settings.supabase_url,
        api_key=settings.supabase_key,
        topic=settings.broadcast_topic,
    )
else:
    channel = LocalBroadcastHub(topic=settings.broadcast_topic)
dlog("notification_channel", {"mode": type(channel).__name__, "topic": settings.broadcast_topic})

# History opens on today's date in the console timezone.
filters = FilterStore(path=settings.filters_file)
filters.load()
filters.update({"date": today_ist(tz=settings.timezone)})

view = ConsoleView(offline_after_seconds=settings.offline_after_seconds, tz=settings.timezone)
coordinator = RefreshCoordinator(
    queries,
    channel,
    view,
    filters.context,
    debounce_seconds=settings.debounce_ms / 1000.0,
    max_wait_seconds=settings.max_wait_ms / 1000.0,
    visible_delay_seconds=settings.visible_delay_ms / 1000.0,
    metrics=metrics,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    coordinator.start()
    try:
        yield
    finally:
        await coordinator.dispose()


app = FastAPI(title="Display Console", lifespan=lifespan)

# Mount /admin only when explicitly enabled and a password is configured.
_auth_config = load_operator_auth_config()
state = ConsoleRuntimeState(
    settings=settings,
    auth=_auth_config,
    queries=queries,
    manager=manager,
    filters=filters,
    channel=channel,
    coordinator=coordinator,
    metrics=metrics,
    events=ActivityLog(path=settings.event_log_file),
)
if _auth_config.enabled:
    app.include_router(create_console_router(state))
else:
    if _auth_config.disabled_reason:
        dlog("console_disabled", _auth_config.disabled_reason)


if __name__ == "__main__":
    # Convenience for local runs: python display_console.py --console-debug
    import os

    import uvicorn

    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "18000"))
    uvicorn.run("display_console:app", host=host, port=port, reload=False)
