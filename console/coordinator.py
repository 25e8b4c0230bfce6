from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Optional, Set

from .channel import ChannelHandle, ChannelState, NotificationChannel
from .config import dlog
from .errors import FetchError
from .metrics import MetricsTracker
from .models import FilterContext
from .views import ConsoleView


DEFAULT_DEBOUNCE_SECONDS = 0.6
DEFAULT_VISIBLE_DELAY_SECONDS = 0.3


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    """Await coroutine functions; run blocking ones (requests) off the event loop."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    return await asyncio.to_thread(fn, *args)


class RefreshCoordinator:
    """Decides when the history and video regions are re-fetched.

    Triggers are channel events (debounced), explicit operator actions
    (immediate), the page becoming visible again, and a successful channel
    connection. All state lives on one asyncio loop; nothing here is
    thread-safe and nothing needs to be.

    Each refresh cycle gets a sequence number. The view discards a result
    from a cycle older than the one it already shows, so a slow stale fetch
    cannot overwrite newer rows.
    """

    def __init__(
        self,
        executor: Any,
        channel: NotificationChannel,
        view: ConsoleView,
        filters: Callable[[], FilterContext],
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        max_wait_seconds: Optional[float] = None,
        visible_delay_seconds: float = DEFAULT_VISIBLE_DELAY_SECONDS,
        metrics: Optional[MetricsTracker] = None,
    ) -> None:
        self._executor = executor
        self._channel = channel
        self._view = view
        self._filters = filters
        self._metrics = metrics
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        if max_wait_seconds is None:
            max_wait_seconds = self.debounce_seconds * 5
        self.max_wait_seconds = max(self.debounce_seconds, float(max_wait_seconds))
        self.visible_delay_seconds = max(0.0, float(visible_delay_seconds))

        self.state = ChannelState.UNSUBSCRIBED
        self._handle: Optional[ChannelHandle] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending_since: Optional[float] = None
        self._visible_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._seq = 0
        self._disposed = False

        self.refresh_count = 0
        self.events_received = 0
        self.connect_attempts = 0
        self.last_error: Optional[str] = None
        self.last_refresh_at: Optional[float] = None

    @property
    def view(self) -> ConsoleView:
        return self._view

    @property
    def refresh_pending(self) -> bool:
        return self._timer is not None

    @property
    def connected(self) -> bool:
        return self._handle is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ---------- debounced refresh ----------
    def schedule_refresh(self) -> None:
        """Request a refresh after the quiet period.

        At most one timer is ever pending. A request while one is pending
        pushes it back to one window after this request, but never beyond
        ``max_wait_seconds`` from the first request of the burst.
        """
        if self._disposed:
            return
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._timer is None:
            self._pending_since = now
            delay = self.debounce_seconds
        else:
            self._timer.cancel()
            deadline = (self._pending_since or now) + self.max_wait_seconds
            delay = min(self.debounce_seconds, max(0.0, deadline - now))
        self._timer = loop.call_later(delay, self._fire_scheduled)

    def _fire_scheduled(self) -> None:
        # Cleared before the refresh body runs so events arriving mid-refresh start a new cycle.
        self._timer = None
        self._pending_since = None
        if self._disposed:
            return
        self._spawn(self.run_refresh_now())

    # ---------- immediate refresh ----------
    async def run_refresh_now(self, context: Optional[FilterContext] = None) -> bool:
        """Fetch history and videos now; returns True when both fetches succeeded."""
        if self._disposed:
            return False
        if context is None:
            try:
                context = self._filters()
            except Exception as e:
                self.last_error = f"Could not read filters: {e}"
                dlog("refresh_filters_error", self.last_error)
                return False

        self._seq += 1
        seq = self._seq
        self.refresh_count += 1
        self.last_refresh_at = time.time()
        dlog("refresh_start", {"seq": seq, "filters": context.to_dict()})

        self._view.begin("history", seq)
        self._view.begin("videos", seq)
        results = await asyncio.gather(
            self._refresh_slice("history", seq, self._executor.fetch_history, context),
            self._refresh_slice("videos", seq, self._executor.fetch_videos, context.video_user),
        )
        return all(results)

    async def _refresh_slice(self, name: str, seq: int, fetch: Callable[..., Any], arg: Any) -> bool:
        started = time.time()
        try:
            rows = await _call(fetch, arg)
            if rows is None:
                rows = []
            if not isinstance(rows, (list, tuple)):
                raise FetchError(f"Malformed {name} response: {type(rows).__name__}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or e.__class__.__name__
            self.last_error = message
            dlog(f"refresh_{name}_error", {"seq": seq, "error": message})
            if self._metrics is not None:
                self._metrics.record(f"{name}_fetch", error=message, duration_ms=(time.time() - started) * 1000)
            self._view.apply_error(name, seq, message)
            return False

        if self._metrics is not None:
            self._metrics.record(f"{name}_fetch", rows=len(rows), duration_ms=(time.time() - started) * 1000)
        if not self._view.apply_rows(name, seq, rows):
            dlog("refresh_stale_discarded", {"slice": name, "seq": seq, "shown": self._view.slice(name).applied_seq})
        return True

    # ---------- channel lifecycle ----------
    async def ensure_connected(self) -> bool:
        """Connect to the notification channel unless already connected or connecting."""
        if self._disposed:
            return False
        if self._handle is not None:
            return True
        if self._connect_task is None:
            self._connect_task = asyncio.get_running_loop().create_task(self._connect())
        return await asyncio.shield(self._connect_task)

    async def _connect(self) -> bool:
        self.state = ChannelState.SUBSCRIBING
        self.connect_attempts += 1
        try:
            handle = await self._channel.connect(self._on_channel_event, self._on_channel_lost)
        except Exception as e:
            self.state = ChannelState.UNSUBSCRIBED
            self.last_error = f"Channel subscribe failed: {e}"
            dlog("channel_subscribe_failed", self.last_error)
            return False
        finally:
            self._connect_task = None

        if self._disposed:
            await handle.close()
            return False
        self._handle = handle
        self.state = ChannelState.SUBSCRIBED
        dlog("channel_subscribed", {"attempt": self.connect_attempts})
        self._spawn(self.run_refresh_now())
        return True

    def _on_channel_event(self, event: str, payload: Dict[str, Any]) -> None:
        self.events_received += 1
        dlog("channel_event", {"event": event})
        self.schedule_refresh()

    def _on_channel_lost(self) -> None:
        if self._handle is None:
            return
        self._handle = None
        self.state = ChannelState.DISCONNECTED
        dlog("channel_disconnected", "waiting for the next visibility change to reconnect")

    async def on_visible(self) -> None:
        """The page became visible again: reconnect if needed and catch up shortly after."""
        if self._disposed:
            return
        loop = asyncio.get_running_loop()
        if self._visible_timer is not None:
            self._visible_timer.cancel()
        self._visible_timer = loop.call_later(self.visible_delay_seconds, self._fire_visible)
        await self.ensure_connected()

    def _fire_visible(self) -> None:
        self._visible_timer = None
        if self._disposed:
            return
        self._spawn(self.run_refresh_now())

    # ---------- lifecycle ----------
    def start(self) -> None:
        """Begin connecting in the background and load the regions (used at app startup)."""
        self._spawn(self._initial_load())

    async def _initial_load(self) -> None:
        # A successful connect already refreshes.
        if not await self.ensure_connected():
            await self.run_refresh_now()

    async def wait_idle(self) -> None:
        """Wait until no spawned refresh/connect work is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for timer in (self._timer, self._visible_timer):
            if timer is not None:
                timer.cancel()
        self._timer = None
        self._visible_timer = None

        if self._connect_task is not None:
            self._connect_task.cancel()
        handle = self._handle
        self._handle = None
        if handle is not None:
            try:
                await handle.close()
            except Exception as e:
                dlog("channel_close_error", str(e))
        self.state = ChannelState.UNSUBSCRIBED

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def status(self) -> Dict[str, Any]:
        return {
            "channel_state": self.state.value,
            "refresh_pending": self.refresh_pending,
            "refresh_count": self.refresh_count,
            "events_received": self.events_received,
            "connect_attempts": self.connect_attempts,
            "last_error": self.last_error,
            "last_refresh_at": self.last_refresh_at,
            "debounce_ms": int(self.debounce_seconds * 1000),
            "visible_delay_ms": int(self.visible_delay_seconds * 1000),
        }
