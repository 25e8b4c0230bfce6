"""Notification channels that tell the console "something changed".

Events carry no guarantees: the same logical change may arrive several times,
payloads may be empty, and the transport may drop at any point. Consumers
only use them as a trigger to re-fetch.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed

from .config import dlog
from .errors import ChannelConnectError


EventHandler = Callable[[str, Dict[str, Any]], None]
DisconnectHandler = Callable[[], None]


class ChannelState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    DISCONNECTED = "disconnected"


class ChannelHandle(Protocol):
    async def close(self) -> None: ...


class NotificationChannel(Protocol):
    async def connect(
        self,
        on_event: EventHandler,
        on_disconnect: Optional[DisconnectHandler] = None,
    ) -> ChannelHandle: ...


def _safe_call(label: str, fn: Optional[Callable[..., Any]], *args: Any) -> None:
    if fn is None:
        return
    try:
        fn(*args)
    except Exception as e:
        dlog(label, str(e))


# ---------- in-process hub ----------
class LocalSubscription:
    def __init__(
        self,
        hub: "LocalBroadcastHub",
        sub_id: int,
        on_event: EventHandler,
        on_disconnect: Optional[DisconnectHandler],
    ) -> None:
        self._hub = hub
        self.sub_id = sub_id
        self.on_event = on_event
        self.on_disconnect = on_disconnect
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._hub._remove(self.sub_id)


class LocalBroadcastHub:
    """Fan-out broadcast topic living inside this process.

    Kiosk devices and other dashboard tabs publish through the admin API; every
    connected subscriber receives every event.
    """

    def __init__(self, topic: str = "login_updates") -> None:
        self.topic = topic
        self._subscribers: Dict[int, LocalSubscription] = {}
        self._next_id = 0
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def connect(
        self,
        on_event: EventHandler,
        on_disconnect: Optional[DisconnectHandler] = None,
    ) -> LocalSubscription:
        self._next_id += 1
        sub = LocalSubscription(self, self._next_id, on_event, on_disconnect)
        self._subscribers[sub.sub_id] = sub
        dlog("local_channel_subscribed", {"topic": self.topic, "subscriber": sub.sub_id})
        return sub

    def _remove(self, sub_id: int) -> None:
        self._subscribers.pop(sub_id, None)

    def publish(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Deliver an event to every subscriber; returns how many received it."""
        self.published += 1
        delivered = 0
        dlog("local_channel_publish", {"topic": self.topic, "event": event})
        for sub in list(self._subscribers.values()):
            _safe_call("local_channel_handler_error", sub.on_event, event or "*", payload or {})
            delivered += 1
        return delivered

    def drop_all(self) -> None:
        """Disconnect every subscriber as a transport failure would."""
        subs = list(self._subscribers.values())
        self._subscribers.clear()
        for sub in subs:
            sub.closed = True
            _safe_call("local_channel_disconnect_error", sub.on_disconnect)


# ---------- Supabase Realtime ----------
REALTIME_VSN = "1.0.0"
HEARTBEAT_SECONDS = 25.0
JOIN_TIMEOUT_SECONDS = 10.0


def realtime_socket_url(supabase_url: str, api_key: str) -> str:
    base = supabase_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/realtime/v1/websocket?apikey={quote(api_key)}&vsn={REALTIME_VSN}"


def join_frame(topic: str, ref: str, access_token: Optional[str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "config": {
            "broadcast": {"self": False, "ack": False},
            "presence": {"key": ""},
            "postgres_changes": [],
        }
    }
    if access_token:
        payload["access_token"] = access_token
    return {
        "topic": f"realtime:{topic}",
        "event": "phx_join",
        "payload": payload,
        "ref": ref,
        "join_ref": ref,
    }


def parse_frame(raw: Any) -> Optional[Dict[str, Any]]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return frame if isinstance(frame, dict) else None


class RealtimeSubscription:
    def __init__(
        self,
        ws: Any,
        *,
        topic: str,
        on_event: EventHandler,
        on_disconnect: Optional[DisconnectHandler],
        heartbeat_seconds: float = HEARTBEAT_SECONDS,
    ) -> None:
        self._ws = ws
        self.topic = f"realtime:{topic}"
        self._on_event = on_event
        self._on_disconnect = on_disconnect
        self._heartbeat_seconds = heartbeat_seconds
        self._ref = 0
        self._tasks: List[asyncio.Task] = []
        self.closed = False

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    async def _send(self, frame: Dict[str, Any]) -> None:
        await self._ws.send(json.dumps(frame))

    async def join(self, access_token: Optional[str]) -> None:
        ref = self._next_ref()
        topic = self.topic[len("realtime:"):]
        await self._send(join_frame(topic, ref, access_token))
        while True:
            frame = parse_frame(await self._ws.recv())
            if not frame or frame.get("event") != "phx_reply" or frame.get("ref") != ref:
                continue
            payload = frame.get("payload") or {}
            if payload.get("status") != "ok":
                raise ChannelConnectError(f"Join of {self.topic} rejected: {payload.get('response')}")
            return

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._read_loop()),
            loop.create_task(self._heartbeat_loop()),
        ]

    def _dispatch(self, frame: Dict[str, Any]) -> None:
        if frame.get("topic") != self.topic:
            return
        event = frame.get("event")
        if event == "broadcast":
            payload = frame.get("payload") or {}
            inner = payload.get("payload") if isinstance(payload, dict) else None
            name = payload.get("event") if isinstance(payload, dict) else None
            dlog("realtime_broadcast", {"topic": self.topic, "event": name})
            _safe_call("realtime_handler_error", self._on_event, name or "*", inner if isinstance(inner, dict) else {})
        elif event in ("phx_error", "phx_close"):
            raise ConnectionError(f"Channel {self.topic} closed by server ({event})")

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                frame = parse_frame(raw)
                if frame is not None:
                    self._dispatch(frame)
        except asyncio.CancelledError:
            raise
        except (ConnectionClosed, ConnectionError) as e:
            dlog("realtime_connection_lost", str(e))
        except Exception as e:
            dlog("realtime_read_error", str(e))
        await self._lost()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            try:
                await self._send({"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": self._next_ref()})
            except Exception as e:
                dlog("realtime_heartbeat_error", str(e))
                return

    async def _lost(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in self._tasks:
            if task is not asyncio.current_task():
                task.cancel()
        with contextlib.suppress(Exception):
            await self._ws.close()
        _safe_call("realtime_disconnect_error", self._on_disconnect)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        with contextlib.suppress(Exception):
            await self._send({"topic": self.topic, "event": "phx_leave", "payload": {}, "ref": self._next_ref()})
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        for task in self._tasks:
            if task is not current:
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
        with contextlib.suppress(Exception):
            await self._ws.close()


Connector = Callable[..., Awaitable[Any]]


class RealtimeChannel:
    """Broadcast subscription on a Supabase Realtime topic (Phoenix protocol over websockets)."""

    def __init__(
        self,
        *,
        supabase_url: str,
        api_key: str,
        topic: str = "login_updates",
        heartbeat_seconds: float = HEARTBEAT_SECONDS,
        join_timeout: float = JOIN_TIMEOUT_SECONDS,
        connector: Optional[Connector] = None,
    ) -> None:
        self.topic = topic
        self.socket_url = realtime_socket_url(supabase_url, api_key)
        self._api_key = api_key
        self._heartbeat_seconds = heartbeat_seconds
        self._join_timeout = join_timeout
        self._connector = connector

    async def _open(self) -> Any:
        if self._connector is not None:
            return await self._connector(self.socket_url)
        return await websockets.connect(self.socket_url, open_timeout=self._join_timeout)

    async def connect(
        self,
        on_event: EventHandler,
        on_disconnect: Optional[DisconnectHandler] = None,
    ) -> RealtimeSubscription:
        try:
            ws = await self._open()
        except Exception as e:
            raise ChannelConnectError(f"Could not open realtime socket for {self.topic}: {e}") from e

        sub = RealtimeSubscription(
            ws,
            topic=self.topic,
            on_event=on_event,
            on_disconnect=on_disconnect,
            heartbeat_seconds=self._heartbeat_seconds,
        )
        try:
            await asyncio.wait_for(sub.join(self._api_key), timeout=self._join_timeout)
        except Exception as e:
            sub.closed = True
            with contextlib.suppress(Exception):
                await ws.close()
            if isinstance(e, ChannelConnectError):
                raise
            raise ChannelConnectError(f"Could not join realtime topic {self.topic}: {e!r}") from e

        sub.start()
        dlog("realtime_channel_subscribed", {"topic": self.topic})
        return sub
