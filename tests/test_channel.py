import asyncio
import json

import pytest

from console.channel import (
    LocalBroadcastHub,
    RealtimeChannel,
    join_frame,
    parse_frame,
    realtime_socket_url,
)
from console.errors import ChannelConnectError


_CLOSED = object()


class FakeSocket:
    """Scripted websocket: frames pushed with ``feed`` come out of recv/async-iteration."""

    def __init__(self, join_status="ok"):
        self.sent = []
        self.closed = False
        self.join_status = join_status
        self._incoming = asyncio.Queue()

    async def send(self, text):
        frame = json.loads(text)
        self.sent.append(frame)
        if frame["event"] == "phx_join" and self.join_status is not None:
            self.feed(
                {
                    "topic": frame["topic"],
                    "event": "phx_reply",
                    "payload": {"status": self.join_status, "response": {"reason": "denied"}},
                    "ref": frame["ref"],
                }
            )

    def feed(self, frame):
        self._incoming.put_nowait(json.dumps(frame))

    def hang_up(self):
        self._incoming.put_nowait(_CLOSED)

    async def recv(self):
        item = await self._incoming.get()
        if item is _CLOSED:
            raise ConnectionError("socket closed")
        return item

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def close(self):
        self.closed = True


def _channel(sock, **kwargs):
    async def connector(url):
        connector.urls.append(url)
        return sock

    connector.urls = []
    channel = RealtimeChannel(
        supabase_url="https://proj.supabase.co",
        api_key="anon-key",
        topic="login_updates",
        connector=connector,
        **kwargs,
    )
    return channel, connector


def test_socket_url_uses_websocket_scheme():
    assert realtime_socket_url("https://proj.supabase.co/", "k") == (
        "wss://proj.supabase.co/realtime/v1/websocket?apikey=k&vsn=1.0.0"
    )
    assert realtime_socket_url("http://127.0.0.1:54321", "k").startswith("ws://127.0.0.1:54321/")


def test_join_frame_and_parse_frame():
    frame = join_frame("login_updates", "1", "tok")
    assert frame["topic"] == "realtime:login_updates"
    assert frame["event"] == "phx_join"
    assert frame["payload"]["access_token"] == "tok"
    assert "access_token" not in join_frame("login_updates", "1", None)["payload"]

    assert parse_frame(b'{"event": "x"}') == {"event": "x"}
    assert parse_frame("not json") is None
    assert parse_frame("[1, 2]") is None


def test_local_hub_fans_out_and_drops():
    async def scenario():
        hub = LocalBroadcastHub()
        seen = []
        lost = []
        await hub.connect(lambda e, p: seen.append(("a", e, p)), lambda: lost.append("a"))
        sub_b = await hub.connect(lambda e, p: seen.append(("b", e, p)))

        assert hub.publish("login", {"user": "k1"}) == 2
        assert ("a", "login", {"user": "k1"}) in seen
        assert ("b", "login", {"user": "k1"}) in seen

        await sub_b.close()
        assert hub.publish("", None) == 1
        assert seen[-1] == ("a", "*", {})

        hub.drop_all()
        assert lost == ["a"]
        assert hub.subscriber_count == 0
        assert hub.publish("logout") == 0
        assert hub.published == 3

    asyncio.run(scenario())


def test_local_hub_survives_a_failing_handler():
    async def scenario():
        hub = LocalBroadcastHub()
        seen = []

        def broken(event, payload):
            raise RuntimeError("handler bug")

        await hub.connect(broken)
        await hub.connect(lambda e, p: seen.append(e))
        assert hub.publish("login") == 2
        assert seen == ["login"]

    asyncio.run(scenario())


def test_realtime_channel_delivers_broadcasts():
    async def scenario():
        sock = FakeSocket()
        channel, connector = _channel(sock)
        events = []
        sub = await channel.connect(lambda e, p: events.append((e, p)))
        assert connector.urls == [channel.socket_url]
        assert sock.sent[0]["event"] == "phx_join"
        assert sock.sent[0]["payload"]["access_token"] == "anon-key"

        sock.feed(
            {
                "topic": "realtime:login_updates",
                "event": "broadcast",
                "payload": {"type": "broadcast", "event": "login", "payload": {"user": "k1"}},
                "ref": None,
            }
        )
        sock.feed({"topic": "realtime:other", "event": "broadcast", "payload": {"event": "x"}})
        await asyncio.sleep(0.05)
        assert events == [("login", {"user": "k1"})]

        await sub.close()
        assert sock.sent[-1]["event"] == "phx_leave"
        assert sock.closed is True

    asyncio.run(scenario())


def test_realtime_channel_reports_server_close():
    async def scenario():
        sock = FakeSocket()
        channel, _ = _channel(sock)
        lost = []
        sub = await channel.connect(lambda e, p: None, lambda: lost.append(True))

        sock.feed({"topic": "realtime:login_updates", "event": "phx_error", "payload": {}})
        await asyncio.sleep(0.05)
        assert lost == [True]
        assert sub.closed is True
        assert sock.closed is True

    asyncio.run(scenario())


def test_realtime_channel_reports_transport_drop():
    async def scenario():
        sock = FakeSocket()
        channel, _ = _channel(sock)
        lost = []
        await channel.connect(lambda e, p: None, lambda: lost.append(True))
        sock.hang_up()
        await asyncio.sleep(0.05)
        assert lost == [True]

    asyncio.run(scenario())


def test_realtime_heartbeat_is_sent():
    async def scenario():
        sock = FakeSocket()
        channel, _ = _channel(sock, heartbeat_seconds=0.02)
        sub = await channel.connect(lambda e, p: None)
        await asyncio.sleep(0.07)
        heartbeats = [f for f in sock.sent if f["event"] == "heartbeat"]
        assert heartbeats
        assert heartbeats[0]["topic"] == "phoenix"
        await sub.close()

    asyncio.run(scenario())


def test_rejected_join_raises_connect_error():
    async def scenario():
        sock = FakeSocket(join_status="error")
        channel, _ = _channel(sock)
        with pytest.raises(ChannelConnectError):
            await channel.connect(lambda e, p: None)
        assert sock.closed is True

    asyncio.run(scenario())


def test_join_without_reply_times_out():
    async def scenario():
        sock = FakeSocket(join_status=None)
        channel, _ = _channel(sock, join_timeout=0.05)
        with pytest.raises(ChannelConnectError):
            await channel.connect(lambda e, p: None)

    asyncio.run(scenario())


def test_socket_open_failure_raises_connect_error():
    async def refuse(url):
        raise OSError("connection refused")

    async def scenario():
        channel = RealtimeChannel(supabase_url="https://proj.supabase.co", api_key="k", connector=refuse)
        with pytest.raises(ChannelConnectError) as exc:
            await channel.connect(lambda e, p: None)
        assert "connection refused" in str(exc.value)

    asyncio.run(scenario())
