from __future__ import annotations

import asyncio
import json

from abx_remote import wire
from abx_remote.channel import ChannelManager, ConnectionState
from abx_remote.simulation import CANNED_AMP_STATE, simulated_response
from abx_remote.timers import VirtualScheduler

URL = "ws://amp.test:80/ws"
GET_STATE_FRAME = '{"action":"get_state","value":0}'


class _FakeTransport:
    """In-memory socket: frames are fed in by the test, sends are recorded."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    def feed(self, frame) -> None:
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        self._inbox.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        while True:
            frame = await self._inbox.get()
            if frame is None:
                return
            yield frame


async def _settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _make_channel(**kwargs):
    sched = VirtualScheduler()
    transports: list[_FakeTransport] = []
    received: list = []

    async def connector(url: str) -> _FakeTransport:
        assert url == URL
        t = _FakeTransport()
        transports.append(t)
        return t

    ch = ChannelManager(
        URL,
        scheduler=sched,
        connector=connector,
        on_message=received.append,
        **kwargs,
    )
    return ch, sched, transports, received


class TestChannelLifecycle:
    def test_open_sends_get_state_first(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            assert ch.state is ConnectionState.DISCONNECTED
            ch.connect()
            assert ch.state is ConnectionState.CONNECTING
            await _settle()
            assert ch.state is ConnectionState.OPEN
            assert transports[0].sent == [GET_STATE_FRAME]
            assert ch.connects == 1
            await ch.disconnect()

        asyncio.run(_run())

    def test_connect_is_ignored_while_open(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            ch.connect()
            await _settle()
            ch.connect()
            await _settle()
            assert len(transports) == 1
            await ch.disconnect()

        asyncio.run(_run())

    def test_inbound_frames_are_decoded_in_order(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            ch.connect()
            await _settle()
            t = transports[0]
            t.feed('{"amp_state":{"preset":2}}')
            t.feed(b'{"ab_test":{"is_running":true,"is_finished":false}}')
            await _settle()
            await ch.disconnect()
            return received

        received = asyncio.run(_run())
        assert received == [
            {"amp_state": {"preset": 2}},
            {"ab_test": {"is_running": True, "is_finished": False}},
        ]

    def test_undecodable_frame_is_skipped(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            ch.connect()
            await _settle()
            transports[0].feed("{not json")
            transports[0].feed('{"amp_state":{"preset":3}}')
            await _settle()
            state = ch.state
            await ch.disconnect()
            return state, received

        state, received = asyncio.run(_run())
        assert state is ConnectionState.OPEN
        assert received == [{"amp_state": {"preset": 3}}]

    def test_failing_handler_does_not_kill_the_link(self):
        async def _run():
            sched = VirtualScheduler()
            transports: list[_FakeTransport] = []
            seen: list = []

            async def connector(url):
                t = _FakeTransport()
                transports.append(t)
                return t

            def handler(msg):
                seen.append(msg)
                if len(seen) == 1:
                    raise RuntimeError("boom")

            ch = ChannelManager(URL, scheduler=sched, connector=connector, on_message=handler)
            ch.connect()
            await _settle()
            transports[0].feed('{"a":1}')
            transports[0].feed('{"b":2}')
            await _settle()
            state = ch.state
            await ch.disconnect()
            return state, seen

        state, seen = asyncio.run(_run())
        assert state is ConnectionState.OPEN
        assert seen == [{"a": 1}, {"b": 2}]

    def test_sends_keep_call_order(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            ch.connect()
            await _settle()
            assert ch.send(wire.SET_MUTE, True)
            assert ch.send(wire.SET_PRESET, 2)
            assert ch.send(wire.SET_MUTE, False)
            await _settle()
            await ch.disconnect()
            return [json.loads(s) for s in transports[0].sent]

        sent = asyncio.run(_run())
        assert sent == [
            {"action": "get_state", "value": 0},
            {"action": "set_mute", "value": True},
            {"action": "set_preset", "value": 2},
            {"action": "set_mute", "value": False},
        ]


class TestReconnect:
    def test_reconnects_after_delay_and_resyncs(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            ch.connect()
            await _settle()
            transports[0].drop()
            await _settle()
            assert ch.state is ConnectionState.DISCONNECTED
            assert ch.reconnects_scheduled == 1
            assert sched.pending == 1

            sched.advance(1.5)
            await _settle()
            assert len(transports) == 1

            sched.advance(0.5)
            await _settle()
            assert ch.state is ConnectionState.OPEN
            assert len(transports) == 2
            assert transports[1].sent == [GET_STATE_FRAME]
            await ch.disconnect()

        asyncio.run(_run())

    def test_retries_forever_when_device_is_down(self):
        async def _run():
            sched = VirtualScheduler()
            attempts = []

            async def connector(url):
                attempts.append(sched.now())
                raise OSError("connection refused")

            ch = ChannelManager(URL, scheduler=sched, connector=connector)
            ch.connect()
            await _settle()
            for _ in range(5):
                assert ch.state is ConnectionState.DISCONNECTED
                sched.advance(2.0)
                await _settle()
            await ch.disconnect()
            return attempts, ch.reconnects_scheduled

        attempts, scheduled = asyncio.run(_run())
        assert attempts == [0.0, 2.0, 4.0, 6.0, 8.0, 10.0]
        assert scheduled == 6

    def test_custom_delay(self):
        async def _run():
            ch, sched, transports, received = _make_channel(reconnect_delay_s=0.5)
            ch.connect()
            await _settle()
            transports[0].drop()
            await _settle()
            sched.advance(0.5)
            await _settle()
            n = len(transports)
            await ch.disconnect()
            return n

        assert asyncio.run(_run()) == 2

    def test_requested_disconnect_does_not_reconnect(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            ch.connect()
            await _settle()
            await ch.disconnect()
            sched.advance(10.0)
            await _settle()
            return ch.state, len(transports), transports[0].closed, sched.pending

        state, n, closed, pending = asyncio.run(_run())
        assert state is ConnectionState.DISCONNECTED
        assert n == 1
        assert closed
        assert pending == 0

    def test_send_while_disconnected_is_dropped_not_queued(self):
        async def _run():
            ch, sched, transports, received = _make_channel()
            assert ch.send(wire.SET_PRESET, 2) is False
            assert ch.dropped_sends == 1
            ch.connect()
            await _settle()
            sent = list(transports[0].sent)
            await ch.disconnect()
            return sent

        assert asyncio.run(_run()) == [GET_STATE_FRAME]


class TestSimulation:
    def test_connect_opens_synchronously_with_canned_state(self):
        received = []
        ch = ChannelManager(
            "ws://127.0.0.1:80/ws",
            scheduler=VirtualScheduler(),
            on_message=received.append,
            simulate=True,
        )
        ch.connect()
        assert ch.state is ConnectionState.OPEN
        assert len(received) == 1
        amp = received[0]["amp_state"]
        assert amp["preset"] == 1
        assert amp["volume_db"] == -42
        assert amp["filter_name"] == "test mode"

    def test_get_state_answers_without_network(self):
        received = []

        async def never(url):
            raise AssertionError("no network in simulation")

        ch = ChannelManager(URL, scheduler=VirtualScheduler(), connector=never, simulate=True)
        ch.connect()
        ch.on_message = received.append
        assert ch.send(wire.GET_STATE)
        assert received == [{"amp_state": CANNED_AMP_STATE}]

    def test_start_and_stop_test(self):
        received = []
        ch = ChannelManager(URL, scheduler=VirtualScheduler(), simulate=True)
        ch.connect()
        ch.on_message = received.append
        ch.send(wire.START_TEST, wire.start_test_value(1, 3, 5, 10))
        ch.send(wire.STOP_TEST)
        assert received == [
            {"ab_test": {"is_running": True, "is_finished": False, "preset_a": 1, "preset_b": 3}},
            {"ab_test": {"is_running": False, "is_finished": True}},
        ]

    def test_other_actions_are_accepted_silently(self):
        received = []
        ch = ChannelManager(URL, scheduler=VirtualScheduler(), simulate=True)
        ch.connect()
        ch.on_message = received.append
        assert ch.send(wire.SET_PRESET, 2)
        assert ch.send(wire.SET_MUTE, True)
        assert received == []

    def test_simulated_response_table(self):
        assert simulated_response(wire.SET_VOLUME, -30) is None
        assert simulated_response(wire.GET_STATE, 0)["amp_state"]["preset_source"] == [4, 1, 0]


class _StallingTransport(_FakeTransport):
    """send() hangs while `stall` is set and is slow to honour cancellation."""

    def __init__(self) -> None:
        super().__init__()
        self.stall = False
        self.cancelling = asyncio.Event()
        self.release = asyncio.Event()

    async def send(self, message: str) -> None:
        if not self.stall:
            await super().send(message)
            return
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelling.set()
            await self.release.wait()
            raise


class TestConnectionTeardown:
    def test_send_during_teardown_is_dropped(self):
        async def _run():
            sched = VirtualScheduler()
            transports: list[_StallingTransport] = []

            async def connector(url):
                t = _StallingTransport()
                transports.append(t)
                return t

            ch = ChannelManager(URL, scheduler=sched, connector=connector)
            ch.connect()
            await _settle()
            t = transports[0]
            assert t.sent == [GET_STATE_FRAME]

            t.stall = True
            assert ch.send(wire.SET_PRESET, 2)
            assert ch.send(wire.SET_PRESET, 3)
            await _settle()
            t.drop()
            await _settle()
            assert t.cancelling.is_set()

            # The writer is still unwinding; the link must already refuse sends.
            assert ch.state is ConnectionState.DISCONNECTED
            assert ch.send(wire.SET_MUTE, True) is False
            assert ch.dropped_sends == 1

            t.release.set()
            await _settle()
            dropped = ch.dropped_sends
            scheduled = ch.reconnects_scheduled
            await ch.disconnect()
            return dropped, scheduled

        dropped, scheduled = asyncio.run(_run())
        # set_mute refused plus set_preset 3 left in the queue
        assert dropped == 2
        assert scheduled == 1
