from __future__ import annotations

import asyncio

import pytest

from sshchannel import (
    Channel,
    ChannelClosedError,
    ChannelTimeoutError,
    Closed,
    Continue,
    ContinueWithSend,
    Data,
    Done,
    Eof,
    ExitStatus,
    Halt,
    Halted,
    MemoryTransport,
    Outbound,
    Suspend,
    Suspended,
    loop,
)


def collect(event, acc):
    match event:
        case Data(data=data):
            return Continue(acc + data)
        case _:
            return Continue(acc)


def record(event, acc):
    return Continue([*acc, event])


class TestDone:
    async def test_exec_echo_collects_output(self, transport: MemoryTransport):
        channel = await Channel.open(transport)
        assert await channel.exec("echo hi") == "success"

        transport.emit_data(channel.id, b"hi\n")
        transport.emit_exit_status(channel.id, 0)
        transport.emit_closed(channel.id)

        result = await loop(channel, collect, Continue(b""))

        assert result == Done(b"hi\n")

    async def test_closed_ends_loop_whatever_step_returns(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.emit_closed(channel.id)
        transport.emit_data(channel.id, b"never seen")

        def keep_going(event, acc):
            return ContinueWithSend(b"more", acc + 1)

        result = await loop(channel, keep_going, Continue(0))

        assert result == Done(1)
        assert transport.sent == []

    async def test_closed_is_not_followed_by_close_or_receive(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.emit_closed(channel.id)

        result = await loop(channel, record, Continue([]))

        assert isinstance(result, Done)
        assert result.acc == [Closed(channel)]
        assert transport.closed == []
        with pytest.raises(ChannelClosedError):
            await channel.recv(timeout=0)

    async def test_events_are_rebound_to_channel(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.emit_data(channel.id, b"x", stream=1)
        transport.emit_eof(channel.id)
        transport.emit_exit_status(channel.id, 2)
        transport.emit_closed(channel.id)

        result = await loop(channel, record, Continue([]))

        assert result.acc == [
            Data(channel, 1, b"x"),
            Eof(channel),
            ExitStatus(channel, 2),
            Closed(channel),
        ]

    async def test_async_step_function(self, transport: MemoryTransport, channel: Channel):
        async def slow_collect(event, acc):
            await asyncio.sleep(0)
            return collect(event, acc)

        transport.emit_data(channel.id, b"ab")
        transport.emit_closed(channel.id)

        assert await loop(channel, slow_collect, Continue(b"")) == Done(b"ab")


class TestWindow:
    async def test_adjusts_by_exact_data_length(
        self, transport: MemoryTransport, channel: Channel,
    ):
        chunks = [b"a" * 10, b"", b"b" * 4096, b"c"]
        for chunk in chunks:
            transport.emit_data(channel.id, chunk)
        transport.emit_exit_status(channel.id, 0)
        transport.emit_closed(channel.id)

        await loop(channel, collect, Continue(b""))

        assert transport.granted(channel.id) == sum(len(c) for c in chunks)
        assert [inc for _, inc in transport.adjustments] == [len(c) for c in chunks]

    async def test_adjusts_before_step_runs(self, transport: MemoryTransport, channel: Channel):
        seen: list[int] = []

        def step(event, acc):
            seen.append(transport.granted(channel.id))
            return Continue(acc)

        transport.emit_data(channel.id, b"12345")
        transport.emit_closed(channel.id)

        await loop(channel, step, Continue(None))

        assert seen == [5, 5]

    async def test_adjusts_even_when_step_halts(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.emit_data(channel.id, b"abc")

        result = await loop(channel, lambda event, acc: Halt(acc), Continue("acc"))

        assert result == Halted("acc")
        assert transport.granted(channel.id) == 3


class TestHalt:
    async def test_step_halt_closes_channel(self, transport: MemoryTransport, channel: Channel):
        transport.emit_data(channel.id, b"first")
        transport.emit_data(channel.id, b"second")

        result = await loop(channel, lambda event, acc: Halt(acc + 1), Continue(0))

        assert result == Halted(1)
        assert result.error is None
        assert transport.closed == [channel.id]

    async def test_halt_drains_pending_events(self, transport: MemoryTransport, channel: Channel):
        transport.emit_data(channel.id, b"first")
        transport.emit_data(channel.id, b"second")
        transport.emit_closed(channel.id)

        await loop(channel, lambda event, acc: Halt(acc), Continue(None))

        assert transport.mailbox.pending(channel.id) == 0
        assert await channel.flush() == 0

    async def test_initial_halt_skips_receive(self, transport: MemoryTransport, channel: Channel):
        transport.emit_data(channel.id, b"data")

        result = await loop(channel, collect, Halt(b"seed"))

        assert result == Halted(b"seed")
        assert transport.adjustments == []
        assert transport.closed == [channel.id]

    async def test_receive_timeout_keeps_previous_acc(
        self, transport: MemoryTransport, channel: Channel,
    ):
        calls: list[object] = []

        def step(event, acc):
            calls.append(event)
            return Continue(acc)

        result = await loop(channel, step, Continue("before"), timeout=0.05)

        assert isinstance(result, Halted)
        assert result.acc == "before"
        assert isinstance(result.error, ChannelTimeoutError)
        assert calls == []
        assert transport.closed == [channel.id]

    async def test_transport_shutdown_halts(self, transport: MemoryTransport, channel: Channel):
        async def tear_down() -> None:
            await asyncio.sleep(0.01)
            transport.shutdown()

        task = asyncio.create_task(tear_down())
        result = await loop(channel, collect, Continue(b""))
        await task

        assert isinstance(result, Halted)
        assert result.acc == b""
        assert result.error is not None

    async def test_send_failure_halts_with_error(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.send_failures = {b"b": ChannelClosedError(channel.id)}

        result = await loop(channel, collect, ContinueWithSend([b"a", b"b", b"c"], "acc"))

        assert isinstance(result, Halted)
        assert result.acc == "acc"
        assert isinstance(result.error, ChannelClosedError)
        assert transport.sent == [(channel.id, 0, b"a")]
        assert transport.closed == [channel.id]


class TestSend:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            (b"raw", [(0, b"raw")]),
            ("text", [(0, b"text")]),
            ((1, b"err"), [(1, b"err")]),
            ((0, [b"a", "b"]), [(0, b"a"), (0, b"b")]),
            (None, []),
        ],
    )
    async def test_outbound_messages(
        self, transport: MemoryTransport, channel: Channel, message, expected,
    ):
        result = await loop(channel, collect, ContinueWithSend(message, b""), timeout=0.05)

        assert isinstance(result.error, ChannelTimeoutError)
        assert [(stream, data) for _, stream, data in transport.sent] == expected

    async def test_outbound_eof(self, transport: MemoryTransport, channel: Channel):
        await loop(channel, collect, ContinueWithSend(Outbound.EOF, b""), timeout=0.05)

        assert transport.eofs == [channel.id]
        assert transport.sent == []

    async def test_send_on_remotely_closed_channel_halts(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.emit_closed(channel.id)

        result = await loop(channel, collect, ContinueWithSend(b"late", b""))

        assert isinstance(result, Halted)
        assert isinstance(result.error, ChannelClosedError)
        assert transport.mailbox.pending(channel.id) == 0

    async def test_send_from_step_then_receive(
        self, transport: MemoryTransport, channel: Channel,
    ):
        def echo(event, acc):
            match event:
                case Data(data=data):
                    return ContinueWithSend(data.upper(), acc + 1)
                case _:
                    return Continue(acc)

        transport.emit_data(channel.id, b"ping")
        transport.emit_data(channel.id, b"pong")

        result = await loop(channel, echo, Continue(0), timeout=0.05)

        assert result.acc == 2
        assert transport.sent == [(channel.id, 0, b"PING"), (channel.id, 0, b"PONG")]


class TestSuspend:
    async def test_suspend_returns_resumable_state(
        self, transport: MemoryTransport, channel: Channel,
    ):
        def step(event, acc):
            match event:
                case Data(data=b"pause"):
                    return Suspend(acc)
                case Data(data=data):
                    return Continue(acc + data)
                case _:
                    return Continue(acc)

        for chunk in (b"a", b"pause", b"b", b"c"):
            transport.emit_data(channel.id, chunk)
        transport.emit_closed(channel.id)

        suspended = await loop(channel, step, Continue(b""), timeout=1.0)

        assert isinstance(suspended, Suspended)
        assert suspended.acc == b"a"
        assert suspended.channel is channel
        assert suspended.timeout == 1.0
        assert transport.closed == []

        result = await suspended.resume(b"X")

        assert result == Done(b"Xbc")

    async def test_resume_matches_continuous_run(self, transport: MemoryTransport):
        def make_step(pause: bool):
            def step(event, acc):
                match event:
                    case Data(data=data) if pause and len(acc) == 1:
                        return Suspend([*acc, data])
                    case Data(data=data):
                        return Continue([*acc, data])
                    case _:
                        return Continue(acc)

            return step

        first = await Channel.open(transport)
        second = await Channel.open(transport)
        for channel in (first, second):
            for chunk in (b"1", b"2", b"3"):
                transport.emit_data(channel.id, chunk)
            transport.emit_closed(channel.id)

        suspended = await loop(first, make_step(pause=True), Continue([b"0"]))
        assert isinstance(suspended, Suspended)
        resumed = await suspended.resume(suspended.acc)

        continuous = await loop(second, make_step(pause=False), Continue([b"0"]))

        assert resumed == continuous == Done([b"0", b"1", b"2", b"3"])

    async def test_resume_with_signal(self, transport: MemoryTransport, channel: Channel):
        transport.emit_data(channel.id, b"x")

        suspended = await loop(channel, lambda event, acc: Suspend(acc), Continue(0), timeout=0.05)
        result = await suspended.resume_with(ContinueWithSend(b"reply", 5))

        assert result == Halted(5, result.error)
        assert isinstance(result.error, ChannelTimeoutError)
        assert transport.sent == [(channel.id, 0, b"reply")]

    async def test_initial_suspend(self, transport: MemoryTransport, channel: Channel):
        result = await loop(channel, collect, Suspend(b"seed"))

        assert isinstance(result, Suspended)
        assert result.acc == b"seed"
        assert transport.adjustments == []


class TestIsolation:
    async def test_concurrent_loops_see_only_their_events(self, transport: MemoryTransport):
        first = await Channel.open(transport)
        second = await Channel.open(transport)

        async def feed() -> None:
            for i in range(5):
                transport.emit_data(second.id, f"s{i}".encode())
                await asyncio.sleep(0)
                transport.emit_data(first.id, f"f{i}".encode())
                await asyncio.sleep(0)
            transport.emit_closed(second.id)
            transport.emit_closed(first.id)

        results = await asyncio.gather(
            loop(first, collect, Continue(b""), timeout=1.0),
            loop(second, collect, Continue(b""), timeout=1.0),
            feed(),
        )

        assert results[0] == Done(b"f0f1f2f3f4")
        assert results[1] == Done(b"s0s1s2s3s4")
        assert transport.granted(first.id) == 10
        assert transport.granted(second.id) == 10


class TestInvalidSignal:
    async def test_step_returning_non_signal_raises(
        self, transport: MemoryTransport, channel: Channel,
    ):
        transport.emit_data(channel.id, b"x")

        with pytest.raises(TypeError, match="Step function must return"):
            await loop(channel, lambda event, acc: acc, Continue(None))

    async def test_initial_non_signal_raises(self, channel: Channel):
        with pytest.raises(TypeError, match="Expected a loop Signal"):
            await loop(channel, collect, "not a signal")  # type: ignore[arg-type]


async def test_channel_loop_wrapper(transport: MemoryTransport, channel: Channel):
    transport.emit_data(channel.id, b"hi")
    transport.emit_closed(channel.id)

    assert await channel.loop(collect, b"") == Done(b"hi")
