"""AsyncSSH-based transport for session channels.

Service class pattern - the authenticated connection is bound at
construction, not passed on every call.

asyncssh opens a session channel and issues its pty/exec/subsystem/shell
request in a single ``create_session`` call. ``open_channel`` therefore
reserves an id together with the window and packet sizes, ``request_pty``
records the terminal to request, and the first exec/subsystem/shell
request starts the session on the wire.

A slot lives until the channel is closed locally or the remote closes it,
whichever comes first.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import asyncssh
from loguru import logger

from sshchannel.config import PtyOptions
from sshchannel.core.exceptions import (
    ChannelClosedError,
    ChannelTimeoutError,
    ConnectivityError,
)
from sshchannel.events import Closed, Data, Eof, ExitSignal, ExitStatus, RawEvent, Stream
from sshchannel.infra.mailbox import Mailbox
from sshchannel.infra.protocols import RequestOutcome
from sshchannel.logging import LoggingOption, disable_logging, enable_logging, resolve

# =============================================================================
# Session Callbacks
# =============================================================================


class _MailboxSession(asyncssh.SSHClientSession):
    """Forwards asyncssh session callbacks into a Mailbox as raw events.

    Tracks bytes delivered but not yet granted back by the caller. Reading
    pauses before the next packet could push that count past the window,
    and asyncssh sends no window updates while paused, so the remote stalls
    until ``grant`` catches up.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        channel_id: int,
        window: int,
        packet: int,
        on_closed: Callable[[int], None],
    ) -> None:
        super().__init__()
        self._mailbox = mailbox
        self._id = channel_id
        self._limit = window - min(packet, window)
        self._on_closed = on_closed
        self._chan: asyncssh.SSHClientChannel | None = None
        self.unacknowledged = 0
        self.reading_paused = False
        self.writable = asyncio.Event()
        self.writable.set()
        self.closed = False

    def connection_made(self, chan: asyncssh.SSHClientChannel) -> None:
        self._chan = chan

    def data_received(self, data: bytes, datatype: int | None) -> None:
        stream = Stream.NORMAL if datatype is None else datatype
        self.unacknowledged += len(data)
        self._mailbox.put(Data(channel=self._id, stream=int(stream), data=bytes(data)))
        if not self.reading_paused and self.unacknowledged > self._limit and self._chan is not None:
            logger.trace(
                "Channel {id}: window exhausted ({n} bytes unacknowledged), pausing",
                id=self._id, n=self.unacknowledged,
            )
            self.reading_paused = True
            self._chan.pause_reading()

    def grant(self, increment: int) -> None:
        self.unacknowledged = max(0, self.unacknowledged - increment)
        if self.reading_paused and self.unacknowledged <= self._limit and self._chan is not None:
            self.reading_paused = False
            # May deliver buffered data synchronously.
            self._chan.resume_reading()

    def eof_received(self) -> bool:
        self._mailbox.put(Eof(channel=self._id))
        # Keep our side open; the caller decides when to send EOF or close.
        return True

    def exit_status_received(self, status: int) -> None:
        self._mailbox.put(ExitStatus(channel=self._id, status=status))

    def exit_signal_received(
        self, signal: str, core_dumped: bool, msg: str, lang: str,
    ) -> None:
        self._mailbox.put(
            ExitSignal(
                channel=self._id,
                signal=signal,
                message=msg,
                lang=lang,
                core_dumped=core_dumped,
            )
        )

    def connection_lost(self, exc: Exception | None) -> None:
        self.closed = True
        self.writable.set()
        if exc is not None:
            logger.debug("Channel {id} lost: {exc}", id=self._id, exc=exc)
        self._mailbox.put(Closed(channel=self._id))
        self._on_closed(self._id)

    def pause_writing(self) -> None:
        self.writable.clear()

    def resume_writing(self) -> None:
        self.writable.set()


@dataclass
class _Slot:
    """Local state of one reserved channel id."""

    window: int
    packet: int
    pty: PtyOptions | None = None
    chan: asyncssh.SSHClientChannel | None = None
    session: _MailboxSession | None = None
    starting: bool = False


# =============================================================================
# SSH Transport
# =============================================================================


class AsyncSSHTransport:
    """Transport over an authenticated asyncssh client connection.

    The connection is borrowed: the transport never closes it.

    Args:
        conn: Authenticated client connection.
        logging: True or a LogConfig to attach log sinks until shutdown.

    Example:
        >>> async with asyncssh.connect("10.0.0.1", username="ubuntu") as conn:
        ...     transport = AsyncSSHTransport(conn)
        ...     channel = await Channel.open(transport)
        ...     await channel.exec("nvidia-smi")
        ...     result = await channel.loop(collect, b"", timeout=30.0)
    """

    def __init__(
        self,
        conn: asyncssh.SSHClientConnection,
        *,
        logging: LoggingOption = False,
    ) -> None:
        self._conn = conn
        self.mailbox = Mailbox()
        self._slots: dict[int, _Slot] = {}
        self._ids = itertools.count()

        config = resolve(logging)
        self._log_handlers = enable_logging(config) if config is not None else None

    # -------------------------------------------------------------------------
    # Channel Lifecycle
    # -------------------------------------------------------------------------

    async def open_channel(
        self,
        initial_window_size: int,
        max_packet_size: int,
        timeout: float | None,
    ) -> int:
        self._require_up()
        channel_id = next(self._ids)
        self._slots[channel_id] = _Slot(window=initial_window_size, packet=max_packet_size)
        self.mailbox.register(channel_id)
        return channel_id

    async def close_channel(self, channel_id: int) -> None:
        slot = self._slots.pop(channel_id, None)
        if slot is not None and slot.chan is not None:
            slot.chan.close()
        self.mailbox.release(channel_id)

    def shutdown(self, exc: BaseException | None = None) -> None:
        """Mark the connection as gone. Later operations raise ConnectivityError."""
        for slot in self._slots.values():
            if slot.chan is not None:
                slot.chan.close()
        self._slots.clear()
        self.mailbox.shutdown(exc)
        if self._log_handlers is not None:
            disable_logging(self._log_handlers)
            self._log_handlers = None

    def _session_closed(self, channel_id: int) -> None:
        if self._slots.pop(channel_id, None) is not None:
            logger.debug("Channel {id}: closed by remote", id=channel_id)

    # -------------------------------------------------------------------------
    # Channel Requests
    # -------------------------------------------------------------------------

    async def request_pty(
        self,
        channel_id: int,
        options: PtyOptions,
        timeout: float | None,
    ) -> RequestOutcome:
        slot = self._slot(channel_id)
        if slot.chan is not None or slot.starting:
            logger.warning("Channel {id}: pty must be requested before the session starts", id=channel_id)
            return "failure"
        slot.pty = options
        return "success"

    async def request_exec(
        self,
        channel_id: int,
        command: bytes,
        timeout: float | None,
    ) -> RequestOutcome:
        return await self._start(channel_id, timeout, command=command)

    async def request_subsystem(
        self,
        channel_id: int,
        name: str,
        timeout: float | None,
    ) -> RequestOutcome:
        return await self._start(channel_id, timeout, subsystem=name)

    async def request_shell(self, channel_id: int) -> None:
        if await self._start(channel_id, None) == "failure":
            raise ConnectivityError(f"Channel {channel_id}: shell request refused")

    async def _start(
        self,
        channel_id: int,
        timeout: float | None,
        **request: Any,
    ) -> RequestOutcome:
        slot = self._slot(channel_id)
        if slot.chan is not None or slot.starting:
            logger.warning("Channel {id}: session already started", id=channel_id)
            return "failure"

        kwargs: dict[str, Any] = {
            "encoding": None,
            "window": slot.window,
            "max_pktsize": slot.packet,
        }
        kwargs.update({k: v for k, v in request.items() if v is not None})
        if slot.pty is not None:
            kwargs["term_type"] = slot.pty.term
            kwargs["term_size"] = slot.pty.size
            kwargs["term_modes"] = dict(slot.pty.modes)

        def session_factory() -> _MailboxSession:
            # Attached before create_session returns so early grants reach it.
            slot.session = _MailboxSession(
                self.mailbox, channel_id, slot.window, slot.packet, self._session_closed,
            )
            return slot.session

        slot.starting = True
        try:
            chan, _ = await asyncio.wait_for(
                self._conn.create_session(session_factory, **kwargs),
                timeout,
            )
        except asyncssh.ChannelOpenError as e:
            logger.warning("Channel {id}: session refused: {reason}", id=channel_id, reason=e.reason)
            # asyncssh closes a channel whose session request was refused.
            self._slots.pop(channel_id, None)
            self.mailbox.release(channel_id)
            return "failure"
        except TimeoutError as e:
            raise ChannelTimeoutError(channel_id, timeout) from e
        except (asyncssh.Error, OSError) as e:
            raise ConnectivityError(f"Channel {channel_id}: session request failed: {e}") from e
        finally:
            slot.starting = False

        slot.chan = chan
        return "success"

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    async def send_data(
        self,
        channel_id: int,
        stream: int,
        data: bytes,
        timeout: float | None,
    ) -> None:
        slot = self._running(channel_id)
        assert slot.chan is not None and slot.session is not None

        datatype = None if stream == Stream.NORMAL else stream
        try:
            slot.chan.write(data, datatype)
        except BrokenPipeError as e:
            raise ChannelClosedError(channel_id) from e
        except (asyncssh.Error, OSError) as e:
            raise ConnectivityError(f"Channel {channel_id}: send failed: {e}") from e

        try:
            await asyncio.wait_for(slot.session.writable.wait(), timeout)
        except TimeoutError as e:
            raise ChannelTimeoutError(channel_id, timeout) from e

        if slot.session.closed:
            raise ChannelClosedError(channel_id)

    async def send_eof(self, channel_id: int) -> None:
        slot = self._running(channel_id)
        assert slot.chan is not None
        try:
            slot.chan.write_eof()
        except BrokenPipeError as e:
            raise ChannelClosedError(channel_id) from e
        except (asyncssh.Error, OSError) as e:
            raise ConnectivityError(f"Channel {channel_id}: EOF failed: {e}") from e

    async def adjust_window(self, channel_id: int, increment: int) -> None:
        self._require_up()
        slot = self._slots.get(channel_id)
        if slot is not None and slot.session is not None:
            slot.session.grant(increment)
        logger.trace("Channel {id}: window +{n}", id=channel_id, n=increment)

    async def wait_for_event(self, channel_id: int, timeout: float | None) -> RawEvent:
        return await self.mailbox.receive(channel_id, timeout)

    def unacknowledged(self, channel_id: int) -> int:
        """Bytes delivered on ``channel_id`` and not yet granted back."""
        slot = self._slots.get(channel_id)
        if slot is None or slot.session is None:
            return 0
        return slot.session.unacknowledged

    @property
    def open_channels(self) -> int:
        """Number of channel ids with live local state."""
        return len(self._slots)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_up(self) -> None:
        if self.mailbox.is_shutdown:
            raise ConnectivityError("Transport is shut down")

    def _slot(self, channel_id: int) -> _Slot:
        self._require_up()
        slot = self._slots.get(channel_id)
        if slot is None:
            raise ChannelClosedError(channel_id)
        return slot

    def _running(self, channel_id: int) -> _Slot:
        slot = self._slot(channel_id)
        if slot.chan is None or slot.session is None or slot.session.closed:
            raise ChannelClosedError(channel_id)
        return slot
