"""In-memory transport.

Implements the Transport protocol entirely in process. Inbound events are
injected with the ``emit_*`` helpers, and every outbound call is recorded
for inspection. Useful for tests and for driving step functions against
scripted sessions.

Example:
    >>> transport = MemoryTransport()
    >>> channel = await Channel.open(transport)
    >>> await channel.exec("echo hi")
    'success'
    >>> transport.emit_data(channel.id, b"hi\\n")
    >>> transport.emit_closed(channel.id)
    >>> await channel.loop(collect, b"")
    Done(acc=b'hi\\n')
"""

from __future__ import annotations

import itertools
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from sshchannel.config import PtyOptions
from sshchannel.core.exceptions import ChannelClosedError, ChannelError, ConnectivityError
from sshchannel.events import Closed, Data, Eof, ExitSignal, ExitStatus, RawEvent
from sshchannel.infra.mailbox import Mailbox
from sshchannel.infra.protocols import RequestOutcome
from sshchannel.logging import LoggingOption, disable_logging, enable_logging, resolve

type RequestKind = Literal["subsystem", "exec", "pty", "shell"]


@dataclass(frozen=True, slots=True)
class Request:
    """A recorded channel request."""

    channel_id: int
    kind: RequestKind
    argument: object = None


@dataclass(eq=False)
class MemoryTransport:
    """Transport backed by a Mailbox and plain lists.

    Attributes:
        outcomes: Outcome returned per request kind (default "success").
        send_failures: Payloads whose send raises the mapped exception.
        open_failure: If set, ``open_channel`` raises it.
        requests: Every channel request, in order.
        sent: Every data frame sent, as (channel_id, stream, data).
        eofs: Channel ids EOF was sent on, in order.
        closed: Channel ids closed, in order (repeats included).
        adjustments: Every window grant, as (channel_id, increment).
        opened: Open parameters per channel id, as (window, packet).
        logging: True or a LogConfig to attach log sinks until shutdown.
    """

    outcomes: dict[RequestKind, RequestOutcome] = field(default_factory=dict)
    send_failures: Mapping[bytes, ChannelError] = field(default_factory=dict)
    open_failure: ChannelError | None = None

    requests: list[Request] = field(default_factory=list)
    sent: list[tuple[int, int, bytes]] = field(default_factory=list)
    eofs: list[int] = field(default_factory=list)
    closed: list[int] = field(default_factory=list)
    adjustments: list[tuple[int, int]] = field(default_factory=list)
    opened: dict[int, tuple[int, int]] = field(default_factory=dict)

    logging: LoggingOption = field(default=False, repr=False)

    mailbox: Mailbox = field(default_factory=Mailbox, repr=False)
    _ids: itertools.count[int] = field(default_factory=itertools.count, repr=False)
    _open: set[int] = field(default_factory=set, repr=False)
    _log_handlers: list[int] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        config = resolve(self.logging)
        if config is not None:
            self._log_handlers = enable_logging(config)

    # -------------------------------------------------------------------------
    # Transport Protocol
    # -------------------------------------------------------------------------

    async def open_channel(
        self,
        initial_window_size: int,
        max_packet_size: int,
        timeout: float | None,
    ) -> int:
        self._require_up()
        if self.open_failure is not None:
            raise self.open_failure

        channel_id = next(self._ids)
        self.mailbox.register(channel_id)
        self._open.add(channel_id)
        self.opened[channel_id] = (initial_window_size, max_packet_size)
        return channel_id

    async def request_subsystem(
        self,
        channel_id: int,
        name: str,
        timeout: float | None,
    ) -> RequestOutcome:
        return self._request(channel_id, "subsystem", name)

    async def request_exec(
        self,
        channel_id: int,
        command: bytes,
        timeout: float | None,
    ) -> RequestOutcome:
        return self._request(channel_id, "exec", command)

    async def request_pty(
        self,
        channel_id: int,
        options: PtyOptions,
        timeout: float | None,
    ) -> RequestOutcome:
        return self._request(channel_id, "pty", options)

    async def request_shell(self, channel_id: int) -> None:
        self._request(channel_id, "shell")

    async def send_data(
        self,
        channel_id: int,
        stream: int,
        data: bytes,
        timeout: float | None,
    ) -> None:
        self._require_open(channel_id)
        failure = self.send_failures.get(data)
        if failure is not None:
            raise failure
        self.sent.append((channel_id, stream, data))

    async def send_eof(self, channel_id: int) -> None:
        self._require_open(channel_id)
        self.eofs.append(channel_id)

    async def close_channel(self, channel_id: int) -> None:
        self.closed.append(channel_id)
        self._open.discard(channel_id)
        self.mailbox.release(channel_id)

    async def adjust_window(self, channel_id: int, increment: int) -> None:
        self._require_up()
        self.adjustments.append((channel_id, increment))

    async def wait_for_event(self, channel_id: int, timeout: float | None) -> RawEvent:
        return await self.mailbox.receive(channel_id, timeout)

    # -------------------------------------------------------------------------
    # Inbound Events
    # -------------------------------------------------------------------------

    def emit(self, event: RawEvent) -> None:
        """Deliver a raw event as if it arrived from the remote."""
        if isinstance(event, Closed):
            self._open.discard(event.channel)
        self.mailbox.put(event)

    def emit_data(self, channel_id: int, data: bytes, stream: int = 0) -> None:
        self.emit(Data(channel=channel_id, stream=stream, data=data))

    def emit_eof(self, channel_id: int) -> None:
        self.emit(Eof(channel=channel_id))

    def emit_exit_status(self, channel_id: int, status: int) -> None:
        self.emit(ExitStatus(channel=channel_id, status=status))

    def emit_exit_signal(
        self,
        channel_id: int,
        signal: str,
        message: str = "",
        lang: str = "",
    ) -> None:
        self.emit(ExitSignal(channel=channel_id, signal=signal, message=message, lang=lang))

    def emit_closed(self, channel_id: int) -> None:
        self.emit(Closed(channel=channel_id))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def shutdown(self, exc: BaseException | None = None) -> None:
        """Tear the transport down. Later operations raise ConnectivityError."""
        self._open.clear()
        self.mailbox.shutdown(exc)
        if self._log_handlers is not None:
            disable_logging(self._log_handlers)
            self._log_handlers = None

    def granted(self, channel_id: int) -> int:
        """Total window granted to ``channel_id``."""
        return sum(increment for cid, increment in self.adjustments if cid == channel_id)

    def _request(self, channel_id: int, kind: RequestKind, argument: object = None) -> RequestOutcome:
        self._require_open(channel_id)
        self.requests.append(Request(channel_id, kind, argument))
        outcome = self.outcomes.get(kind, "success")
        logger.trace("Memory channel {id}: {kind} -> {outcome}", id=channel_id, kind=kind, outcome=outcome)
        return outcome

    def _require_up(self) -> None:
        if self.mailbox.is_shutdown:
            raise ConnectivityError("Transport is shut down")

    def _require_open(self, channel_id: int) -> None:
        self._require_up()
        if channel_id not in self._open:
            raise ChannelClosedError(channel_id)
