"""Session channel over a borrowed transport.

Service class pattern - the transport and channel id are bound at open,
not passed on every call.

Example:
    >>> channel = await Channel.open(transport, timeout=10.0)
    >>> if await channel.exec("uname -a") == "success":
    ...     result = await channel.loop(collect_stdout, b"")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

from sshchannel.config import ChannelOptions, PtyOptions
from sshchannel.core.exceptions import (
    ChannelClosedError,
    ChannelTimeoutError,
    ConnectivityError,
)
from sshchannel.events import ChannelEvent, rebind
from sshchannel.infra.protocols import RequestOutcome, Transport
from sshchannel.signals import Continue, Payload, Signal

if TYPE_CHECKING:
    from sshchannel.loop import LoopResult, Step

type ChannelKind = Literal["session"]


def _to_bytes(data: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


@dataclass(frozen=True, slots=True)
class Channel:
    """An open session channel.

    A Channel is plain value data: the borrowed transport, the id the
    transport assigned at open, and the channel kind. It is valid only for
    the lifetime of its transport.

    As context manager:
        >>> async with await Channel.open(transport) as channel:
        ...     await channel.exec("ls")
    """

    transport: Transport = field(repr=False)
    id: int
    kind: ChannelKind = "session"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        transport: Transport,
        options: ChannelOptions | None = None,
        **overrides: Any,
    ) -> Channel:
        """Open a session channel on ``transport``.

        Args:
            transport: Open, authenticated transport.
            options: Channel options. Defaults to ChannelOptions().
            **overrides: Individual ChannelOptions fields to replace
                (timeout, initial_window_size, max_packet_size).

        Returns:
            The open Channel.

        Raises:
            ConnectivityError: If the transport refuses or fails the open.
            ChannelTimeoutError: If the open does not complete in time.
        """
        options = options or ChannelOptions()
        if overrides:
            options = replace(options, **overrides)

        channel_id = await transport.open_channel(
            options.initial_window_size,
            options.max_packet_size,
            options.timeout,
        )
        logger.debug(
            "Opened session channel {id} (window={window}, packet={packet})",
            id=channel_id, window=options.initial_window_size, packet=options.max_packet_size,
        )
        return cls(transport=transport, id=channel_id)

    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        await self.transport.close_channel(self.id)
        logger.debug("Closed channel {id}", id=self.id)

    async def __aenter__(self) -> Channel:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Channel Requests
    # -------------------------------------------------------------------------

    async def subsystem(self, name: str, timeout: float | None = None) -> RequestOutcome:
        """Activate subsystem ``name`` (e.g. "sftp") on the channel.

        Returns:
            "success" or "failure".
        """
        outcome = await self.transport.request_subsystem(self.id, name, timeout)
        self._log_outcome("subsystem", name, outcome)
        return outcome

    async def exec(self, command: str | bytes, timeout: float | None = None) -> RequestOutcome:
        """Execute ``command`` on the remote host.

        Use ``loop`` to process the channel messages the command produces.

        Returns:
            "success" or "failure".
        """
        outcome = await self.transport.request_exec(self.id, _to_bytes(command), timeout)
        self._log_outcome("exec", command, outcome)
        return outcome

    async def ptty(
        self,
        options: PtyOptions | None = None,
        timeout: float | None = None,
    ) -> RequestOutcome:
        """Allocate a pseudo-terminal. Must precede ``exec`` or ``shell``."""
        options = options or PtyOptions()
        outcome = await self.transport.request_pty(self.id, options, timeout)
        self._log_outcome("pty", options.term, outcome)
        return outcome

    async def shell(self) -> None:
        """Start the user's default shell on the remote host."""
        await self.transport.request_shell(self.id)
        logger.debug("Channel {id}: shell requested", id=self.id)

    def _log_outcome(self, request: str, arg: object, outcome: RequestOutcome) -> None:
        if outcome == "success":
            logger.debug("Channel {id}: {request} {arg!r} accepted", id=self.id, request=request, arg=arg)
        else:
            logger.warning("Channel {id}: {request} {arg!r} refused", id=self.id, request=request, arg=arg)

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    async def send(
        self,
        data: Payload,
        stream: int = 0,
        timeout: float | None = None,
    ) -> None:
        """Send data across the channel.

        ``data`` may be bytes, str, or an iterable of chunks (e.g. an open
        binary file or a generator). Chunks are sent in order; the first
        failure propagates and later chunks are not sent.

        Raises:
            ChannelTimeoutError: If a write does not complete in time.
            ChannelClosedError: If the channel is closed.
        """
        if isinstance(data, bytes | bytearray | memoryview | str):
            await self.transport.send_data(self.id, stream, _to_bytes(data), timeout)
            return

        if not isinstance(data, Iterable):
            raise TypeError(f"Cannot send {type(data).__name__}; expected bytes, str or iterable")

        for chunk in data:
            await self.send(chunk, stream, timeout)

    async def eof(self) -> None:
        """Send EOF. Must not be called after ``close``."""
        await self.transport.send_eof(self.id)

    async def adjust(self, size: int) -> None:
        """Grant ``size`` more bytes of flow-control window to the remote."""
        if not isinstance(size, int) or isinstance(size, bool):
            raise TypeError(f"Window increment must be an int, got {type(size).__name__}")
        if size < 0:
            raise ValueError(f"Window increment must be >= 0, got {size}")
        await self.transport.adjust_window(self.id, size)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    async def recv(self, timeout: float | None = None) -> ChannelEvent[Channel]:
        """Receive the next event addressed to this channel.

        Only events for this channel are taken; events for other channels on
        the same transport stay queued for their own receivers.

        Raises:
            ChannelTimeoutError: If nothing arrives within ``timeout``.
            ChannelClosedError: If the channel already terminated.
        """
        raw = await self.transport.wait_for_event(self.id, timeout)
        logger.trace("Channel {id} received {event}", id=self.id, event=type(raw).__name__)
        return rebind(raw, self)

    async def flush(self, timeout: float = 0.0) -> int:
        """Discard pending events for this channel.

        Stops once no event arrives within ``timeout`` (default: only what
        is already queued).

        Returns:
            Number of events discarded.
        """
        discarded = 0
        while True:
            try:
                await self.transport.wait_for_event(self.id, timeout)
            except (ChannelTimeoutError, ChannelClosedError, ConnectivityError):
                break
            discarded += 1

        if discarded:
            logger.debug("Channel {id}: flushed {n} pending event(s)", id=self.id, n=discarded)
        return discarded

    # -------------------------------------------------------------------------
    # Message Loop
    # -------------------------------------------------------------------------

    async def loop[A](
        self,
        step: Step[A],
        acc: A = None,  # type: ignore[assignment]
        *,
        signal: Signal[A] | None = None,
        timeout: float | None = None,
    ) -> LoopResult[A]:
        """Run the message loop on this channel.

        Seeds the loop with ``Continue(acc)`` unless ``signal`` is given.
        See ``sshchannel.loop.loop``.
        """
        from sshchannel.loop import loop

        return await loop(self, step, signal if signal is not None else Continue(acc), timeout)
