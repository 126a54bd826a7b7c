"""Per-transport inbound event queue with filtered receive.

Several channels share one transport. Their events land in a single
Mailbox in arrival order, and each receiver takes only the first event
addressed to its own channel id. Events for other ids are never consumed
or reordered, so concurrent receivers on the same transport do not see
each other's traffic.

Only open channel ids are tracked. An id leaves the mailbox once its
Closed event is taken or it is released locally, so a long-lived
transport keeps no state for finished channels.
"""

from __future__ import annotations

import asyncio
from collections import deque

from loguru import logger

from sshchannel.core.exceptions import (
    ChannelClosedError,
    ChannelTimeoutError,
    ConnectivityError,
)
from sshchannel.events import Closed, RawEvent


class Mailbox:
    """Inbound events for one transport.

    ``put`` is synchronous so protocol callbacks (e.g. asyncssh session
    methods) can deliver events without awaiting.

    Example:
        >>> mailbox = Mailbox()
        >>> mailbox.register(1)
        >>> mailbox.put(Data(channel=1, stream=0, data=b"hi"))
        >>> await mailbox.receive(1, timeout=1.0)
        Data(channel=1, stream=0, data=b'hi')
    """

    def __init__(self) -> None:
        self._events: deque[RawEvent] = deque()
        self._waiters: set[asyncio.Future[None]] = set()
        self._open: set[int] = set()
        self._shutdown = False
        self._shutdown_exc: BaseException | None = None

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def open_ids(self) -> frozenset[int]:
        """Channel ids still accepting events."""
        return frozenset(self._open)

    def put(self, event: RawEvent) -> None:
        """Queue an inbound event and wake receivers.

        Events for ids that are not open are discarded.
        """
        if event.channel not in self._open:
            logger.trace(
                "Dropping {event} for channel {id} (not open)",
                event=type(event).__name__, id=event.channel,
            )
            return
        self._events.append(event)
        self._wake()

    async def receive(self, channel_id: int, timeout: float | None) -> RawEvent:
        """Take the first queued event for ``channel_id``.

        Args:
            channel_id: Channel whose events to take.
            timeout: Seconds to wait. None waits forever; 0 only takes what
                is already queued.

        Raises:
            ChannelTimeoutError: If nothing arrives within ``timeout``.
            ChannelClosedError: If the channel is no longer open and nothing is pending.
            ConnectivityError: If the transport was shut down and nothing is pending.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            event = self._take(channel_id)
            if event is not None:
                return event

            self._raise_if_ended(channel_id)

            remaining: float | None = None
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ChannelTimeoutError(channel_id, timeout)

            waiter: asyncio.Future[None] = loop.create_future()
            self._waiters.add(waiter)
            try:
                await asyncio.wait_for(waiter, remaining)
            except TimeoutError:
                # Rescan once more; the deadline check above raises if still empty.
                continue
            finally:
                self._waiters.discard(waiter)

    def pending(self, channel_id: int) -> int:
        """Number of queued events for ``channel_id``."""
        return sum(1 for event in self._events if event.channel == channel_id)

    def register(self, channel_id: int) -> None:
        """Start accepting events for a (possibly reused) channel id."""
        self._open.add(channel_id)

    def release(self, channel_id: int) -> None:
        """Mark a local close: queued and later events for the id are discarded."""
        self._open.discard(channel_id)
        self._purge(channel_id)
        self._wake()

    def shutdown(self, exc: BaseException | None = None) -> None:
        """Mark the transport as torn down and wake every receiver."""
        if self._shutdown:
            return
        self._shutdown = True
        self._shutdown_exc = exc
        logger.debug("Mailbox shut down: {exc}", exc=exc)
        self._wake()

    def _take(self, channel_id: int) -> RawEvent | None:
        for index, event in enumerate(self._events):
            if event.channel == channel_id:
                del self._events[index]
                if isinstance(event, Closed):
                    self._open.discard(channel_id)
                    self._purge(channel_id)
                return event
        return None

    def _purge(self, channel_id: int) -> None:
        before = len(self._events)
        self._events = deque(e for e in self._events if e.channel != channel_id)
        if dropped := before - len(self._events):
            logger.trace("Discarded {n} queued event(s) for channel {id}", n=dropped, id=channel_id)

    def _raise_if_ended(self, channel_id: int) -> None:
        if channel_id not in self._open:
            raise ChannelClosedError(channel_id)
        if self._shutdown:
            raise ConnectivityError("Transport is shut down") from self._shutdown_exc

    def _wake(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
