"""Message loop driver.

Runs a channel until it closes or the caller's step function stops it.
Each step function call receives one event and the current accumulator and
returns a Signal telling the loop how to proceed:

    def collect(event, acc):
        match event:
            case Data(stream=Stream.NORMAL, data=data):
                return Continue(acc + data)
            case _:
                return Continue(acc)

    match await loop(channel, collect, Continue(b"")):
        case Done(acc=output):
            ...
        case Halted(acc=output, error=error):
            ...
        case Suspended() as suspended:
            result = await suspended.resume(b"")

Data events grant their byte length back to the remote window before the
step function runs. A Closed event always ends the loop with Done.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from sshchannel.core.exceptions import ChannelError
from sshchannel.events import ChannelEvent, Closed, Data
from sshchannel.signals import (
    Continue,
    ContinueWithSend,
    Halt,
    Outbound,
    OutboundMessage,
    Signal,
    Suspend,
    is_signal,
)

if TYPE_CHECKING:
    from sshchannel.channel import Channel

type Step[A] = Callable[[ChannelEvent[Channel], A], Signal[A] | Awaitable[Signal[A]]]


# =============================================================================
# Loop Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class Done[A]:
    """The channel closed; ``acc`` is the step function's final accumulator."""

    acc: A


@dataclass(frozen=True, slots=True)
class Halted[A]:
    """The loop stopped and closed the channel.

    Attributes:
        acc: Accumulator held when the loop stopped.
        error: The send/receive failure that stopped the loop, or None when
            the step function returned Halt.
    """

    acc: A
    error: ChannelError | None = None


@dataclass(frozen=True, slots=True)
class Suspended[A]:
    """The loop paused; call ``resume`` to continue on the same channel.

    Nothing is buffered across a suspension: resuming starts with a fresh
    wait for the next event.
    """

    acc: A
    channel: Channel = field(repr=False)
    step: Step[A] = field(repr=False)
    timeout: float | None = None

    async def resume(self, acc: A) -> LoopResult[A]:
        """Re-enter the loop with ``Continue(acc)``."""
        return await loop(self.channel, self.step, Continue(acc), self.timeout)

    async def resume_with(self, signal: Signal[A]) -> LoopResult[A]:
        """Re-enter the loop with an arbitrary signal (e.g. ContinueWithSend)."""
        return await loop(self.channel, self.step, signal, self.timeout)


type LoopResult[A] = Done[A] | Halted[A] | Suspended[A]


# =============================================================================
# Driver
# =============================================================================


async def loop[A](
    channel: Channel,
    step: Step[A],
    signal: Signal[A],
    timeout: float | None = None,
) -> LoopResult[A]:
    """Drive ``channel`` until it closes, halts or suspends.

    Args:
        channel: Open channel to drive.
        step: Called with each received event and the current accumulator;
            returns the next Signal. May be a coroutine function.
        signal: Initial signal, normally ``Continue(initial_acc)``.
        timeout: Maximum wait for each individual send and receive.

    Returns:
        Done, Halted or Suspended.

    Raises:
        TypeError: If ``step`` returns something other than a Signal.
    """
    while True:
        match signal:
            case ContinueWithSend(message=message, acc=acc):
                try:
                    await _send(channel, message, timeout)
                except ChannelError as e:
                    return await _halt(channel, acc, e)
                signal = Continue(acc)

            case Continue(acc=acc):
                try:
                    event = await channel.recv(timeout)
                except ChannelError as e:
                    return await _halt(channel, acc, e)

                if isinstance(event, Closed):
                    final = await _apply(step, event, acc)
                    logger.debug("Channel {id}: loop done", id=channel.id)
                    return Done(final.acc)

                if isinstance(event, Data):
                    await channel.adjust(len(event.data))

                signal = await _apply(step, event, acc)

            case Halt(acc=acc):
                return await _halt(channel, acc)

            case Suspend(acc=acc):
                logger.debug("Channel {id}: loop suspended", id=channel.id)
                return Suspended(acc=acc, channel=channel, step=step, timeout=timeout)

            case _:
                raise TypeError(f"Expected a loop Signal, got {signal!r}")


async def _apply[A](step: Step[A], event: ChannelEvent[Channel], acc: A) -> Signal[A]:
    result = step(event, acc)
    if inspect.isawaitable(result):
        result = await result
    if not is_signal(result):
        raise TypeError(
            f"Step function must return Continue, ContinueWithSend, Halt or Suspend, "
            f"got {result!r}"
        )
    return result  # type: ignore[return-value]


async def _halt[A](channel: Channel, acc: A, error: ChannelError | None = None) -> Halted[A]:
    if error is not None:
        logger.debug("Channel {id}: halting after {error!r}", id=channel.id, error=error)
    else:
        logger.debug("Channel {id}: halting", id=channel.id)

    await channel.close()
    await channel.flush()
    return Halted(acc=acc, error=error)


async def _send(channel: Channel, message: OutboundMessage, timeout: float | None) -> None:
    match message:
        case None:
            return
        case Outbound.EOF:
            await channel.eof()
        case (int() as stream, data):
            await channel.send(data, stream, timeout)
        case data:
            await channel.send(data, 0, timeout)
