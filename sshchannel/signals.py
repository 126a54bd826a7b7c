"""Loop control signals returned by step functions.

A step function maps ``(event, acc)`` to one of:

- Continue(acc): wait for the next event
- ContinueWithSend(message, acc): send ``message`` first, then wait
- Halt(acc): close the channel and stop
- Suspend(acc): pause and hand a resumable state back to the caller

Outbound messages for ContinueWithSend:

- None: nothing is sent
- Outbound.EOF: send EOF
- (stream, data): send ``data`` on ``stream`` (0 normal, 1 stderr)
- data: shorthand for (0, data)

``data`` is bytes, str (UTF-8 encoded) or an iterable of such chunks.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class Outbound(Enum):
    """Outbound control messages."""

    EOF = "eof"


type Chunk = bytes | bytearray | memoryview | str

type Payload = Chunk | Iterable[Chunk]

type OutboundMessage = Outbound | tuple[int, Payload] | Payload | None


@dataclass(frozen=True, slots=True)
class Continue[A]:
    """Wait for the next event."""

    acc: A


@dataclass(frozen=True, slots=True)
class ContinueWithSend[A]:
    """Send ``message`` before waiting for the next event."""

    message: OutboundMessage
    acc: A


@dataclass(frozen=True, slots=True)
class Halt[A]:
    """Stop the loop and close the channel."""

    acc: A


@dataclass(frozen=True, slots=True)
class Suspend[A]:
    """Pause the loop, yielding a resumable state."""

    acc: A


type Signal[A] = Continue[A] | ContinueWithSend[A] | Halt[A] | Suspend[A]

SIGNAL_TYPES = (Continue, ContinueWithSend, Halt, Suspend)


def is_signal(value: object) -> bool:
    return isinstance(value, SIGNAL_TYPES)
