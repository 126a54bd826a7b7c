"""Algebraic Data Type (ADT) for channel events.

Events arrive from the transport addressed by the raw integer channel id
and are rebound to the caller's Channel before they reach a step function:

- Data: normal or extended (stderr) output
- Eof: the remote will send no more data
- ExitSignal / ExitStatus: how the remote command ended
- Closed: terminal, nothing else follows for this channel

Use pattern matching to handle events in step functions:

    match event:
        case Data(stream=Stream.NORMAL, data=data):
            out += data
        case ExitStatus(status=status):
            code = status
        case Closed():
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum


class Stream(IntEnum):
    """Data stream kind of a channel frame."""

    NORMAL = 0
    STDERR = 1


@dataclass(frozen=True, slots=True)
class Data[C]:
    """Data frame received on a channel."""

    channel: C
    stream: int
    data: bytes


@dataclass(frozen=True, slots=True)
class Eof[C]:
    """Remote signaled end of data."""

    channel: C


@dataclass(frozen=True, slots=True)
class ExitSignal[C]:
    """Remote command was terminated by a signal."""

    channel: C
    signal: str
    message: str
    lang: str
    core_dumped: bool = False


@dataclass(frozen=True, slots=True)
class ExitStatus[C]:
    """Remote command exited with a status code."""

    channel: C
    status: int


@dataclass(frozen=True, slots=True)
class Closed[C]:
    """Channel was closed."""

    channel: C


type ChannelEvent[C] = Data[C] | Eof[C] | ExitSignal[C] | ExitStatus[C] | Closed[C]

type RawEvent = ChannelEvent[int]


def rebind[C](event: ChannelEvent[object], channel: C) -> ChannelEvent[C]:
    """Return a copy of ``event`` addressed to ``channel``."""
    return replace(event, channel=channel)  # type: ignore[return-value]