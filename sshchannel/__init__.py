"""sshchannel - SSH session channels driven by a resumable message loop.

Example:

    import asyncssh
    from sshchannel import AsyncSSHTransport, Channel, Continue, Data, Stream

    def collect(event, out):
        match event:
            case Data(stream=Stream.NORMAL, data=data):
                return Continue(out + data)
            case _:
                return Continue(out)

    async with asyncssh.connect("10.0.0.1", username="ubuntu") as conn:
        channel = await Channel.open(AsyncSSHTransport(conn))
        if await channel.exec("echo hi") == "success":
            result = await channel.loop(collect, b"", timeout=30.0)
"""

# Channel
from sshchannel.channel import Channel, ChannelKind

# Configuration
from sshchannel.config import (
    ChannelOptions,
    PtyOptions,
    load_config,
    load_log_config,
    load_options,
    load_pty_options,
)

# Exceptions
from sshchannel.core.exceptions import (
    ChannelClosedError,
    ChannelError,
    ChannelTimeoutError,
    ConfigurationError,
    ConnectivityError,
)

# Events (ADT)
from sshchannel.events import (
    ChannelEvent,
    Closed,
    Data,
    Eof,
    ExitSignal,
    ExitStatus,
    RawEvent,
    Stream,
    rebind,
)

# Transport boundary
from sshchannel.infra import Mailbox, RequestOutcome, Transport

# Logging
from sshchannel.logging import LogConfig, LoggingOption, disable_logging, enable_logging

# Message loop
from sshchannel.loop import Done, Halted, LoopResult, Step, Suspended, loop

# Loop control signals
from sshchannel.signals import (
    Continue,
    ContinueWithSend,
    Halt,
    Outbound,
    OutboundMessage,
    Payload,
    Signal,
    Suspend,
)

# Transports
from sshchannel.transport import AsyncSSHTransport, MemoryTransport

__all__ = [
    # Channel
    "Channel",
    "ChannelKind",
    # Configuration
    "ChannelOptions",
    "PtyOptions",
    "load_config",
    "load_log_config",
    "load_options",
    "load_pty_options",
    # Exceptions
    "ChannelClosedError",
    "ChannelError",
    "ChannelTimeoutError",
    "ConfigurationError",
    "ConnectivityError",
    # Events
    "ChannelEvent",
    "Closed",
    "Data",
    "Eof",
    "ExitSignal",
    "ExitStatus",
    "RawEvent",
    "Stream",
    "rebind",
    # Transport boundary
    "Mailbox",
    "RequestOutcome",
    "Transport",
    # Logging
    "LogConfig",
    "LoggingOption",
    "disable_logging",
    "enable_logging",
    # Message loop
    "Done",
    "Halted",
    "LoopResult",
    "Step",
    "Suspended",
    "loop",
    # Signals
    "Continue",
    "ContinueWithSend",
    "Halt",
    "Outbound",
    "OutboundMessage",
    "Payload",
    "Signal",
    "Suspend",
    # Transports
    "AsyncSSHTransport",
    "MemoryTransport",
]
