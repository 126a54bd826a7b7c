"""Exception hierarchy for sshchannel.

All sshchannel-specific exceptions inherit from ChannelError, enabling
callers to catch every channel failure with a single except clause.

Protocol outcomes of channel requests ("success" / "failure") are not
exceptions; they are returned to the caller as plain values.
"""

from __future__ import annotations


class ChannelError(Exception):
    """Base exception for all sshchannel errors."""


class ConnectivityError(ChannelError):
    """Raised when the transport fails to open, send or request.

    Also raised for any operation attempted after the transport was torn down.
    The underlying transport error is chained as ``__cause__``.
    """


class ChannelTimeoutError(ChannelError):
    """Raised when a wait on a channel exceeds its deadline."""

    def __init__(self, channel_id: int, timeout: float | None) -> None:
        self.channel_id = channel_id
        self.timeout = timeout
        super().__init__(f"Channel {channel_id} timed out after {timeout}s")


class ChannelClosedError(ChannelError):
    """Raised when a channel has already terminated."""

    def __init__(self, channel_id: int) -> None:
        self.channel_id = channel_id
        super().__init__(f"Channel {channel_id} is closed")


class ConfigurationError(ChannelError):
    """Raised for invalid option values or configuration files."""
