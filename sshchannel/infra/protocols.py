"""Protocol definitions for the transport boundary.

The channel core never talks to a secure connection directly. It drives a
Transport: a small capability interface that production code implements
over asyncssh and tests implement in memory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sshchannel.config import PtyOptions
    from sshchannel.events import RawEvent

type RequestOutcome = Literal["success", "failure"]


# =============================================================================
# Transport Protocol
# =============================================================================


@runtime_checkable
class Transport(Protocol):
    """Protocol for one open, authenticated secure connection.

    Channels borrow a Transport; they never close or reconfigure it.
    Every method raises ConnectivityError when the connection fails or has
    been torn down.

    Usage:
        channel_id = await transport.open_channel(128 * 1024, 32 * 1024, None)
        if await transport.request_exec(channel_id, b"uname -a", None) == "success":
            event = await transport.wait_for_event(channel_id, 5.0)
    """

    async def open_channel(
        self,
        initial_window_size: int,
        max_packet_size: int,
        timeout: float | None,
    ) -> int:
        """Open a session channel and return its id."""
        ...

    async def request_subsystem(
        self,
        channel_id: int,
        name: str,
        timeout: float | None,
    ) -> RequestOutcome:
        """Ask the remote to start subsystem ``name`` on the channel."""
        ...

    async def request_exec(
        self,
        channel_id: int,
        command: bytes,
        timeout: float | None,
    ) -> RequestOutcome:
        """Ask the remote to execute ``command`` on the channel."""
        ...

    async def request_pty(
        self,
        channel_id: int,
        options: PtyOptions,
        timeout: float | None,
    ) -> RequestOutcome:
        """Ask the remote to allocate a pseudo-terminal."""
        ...

    async def request_shell(self, channel_id: int) -> None:
        """Ask the remote to start the user's default shell."""
        ...

    async def send_data(
        self,
        channel_id: int,
        stream: int,
        data: bytes,
        timeout: float | None,
    ) -> None:
        """Send one data frame.

        Raises:
            ChannelTimeoutError: If the write does not complete in time.
            ChannelClosedError: If the channel is closing or closed.
        """
        ...

    async def send_eof(self, channel_id: int) -> None:
        """Signal that no more data will be sent."""
        ...

    async def close_channel(self, channel_id: int) -> None:
        """Close the channel. Repeated calls are no-ops."""
        ...

    async def adjust_window(self, channel_id: int, increment: int) -> None:
        """Grant ``increment`` more bytes of receive window to the remote."""
        ...

    async def wait_for_event(
        self,
        channel_id: int,
        timeout: float | None,
    ) -> RawEvent:
        """Wait for the next event addressed to ``channel_id``.

        Events for other channels stay queued for their own receivers.

        Raises:
            ChannelTimeoutError: If nothing arrives within ``timeout``.
            ChannelClosedError: If the channel already terminated.
        """
        ...
