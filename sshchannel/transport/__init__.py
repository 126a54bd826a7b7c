"""Transport implementations.

Provides the asyncssh transport for real connections and an in-memory
transport for tests and scripted sessions.
"""

from .memory import MemoryTransport, Request
from .ssh import AsyncSSHTransport

__all__ = [
    "AsyncSSHTransport",
    "MemoryTransport",
    "Request",
]
