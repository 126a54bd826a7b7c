"""Internal machinery: the transport protocol and the inbound event mailbox."""

from .mailbox import Mailbox
from .protocols import RequestOutcome, Transport

__all__ = [
    "Mailbox",
    "RequestOutcome",
    "Transport",
]
