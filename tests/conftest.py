from __future__ import annotations

import pytest

from sshchannel import Channel, MemoryTransport


@pytest.fixture
def transport() -> MemoryTransport:
    return MemoryTransport()


@pytest.fixture
async def channel(transport: MemoryTransport) -> Channel:
    return await Channel.open(transport)
