from __future__ import annotations

import threading

import pytest

from multisig_payouts.adapters.chain import ChainTimeout
from multisig_payouts.adapters.substrate import SubstrateChainClient, SubstrateConfig


class _StubSubstrate:
    """Stands in for a websocket connection; a hung request unblocks on close()."""

    def __init__(self, name: str):
        self.name = name
        self.closed = threading.Event()

    def close(self) -> None:
        self.closed.set()

    def hang(self) -> str:
        self.closed.wait(timeout=5)
        return "late"


@pytest.fixture
def client() -> SubstrateChainClient:
    return SubstrateChainClient(SubstrateConfig(url="ws://127.0.0.1:9944", network="paseo"))


async def test_timed_out_connection_is_dropped_and_replaced(client: SubstrateChainClient, monkeypatch):
    hung = _StubSubstrate("first")
    client._substrate = hung

    with pytest.raises(ChainTimeout):
        await client._run(lambda s: s.hang(), timeout_s=0.05)
    assert client._substrate is None
    assert hung.closed.is_set()

    fresh = _StubSubstrate("second")

    async def _connect() -> None:
        client._substrate = fresh

    monkeypatch.setattr(client, "connect", _connect)
    assert await client._run(lambda s: s.name) == "second"
    assert client._substrate is fresh
    assert not fresh.closed.is_set()


async def test_answered_call_keeps_connection(client: SubstrateChainClient):
    stub = _StubSubstrate("only")
    client._substrate = stub
    assert await client._run(lambda s: s.name, timeout_s=1) == "only"
    assert client._substrate is stub
    assert not stub.closed.is_set()
