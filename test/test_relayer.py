#!/usr/bin/env python3
"""
Test suite for the POAP Relayer service wiring and lifecycle.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_account import Account

from poap_relayer.config import ChainConfig, RelayerConfig
from poap_relayer.models import RelayState
from poap_relayer.relayer import PoapRelayer

TEST_KEY = "0x" + "1" * 64
OWNER = "0x" + "aa" * 20


def mint_log(event_id=190857, log_index=0):
    return {
        "args": {"eventId": event_id, "poapId": 4242, "owner": OWNER},
        "blockNumber": 100,
        "logIndex": log_index,
        "transactionHash": "0x" + "ab" * 32,
    }


@pytest.fixture
def config():
    chain = ChainConfig(rpc_url="http://localhost:8545", private_key=TEST_KEY)
    return RelayerConfig(chain=chain, target_event_ids=frozenset({190857}))


@pytest.fixture
def relayer(config):
    """Relayer over a real (unconnected) HTTP provider."""
    return PoapRelayer(config)


class TestPoapRelayer:
    """Test cases for PoapRelayer."""

    def test_components_share_signing_account(self, relayer, config):
        expected = Account.from_key(TEST_KEY).address

        assert relayer.writer.address == expected
        assert relayer.writer.indexer.address == config.chain.indexer_address
        assert relayer.reader.indexer is relayer.writer.indexer
        assert relayer.worker.target_event_ids == frozenset({190857})
        assert relayer.worker.checker.error_names

    def test_init_event_monitoring(self, relayer, config):
        relayer.init_event_monitoring()

        assert relayer.listener is not None
        assert relayer.listener.contract_address == config.chain.poap_address
        assert relayer.listener.event_name == "Mint"
        assert relayer.listener.start_block == config.monitoring.start_block == 23_049_780

    @pytest.mark.asyncio
    async def test_untracked_event_is_filtered_without_io(self, relayer):
        with patch.object(relayer.reader, "has_poap", AsyncMock()) as has_poap:
            outcome = await relayer.process_mint_event(mint_log(event_id=1))

        assert outcome.state is RelayState.FILTERED_OUT
        has_poap.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parsed_event_reaches_worker(self, relayer):
        with patch.object(relayer.worker, "handle", AsyncMock(return_value="outcome")) as handle:
            assert await relayer.process_mint_event(mint_log()) == "outcome"
            # Redelivery of the same log is dropped before the worker
            assert await relayer.process_mint_event(mint_log()) is None

        handle.assert_awaited_once()
        mint = handle.await_args.args[0]
        assert mint.event_id == 190857
        assert mint.badge_id == 4242

    @pytest.mark.asyncio
    async def test_invalid_log_is_dropped(self, relayer):
        with patch.object(relayer.worker, "handle", AsyncMock()) as handle:
            assert await relayer.process_mint_event({"args": {}}) is None

        handle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, relayer):
        async def poll_forever(callback, interval):
            await asyncio.sleep(3600)

        listener = MagicMock()
        listener.start_polling = poll_forever
        listener.stop = AsyncMock()

        with patch("poap_relayer.relayer.PollingEventListener", return_value=listener):
            asyncio.get_running_loop().call_later(0.05, relayer.stop)
            await asyncio.wait_for(relayer.run(), timeout=5)

        assert relayer.running is False
        listener.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_stops_on_listener_failure(self, relayer):
        async def fail(callback, interval):
            raise ConnectionError("rpc unreachable")

        listener = MagicMock()
        listener.start_polling = fail
        listener.stop = AsyncMock()

        with patch("poap_relayer.relayer.PollingEventListener", return_value=listener):
            await asyncio.wait_for(relayer.run(), timeout=5)

        assert relayer.running is False
        listener.stop.assert_awaited_once()
