#!/usr/bin/env python3
"""Unit tests for ChainWriter and ChainReader."""

import asyncio
from unittest.mock import MagicMock

import pytest
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from poap_relayer.chain_reader import ChainReader
from poap_relayer.chain_writer import ChainWriter
from poap_relayer.errors import (
    ConfirmationTimeoutError,
    SubmissionError,
    TransactionDroppedError,
    TransactionRevertedError,
    UnderpricedReplacementError,
)
from poap_relayer.models import RecordMintCall

SENDER = "0x" + "11" * 20
OWNER = "0x" + "aa" * 20
CALL = RecordMintCall(event_id=190857, badge_id=4242, owner=OWNER)


@pytest.fixture
def mock_w3():
    """Create a mock Web3 instance."""
    return MagicMock()


@pytest.fixture
def mock_indexer():
    """Create a mock indexer contract."""
    contract = MagicMock()
    contract.functions.indexPoapMint.return_value.transact.return_value = bytes.fromhex("12" * 32)
    contract.functions.indexPoapMint.return_value.estimate_gas.return_value = 81_234
    contract.functions.hasPoap.return_value.call.return_value = 0
    return contract


@pytest.fixture
def writer(mock_w3, mock_indexer):
    return ChainWriter(mock_w3, mock_indexer, SENDER, confirmation_timeout=5, poll_latency=0.1)


class TestSubmit:
    """Test cases for ChainWriter.submit."""

    @pytest.mark.asyncio
    async def test_submit_with_explicit_nonce(self, writer, mock_indexer):
        tx_hash = await writer.submit(CALL, 80_000, 1_200_000_000, nonce=7)

        assert tx_hash == "0x" + "12" * 32
        mock_indexer.functions.indexPoapMint.assert_called_once_with(
            190857, 4242, Web3.to_checksum_address(OWNER)
        )
        mock_indexer.functions.indexPoapMint.return_value.transact.assert_called_once_with({
            "from": Web3.to_checksum_address(SENDER),
            "gas": 80_000,
            "gasPrice": 1_200_000_000,
            "nonce": 7,
        })

    @pytest.mark.asyncio
    async def test_submit_without_nonce_leaves_it_to_web3(self, writer, mock_indexer):
        await writer.submit(CALL, 80_000, 3_000_000_000)

        tx_params = mock_indexer.functions.indexPoapMint.return_value.transact.call_args.args[0]
        assert "nonce" not in tx_params
        assert tx_params["gasPrice"] == 3_000_000_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [
        "replacement transaction underpriced",
        "Replacement fee too low",
    ])
    async def test_underpriced_rejection(self, writer, mock_indexer, message):
        error = ValueError({"code": -32000, "message": message})
        mock_indexer.functions.indexPoapMint.return_value.transact.side_effect = error

        with pytest.raises(UnderpricedReplacementError) as exc_info:
            await writer.submit(CALL, 80_000, 1_200_000_000, nonce=7)

        assert exc_info.value.cause is error

    @pytest.mark.asyncio
    async def test_other_rejection(self, writer, mock_indexer):
        mock_indexer.functions.indexPoapMint.return_value.transact.side_effect = ValueError(
            "insufficient funds for gas * price + value"
        )

        with pytest.raises(SubmissionError) as exc_info:
            await writer.submit(CALL, 80_000, 1_200_000_000, nonce=7)

        assert not isinstance(exc_info.value, UnderpricedReplacementError)

    def test_submission_slot_is_shared(self, writer):
        assert writer.submission_slot() is writer.submission_slot()
        assert isinstance(writer.submission_slot(), asyncio.Lock)


class TestAwaitConfirmation:
    """Test cases for ChainWriter.await_confirmation."""

    @pytest.mark.asyncio
    async def test_confirmed(self, writer, mock_w3):
        mock_w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 1000}

        assert await writer.await_confirmation("0xabc") == 1000
        mock_w3.eth.wait_for_transaction_receipt.assert_called_once_with(
            "0xabc", timeout=5, poll_latency=0.1
        )

    @pytest.mark.asyncio
    async def test_reverted(self, writer, mock_w3):
        mock_w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 1000}

        with pytest.raises(TransactionRevertedError) as exc_info:
            await writer.await_confirmation("0xabc")

        assert exc_info.value.block_number == 1000
        assert exc_info.value.tx_hash == "0xabc"

    @pytest.mark.asyncio
    async def test_timeout_with_transaction_still_pending(self, writer, mock_w3):
        mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("timed out")
        mock_w3.eth.get_transaction.return_value = {"hash": "0xabc"}

        with pytest.raises(ConfirmationTimeoutError):
            await writer.await_confirmation("0xabc")

    @pytest.mark.asyncio
    async def test_timeout_with_transaction_dropped(self, writer, mock_w3):
        mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("timed out")
        mock_w3.eth.get_transaction.side_effect = TransactionNotFound("not found")

        with pytest.raises(TransactionDroppedError):
            await writer.await_confirmation("0xabc")


class TestChainReader:
    """Test cases for ChainReader."""

    @pytest.mark.asyncio
    async def test_has_poap_checksums_owner(self, mock_w3, mock_indexer):
        mock_indexer.functions.hasPoap.return_value.call.return_value = 77
        reader = ChainReader(mock_w3, mock_indexer)

        assert await reader.has_poap(190857, OWNER) == 77
        mock_indexer.functions.hasPoap.assert_called_once_with(190857, Web3.to_checksum_address(OWNER))

    @pytest.mark.asyncio
    async def test_get_transaction_count_uses_latest(self, mock_w3, mock_indexer):
        mock_w3.eth.get_transaction_count.return_value = 12
        reader = ChainReader(mock_w3, mock_indexer)

        assert await reader.get_transaction_count(SENDER) == 12
        mock_w3.eth.get_transaction_count.assert_called_once_with(
            Web3.to_checksum_address(SENDER), "latest"
        )

    @pytest.mark.asyncio
    async def test_get_gas_price(self, mock_w3, mock_indexer):
        mock_w3.eth.gas_price = 1_500_000_000
        reader = ChainReader(mock_w3, mock_indexer)

        assert await reader.get_gas_price() == 1_500_000_000

    @pytest.mark.asyncio
    async def test_estimate_record_gas(self, mock_w3, mock_indexer):
        reader = ChainReader(mock_w3, mock_indexer)

        assert await reader.estimate_record_gas(CALL, SENDER) == 81_234
        mock_indexer.functions.indexPoapMint.return_value.estimate_gas.assert_called_once_with(
            {"from": Web3.to_checksum_address(SENDER)}
        )
