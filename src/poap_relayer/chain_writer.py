#!/usr/bin/env python3
"""Transaction submission for the POAP Relayer.

This module signs and broadcasts indexPoapMint transactions to the indexer
contract and waits for their receipts. It has no deduplication of its own:
calling submit() twice broadcasts two transactions.
"""

import asyncio
import logging
from typing import Any

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TimeExhausted, TransactionNotFound
from web3.types import TxParams, TxReceipt

from .errors import (
    ConfirmationTimeoutError,
    TransactionDroppedError,
    TransactionRevertedError,
    classify_submission_error,
)
from .models import RecordMintCall

logger = logging.getLogger(__name__)


class ChainWriter:
    """Signs, submits, and confirms transactions from the relayer account."""

    def __init__(
        self,
        w3: Web3,
        indexer: Contract,
        sender: str,
        confirmation_timeout: int = 120,
        poll_latency: float = 2.0,
    ) -> None:
        """
        Initialize the ChainWriter.

        Args:
            w3: Web3 instance with signing middleware for the sender account
            indexer: Indexer contract bound to its deployed address
            sender: Address of the signing account
            confirmation_timeout: Seconds to wait for a receipt
            poll_latency: Seconds between receipt polls
        """
        self.w3 = w3
        self.indexer = indexer
        self.address: str = Web3.to_checksum_address(sender)
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency

        # One nonce-consuming submission in flight at a time for this signer
        self._nonce_lock = asyncio.Lock()

    def submission_slot(self) -> asyncio.Lock:
        """Process-wide lock serializing nonce reads and broadcasts.

        Usage: ``async with writer.submission_slot(): ...``
        """
        return self._nonce_lock

    async def submit(
        self,
        call: RecordMintCall,
        gas_limit: int,
        gas_price: int,
        nonce: int | None = None,
    ) -> str:
        """
        Broadcast an indexPoapMint transaction.

        When nonce is None the signing middleware fills in the account's
        pending transaction count.

        Args:
            call: Arguments for indexPoapMint
            gas_limit: Gas limit for the transaction
            gas_price: Legacy gas price in wei
            nonce: Explicit nonce, or None to let web3 resolve it

        Returns:
            Transaction hash as a 0x-prefixed hex string

        Raises:
            UnderpricedReplacementError: If the node rejects the price as too
                low to replace a pending transaction
            SubmissionError: For any other broadcast failure
        """
        tx_params: TxParams = {
            "from": self.address,
            "gas": gas_limit,
            "gasPrice": gas_price,
        }
        if nonce is not None:
            tx_params["nonce"] = nonce

        function = self.indexer.functions.indexPoapMint(
            call.event_id, call.badge_id, Web3.to_checksum_address(call.owner)
        )

        try:
            raw_hash: Any = await asyncio.to_thread(function.transact, tx_params)
        except Exception as e:
            raise classify_submission_error(e) from e

        tx_hash = Web3.to_hex(raw_hash)
        logger.info(
            f"Successfully called indexPoapMint. Transaction hash: {tx_hash} "
            f"({gas_limit=}, {gas_price=}, nonce={'auto' if nonce is None else nonce})"
        )
        return tx_hash

    async def await_confirmation(self, tx_hash: str) -> int:
        """
        Wait for a transaction receipt.

        Args:
            tx_hash: Hash returned by submit()

        Returns:
            Block number the transaction was included in

        Raises:
            TransactionRevertedError: If the receipt has status 0
            TransactionDroppedError: If the node no longer knows the transaction
            ConfirmationTimeoutError: If no receipt arrived in time
        """
        try:
            receipt: TxReceipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self.confirmation_timeout,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as e:
            if await self._is_dropped(tx_hash):
                raise TransactionDroppedError(
                    f"Transaction {tx_hash} was dropped from the mempool", tx_hash, cause=e
                ) from e
            raise ConfirmationTimeoutError(
                f"Transaction {tx_hash} not confirmed after {self.confirmation_timeout}s",
                tx_hash,
                cause=e,
            ) from e

        block_number = receipt.get("blockNumber")
        if (status := receipt.get("status", 0)) != 1:
            raise TransactionRevertedError(
                f"Transaction {tx_hash} reverted in block {block_number} ({status=})",
                tx_hash,
                block_number=block_number,
            )
        return int(block_number)

    async def _is_dropped(self, tx_hash: str) -> bool:
        try:
            await asyncio.to_thread(self.w3.eth.get_transaction, tx_hash)
        except TransactionNotFound:
            return True
        except Exception as e:
            logger.warning(f"Could not check mempool status of {tx_hash}: {e}")
        return False
