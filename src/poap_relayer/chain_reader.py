"""Read-only access to the chain for the POAP Relayer.

All web3 calls are blocking, so they run in a worker thread to keep the
event loop free while concurrent events are being handled.
"""

import asyncio
import logging
from typing import Any

from web3 import Web3
from web3.contract import Contract

from .models import RecordMintCall

logger = logging.getLogger(__name__)


class ChainReader:
    """Queries view functions and chain state (nonce, gas price, gas estimates)."""

    def __init__(self, w3: Web3, indexer: Contract) -> None:
        """
        Initialize the ChainReader.

        Args:
            w3: Web3 instance connected to the chain hosting the indexer
            indexer: Indexer contract bound to its deployed address
        """
        self.w3 = w3
        self.indexer = indexer

    async def has_poap(self, event_id: int, owner: str) -> int:
        """Call the indexer's hasPoap view and return the recorded POAP ID.

        Reverts (including PoapNotIndexed) propagate to the caller unchanged.
        """
        owner = Web3.to_checksum_address(owner)
        return await asyncio.to_thread(self.indexer.functions.hasPoap(event_id, owner).call)

    async def get_transaction_count(self, address: str, block_identifier: str = "latest") -> int:
        return await asyncio.to_thread(
            self.w3.eth.get_transaction_count, Web3.to_checksum_address(address), block_identifier
        )

    async def get_gas_price(self) -> int:
        # gas_price is a property that performs an RPC call on access
        return await asyncio.to_thread(lambda: int(self.w3.eth.gas_price))

    async def estimate_record_gas(self, call: RecordMintCall, sender: str) -> int:
        """Estimate gas for indexPoapMint with the given arguments."""
        tx_params: dict[str, Any] = {"from": Web3.to_checksum_address(sender)}
        function = self.indexer.functions.indexPoapMint(
            call.event_id, call.badge_id, Web3.to_checksum_address(call.owner)
        )
        gas = await asyncio.to_thread(function.estimate_gas, tx_params)
        logger.debug(f"Estimated gas for indexPoapMint{call.as_args()}: {gas}")
        return int(gas)
