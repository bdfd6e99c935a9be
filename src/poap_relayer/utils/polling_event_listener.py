"""
Polling-based event listener utility for blockchain event monitoring.

Delivery is at-least-once: a window whose callback or RPC call fails is not
marked as processed and is fetched again on the next poll.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from web3 import Web3
from web3.types import EventData


class PollingEventListener:
    """
    Utility for polling contract events via HTTP RPC.
    """

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        event_name: str,
        abi: list[dict[str, Any]],
        lookback_blocks: int = 100,
        start_block: int | None = None,
        max_block_range: int = 2000,
    ):
        """
        Initialize the polling event listener.

        Args:
            w3: Web3 instance for the chain to watch
            contract_address: Address of the contract to monitor
            event_name: Name of the event to listen for
            abi: Contract ABI
            lookback_blocks: Number of blocks to look back on startup when no
                start block is given
            start_block: First block of the initial sync
            max_block_range: Largest block span requested in one get_logs call
        """
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.event_name = event_name
        self.lookback_blocks = lookback_blocks
        self.start_block = start_block
        self.max_block_range = max_block_range

        # Create contract instance
        self.contract = self.w3.eth.contract(
            address=self.contract_address,
            abi=abi
        )

        # Get the event object
        if not hasattr(self.contract.events, event_name):
            raise ValueError(f"Event {event_name} not found in contract ABI")
        self.event_obj = getattr(self.contract.events, event_name)

        # State tracking
        self.last_processed_block: int | None = None
        self.is_running = False

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _get_logs(self, from_block: int, to_block: int) -> list[EventData]:
        return await asyncio.to_thread(
            self.event_obj.get_logs, from_block=from_block, to_block=to_block
        )

    async def _deliver_range(
        self,
        from_block: int,
        to_block: int,
        callback: Callable[[EventData], Awaitable[Any]],
    ) -> None:
        """Fetch and deliver events in chunks, advancing the cursor per chunk."""
        chunk_start = from_block
        while chunk_start <= to_block:
            chunk_end = min(chunk_start + self.max_block_range - 1, to_block)
            events = await self._get_logs(chunk_start, chunk_end)

            if events:
                self.logger.info(
                    f"Found {len(events)} {self.event_name} events "
                    f"in blocks {chunk_start}-{chunk_end}"
                )
                for event in events:
                    await callback(event)

            self.last_processed_block = chunk_end
            chunk_start = chunk_end + 1

    async def initial_sync(self, callback: Callable[[EventData], Awaitable[Any]]) -> None:
        """
        Perform initial sync to catch up on past events.

        Args:
            callback: Async function to call for each event found
        """
        current_block = await asyncio.to_thread(lambda: self.w3.eth.block_number)
        if self.start_block is not None:
            from_block = min(self.start_block, current_block)
        else:
            from_block = max(0, current_block - self.lookback_blocks)

        self.logger.info(
            f"Initial sync for {self.event_name} events "
            f"from block {from_block} to {current_block}"
        )

        try:
            await self._deliver_range(from_block, current_block, callback)
        except Exception as e:
            self.logger.error(f"Error during initial sync: {e}")
            raise

        self.last_processed_block = current_block

    async def poll_for_events(self, callback: Callable[[EventData], Awaitable[Any]]) -> None:
        """
        Poll for new events since last processed block.

        Args:
            callback: Async function to call for each new event
        """
        try:
            current_block = await asyncio.to_thread(lambda: self.w3.eth.block_number)

            # Skip if no new blocks
            if self.last_processed_block is not None and current_block <= self.last_processed_block:
                return

            from_block = (
                self.last_processed_block + 1
                if self.last_processed_block is not None
                else current_block
            )
            await self._deliver_range(from_block, current_block, callback)

        except Exception as e:
            # The cursor stays on the last fully delivered chunk
            self.logger.error(f"Error polling for events: {e}")

    async def start_polling(
        self,
        callback: Callable[[EventData], Awaitable[Any]],
        interval: int = 12
    ) -> None:
        """
        Start polling for events at the specified interval.

        Args:
            callback: Async function to call when events are received
            interval: Polling interval in seconds
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(
            f"Starting polling for {self.event_name} events "
            f"on {self.contract_address} every {interval} seconds"
        )

        await self.initial_sync(callback)

        # Main polling loop
        while self.is_running:
            try:
                await asyncio.sleep(interval)
                await self.poll_for_events(callback)
            except asyncio.CancelledError:
                self.logger.info("Polling cancelled")
                break

    async def stop(self) -> None:
        """Stop the polling loop."""
        self.logger.info(f"Stopping polling for {self.event_name} events")
        self.is_running = False

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the polling listener.

        Returns:
            Dictionary with status information
        """
        return {
            "is_running": self.is_running,
            "last_processed_block": self.last_processed_block,
            "contract_address": self.contract_address,
            "event_name": self.event_name,
        }
