"""
POAP Relayer implementation.

This module contains the main relayer service that wires the chain clients
together, monitors POAP Mint events, and hands each one to the RelayWorker.
"""

import asyncio
import logging

from web3.types import EventData

from .chain_reader import ChainReader
from .chain_writer import ChainWriter
from .config import RelayerConfig
from .event_processor import EventProcessor
from .fee_strategy import FeeStrategy
from .idempotency import IdempotencyChecker
from .models import RelayOutcome
from .relay_worker import RelayWorker
from .utils.contract_utility import ContractUtility
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)


class PoapRelayer:
    """
    Main relayer service that orchestrates event monitoring and relaying.

    This class focuses on coordination and lifecycle management, delegating
    the relay decision logic to the RelayWorker.
    """

    STATUS_LOG_INTERVAL = 60  # seconds

    def __init__(self, config: RelayerConfig, contract_util: ContractUtility | None = None):
        """
        Initialize the POAP Relayer.

        Args:
            config: Relayer configuration
            contract_util: Pre-built contract utility (built from config if omitted)
        """
        self.config = config
        self.running = False

        # The signing key is loaded once here and shared by every submission
        self.contract_util = contract_util or ContractUtility(
            rpc_url=config.chain.rpc_url,
            secret=config.chain.private_key,
            request_timeout=config.monitoring.request_timeout,
        )
        self._init_components()

        self.listener: PollingEventListener | None = None

        # Async coordination
        self.shutdown_event = asyncio.Event()

    def _init_components(self) -> None:
        """Build the relay core on top of the contract utility."""
        w3 = self.contract_util.w3
        indexer = self.contract_util.get_contract("IndexerContract", self.config.chain.indexer_address)

        self.reader = ChainReader(w3, indexer)
        self.writer = ChainWriter(
            w3,
            indexer,
            sender=self.contract_util.address,
            confirmation_timeout=self.config.monitoring.confirmation_timeout,
        )
        self.worker = RelayWorker(
            target_event_ids=self.config.target_event_ids,
            checker=IdempotencyChecker(self.reader, indexer.abi),
            fees=FeeStrategy(self.reader),
            reader=self.reader,
            writer=self.writer,
        )
        self.event_processor = EventProcessor()

        logger.info(f"Relayer account: {self.writer.address}")

    @classmethod
    def from_env(cls) -> "PoapRelayer":
        """
        Create a PoapRelayer instance from environment variables.

        Returns:
            Configured PoapRelayer instance

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env()
        config.log_config()
        return cls(config)

    def init_event_monitoring(self) -> None:
        """Initialize the polling listener for POAP Mint events."""
        logger.info("Initializing event monitoring...")

        self.listener = PollingEventListener(
            w3=self.contract_util.w3,
            contract_address=self.config.chain.poap_address,
            event_name="Mint",
            abi=self.contract_util.get_contract_abi("Poap"),
            lookback_blocks=self.config.monitoring.lookback_blocks,
            start_block=self.config.monitoring.start_block,
            max_block_range=self.config.monitoring.max_block_range,
        )

        logger.info(f"POAP Mint listener: {self.config.chain.poap_address}")

    async def process_mint_event(self, event: EventData) -> RelayOutcome | None:
        """
        Parse a raw Mint log and relay it.

        Args:
            event: The Mint event data from the listener

        Returns:
            RelayOutcome, or None if the log was invalid or a redelivery
        """
        mint = self.event_processor.process_mint_event(event)
        if mint is None:
            return None
        return await self.worker.handle(mint)

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            relay_stats = self.worker.get_stats()
            event_stats = self.event_processor.get_stats()
            logger.info(
                f"Status: {event_stats['events_processed']} mints seen, "
                f"{relay_stats['done_confirmed']} indexed, "
                f"{relay_stats['done_skipped']} already indexed, "
                f"{relay_stats['done_failed']} failed, "
                f"{relay_stats['filtered_out']} ignored"
            )

    async def _check_task_health(self, tasks: dict[str, asyncio.Task]) -> bool:
        """Check if any critical task has failed."""
        for name, task in tasks.items():
            if task.done() and name != "status":  # status task can end normally
                try:
                    await task
                except Exception as e:
                    logger.error(f"{name} task failed: {e}", exc_info=True)
                return False
        return True

    async def _cleanup_tasks(self, tasks: dict[str, asyncio.Task]) -> None:
        """Clean up all tasks and the listener."""
        if self.listener:
            await self.listener.stop()

        for task in tasks.values():
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass  # Expected when cancelling

    async def run(self) -> None:
        """Main event loop for the relayer service."""
        self.running = True
        logger.info("POAP Relayer starting...")
        logger.info(f"Polling interval: {self.config.monitoring.polling_interval}s")

        tasks: dict[str, asyncio.Task] = {}
        try:
            self.init_event_monitoring()

            if not self.listener:
                raise RuntimeError("Event listener not properly initialized")

            tasks = {
                "mint": asyncio.create_task(
                    self.listener.start_polling(
                        callback=self.process_mint_event,
                        interval=self.config.monitoring.polling_interval
                    )
                ),
                "status": asyncio.create_task(self._periodic_status_logger())
            }

            logger.info("Event monitoring started, waiting for events...")

            # Wait until shutdown or task failure
            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass

                if not await self._check_task_health(tasks):
                    logger.error("Critical task failure, shutting down")
                    break

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            await self._cleanup_tasks(tasks)
            logger.info("POAP Relayer stopped")

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()
