"""
Event processor for POAP Mint logs.

This module turns raw Mint log entries into MintEvent objects, keeping the
parsing and validation separate from the relay logic.
"""

import logging
from collections import OrderedDict
from collections.abc import Mapping
from typing import Any

from web3 import Web3

from .models import MintEvent

logger = logging.getLogger(__name__)


class EventProcessor:
    """Parses, validates, and deduplicates Mint events from the POAP contract.

    Deduplication here only drops exact redeliveries of the same log (same
    transaction hash and log index) inside a bounded window. Whether a mint
    still needs recording is decided by the indexer contract, not here.
    """

    MAX_PROCESSED_LOGS: int = 10_000

    def __init__(self, dedupe_window: int = MAX_PROCESSED_LOGS) -> None:
        """Initialize the event processor.

        Args:
            dedupe_window: Maximum number of log identities to remember
        """
        self.dedupe_window = dedupe_window

        # OrderedDict provides O(1) lookups and maintains insertion order for LRU
        self.processed_logs: OrderedDict[tuple[str, int], None] = OrderedDict()

        # Metrics tracking
        self.events_processed = 0
        self.events_duplicated = 0
        self.events_invalid = 0

    def process_mint_event(self, event: Mapping[str, Any]) -> MintEvent | None:
        """
        Process a Mint log from the POAP contract.

        Args:
            event: Decoded Mint event data (web3 EventData)

        Returns:
            MintEvent if valid and not seen before, None otherwise
        """
        try:
            mint = self._parse(event)
        except (KeyError, TypeError, ValueError) as e:
            self.events_invalid += 1
            logger.warning(f"Invalid Mint event: {e}")
            return None

        log_key = (mint.transaction_hash, mint.source_log_index)
        if mint.transaction_hash and log_key in self.processed_logs:
            self.events_duplicated += 1
            self.processed_logs.move_to_end(log_key)
            logger.debug(f"Duplicate Mint log {mint.transaction_hash[:10]}...#{mint.source_log_index}")
            return None

        if mint.transaction_hash:
            self._track_processed_log(log_key)
        self.events_processed += 1
        return mint

    def _parse(self, event: Mapping[str, Any]) -> MintEvent:
        args: Mapping[str, Any] = event["args"]

        event_id = args["eventId"]
        badge_id = args["poapId"]
        if not isinstance(event_id, int) or not isinstance(badge_id, int):
            raise TypeError(f"eventId and poapId must be integers, got {event_id!r}, {badge_id!r}")
        if event_id < 0 or badge_id < 0:
            raise ValueError(f"Negative identifiers in Mint event: {event_id=}, {badge_id=}")

        owner = args["owner"]
        if not Web3.is_address(owner):
            raise ValueError(f"Invalid owner address: {owner!r}")

        match event.get("transactionHash"):
            case None:
                tx_hash = ""
            case bytes() as tx_hash_bytes:
                tx_hash = Web3.to_hex(tx_hash_bytes)
            case str() as tx_hash:
                pass
            case other:
                raise TypeError(f"Unexpected transaction hash type: {type(other)}")

        return MintEvent(
            event_id=event_id,
            badge_id=badge_id,
            owner=Web3.to_checksum_address(owner),
            source_block=int(event.get("blockNumber") or 0),
            source_log_index=int(event.get("logIndex") or 0),
            transaction_hash=tx_hash,
        )

    def _track_processed_log(self, log_key: tuple[str, int]) -> None:
        """
        Track a processed log identity with automatic LRU eviction.

        Args:
            log_key: (transaction hash, log index) of the Mint log
        """
        if len(self.processed_logs) >= self.dedupe_window:
            self.processed_logs.popitem(last=False)
        self.processed_logs[log_key] = None

    def get_stats(self) -> dict:
        """
        Get current processor statistics.

        Returns:
            Dictionary with current state metrics
        """
        return {
            'events_processed': self.events_processed,
            'events_duplicated': self.events_duplicated,
            'events_invalid': self.events_invalid,
            'tracked_logs': len(self.processed_logs),
        }
