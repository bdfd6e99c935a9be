#!/usr/bin/env python3
"""Idempotency check against the indexer contract.

The indexer is the system of record for which (eventId, owner) pairs have
been recorded. hasPoap either returns the recorded POAP ID or reverts with
the PoapNotIndexed custom error. Any other failure leaves the answer unknown.
"""

import logging
from typing import Any

from web3 import Web3
from web3.exceptions import ContractLogicError

from .chain_reader import ChainReader
from .models import RecordLookup

logger = logging.getLogger(__name__)

NOT_INDEXED_ERROR = "PoapNotIndexed"
# Raw selector the indexer reverts with when a mint is absent. Kept as a
# fallback for when the error cannot be decoded against the ABI.
NOT_INDEXED_SELECTOR = "0xf48c31b0"


def error_selectors(abi: list[dict[str, Any]]) -> dict[str, str]:
    """Map 4-byte selectors (0x-prefixed hex) to custom error names in an ABI."""
    selectors: dict[str, str] = {}
    for entry in abi:
        if entry.get("type") != "error":
            continue
        arg_types = ",".join(param["type"] for param in entry.get("inputs", []))
        signature = f"{entry['name']}({arg_types})"
        selector = Web3.to_hex(Web3.keccak(text=signature)[:4])
        selectors[selector] = entry["name"]
    return selectors


def revert_data(error: ContractLogicError) -> str:
    """Extract revert data from a contract error as lowercase 0x-hex."""
    match error.data:
        case bytes() as data_bytes:
            return Web3.to_hex(data_bytes).lower()
        case str() as data_str if data_str.startswith("0x"):
            return data_str.lower()
        case _:
            pass
    # Some providers only report the data inside the message
    message = str(error.message or error).lower()
    if (start := message.find("0x")) != -1:
        return message[start:].split()[0].strip("'\",)")
    return ""


class IdempotencyChecker:
    """Determines whether a mint is already recorded on the indexer."""

    def __init__(self, reader: ChainReader, indexer_abi: list[dict[str, Any]]) -> None:
        """
        Initialize the IdempotencyChecker.

        Args:
            reader: ChainReader bound to the indexer contract
            indexer_abi: Indexer ABI, used to decode custom revert errors
        """
        self.reader = reader
        self.error_names = error_selectors(indexer_abi)

    async def is_recorded(self, event_id: int, owner: str) -> RecordLookup:
        """
        Look up (event_id, owner) on the indexer.

        Returns:
            RECORDED with the POAP ID if hasPoap returned a non-zero ID,
            NOT_RECORDED if it returned zero or reverted with PoapNotIndexed,
            INDETERMINATE for any other revert or transport error
        """
        try:
            badge_id = await self.reader.has_poap(event_id, owner)
        except ContractLogicError as e:
            if self.is_not_indexed_error(e):
                logger.info("POAP not indexed yet. Proceeding with indexing...")
                return RecordLookup.not_recorded()
            logger.warning(f"Unrecognized revert from hasPoap({event_id}, {owner}): {e}")
            return RecordLookup.indeterminate(e)
        except Exception as e:
            logger.warning(f"hasPoap({event_id}, {owner}) failed: {e}")
            return RecordLookup.indeterminate(e)

        if badge_id > 0:
            return RecordLookup.recorded(badge_id)
        return RecordLookup.not_recorded()

    def is_not_indexed_error(self, error: ContractLogicError) -> bool:
        """Check whether a revert is the indexer's PoapNotIndexed error.

        Decodes the revert selector against the ABI first, then falls back to
        the raw selector and to a provider-decoded error name.
        """
        data = revert_data(error)
        selector = data[:10]

        if self.error_names.get(selector) == NOT_INDEXED_ERROR:
            return True
        if selector == NOT_INDEXED_SELECTOR or NOT_INDEXED_SELECTOR in data:
            return True
        return NOT_INDEXED_ERROR in str(error.message or error)
