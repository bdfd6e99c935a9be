"""
Shared data models for the POAP Relayer.

This module contains data classes and types used across the relayer components.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True, slots=True)
class MintEvent:
    """Represents a POAP Mint event observed on chain.

    Attributes:
        event_id: POAP event identifier
        badge_id: Token ID of the minted POAP
        owner: Checksummed address of the account that received the POAP
        source_block: Block number where the Mint log was emitted
        source_log_index: Log index of the Mint log within its block
        transaction_hash: Hash of the transaction that emitted the log
    """
    event_id: int
    badge_id: int
    owner: str
    source_block: int
    source_log_index: int
    transaction_hash: str = ""

    def __str__(self) -> str:
        return (
            f"MintEvent(event={self.event_id}, "
            f"poap={self.badge_id}, "
            f"owner={self.owner[:10]}..., "
            f"block={self.source_block})"
        )

    @property
    def record_key(self) -> tuple[int, str]:
        """Key the indexer contract records mints under.

        A given (event_id, owner) pair is recorded at most once no matter
        how many times the underlying Mint log is delivered.
        """
        return (self.event_id, self.owner.lower())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_id": self.event_id,
            "badge_id": self.badge_id,
            "owner": self.owner,
            "source_block": self.source_block,
            "source_log_index": self.source_log_index,
            "transaction_hash": self.transaction_hash,
        }


@dataclass(frozen=True, slots=True)
class RecordMintCall:
    """Arguments of an indexPoapMint call."""
    event_id: int
    badge_id: int
    owner: str

    @classmethod
    def for_event(cls, event: MintEvent) -> "RecordMintCall":
        return cls(event_id=event.event_id, badge_id=event.badge_id, owner=event.owner)

    def as_args(self) -> tuple[int, int, str]:
        return (self.event_id, self.badge_id, self.owner)


class RecordState(Enum):
    RECORDED = "recorded"
    NOT_RECORDED = "not_recorded"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True, slots=True)
class RecordLookup:
    """Answer of the indexer contract to "is this mint recorded?".

    Attributes:
        state: Whether the mint is recorded, absent, or unknown
        badge_id: Recorded POAP ID (0 unless state is RECORDED)
        error: The read error that made the answer indeterminate
    """
    state: RecordState
    badge_id: int = 0
    error: BaseException | None = None

    @classmethod
    def recorded(cls, badge_id: int) -> "RecordLookup":
        return cls(RecordState.RECORDED, badge_id=badge_id)

    @classmethod
    def not_recorded(cls) -> "RecordLookup":
        return cls(RecordState.NOT_RECORDED)

    @classmethod
    def indeterminate(cls, error: BaseException) -> "RecordLookup":
        return cls(RecordState.INDETERMINATE, error=error)


@dataclass(slots=True)
class Attempt:
    """A single submission of an indexPoapMint transaction.

    nonce is None when the writer is left to resolve it.
    """
    gas_limit: int
    gas_price: int
    nonce: int | None = None
    tx_hash: str | None = None


class RelayState(Enum):
    FILTERED_OUT = "filtered_out"
    CHECKING = "checking"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    RETRYING_PRICE = "retrying_price"
    DONE_SKIPPED = "done_skipped"
    DONE_CONFIRMED = "done_confirmed"
    DONE_FAILED = "done_failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    RelayState.FILTERED_OUT,
    RelayState.DONE_SKIPPED,
    RelayState.DONE_CONFIRMED,
    RelayState.DONE_FAILED,
})


class FailureKind(Enum):
    INDETERMINATE_READ = "indeterminate_read"
    GAS_ESTIMATION = "gas_estimation"
    UNDERPRICED_REPLACEMENT = "underpriced_replacement"
    SUBMISSION = "submission"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    REVERTED = "reverted"
    DROPPED = "dropped"


@dataclass(slots=True)
class RelayOutcome:
    """Final result of handling one MintEvent."""
    event: MintEvent
    state: RelayState
    failure: FailureKind | None = None
    attempts: list[Attempt] = field(default_factory=list)
    block_number: int | None = None
    existing_badge_id: int | None = None

    @property
    def tx_hash(self) -> str | None:
        return self.attempts[-1].tx_hash if self.attempts else None
