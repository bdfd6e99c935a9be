#!/usr/bin/env python3
"""Relay of POAP mints to the indexer contract.

This module turns one observed MintEvent into at most one confirmed
indexPoapMint transaction:

    filter -> idempotency check -> submit -> await confirmation
                                      |
                 underpriced replacement (once) -> escalated retry

Each handled event walks an explicit state machine. The transition table
only allows RETRYING_PRICE to be entered from SUBMITTING or
AWAITING_CONFIRMATION and only lets it exit to a terminal state, so an event
can be retried at most once and never re-enters the idempotency check.
"""

import asyncio
import logging
from collections import Counter, defaultdict
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from .chain_reader import ChainReader
from .chain_writer import ChainWriter
from .errors import (
    GasEstimationError,
    IndeterminateReadError,
    RelayError,
    SubmissionError,
    UnderpricedReplacementError,
    classify_submission_error,
)
from .fee_strategy import FeeStrategy
from .idempotency import IdempotencyChecker
from .models import (
    Attempt,
    MintEvent,
    RecordMintCall,
    RecordState,
    RelayOutcome,
    RelayState,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[RelayState, frozenset[RelayState]] = {
    RelayState.CHECKING: frozenset({
        RelayState.DONE_SKIPPED,
        RelayState.SUBMITTING,
        RelayState.DONE_FAILED,
    }),
    RelayState.SUBMITTING: frozenset({
        RelayState.AWAITING_CONFIRMATION,
        RelayState.RETRYING_PRICE,
        RelayState.DONE_FAILED,
    }),
    RelayState.AWAITING_CONFIRMATION: frozenset({
        RelayState.DONE_CONFIRMED,
        RelayState.RETRYING_PRICE,
        RelayState.DONE_FAILED,
    }),
    RelayState.RETRYING_PRICE: frozenset({
        RelayState.DONE_CONFIRMED,
        RelayState.DONE_FAILED,
    }),
}


class RelayRun:
    """State of one event instance moving through the relay."""

    def __init__(self, event: MintEvent) -> None:
        self.event = event
        self.outcome = RelayOutcome(event=event, state=RelayState.CHECKING)

    @property
    def state(self) -> RelayState:
        return self.outcome.state

    def advance(self, new_state: RelayState) -> None:
        allowed = TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(
                f"Illegal relay transition {self.state.name} -> {new_state.name} for {self.event}"
            )
        logger.debug(f"{self.event}: {self.state.name} -> {new_state.name}")
        self.outcome.state = new_state


class RelayWorker:
    """Ensures each targeted POAP mint is recorded on the indexer contract."""

    def __init__(
        self,
        target_event_ids: Iterable[int],
        checker: IdempotencyChecker,
        fees: FeeStrategy,
        reader: ChainReader,
        writer: ChainWriter,
    ) -> None:
        """
        Initialize the RelayWorker.

        Args:
            target_event_ids: POAP event IDs to relay; all others are ignored
            checker: Idempotency oracle backed by the indexer contract
            fees: Gas price strategy
            reader: Read-only chain access (nonce, gas estimates)
            writer: Transaction submission for the relayer account
        """
        self.target_event_ids: frozenset[int] = frozenset(target_event_ids)
        self.checker = checker
        self.fees = fees
        self.reader = reader
        self.writer = writer

        # Per (event_id, owner) locks, removed once nobody holds or waits on them
        self._key_locks: dict[tuple[int, str], asyncio.Lock] = {}
        self._key_users: defaultdict[tuple[int, str], int] = defaultdict(int)

        self.outcomes: Counter[RelayState] = Counter()

    async def handle(self, event: MintEvent) -> RelayOutcome:
        """
        Relay a single Mint event.

        Never raises for relay failures: they are logged with the event
        identity and reflected in the returned outcome.

        Args:
            event: The observed mint

        Returns:
            RelayOutcome with the terminal state reached
        """
        if event.event_id not in self.target_event_ids:
            logger.debug(f"Ignoring mint for untracked event {event.event_id}")
            return self._finish(RelayOutcome(event=event, state=RelayState.FILTERED_OUT))

        logger.info(
            f"Processing POAP mint: Event ID {event.event_id}, "
            f"POAP ID {event.badge_id}, Owner {event.owner}"
        )

        async with self._serialized(event.record_key):
            run = RelayRun(event)
            try:
                await self._relay(run)
            except RelayError as e:
                self._fail(run, e)
            except Exception as e:
                logger.error(f"Unexpected error relaying {event}: {e}", exc_info=True)
                self._fail(run, SubmissionError(str(e), cause=e))

        return self._finish(run.outcome)

    async def _relay(self, run: RelayRun) -> None:
        event = run.event

        lookup = await self.checker.is_recorded(event.event_id, event.owner)
        match lookup.state:
            case RecordState.RECORDED:
                logger.info(
                    f"POAP already indexed for Event ID {event.event_id}, Owner {event.owner}. "
                    f"Existing POAP ID: {lookup.badge_id}. Skipping..."
                )
                run.outcome.existing_badge_id = lookup.badge_id
                run.advance(RelayState.DONE_SKIPPED)
                return
            case RecordState.INDETERMINATE:
                raise IndeterminateReadError(
                    f"Could not determine whether the mint is indexed: {lookup.error}",
                    cause=lookup.error,
                )
            case RecordState.NOT_RECORDED:
                pass

        run.advance(RelayState.SUBMITTING)
        call = RecordMintCall.for_event(event)

        try:
            block_number = await self._first_attempt(run, call)
        except UnderpricedReplacementError as e:
            self._log_failure(event, e, "Error processing POAP mint")
        else:
            logger.info(f"Transaction confirmed in block {block_number}")
            run.outcome.block_number = block_number
            run.advance(RelayState.DONE_CONFIRMED)
            return

        run.advance(RelayState.RETRYING_PRICE)
        block_number = await self._retry_attempt(run, call)
        logger.info(f"Retry successful. Transaction confirmed in block {block_number}")
        run.outcome.block_number = block_number
        run.advance(RelayState.DONE_CONFIRMED)

    async def _first_attempt(self, run: RelayRun, call: RecordMintCall) -> int:
        async with self.writer.submission_slot():
            try:
                quoted = await self.fees.quote()
                # Pending count includes earlier broadcasts still awaiting confirmation
                nonce = await self.reader.get_transaction_count(self.writer.address, "pending")
            except Exception as e:
                raise SubmissionError(f"Could not read gas price or nonce: {e}", cause=e) from e

            try:
                gas_limit = await self.reader.estimate_record_gas(call, self.writer.address)
            except Exception as e:
                raise GasEstimationError(f"Gas estimation failed: {e}", cause=e) from e

            attempt = Attempt(
                gas_limit=gas_limit,
                gas_price=self.fees.submission_price(quoted),
                nonce=nonce,
            )
            run.outcome.attempts.append(attempt)
            attempt.tx_hash = await self._submit(call, attempt)

        run.advance(RelayState.AWAITING_CONFIRMATION)
        return await self._confirm(attempt)

    async def _retry_attempt(self, run: RelayRun, call: RecordMintCall) -> int:
        previous = run.outcome.attempts[-1]
        logger.info("Retrying with higher gas price...")

        async with self.writer.submission_slot():
            try:
                gas_price = await self.fees.escalate(previous.gas_price)
            except Exception as e:
                raise SubmissionError(f"Could not read gas price for retry: {e}", cause=e) from e

            # Same gas limit; the writer resolves the nonce itself
            attempt = Attempt(gas_limit=previous.gas_limit, gas_price=gas_price)
            run.outcome.attempts.append(attempt)
            attempt.tx_hash = await self._submit(call, attempt)

        return await self._confirm(attempt)

    async def _submit(self, call: RecordMintCall, attempt: Attempt) -> str:
        try:
            return await self.writer.submit(call, attempt.gas_limit, attempt.gas_price, attempt.nonce)
        except Exception as e:
            raise classify_submission_error(e) from e

    async def _confirm(self, attempt: Attempt) -> int:
        try:
            return await self.writer.await_confirmation(attempt.tx_hash)
        except Exception as e:
            raise classify_submission_error(e) from e

    def _fail(self, run: RelayRun, error: RelayError) -> None:
        stage = "Retry failed" if run.state is RelayState.RETRYING_PRICE else "Error processing POAP mint"
        self._log_failure(run.event, error, stage)
        run.outcome.failure = error.kind
        if not run.state.is_terminal:
            run.advance(RelayState.DONE_FAILED)

    def _log_failure(self, event: MintEvent, error: RelayError, stage: str) -> None:
        logger.error(
            f"{stage}: {error.kind.value} for Event ID {event.event_id}, "
            f"Owner {event.owner}: {error}",
            extra={
                "event_id": event.event_id,
                "owner": event.owner,
                "failure_kind": error.kind.value,
            },
        )

    def _finish(self, outcome: RelayOutcome) -> RelayOutcome:
        self.outcomes[outcome.state] += 1
        return outcome

    @asynccontextmanager
    async def _serialized(self, key: tuple[int, str]) -> AsyncIterator[None]:
        """Hold the lock for one (event_id, owner) pair."""
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[key] -= 1
            if not self._key_users[key]:
                del self._key_users[key]
                del self._key_locks[key]

    def get_stats(self) -> dict[str, int]:
        """
        Get counts of handled events by final state.

        Returns:
            Dictionary keyed by state value
        """
        stats = {state.value: self.outcomes[state] for state in RelayState if state.is_terminal}
        stats["in_flight"] = sum(self._key_users.values())
        return stats
