"""
Failure taxonomy for the POAP Relayer.

Every hard failure of the relay core is one of the exceptions below. The
RelayWorker catches them at the handle() boundary, logs them with the event
identity and ends processing of that event.
"""

from typing import Any

from .models import FailureKind

UNDERPRICED_MESSAGES: tuple[str, ...] = (
    "replacement transaction underpriced",
    "replacement fee too low",
)


class RelayError(Exception):
    """Base class for failures while relaying a mint."""

    kind: FailureKind = FailureKind.SUBMISSION

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class IndeterminateReadError(RelayError):
    """The indexer lookup failed with an error we do not recognize."""
    kind = FailureKind.INDETERMINATE_READ


class GasEstimationError(RelayError):
    """Gas estimation failed, so the call would revert."""
    kind = FailureKind.GAS_ESTIMATION


class SubmissionError(RelayError):
    """The transaction could not be prepared or broadcast."""
    kind = FailureKind.SUBMISSION


class UnderpricedReplacementError(SubmissionError):
    """The node rejected the transaction as an underpriced replacement."""
    kind = FailureKind.UNDERPRICED_REPLACEMENT


class ConfirmationError(RelayError):
    """The transaction was broadcast but did not confirm successfully."""

    def __init__(self, message: str, tx_hash: str, cause: BaseException | None = None) -> None:
        super().__init__(message, cause)
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(ConfirmationError):
    kind = FailureKind.CONFIRMATION_TIMEOUT


class TransactionRevertedError(ConfirmationError):
    kind = FailureKind.REVERTED

    def __init__(self, message: str, tx_hash: str, block_number: int | None = None) -> None:
        super().__init__(message, tx_hash)
        self.block_number = block_number


class TransactionDroppedError(ConfirmationError):
    kind = FailureKind.DROPPED


def rpc_error_message(exc: BaseException) -> str:
    """Best-effort text of an RPC error, including the JSON-RPC error body."""
    parts = [str(exc)]
    rpc_response: Any = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
        if isinstance(error, dict) and error.get("message"):
            parts.append(str(error["message"]))
    return " ".join(parts)


def is_underpriced_replacement(exc: BaseException) -> bool:
    if isinstance(exc, UnderpricedReplacementError):
        return True
    lowered = rpc_error_message(exc).lower()
    return any(message in lowered for message in UNDERPRICED_MESSAGES)


def classify_submission_error(exc: BaseException) -> RelayError:
    """Map an exception raised while submitting or confirming to the taxonomy."""
    if isinstance(exc, RelayError):
        return exc
    if is_underpriced_replacement(exc):
        return UnderpricedReplacementError(rpc_error_message(exc), cause=exc)
    return SubmissionError(str(exc) or type(exc).__name__, cause=exc)
