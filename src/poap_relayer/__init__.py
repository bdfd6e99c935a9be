"""
POAP Relayer package.

Watches POAP Mint events and records targeted mints on the indexer contract.
"""

from .config import RelayerConfig
from .event_processor import EventProcessor
from .models import MintEvent, RelayOutcome, RelayState
from .relay_worker import RelayWorker
from .relayer import PoapRelayer

__all__ = [
    "RelayerConfig",
    "PoapRelayer",
    "RelayWorker",
    "EventProcessor",
    "MintEvent",
    "RelayOutcome",
    "RelayState",
]
__version__ = "0.1.0"
