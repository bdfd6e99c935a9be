#!/usr/bin/env python3
"""Configuration management for the POAP Relayer.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_TARGET_EVENT_IDS = "190857"
DEFAULT_INDEXER_ADDRESS = "0x1ce83eaa58c8ce9e94e9766ebb36527872c7b54b"
DEFAULT_POAP_ADDRESS = "0x22c1f6050e56d2876009903609a2cc3fef83b415"
# Block the POAP Mint history on Base is indexed from
DEFAULT_START_BLOCK = 23_049_780


def _checksum(address: str, label: str, env_name: str) -> str:
    if not address:
        raise ValueError(f"{label} address is required ({env_name})")
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label.lower()} address: {address}")
    return Web3.to_checksum_address(address)


def parse_target_event_ids(raw: str) -> frozenset[int]:
    """Parse a comma-separated list of POAP event IDs.

    Blank entries are ignored.

    Raises:
        ValueError: If an entry is not a non-negative integer or the list is empty
    """
    event_ids: set[int] = set()
    for entry in raw.split(","):
        if not (entry := entry.strip()):
            continue
        try:
            event_id = int(entry)
        except ValueError:
            raise ValueError(f"Invalid target event ID: {entry!r}") from None
        if event_id < 0 or event_id >= 2**256:
            raise ValueError(f"Target event ID out of uint256 range: {entry}")
        event_ids.add(event_id)

    if not event_ids:
        raise ValueError("At least one target event ID is required (TARGET_EVENT_ID)")
    return frozenset(event_ids)


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the chain hosting both the POAP and indexer contracts.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
        private_key: Hex private key of the relayer account
        indexer_address: Checksummed address of the indexer contract
        poap_address: Checksummed address of the POAP contract
    """

    rpc_url: str
    private_key: str = field(repr=False)
    indexer_address: str = DEFAULT_INDEXER_ADDRESS
    poap_address: str = DEFAULT_POAP_ADDRESS

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. Expected http or https"
            )

        if not self.private_key:
            raise ValueError("Private key is required (PRIVATE_KEY)")

        # Basic private key validation (64 hex chars, optionally with 0x prefix)
        key = self.private_key.removeprefix('0x')
        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError("Invalid private key format. Must be hexadecimal") from None

        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(
            self, 'indexer_address',
            _checksum(self.indexer_address, "Indexer contract", "INDEXER_CONTRACT_ADDRESS"),
        )
        object.__setattr__(
            self, 'poap_address',
            _checksum(self.poap_address, "POAP contract", "POAP_CONTRACT_ADDRESS"),
        )


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for event monitoring and transaction confirmation."""
    polling_interval: int = 12  # seconds between event polls
    lookback_blocks: int = 100  # blocks to look back on startup when start_block is None
    start_block: int | None = DEFAULT_START_BLOCK  # first block of the initial sync
    max_block_range: int = 2000  # blocks per get_logs request
    request_timeout: int = 30  # HTTP request timeout in seconds
    confirmation_timeout: int = 120  # seconds to wait for a receipt

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if not 0 < self.polling_interval <= 300:
            raise ValueError(f"Polling interval must be between 1 and 300s, got {self.polling_interval}")
        if not 0 < self.lookback_blocks <= 10_000:
            raise ValueError(f"Lookback blocks must be between 1 and 10000, got {self.lookback_blocks}")
        if self.start_block is not None and self.start_block < 0:
            raise ValueError(f"Start block must be non-negative, got {self.start_block}")
        if not 0 < self.max_block_range <= 10_000:
            raise ValueError(f"Max block range must be between 1 and 10000, got {self.max_block_range}")
        if not 0 < self.request_timeout <= 120:
            raise ValueError(f"Request timeout must be between 1 and 120s, got {self.request_timeout}")
        if not 0 < self.confirmation_timeout <= 1800:
            raise ValueError(
                f"Confirmation timeout must be between 1 and 1800s, got {self.confirmation_timeout}"
            )


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the POAP Relayer.

    Attributes:
        chain: Chain and contract configuration
        target_event_ids: POAP event IDs whose mints are relayed
        monitoring: Polling and confirmation settings
    """

    chain: ChainConfig
    target_event_ids: frozenset[int]
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def __post_init__(self) -> None:
        if not self.target_event_ids:
            raise ValueError("At least one target event ID is required (TARGET_EVENT_ID)")

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """Load configuration from environment variables.

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        rpc_url = os.environ.get("RPC_URL") or os.environ.get("PONDER_RPC_URL_8453", "")

        chain_config = ChainConfig(
            rpc_url=rpc_url,
            private_key=os.environ.get("PRIVATE_KEY", ""),
            indexer_address=os.environ.get("INDEXER_CONTRACT_ADDRESS", DEFAULT_INDEXER_ADDRESS),
            poap_address=os.environ.get("POAP_CONTRACT_ADDRESS", DEFAULT_POAP_ADDRESS),
        )

        target_event_ids = parse_target_event_ids(
            os.environ.get("TARGET_EVENT_ID", DEFAULT_TARGET_EVENT_IDS)
        )

        monitoring_config = MonitoringConfig(
            polling_interval=_int_env("POLLING_INTERVAL", 12),
            lookback_blocks=_int_env("LOOKBACK_BLOCKS", 100),
            start_block=_start_block_env(),
            max_block_range=_int_env("MAX_BLOCK_RANGE", 2000),
            request_timeout=_int_env("REQUEST_TIMEOUT", 30),
            confirmation_timeout=_int_env("CONFIRMATION_TIMEOUT", 120),
        )

        return cls(
            chain=chain_config,
            target_event_ids=target_event_ids,
            monitoring=monitoring_config,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format (hiding sensitive data)."""
        logger.info("=" * 60)
        logger.info("POAP Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  POAP Contract: {self.chain.poap_address}")
        logger.info(f"  Indexer Contract: {self.chain.indexer_address}")
        logger.info(f"  Private Key: {'[SET]' if self.chain.private_key else '[NOT SET]'}")

        logger.info(
            f"Monitoring POAP events for event IDs: "
            f"{', '.join(str(i) for i in sorted(self.target_event_ids))}"
        )

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        if self.monitoring.start_block is not None:
            logger.info(f"  Start Block: {self.monitoring.start_block}")
        else:
            logger.info(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        logger.info(f"  Max Block Range: {self.monitoring.max_block_range}")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")
        logger.info(f"  Confirmation Timeout: {self.monitoring.confirmation_timeout} seconds")
        logger.info("=" * 60)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _start_block_env() -> int | None:
    """START_BLOCK as a block number; "latest" means look back from the head."""
    raw = os.environ.get("START_BLOCK", "").strip()
    if raw.lower() == "latest":
        return None
    return _int_env("START_BLOCK", DEFAULT_START_BLOCK)
