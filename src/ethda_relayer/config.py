#!/usr/bin/env python3
"""Configuration management for the ETH-DA relayer.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate; invalid values raise ``InvalidConfiguration``.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from web3 import Web3

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


def _checksum(address: str, label: str, env_name: str) -> str:
    if not address:
        raise InvalidConfiguration(f"{label} is required ({env_name})")
    if not Web3.is_address(address):
        raise InvalidConfiguration(f"Invalid {label.lower()}: {address}")
    return Web3.to_checksum_address(address)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class SourceChainConfig:
    """Configuration for the monitored source chain.

    Attributes:
        rpc_url: HTTP(S) or WS(S) RPC endpoint
        contract_address: Checksummed address of the emitting contract
        event_signature: Signature of the monitored event
        origin_label: Label sent with every order to name this chain
    """

    rpc_url: str
    contract_address: str
    event_signature: str = "EthDAEvent(string)"
    origin_label: str = "optimism"

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise InvalidConfiguration("Source RPC URL is required (SOURCE_RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise InvalidConfiguration(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        checksummed = _checksum(
            self.contract_address, "Source contract address", "SOURCE_CONTRACT_ADDRESS"
        )
        object.__setattr__(self, 'contract_address', checksummed)

        if "(" not in self.event_signature or not self.event_signature.endswith(")"):
            raise InvalidConfiguration(f"Invalid event signature: {self.event_signature}")
        if not self.origin_label:
            raise InvalidConfiguration("Origin label must not be empty (ORIGIN_LABEL)")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Configuration for the IPFS pinning gateway."""

    gateway_url: str

    def __post_init__(self) -> None:
        if not self.gateway_url:
            raise InvalidConfiguration("IPFS gateway URL is required (IPFS_GATEWAY_URL)")
        if urlparse(self.gateway_url).scheme not in ('http', 'https'):
            raise InvalidConfiguration(f"Invalid IPFS gateway URL: {self.gateway_url}")


@dataclass(frozen=True, slots=True)
class TargetChainConfig:
    """Configuration for the chain receiving storage orders.

    Attributes:
        network: Network name (e.g. 'sapphire-testnet') or RPC URL
        contract_address: Checksummed address of the StorageOrder contract
    """

    network: str
    contract_address: str

    def __post_init__(self) -> None:
        if not self.network:
            raise InvalidConfiguration("Target network is required (TARGET_NETWORK)")
        checksummed = _checksum(
            self.contract_address, "Target contract address", "TARGET_CONTRACT_ADDRESS"
        )
        object.__setattr__(self, 'contract_address', checksummed)


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Scan, retry and watchdog settings."""
    polling_interval: float = 10  # seconds between scan passes
    max_block_step: int = 1000  # blocks per eth_getLogs query
    range_delay: float = 1.0  # pause between consecutive ranges
    head_retry_count: int = 10
    head_retry_delay: float = 1.5
    delivery_retry_count: int = 5
    delivery_retry_delay: float = 3.0
    request_timeout: int = 30
    max_stall_minutes: float = 30
    shutdown_timeout: float = 5

    def __post_init__(self) -> None:
        if self.polling_interval <= 0:
            raise InvalidConfiguration(f"Polling interval must be positive, got {self.polling_interval}")
        if not 0 < self.max_block_step <= 10_000:
            raise InvalidConfiguration(f"Max block step must be in 1..10000, got {self.max_block_step}")
        if self.range_delay < 0:
            raise InvalidConfiguration(f"Range delay must be non-negative, got {self.range_delay}")
        if self.head_retry_count <= 0:
            raise InvalidConfiguration(f"Head retry count must be positive, got {self.head_retry_count}")
        if self.delivery_retry_count <= 0:
            raise InvalidConfiguration(f"Delivery retry count must be positive, got {self.delivery_retry_count}")
        if self.head_retry_delay < 0 or self.delivery_retry_delay < 0:
            raise InvalidConfiguration("Retry delays must be non-negative")
        if not 0 < self.request_timeout <= 120:
            raise InvalidConfiguration(f"Request timeout must be in 1..120s, got {self.request_timeout}")
        if self.max_stall_minutes <= 0:
            raise InvalidConfiguration(f"Max stall minutes must be positive, got {self.max_stall_minutes}")
        if self.shutdown_timeout <= 0:
            raise InvalidConfiguration(f"Shutdown timeout must be positive, got {self.shutdown_timeout}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the ETH-DA relayer.

    Attributes:
        source_chain: Monitored chain settings
        storage: Pinning gateway settings
        target_chain: Order chain settings
        monitoring: Scan, retry and watchdog settings
        checkpoint_path: Location of the checkpoint record
        local_mode: Sign locally instead of through ROFL
        local_private_key: Signing key for local mode
    """

    source_chain: SourceChainConfig
    storage: StorageConfig
    target_chain: TargetChainConfig
    monitoring: MonitoringConfig
    checkpoint_path: str = "./block.json"
    local_mode: bool = False
    local_private_key: str | None = None

    def __post_init__(self) -> None:
        if not self.checkpoint_path:
            raise InvalidConfiguration("Checkpoint path must not be empty (CHECKPOINT_PATH)")

        if self.local_mode and not self.local_private_key:
            raise InvalidConfiguration(
                "Local mode requires LOCAL_PRIVATE_KEY environment variable"
            )

        if self.local_private_key:
            key = self.local_private_key.removeprefix('0x')
            if len(key) != 64:
                raise InvalidConfiguration(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )
            try:
                int(key, 16)
            except ValueError:
                raise InvalidConfiguration(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "RelayerConfig":
        """Load configuration from environment variables.

        Raises:
            InvalidConfiguration: If required variables are missing or invalid
        """
        source_config = SourceChainConfig(
            rpc_url=os.environ.get("SOURCE_RPC_URL", ""),
            contract_address=os.environ.get("SOURCE_CONTRACT_ADDRESS", ""),
            event_signature=os.environ.get("EVENT_SIGNATURE", "EthDAEvent(string)"),
            origin_label=os.environ.get("ORIGIN_LABEL", "optimism"),
        )

        storage_config = StorageConfig(gateway_url=os.environ.get("IPFS_GATEWAY_URL", ""))

        target_config = TargetChainConfig(
            network=os.environ.get("TARGET_NETWORK", "sapphire-testnet"),
            contract_address=os.environ.get("TARGET_CONTRACT_ADDRESS", ""),
        )

        monitoring_config = MonitoringConfig(
            polling_interval=_env_float("POLLING_INTERVAL", 10),
            max_block_step=_env_int("MAX_BLOCK_STEP", 1000),
            range_delay=_env_float("RANGE_DELAY", 1.0),
            head_retry_count=_env_int("HEAD_RETRY_COUNT", 10),
            head_retry_delay=_env_float("HEAD_RETRY_DELAY", 1.5),
            delivery_retry_count=_env_int("DELIVERY_RETRY_COUNT", 5),
            delivery_retry_delay=_env_float("DELIVERY_RETRY_DELAY", 3.0),
            request_timeout=_env_int("REQUEST_TIMEOUT", 30),
            max_stall_minutes=_env_float("MAX_STALL_MINUTES", 30),
            shutdown_timeout=_env_float("SHUTDOWN_TIMEOUT", 5),
        )

        return cls(
            source_chain=source_config,
            storage=storage_config,
            target_chain=target_config,
            monitoring=monitoring_config,
            checkpoint_path=os.environ.get("CHECKPOINT_PATH", "./block.json"),
            local_mode=local_mode,
            local_private_key=os.environ.get("LOCAL_PRIVATE_KEY") if local_mode else None,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format, hiding secrets."""
        logger.info("=" * 60)
        logger.info("ETH-DA Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Source Chain:")
        logger.info(f"  RPC URL: {self.source_chain.rpc_url}")
        logger.info(f"  Contract: {self.source_chain.contract_address}")
        logger.info(f"  Event: {self.source_chain.event_signature}")
        logger.info(f"  Origin Label: {self.source_chain.origin_label}")

        logger.info("Storage:")
        logger.info(f"  Gateway: {self.storage.gateway_url}")

        logger.info("Target Chain:")
        logger.info(f"  Network: {self.target_chain.network}")
        logger.info(f"  Contract: {self.target_chain.contract_address}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Max Block Step: {self.monitoring.max_block_step}")
        logger.info(f"  Head Retries: {self.monitoring.head_retry_count} x {self.monitoring.head_retry_delay}s")
        logger.info(f"  Delivery Retries: {self.monitoring.delivery_retry_count} x {self.monitoring.delivery_retry_delay}s")
        logger.info(f"  Max Stall: {self.monitoring.max_stall_minutes} minutes")
        logger.info(f"  Checkpoint: {self.checkpoint_path}")

        logger.info(f"Mode: {'LOCAL' if self.local_mode else 'ROFL'}")
        if self.local_mode:
            logger.info("  Local Key: [CONFIGURED]")

        logger.info("=" * 60)
