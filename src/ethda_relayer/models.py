#!/usr/bin/env python3
"""Data models for the ETH-DA relayer.

This module provides the immutable value types that flow through the scan
pipeline (checkpoints, block ranges, raw logs, decoded events and order
requests), the tagged ``Ok`` / ``Failed`` results returned by every retrying
operation, and the mutable statistics shared with scheduled handlers.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Highest source block that has been fully processed."""

    block_number: int


@dataclass(frozen=True, slots=True)
class ScanRange:
    """Inclusive block range covered by a single log query."""

    from_block: int
    to_block: int

    def __post_init__(self) -> None:
        if self.from_block < 0 or self.to_block < self.from_block:
            raise ValueError(f"Invalid scan range {self.from_block} ~ {self.to_block}")

    @property
    def width(self) -> int:
        return self.to_block - self.from_block + 1

    def __str__(self) -> str:
        return f"[{self.from_block}, {self.to_block}]"


@dataclass(frozen=True, slots=True)
class RawLogEntry:
    """A log entry as returned by ``eth_getLogs``.

    Attributes:
        address: Address of the emitting contract
        topics: Ordered topic hashes (hex strings with 0x prefix)
        data: Non-indexed ABI-encoded event data
        transaction_hash: Hash of the emitting transaction (0x prefixed)
        block_number: Block the log was included in
        log_index: Position of the log within the block
    """

    address: str
    topics: tuple[str, ...]
    data: bytes
    transaction_hash: str
    block_number: int
    log_index: int = 0


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Decoded ``EthDAEvent`` carrying the payload to store."""

    message: str
    transaction_hash: str
    block_number: int = 0

    def __str__(self) -> str:
        return (
            f"DomainEvent(tx={self.transaction_hash[:10]}..., "
            f"block={self.block_number}, bytes={len(self.message.encode('utf-8'))})"
        )


@dataclass(frozen=True, slots=True)
class OrderRequest:
    """Storage order forwarded to the target chain.

    Attributes:
        cid: Canonical content identifier of the pinned payload
        size: Pinned size in bytes as reported by the gateway
        source_tx_hash: Transaction hash of the originating source-chain event
        origin_label: Constant naming the source chain (e.g. ``optimism``)
        is_private: Whether the order is private (always False for relayed events)
    """

    cid: str
    size: int
    source_tx_hash: str
    origin_label: str
    is_private: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and serialization."""
        return {
            "cid": self.cid,
            "size": self.size,
            "source_tx_hash": self.source_tx_hash,
            "origin_label": self.origin_label,
            "is_private": self.is_private,
        }


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome of a retrying operation."""

    value: T


@dataclass(frozen=True)
class Failed:
    """Failed outcome of a retrying operation after its budget was spent."""

    error: BaseException | None
    attempts: int = 1


Result = Ok[T] | Failed


@dataclass
class MonitorStats:
    """Counters updated by the scanner and reported by the monitor."""

    passes: int = 0
    ranges_scanned: int = 0
    events_seen: int = 0
    events_delivered: int = 0
    events_failed: int = 0
    decode_errors: int = 0
    last_checkpoint: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passes": self.passes,
            "ranges_scanned": self.ranges_scanned,
            "events_seen": self.events_seen,
            "events_delivered": self.events_delivered,
            "events_failed": self.events_failed,
            "decode_errors": self.decode_errors,
            "last_checkpoint": self.last_checkpoint,
        }


@dataclass
class AppContext:
    """Context handed to each scheduled handler invocation."""

    label: str
    stats: MonitorStats = field(default_factory=MonitorStats)
