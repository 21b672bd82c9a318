"""
Source-chain log fetching.

Queries the source EVM node for the head block number and for the raw logs of
one contract/topic over a bounded block range. Both queries use a fixed retry
budget and return ``Ok`` / ``Failed`` instead of raising.
"""

import logging
from collections.abc import Mapping
from typing import Any

from web3 import AsyncWeb3, Web3

from .models import Failed, Ok, RawLogEntry, Result, ScanRange
from .utils.retry import RetryState, run_with_retry

logger = logging.getLogger(__name__)


def _to_hex(value: Any) -> str:
    match value:
        case str() if value.startswith("0x"):
            return value
        case str():
            return "0x" + value
        case bytes() | bytearray():
            return Web3.to_hex(value)
        case _:
            raise ValueError(f"Unexpected hash type: {type(value)}")


def _to_bytes(value: Any) -> bytes:
    match value:
        case bytes() | bytearray():
            return bytes(value)
        case str():
            return Web3.to_bytes(hexstr=value)
        case _:
            raise ValueError(f"Unexpected log data type: {type(value)}")


def to_raw_log_entry(log: Mapping[str, Any]) -> RawLogEntry:
    """Convert a web3 log receipt (or plain JSON-RPC dict) into a ``RawLogEntry``."""
    return RawLogEntry(
        address=log["address"],
        topics=tuple(_to_hex(topic) for topic in log.get("topics", [])),
        data=_to_bytes(log.get("data", b"")),
        transaction_hash=_to_hex(log["transactionHash"]),
        block_number=int(log["blockNumber"]),
        log_index=int(log.get("logIndex", 0)),
    )


class LogFetcher:
    """Fetches head block numbers and filtered logs from the source chain."""

    def __init__(
        self,
        w3: AsyncWeb3,
        contract_address: str,
        topics: list[str],
        max_attempts: int = 10,
        backoff: float = 1.5,
    ) -> None:
        """
        Initialize the log fetcher.

        Args:
            w3: Async Web3 instance connected to the source chain
            contract_address: Address of the contract emitting the event
            topics: Topic filter (topic0 is the event signature hash)
            max_attempts: Attempts per query before giving up
            backoff: Seconds to wait between attempts
        """
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.topics = list(topics)
        self.max_attempts = max_attempts
        self.backoff = backoff

    def build_filter(self, scan_range: ScanRange) -> dict[str, Any]:
        """Build ``eth_getLogs`` filter params with hex-encoded block numbers."""
        return {
            "address": [self.contract_address],
            "topics": self.topics,
            "fromBlock": hex(scan_range.from_block),
            "toBlock": hex(scan_range.to_block),
        }

    async def get_head_block(self) -> Result[int]:
        """Fetch the current head block number of the source chain."""

        async def attempt(_: int) -> Result[int]:
            return Ok(int(await self.w3.eth.block_number))

        outcome = await run_with_retry(
            attempt,
            RetryState(self.max_attempts),
            self.backoff,
            "Get block number",
        )
        if isinstance(outcome, Failed):
            logger.error(
                f"Get latest block number failed after {outcome.attempts} attempts: {outcome.error}"
            )
        return outcome

    async def get_logs(self, scan_range: ScanRange) -> Result[list[RawLogEntry]]:
        """
        Fetch matching logs for exactly ``scan_range``.

        Returns:
            Ok with the well-formed logs in node order (malformed entries are
            logged and skipped), or Failed once the retry budget is spent
        """
        filter_params = self.build_filter(scan_range)

        async def attempt(_: int) -> Result[list[Any]]:
            return Ok(list(await self.w3.eth.get_logs(filter_params)))

        outcome = await run_with_retry(
            attempt,
            RetryState(self.max_attempts),
            self.backoff,
            f"Get logs {scan_range}",
        )
        match outcome:
            case Failed(error=error, attempts=attempts):
                logger.error(
                    f"Get logs from {scan_range.from_block} ~ {scan_range.to_block} "
                    f"failed after {attempts} attempts: {error}"
                )
                return outcome
            case Ok(value=logs):
                entries = self._convert(logs, scan_range)

        if entries:
            logger.info(f"Found {len(entries)} logs in blocks {scan_range}")
        return Ok(entries)

    @staticmethod
    def _convert(logs: list[Any], scan_range: ScanRange) -> list[RawLogEntry]:
        # A malformed entry is dropped on its own; the rest of the range is kept
        entries = []
        for position, log in enumerate(logs):
            try:
                entries.append(to_raw_log_entry(log))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed log #{position} in blocks {scan_range}: {e!r}")
        return entries
