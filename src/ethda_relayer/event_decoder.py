"""
Decoding of raw ``EthDAEvent`` logs into domain events.

Only topic matching is checked; an entry that cannot be decoded is logged and
skipped without affecting the rest of the range.
"""

import logging

from eth_abi import decode
from web3 import Web3

from .models import DomainEvent, RawLogEntry

logger = logging.getLogger(__name__)

DEFAULT_EVENT_SIGNATURE = "EthDAEvent(string)"


def event_topic(signature: str) -> str:
    """Return the topic0 hash (0x prefixed) for an event signature."""
    return Web3.to_hex(Web3.keccak(text=signature))


def _parameter_types(signature: str) -> list[str]:
    """Extract the parameter types from ``Name(type1,type2)``."""
    open_paren = signature.find("(")
    if open_paren <= 0 or not signature.endswith(")"):
        raise ValueError(f"Invalid event signature: {signature!r}")
    inner = signature[open_paren + 1:-1]
    return [t.strip() for t in inner.split(",")] if inner.strip() else []


class EventDecoder:
    """Decodes logs of a single-string-payload event into ``DomainEvent``s."""

    def __init__(self, signature: str = DEFAULT_EVENT_SIGNATURE) -> None:
        types = _parameter_types(signature)
        if types != ["string"]:
            raise ValueError(
                f"Event {signature!r} must carry exactly one non-indexed string payload"
            )
        self.signature = signature
        self.topic = event_topic(signature)

    def decode(self, entry: RawLogEntry) -> DomainEvent | None:
        """
        Decode one log entry.

        Returns:
            The decoded event, or None if the entry does not match or is malformed
        """
        if not entry.topics or entry.topics[0].lower() != self.topic.lower():
            logger.warning(
                f"Skipping log in tx {entry.transaction_hash}: topic does not match {self.signature}"
            )
            return None

        try:
            (message,) = decode(["string"], entry.data)
        except Exception as e:
            logger.warning(
                f"Skipping undecodable log in tx {entry.transaction_hash} "
                f"(block {entry.block_number}): {e}"
            )
            return None

        return DomainEvent(
            message=message,
            transaction_hash=entry.transaction_hash,
            block_number=entry.block_number,
        )

    def decode_all(self, entries: list[RawLogEntry]) -> list[DomainEvent]:
        """Decode entries in order, dropping the ones that fail."""
        events = []
        for entry in entries:
            if (event := self.decode(entry)) is not None:
                events.append(event)
        return events
