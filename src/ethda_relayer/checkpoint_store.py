"""
Durable checkpoint of scan progress.

The checkpoint is a single JSON record ``{"blockNumber": <int>}``. A missing or
unreadable record is reported as "not found" so callers restart from the chain
head instead of halting.
"""

import json
import logging
import os
from pathlib import Path

from .models import Checkpoint

logger = logging.getLogger(__name__)


class CheckpointStore:
    """File-backed store for the last fully scanned block number."""

    RECORD_KEY = "blockNumber"

    def __init__(self, path: str | Path) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the JSON checkpoint record
        """
        self.path = Path(path)

    def load(self) -> Checkpoint | None:
        """
        Load the checkpoint.

        Returns:
            The stored checkpoint, or None when the record is absent or unparsable
        """
        if not self.path.exists():
            logger.info(f"No checkpoint record at {self.path}")
            return None

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read checkpoint record {self.path}: {e}")
            return None

        if not raw.strip():
            logger.warning(f"Checkpoint record {self.path} is empty")
            return None

        try:
            record = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Checkpoint record {self.path} is not valid JSON: {e}")
            return None

        match record:
            case {"blockNumber": int(block_number)} if not isinstance(block_number, bool) and block_number >= 0:
                return Checkpoint(block_number=block_number)
            case _:
                logger.warning(f"Checkpoint record {self.path} has no usable block number: {raw!r}")
                return None

    def save(self, block_number: int) -> None:
        """
        Persist ``block_number`` as the checkpoint.

        The record is written to a sibling temp file and atomically swapped in,
        so a crash never leaves a half-written checkpoint.

        Raises:
            ValueError: If ``block_number`` is negative
            OSError: If the record cannot be written
        """
        if block_number < 0:
            raise ValueError(f"Block number must be non-negative, got {block_number}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps({self.RECORD_KEY: block_number}), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug(f"Checkpoint saved: block {block_number}")
