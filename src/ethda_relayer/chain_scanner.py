"""
Chain scanner driving one scan pass per scheduler tick.

A pass walks from the checkpoint to the current head in bounded ranges. For
each range the logs are fetched, decoded and delivered in log order, and only
then is the range end persisted as the new checkpoint. A crash mid-range
therefore replays the whole range on restart (at-least-once delivery).
"""

import asyncio
import logging
from collections.abc import Iterator

from .checkpoint_store import CheckpointStore
from .delivery import DeliveryPipeline
from .event_decoder import EventDecoder
from .log_fetcher import LogFetcher
from .models import AppContext, Failed, Ok, ScanRange

logger = logging.getLogger(__name__)


def split_range(start: int, end: int, max_step: int) -> Iterator[ScanRange]:
    """
    Yield consecutive ranges covering ``[start, end]`` with no gaps or overlaps.

    Each range spans at most ``max_step`` blocks.
    """
    if max_step <= 0:
        raise ValueError(f"max_step must be positive, got {max_step}")
    from_block = start
    while from_block <= end:
        to_block = min(from_block + max_step - 1, end)
        yield ScanRange(from_block, to_block)
        from_block = to_block + 1


class ChainScanner:
    """Scans the source chain and delivers every decoded event."""

    def __init__(
        self,
        log_fetcher: LogFetcher,
        decoder: EventDecoder,
        pipeline: DeliveryPipeline,
        checkpoint_store: CheckpointStore,
        max_step: int = 1000,
        range_delay: float = 1.0,
    ) -> None:
        if max_step <= 0:
            raise ValueError(f"max_step must be positive, got {max_step}")
        self.log_fetcher = log_fetcher
        self.decoder = decoder
        self.pipeline = pipeline
        self.checkpoint_store = checkpoint_store
        self.max_step = max_step
        self.range_delay = range_delay

    def _persist(self, block_number: int, context: AppContext | None) -> bool:
        try:
            self.checkpoint_store.save(block_number)
        except OSError as e:
            logger.error(f"Failed to persist checkpoint {block_number}: {e}")
            return False
        if context is not None:
            context.stats.last_checkpoint = block_number
        return True

    async def _process_range(self, scan_range: ScanRange, context: AppContext | None) -> bool:
        match await self.log_fetcher.get_logs(scan_range):
            case Failed():
                return False
            case Ok(value=entries):
                pass

        events = self.decoder.decode_all(entries)
        if context is not None:
            context.stats.decode_errors += len(entries) - len(events)
            context.stats.events_seen += len(events)

        # One event at a time: log order is the delivery order
        for event in events:
            outcome = await self.pipeline.deliver(event)
            if context is not None:
                if isinstance(outcome, Ok):
                    context.stats.events_delivered += 1
                else:
                    context.stats.events_failed += 1

        if not self._persist(scan_range.to_block, context):
            return False
        if context is not None:
            context.stats.ranges_scanned += 1
        return True

    async def run_once(self, context: AppContext | None = None) -> None:
        """Run one scan pass from the checkpoint to the current head."""
        if context is not None:
            context.stats.passes += 1

        match await self.log_fetcher.get_head_block():
            case Failed():
                logger.error("Get latest block number failed, skipping this pass")
                return
            case Ok(value=head):
                pass

        checkpoint = self.checkpoint_store.load()
        if checkpoint is None:
            logger.info(f"No checkpoint found, starting from head block {head}")
            self._persist(head, context)
            return

        if checkpoint.block_number > head:
            logger.warning(
                f"Checkpoint {checkpoint.block_number} is ahead of head {head}, clamping to head"
            )
            self._persist(head, context)
            return

        start = checkpoint.block_number + 1
        if start > head:
            logger.debug(f"No new blocks since {checkpoint.block_number}")
            return

        for scan_range in split_range(start, head, self.max_step):
            if not await self._process_range(scan_range, context):
                logger.error(
                    f"Scan stopped at {scan_range}, resuming from block {scan_range.from_block} next pass"
                )
                return
            if scan_range.to_block < head and self.range_delay > 0:
                await asyncio.sleep(self.range_delay)

        logger.info(f"Checked blocks {start} ~ {head}")
