"""
ETH-DA relayer service.

This module wires the scan pipeline to its collaborators, runs the scanner on
an interval task, and watches the source chain for liveness. The process is
aborted when the source chain stops producing blocks.
"""

import asyncio
import logging
import time

from web3 import AsyncHTTPProvider, AsyncWeb3

from .chain_scanner import ChainScanner
from .checkpoint_store import CheckpointStore
from .config import RelayerConfig
from .delivery import DeliveryPipeline
from .errors import ChainStalledError
from .event_decoder import EventDecoder
from .log_fetcher import LogFetcher
from .models import AppContext
from .order_submitter import OrderSubmitter
from .scheduler import IntervalTask, make_interval_task
from .utils.contract_utility import ContractUtility
from .utils.ipfs_pinner import IpfsPinner
from .utils.rofl_utility import RoflUtility

logger = logging.getLogger(__name__)


class RelayerMonitor:
    """
    Main service that runs the scanner task and the liveness watchdog.

    Scanning itself happens in the ``ChainScanner``; this class owns lifecycle,
    collaborator construction and shutdown.
    """

    ROFL_KEY_ID = "ethda-relayer"
    STATUS_LOG_INTERVAL = 30  # seconds
    STALLED_POLL_INTERVAL = 3  # seconds, while head is unchanged
    PROGRESS_POLL_INTERVAL = 10  # seconds, after head advanced

    def __init__(self, config: RelayerConfig) -> None:
        """
        Initialize the monitor with the source-side components.

        Target-side components need the signing key and are built in
        ``initialize``.
        """
        self.config = config
        self.running = False
        self.shutdown_event = asyncio.Event()

        self.source_w3 = AsyncWeb3(AsyncHTTPProvider(config.source_chain.rpc_url))
        self.decoder = EventDecoder(config.source_chain.event_signature)
        self.log_fetcher = LogFetcher(
            w3=self.source_w3,
            contract_address=config.source_chain.contract_address,
            topics=[self.decoder.topic],
            max_attempts=config.monitoring.head_retry_count,
            backoff=config.monitoring.head_retry_delay,
        )
        self.checkpoint_store = CheckpointStore(config.checkpoint_path)
        self.context = AppContext(label=config.source_chain.origin_label)

        self.rofl_util: RoflUtility | None = None if config.local_mode else RoflUtility()
        self.order_submitter: OrderSubmitter | None = None
        self.scanner: ChainScanner | None = None
        self.task: IntervalTask | None = None

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "RelayerMonitor":
        """Create a monitor from environment variables."""
        config = RelayerConfig.from_env(local_mode=local_mode)
        config.log_config()
        return cls(config)

    async def _resolve_secret(self) -> str:
        if self.rofl_util is None:
            logger.debug("Using local private key (LOCAL MODE)")
            return self.config.local_private_key or ""
        logger.debug("Fetching relayer key from ROFL...")
        return await self.rofl_util.fetch_key(self.ROFL_KEY_ID)

    async def initialize(self) -> None:
        """
        Connect to both chains and build the delivery side.

        Raises:
            ConnectionError: If either chain is unreachable
        """
        if not await self.source_w3.is_connected():
            raise ConnectionError(
                f"Failed to connect to source chain at {self.config.source_chain.rpc_url}"
            )

        secret = await self._resolve_secret()

        # In ROFL mode the daemon signs; the target Web3 stays read-only
        contract_util = ContractUtility(
            self.config.target_chain.network,
            secret if self.config.local_mode else "",
        )
        self.order_submitter = OrderSubmitter(
            contract_util=contract_util,
            rofl_util=self.rofl_util,
            contract_address=self.config.target_chain.contract_address,
        )
        if not self.order_submitter.is_reachable():
            raise ConnectionError(
                f"Failed to connect to target chain {self.config.target_chain.network}"
            )

        pinner = IpfsPinner(
            gateway_url=self.config.storage.gateway_url,
            private_key=secret,
            timeout=self.config.monitoring.request_timeout,
        )
        pipeline = DeliveryPipeline(
            pinner=pinner,
            order_client=self.order_submitter,
            origin_label=self.config.source_chain.origin_label,
            max_attempts=self.config.monitoring.delivery_retry_count,
            backoff=self.config.monitoring.delivery_retry_delay,
        )
        self.scanner = ChainScanner(
            log_fetcher=self.log_fetcher,
            decoder=self.decoder,
            pipeline=pipeline,
            checkpoint_store=self.checkpoint_store,
            max_step=self.config.monitoring.max_block_step,
            range_delay=self.config.monitoring.range_delay,
        )
        logger.info(f"Relayer initialized ({'LOCAL' if self.config.local_mode else 'ROFL'} mode)")

    async def _latest_block(self) -> int | None:
        try:
            return int(await self.source_w3.eth.block_number)
        except Exception as e:
            logger.warning(f"Watchdog could not fetch head block: {e}")
            return None

    async def _wait_or_shutdown(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if shutdown was requested."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def watch_liveness(self) -> None:
        """
        Abort when the source head has not advanced for ``max_stall_minutes``.

        Raises:
            ChainStalledError: If the source chain stalls
        """
        max_stall = self.config.monitoring.max_stall_minutes * 60
        last_block = await self._latest_block()
        last_progress = time.monotonic()
        logger.info("Running liveness watchdog")

        while self.running:
            current = await self._latest_block()
            if current is None or (last_block is not None and current <= last_block):
                stalled_for = time.monotonic() - last_progress
                if stalled_for > max_stall:
                    logger.error(f"No new block for {stalled_for:.0f} seconds, quitting relayer!")
                    raise ChainStalledError(f"Source chain head stuck at {last_block}")
                if await self._wait_or_shutdown(self.STALLED_POLL_INTERVAL):
                    return
                continue

            last_block = current
            last_progress = time.monotonic()
            if await self._wait_or_shutdown(self.PROGRESS_POLL_INTERVAL):
                return

    async def _periodic_status_logger(self) -> None:
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            stats = self.context.stats
            logger.info(
                f"Status: {stats.passes} passes, {stats.ranges_scanned} ranges, "
                f"{stats.events_delivered}/{stats.events_seen} events delivered, "
                f"{stats.events_failed} failed, checkpoint {stats.last_checkpoint}"
            )

    async def _stop_task(self) -> None:
        if self.task is None:
            return
        timeout = self.config.monitoring.shutdown_timeout
        try:
            await asyncio.wait_for(self.task.stop(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Scan pass still running after {timeout}s, stop requested")

    async def run(self) -> None:
        """Main loop: start the scanner task and block on the watchdog."""
        self.running = True
        logger.info("ETH-DA Relayer starting...")
        status_task: asyncio.Task | None = None

        try:
            await self.initialize()
            assert self.scanner is not None

            interval = self.config.monitoring.polling_interval
            self.task = make_interval_task(
                interval,
                interval,
                "Monitor",
                self.context,
                self.scanner.run_once,
            )
            self.task.start()
            status_task = asyncio.create_task(self._periodic_status_logger())

            await self.watch_liveness()

        except Exception as e:
            logger.error(f"Unexpected error occurs: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            logger.info("Stopping tasks")
            await self._stop_task()
            if status_task is not None:
                status_task.cancel()
                try:
                    await status_task
                except asyncio.CancelledError:
                    pass  # Expected when cancelling
            logger.info("ETH-DA Relayer stopped")

    def stop(self) -> None:
        """Request shutdown of the relayer."""
        self.running = False
        self.shutdown_event.set()
