#!/usr/bin/env python3
"""Tests for the RelayerMonitor lifecycle and liveness watchdog."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ethda_relayer.config import (
    MonitoringConfig,
    RelayerConfig,
    SourceChainConfig,
    StorageConfig,
    TargetChainConfig,
)
from ethda_relayer.errors import ChainStalledError
from ethda_relayer.monitor import RelayerMonitor
from ethda_relayer.utils.rofl_utility import RoflUtility

ADDRESS = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
PRIVATE_KEY = "0x" + "1" * 64


def make_config(local_mode=True, **monitoring) -> RelayerConfig:
    return RelayerConfig(
        source_chain=SourceChainConfig("https://test.rpc", ADDRESS),
        storage=StorageConfig("https://gw.test"),
        target_chain=TargetChainConfig("sapphire-localnet", ADDRESS),
        monitoring=MonitoringConfig(**monitoring),
        local_mode=local_mode,
        local_private_key=PRIVATE_KEY if local_mode else None,
    )


class HeadSequence:
    """Fake ``eth`` namespace whose head follows a script, repeating the last value."""

    def __init__(self, *heads):
        self._heads = list(heads)

    @property
    def block_number(self):
        head = self._heads.pop(0) if len(self._heads) > 1 else self._heads[0]

        async def read():
            if isinstance(head, Exception):
                raise head
            return head

        return read()


def fast_monitor(*heads, stall_seconds=0.1, **config) -> RelayerMonitor:
    monitor = RelayerMonitor(make_config(max_stall_minutes=stall_seconds / 60, **config))
    monitor.STALLED_POLL_INTERVAL = 0.01
    monitor.PROGRESS_POLL_INTERVAL = 0.01
    monitor.source_w3 = MagicMock()
    monitor.source_w3.eth = HeadSequence(*heads)
    return monitor


class TestConstruction:

    def test_local_mode_has_no_rofl_client(self):
        monitor = RelayerMonitor(make_config(local_mode=True))

        assert monitor.rofl_util is None
        assert monitor.log_fetcher.topics == [monitor.decoder.topic]
        assert monitor.context.label == "optimism"
        assert monitor.scanner is None

    def test_rofl_mode_has_rofl_client(self):
        monitor = RelayerMonitor(make_config(local_mode=False))
        assert isinstance(monitor.rofl_util, RoflUtility)

    def test_fetcher_uses_head_retry_settings(self):
        monitor = RelayerMonitor(make_config(head_retry_count=4, head_retry_delay=0.5))
        assert monitor.log_fetcher.max_attempts == 4
        assert monitor.log_fetcher.backoff == 0.5


class TestInitialize:

    @pytest.mark.asyncio
    async def test_unreachable_source_chain(self):
        monitor = RelayerMonitor(make_config())
        monitor.source_w3 = MagicMock()
        monitor.source_w3.is_connected = AsyncMock(return_value=False)

        with pytest.raises(ConnectionError, match="source chain"):
            await monitor.initialize()

    @pytest.mark.asyncio
    @patch("ethda_relayer.monitor.OrderSubmitter")
    @patch("ethda_relayer.monitor.ContractUtility")
    async def test_unreachable_target_chain(self, mock_contract_util, mock_submitter):
        mock_submitter.return_value.is_reachable.return_value = False
        monitor = RelayerMonitor(make_config())
        monitor.source_w3 = MagicMock()
        monitor.source_w3.is_connected = AsyncMock(return_value=True)

        with pytest.raises(ConnectionError, match="target chain"):
            await monitor.initialize()

    @pytest.mark.asyncio
    @patch("ethda_relayer.monitor.IpfsPinner")
    @patch("ethda_relayer.monitor.OrderSubmitter")
    @patch("ethda_relayer.monitor.ContractUtility")
    async def test_local_mode_signs_with_local_key(self, mock_contract_util, mock_submitter, mock_pinner):
        mock_submitter.return_value.is_reachable.return_value = True
        monitor = RelayerMonitor(make_config(local_mode=True, delivery_retry_count=2))
        monitor.source_w3 = MagicMock()
        monitor.source_w3.is_connected = AsyncMock(return_value=True)

        await monitor.initialize()

        mock_contract_util.assert_called_once_with("sapphire-localnet", PRIVATE_KEY)
        mock_submitter.assert_called_once_with(
            contract_util=mock_contract_util.return_value,
            rofl_util=None,
            contract_address=ADDRESS,
        )
        assert mock_pinner.call_args.kwargs["private_key"] == PRIVATE_KEY
        assert monitor.scanner is not None
        assert monitor.scanner.pipeline.max_attempts == 2

    @pytest.mark.asyncio
    @patch("ethda_relayer.monitor.IpfsPinner")
    @patch("ethda_relayer.monitor.OrderSubmitter")
    @patch("ethda_relayer.monitor.ContractUtility")
    async def test_rofl_mode_fetches_key(self, mock_contract_util, mock_submitter, mock_pinner):
        mock_submitter.return_value.is_reachable.return_value = True
        monitor = RelayerMonitor(make_config(local_mode=False))
        monitor.source_w3 = MagicMock()
        monitor.source_w3.is_connected = AsyncMock(return_value=True)
        monitor.rofl_util = MagicMock()
        monitor.rofl_util.fetch_key = AsyncMock(return_value="ab" * 32)

        await monitor.initialize()

        monitor.rofl_util.fetch_key.assert_awaited_once_with(RelayerMonitor.ROFL_KEY_ID)
        mock_contract_util.assert_called_once_with("sapphire-localnet", "")
        assert mock_pinner.call_args.kwargs["private_key"] == "ab" * 32


class TestWatchdog:

    @pytest.mark.asyncio
    async def test_stalled_head_aborts(self):
        monitor = fast_monitor(100, stall_seconds=0.05)
        monitor.running = True

        with pytest.raises(ChainStalledError):
            await asyncio.wait_for(monitor.watch_liveness(), timeout=2)

    @pytest.mark.asyncio
    async def test_unreachable_node_counts_as_stall(self):
        monitor = fast_monitor(ConnectionError("down"), stall_seconds=0.05)
        monitor.running = True

        with pytest.raises(ChainStalledError):
            await asyncio.wait_for(monitor.watch_liveness(), timeout=2)

    @pytest.mark.asyncio
    async def test_advancing_head_keeps_running_until_stop(self):
        monitor = fast_monitor(*range(100, 10_000), stall_seconds=0.05)
        monitor.running = True

        watchdog = asyncio.create_task(monitor.watch_liveness())
        await asyncio.sleep(0.2)
        assert not watchdog.done()

        monitor.stop()
        await asyncio.wait_for(watchdog, timeout=1)

    @pytest.mark.asyncio
    async def test_stop_ends_stalled_wait(self):
        monitor = fast_monitor(100, stall_seconds=60)
        monitor.STALLED_POLL_INTERVAL = 30
        monitor.running = True

        watchdog = asyncio.create_task(monitor.watch_liveness())
        await asyncio.sleep(0.05)
        monitor.stop()

        await asyncio.wait_for(watchdog, timeout=1)


class TestShutdown:

    @pytest.mark.asyncio
    async def test_stop_task_is_bounded(self):
        monitor = RelayerMonitor(make_config(shutdown_timeout=0.05))
        never = asyncio.Event()

        async def slow_stop():
            await never.wait()

        monitor.task = MagicMock()
        monitor.task.stop = slow_stop

        await asyncio.wait_for(monitor._stop_task(), timeout=1)

    @pytest.mark.asyncio
    async def test_stop_task_without_task(self):
        monitor = RelayerMonitor(make_config())
        await monitor._stop_task()

    @pytest.mark.asyncio
    async def test_run_stops_task_when_chain_stalls(self):
        monitor = RelayerMonitor(make_config(polling_interval=0.01))
        run_once = AsyncMock()

        async def fake_initialize():
            monitor.scanner = MagicMock()
            monitor.scanner.run_once = run_once

        monitor.initialize = fake_initialize

        async def stalled():
            await asyncio.sleep(0.1)
            raise ChainStalledError("stuck")

        monitor.watch_liveness = stalled

        with pytest.raises(ChainStalledError):
            await monitor.run()

        assert run_once.await_count >= 1
        run_once.assert_awaited_with(monitor.context)
        assert monitor.running is False
        calls = run_once.await_count
        await asyncio.sleep(0.05)
        assert run_once.await_count == calls

    @pytest.mark.asyncio
    async def test_run_returns_on_stop(self):
        monitor = fast_monitor(*range(1, 10_000), polling_interval=5)

        async def fake_initialize():
            monitor.scanner = MagicMock()
            monitor.scanner.run_once = AsyncMock()

        monitor.initialize = fake_initialize

        runner = asyncio.create_task(monitor.run())
        await asyncio.sleep(0.05)
        monitor.stop()

        await asyncio.wait_for(runner, timeout=1)
        assert monitor.task.state.name == "STOPPED"
