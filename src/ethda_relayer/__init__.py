"""
ETH-DA storage relayer package.

Scans a source EVM chain for EthDAEvent logs, pins each payload to an IPFS
gateway and places a storage order for it on the target chain.
"""

from .chain_scanner import ChainScanner
from .checkpoint_store import CheckpointStore
from .config import RelayerConfig
from .delivery import DeliveryPipeline
from .models import DomainEvent, OrderRequest
from .monitor import RelayerMonitor
from .scheduler import IntervalTask, make_interval_task

__all__ = [
    "ChainScanner",
    "CheckpointStore",
    "DeliveryPipeline",
    "DomainEvent",
    "IntervalTask",
    "OrderRequest",
    "RelayerConfig",
    "RelayerMonitor",
    "make_interval_task",
]
__version__ = "0.1.0"
