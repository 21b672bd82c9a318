#!/usr/bin/env python3
"""Storage order submission to the target chain.

This module places storage orders on the StorageOrder contract, supporting both
local mode (direct signed transaction) and ROFL mode (signing delegated to the
ROFL application daemon).
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3 import Web3
from web3.contract import Contract
from web3.types import HexBytes, TxParams, TxReceipt, Wei

from .models import OrderRequest

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility
    from .utils.rofl_utility import RoflUtility

logger = logging.getLogger(__name__)

STORAGE_ORDER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "string", "name": "cid", "type": "string"},
            {"internalType": "uint64", "name": "size", "type": "uint64"},
            {"internalType": "bytes32", "name": "sourceTxHash", "type": "bytes32"},
            {"internalType": "string", "name": "origin", "type": "string"},
            {"internalType": "bool", "name": "isPrivate", "type": "bool"},
        ],
        "name": "placeOrder",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]


class OrderSubmitter:
    """Places storage orders on the target-chain StorageOrder contract."""

    GAS_LIMIT = 300000
    RECEIPT_TIMEOUT = 30

    def __init__(
        self,
        contract_util: "ContractUtility",
        rofl_util: "RoflUtility | None",
        contract_address: str,
    ) -> None:
        """
        Initialize the OrderSubmitter.

        Args:
            contract_util: Web3 access to the target chain
            rofl_util: ROFL client for transaction submission (None for local mode)
            contract_address: Address of the StorageOrder contract
        """
        self.contract_util = contract_util
        self.rofl_util = rofl_util
        self.contract_address: str = Web3.to_checksum_address(contract_address)
        self.contract: Contract = self.contract_util.w3.eth.contract(
            address=self.contract_address,
            abi=STORAGE_ORDER_ABI,
        )

        mode = "ROFL" if rofl_util else "local"
        logger.info(f"OrderSubmitter initialized in {mode} mode for {self.contract_address}")

    def is_reachable(self) -> bool:
        """Check that the target chain RPC answers."""
        try:
            return bool(self.contract_util.w3.is_connected())
        except Exception as e:
            logger.warning(f"Target chain connectivity check failed: {e}")
            return False

    def _place_order_call(self, request: OrderRequest):
        return self.contract.functions.placeOrder(
            request.cid,
            request.size,
            Web3.to_bytes(hexstr=request.source_tx_hash),
            request.origin_label,
            request.is_private,
        )

    async def submit_order(self, request: OrderRequest) -> bool:
        """
        Submit one storage order.

        Args:
            request: The order to place

        Returns:
            True if the order transaction succeeded, False otherwise

        Raises:
            Exception: Transport and signing errors propagate to the caller's retry loop
        """
        logger.info(
            f"Placing order cid={request.cid} size={request.size} "
            f"source_tx={request.source_tx_hash[:10]}... origin={request.origin_label}"
        )
        call = self._place_order_call(request)
        eth = self.contract_util.w3.eth
        # Target Web3 is synchronous; keep its RPC round trips off the event loop
        gas_price = await asyncio.to_thread(lambda: eth.gas_price)

        match self.rofl_util:
            case None:
                tx_hash: HexBytes = await asyncio.to_thread(
                    call.transact, {'gas': self.GAS_LIMIT, 'gasPrice': gas_price}
                )
                logger.debug(f"Order transaction sent: {Web3.to_hex(tx_hash)}")

                receipt: TxReceipt = await asyncio.to_thread(
                    eth.wait_for_transaction_receipt, tx_hash, timeout=self.RECEIPT_TIMEOUT
                )
                if (status := receipt.get('status', 0)) == 1:
                    logger.info(f"✓ Order confirmed in block {receipt['blockNumber']}")
                    return True
                logger.error(f"✗ Order transaction reverted with status={status}")
                return False

            case rofl_util:
                tx_params: TxParams = {
                    'from': '0x0000000000000000000000000000000000000000',  # ROFL will override
                    'gas': self.GAS_LIMIT,
                    'gasPrice': gas_price,
                    'value': Wei(0),
                }
                tx_data = await asyncio.to_thread(call.build_transaction, tx_params)
                if await rofl_util.submit_tx(tx_data):
                    logger.info("✓ Order submitted via ROFL")
                    return True
                logger.error("✗ ROFL rejected the order transaction")
                return False
