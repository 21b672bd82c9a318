"""
Delivery of decoded events to storage and the target chain.

For each event the payload is pinned to the storage gateway and an order
request carrying the resulting CID is submitted to the target chain. Both steps
are retried together under one bounded budget; a pin is never reused across
attempts. ``deliver`` never raises.
"""

import logging
from typing import Protocol

from .errors import OrderFailed, PinFailed
from .models import DomainEvent, Failed, Ok, OrderRequest, Result
from .utils.ipfs_pinner import PinResult, canonical_cid
from .utils.retry import RetryState, run_with_retry

logger = logging.getLogger(__name__)


class Pinner(Protocol):
    async def pin(self, data: bytes) -> PinResult: ...


class OrderClient(Protocol):
    async def submit_order(self, request: OrderRequest) -> bool: ...


class DeliveryPipeline:
    """Pins event payloads and places storage orders with bounded retry."""

    def __init__(
        self,
        pinner: Pinner,
        order_client: OrderClient,
        origin_label: str,
        max_attempts: int = 5,
        backoff: float = 3.0,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            pinner: Storage gateway client
            order_client: Target-chain order client
            origin_label: Label naming the source chain, sent with every order
            max_attempts: Attempts per event (pin + submit each time)
            backoff: Seconds to wait between attempts
        """
        self.pinner = pinner
        self.order_client = order_client
        self.origin_label = origin_label
        self.max_attempts = max_attempts
        self.backoff = backoff

    async def _attempt(self, event: DomainEvent) -> Result[OrderRequest]:
        try:
            pinned = await self.pinner.pin(event.message.encode("utf-8"))
            cid = canonical_cid(pinned.cid)
        except PinFailed as e:
            return Failed(e)
        except Exception as e:
            return Failed(PinFailed(f"Pin failed: {e}"))

        request = OrderRequest(
            cid=cid,
            size=pinned.size,
            source_tx_hash=event.transaction_hash,
            origin_label=self.origin_label,
            is_private=False,
        )

        try:
            accepted = await self.order_client.submit_order(request)
        except Exception as e:
            return Failed(e)

        if not accepted:
            return Failed(OrderFailed(f"Target chain rejected order for cid {cid}"))
        return Ok(request)

    async def deliver(self, event: DomainEvent) -> Result[OrderRequest]:
        """
        Deliver one event.

        Returns:
            Ok with the placed order, or Failed once the retry budget is spent
        """
        state = RetryState(self.max_attempts)
        outcome = await run_with_retry(
            lambda _: self._attempt(event),
            state,
            self.backoff,
            f"Delivery of tx {event.transaction_hash}",
        )

        match outcome:
            case Ok(value=request):
                logger.info(
                    f"Place order with cid:'{request.cid}', size:{request.size}, "
                    f"txHash:'{event.transaction_hash}' successfully "
                    f"(attempt {state.attempts_made + 1}/{self.max_attempts})"
                )
            case Failed(error=error, attempts=attempts):
                logger.error(
                    f"Giving up on tx {event.transaction_hash} (block {event.block_number}) "
                    f"after {attempts} attempts, last error: {error}"
                )
        return outcome
