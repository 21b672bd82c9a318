import codecs
import json
import logging
from typing import Any

import cbor2
import httpx
from web3.types import TxParams

from ..errors import OrderFailed

logger = logging.getLogger(__name__)


class RoflUtility:
    """Client for the ROFL application daemon.

    Provides a managed signing key and signs/submits target-chain
    transactions on the relayer's behalf when running inside ROFL.
    """

    ROFL_SOCKET_PATH: str = "/run/rofl-appd.sock"
    KEY_PATH: str = "/rofl/v1/keys/generate"
    SIGN_SUBMIT_PATH: str = "/rofl/v1/tx/sign-submit"

    def __init__(self, url: str = '', timeout: float = 30.0) -> None:
        """Initialize the ROFL client.

        Args:
            url: ``http(s)://`` URL or socket path (defaults to the appd socket)
            timeout: Request timeout in seconds
        """
        self.url: str = url
        self.timeout = timeout

    def _transport(self) -> httpx.AsyncHTTPTransport | None:
        if self.url.startswith('http'):
            return None
        return httpx.AsyncHTTPTransport(uds=self.url or self.ROFL_SOCKET_PATH)

    async def _appd_post(self, path: str, payload: Any) -> Any:
        base_url = self.url if self.url.startswith('http') else "http://localhost"
        async with httpx.AsyncClient(transport=self._transport()) as client:
            logger.debug(f"Posting to {base_url + path}: {json.dumps(payload)}")
            response = await client.post(base_url + path, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

    async def fetch_key(self, key_id: str) -> str:
        """Fetch (or derive on first use) the secp256k1 key named ``key_id``."""
        response = await self._appd_post(self.KEY_PATH, {"key_id": key_id, "kind": "secp256k1"})
        return response["key"]

    @staticmethod
    def decode_call_result(response_hex: str) -> dict[str, Any]:
        """Decode the hex-encoded CBOR call result returned by sign-submit."""
        try:
            decoded = cbor2.loads(codecs.decode(response_hex, "hex"))
        except Exception as e:
            raise OrderFailed(f"Undecodable ROFL response {response_hex!r}: {e}") from e
        return decoded if isinstance(decoded, dict) else {"data": decoded}

    async def submit_tx(self, tx: TxParams) -> bool:
        """
        Sign and submit a transaction through ROFL.

        Returns:
            True when the call result reports success

        Raises:
            OrderFailed: If ROFL reports a failed call or an unknown result
        """
        payload = {
            "tx": {
                "kind": "eth",
                "data": {
                    "gas_limit": tx["gas"],
                    "to": str(tx["to"]).removeprefix("0x"),
                    "value": tx.get("value", 0),
                    "data": str(tx["data"]).removeprefix("0x"),
                },
            },
            "encrypt": False,
        }

        response = await self._appd_post(self.SIGN_SUBMIT_PATH, payload)

        match self.decode_call_result(response["data"]):
            case {"ok": _}:
                return True
            case {"fail": failure} | {"error": failure}:
                raise OrderFailed(f"ROFL transaction failed: {failure}")
            case unknown:
                raise OrderFailed(f"Unknown ROFL response format: {unknown}")
