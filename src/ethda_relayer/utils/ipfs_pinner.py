import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..errors import PinFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PinResult:
    """Content identifier and pinned size returned by the gateway."""
    cid: str
    size: int


def canonical_cid(raw: str) -> str:
    """
    Normalize a content identifier to its canonical string form.

    CIDv0 (``Qm...``, 46 chars) is returned unchanged; CIDv1 in base32
    (``b...``, 59 chars) is lowercased. Anything else is rejected.

    Raises:
        PinFailed: If ``raw`` is not a recognizable CID
    """
    cid = (raw or "").strip()
    if len(cid) == 46 and cid.startswith("Qm"):
        return cid
    if len(cid) == 59 and cid[:2].lower() == "ba":
        return cid.lower()
    raise PinFailed(f"Gateway returned unrecognized content identifier: {raw!r}")


class IpfsPinner:
    """
    Client for an IPFS-compatible pinning gateway using W3Auth.

    The gateway authenticates requests by a signature over the signer's own
    address: ``Basic base64("eth-<address>:<signature>")``.
    """

    ADD_PATH = "/api/v0/add"

    def __init__(self, gateway_url: str, private_key: str, timeout: float = 30.0) -> None:
        """
        Initialize the pinner.

        Args:
            gateway_url: Base URL of the gateway (without ``/api/v0``)
            private_key: Key used to sign the W3Auth header
            timeout: HTTP timeout in seconds
        """
        if not gateway_url:
            raise ValueError("Gateway URL is required")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self.account: LocalAccount = Account.from_key(private_key)
        self._auth_header = self._build_auth_header()

    def _build_auth_header(self) -> str:
        signed = self.account.sign_message(encode_defunct(text=self.account.address))
        signature = Web3.to_hex(signed.signature)
        token = base64.b64encode(f"eth-{self.account.address}:{signature}".encode()).decode()
        return f"Basic {token}"

    @staticmethod
    def _parse_add_response(body: str) -> dict[str, Any]:
        # The add endpoint streams one JSON object per line; the last one describes the root
        lines = [line for line in body.splitlines() if line.strip()]
        if not lines:
            raise PinFailed("Gateway returned an empty add response")
        try:
            return json.loads(lines[-1])
        except json.JSONDecodeError as e:
            raise PinFailed(f"Gateway returned malformed add response: {e}") from e

    async def pin(self, data: bytes) -> PinResult:
        """
        Add and pin ``data`` on the gateway.

        Returns:
            PinResult with the canonical CID and the reported size

        Raises:
            PinFailed: On transport errors, HTTP errors or unusable responses
        """
        url = self.gateway_url + self.ADD_PATH
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    params={"cid-version": "0", "pin": "true"},
                    files={"file": ("payload", data)},
                    headers={"Authorization": self._auth_header},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise PinFailed(f"IPFS add failed: {e}") from e

        match self._parse_add_response(response.text):
            case {"Hash": str(raw_cid), "Size": size}:
                try:
                    result = PinResult(cid=canonical_cid(raw_cid), size=int(size))
                except (TypeError, ValueError) as e:
                    raise PinFailed(f"Gateway returned invalid size {size!r}") from e
            case other:
                raise PinFailed(f"Gateway add response missing Hash/Size: {other}")

        logger.debug(f"Pinned {len(data)} bytes as {result.cid} (size {result.size})")
        return result
