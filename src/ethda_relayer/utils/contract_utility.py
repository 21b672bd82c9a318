from eth_account import Account
from eth_account.signers.local import LocalAccount
from sapphirepy import sapphire
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

NETWORKS: dict[str, str] = {
    "sapphire": "https://sapphire.oasis.io",
    "sapphire-mainnet": "https://sapphire.oasis.io",
    "sapphire-testnet": "https://testnet.sapphire.oasis.io",
    "sapphire-localnet": "http://localhost:8545",
}


class ContractUtility:
    """
    Web3 access to the target chain.

    Network names from ``NETWORKS`` resolve to their RPC URL; anything else is
    used as the RPC URL itself. Sapphire networks get the confidential
    transaction wrapper when a signing key is given.
    """

    def __init__(self, network: str, secret: str = "") -> None:
        """
        Initialize the ContractUtility.

        Args:
            network: Network name or RPC URL of the target chain
            secret: Private key for signing (omit for read-only / ROFL mode)
        """
        if not network:
            raise ValueError("Target network is required")

        self.network = network
        self.rpc_url = NETWORKS.get(network, network)
        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        self.account: LocalAccount | None = None

        if secret:
            self._add_signing_middleware(secret)

    @property
    def is_sapphire(self) -> bool:
        return self.network.startswith("sapphire") or "sapphire.oasis" in self.rpc_url

    def _add_signing_middleware(self, secret: str) -> None:
        account: LocalAccount = Account.from_key(secret)
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        if self.is_sapphire:
            self.w3 = sapphire.wrap(self.w3, account)
        self.w3.eth.default_account = account.address
        self.account = account
