"""Supported network table.

Every chain the protocol is deployed to (or planned for) is listed here with
its public RPC endpoint, the environment variable that overrides it, and the
protocol contract addresses. Placeholder addresses mean "not deployed".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

PLACEHOLDER_ADDRESS = "0x..."

CONTRACT_KEYS = (
    "protocolManager",
    "poolDeployer",
    "revenueManager",
    "nftFactory",
    "rewardsFlywheel",
    "socialEngagementManager",
)


class UnsupportedChain(ValueError):
    """Raised when a chain id is not in the supported network table."""

    def __init__(self, chain_id: object) -> None:
        super().__init__(f"Chain ID {chain_id} is not supported")
        self.chain_id = chain_id


def _undeployed() -> dict[str, str]:
    return {key: PLACEHOLDER_ADDRESS for key in CONTRACT_KEYS}


@dataclass(frozen=True)
class Network:
    """A supported chain."""

    chain_id: int
    name: str
    rpc_url: str
    rpc_env_var: str
    native_symbol: str = "ETH"
    contracts: Mapping[str, str] = field(default_factory=_undeployed)

    @property
    def is_testnet(self) -> bool:
        lowered = self.name.lower()
        return any(word in lowered for word in ("testnet", "sepolia", "fuji", "saigon"))


SUPPORTED_NETWORKS: dict[int, Network] = {
    n.chain_id: n
    for n in (
        Network(1, "Ethereum Mainnet", "https://ethereum-rpc.publicnode.com", "ETHEREUM_RPC_URL"),
        Network(10, "OP Mainnet", "https://mainnet.optimism.io", "OPTIMISM_RPC_URL"),
        Network(56, "BNB Smart Chain", "https://bsc.blockrazor.xyz", "BSC_RPC_URL", "BNB"),
        Network(
            97,
            "BNB Smart Chain Testnet",
            "https://bsc-testnet-rpc.publicnode.com",
            "BSC_TESTNET_RPC_URL",
            "tBNB",
        ),
        Network(
            43113,
            "Avalanche Fuji Testnet",
            "https://avalanche-fuji.drpc.org",
            "AVALANCHE_FUJI_RPC_URL",
            "AVAX",
        ),
        Network(43114, "Avalanche C-Chain", "https://avalanche.drpc.org", "AVALANCHE_RPC_URL", "AVAX"),
        Network(8453, "Base Mainnet", "https://base.drpc.org", "BASE_RPC_URL"),
        Network(
            84532,
            "Base Sepolia",
            "https://base-sepolia-rpc.publicnode.com",
            "BASE_SEPOLIA_RPC_URL",
            contracts={
                "protocolManager": "0x166658dDc26223c35D3656Ed1FD649b785856bE0",
                "poolDeployer": "0x719bF1e882BE2Fd14785172f284a10A37a0C8fde",
                "revenueManager": "0xd322Cc00F8962560090A65a9cEAA1131fDe283A3",
                "nftFactory": "0x45D4f0dC925056e6203BFBf14E56762217e47cb4",
                "rewardsFlywheel": "0xEe9AEE229b531888b5a3E704eC86035962997811",
                "socialEngagementManager": "0x421212Ac86836C9F1420d9ab1d7804de2E869F3F",
            },
        ),
        Network(11155111, "Ethereum Sepolia", "https://sepolia.infura.io", "ETHEREUM_SEPOLIA_RPC_URL"),
        Network(11155420, "OP Sepolia Testnet", "https://sepolia.optimism.io", "OPTIMISM_SEPOLIA_RPC_URL"),
        Network(2020, "Ronin Mainnet", "https://ronin.drpc.org", "RONIN_RPC_URL", "RON"),
        Network(
            2021,
            "Ronin Saigon Testnet",
            "https://saigon-testnet.roninchain.com/rpc",
            "RONIN_SAIGON_RPC_URL",
            "RON",
        ),
        Network(42161, "Arbitrum One", "https://arbitrum.drpc.org", "ARBITRUM_RPC_URL"),
        Network(
            421614,
            "Arbitrum Sepolia",
            "https://endpoints.omniatech.io/v1/arbitrum/sepolia/public",
            "ARBITRUM_SEPOLIA_RPC_URL",
        ),
    )
}


def is_supported_network(chain_id: object) -> bool:
    return isinstance(chain_id, int) and not isinstance(chain_id, bool) and chain_id in SUPPORTED_NETWORKS


def get_network(chain_id: object) -> Network:
    """Look up a network, raising UnsupportedChain for unknown ids."""
    if not is_supported_network(chain_id):
        raise UnsupportedChain(chain_id)
    return SUPPORTED_NETWORKS[chain_id]  # type: ignore[index]


def get_contract_address(chain_id: int, key: str) -> str | None:
    """Return the lowercased protocol contract address, or None when undeployed."""
    address = get_network(chain_id).contracts.get(key)
    if not address or address == PLACEHOLDER_ADDRESS:
        return None
    return address.lower()
