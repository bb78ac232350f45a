"""Chain access - network table, RPC clients and ABI helpers."""

from raffle_indexer.chain.abi import (
    AbiDecodeError,
    DecodedEvent,
    EventSpec,
    LogDecodeError,
    ViewFunction,
)
from raffle_indexer.chain.blocks import fetch_blocks
from raffle_indexer.chain.client import ChainClient, ChainClientError, RPCError, read_views
from raffle_indexer.chain.networks import (
    SUPPORTED_NETWORKS,
    Network,
    UnsupportedChain,
    get_contract_address,
    get_network,
    is_supported_network,
)
from raffle_indexer.chain.registry import ProviderRegistry

__all__ = [
    "SUPPORTED_NETWORKS",
    "AbiDecodeError",
    "ChainClient",
    "ChainClientError",
    "DecodedEvent",
    "EventSpec",
    "LogDecodeError",
    "Network",
    "ProviderRegistry",
    "RPCError",
    "UnsupportedChain",
    "ViewFunction",
    "fetch_blocks",
    "get_contract_address",
    "get_network",
    "is_supported_network",
    "read_views",
]
