"""Tests for the network table and the provider registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from raffle_indexer.chain.client import ChainClient
from raffle_indexer.chain.networks import (
    SUPPORTED_NETWORKS,
    UnsupportedChain,
    get_contract_address,
    get_network,
    is_supported_network,
)
from raffle_indexer.chain.registry import ProviderRegistry
from raffle_indexer.config import ChainRpcOverrides, RpcSettings


class TestNetworks:
    def test_base_sepolia_is_deployed(self) -> None:
        assert get_contract_address(84532, "poolDeployer") == "0x719bf1e882be2fd14785172f284a10a37a0c8fde"
        assert get_contract_address(84532, "nftFactory") == "0x45d4f0dc925056e6203bfbf14e56762217e47cb4"

    def test_placeholder_address_means_not_deployed(self) -> None:
        assert get_contract_address(1, "poolDeployer") is None

    def test_every_network_has_an_rpc_url(self) -> None:
        for network in SUPPORTED_NETWORKS.values():
            assert network.rpc_url.startswith("https://")
            assert network.rpc_env_var.endswith("_RPC_URL")

    @pytest.mark.parametrize("chain_id", [84532, 1, 42161])
    def test_supported(self, chain_id: int) -> None:
        assert is_supported_network(chain_id)

    @pytest.mark.parametrize("chain_id", [999, "84532", True, None])
    def test_unsupported(self, chain_id: object) -> None:
        assert not is_supported_network(chain_id)

    def test_get_network_raises_for_unknown_chain(self) -> None:
        with pytest.raises(UnsupportedChain, match="Chain ID 999 is not supported"):
            get_network(999)

    def test_testnet_detection(self) -> None:
        assert get_network(84532).is_testnet
        assert not get_network(8453).is_testnet


class TestProviderRegistry:
    def test_creates_one_client_per_chain(self) -> None:
        created: list[tuple[int, str]] = []

        def factory(network, rpc_url):
            created.append((network.chain_id, rpc_url))
            return MagicMock(spec=ChainClient)

        registry = ProviderRegistry(client_factory=factory)

        first = registry.get_provider(84532)
        second = registry.get_provider(84532)

        assert first is second
        assert registry.has_provider(84532)
        assert registry.size == 1
        assert created == [(84532, get_network(84532).rpc_url)]

    def test_unsupported_chain_raises(self) -> None:
        registry = ProviderRegistry(client_factory=lambda network, url: MagicMock())

        with pytest.raises(UnsupportedChain):
            registry.get_provider(12345)
        assert registry.size == 0

    def test_override_url_is_used(self) -> None:
        overrides = ChainRpcOverrides(BASE_SEPOLIA_RPC_URL="https://rpc.example.org/base-sepolia")
        registry = ProviderRegistry(overrides=overrides, client_factory=lambda network, url: MagicMock())

        assert registry.resolve_rpc_url(84532) == "https://rpc.example.org/base-sepolia"

    def test_default_factory_builds_chain_client(self) -> None:
        registry = ProviderRegistry(rpc_settings=RpcSettings(), overrides=ChainRpcOverrides())

        client = registry.get_provider(84532)

        assert isinstance(client, ChainClient)
        assert client.chain_id == 84532

    @pytest.mark.asyncio
    async def test_aclose_closes_every_client(self) -> None:
        clients: dict[int, MagicMock] = {}

        def factory(network, rpc_url):
            client = MagicMock()
            client.aclose = AsyncMock()
            clients[network.chain_id] = client
            return client

        registry = ProviderRegistry(client_factory=factory)
        registry.get_provider(84532)
        registry.get_provider(8453)

        await registry.aclose()

        assert registry.size == 0
        for client in clients.values():
            client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_clear_provider(self) -> None:
        client = MagicMock()
        client.aclose = AsyncMock()
        registry = ProviderRegistry(client_factory=lambda network, url: client)
        registry.get_provider(84532)

        await registry.clear_provider(84532)
        await registry.clear_provider(84532)

        assert not registry.has_provider(84532)
        client.aclose.assert_awaited_once()
