"""Per-chain RPC client registry.

The registry is constructed explicitly and passed to whatever needs chain
access; it lazily creates one ``ChainClient`` per chain id and reuses it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from raffle_indexer.chain.client import ChainClient
from raffle_indexer.chain.networks import Network, UnsupportedChain, get_network
from raffle_indexer.config import ChainRpcOverrides, RpcSettings

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from raffle_indexer.config import Settings

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Network, str], ChainClient]

__all__ = ["ProviderRegistry", "UnsupportedChain"]


class ProviderRegistry:
    """Lazily-populated cache of chain clients keyed by chain id.

    Example:
        ```python
        registry = ProviderRegistry.from_settings(get_settings())
        client = registry.get_provider(84532)
        assert registry.get_provider(84532) is client
        await registry.aclose()
        ```
    """

    def __init__(
        self,
        *,
        rpc_settings: RpcSettings | None = None,
        overrides: ChainRpcOverrides | None = None,
        redis: Redis | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._rpc = rpc_settings or RpcSettings()
        self._overrides = overrides or ChainRpcOverrides()
        self._redis = redis
        self._client_factory = client_factory or self._default_factory
        self._clients: dict[int, ChainClient] = {}

    @classmethod
    def from_settings(cls, settings: Settings, *, redis: Redis | None = None) -> ProviderRegistry:
        return cls(
            rpc_settings=settings.rpc,
            overrides=settings.rpc_overrides,
            redis=redis,
        )

    def _default_factory(self, network: Network, rpc_url: str) -> ChainClient:
        return ChainClient(
            network.chain_id,
            rpc_url,
            # The public endpoint backs up an operator-supplied override.
            fallback_rpc_url=network.rpc_url if rpc_url != network.rpc_url else None,
            redis=self._redis,
            cache_ttl_seconds=self._rpc.cache_ttl_seconds,
            max_requests_per_second=self._rpc.max_requests_per_second,
            max_retries=self._rpc.max_retries,
            retry_delay_seconds=self._rpc.retry_delay_seconds,
            request_timeout=self._rpc.request_timeout_seconds,
        )

    def resolve_rpc_url(self, chain_id: int) -> str:
        """Return the override for ``chain_id`` if configured, else the network default.

        Raises:
            UnsupportedChain: If the chain id is not in the network table.
        """
        network = get_network(chain_id)
        return self._overrides.url_for_env_var(network.rpc_env_var) or network.rpc_url

    def get_provider(self, chain_id: int) -> ChainClient:
        """Get (or create) the client for a chain.

        Raises:
            UnsupportedChain: If the chain id is not in the network table.
        """
        network = get_network(chain_id)
        client = self._clients.get(chain_id)
        if client is None:
            rpc_url = self.resolve_rpc_url(chain_id)
            client = self._client_factory(network, rpc_url)
            self._clients[chain_id] = client
            logger.info("Created RPC client for %s (chain %d)", network.name, chain_id)
        return client

    def has_provider(self, chain_id: int) -> bool:
        return chain_id in self._clients

    @property
    def size(self) -> int:
        return len(self._clients)

    async def clear_provider(self, chain_id: int) -> None:
        """Close and evict the client for one chain (no-op if absent)."""
        client = self._clients.pop(chain_id, None)
        if client is not None:
            await client.aclose()

    async def clear_all(self) -> None:
        """Close and evict every cached client."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()

    async def aclose(self) -> None:
        await self.clear_all()
