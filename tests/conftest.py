"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from raffle_indexer.chain.abi import EventSpec, ViewFunction
from raffle_indexer.chain.client import RPCError
from raffle_indexer.chain.registry import ProviderRegistry
from raffle_indexer.storage.database import SessionFactory, transaction
from raffle_indexer.storage.models import Base
from raffle_indexer.storage.repos import PoolRepository

BASE_SEPOLIA = 84532
GENESIS_TIMESTAMP = 1_700_000_000


class FakeChain:
    """In-memory stand-in for ``ChainClient``.

    Logs are stored raw (as ``eth_getLogs`` would return them) and filtered
    by address, topic0 and block range. View results are keyed by
    (address, function signature); a value may be a constant, an exception
    to raise, or a callable receiving the call arguments.
    """

    def __init__(self, head: int = 200) -> None:
        self.head = head
        self.logs: list[dict[str, Any]] = []
        self.views: dict[tuple[str, str], Any] = {}
        self.get_block_number = AsyncMock(side_effect=self._get_block_number)
        self.get_block = AsyncMock(side_effect=self._get_block)
        self.get_logs = AsyncMock(side_effect=self._get_logs)
        self.call_function = AsyncMock(side_effect=self._call_function)
        self.aclose = AsyncMock()

    def add_log(
        self,
        event: EventSpec,
        address: str,
        block_number: int,
        *,
        log_index: int = 0,
        transaction_hash: str | None = None,
        **args: Any,
    ) -> dict[str, Any]:
        log = event.encode_log(
            address=address,
            block_number=block_number,
            transaction_hash=transaction_hash or f"0x{block_number:060x}{log_index:04x}",
            log_index=log_index,
            **args,
        )
        self.logs.append(log)
        return log

    def set_view(self, address: str, function: ViewFunction, value: Any) -> None:
        self.views[(address.lower(), function.signature)] = value

    async def _get_block_number(self) -> int:
        return self.head

    async def _get_block(self, block_number: int) -> dict[str, Any]:
        return {
            "number": block_number,
            "hash": f"0x{block_number:064x}",
            "parentHash": f"0x{max(block_number - 1, 0):064x}",
            "timestamp": GENESIS_TIMESTAMP + block_number,
        }

    async def _get_logs(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        address = params["address"].lower()
        topic = params["topics"][0]
        return [
            dict(log)
            for log in self.logs
            if log["address"].lower() == address
            and log["topics"][0] == topic
            and params["fromBlock"] <= log["blockNumber"] <= params["toBlock"]
        ]

    async def _call_function(self, address: str, function: ViewFunction, *args: Any, **kwargs: Any) -> Any:
        key = (address.lower(), function.signature)
        if key not in self.views:
            raise RPCError(f"execution reverted: {function.name}")
        value = self.views[key]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(*args)
        return value


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> SessionFactory:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def registry(chain: FakeChain) -> ProviderRegistry:
    """Registry whose every chain is served by the fake client."""
    return ProviderRegistry(client_factory=lambda network, rpc_url: chain)  # type: ignore[arg-type,return-value]


@pytest.fixture
def seed_pool(session_factory: SessionFactory) -> Callable[..., Awaitable[None]]:
    """Insert a pool row directly (bypassing discovery)."""

    async def _seed(address: str, *, chain_id: int = BASE_SEPOLIA, **values: Any) -> None:
        row = {
            "creator": "0x" + "c" * 40,
            "name": "Test Pool",
            "state": 1,
            "slot_fee": 10,
            "slot_limit": 100,
            "winners_count": 1,
            "created_at_block": 1,
            **values,
        }
        async with transaction(session_factory) as session:
            await PoolRepository(session).upsert(chain_id, address, row)

    return _seed
