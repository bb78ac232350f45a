"""Generic scan-range / dispatch / project / advance-cursor driver.

Each contract type subclasses ``ContractIndexer`` and supplies a handler
table: one ``HandlerEntry`` per event signature it cares about. The driver
resolves the block range from the sync cursor, queries every signature in
parallel, fetches the referenced blocks once, and applies events in
(block, log index) order, each inside its own database transaction.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import cached_property
from typing import TYPE_CHECKING, Any, ClassVar

from web3 import AsyncWeb3

from raffle_indexer.chain.abi import DecodedEvent, EventSpec
from raffle_indexer.chain.blocks import fetch_blocks
from raffle_indexer.chain.client import ChainClientError
from raffle_indexer.chain.networks import get_contract_address
from raffle_indexer.storage.database import SessionFactory, transaction
from raffle_indexer.storage.repos import (
    ActivityRepository,
    BlockchainEventRepository,
    CollectionRepository,
    ParticipantRepository,
    PoolRepository,
    RewardsRepository,
    SyncStateRepository,
    UserActivityDTO,
    WinnerRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from raffle_indexer.chain.client import ChainClient
    from raffle_indexer.chain.registry import ProviderRegistry

logger = logging.getLogger(__name__)

DEFAULT_LOGS_CHUNK_SIZE = 10_000


class InvalidRequest(ValueError):
    """Raised when a request is missing a required field or carries an invalid one."""


class IndexingFailed(RuntimeError):
    """Raised when a run cannot complete; the sync cursor was not advanced."""

    def __init__(self, chain_id: int, contract_type: str, contract_address: str, cause: Exception) -> None:
        self.chain_id = chain_id
        self.contract_type = contract_type
        self.contract_address = contract_address
        self.cause = cause
        super().__init__(f"{contract_type} {contract_address} on chain {chain_id}: {cause}")


def block_time(block: dict[str, Any] | None) -> datetime | None:
    if not block or block.get("timestamp") is None:
        return None
    return datetime.fromtimestamp(int(block["timestamp"]), tz=UTC)


@dataclass
class RunContext:
    """Per-run state shared by every event handler and the finalize hook."""

    chain_id: int
    contract_address: str
    client: ChainClient
    from_block: int
    to_block: int
    session_factory: SessionFactory
    flags: set[str] = field(default_factory=set)
    cache: dict[str, Any] = field(default_factory=dict)
    # Extra counters reported in the run summary.
    stats: Counter[str] = field(default_factory=Counter)


@dataclass
class EventContext:
    """Everything a handler needs to project one event."""

    run: RunContext
    event: DecodedEvent
    block: dict[str, Any] | None
    session: AsyncSession
    # Result of the entry's prepare step (chain reads done outside the transaction).
    prepared: Any = None

    @property
    def chain_id(self) -> int:
        return self.run.chain_id

    @property
    def client(self) -> ChainClient:
        return self.run.client

    @property
    def args(self) -> dict[str, Any]:
        return self.event.args

    @property
    def timestamp(self) -> datetime | None:
        return block_time(self.block)

    @cached_property
    def pools(self) -> PoolRepository:
        return PoolRepository(self.session)

    @cached_property
    def participants(self) -> ParticipantRepository:
        return ParticipantRepository(self.session)

    @cached_property
    def winners(self) -> WinnerRepository:
        return WinnerRepository(self.session)

    @cached_property
    def collections(self) -> CollectionRepository:
        return CollectionRepository(self.session)

    @cached_property
    def rewards(self) -> RewardsRepository:
        return RewardsRepository(self.session)

    async def record_activity(self, user_address: str, activity_type: str, **values: Any) -> bool:
        return await ActivityRepository(self.session).record(
            UserActivityDTO(
                user_address=user_address,
                chain_id=self.chain_id,
                activity_type=activity_type,
                block_number=self.event.block_number,
                transaction_hash=self.event.transaction_hash,
                timestamp=self.timestamp,
                **values,
            )
        )

    async def archive(self, event_data: dict[str, Any]) -> bool:
        return await BlockchainEventRepository(self.session).archive(
            self.chain_id,
            contract_address=self.event.address or self.run.contract_address,
            event_name=self.event.name,
            block_number=self.event.block_number,
            transaction_hash=self.event.transaction_hash,
            log_index=self.event.log_index,
            event_data=event_data,
            block_timestamp=self.timestamp,
        )


Handler = Callable[[EventContext], Awaitable[None]]
Prepare = Callable[[RunContext, DecodedEvent], Awaitable[Any]]


@dataclass(frozen=True)
class HandlerEntry:
    """One row of a handler table.

    ``source`` names a network contract key whose address emits the event;
    ``None`` means the indexed contract itself. Optional sources that are
    not deployed, or whose log query fails, are skipped with a warning.
    ``prepare`` runs before the event's transaction opens.
    """

    event: EventSpec
    handle: Handler
    prepare: Prepare | None = None
    source: str | None = None
    optional: bool = False


@dataclass
class IndexResult:
    """Summary of one indexer run."""

    chain_id: int
    contract_type: str
    contract_address: str
    from_block: int
    to_block: int
    events_found: dict[str, int] = field(default_factory=dict)
    success: int = 0
    errors: int = 0
    message: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def blocks_total(self) -> int:
        return max(0, self.to_block - self.from_block + 1)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": True,
            "chainId": self.chain_id,
            "contractType": self.contract_type,
            "contractAddress": self.contract_address,
            "blocksScanned": {"from": self.from_block, "to": self.to_block, "total": self.blocks_total},
            "eventsFound": dict(self.events_found),
            "recordsProcessed": {"success": self.success, "errors": self.errors},
        }
        payload.update(self.extra)
        if self.message:
            payload["message"] = self.message
        return payload


class ContractIndexer:
    """Base class for per-contract-type indexers."""

    contract_type: ClassVar[str]
    default_lookback_blocks: ClassVar[int] = 10_000
    # Network contract key used when the caller supplies no address.
    contract_key: ClassVar[str | None] = None

    def __init__(
        self,
        registry: ProviderRegistry,
        session_factory: SessionFactory,
        *,
        logs_chunk_size: int = DEFAULT_LOGS_CHUNK_SIZE,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.logs_chunk_size = logs_chunk_size

    def handlers(self) -> Sequence[HandlerEntry]:
        raise NotImplementedError

    async def finalize(self, run: RunContext) -> None:
        """Hook run after all events, before the cursor advances."""

    def resolve_address(self, chain_id: int, contract_address: str | None) -> str:
        if contract_address:
            return contract_address.lower()
        if self.contract_key is None:
            raise InvalidRequest("contractAddress is required")
        address = get_contract_address(chain_id, self.contract_key)
        if address is None:
            raise InvalidRequest(f"{self.contract_key} is not deployed on chain {chain_id}")
        return address

    async def default_from_block(self, chain_id: int, contract_address: str, to_block: int) -> int:
        return max(0, to_block - self.default_lookback_blocks)

    async def _resolve_from_block(self, chain_id: int, contract_address: str, to_block: int) -> int:
        async with transaction(self.session_factory) as session:
            cursor = await SyncStateRepository(session).get(chain_id, self.contract_type, contract_address)
        if cursor is not None and cursor.last_indexed_block is not None:
            return cursor.last_indexed_block + 1
        return await self.default_from_block(chain_id, contract_address, to_block)

    async def index(
        self,
        chain_id: int,
        contract_address: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
    ) -> IndexResult:
        """Index one contract over a block range.

        Raises:
            UnsupportedChain: If the chain id is not supported.
            InvalidRequest: If no contract address can be resolved.
            IndexingFailed: If an RPC call fails outside per-event processing.
        """
        client = self.registry.get_provider(chain_id)
        address = self.resolve_address(chain_id, contract_address)

        try:
            if to_block is None:
                to_block = await client.get_block_number()
            if from_block is None:
                from_block = await self._resolve_from_block(chain_id, address, to_block)

            result = IndexResult(
                chain_id=chain_id,
                contract_type=self.contract_type,
                contract_address=address,
                from_block=from_block,
                to_block=to_block,
            )
            if from_block > to_block:
                result.message = "No new blocks to index"
                return result

            logger.info(
                "[chain %d] %s %s: scanning blocks %d-%d",
                chain_id,
                self.contract_type,
                address,
                from_block,
                to_block,
            )
            run = RunContext(
                chain_id=chain_id,
                contract_address=address,
                client=client,
                from_block=from_block,
                to_block=to_block,
                session_factory=self.session_factory,
            )
            await self._process_range(run, result)
            await self.finalize(run)
            result.extra.update(run.stats)

            blocks = await fetch_blocks(client, [to_block])
            block_hash = (blocks.get(to_block) or {}).get("hash")
        except ChainClientError as e:
            logger.error("[chain %d] %s %s run failed: %s", chain_id, self.contract_type, address, e)
            async with transaction(self.session_factory) as session:
                await SyncStateRepository(session).mark_unhealthy(chain_id, self.contract_type, address, str(e))
            raise IndexingFailed(chain_id, self.contract_type, address, e) from e

        async with transaction(self.session_factory) as session:
            await SyncStateRepository(session).advance(
                chain_id, self.contract_type, address, block_number=to_block, block_hash=block_hash
            )

        logger.info(
            "[chain %d] %s %s: %d events, %d ok, %d errors",
            chain_id,
            self.contract_type,
            address,
            sum(result.events_found.values()),
            result.success,
            result.errors,
        )
        return result

    async def _process_range(self, run: RunContext, result: IndexResult) -> None:
        entries = list(self.handlers())
        batches = await asyncio.gather(*(self._query_entry(run, entry) for entry in entries))

        pending: list[tuple[HandlerEntry, dict[str, Any]]] = []
        counts: Counter[str] = Counter()
        for entry, logs in zip(entries, batches, strict=True):
            counts[entry.event.name] += len(logs)
            pending.extend((entry, log) for log in logs)
        result.events_found = {entry.event.name: counts[entry.event.name] for entry in entries}

        pending.sort(key=lambda item: (int(item[1]["blockNumber"]), int(item[1].get("logIndex") or 0)))
        blocks = await fetch_blocks(run.client, (int(log["blockNumber"]) for _, log in pending))

        for entry, log in pending:
            if await self._apply(run, entry, log, blocks):
                result.success += 1
            else:
                result.errors += 1

    async def _apply(
        self,
        run: RunContext,
        entry: HandlerEntry,
        log: dict[str, Any],
        blocks: dict[int, dict[str, Any]],
    ) -> bool:
        try:
            event = entry.event.decode_log(log)
            prepared = await entry.prepare(run, event) if entry.prepare else None
            async with transaction(self.session_factory) as session:
                ctx = EventContext(
                    run=run,
                    event=event,
                    block=blocks.get(event.block_number),
                    session=session,
                    prepared=prepared,
                )
                await entry.handle(ctx)
            return True
        except Exception as e:
            logger.error(
                "[chain %d] %s failed (tx=%s log=%s): %s",
                run.chain_id,
                entry.event.name,
                log.get("transactionHash"),
                log.get("logIndex"),
                e,
            )
            return False

    def _source_address(self, run: RunContext, entry: HandlerEntry) -> str | None:
        if entry.source is None:
            return run.contract_address
        return get_contract_address(run.chain_id, entry.source)

    async def _query_entry(self, run: RunContext, entry: HandlerEntry) -> list[dict[str, Any]]:
        address = self._source_address(run, entry)
        if address is None:
            logger.debug("[chain %d] No %s deployed; skipping %s", run.chain_id, entry.source, entry.event.name)
            return []
        try:
            return await self._get_logs(run, address, entry.event.topic)
        except ChainClientError as e:
            if not entry.optional:
                raise
            logger.warning("[chain %d] Failed to query %s events: %s", run.chain_id, entry.event.name, e)
            return []

    async def _get_logs(self, run: RunContext, address: str, topic: str) -> list[dict[str, Any]]:
        logs: list[dict[str, Any]] = []
        checksum = AsyncWeb3.to_checksum_address(address)
        for start in range(run.from_block, run.to_block + 1, self.logs_chunk_size):
            end = min(run.to_block, start + self.logs_chunk_size - 1)
            logs.extend(
                await run.client.get_logs(
                    {"address": checksum, "topics": [topic], "fromBlock": start, "toBlock": end}
                )
            )
        return logs
