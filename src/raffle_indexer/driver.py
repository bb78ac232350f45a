"""Orchestration of a full indexing pass and the tick loop that drives it.

The orchestrator fans out every indexer for one chain under a lease so
overlapping triggers never run two passes at once; the ticker invokes the
orchestrator a fixed number of times per external trigger.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from raffle_indexer.indexer.base import ContractIndexer
from raffle_indexer.indexer.external import ExternalCollectionRefresher
from raffle_indexer.reconciler import StateReconciler
from raffle_indexer.storage.database import SessionFactory, transaction
from raffle_indexer.storage.repos import CollectionRepository, LeaseRepository, PoolRepository

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TTL = timedelta(seconds=90)
DEFAULT_POOL_CONCURRENCY = 5
DEFAULT_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_RECONCILE_BATCH_SIZE = 50

Invoke = Callable[[], Awaitable[tuple[int, dict[str, Any]]]]


def _default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class LeaseLock:
    """Advisory lock backed by the ``indexer_leases`` table.

    A lease left behind by a crashed holder expires after ``ttl`` and can then
    be taken over; a live holder keeps it by calling ``renew`` more often than
    that.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        name: str,
        *,
        ttl: timedelta = DEFAULT_LEASE_TTL,
        holder: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.name = name
        self.ttl = ttl
        self.holder = holder or _default_holder()

    async def acquire(self) -> bool:
        async with transaction(self.session_factory) as session:
            acquired = await LeaseRepository(session).try_acquire(self.name, self.holder, ttl=self.ttl)
        if acquired:
            logger.debug("Lease %s acquired by %s", self.name, self.holder)
        return acquired

    async def renew(self) -> bool:
        async with transaction(self.session_factory) as session:
            renewed = await LeaseRepository(session).renew(self.name, self.holder, ttl=self.ttl)
        if not renewed:
            logger.error("Lease %s lost by %s", self.name, self.holder)
        return renewed

    async def release(self) -> bool:
        async with transaction(self.session_factory) as session:
            released = await LeaseRepository(session).release(self.name, self.holder)
        if not released:
            logger.warning("Lease %s was no longer held by %s at release", self.name, self.holder)
        return released

    async def held_for(self) -> timedelta | None:
        """Age of the current lease, whoever holds it."""
        async with transaction(self.session_factory) as session:
            lease = await LeaseRepository(session).get(self.name)
        if lease is None:
            return None
        return datetime.now(UTC) - lease.acquired_at


class Orchestrator:
    """Runs one complete indexing pass for a chain.

    Discovery (pool deployer, NFT factory, rewards), state reconciliation and
    the stale external-collection refresh run concurrently; pool-event and
    collection indexers follow for every stored pool and collection, at most
    ``pool_concurrency`` at a time. Each call is time-bounded and its failure
    is recorded, never raised.

    Example:
        ```python
        orchestrator = Orchestrator(session_factory, indexers=..., reconciler=..., refresher=...)
        summary = await orchestrator.run(84532)
        ```
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        indexers: Mapping[str, ContractIndexer],
        reconciler: StateReconciler,
        refresher: ExternalCollectionRefresher,
        pool_concurrency: int = DEFAULT_POOL_CONCURRENCY,
        call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        lease_ttl: timedelta = DEFAULT_LEASE_TTL,
        reconcile_batch_size: int = DEFAULT_RECONCILE_BATCH_SIZE,
    ) -> None:
        self.session_factory = session_factory
        self.indexers = indexers
        self.reconciler = reconciler
        self.refresher = refresher
        self.pool_concurrency = pool_concurrency
        self.call_timeout_seconds = call_timeout_seconds
        self.lease_ttl = lease_ttl
        self.reconcile_batch_size = reconcile_batch_size

    def lease(self, chain_id: int) -> LeaseLock:
        return LeaseLock(self.session_factory, f"orchestrator:{chain_id}", ttl=self.lease_ttl)

    async def _call(self, name: str, operation: Callable[[], Awaitable[Any]]) -> dict[str, Any]:
        try:
            result = await asyncio.wait_for(operation(), timeout=self.call_timeout_seconds)
        except TimeoutError:
            logger.error("[orchestrator] %s timed out after %.0fs", name, self.call_timeout_seconds)
            return {"name": name, "error": f"Timed out after {self.call_timeout_seconds:g}s"}
        except Exception as e:
            logger.error("[orchestrator] %s failed: %s", name, e)
            return {"name": name, "error": str(e) or type(e).__name__}
        return {"name": name, "result": result.to_dict() if hasattr(result, "to_dict") else result}

    async def _fan_out(
        self,
        kind: str,
        chain_id: int,
        addresses: Sequence[str],
        lease: LeaseLock,
    ) -> tuple[list[dict[str, Any]], bool]:
        """Index ``addresses`` batch by batch, renewing the lease before each batch.

        Returns the per-call results and whether the lease was still held.
        """
        indexer = self.indexers[kind]
        results: list[dict[str, Any]] = []
        for i in range(0, len(addresses), self.pool_concurrency):
            if not await lease.renew():
                logger.error(
                    "[orchestrator] chain %d: lease lost, %d %s calls not run", chain_id, len(addresses) - i, kind
                )
                return results, False
            batch = addresses[i : i + self.pool_concurrency]
            results.extend(
                await asyncio.gather(
                    *(
                        self._call(
                            f"{kind}:{address}",
                            lambda address=address: indexer.index(chain_id, address),
                        )
                        for address in batch
                    )
                )
            )
        return results, True

    async def _stored_addresses(self, chain_id: int) -> tuple[list[str], list[str]]:
        async with transaction(self.session_factory) as session:
            pools = await PoolRepository(session).list_addresses(chain_id)
            collections = await CollectionRepository(session).list_addresses(chain_id)
        return pools, collections

    async def run(
        self,
        chain_id: int,
        from_block: int | None = None,
        to_block: int | None = None,
    ) -> dict[str, Any]:
        lease = self.lease(chain_id)
        if not await lease.acquire():
            held_for = await lease.held_for()
            logger.info("[orchestrator] chain %d: previous run still active, skipping", chain_id)
            return {
                "skipped": True,
                "reason": "Previous run still active",
                "chainId": chain_id,
                "elapsedMs": int(held_for.total_seconds() * 1000) if held_for else None,
            }

        try:
            return await self._run_locked(chain_id, from_block, to_block, lease)
        finally:
            await lease.release()

    async def _run_locked(
        self,
        chain_id: int,
        from_block: int | None,
        to_block: int | None,
        lease: LeaseLock,
    ) -> dict[str, Any]:
        started = time.monotonic()

        def discover(kind: str) -> Callable[[], Awaitable[Any]]:
            return lambda: self.indexers[kind].index(chain_id, None, from_block, to_block)

        deployer, factory, rewards, state_sync, external = await asyncio.gather(
            self._call("pool-deployer", discover("pool-deployer")),
            self._call("nft-factory", discover("nft-factory")),
            self._call("rewards", discover("rewards")),
            self._call(
                "reconcile",
                lambda: self.reconciler.reconcile(chain_id, batch_size=self.reconcile_batch_size),
            ),
            self._call("external-collections", lambda: self.refresher.refresh(chain_id, refresh_stale=True)),
        )

        pool_addresses, collection_addresses = await self._stored_addresses(chain_id)
        pools, lease_held = await self._fan_out("pool", chain_id, pool_addresses, lease)
        collections: list[dict[str, Any]] = []
        if lease_held:
            collections, lease_held = await self._fan_out("collection", chain_id, collection_addresses, lease)

        discovery = {
            "poolDeployer": deployer,
            "nftFactory": factory,
            "rewards": rewards,
            "stateSync": state_sync,
            "externalCollections": external,
        }
        failed = sum(1 for r in [*discovery.values(), *pools, *collections] if "error" in r)
        logger.info(
            "[orchestrator] chain %d: %d pools, %d collections, %d failed calls in %dms",
            chain_id,
            len(pools),
            len(collections),
            failed,
            _elapsed_ms(started),
        )
        return {
            "success": True,
            "chainId": chain_id,
            "discovery": discovery,
            "pools": pools,
            "collections": collections,
            "summary": {
                "totalCalls": len(discovery) + len(pools) + len(collections),
                "failed": failed,
                "poolsIndexed": len(pools),
                "collectionsIndexed": len(collections),
                "durationMs": _elapsed_ms(started),
                "leaseLost": not lease_held,
            },
        }


class Ticker:
    """Invokes an entry point ``ticks_per_run`` times with a sleep in between.

    Each invocation is bounded by ``call_timeout_seconds``; a failure or
    timeout is recorded for that tick and the loop carries on.
    """

    def __init__(
        self,
        invoke: Invoke,
        *,
        ticks_per_run: int = 4,
        tick_interval_seconds: float = 10.0,
        call_timeout_seconds: float = 55.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.invoke = invoke
        self.ticks_per_run = ticks_per_run
        self.tick_interval_seconds = tick_interval_seconds
        self.call_timeout_seconds = call_timeout_seconds
        self._sleep = sleep

    async def _tick(self) -> tuple[int, Any]:
        try:
            return await asyncio.wait_for(self.invoke(), timeout=self.call_timeout_seconds)
        except TimeoutError:
            message = f"Timed out after {self.call_timeout_seconds:g}s"
        except Exception as e:
            message = str(e) or type(e).__name__
        logger.error("[ticker] orchestrator call failed: %s", message)
        return 0, {"error": message}

    async def run(self) -> dict[str, Any]:
        started = time.monotonic()
        results: list[dict[str, Any]] = []
        for i in range(self.ticks_per_run):
            if i > 0:
                await self._sleep(self.tick_interval_seconds)

            tick_started = time.monotonic()
            logger.info("[ticker] tick %d/%d", i + 1, self.ticks_per_run)
            status, body = await self._tick()
            duration_ms = _elapsed_ms(tick_started)
            results.append({"tick": i + 1, "status": status, "body": body, "durationMs": duration_ms})
            logger.info("[ticker] tick %d completed in %dms (status %d)", i + 1, duration_ms, status)

        total_ms = _elapsed_ms(started)
        logger.info("[ticker] all %d ticks completed in %dms", self.ticks_per_run, total_ms)
        return {
            "success": True,
            "ticksPerRun": self.ticks_per_run,
            "tickIntervalMs": int(self.tick_interval_seconds * 1000),
            "totalDurationMs": total_ms,
            "results": results,
        }
