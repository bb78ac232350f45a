"""EVM chain client with retry, failover and rate limiting.

This module provides the per-chain RPC client used by every indexer:
- Retry logic with exponential backoff
- Failover to a secondary RPC URL
- Token-bucket rate limiting to respect provider limits
- Optional Redis caching of immutable block headers
- ABI-encoded view calls (``eth_call``) decoded through ``ViewFunction``
"""

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

from redis.asyncio import Redis
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

from raffle_indexer.chain.abi import AbiDecodeError, ViewFunction, to_hex

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT = 30


def _json_default(value: object) -> object:
    """Serialize Web3 RPC objects that stdlib json can't encode."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    hex_method = getattr(value, "hex", None)
    if callable(hex_method):
        hex_value = hex_method()
        if isinstance(hex_value, str):
            return hex_value if hex_value.startswith("0x") else "0x" + hex_value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """Raised when RPC call fails."""


class RateLimitError(ChainClientError):
    """Raised when rate limit is exceeded."""


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> "RateLimiter":
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class ChainClient:
    """Async JSON-RPC client for one chain.

    Example:
        ```python
        client = ChainClient(84532, "https://base-sepolia-rpc.publicnode.com")
        head = await client.get_block_number()
        logs = await client.get_logs({"address": pool, "fromBlock": head - 100, "toBlock": head})
        name = await client.call_function(pool, ViewFunction.parse("name() returns (string)"))
        await client.aclose()
        ```
    """

    def __init__(
        self,
        chain_id: int,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        request_timeout: int = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the chain client.

        Args:
            chain_id: Chain id served by ``rpc_url``.
            rpc_url: Primary RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            redis: Optional Redis client for caching block headers.
            cache_ttl_seconds: Cache TTL in seconds.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Maximum retry attempts per endpoint.
            retry_delay_seconds: Initial delay between retries.
            request_timeout: HTTP timeout per request, in seconds.
        """
        self.chain_id = chain_id
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._request_timeout = request_timeout

        self._w3 = self._new_web3_client(rpc_url)
        self._w3_fallback: AsyncWeb3[AsyncHTTPProvider] | None = None
        if fallback_rpc_url:
            self._w3_fallback = self._new_web3_client(fallback_rpc_url)

        self._rate_limiter = RateLimiter.create(max_requests_per_second)

        self._primary_healthy = True
        self._last_primary_check = 0.0
        self._primary_recovery_interval = 60.0  # Try primary again after 60s

        self._cache_prefix = f"chain:{chain_id}:"

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    def _new_web3_client(self, rpc_url: str) -> AsyncWeb3[AsyncHTTPProvider]:
        client = AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": self._request_timeout})
        )
        self._inject_poa_middleware(client, rpc_url=rpc_url)
        return client

    def _inject_poa_middleware(self, client: AsyncWeb3[AsyncHTTPProvider], *, rpc_url: str) -> None:
        try:
            client.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except Exception as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", rpc_url, e)

    async def _get_cached(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                return value.decode()
            return str(value) if value is not None else None
        except Exception as e:
            logger.warning("Cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, value: str, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=ttl or self._cache_ttl)
        except Exception as e:
            logger.warning("Cache set failed: %s", e)

    def _should_try_primary(self) -> bool:
        if self._primary_healthy:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > self._primary_recovery_interval:
            self._last_primary_check = now
            return True
        return False

    async def _execute_with_retry(
        self,
        func_name: str,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute an RPC call with retry and failover logic.

        Args:
            func_name: Name of the web3.eth method to call.
            *args: Positional arguments for the method.
            **kwargs: Keyword arguments for the method.

        Returns:
            Result from the RPC call.

        Raises:
            RPCError: If all retries and failover fail.
        """
        await self._rate_limiter.acquire()

        last_error: Exception | None = None
        delay = self._retry_delay

        if self._should_try_primary():
            for attempt in range(self._max_retries):
                try:
                    method = getattr(self._w3.eth, func_name)
                    result = await method(*args, **kwargs)
                    self._primary_healthy = True
                    return result
                except ContractLogicError as e:
                    # Reverts are final; no retry or failover.
                    raise RPCError(f"RPC call {func_name} reverted: {e}") from e
                except (Web3Exception, OSError, asyncio.TimeoutError) as e:
                    last_error = e
                    logger.warning(
                        "[chain %d] Primary RPC %s failed (attempt %d/%d): %s",
                        self.chain_id,
                        func_name,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2

            self._primary_healthy = False
            self._last_primary_check = time.monotonic()

        if self._w3_fallback:
            delay = self._retry_delay
            for attempt in range(self._max_retries):
                try:
                    method = getattr(self._w3_fallback.eth, func_name)
                    result = await method(*args, **kwargs)
                    logger.info("[chain %d] Fallback RPC succeeded for %s", self.chain_id, func_name)
                    return result
                except (Web3Exception, OSError, asyncio.TimeoutError) as e:
                    last_error = e
                    logger.warning(
                        "[chain %d] Fallback RPC %s failed (attempt %d/%d): %s",
                        self.chain_id,
                        func_name,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2

        raise RPCError(f"RPC call {func_name} failed after all retries: {last_error}")

    async def get_block_number(self) -> int:
        """Get the current chain head."""
        return int(await self._execute_with_retry("get_block_number"))

    async def get_block(self, block_number: int) -> dict[str, Any]:
        """Get a block header by number.

        Returns:
            Block dictionary with ``number``, ``hash`` (0x hex) and ``timestamp`` (int).
        """
        cache_key = f"{self._cache_prefix}block:{block_number}"
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return cast(dict[str, Any], json.loads(cached))

        block = await self._execute_with_retry("get_block", block_number)
        block_dict = {
            "number": int(block["number"]),
            "hash": to_hex(block["hash"]) if block.get("hash") is not None else None,
            "parentHash": to_hex(block["parentHash"]) if block.get("parentHash") is not None else None,
            "timestamp": int(block["timestamp"]),
        }

        # Blocks are immutable, use the long TTL
        await self._set_cached(cache_key, json.dumps(block_dict, default=_json_default))
        return block_dict

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch logs via ``eth_getLogs`` with retry/failover semantics."""
        logs = await self._execute_with_retry("get_logs", filter_params)
        return [dict(log) for log in logs]

    async def call_function(
        self,
        address: str,
        function: ViewFunction,
        *args: Any,
        block_identifier: int | str = "latest",
    ) -> Any:
        """Call a view function and decode its return value.

        Raises:
            RPCError: If the call fails (including reverts) after retries.
            AbiDecodeError: If the contract returned data of the wrong shape.
        """
        tx = {
            "to": AsyncWeb3.to_checksum_address(address),
            "data": function.encode_call(*args),
        }
        raw = await self._execute_with_retry("call", tx, block_identifier)
        return function.decode_result(raw)

    async def health_check(self) -> bool:
        """Check if the client can connect to the RPC."""
        try:
            await self._execute_with_retry("get_block_number")
            return True
        except RPCError:
            return False

    async def aclose(self) -> None:
        """Close async HTTP provider sessions to avoid leaked aiohttp sessions."""
        providers = [self._w3.provider]
        if self._w3_fallback is not None:
            providers.append(self._w3_fallback.provider)

        for provider in providers:
            disconnect = getattr(provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)


async def read_views(
    client: ChainClient,
    address: str,
    calls: Mapping[str, tuple[ViewFunction, Any] | tuple[ViewFunction, Any, tuple[Any, ...]]],
) -> dict[str, Any]:
    """Read several view functions concurrently, each with its own default.

    Args:
        client: Chain client.
        address: Contract address.
        calls: ``key -> (function, default)`` or ``key -> (function, default, args)``.

    Returns:
        ``key -> value``; a failed or undecodable call yields its default.
    """
    keys = list(calls)

    async def _one(key: str) -> Any:
        spec = calls[key]
        function, default = spec[0], spec[1]
        args: tuple[Any, ...] = spec[2] if len(spec) > 2 else ()  # type: ignore[misc]
        try:
            return await client.call_function(address, function, *args)
        except (ChainClientError, AbiDecodeError, ValueError) as e:
            logger.debug("View %s on %s unavailable, using default: %s", function.name, address, e)
            return default

    values = await asyncio.gather(*(_one(k) for k in keys))
    return dict(zip(keys, values, strict=True))
