"""Prize artwork resolution.

Finds a displayable image URL for a pool's NFT prize: reads the token or
pre-reveal URI from the collection, expands it into plausible metadata
URLs, maps ipfs/ipns/ar schemes onto HTTP gateways, and checks each URL
until one yields an image or metadata JSON with an image field.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import aiohttp

from raffle_indexer import contracts
from raffle_indexer.chain.abi import AbiDecodeError, is_bytes32_hash
from raffle_indexer.chain.client import ChainClientError

if TYPE_CHECKING:
    from raffle_indexer.chain.client import ChainClient
    from raffle_indexer.config import ArtworkSettings

logger = logging.getLogger(__name__)

DEFAULT_IPFS_GATEWAYS = ("https://ipfs.io", "https://gateway.pinata.cloud", "https://cloudflare-ipfs.com")
DEFAULT_ARWEAVE_GATEWAY = "https://arweave.net"
DEFAULT_TIMEOUT_SECONDS = 5.0

IMAGE_FIELDS = ("image", "image_url", "imageUrl", "animation_url", "media", "artwork")
_IMAGE_SUFFIX = re.compile(r"\.(jpg|jpeg|png|gif|svg|webp)$", re.IGNORECASE)

ERC721 = 0
ERC1155 = 1


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one successful HTTP GET."""

    status: int
    content_type: str
    text: str


Fetch = Callable[[str], Awaitable[FetchResult | None]]


class ArtworkResolver:
    """Resolves prize artwork URLs with gateway fallback.

    Example:
        ```python
        resolver = ArtworkResolver.from_settings(get_settings().artwork)
        url = await resolver.resolve(client, collection, token_id=7, standard=0, is_escrowed=True)
        await resolver.aclose()
        ```
    """

    def __init__(
        self,
        *,
        ipfs_gateways: Sequence[str] = DEFAULT_IPFS_GATEWAYS,
        arweave_gateway: str = DEFAULT_ARWEAVE_GATEWAY,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        fetch: Fetch | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            ipfs_gateways: Gateway hosts for ipfs:// and ipns:// URIs, in order.
            arweave_gateway: Gateway host for ar:// URIs.
            timeout_seconds: Total timeout per HTTP attempt.
            fetch: Replacement for the aiohttp-backed fetch (used in tests).
        """
        self._ipfs_gateways = tuple(g.rstrip("/") for g in ipfs_gateways)
        self._arweave_gateway = arweave_gateway.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._fetch = fetch or self._http_fetch
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_settings(cls, settings: ArtworkSettings) -> ArtworkResolver:
        return cls(
            ipfs_gateways=settings.ipfs_gateways,
            arweave_gateway=settings.arweave_gateway,
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
            )
        return self._session

    async def aclose(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _http_fetch(self, url: str) -> FetchResult | None:
        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    logger.debug("HTTP %d from %s", resp.status, url)
                    return None
                content_type = resp.headers.get("Content-Type", "")
                if content_type.startswith("image/"):
                    return FetchResult(status=resp.status, content_type=content_type, text="")
                return FetchResult(status=resp.status, content_type=content_type, text=await resp.text())
        except (aiohttp.ClientError, TimeoutError, UnicodeDecodeError) as e:
            logger.debug("Artwork fetch failed for %s: %s", url, e)
            return None

    # ------------------------------------------------------------------
    # URI handling
    # ------------------------------------------------------------------

    def to_http(self, uri: str) -> list[str]:
        """Map a URI to candidate HTTP URLs (several for ipfs/ipns, one otherwise)."""
        if not uri:
            return []
        if uri.startswith("ipfs://"):
            path = uri[len("ipfs://") :].removeprefix("ipfs/")
            return [f"{g}/ipfs/{path}" for g in self._ipfs_gateways]
        if uri.startswith("ipns://"):
            path = uri[len("ipns://") :].removeprefix("ipns/")
            return [f"{g}/ipns/{path}" for g in self._ipfs_gateways]
        if uri.startswith("ar://"):
            return [f"{self._arweave_gateway}/{uri[len('ar://'):]}"]

        parsed = urlparse(uri)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            parts = [p for p in parsed.path.split("/") if p]
            for marker in ("ipfs", "ipns"):
                if marker in parts:
                    i = parts.index(marker)
                    if i + 1 < len(parts):
                        rest = "/".join(parts[i + 1 :])
                        return [f"{g}/{marker}/{rest}" for g in self._ipfs_gateways]
            if parsed.hostname and parsed.hostname.endswith("arweave.net"):
                return [f"{self._arweave_gateway}/{'/'.join(parts)}"]
        return [uri]

    @staticmethod
    def uri_variants(base_uri: str, token_id: int, standard: int) -> list[str]:
        """Plausible metadata locations for a token, most direct first."""
        variants = [base_uri]
        if standard == ERC1155:
            variants.append(base_uri.replace("{id}", f"{token_id:064x}"))
            variants.append(base_uri.replace("{id}", str(token_id)))
        if standard == ERC721:
            if not base_uri.endswith("/"):
                variants.append(f"{base_uri}/{token_id}")
            variants.append(f"{base_uri}{token_id}")
        variants.append(f"{base_uri}.json")
        if standard == ERC721:
            variants.append(f"{base_uri}/{token_id}.json")
            variants.append(f"{base_uri}{token_id}.json")
        return list(dict.fromkeys(variants))

    def extract_image(self, metadata: Any) -> str | None:
        if not isinstance(metadata, dict):
            return None
        for key in IMAGE_FIELDS:
            value = metadata.get(key)
            if value:
                urls = self.to_http(str(value))
                return urls[0] if urls else None
        return None

    async def _first_reachable(self, urls: Sequence[str]) -> str | None:
        for url in urls:
            result = await self._fetch(url)
            if result is None:
                continue
            if result.content_type.startswith("image/") or _IMAGE_SUFFIX.search(url):
                return url
            try:
                image = self.extract_image(json.loads(result.text))
            except ValueError:
                continue
            if image:
                return image
        return None

    # ------------------------------------------------------------------
    # On-chain URI lookup
    # ------------------------------------------------------------------

    async def _read_uri(
        self, client: ChainClient, collection: str, token_id: int, standard: int, is_escrowed: bool
    ) -> str | None:
        if standard == ERC721:
            attempts = [(contracts.TOKEN_URI, (token_id,))] if is_escrowed else [
                (contracts.COLLECTION_UNREVEALED_BASE_URI, ())
            ]
        elif standard == ERC1155:
            attempts = [(contracts.ERC1155_URI, (token_id,))] if is_escrowed else [
                (contracts.COLLECTION_UNREVEALED_URI, ()),
                (contracts.TOKEN_URI, (token_id,)),
            ]
        else:
            return None

        for function, args in attempts:
            try:
                value = await client.call_function(collection, function, *args)
            except (ChainClientError, AbiDecodeError, ValueError) as e:
                logger.debug("%s unavailable on %s: %s", function.name, collection, e)
                continue
            if isinstance(value, str) and value.strip():
                return value.strip()
            return None
        return None

    async def resolve(
        self,
        client: ChainClient,
        collection_address: str,
        token_id: int,
        standard: int,
        is_escrowed: bool,
    ) -> str | None:
        """Return an artwork URL for the prize, or None when nothing resolves."""
        base_uri = await self._read_uri(client, collection_address, int(token_id), standard, is_escrowed)
        if not base_uri or is_bytes32_hash(base_uri):
            return None

        urls: list[str] = []
        for variant in self.uri_variants(base_uri, int(token_id), standard):
            urls.extend(self.to_http(variant))
        artwork = await self._first_reachable(list(dict.fromkeys(urls)))
        if artwork is None:
            logger.info("No artwork found for %s token %s", collection_address, token_id)
        return artwork


async def resolve_prize_artwork(
    client: ChainClient,
    collection_address: str,
    token_id: int,
    standard: int,
    is_escrowed: bool,
    *,
    resolver: ArtworkResolver | None = None,
) -> str | None:
    """Resolve prize artwork with a throwaway resolver unless one is supplied."""
    if resolver is not None:
        return await resolver.resolve(client, collection_address, token_id, standard, is_escrowed)
    owned = ArtworkResolver()
    try:
        return await owned.resolve(client, collection_address, token_id, standard, is_escrowed)
    finally:
        await owned.aclose()
