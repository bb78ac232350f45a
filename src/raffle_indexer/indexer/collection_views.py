"""On-chain reads shared by the collection-facing indexers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from raffle_indexer import contracts
from raffle_indexer.chain.abi import is_bytes32_hash, is_zero_address, is_zero_hash
from raffle_indexer.chain.client import read_views

if TYPE_CHECKING:
    from raffle_indexer.chain.client import ChainClient

ERC721 = 0
ERC1155 = 1

_MAX_BIGINT = 2**63 - 1


def clean_uri(value: Any) -> str | None:
    """Return a usable URI, or None for empty strings and raw bytes32 hashes."""
    if not isinstance(value, str) or not value.strip() or is_bytes32_hash(value):
        return None
    return value


def clean_hash(value: Any) -> str | None:
    if not isinstance(value, str) or is_zero_hash(value):
        return None
    return value


def bounded_int(value: Any) -> int | None:
    """Int that fits a BIGINT column; "unlimited" sentinels such as 2**256-1 become None."""
    if value is None:
        return None
    value = int(value)
    return value if 0 <= value <= _MAX_BIGINT else None


def unrevealed_uri_view(standard: int) -> Any:
    if standard == ERC721:
        return contracts.COLLECTION_UNREVEALED_BASE_URI
    return contracts.COLLECTION_UNREVEALED_URI


async def read_collection_state(
    client: ChainClient,
    address: str,
    standard: int,
    *,
    fallback_owner: str | None = None,
) -> dict[str, Any]:
    """Read a collection's metadata, supply and URI variants as row values.

    Every view falls back to a neutral default, so a contract that lacks
    some of them still produces a row.
    """
    views = await read_views(
        client,
        address,
        {
            "name": (contracts.COLLECTION_NAME, None),
            "symbol": (contracts.COLLECTION_SYMBOL, None),
            "owner": (contracts.COLLECTION_OWNER, None),
            "total_supply": (contracts.COLLECTION_TOTAL_SUPPLY, None),
            "max_supply": (contracts.COLLECTION_MAX_SUPPLY, None),
            "base_uri": (contracts.COLLECTION_BASE_URI, None),
            "is_revealed": (contracts.COLLECTION_IS_REVEALED, False),
            "drop_uri": (contracts.COLLECTION_DROP_URI, None),
            "drop_uri_hash": (contracts.COLLECTION_DROP_URI_HASH, None),
            "unrevealed_uri": (unrevealed_uri_view(standard), None),
            "unrevealed_uri_hash": (contracts.COLLECTION_UNREVEALED_URI_HASH, None),
        },
    )
    owner = views["owner"] if not is_zero_address(views["owner"]) else fallback_owner
    values: dict[str, Any] = {
        "standard": standard,
        "name": views["name"] or None,
        "symbol": views["symbol"] or None,
        "owner": owner,
        "drop_uri": clean_uri(views["drop_uri"]),
        "unrevealed_uri": clean_uri(views["unrevealed_uri"]),
        "base_uri": clean_uri(views["base_uri"]),
        "drop_uri_hash": clean_hash(views["drop_uri_hash"]),
        "unrevealed_uri_hash": clean_hash(views["unrevealed_uri_hash"]),
        "is_revealed": views["is_revealed"] is True,
        "max_supply": bounded_int(views["max_supply"]),
    }
    supply = bounded_int(views["total_supply"])
    if supply is not None:
        values["total_supply"] = supply
        values["current_supply"] = supply
    return values
