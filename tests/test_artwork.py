"""Tests for prize artwork resolution."""

import json

import pytest

from raffle_indexer import contracts
from raffle_indexer.artwork import ArtworkResolver, FetchResult, resolve_prize_artwork

COLLECTION = "0x00000000000000000000000000000000000000d1"


class FakeFetch:
    """Serves canned responses by URL and records every request."""

    def __init__(self, responses: dict[str, FetchResult] | None = None) -> None:
        self.responses = responses or {}
        self.requested: list[str] = []

    async def __call__(self, url: str) -> FetchResult | None:
        self.requested.append(url)
        return self.responses.get(url)


def metadata(**fields: str) -> FetchResult:
    return FetchResult(status=200, content_type="application/json", text=json.dumps(fields))


@pytest.fixture
def resolver() -> ArtworkResolver:
    return ArtworkResolver(fetch=FakeFetch())


class TestToHttp:
    def test_ipfs_uses_every_gateway(self, resolver: ArtworkResolver) -> None:
        assert resolver.to_http("ipfs://bafy/1.json") == [
            "https://ipfs.io/ipfs/bafy/1.json",
            "https://gateway.pinata.cloud/ipfs/bafy/1.json",
            "https://cloudflare-ipfs.com/ipfs/bafy/1.json",
        ]

    def test_ipfs_prefix_is_not_doubled(self, resolver: ArtworkResolver) -> None:
        assert resolver.to_http("ipfs://ipfs/bafy")[0] == "https://ipfs.io/ipfs/bafy"

    def test_ipns(self, resolver: ArtworkResolver) -> None:
        assert resolver.to_http("ipns://name.eth/meta")[0] == "https://ipfs.io/ipns/name.eth/meta"

    def test_arweave(self, resolver: ArtworkResolver) -> None:
        assert resolver.to_http("ar://tx123/0") == ["https://arweave.net/tx123/0"]

    def test_http_gateway_url_is_reexpanded(self, resolver: ArtworkResolver) -> None:
        urls = resolver.to_http("https://someone.mypinata.cloud/ipfs/bafy/3")

        assert urls[0] == "https://ipfs.io/ipfs/bafy/3"
        assert len(urls) == 3

    def test_plain_http_is_kept(self, resolver: ArtworkResolver) -> None:
        assert resolver.to_http("https://example.com/art.png") == ["https://example.com/art.png"]

    def test_empty(self, resolver: ArtworkResolver) -> None:
        assert resolver.to_http("") == []

    def test_custom_gateways(self) -> None:
        resolver = ArtworkResolver(ipfs_gateways=["https://gw.example/"], arweave_gateway="https://ar.example/")

        assert resolver.to_http("ipfs://bafy") == ["https://gw.example/ipfs/bafy"]
        assert resolver.to_http("ar://tx") == ["https://ar.example/tx"]


class TestUriVariants:
    def test_erc721_without_trailing_slash(self) -> None:
        assert ArtworkResolver.uri_variants("https://meta.example/c", 7, 0) == [
            "https://meta.example/c",
            "https://meta.example/c/7",
            "https://meta.example/c7",
            "https://meta.example/c.json",
            "https://meta.example/c/7.json",
            "https://meta.example/c7.json",
        ]

    def test_erc1155_id_substitution(self) -> None:
        variants = ArtworkResolver.uri_variants("ipfs://bafy/{id}.json", 1, 1)

        assert variants[0] == "ipfs://bafy/{id}.json"
        assert f"ipfs://bafy/{1:064x}.json" in variants
        assert "ipfs://bafy/1.json" in variants


class TestExtractImage:
    def test_first_known_field_wins(self, resolver: ArtworkResolver) -> None:
        assert resolver.extract_image({"image_url": "ipfs://img", "media": "x"}) == "https://ipfs.io/ipfs/img"

    def test_non_dict(self, resolver: ArtworkResolver) -> None:
        assert resolver.extract_image(["image"]) is None
        assert resolver.extract_image({"name": "no image"}) is None


class TestResolve:
    @pytest.mark.asyncio
    async def test_escrowed_erc721_falls_back_across_gateways(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.TOKEN_URI, lambda token_id: f"ipfs://bafy/{token_id}")
        fetch = FakeFetch({"https://gateway.pinata.cloud/ipfs/bafy/7": metadata(image="ipfs://art/7.png")})
        resolver = ArtworkResolver(fetch=fetch)

        url = await resolver.resolve(chain, COLLECTION, 7, 0, True)

        assert url == "https://ipfs.io/ipfs/art/7.png"
        assert fetch.requested == ["https://ipfs.io/ipfs/bafy/7", "https://gateway.pinata.cloud/ipfs/bafy/7"]

    @pytest.mark.asyncio
    async def test_image_content_type_is_returned_directly(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.COLLECTION_UNREVEALED_BASE_URI, "https://cdn.example/hidden")
        fetch = FakeFetch(
            {"https://cdn.example/hidden": FetchResult(status=200, content_type="image/png", text="")}
        )

        url = await ArtworkResolver(fetch=fetch).resolve(chain, COLLECTION, 3, 0, False)

        assert url == "https://cdn.example/hidden"

    @pytest.mark.asyncio
    async def test_erc1155_unrevealed_falls_back_to_token_uri(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.TOKEN_URI, "https://meta.example/{id}")
        fetch = FakeFetch({"https://meta.example/5": metadata(image="https://img.example/5.png")})

        url = await ArtworkResolver(fetch=fetch).resolve(chain, COLLECTION, 5, 1, False)

        assert url == "https://img.example/5.png"

    @pytest.mark.asyncio
    async def test_escrowed_erc1155_reads_uri(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.ERC1155_URI, lambda token_id: "ar://meta")
        fetch = FakeFetch({"https://arweave.net/meta": metadata(animation_url="ar://clip")})

        url = await ArtworkResolver(fetch=fetch).resolve(chain, COLLECTION, 2, 1, True)

        assert url == "https://arweave.net/clip"

    @pytest.mark.asyncio
    async def test_hash_uri_is_not_fetched(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.COLLECTION_UNREVEALED_BASE_URI, "0x" + "ab" * 32)
        fetch = FakeFetch()

        assert await ArtworkResolver(fetch=fetch).resolve(chain, COLLECTION, 1, 0, False) is None
        assert fetch.requested == []

    @pytest.mark.asyncio
    async def test_nothing_resolves(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.TOKEN_URI, lambda token_id: "https://meta.example/x")
        fetch = FakeFetch({"https://meta.example/x": FetchResult(status=200, content_type="text/html", text="<html>")})

        assert await ArtworkResolver(fetch=fetch).resolve(chain, COLLECTION, 1, 0, True) is None
        assert len(fetch.requested) == 6

    @pytest.mark.asyncio
    async def test_unknown_standard(self, chain) -> None:
        assert await ArtworkResolver(fetch=FakeFetch()).resolve(chain, COLLECTION, 1, 9, True) is None
        chain.call_function.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_uri_view(self, chain) -> None:
        assert await ArtworkResolver(fetch=FakeFetch()).resolve(chain, COLLECTION, 1, 0, True) is None

    @pytest.mark.asyncio
    async def test_resolve_prize_artwork_uses_given_resolver(self, chain) -> None:
        chain.set_view(COLLECTION, contracts.TOKEN_URI, lambda token_id: "https://meta.example/art.png")
        fetch = FakeFetch({"https://meta.example/art.png": FetchResult(status=200, content_type="", text="")})

        url = await resolve_prize_artwork(chain, COLLECTION, 1, 0, True, resolver=ArtworkResolver(fetch=fetch))

        assert url == "https://meta.example/art.png"
