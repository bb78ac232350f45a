"""Test that the project setup is working correctly."""

import raffle_indexer


def test_version() -> None:
    """Test that version is defined."""
    assert raffle_indexer.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from raffle_indexer import api, artwork, chain, driver, indexer, reconciler, storage

    assert api is not None
    assert artwork is not None
    assert chain is not None
    assert driver is not None
    assert indexer is not None
    assert reconciler is not None
    assert storage is not None


def test_every_indexer_kind_is_registered() -> None:
    from raffle_indexer.indexer import INDEXER_TYPES

    assert set(INDEXER_TYPES) == {"pool-deployer", "pool", "nft-factory", "collection", "rewards"}
