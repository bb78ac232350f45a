"""Raffle Indexer - materializes on-chain NFT raffle state into a relational store."""

__version__ = "0.1.0"
