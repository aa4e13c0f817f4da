"""Asyncio building blocks for a data-availability light client: shutdown
coordination, an in-memory Kademlia store, DHT helpers, cell sampling,
metrics and proof verification."""

__version__ = "0.1.0"
__all__ = ["__version__"]