"""Storage abstraction for graph and tag backends."""

from .base import GraphStoreBase, get_store, name_key

__all__ = ["GraphStoreBase", "get_store", "name_key"]
