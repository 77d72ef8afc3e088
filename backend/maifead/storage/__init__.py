"""
Persistence sinks for sources and normalized items.
"""
from maifead.storage.base import ItemRepository
from maifead.storage.memory import InMemoryItemRepository
from maifead.storage.sql import SqlItemRepository

__all__ = [
    "ItemRepository",
    "InMemoryItemRepository",
    "SqlItemRepository",
]
