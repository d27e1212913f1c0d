"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (SyncType, SyncSessionStatus, ...)
    catalog: Shared catalog data (Item, Entry, EntryToItem, ItemRelease)
    collection: Per-user rows produced by a sync (CollectionItem, Order)
    sync_session: Sync progress tracking (SyncSession, SyncSessionItem)

Database Schema:
    All models inherit from the Base declarative class. JSON columns map to
    JSONB on PostgreSQL and plain JSON elsewhere, so the schema also builds
    on SQLite for tests.

Usage:
    from models import SyncSession, SyncSessionItem, Item
    from models.base import SyncSessionStatus, SyncType

Relationships:
    - SyncSession → SyncSessionItem (one-to-many)
    - Item → ItemRelease (one-to-many)
    - Entry ↔ Item through EntryToItem (many-to-many with role)
    - CollectionItem → Item, ItemRelease, Order
"""

from models.base import (
    Base,
    SyncType,
    SyncSessionStatus,
    SyncSessionItemStatus,
    ItemSource,
    EntryCategory,
    ShippingMethod,
    OrderStatus,
    Condition,
    CATEGORIES,
)
from models.catalog import Item, Entry, EntryToItem, ItemRelease
from models.collection import CollectionItem, Order
from models.sync_session import SyncSession, SyncSessionItem

__all__ = [
    "Base",
    "SyncType",
    "SyncSessionStatus",
    "SyncSessionItemStatus",
    "ItemSource",
    "EntryCategory",
    "ShippingMethod",
    "OrderStatus",
    "Condition",
    "CATEGORIES",
    "Item",
    "Entry",
    "EntryToItem",
    "ItemRelease",
    "CollectionItem",
    "Order",
    "SyncSession",
    "SyncSessionItem",
]
