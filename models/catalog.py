from sqlalchemy import Column, String, Integer, BigInteger, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base, JSONType, ItemSource, EntryCategory, enum_column, new_id, utcnow


class Item(Base):
    """
    Catalog item shared by every user.

    Purpose:
    - One row per catalog item regardless of how many users own it
    - Natural key (source, external_id) is the upsert conflict target
    - Internal id is what collection and order rows reference

    Design:
    - Rows are inserted with ON CONFLICT DO NOTHING: the first scrape wins
      and later scrapes never rewrite shared catalog data
    - `image` holds the re-hosted object storage URL, never the upstream URL
    """
    __tablename__ = "item"

    id = Column(String(36), primary_key=True, default=new_id)
    external_id = Column(Integer, nullable=True)
    source = Column(enum_column(ItemSource, "item_source"), nullable=False, default=ItemSource.MFC)

    title = Column(String(500), nullable=False)
    category = Column(String(50), nullable=False)
    version = Column(JSONType, nullable=False, default=list)

    # Dimensions
    scale = Column(String(50), nullable=False, default="NON_SCALE")
    height = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=False, default=0)
    depth = Column(Integer, nullable=False, default=0)

    image = Column(String(2048), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    releases = relationship("ItemRelease", back_populates="item")

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_item_source_external"),
    )


class Entry(Base):
    """
    Taxonomy node: a company, character, artist, origin, etc.

    Shares the (source, external_id) natural key scheme with `Item`.
    """
    __tablename__ = "entry"

    id = Column(String(36), primary_key=True, default=new_id)
    external_id = Column(Integer, nullable=True)
    source = Column(enum_column(ItemSource, "entry_source"), nullable=False, default=ItemSource.MFC)
    category = Column(enum_column(EntryCategory, "entry_category"), nullable=False)
    name = Column(String(500), nullable=False)

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_entry_source_external"),
        Index("idx_entry_category", "category"),
    )


class EntryToItem(Base):
    """Link between an entry and an item, with the entry's role on that item."""
    __tablename__ = "entry_to_item"

    entry_id = Column(String(36), ForeignKey("entry.id", ondelete="CASCADE"), primary_key=True)
    item_id = Column(String(36), ForeignKey("item.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String(200), nullable=False, default="")


class ItemRelease(Base):
    """
    One release of an item (date, edition type, price, barcode).

    The id is a uuid5 of the release's natural key fields, so scraping the
    same release twice resolves to the same row.
    """
    __tablename__ = "item_release"

    id = Column(String(36), primary_key=True)
    item_id = Column(String(36), ForeignKey("item.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(String(10), nullable=False)
    type = Column(String(200), nullable=False, default="")
    price = Column(BigInteger, nullable=False, default=0)  # minor units
    price_currency = Column(String(3), nullable=False, default="JPY")
    barcode = Column(Text, nullable=False, default="")

    item = relationship("Item", back_populates="releases")
