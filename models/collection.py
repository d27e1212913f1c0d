from sqlalchemy import Column, String, Integer, BigInteger, Text, Numeric, Date, DateTime, ForeignKey, Index
from models.base import Base, JSONType, new_id, utcnow


class Order(Base):
    """
    A user's purchase order grouping several collection rows.

    Written by order syncs (header upserted by id) and by csv syncs (one
    header per distinct order id found in the rows, insert-or-ignore).
    Fee columns are integer minor units.
    """
    __tablename__ = "order"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)

    title = Column(String(500), nullable=False, default="")
    shop = Column(String(200), nullable=False, default="")
    status = Column(String(20), nullable=False, default="Ordered")

    order_date = Column(Date, nullable=True)
    release_date = Column(Date, nullable=True)
    payment_date = Column(Date, nullable=True)
    shipping_date = Column(Date, nullable=True)
    collection_date = Column(Date, nullable=True)

    shipping_method = Column(String(20), nullable=False, default="n/a")
    shipping_fee = Column(BigInteger, nullable=False, default=0)
    taxes = Column(BigInteger, nullable=False, default=0)
    duties = Column(BigInteger, nullable=False, default=0)
    tariffs = Column(BigInteger, nullable=False, default=0)
    misc_fees = Column(BigInteger, nullable=False, default=0)
    notes = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class CollectionItem(Base):
    """
    One owned/ordered copy of a catalog item in a user's collection.

    `item_id` and `release_id` are resolved during finalize from the scraped
    external id and the item's latest release.
    """
    __tablename__ = "collection"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    item_id = Column(String(36), ForeignKey("item.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("order.id", ondelete="SET NULL"), nullable=True, index=True)
    release_id = Column(String(36), ForeignKey("item_release.id", ondelete="SET NULL"), nullable=True)

    status = Column(String(20), nullable=False, default="Owned")
    count = Column(Integer, nullable=False, default=1)
    score = Column(Numeric(3, 1), nullable=False, default=0)
    price = Column(BigInteger, nullable=False, default=0)  # minor units
    shop = Column(String(200), nullable=False, default="")

    order_date = Column(Date, nullable=True)
    payment_date = Column(Date, nullable=True)
    shipping_date = Column(Date, nullable=True)
    collection_date = Column(Date, nullable=True)

    shipping_method = Column(String(20), nullable=False, default="n/a")
    tags = Column(JSONType, nullable=False, default=list)
    condition = Column(String(20), nullable=False, default="New")
    notes = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_collection_user_item", "user_id", "item_id"),
    )
