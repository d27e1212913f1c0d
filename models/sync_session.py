from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import (
    Base,
    JSONType,
    SyncType,
    SyncSessionStatus,
    SyncSessionItemStatus,
    enum_column,
    new_id,
    utcnow,
)


class SyncSession(Base):
    """
    Durable record of one sync request.

    Purpose:
    - Source of truth for the sync outcome shown to the user
    - Holds the counts the retry operation relies on
    - Links order syncs to the order they produced

    Invariants:
    - success_count + fail_count <= total_items
    - completed_at is set iff status is completed, partial or failed

    Counts are measured in caller rows (a csv file listing the same item
    twice counts twice); `items` holds one row per distinct external id.
    """
    __tablename__ = "sync_session"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    sync_type = Column(enum_column(SyncType, "sync_type"), nullable=False)

    status = Column(
        enum_column(SyncSessionStatus, "sync_session_status"),
        nullable=False,
        default=SyncSessionStatus.PENDING,
        index=True,
    )
    status_message = Column(Text, nullable=False, default="")

    total_items = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    fail_count = Column(Integer, nullable=False, default=0)

    job_id = Column(String(64), nullable=True, index=True)
    order_id = Column(String(36), nullable=True)
    # Order header as submitted, kept so a retry can rebuild the job
    order_details = Column(JSONType, nullable=True)
    # Rows to insert without scraping; cleared by the finalize transaction that persists them
    pending_inserts = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "SyncSessionItem",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SyncSessionItem.item_external_id",
    )

    __table_args__ = (
        Index("idx_sync_session_user_created", "user_id", "created_at"),
    )


class SyncSessionItem(Base):
    """
    Progress of one external item id inside a session.

    Transitions: pending -> scraped | failed, scraped -> failed when the
    finalize transaction rolls back, failed -> pending only via retry.
    """
    __tablename__ = "sync_session_item"

    id = Column(String(36), primary_key=True, default=new_id)
    sync_session_id = Column(
        String(36),
        ForeignKey("sync_session.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_external_id = Column(Integer, nullable=False)

    status = Column(
        enum_column(SyncSessionItemStatus, "sync_session_item_status"),
        nullable=False,
        default=SyncSessionItemStatus.PENDING,
    )
    error_reason = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    # Caller rows (csv/order/collection metadata) requested for this external id
    item_metadata = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    session = relationship("SyncSession", back_populates="items")

    __table_args__ = (
        UniqueConstraint("sync_session_id", "item_external_id", name="uq_sync_session_item"),
    )
