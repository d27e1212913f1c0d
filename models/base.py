from datetime import datetime, timezone
from sqlalchemy import JSON, Enum
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum
import uuid

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def enum_column(enum_cls, name: str):
    """Enum column type that stores the member values, not the member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
    )


# ============================================================================
# ENUMS
# ============================================================================

class SyncType(str, enum.Enum):
    """Kind of caller rows a sync session produces"""
    CSV = "csv"
    ORDER = "order"
    COLLECTION = "collection"


class SyncSessionStatus(str, enum.Enum):
    """Sync session lifecycle"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SESSION_STATUSES


class SyncSessionItemStatus(str, enum.Enum):
    """Per external item outcome inside a session"""
    PENDING = "pending"
    SCRAPED = "scraped"
    FAILED = "failed"


class ItemSource(str, enum.Enum):
    """Origin of a catalog item or entry"""
    MFC = "mfc"
    CUSTOM = "custom"


class EntryCategory(str, enum.Enum):
    """Taxonomy bucket of a catalog entry"""
    CLASSIFICATIONS = "Classifications"
    ORIGINS = "Origins"
    CHARACTERS = "Characters"
    COMPANIES = "Companies"
    ARTISTS = "Artists"
    EVENTS = "Events"
    MATERIALS = "Materials"


class ShippingMethod(str, enum.Enum):
    NA = "n/a"
    EMS = "EMS"
    SAL = "SAL"
    AIRMAIL = "AIRMAIL"
    SURFACE = "SURFACE"
    FEDEX = "FEDEX"
    DHL = "DHL"
    COLISSIMO = "Colissimo"
    UPS = "UPS"
    DOMESTIC = "Domestic"


class OrderStatus(str, enum.Enum):
    ORDERED = "Ordered"
    PAID = "Paid"
    SHIPPED = "Shipped"
    OWNED = "Owned"


class Condition(str, enum.Enum):
    NEW = "New"
    PRE_OWNED = "Pre-Owned"


TERMINAL_SESSION_STATUSES = frozenset({
    SyncSessionStatus.COMPLETED,
    SyncSessionStatus.PARTIAL,
    SyncSessionStatus.FAILED,
})

ACTIVE_SESSION_STATUSES = frozenset({
    SyncSessionStatus.PENDING,
    SyncSessionStatus.PROCESSING,
})

# Item categories published by the catalog site. Anything else is rejected.
CATEGORIES = (
    "Prepainted",
    "Action/Dolls",
    "Trading",
    "Garage Kits",
    "Model Kits",
    "Accessories",
    "Plushes",
    "Linens",
    "Dishes",
    "Hanged up",
    "Apparel",
    "Stationeries",
    "Misc",
    "Books",
    "Music",
    "Video",
    "Games",
    "Software",
    "Docs",
)
