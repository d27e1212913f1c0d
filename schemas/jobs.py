"""
Job payload schemas for the sync queue.

A payload is a discriminated union on `type`. Field names are snake_case;
camelCase aliases are accepted because upstream producers serialize that way.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from models.base import Condition, OrderStatus, ShippingMethod


class PayloadModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ============================================================================
# Caller rows
# ============================================================================

def _normalize_score(v: str) -> str:
    """Blank scores become "0.0"; anything else must parse as a decimal."""
    if v.strip() == "":
        return "0.0"
    try:
        score = Decimal(v)
    except InvalidOperation:
        raise ValueError(f"score is not a number: {v!r}")
    if not score.is_finite():
        raise ValueError(f"score is not a number: {v!r}")
    return v


class CsvSyncItem(PayloadModel):
    """One row of a pre-validated collection export"""
    item_external_id: int
    status: str = "Owned"
    count: int = 1
    score: str = ""
    payment_date: Optional[date] = None
    shipping_date: Optional[date] = None
    collecting_date: Optional[date] = None
    price: str = ""
    shop: str = ""
    shipping_method: ShippingMethod = ShippingMethod.NA
    note: str = ""
    order_id: Optional[str] = None
    order_date: Optional[date] = None

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: str) -> str:
        return _normalize_score(v)


class OrderSyncItem(PayloadModel):
    """An order line; price is in minor units"""
    user_id: str
    order_id: str
    release_id: Optional[str] = None
    item_id: Optional[str] = None
    item_external_id: int
    price: int = 0
    count: int = 1
    status: OrderStatus = OrderStatus.ORDERED
    condition: Condition = Condition.NEW
    shipping_method: ShippingMethod = ShippingMethod.NA
    order_date: Optional[date] = None
    payment_date: Optional[date] = None
    shipping_date: Optional[date] = None
    collection_date: Optional[date] = None


class CollectionSyncItem(PayloadModel):
    """A collection entry entered by hand; price is in minor units"""
    user_id: str
    release_id: Optional[str] = None
    item_id: Optional[str] = None
    item_external_id: int
    price: int = 0
    count: int = 1
    score: str = "0.0"
    shop: str = ""
    order_date: Optional[date] = None
    payment_date: Optional[date] = None
    shipping_date: Optional[date] = None
    collection_date: Optional[date] = None
    shipping_method: ShippingMethod = ShippingMethod.NA
    tags: List[str] = Field(default_factory=list)
    condition: Condition = Condition.NEW
    notes: str = ""

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: str) -> str:
        return _normalize_score(v)


class OrderDetails(PayloadModel):
    """Order header; fees are in minor units"""
    id: str
    user_id: str
    status: OrderStatus = OrderStatus.ORDERED
    title: str = ""
    shop: str = ""
    order_date: Optional[date] = None
    release_date: Optional[date] = None
    payment_date: Optional[date] = None
    shipping_date: Optional[date] = None
    collection_date: Optional[date] = None
    shipping_method: ShippingMethod = ShippingMethod.NA
    shipping_fee: int = 0
    taxes: int = 0
    duties: int = 0
    tariffs: int = 0
    misc_fees: int = 0
    notes: str = ""


# ============================================================================
# Payloads
# ============================================================================

class BaseJobPayload(PayloadModel):
    user_id: str
    sync_session_id: str
    existing_count: int = Field(default=0, ge=0)

    def scrape_rows(self) -> list:
        """Caller rows whose item must be scraped in this job"""
        raise NotImplementedError

    def item_ids(self) -> List[int]:
        """Distinct external ids to scrape, in first-seen order"""
        return list(dict.fromkeys(row.item_external_id for row in self.scrape_rows()))

    @property
    def scrape_row_count(self) -> int:
        return len(self.scrape_rows())


class CsvJobPayload(BaseJobPayload):
    type: Literal["csv"] = "csv"
    items: List[CsvSyncItem]

    def scrape_rows(self) -> List[CsvSyncItem]:
        return self.items


class OrderJobBody(PayloadModel):
    details: OrderDetails
    items_to_scrape: List[OrderSyncItem] = Field(default_factory=list)
    items_to_insert: List[OrderSyncItem] = Field(default_factory=list)


class OrderJobPayload(BaseJobPayload):
    type: Literal["order"] = "order"
    order: OrderJobBody

    def scrape_rows(self) -> List[OrderSyncItem]:
        return self.order.items_to_scrape


class CollectionJobBody(PayloadModel):
    items_to_scrape: List[CollectionSyncItem] = Field(default_factory=list)
    items_to_insert: List[CollectionSyncItem] = Field(default_factory=list)


class CollectionJobPayload(BaseJobPayload):
    type: Literal["collection"] = "collection"
    collection: CollectionJobBody

    def scrape_rows(self) -> List[CollectionSyncItem]:
        return self.collection.items_to_scrape


JobPayload = Annotated[
    Union[CsvJobPayload, OrderJobPayload, CollectionJobPayload],
    Field(discriminator="type"),
]

job_payload_adapter = TypeAdapter(JobPayload)

def parse_job_payload(data: Dict[str, Any]) -> Union[CsvJobPayload, OrderJobPayload, CollectionJobPayload]:
    """Validate raw queue data. Raises pydantic.ValidationError."""
    return job_payload_adapter.validate_python(data)


def dump_job_payload(payload: BaseJobPayload) -> Dict[str, Any]:
    """JSON-safe dict for the queue, camelCase keys"""
    return payload.model_dump(mode="json", by_alias=True)


def dump_row(row: PayloadModel) -> Dict[str, Any]:
    """JSON-safe caller row, stored as sync session item metadata"""
    return row.model_dump(mode="json", by_alias=True)
