"""
Normalized entity sets produced from a batch of scraped records.

Everything is keyed by external ids; the finalizer resolves internal ids
inside its transaction.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from models.base import ItemSource, EntryCategory


class AssembledItem(BaseModel):
    external_id: int
    source: ItemSource = ItemSource.MFC
    title: str
    category: str
    version: List[str] = Field(default_factory=list)
    scale: str = ""
    height: int = 0
    width: int = 0
    depth: int = 0
    image: str = ""


class AssembledEntry(BaseModel):
    external_id: int
    source: ItemSource = ItemSource.MFC
    category: EntryCategory
    name: str


class AssembledEntryToItem(BaseModel):
    entry_external_id: int
    item_external_id: int
    role: str = ""


class AssembledRelease(BaseModel):
    id: str
    item_external_id: int
    date: str
    type: str = ""
    price: int = 0  # minor units
    price_currency: str = "JPY"
    barcode: str = ""


class LatestReleaseInfo(BaseModel):
    release_id: Optional[str] = None
    date: Optional[str] = None


class AssembledEntities(BaseModel):
    items: List[AssembledItem] = Field(default_factory=list)
    entries: List[AssembledEntry] = Field(default_factory=list)
    entry_to_items: List[AssembledEntryToItem] = Field(default_factory=list)
    item_releases: List[AssembledRelease] = Field(default_factory=list)
    latest_release_by_external_id: Dict[int, LatestReleaseInfo] = Field(default_factory=dict)
