"""
Pydantic schemas for data parsed out of a catalog item page
"""

from pydantic import BaseModel, Field
from typing import List


class ScrapedEntity(BaseModel):
    """An entry referenced from an item page (company, character, ...)"""
    external_id: int
    name: str
    role: str = ""


class ScrapedRelease(BaseModel):
    """One release line as printed on the item page, before normalization"""
    date: str
    type: str = ""
    price: float = 0
    currency: str = "JPY"
    barcode: str = ""


class ScrapedRecord(BaseModel):
    """Everything the sync pipeline keeps from one item page"""
    external_id: int
    title: str
    category: str

    classifications: List[ScrapedEntity] = Field(default_factory=list)
    origins: List[ScrapedEntity] = Field(default_factory=list)
    characters: List[ScrapedEntity] = Field(default_factory=list)
    companies: List[ScrapedEntity] = Field(default_factory=list)
    artists: List[ScrapedEntity] = Field(default_factory=list)
    events: List[ScrapedEntity] = Field(default_factory=list)
    materials: List[ScrapedEntity] = Field(default_factory=list)

    version: List[str] = Field(default_factory=list)
    scale: str = ""
    height: int = 0
    width: int = 0
    depth: int = 0

    image: str = ""
    releases: List[ScrapedRelease] = Field(default_factory=list)
