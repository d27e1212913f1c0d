"""
Assemble scraped records into normalized catalog entities.

Pure transformation: no I/O, no database ids. Everything is keyed by the
catalog's external ids and de-duplicated by (source, external_id).
"""

import logging
import re
import uuid
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from models.base import EntryCategory, ItemSource
from pipeline.transformers.money import format_price, to_minor_units
from schemas.assembled import (
    AssembledEntities,
    AssembledEntry,
    AssembledEntryToItem,
    AssembledItem,
    AssembledRelease,
    LatestReleaseInfo,
)
from schemas.scraped import ScrapedRecord

logger = logging.getLogger(__name__)

RELEASE_ID_NAMESPACE = uuid.UUID("2c8ed313-3f54-4401-a280-2410ce639ef3")
FALLBACK_DATE = "1970-01-01"

_YEAR_ONLY = re.compile(r"^\d{4}$")
_MONTH_YEAR = re.compile(r"^(\d{1,2})/(\d{4})$")
_DATE_FORMATS = ("%m/%d/%Y", "%Y/%m/%d", "%Y-%m", "%B %d, %Y", "%b %d, %Y", "%B %Y", "%b %Y")

# (record attribute, entry category, keep role)
ENTITY_SOURCES: Tuple[Tuple[str, EntryCategory, bool], ...] = (
    ("classifications", EntryCategory.CLASSIFICATIONS, True),
    ("origins", EntryCategory.ORIGINS, False),
    ("characters", EntryCategory.CHARACTERS, False),
    ("companies", EntryCategory.COMPANIES, True),
    ("artists", EntryCategory.ARTISTS, True),
    ("events", EntryCategory.EVENTS, True),
    ("materials", EntryCategory.MATERIALS, False),
)


def normalize_date_string(value: str) -> str:
    """
    Canonical YYYY-MM-DD form of a release date as printed by the catalog.

    "2006" -> "2006-01-01", "9/2010" -> "2010-09-01", full dates are
    reformatted. Anything unparseable becomes 1970-01-01.
    """
    text = value.strip()

    if _YEAR_ONLY.match(text):
        return f"{text}-01-01"

    match = _MONTH_YEAR.match(text)
    if match:
        month, year = match.groups()
        return f"{year}-{int(month):02d}-01"

    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    logger.warning(f'Unable to parse date: "{value}". Using fallback date.')
    return FALLBACK_DATE


def release_id(item_external_id: int, normalized_date: str, type_: str, price: float, currency: str, barcode: str) -> str:
    """Deterministic release id from the release's natural key."""
    key = f"{item_external_id}-{normalized_date}-{type_}-{format_price(price)}-{currency}-{barcode}"
    return str(uuid.uuid5(RELEASE_ID_NAMESPACE, key))


def latest_release(releases: List[AssembledRelease]) -> LatestReleaseInfo:
    if not releases:
        return LatestReleaseInfo(release_id=None, date=None)
    latest = sorted(releases, key=lambda r: r.date)[-1]
    return LatestReleaseInfo(release_id=latest.id, date=latest.date)


def latest_date(dates: Iterable[Optional[str]]) -> Optional[str]:
    """Greatest date; None sorts below every concrete date."""
    concrete = [d for d in dates if d]
    return max(concrete) if concrete else None


def assemble(records: Iterable[ScrapedRecord]) -> AssembledEntities:
    items: Dict[int, AssembledItem] = {}
    entries: Dict[Tuple[ItemSource, int], AssembledEntry] = {}
    links: Dict[Tuple[int, int], AssembledEntryToItem] = {}
    releases: Dict[str, AssembledRelease] = {}
    latest: Dict[int, LatestReleaseInfo] = {}

    for record in records:
        if record.external_id in items:
            continue

        items[record.external_id] = AssembledItem(
            external_id=record.external_id,
            source=ItemSource.MFC,
            title=record.title,
            category=record.category,
            version=record.version,
            scale=record.scale,
            height=record.height,
            width=record.width,
            depth=record.depth,
            image=record.image,
        )

        for attribute, category, keep_role in ENTITY_SOURCES:
            for entity in getattr(record, attribute):
                if entity.external_id <= 0:
                    logger.debug(f"Skipping {category.value} entry without id on item {record.external_id}")
                    continue

                entries.setdefault(
                    (ItemSource.MFC, entity.external_id),
                    AssembledEntry(
                        external_id=entity.external_id,
                        source=ItemSource.MFC,
                        category=category,
                        name=entity.name,
                    ),
                )
                links.setdefault(
                    (entity.external_id, record.external_id),
                    AssembledEntryToItem(
                        entry_external_id=entity.external_id,
                        item_external_id=record.external_id,
                        role=entity.role if keep_role else "",
                    ),
                )

        item_releases = []
        for scraped in record.releases:
            normalized = normalize_date_string(scraped.date)
            release = AssembledRelease(
                id=release_id(
                    record.external_id, normalized, scraped.type,
                    scraped.price, scraped.currency, scraped.barcode,
                ),
                item_external_id=record.external_id,
                date=normalized,
                type=scraped.type,
                price=to_minor_units(scraped.price, scraped.currency),
                price_currency=scraped.currency,
                barcode=scraped.barcode,
            )
            item_releases.append(release)
            releases.setdefault(release.id, release)

        latest[record.external_id] = latest_release(item_releases)

    return AssembledEntities(
        items=list(items.values()),
        entries=list(entries.values()),
        entry_to_items=list(links.values()),
        item_releases=list(releases.values()),
        latest_release_by_external_id=latest,
    )
