"""
Catalog item page extractor.

Fetches an item detail page, parses it into a ScrapedRecord and re-hosts the
item's picture. Every failure is raised as a ScrapeError subclass; the
retrying scraper turns those into per-item failure results.
"""

import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from core.config import settings
from core.exceptions import FetchError, InvalidCategoryError, ParseError
from models.base import CATEGORIES
from pipeline.extractors.fields import extractor_for
from pipeline.extractors.images import ImageRehoster
from schemas.scraped import ScrapedRecord

logger = logging.getLogger(__name__)

PAGE_HEADERS = {"Accept-Encoding": "gzip, deflate"}


def parse_item_page(html: str, external_id: int) -> Tuple[ScrapedRecord, Optional[str]]:
    """
    Parse an item page.

    Returns:
        The record (image not yet re-hosted) and the source image URL, if any.

    Raises:
        InvalidCategoryError: category missing or unknown
        ParseError: page could not be turned into a record
    """
    soup = BeautifulSoup(html, "html.parser")

    title_el = soup.select_one("h1.title")
    values: Dict[str, Any] = {
        "external_id": external_id,
        "title": title_el.get_text().strip() if title_el else "",
        "category": None,
    }

    for field in soup.select(".data-field"):
        # Extra release blocks are consumed by the releases extractor
        if "item-extra-release" in (field.get("class") or []):
            continue

        label_el = field.select_one(".data-label")
        label = label_el.get_text().strip() if label_el else ""
        extractor = extractor_for(label)
        if extractor is None:
            continue

        for attribute, value in extractor(field).items():
            if isinstance(value, list):
                values.setdefault(attribute, []).extend(value)
            else:
                values[attribute] = value

    category = values.get("category")
    if not category or category not in CATEGORIES:
        raise InvalidCategoryError(
            f"Invalid or missing category for ID {external_id}",
            context={"external_id": external_id, "category": category},
        )

    try:
        record = ScrapedRecord(**values)
    except ValueError as e:
        raise ParseError(
            f"Item page for ID {external_id} did not produce a valid record",
            context={"external_id": external_id},
            original_exception=e,
        )

    image_el = soup.select_one(".item-picture img")
    image_src = image_el.get("src") if image_el else None
    return record, image_src or None


class CatalogExtractor:
    """
    Fetch and parse catalog item pages.

    Attributes:
        http: Shared HTTP client (proxy, timeout and TLS settings applied)
        images: Re-hoster used for the item picture
        base_url: Catalog site root
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        images: ImageRehoster,
        base_url: Optional[str] = None,
    ):
        self.http = http_client
        self.images = images
        self.base_url = (base_url or settings.CATALOG_BASE_URL).rstrip("/")

    def item_url(self, external_id: int) -> str:
        return f"{self.base_url}/item/{external_id}"

    async def fetch_and_parse(self, external_id: int) -> ScrapedRecord:
        url = self.item_url(external_id)
        context = {"external_id": external_id, "url": url}

        try:
            response = await self.http.get(url, headers=PAGE_HEADERS)
        except httpx.TimeoutException as e:
            raise FetchError(f"Timed out fetching ID {external_id}", context=context, original_exception=e)
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed for ID {external_id}", context=context, original_exception=e)

        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code} for ID {external_id}",
                context={**context, "status_code": response.status_code},
            )

        record, image_src = parse_item_page(response.text, external_id)

        if image_src:
            record.image = await self.images.rehost(urljoin(url, image_src))

        logger.debug(f"Parsed ID {external_id}: {record.title}")
        return record
