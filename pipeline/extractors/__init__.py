"""
Catalog item page extraction.

Modules:
    fields: Per-label field extractors for the item data table
    catalog_extractor: Page fetch, parse and category validation
    images: Re-hosting of item pictures to object storage
"""

from pipeline.extractors.catalog_extractor import CatalogExtractor, parse_item_page
from pipeline.extractors.images import ImageRehoster

__all__ = ["CatalogExtractor", "ImageRehoster", "parse_item_page"]
