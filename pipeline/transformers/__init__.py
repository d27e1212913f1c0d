"""
Pure transformations from scraped records to catalog entities.
"""

from pipeline.transformers.assembler import assemble, normalize_date_string, release_id

__all__ = ["assemble", "normalize_date_string", "release_id"]
