"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models used across the sync pipeline:

Schemas:
    jobs: Queue job payloads (csv, order, collection) and caller rows
    scraped: Records parsed from catalog item pages
    assembled: Normalized catalog entities ready for persistence
    api: API endpoint request/response schemas

Features:
    - Discriminated union on the payload `type`
    - camelCase aliases on the wire, snake_case in code
    - JSON-safe dumps for Redis and JSON columns

Usage:
    from schemas.jobs import parse_job_payload, dump_job_payload
    from schemas.api import SyncSessionResponse

Example:
    payload = parse_job_payload({
        "type": "csv",
        "userId": "user-1",
        "syncSessionId": "0b6f...",
        "items": [{"itemExternalId": 1234, "status": "Owned"}],
    })

    assert payload.item_ids() == [1234]
"""

__all__ = [
    "jobs",
    "scraped",
    "assembled",
    "api",
]
