"""
Sync pipeline components for catalog item jobs.

This package contains everything a queued sync job passes through:

Modules:
    queue: Redis list queue with crash recovery of active jobs
    intake: Session creation and job submission
    scraper: Retrying, rate-limited scraping of item pages
    processor: Orchestrates one job from payload to terminal status
    worker: APScheduler slots pulling jobs off the queue
    retry: Re-queues the failed items of a partial or failed session
    services: Builds the component graph for one process

Subpackages:
    extractors: Item page fetching, field parsing and image re-hosting
    transformers: Assembly of scraped records into catalog entities
    loaders: Transactional, idempotent persistence
    status: Session state machine and live status broadcast

Architecture:
    Every job follows the same phases:

    1. Scrape - fetch and parse each distinct item id, with retry and backoff
    2. Assemble - de-duplicate entities, derive release ids and latest releases
    3. Finalize - one transaction for catalog rows and caller rows

    A single item failing never aborts the job; a failed finalize rolls
    back and demotes the scraped items so a retry picks them up again.

Usage:
    from pipeline.services import build_services
    from pipeline.worker import SyncWorker

Example:
    services = build_services()

    submission = await services.intake.submit({
        "type": "csv",
        "userId": "user-1",
        "items": [{"itemExternalId": 1234}],
    })

    worker = SyncWorker(services.queue, services.processor)
    await worker.start()

Error Handling:
    Components raise the exceptions in core.exceptions. Per-item scrape
    failures and persistence failures are returned as result objects and
    surface as partial or failed sessions, never as crashed jobs.
"""

__all__ = [
    "queue",
    "intake",
    "scraper",
    "processor",
    "worker",
    "retry",
    "services",
]
