"""
Submit a sync request from a JSON file.

Usage:
    python scripts/enqueue_sync.py request.json

The file holds a job payload without `syncSessionId`, for example:
    {"type": "csv", "userId": "user-1", "items": [{"itemExternalId": 1234}]}
"""

import argparse
import asyncio
import json
import logging
import os
import sys

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.exceptions import SyncException
from core.logging import setup_logging
from pipeline.services import build_services

logger = logging.getLogger(__name__)


async def enqueue(path: str) -> int:
    with open(path, encoding="utf-8") as f:
        request = json.load(f)

    services = build_services()
    try:
        submission = await services.intake.submit(request)
    except SyncException as e:
        logger.error(f"Sync request rejected: {e}")
        return 1
    finally:
        await services.close()

    print(json.dumps({
        "syncSessionId": submission.sync_session_id,
        "jobId": submission.job_id,
        "itemCount": submission.item_count,
    }))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Create a sync session and enqueue its job")
    parser.add_argument("request", help="Path to a JSON sync request")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(enqueue(args.request)))


if __name__ == "__main__":
    main()
