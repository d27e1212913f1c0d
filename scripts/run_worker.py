"""
Run the sync worker until interrupted.
"""

import asyncio
import logging
import os
import signal
import sys

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from pipeline.services import build_services
from pipeline.worker import SyncWorker

logger = logging.getLogger(__name__)


async def main():
    setup_logging()
    logger.info(f"Starting sync worker ({settings.ENVIRONMENT})")

    services = build_services()
    worker = SyncWorker(services.queue, services.processor)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await worker.start()
    try:
        await stop_event.wait()
    finally:
        worker.stop()
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
