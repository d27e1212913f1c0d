"""
FastAPI dependencies
"""

from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pipeline.services import SyncServices


def get_services(request: Request) -> SyncServices:
    """Services built once at startup"""
    return request.app.state.services


async def get_db(services: SyncServices = Depends(get_services)) -> AsyncIterator[AsyncSession]:
    async with services.session_factory() as session:
        yield session
