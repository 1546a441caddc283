"""
NoteKeeper Backend: Health Check Route
========================================

What:  GET /health for container liveness checks and monitoring.
How:   Runs cheap checks against each dependency.

    database            SELECT 1                        → connected | disconnected
    completion_service  breaker state + provider check  → available | unavailable | circuit_open
    object_store        storage root is a writable dir  → writable | unavailable

Status levels:
    healthy     everything up
    degraded    completion service down (notes still work, tags are sentinels)
    unhealthy   database or object store down

Always answers 200; the body carries the verdict.
"""

import logging
import os
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper import __version__
from notekeeper.database import get_db_session
from notekeeper.dependencies import get_attachment_store, get_tag_generator
from notekeeper.schemas.note import HealthResponse
from notekeeper.services.attachment_store import AttachmentStore
from notekeeper.services.tag_service import TagGenerator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    session: AsyncSession = Depends(get_db_session),
    tag_generator: TagGenerator = Depends(get_tag_generator),
    attachment_store: AttachmentStore = Depends(get_attachment_store),
) -> HealthResponse:
    overall = "healthy"

    db_status = "connected"
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))
        try:
            await session.rollback()
        except Exception as rollback_error:
            logger.debug("Health check rollback failed: %s", str(rollback_error))

    completion_status = await tag_generator.health_check()
    if completion_status != "available" and overall == "healthy":
        overall = "degraded"

    root = attachment_store.storage_root
    store_status = "writable" if root.is_dir() and os.access(root, os.W_OK) else "unavailable"
    if store_status != "writable":
        overall = "unhealthy"
        logger.warning("Health check: storage root %s is not writable", root)

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        completion_service=completion_status,
        object_store=store_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
