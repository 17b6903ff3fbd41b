"""Health check endpoint.

Reports the reachability of the remote AMS backend and, when the
submission journal is enabled, of its PostgreSQL database.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ams.api.version import API_VERSION
from ams.backend.client import BackendClient
from ams.core.config import Settings, get_settings

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/api/v1/health")
async def health_check(request: Request, settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    """Check the health of the services this API depends on.

    Returns:
        JSON object with overall status and per-service health:
        {
            "status": "healthy" | "degraded" | "unhealthy",
            "services": {"backend": "up" | "down", "journal": "up" | "down" | "disabled"},
            "version": "0.1.0"
        }
    """
    services: dict[str, str] = {}

    client = BackendClient.from_settings(settings)
    services["backend"] = "up" if await client.verify_connectivity() else "down"

    session_factory = getattr(request.app.state, "db_session_factory", None)
    if session_factory is None:
        services["journal"] = "disabled"
    else:
        try:
            async with session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
            services["journal"] = "up"
        except (SQLAlchemyError, ConnectionError, OSError):
            logger.warning("Journal database health check failed")
            services["journal"] = "down"

    checked = [s for s in services.values() if s != "disabled"]
    down_count = checked.count("down")
    if down_count == 0:
        status = "healthy"
    elif down_count < len(checked):
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "services": services,
        "version": API_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
    }
