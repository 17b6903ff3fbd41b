"""Shared FastAPI dependencies.

Every backend call is made with the caller's own bearer token, so the
backend client is built per request from the session context.
"""

from __future__ import annotations

from fastapi import Depends, Request

from ams.backend.client import BackendClient
from ams.core.config import Settings, get_settings
from ams.core.session import SessionContext, get_session_context
from ams.planning.submission import AuditPlanSubmitter


def get_backend_client(
    session: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_settings),
) -> BackendClient:
    """Backend client that forwards the caller's token."""
    return BackendClient.from_settings(settings, token=session.token)


def get_submitter(
    request: Request,
    client: BackendClient = Depends(get_backend_client),
    settings: Settings = Depends(get_settings),
) -> AuditPlanSubmitter:
    """Plan submitter journaling to the database configured at startup, if any."""
    session_factory = getattr(request.app.state, "db_session_factory", None)
    return AuditPlanSubmitter(
        client,
        session_factory,
        max_attempts=settings.submission_max_attempts,
    )
