"""Findings and corrective action review routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder

from ams.api.deps import get_backend_client
from ams.api.schemas.planning import ActionFeedbackRequest
from ams.backend import findings as findings_api
from ams.backend.client import BackendClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["findings"])


def _require_feedback(body: ActionFeedbackRequest) -> str:
    if not body.feedback or not body.feedback.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Feedback is required when returning or rejecting an action",
        )
    return body.feedback.strip()


@router.get("/audit-plans/{audit_id}/findings")
async def list_audit_findings(
    audit_id: str, client: BackendClient = Depends(get_backend_client)
) -> list[dict[str, Any]]:
    return jsonable_encoder(await findings_api.list_findings_for_audit(client, audit_id))


@router.get("/findings/{finding_id}/actions")
async def list_finding_actions(
    finding_id: str, client: BackendClient = Depends(get_backend_client)
) -> list[dict[str, Any]]:
    return jsonable_encoder(await findings_api.list_actions_for_finding(client, finding_id))


@router.post("/actions/{action_id}/approve")
async def approve_action(
    action_id: str,
    body: ActionFeedbackRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    await findings_api.approve_action(client, action_id, body.feedback)
    logger.info("Action %s approved", action_id)
    return {"action_id": action_id, "status": "approved"}


@router.post("/actions/{action_id}/return")
async def return_action(
    action_id: str,
    body: ActionFeedbackRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    await findings_api.return_action(client, action_id, _require_feedback(body))
    logger.info("Action %s returned", action_id)
    return {"action_id": action_id, "status": "returned"}


@router.post("/actions/{action_id}/approve-higher-level")
async def approve_action_higher_level(
    action_id: str,
    body: ActionFeedbackRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    await findings_api.approve_action_higher_level(client, action_id, body.feedback)
    return {"action_id": action_id, "status": "approved"}


@router.post("/actions/{action_id}/reject-higher-level")
async def reject_action_higher_level(
    action_id: str,
    body: ActionFeedbackRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    await findings_api.reject_action_higher_level(client, action_id, _require_feedback(body))
    return {"action_id": action_id, "status": "rejected"}
