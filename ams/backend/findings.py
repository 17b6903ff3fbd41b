"""Findings, their corrective actions, and the action review workflow."""

from __future__ import annotations

from typing import Any

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records
from ams.backend.schemas import Action, Finding


async def list_findings(client: BackendClient) -> list[Finding]:
    return parse_records(Finding, await client.get("/Findings"))


async def list_findings_for_audit(client: BackendClient, audit_id: str) -> list[Finding]:
    return parse_records(Finding, await client.get(f"/Findings/audit/{audit_id}"))


async def list_actions_for_finding(client: BackendClient, finding_id: str) -> list[Action]:
    return parse_records(Action, await client.get(f"/Action/finding/{finding_id}"))


async def approve_action(client: BackendClient, action_id: str, feedback: str | None = None) -> Any:
    return await client.post(f"/ActionReview/{action_id}/approve", {"feedback": feedback or ""})


async def return_action(client: BackendClient, action_id: str, feedback: str) -> Any:
    """Send an action back to its owner for correction."""
    return await client.post(f"/ActionReview/{action_id}/returned", {"feedback": feedback})


async def approve_action_higher_level(
    client: BackendClient, action_id: str, feedback: str | None = None
) -> Any:
    return await client.put(f"/ActionReview/{action_id}/approve/higher-level", {"feedback": feedback or ""})


async def reject_action_higher_level(client: BackendClient, action_id: str, feedback: str) -> Any:
    return await client.put(f"/ActionReview/{action_id}/reject/higher-level", {"feedback": feedback})
