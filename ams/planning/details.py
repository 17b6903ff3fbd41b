"""Plan details view: the plan header with its departments, criteria, team and schedule."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from ams.backend import audits as audits_api
from ams.backend import checklists as checklists_api
from ams.backend import criteria as criteria_api
from ams.backend import directory as directory_api
from ams.backend import team as team_api
from ams.backend.client import BackendClient
from ams.backend.envelope import decode_envelope, parse_records
from ams.backend.schemas import (
    AppUser,
    AuditCriteriaMap,
    AuditPlan,
    Criterion,
    Department,
    ScheduleMilestone,
    ScopeDepartment,
    TeamMember,
)
from ams.planning.rejection import Rejection, load_rejection_comment
from ams.planning.sensitive_areas import SensitiveAreas, load_sensitive_areas

logger = logging.getLogger(__name__)


@dataclass
class PlanDetails:
    audit: AuditPlan
    scope_departments: list[ScopeDepartment] = field(default_factory=list)
    criteria: list[AuditCriteriaMap] = field(default_factory=list)
    team: list[TeamMember] = field(default_factory=list)
    schedules: list[ScheduleMilestone] = field(default_factory=list)
    template_ids: list[str] = field(default_factory=list)
    sensitive: SensitiveAreas = field(default_factory=SensitiveAreas)
    rejection: Rejection = field(default_factory=Rejection)


def _header(raw: Mapping[str, Any]) -> AuditPlan:
    nested = raw.get("audit")
    merged = {**raw, **nested} if isinstance(nested, Mapping) else dict(raw)
    return AuditPlan.model_validate(merged)


def _dedupe(records: Iterable[Any], key: str) -> list[Any]:
    """Keep the last record per key; records without one are all kept."""
    keyed: dict[Any, Any] = {}
    for index, record in enumerate(records):
        keyed[getattr(record, key) or f"#{index}"] = record
    return list(keyed.values())


def normalize_plan_details(
    raw: Mapping[str, Any],
    *,
    departments: Iterable[Department] = (),
    criteria: Iterable[Criterion] = (),
    users: Iterable[AppUser] = (),
) -> PlanDetails:
    """Unwrap and dedupe the nested collections of a plan and fill display names."""
    dept_names = {d.dept_id: d.name for d in departments if d.dept_id and d.name}
    criteria_names = {c.criteria_id: c.name for c in criteria if c.criteria_id}
    user_names = {u.user_id: u.full_name for u in users if u.user_id and u.full_name}

    scope_departments = _dedupe(parse_records(ScopeDepartment, raw.get("scopeDepartments")), "dept_id")
    for sd in scope_departments:
        if not sd.dept_name:
            sd.dept_name = dept_names.get(sd.dept_id) or f"Department ID: {sd.dept_id}"

    plan_criteria = _dedupe(parse_records(AuditCriteriaMap, raw.get("criteria")), "criteria_id")
    for crit in plan_criteria:
        if not crit.name:
            crit.name = criteria_names.get(crit.criteria_id)

    team = _dedupe(parse_records(TeamMember, raw.get("auditTeams")), "user_id")
    for member in team:
        if not member.full_name:
            member.full_name = user_names.get(member.user_id) or f"User ID: {member.user_id}"

    return PlanDetails(
        audit=_header(raw),
        scope_departments=scope_departments,
        criteria=plan_criteria,
        team=team,
        schedules=parse_records(ScheduleMilestone, raw.get("schedules")),
    )


async def _safe(coro: Any, what: str, default: Any) -> Any:
    try:
        return await coro
    except httpx.HTTPError as exc:
        logger.warning("Failed to load %s: %s", what, exc)
        return default


async def load_plan_details(client: BackendClient, audit_id: str) -> PlanDetails:
    """Everything the plan details view shows.

    Only the plan itself is required; each supporting lookup degrades to
    empty on failure.

    Raises:
        AuditNotFoundError: If the plan does not exist.
    """
    raw = dict(await audits_api.get_audit_plan(client, audit_id))

    if decode_envelope(raw.get("schedules")).is_empty:
        schedules = await _safe(team_api.list_schedules_for_audit(client, audit_id), "schedules", [])
        raw["schedules"] = [s.model_dump(by_alias=True) for s in schedules]

    departments, criteria, users, template_maps = await asyncio.gather(
        _safe(directory_api.list_departments(client), "departments", []),
        _safe(criteria_api.list_criteria(client), "criteria", []),
        _safe(directory_api.list_users(client), "users", []),
        _safe(checklists_api.list_template_maps_for_audit(client, audit_id), "template maps", []),
    )

    details = normalize_plan_details(raw, departments=departments, criteria=criteria, users=users)
    details.template_ids = [m.template_id for m in template_maps if m.template_id]
    details.rejection, details.sensitive = await asyncio.gather(
        load_rejection_comment(client, audit_id, raw),
        load_sensitive_areas(client, audit_id, raw, details.scope_departments),
    )
    return details
