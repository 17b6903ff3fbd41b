"""Resolution of an audit's sensitive areas.

Sensitive areas may come from three places, tried in order:

1. the plan details themselves (``sensitiveAreas``/``sensitiveFlag``),
2. the audit's sensitive scope departments,
3. the ``DepartmentSensitiveArea`` master, through the
   ``departmentSensitiveAreaIds`` of each scope department.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from ams.backend import directory as directory_api
from ams.backend import scope as scope_api
from ams.backend.client import BackendClient
from ams.backend.schemas import ScopeDepartment, parse_string_list

logger = logging.getLogger(__name__)


@dataclass
class SensitiveAreas:
    sensitive_flag: bool = False
    areas: list[str] = field(default_factory=list)
    areas_by_dept: dict[str, list[str]] = field(default_factory=dict)


def format_sensitive_area(area: str, dept_name: str) -> str:
    """Display form used by the wizard, e.g. "Server room - IT"."""
    return f"{area} - {dept_name}"


def _from_details(raw: Mapping[str, Any]) -> SensitiveAreas | None:
    areas = parse_string_list(raw.get("sensitiveAreas"))
    if areas and (isinstance(raw.get("sensitiveAreas"), list) or raw.get("sensitiveFlag") is True):
        return SensitiveAreas(sensitive_flag=True, areas=areas)
    return None


def _from_scope_departments(scope_depts: Iterable[ScopeDepartment]) -> SensitiveAreas:
    result = SensitiveAreas()
    scope_depts = list(scope_depts)
    result.sensitive_flag = any(sd.sensitive_flag for sd in scope_depts)
    seen: dict[str, None] = {}
    for sd in scope_depts:
        if sd.dept_id and sd.areas:
            result.areas_by_dept[sd.dept_id] = list(sd.areas)
        for area in sd.areas:
            seen.setdefault(area)
    result.areas = list(seen)
    return result


async def _from_master(
    client: BackendClient, scope_depts: Iterable[ScopeDepartment]
) -> SensitiveAreas | None:
    master = {a.id: a for a in await directory_api.list_sensitive_areas(client) if a.id}
    by_dept: dict[str, list[str]] = {}
    names: dict[str, None] = {}
    for sd in scope_depts:
        if not sd.dept_id:
            continue
        for area_id in sd.department_sensitive_area_ids:
            found = master.get(area_id)
            if found and found.sensitive_area:
                by_dept.setdefault(sd.dept_id, []).append(found.sensitive_area)
                names.setdefault(found.sensitive_area)
    if not by_dept:
        return None
    return SensitiveAreas(sensitive_flag=True, areas=list(names), areas_by_dept=by_dept)


async def load_sensitive_areas(
    client: BackendClient,
    audit_id: str,
    raw_details: Mapping[str, Any],
    scope_departments: Iterable[ScopeDepartment] = (),
) -> SensitiveAreas:
    """Resolve the sensitive flag and areas of an audit.

    Backend failures are logged and yield an empty result instead of
    failing the whole details view.
    """
    found = _from_details(raw_details)
    if found is not None:
        return found

    result = SensitiveAreas()
    try:
        sensitive_depts = await scope_api.list_sensitive_departments(client, audit_id)
    except httpx.HTTPError as exc:
        logger.warning("Failed to load sensitive departments for audit %s: %s", audit_id, exc)
    else:
        if sensitive_depts:
            result = _from_scope_departments(sensitive_depts)

    scope_departments = list(scope_departments)
    if result.areas or result.areas_by_dept or not scope_departments:
        return result

    try:
        fallback = await _from_master(client, scope_departments)
    except httpx.HTTPError as exc:
        logger.warning("Sensitive area master lookup failed for audit %s: %s", audit_id, exc)
        return result
    return fallback or result
