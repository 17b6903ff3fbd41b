"""Scope step routes: split the selected departments by criteria conflicts."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from ams.api.deps import get_backend_client
from ams.api.schemas.planning import ScopeEvaluationRequest
from ams.backend import criteria as criteria_api
from ams.backend.client import BackendClient
from ams.planning.scope import ScopeSelection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/scope", tags=["scope"])


@router.post("/evaluate")
async def evaluate_scope(
    body: ScopeEvaluationRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Buckets for the scope step plus the pruned selection map.

    Departments that another overlapping audit already audits land in
    ``has_conflict`` with the criteria still offerable there; the rest are
    in ``no_conflict``. Selections of departments no longer chosen are
    dropped from ``selection``.
    """
    selection = ScopeSelection(use_shared_standards=body.use_shared_standards)
    selection.sync_from_parent(body.selection)
    selection.set_departments(body.department_ids)

    used = await selection.load_used_criteria(client, body.start_date, body.end_date, body.audit_id)
    criteria = await criteria_api.list_criteria(client)
    buckets = selection.buckets(criteria)
    return {
        "buckets": jsonable_encoder(buckets),
        "used_criteria": {dept: sorted(ids) for dept, ids in used.items()},
        "selection": {key: sorted(ids) for key, ids in selection.snapshot().items()},
    }
