"""Per-department criteria selection for the scope step of the plan wizard.

The selection maps a department id, or one of the pseudo-keys ``academy``
and ``shared``, to the criteria ids picked for it. It is mirrored with a
copy owned by the caller; both directions are dirty-checked so an
unchanged map is never re-published.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

import httpx

from ams.backend import audits as audits_api
from ams.backend import scope as scope_api
from ams.backend.client import BackendClient
from ams.backend.schemas import Criterion
from ams.planning.conflicts import criteria_used_by, overlapping_audits

logger = logging.getLogger(__name__)

ACADEMY_KEY = "academy"
SHARED_KEY = "shared"
PSEUDO_KEYS = frozenset({ACADEMY_KEY, SHARED_KEY})

SelectionMap = dict[str, set[str]]


def is_same_selection_map(a: Mapping[str, set[str]], b: Mapping[str, set[str]]) -> bool:
    if a.keys() != b.keys():
        return False
    return all(set(a[k]) == set(b[k]) for k in a)


@dataclass
class ScopeBuckets:
    """Selected departments split by whether another audit already uses criteria there."""

    # Department id -> criteria still offerable (not used by a conflicting audit).
    has_conflict: dict[str, list[Criterion]] = field(default_factory=dict)
    no_conflict: list[str] = field(default_factory=list)
    # True when the no-conflict departments share the ``shared`` selection.
    shared_block: bool = False


class ScopeSelection:
    """View-model of the wizard's scope step."""

    def __init__(
        self,
        on_change: Callable[[SelectionMap], None] | None = None,
        *,
        use_shared_standards: bool = False,
    ) -> None:
        self._selection: SelectionMap = {}
        self._published: SelectionMap = {}
        self._on_change = on_change
        self.use_shared_standards = use_shared_standards
        self.department_ids: list[str] = []
        self.used_criteria: dict[str, set[str]] = {}

    # -- parent synchronisation ---------------------------------------------

    def snapshot(self) -> SelectionMap:
        return copy.deepcopy(self._selection)

    def sync_from_parent(self, mapping: Mapping[str, Iterable[str]]) -> bool:
        """Adopt the parent's map; returns False when nothing changed."""
        incoming = {str(k): {str(c) for c in v} for k, v in mapping.items()}
        if is_same_selection_map(incoming, self._selection):
            return False
        self._selection = incoming
        # The parent already holds this state.
        self._published = copy.deepcopy(incoming)
        return True

    def _publish(self) -> None:
        if is_same_selection_map(self._selection, self._published):
            return
        self._published = self.snapshot()
        if self._on_change is not None:
            self._on_change(self.snapshot())

    # -- editing ------------------------------------------------------------

    def set_departments(self, department_ids: Iterable[str]) -> None:
        """Replace the selected departments, pruning entries of removed ones."""
        self.department_ids = list(dict.fromkeys(str(d) for d in department_ids))
        keep = set(self.department_ids) | PSEUDO_KEYS
        self._selection = {k: v for k, v in self._selection.items() if k in keep}
        self.used_criteria = {k: v for k, v in self.used_criteria.items() if k in keep}
        self._publish()

    def toggle(self, key: str, criteria_id: str) -> bool:
        """Flip one criterion for ``key``; returns whether it is now selected."""
        chosen = self._selection.setdefault(str(key), set())
        criteria_id = str(criteria_id)
        if criteria_id in chosen:
            chosen.discard(criteria_id)
            selected = False
        else:
            chosen.add(criteria_id)
            selected = True
        self._publish()
        return selected

    def select(self, key: str, criteria_ids: Iterable[str]) -> None:
        self._selection[str(key)] = {str(c) for c in criteria_ids}
        self._publish()

    def selected_for(self, key: str) -> set[str]:
        return set(self._selection.get(str(key), set()))

    def selected_criteria_ids(self) -> set[str]:
        """Union of all selections, as attached on submit."""
        return {c for chosen in self._selection.values() for c in chosen}

    # -- conflicts ----------------------------------------------------------

    async def load_used_criteria(
        self,
        client: BackendClient,
        start_date: date,
        end_date: date,
        audit_id: str | None = None,
    ) -> dict[str, set[str]]:
        """Load, per selected department, criteria other overlapping audits use there.

        Departments whose set is empty are left out, so having an entry
        means having a conflict.
        """
        used: dict[str, set[str]] = {}
        if not self.department_ids:
            self.used_criteria = used
            return used

        try:
            in_period = await audits_api.list_audits_by_period(client, start_date, end_date)
            others = overlapping_audits(in_period, audit_id, start_date, end_date)
            scopes = await asyncio.gather(
                *(scope_api.list_scope_departments_for_audit(client, a.audit_id) for a in others)
            )
            pairs = [
                (dept_id, audit.audit_id)
                for audit, scope_depts in zip(others, scopes, strict=True)
                for dept_id in self.department_ids
                if dept_id in {sd.dept_id for sd in scope_depts}
            ]
            results = await asyncio.gather(*(criteria_used_by(client, a, d) for d, a in pairs))
        except httpx.HTTPError as exc:
            logger.warning("Could not load used criteria: %s", exc)
            self.used_criteria = used
            return used

        for (dept_id, _), criteria_ids in zip(pairs, results, strict=True):
            used.setdefault(dept_id, set()).update(criteria_ids)
        self.used_criteria = {k: v for k, v in used.items() if v}
        return self.used_criteria

    def buckets(self, criteria: Iterable[Criterion]) -> ScopeBuckets:
        """Partition the selected departments; each lands in exactly one bucket."""
        criteria = list(criteria)
        result = ScopeBuckets(shared_block=self.use_shared_standards)
        for dept_id in self.department_ids:
            used = self.used_criteria.get(dept_id)
            if used:
                result.has_conflict[dept_id] = [c for c in criteria if c.criteria_id not in used]
            else:
                result.no_conflict.append(dept_id)
        return result
