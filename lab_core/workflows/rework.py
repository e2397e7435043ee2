# lab_core/workflows/rework.py
"""
Sub-record resets applied when a case re-enters a department.

A QC rejection sends work back to a department whose record already says
completed; that record is reopened so the work has to be done again. A
case arriving at QC starts a fresh inspection, earlier inspections are
kept in previous_inspections.

The returned column updates are written by the engine together with the
status change.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder

from lab_core import workflows as wf
from lab_core.models.cases import DEPARTMENT_DATA_FIELDS
from lab_core.workflows.stages import IN_PROGRESS, PENDING, initial_stages

_encoder = DjangoJSONEncoder()


def _reopen(department: str, record: Dict[str, Any], reason: str, stamp: str) -> Dict[str, Any]:
    record = dict(record)

    entry = {"reopened_at": stamp, "reason": reason, "previous_status": record.get("status") or PENDING}
    if department == "finishing":
        entry["stages"] = record.get("stages") or []
        record["stages"] = initial_stages()
    elif department == "cam":
        record["material_deducted"] = False
        record["inventory_transaction_id"] = None

    record["rework_history"] = list(record.get("rework_history") or []) + [entry]
    record["rework_count"] = int(record.get("rework_count") or 0) + 1
    record["status"] = IN_PROGRESS
    record["end_time"] = None
    return record


def _fresh_inspection(record: Dict[str, Any]) -> Dict[str, Any]:
    previous = list(record.get("previous_inspections") or [])
    last = {k: v for k, v in record.items() if k != "previous_inspections"}
    if last.get("overall_result") or last.get("status", PENDING) != PENDING:
        previous.append(last)
    return {"status": PENDING, "previous_inspections": previous}


def reentry_updates(case, target: str, *, rejection_reason: str = "", now=None) -> Dict[str, Optional[dict]]:
    """
    Column updates for a case about to move from its current status to target.
    """
    current = case.current_status
    updates: Dict[str, Optional[dict]] = {}

    if wf.is_rejection(current, target):
        department = wf.STATUS_DEPARTMENT[target]
        field = DEPARTMENT_DATA_FIELDS[department]
        record = getattr(case, field)
        if record:
            stamp = _encoder.default(now) if now is not None else None
            updates[field] = _reopen(department, record, str(rejection_reason or "").strip(), stamp)

    if target == wf.QUALITY_CONTROL and case.qc_data:
        updates["qc_data"] = _fresh_inspection(case.qc_data)

    return updates
