# lab_core/workflows/timeline.py

from datetime import timedelta
from typing import Any, Dict, List

from django.utils.timezone import now

from lab_core.models import WorkflowTransition


def case_timeline(case) -> List[Dict[str, Any]]:
    """
    History of a case, one row per stop, with the time spent there.

    The stop that is still open is measured up to now unless the case
    has reached a terminal state.
    """
    entries = list(
        WorkflowTransition.objects.filter(case=case)
        .select_related("performed_by")
        .order_by("started_at", "id")
    )

    rows: List[Dict[str, Any]] = []
    for i, entry in enumerate(entries):
        ended_at = entries[i + 1].started_at if i + 1 < len(entries) else None

        if ended_at is not None:
            dwell = ended_at - entry.started_at
        elif case.is_terminal:
            dwell = None
        else:
            dwell = now() - entry.started_at

        rows.append(
            {
                "from_status": entry.from_status,
                "to_status": entry.to_status,
                "department": entry.department,
                "started_at": entry.started_at,
                "ended_at": ended_at,
                "dwell_seconds": None if dwell is None else max(0, int(dwell.total_seconds())),
                "notes": entry.notes,
                "rejection_reason": entry.rejection_reason,
                "assigned_to": entry.assigned_to,
                "performed_by": entry.performed_by.username if entry.performed_by else None,
                "forced": entry.forced,
            }
        )

    return rows


def compute_time_in_states(case) -> Dict[str, timedelta]:
    """
    Total time spent per status, summed over repeated visits.
    """
    durations: Dict[str, timedelta] = {}
    for row in case_timeline(case):
        if row["dwell_seconds"] is None:
            continue
        durations[row["to_status"]] = (
            durations.get(row["to_status"], timedelta()) + timedelta(seconds=row["dwell_seconds"])
        )
    return durations
