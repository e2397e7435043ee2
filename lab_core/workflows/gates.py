# lab_core/workflows/gates.py
"""
Department gates checked by the transition engine.

The transition table says which moves exist at all; the gates say whether
a particular case is ready to make one. Gates only read the case.
"""

from __future__ import annotations

from typing import List

from lab_core import workflows as wf
from lab_core.workflows.errors import CasePausedError, TransitionBlockedError, ValidationError
from lab_core.workflows.stages import COMPLETED, QC_PASS, stage_status


def check_reason(current: str, target: str, rejection_reason: str) -> None:
    if wf.requires_reason(current, target) and not str(rejection_reason or "").strip():
        kind = "Returning a case" if target == wf.RETURNED else f"Rejecting {current} -> {target}"
        raise ValidationError({"rejection_reason": [f"{kind} requires a rejection reason"]})


def check_pause(case, target: str) -> None:
    if case.current_status != wf.REMOVABLE or target in wf.EXIT_STATES:
        return
    pause = (case.removable_data or {}).get("current_pause")
    if pause:
        raise CasePausedError(case.current_status, target, reason=pause.get("reason") or "")


def blocking_reasons(case, target: str) -> List[str]:
    current = case.current_status
    reasons: List[str] = []

    if target == wf.REMOVABLE and current in (wf.RECEPTION, wf.QUALITY_CONTROL):
        if case.work_type not in wf.REMOVABLE_WORK_TYPES:
            reasons.append(
                f"work type '{case.work_type}' is not removable work "
                f"({', '.join(sorted(wf.REMOVABLE_WORK_TYPES))})"
            )

    elif current == wf.CAM_MILLING and target == wf.FINISHING:
        cam = case.cam_data or {}
        if cam.get("block_id") and not cam.get("material_deducted"):
            reasons.append("selected block has not been deducted from inventory; complete CAM work first")

    elif current == wf.FINISHING and target == wf.QUALITY_CONTROL:
        if stage_status(case.finishing_data, "ready_for_qc") != COMPLETED:
            reasons.append("finishing stage 'ready_for_qc' is not completed")

    elif current == wf.QUALITY_CONTROL and target == wf.ACCOUNTING:
        result = (case.qc_data or {}).get("overall_result")
        if result != QC_PASS:
            reasons.append(f"QC overall result is '{result or 'not set'}', not 'pass'")

    return reasons


def check_gates(case, target: str, *, rejection_reason: str = "") -> None:
    """
    Raise if the case may not make the (already table-valid) move to target.
    """
    check_reason(case.current_status, target, rejection_reason)
    check_pause(case, target)

    reasons = blocking_reasons(case, target)
    if reasons:
        raise TransitionBlockedError(case.current_status, target, reasons=reasons)
