# lab_core/workflows/stages.py
"""
Vocabulary shared by the department handlers and the transition gates.
"""

from typing import Any, Dict, List, Set

# Department sub-record status
PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
REJECTED = "rejected"

RECORD_STATUSES: List[str] = [PENDING, IN_PROGRESS, COMPLETED]

# Finishing sub-pipeline, in order
FINISHING_STAGES: List[str] = [
    "receive",
    "clean",
    "base_color",
    "extra_color",
    "furnace_setup",
    "first_firing",
    "extra_firing",
    "polish",
    "visual_check",
    "ready_for_qc",
]

FIRING_STAGES: Set[str] = {"first_firing", "extra_firing"}

STAGE_STATUSES: List[str] = [PENDING, IN_PROGRESS, COMPLETED, REJECTED]

# QC
QC_CHECKS: List[str] = ["dimension_check", "color_check", "occlusion_check", "margin_check"]
QC_CHECK_RESULTS: List[str] = ["pass", "fail", "conditional"]
QC_PASS = "pass"
QC_FAIL = "fail"

# Removable
PROSTHETIC_TYPES: List[str] = [
    "denture_soft",
    "denture_hard",
    "denture_repair",
    "add_teeth",
    "soft_relining",
    "base_change",
    "temp_acrylic_crown",
    "twin_block",
    "expansion_appliance",
    "hawley_retainer",
    "space_maintainer",
    "other",
]

REMOVABLE_STAGES: List[str] = ["arrange", "cook", "ready"]
REMOVABLE_FINAL_STATUSES: List[str] = ["try_in", "delivery"]

STAGE_LABELS: Dict[str, str] = {
    "receive": "Receive",
    "clean": "Clean",
    "base_color": "Base color",
    "extra_color": "Extra color",
    "furnace_setup": "Furnace setup",
    "first_firing": "First firing",
    "extra_firing": "Extra firing",
    "polish": "Polish",
    "visual_check": "Visual check",
    "ready_for_qc": "Ready for QC",
}


def initial_stages() -> List[Dict[str, Any]]:
    return [
        {
            "stage": stage,
            "label": STAGE_LABELS[stage],
            "status": PENDING,
            "started_at": None,
            "completed_at": None,
            "technician_id": None,
            "technician_name": "",
            "notes": "",
            "rejection_reason": "",
        }
        for stage in FINISHING_STAGES
    ]


def stage_status(finishing_data, stage: str) -> str:
    for row in (finishing_data or {}).get("stages") or []:
        if row.get("stage") == stage:
            return row.get("status") or PENDING
    return PENDING
