# lab_core/departments/finishing.py
"""
Finishing department and its internal ten-stage sub-pipeline.

Stages run strictly in order. Rejecting a stage hands the work back to the
stage before it without touching the department record status. Stage
bookkeeping never changes the case status; starting the first stage only
moves a pending record to in_progress.
"""

from __future__ import annotations

import logging

from django.db import transaction

from lab_core import workflows as wf
from lab_core.models import DentalCase
from lab_core.serializers_departments import FinishingDataSerializer
from lab_core.services import audit
from lab_core.services.cases import lock_case
from lab_core.workflows.errors import ValidationError
from lab_core.workflows.stages import (
    COMPLETED,
    FINISHING_STAGES,
    FIRING_STAGES,
    IN_PROGRESS,
    PENDING,
    REJECTED,
    initial_stages,
)

from .base import DepartmentHandler, now_iso, operator_name

logger = logging.getLogger(__name__)


class FinishingHandler(DepartmentHandler):
    department = "finishing"
    case_status = wf.FINISHING
    serializer_class = FinishingDataSerializer
    operator_field = "technician"

    def initial_record(self):
        return {"status": PENDING, "stages": initial_stages(), "firing_cycles": 0}

    def clean_record(self, case, record, previous):
        if not record.get("stages"):
            record["stages"] = initial_stages()
        record.setdefault("firing_cycles", 0)
        return record

    # -----------------------------------------------------------
    # Stage bookkeeping
    # -----------------------------------------------------------
    def _stage_index(self, stage: str) -> int:
        stage = str(stage or "").strip().lower()
        if stage not in FINISHING_STAGES:
            raise ValidationError(
                {"stage": [f"Unknown finishing stage: {stage or '<empty>'}. Valid: {', '.join(FINISHING_STAGES)}"]}
            )
        return FINISHING_STAGES.index(stage)

    def _update_stage(self, case_id, stage: str, action: str, mutate, *, actor=None):
        index = self._stage_index(stage)

        with transaction.atomic():
            case = lock_case(case_id)
            self.check_ownership(case)

            record = self.clean_record(case, self.current_record(case), {})
            stages = [dict(row) for row in record["stages"]]
            mutate(record, stages, index)
            record["stages"] = stages

            case = self.write(case, record)

            audit.record(
                f"FINISHING_STAGE_{action.upper()}",
                entity_type="case",
                entity_id=case.pk,
                user=actor,
                details={"case_number": case.case_number, "stage": FINISHING_STAGES[index]},
            )

        logger.info("Case %s: finishing stage %s %s", case.case_number, FINISHING_STAGES[index], action)
        return case

    def start_stage(self, case_id, stage: str, *, actor=None) -> DentalCase:
        def mutate(record, stages, index):
            row = stages[index]
            if row["status"] == IN_PROGRESS:
                return
            if row["status"] == COMPLETED:
                raise ValidationError({"stage": [f"Stage {row['stage']} is already completed"]})
            if index > 0 and stages[index - 1]["status"] != COMPLETED:
                raise ValidationError(
                    {"stage": [f"Stage {stages[index - 1]['stage']} must be completed before {row['stage']}"]}
                )

            row["status"] = IN_PROGRESS
            row["started_at"] = now_iso()
            row["completed_at"] = None
            if actor is not None and getattr(actor, "is_authenticated", False):
                row["technician_id"] = str(actor.pk)
                row["technician_name"] = operator_name(actor)

            if record.get("status", PENDING) == PENDING:
                record["status"] = IN_PROGRESS
            if not record.get("start_time"):
                record["start_time"] = row["started_at"]

        return self._update_stage(case_id, stage, "started", mutate, actor=actor)

    def complete_stage(self, case_id, stage: str, *, notes: str = "", actor=None) -> DentalCase:
        def mutate(record, stages, index):
            row = stages[index]
            if row["status"] != IN_PROGRESS:
                raise ValidationError({"stage": [f"Stage {row['stage']} is {row['status']}; start it first"]})

            row["status"] = COMPLETED
            row["completed_at"] = now_iso()
            row["rejection_reason"] = ""
            if notes:
                row["notes"] = notes
            if row["stage"] in FIRING_STAGES:
                record["firing_cycles"] = int(record.get("firing_cycles") or 0) + 1

        return self._update_stage(case_id, stage, "completed", mutate, actor=actor)

    def reject_stage(self, case_id, stage: str, reason: str, *, actor=None) -> DentalCase:
        """
        Send the work back one stage: this stage becomes rejected and the
        previous stage is reopened.
        """
        reason = str(reason or "").strip()
        if not reason:
            raise ValidationError({"reason": ["A rejection reason is required"]})

        def mutate(record, stages, index):
            row = stages[index]
            if index == 0:
                raise ValidationError({"stage": [f"Stage {row['stage']} has no previous stage to return to"]})
            if row["status"] != IN_PROGRESS:
                raise ValidationError({"stage": [f"Stage {row['stage']} is {row['status']}; only work in progress can be rejected"]})

            row["status"] = REJECTED
            row["rejection_reason"] = reason
            row["completed_at"] = None

            prev = stages[index - 1]
            prev["status"] = IN_PROGRESS
            prev["completed_at"] = None

        return self._update_stage(case_id, stage, "rejected", mutate, actor=actor)
