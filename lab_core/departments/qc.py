# lab_core/departments/qc.py
"""
Quality control.

The four checks and the overall result are recorded independently; the
inspector decides the overall result. A failing result has to say why and
where the work goes back to.
"""

from __future__ import annotations

from django.db import transaction

from lab_core import workflows as wf
from lab_core.models import DentalCase
from lab_core.serializers_departments import QcDataSerializer
from lab_core.services.cases import lock_case
from lab_core.workflows.errors import ValidationError
from lab_core.workflows.executor import transfer_case
from lab_core.workflows.stages import COMPLETED, PENDING, QC_FAIL, QC_PASS

from .base import DepartmentHandler, now_iso


class QcHandler(DepartmentHandler):
    department = "qc"
    case_status = wf.QUALITY_CONTROL
    serializer_class = QcDataSerializer
    operator_field = "inspector"

    def initial_record(self):
        return {"status": PENDING}

    def clean_record(self, case, record, previous):
        if not record.get("inspection_date"):
            record["inspection_date"] = now_iso()

        if record.get("overall_result") == QC_FAIL:
            errors = {}
            if record.get("return_to_department") == wf.REMOVABLE and case.work_type not in wf.REMOVABLE_WORK_TYPES:
                errors["return_to_department"] = [f"Work type '{case.work_type}' cannot go back to removable"]
            if not str(record.get("rejection_reason") or "").strip():
                errors["rejection_reason"] = ["A failed inspection requires a rejection reason"]
            if not record.get("return_to_department"):
                errors["return_to_department"] = ["A failed inspection requires the department to return to"]
            if errors:
                raise ValidationError(errors)
        return record

    def conclude(self, case_id, *, actor=None, notes: str = "") -> DentalCase:
        """
        Close the inspection and move the case: to accounting on pass, back
        to return_to_department with the rejection reason on fail.
        """
        with transaction.atomic():
            case = lock_case(case_id)
            self.check_ownership(case)

            record = case.qc_data or {}
            result = record.get("overall_result")
            if result not in (QC_PASS, QC_FAIL):
                raise ValidationError({"overall_result": ["Set the overall result before concluding the inspection"]})

            if record.get("status") != COMPLETED:
                self.complete_department_work(case.pk, actor=actor)

            if result == QC_PASS:
                return transfer_case(case.pk, wf.ACCOUNTING, notes=notes, actor=actor)

            return transfer_case(
                case.pk,
                record["return_to_department"],
                notes=notes,
                rejection_reason=record["rejection_reason"],
                actor=actor,
            )
