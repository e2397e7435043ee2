# lab_core/departments/base.py
"""
Shared contract of the department handlers.

A handler owns one sub-record of a case (cad_data, cam_data, ...) and may
only write it while the case sits in that department. Saving never moves
the case; completing marks the sub-record done and still leaves the
transfer to the transition engine.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils import timezone

from lab_core.models import DentalCase
from lab_core.services import audit
from lab_core.services.cases import lock_case, update_department_data
from lab_core.workflows.errors import CaseNotInDepartmentError, ValidationError
from lab_core.workflows.stages import COMPLETED, IN_PROGRESS, PENDING

logger = logging.getLogger(__name__)


def to_json(value):
    """
    Round-trip through the JSON encoder used by the sub-record columns, so
    in-memory records look exactly like the ones read back from the database.
    """
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def now_iso() -> str:
    return to_json(timezone.now())


def operator_name(user) -> str:
    if user is None:
        return ""
    full = user.get_full_name() if hasattr(user, "get_full_name") else ""
    return full or getattr(user, "username", "")


class DepartmentHandler:
    department = ""
    case_status = ""
    serializer_class = None
    # Sub-record fields holding the operator, e.g. designer -> designer_id / designer_name
    operator_field = ""

    # -----------------------------------------------------------
    # Hooks
    # -----------------------------------------------------------
    def initial_record(self) -> Dict[str, Any]:
        return {"status": PENDING}

    def clean_record(self, case: DentalCase, record: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, Any]:
        return record

    def on_complete(self, case: DentalCase, record: Dict[str, Any], actor=None) -> Dict[str, Any]:
        return record

    # -----------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------
    def check_ownership(self, case: DentalCase) -> None:
        if case.current_status != self.case_status:
            raise CaseNotInDepartmentError(case.case_number, self.department, case.current_status)

    def validate(self, data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        serializer = self.serializer_class(data=dict(data or {}), partial=True)
        if not serializer.is_valid():
            raise ValidationError(serializer.errors)
        return to_json(dict(serializer.validated_data))

    def current_record(self, case: DentalCase) -> Dict[str, Any]:
        return dict(case.department_data(self.department) or self.initial_record())

    def stamp_operator(self, record: Dict[str, Any], actor) -> None:
        if not self.operator_field or actor is None or not getattr(actor, "is_authenticated", False):
            return
        record.setdefault(f"{self.operator_field}_id", str(actor.pk))
        record.setdefault(f"{self.operator_field}_name", operator_name(actor))

    def apply_status(self, record: Dict[str, Any], previous: Dict[str, Any]) -> None:
        old = previous.get("status") or PENDING
        new = record.get("status") or old

        if new == COMPLETED and old != COMPLETED:
            raise ValidationError(
                {"status": ["Use complete_department_work to mark department work completed"]}
            )
        if new == PENDING and old != PENDING:
            raise ValidationError({"status": [f"Work already {old}; cannot go back to pending"]})

        record["status"] = new
        if new == IN_PROGRESS and not record.get("start_time"):
            record["start_time"] = now_iso()

    def write(self, case: DentalCase, record: Dict[str, Any]) -> DentalCase:
        return update_department_data(case.pk, self.department, to_json(record))

    # -----------------------------------------------------------
    # Operations
    # -----------------------------------------------------------
    def save_department_data(self, case_id, data: Optional[Mapping[str, Any]], *, actor=None) -> DentalCase:
        """
        Upsert the sub-record. Saving the same payload twice leaves the case
        exactly as after the first save.
        """
        incoming = self.validate(data)

        with transaction.atomic():
            case = lock_case(case_id)
            self.check_ownership(case)

            previous = self.current_record(case)
            record = {**previous, **incoming}
            self.apply_status(record, previous)
            self.stamp_operator(record, actor)
            record = self.clean_record(case, record, previous)

            case = self.write(case, record)

            audit.record(
                "SAVE_DEPARTMENT_DATA",
                entity_type="case",
                entity_id=case.pk,
                user=actor,
                details={"case_number": case.case_number, "department": self.department, "fields": sorted(incoming)},
            )

        return case

    def complete_department_work(self, case_id, data: Optional[Mapping[str, Any]] = None, *, actor=None) -> DentalCase:
        """
        Save, then mark the sub-record completed. The case stays where it is.
        """
        incoming = self.validate(data)
        incoming.pop("status", None)

        with transaction.atomic():
            case = lock_case(case_id)
            self.check_ownership(case)

            previous = self.current_record(case)
            record = {**previous, **incoming}
            self.stamp_operator(record, actor)
            record = self.clean_record(case, record, previous)

            now = now_iso()
            if not record.get("start_time"):
                record["start_time"] = now
            record["status"] = COMPLETED
            record["end_time"] = now

            record = self.on_complete(case, record, actor)
            case = self.write(case, record)

            audit.record(
                "COMPLETE_DEPARTMENT_WORK",
                entity_type="case",
                entity_id=case.pk,
                user=actor,
                details={"case_number": case.case_number, "department": self.department},
            )

        logger.info("Case %s: %s work completed", case.case_number, self.department)
        return case
