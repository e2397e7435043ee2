# lab_core/departments/removable.py
"""
Removable prosthetics (dentures, ortho appliances).

A case can be put on hold for a clinical try-in. The open hold lives in
current_pause; resuming closes it and moves it to pause_history. While a
hold is open the transition engine refuses to move the case on.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.db import transaction

from lab_core import workflows as wf
from lab_core.models import DentalCase
from lab_core.permissions import require_roles
from lab_core.serializers_departments import RemovableDataSerializer
from lab_core.services import audit
from lab_core.services.cases import lock_case
from lab_core.workflows.errors import ValidationError
from lab_core.workflows.stages import IN_PROGRESS, PENDING

from .base import DepartmentHandler, now_iso, operator_name

logger = logging.getLogger(__name__)


class RemovableHandler(DepartmentHandler):
    department = "removable"
    case_status = wf.REMOVABLE
    serializer_class = RemovableDataSerializer
    operator_field = "technician"

    def initial_record(self):
        return {"status": PENDING, "current_pause": None, "pause_history": []}

    def clean_record(self, case, record, previous):
        record.setdefault("current_pause", None)
        record.setdefault("pause_history", [])
        return record

    def pause(self, case_id, reason: str, *, actor=None) -> DentalCase:
        reason = str(reason or "").strip()
        if not reason:
            raise ValidationError({"reason": ["A pause reason is required"]})

        with transaction.atomic():
            case = lock_case(case_id)
            self.check_ownership(case)

            record = self.clean_record(case, self.current_record(case), {})
            if record["current_pause"]:
                raise ValidationError({"status": [f"Case {case.case_number} is already paused"]})

            record["current_pause"] = {
                "reason": reason,
                "paused_at": now_iso(),
                "paused_by": operator_name(actor) or "system",
            }
            record["final_status"] = "try_in"
            if record.get("status", PENDING) == PENDING:
                record["status"] = IN_PROGRESS
                record.setdefault("start_time", record["current_pause"]["paused_at"])

            case = self.write(case, record)

            audit.record(
                "PAUSE_CASE",
                entity_type="case",
                entity_id=case.pk,
                user=actor,
                details={"case_number": case.case_number, "reason": reason},
            )

        logger.info("Case %s paused for try-in: %s", case.case_number, reason)
        return case

    def resume(self, case_id, *, actor=None, roles: Optional[Iterable[str]] = None) -> DentalCase:
        require_roles(actor, wf.RESUME_ROLES, action="Resuming a paused case", roles=roles)

        with transaction.atomic():
            case = lock_case(case_id)
            self.check_ownership(case)

            record = self.clean_record(case, self.current_record(case), {})
            pause = record["current_pause"]
            if not pause:
                raise ValidationError({"status": [f"Case {case.case_number} is not paused"]})

            closed = dict(pause)
            closed["resumed_at"] = now_iso()
            closed["resumed_by"] = operator_name(actor) or "system"

            record["pause_history"] = list(record["pause_history"]) + [closed]
            record["current_pause"] = None

            case = self.write(case, record)

            audit.record(
                "RESUME_CASE",
                entity_type="case",
                entity_id=case.pk,
                user=actor,
                details={"case_number": case.case_number, "paused_at": pause.get("paused_at")},
            )

        logger.info("Case %s resumed", case.case_number)
        return case
