# lab_core/workflows/executor.py

from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from lab_core import workflows as wf
from lab_core.models import DentalCase, WorkflowTransition
from lab_core.permissions import require_roles, resolve_roles
from lab_core.services.cases import lock_case
from lab_core.signals import case_ready_for_invoice
from lab_core.workflows.errors import (
    InvalidTransitionError,
    TransitionConflictError,
    ValidationError,
)
from lab_core.workflows.gates import check_gates
from lab_core.workflows.rework import reentry_updates

logger = logging.getLogger(__name__)


def _username(user) -> str:
    if user is None:
        return "system"
    return getattr(user, "username", "") or str(user)


def _actor(user):
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


def _commit_status(case: DentalCase, target: str, now, extra=None) -> None:
    """
    Conditional write: only applies if nobody changed the row since it was read.
    extra holds further column updates written along with the status.
    """
    updates = {
        **(extra or {}),
        "current_status": target,
        "version": F("version") + 1,
        "updated_at": now,
    }
    if target == wf.DELIVERED:
        updates["actual_delivery_date"] = now

    rows = DentalCase.objects.filter(
        pk=case.pk,
        current_status=case.current_status,
        version=case.version,
    ).update(**updates)

    if rows != 1:
        observed = (
            DentalCase.objects.filter(pk=case.pk)
            .values_list("current_status", flat=True)
            .first()
        )
        raise TransitionConflictError(case.current_status, target, observed=observed or "<deleted>")


def _notify_invoice_ready(case: DentalCase) -> None:
    transaction.on_commit(
        lambda: case_ready_for_invoice.send(
            sender=DentalCase,
            case=case,
            work_type=case.work_type,
            teeth_count=case.teeth_count,
            priority=case.priority,
        )
    )


def transfer_case(
    case_id,
    to_status: str,
    *,
    notes: str = "",
    rejection_reason: str = "",
    assigned_to: str = "",
    actor=None,
    expected_status: Optional[str] = None,
) -> DentalCase:
    """
    Move a case to its next department.

    Order of checks: the case must exist, must still be in expected_status
    (when given), the move must be an edge of the transition table, the actor
    (when given) must hold a permitted role, and the department gates must be
    satisfied. The history append and the status write commit together or
    not at all.
    """
    target = wf.normalize_state(to_status)

    with transaction.atomic():
        case = lock_case(case_id)
        current = case.current_status

        if expected_status is not None:
            expected = wf.normalize_state(expected_status)
            if expected != current:
                raise TransitionConflictError(expected, target, observed=current)

        wf.validate_transition(current, target)

        if actor is not None:
            wf.validate_transition_with_role(current, target, resolve_roles(actor))

        check_gates(case, target, rejection_reason=rejection_reason)

        now = timezone.now()
        reentry = reentry_updates(case, target, rejection_reason=rejection_reason, now=now)
        _commit_status(case, target, now, extra=reentry)

        WorkflowTransition.objects.create(
            case=case,
            from_status=current,
            to_status=target,
            department=wf.STATUS_DEPARTMENT.get(target, ""),
            notes=str(notes or "").strip(),
            rejection_reason=str(rejection_reason or "").strip(),
            assigned_to=str(assigned_to or "").strip(),
            performed_by=_actor(actor),
            started_at=now,
        )

        case.refresh_from_db()

        if target == wf.ACCOUNTING:
            _notify_invoice_ready(case)

    logger.info(
        "Case %s transferred %s -> %s by %s",
        case.case_number,
        current,
        target,
        _username(actor),
    )
    return case


def force_status(
    case_id,
    status: str,
    *,
    actor=None,
    actor_role: Optional[str] = None,
    notes: str = "",
) -> DentalCase:
    """
    Administrative override: set any status, bypassing the table and gates.

    The capability check uses actor_role when given, otherwise the roles of
    actor. The move is still recorded in the history, flagged as forced.
    """
    target = wf.normalize_state(status)
    roles = [actor_role] if actor_role is not None else resolve_roles(actor)
    require_roles(actor, wf.FORCE_STATUS_ROLES, action="Forcing a case status", roles=roles)

    if target not in wf.CASE_STATES:
        raise InvalidTransitionError("", target, message=f"Unknown case status: {target or '<empty>'}")

    with transaction.atomic():
        case = lock_case(case_id)
        current = case.current_status

        if current == target:
            raise ValidationError({"status": [f"Case {case.case_number} is already {target}"]})

        now = timezone.now()
        _commit_status(case, target, now)

        WorkflowTransition.objects.create(
            case=case,
            from_status=current,
            to_status=target,
            department=wf.STATUS_DEPARTMENT.get(target, ""),
            notes=str(notes or "").strip(),
            forced=True,
            performed_by=_actor(actor),
            started_at=now,
        )

        case.refresh_from_db()

    logger.warning(
        "Case %s status forced %s -> %s by %s",
        case.case_number,
        current,
        target,
        _username(actor),
    )
    return case
