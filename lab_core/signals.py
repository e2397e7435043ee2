# lab_core/signals.py
from __future__ import annotations

import logging
from threading import local

from django.conf import settings
from django.core.mail import send_mail
from django.db.models.signals import post_delete, post_save
from django.dispatch import Signal, receiver

from lab_core.models import Doctor, InventoryItem, UserRole, WorkflowTransition
from lab_core.services import audit

logger = logging.getLogger(__name__)

# Sent after commit when a case enters accounting.
# kwargs: case, work_type, teeth_count, priority
case_ready_for_invoice = Signal()

# ===============================================================
# Thread-local user storage
# ===============================================================
_state = local()


def set_current_user(user):
    _state.user = user


def get_current_user():
    return getattr(_state, "user", None)


def _safe_username(user) -> str:
    if not user:
        return "system"
    return getattr(user, "username", "") or "user"


# ===============================================================
# CREATE / UPDATE / DELETE audit (directory objects)
# ===============================================================
AUDITED_MODELS = (Doctor, InventoryItem, UserRole)


@receiver(post_save)
def audit_create_update(sender, instance, created, **kwargs):
    if sender not in AUDITED_MODELS or kwargs.get("raw"):
        return

    audit.record(
        "CREATE" if created else "UPDATE",
        entity_type=sender.__name__.lower(),
        entity_id=instance.pk,
        user=get_current_user(),
        details={"model": sender.__name__, "object": str(instance)},
    )


@receiver(post_delete)
def audit_delete(sender, instance, **kwargs):
    if sender not in AUDITED_MODELS:
        return

    audit.record(
        "DELETE",
        entity_type=sender.__name__.lower(),
        entity_id=instance.pk,
        user=get_current_user(),
        details={"model": sender.__name__, "object": str(instance)},
    )


# ===============================================================
# Workflow transitions
# ===============================================================
@receiver(post_save, sender=WorkflowTransition)
def audit_workflow_transition(sender, instance: WorkflowTransition, created: bool, **kwargs):
    """
    Side effects of a recorded transition: an audit entry and, when
    enabled, an email to the configured recipients.
    """
    if not created or kwargs.get("raw"):
        return

    case = instance.case
    audit.record(
        "FORCE_STATUS" if instance.forced else "TRANSFER_CASE",
        entity_type="case",
        entity_id=case.pk,
        user=instance.performed_by or get_current_user(),
        details={
            "case_number": case.case_number,
            "from": instance.from_status,
            "to": instance.to_status,
            "department": instance.department,
            "rejection_reason": instance.rejection_reason,
        },
    )

    if not getattr(settings, "WORKFLOW_EMAIL_NOTIFICATIONS", False):
        return

    recipients = getattr(settings, "WORKFLOW_NOTIFY_EMAILS", None)
    if not recipients:
        return

    subject = (
        f"[{getattr(settings, 'LAB_NAME', 'Lab')}] Case {case.case_number} "
        f"{instance.from_status} -> {instance.to_status}"
    )

    body = "\n".join(
        [
            "Case transfer recorded.",
            "",
            f"Case: {case.case_number}",
            f"Patient: {case.patient_name}",
            f"Doctor: {case.doctor_name}",
            f"From: {instance.from_status}",
            f"To: {instance.to_status}",
            f"Reason: {instance.rejection_reason or '-'}",
            f"By: {_safe_username(instance.performed_by)}",
            f"At: {instance.started_at}",
        ]
    )

    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=list(recipients),
            fail_silently=False,
        )
    except Exception:
        logger.warning("Transition email for case %s not sent", case.case_number, exc_info=True)
