# lab_core/services/delivery.py

from __future__ import annotations

from django.db.models import QuerySet

from lab_core import workflows as wf
from lab_core.models import DentalCase
from lab_core.workflows.executor import transfer_case


def cases_ready_for_delivery() -> QuerySet:
    """
    Delivery queue, earliest promised date first.
    """
    return (
        DentalCase.objects.filter(current_status=wf.READY_FOR_DELIVERY)
        .select_related("doctor")
        .order_by("expected_delivery_date", "created_at", "id")
    )


def deliver_case(case_id, *, received_by: str = "", notes: str = "", actor=None) -> DentalCase:
    received_by = str(received_by or "").strip()
    parts = [p for p in (f"Received by {received_by}" if received_by else "", str(notes or "").strip()) if p]
    return transfer_case(
        case_id,
        wf.DELIVERED,
        notes=". ".join(parts),
        assigned_to=received_by,
        actor=actor,
        expected_status=wf.READY_FOR_DELIVERY,
    )
