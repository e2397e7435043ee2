# lab_core/services/cases.py
"""
Case entity store.

Creation, lookup, listing and detail edits for dental cases. The case's
current_status is never written here; status changes belong to
lab_core.workflows.executor.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional

from django.db import transaction
from django.db.models import F, Q, QuerySet
from django.utils import timezone
from django.utils.dateparse import parse_date

from lab_core import workflows as wf
from lab_core.models import DEPARTMENT_DATA_FIELDS, DentalCase, Doctor
from lab_core.permissions import require_roles
from lab_core.services import audit
from lab_core.services.numbering import generate_case_number
from lab_core.teeth import is_valid_teeth_numbers
from lab_core.workflows.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


IMMUTABLE_FIELDS = {"id", "case_number", "work_type", "received_date", "current_status"}
EDITABLE_FIELDS = {
    "expected_delivery_date",
    "priority",
    "doctor_notes",
    "internal_notes",
    "shade_color",
    "material",
}

# Statuses from which an invoice may be attached
INVOICE_STATES = {wf.ACCOUNTING, wf.READY_FOR_DELIVERY, wf.DELIVERED}


# ===============================================================
# Helpers
# ===============================================================

def _clean_text(value) -> str:
    return str(value or "").strip()


def _parse_delivery_date(value, errors: Dict[str, list]) -> Optional[datetime.date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        errors.setdefault("expected_delivery_date", []).append("Use the YYYY-MM-DD format")
    return parsed


def lock_case(case_id) -> DentalCase:
    try:
        return DentalCase.objects.select_for_update().get(pk=case_id)
    except (DentalCase.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Case", case_id)


# ===============================================================
# Create
# ===============================================================

def create_case(data: Mapping[str, Any], *, actor=None) -> DentalCase:
    """
    Register a case at reception.

    Required: doctor (id), patient_name (2+ characters), teeth_numbers,
    work_type. Every invalid field is reported at once; nothing is written
    when validation fails. An unknown doctor raises NotFoundError.
    """
    errors: Dict[str, list] = {}

    doctor_id = data.get("doctor")
    if doctor_id in (None, ""):
        errors["doctor"] = ["Doctor is required"]
    else:
        try:
            doctor_id = int(doctor_id)
        except (TypeError, ValueError):
            errors["doctor"] = ["Doctor must be referenced by id"]

    patient_name = _clean_text(data.get("patient_name"))
    if len(patient_name) < 2:
        errors["patient_name"] = ["Patient name must be at least 2 characters"]

    teeth_numbers = _clean_text(data.get("teeth_numbers"))
    if not teeth_numbers:
        errors["teeth_numbers"] = ["Teeth numbers are required"]
    elif not is_valid_teeth_numbers(teeth_numbers):
        errors["teeth_numbers"] = ["Invalid teeth numbers (e.g. 11,12,13 or 21-23)"]

    work_type = wf.normalize_state(data.get("work_type"))
    if work_type not in DentalCase.WorkType.values:
        errors["work_type"] = [f"Unknown work type: {work_type or '<empty>'}"]

    priority = wf.normalize_state(data.get("priority")) or DentalCase.Priority.NORMAL
    if priority not in DentalCase.Priority.values:
        errors["priority"] = [f"Unknown priority: {priority}"]

    expected = _parse_delivery_date(data.get("expected_delivery_date"), errors)

    if errors:
        raise ValidationError(errors)

    with transaction.atomic():
        try:
            doctor = Doctor.objects.select_for_update().get(pk=doctor_id)
        except Doctor.DoesNotExist:
            raise NotFoundError("Doctor", doctor_id)

        case = DentalCase.objects.create(
            case_number=generate_case_number(),
            doctor=doctor,
            doctor_name=doctor.name,
            patient_name=patient_name,
            work_type=work_type,
            teeth_numbers=teeth_numbers,
            shade_color=_clean_text(data.get("shade_color")),
            material=_clean_text(data.get("material")),
            priority=priority,
            current_status=wf.RECEPTION,
            received_date=timezone.now(),
            expected_delivery_date=expected,
            doctor_notes=_clean_text(data.get("doctor_notes")),
            internal_notes=_clean_text(data.get("internal_notes")),
            created_by=actor if actor is not None and getattr(actor, "is_authenticated", False) else None,
        )

        Doctor.objects.filter(pk=doctor.pk).update(total_cases=F("total_cases") + 1)

        audit.record(
            "CREATE_CASE",
            entity_type="case",
            entity_id=case.pk,
            user=actor,
            details={"case_number": case.case_number, "doctor": doctor.name, "work_type": work_type},
        )

    logger.info("Case %s received for %s (%s)", case.case_number, doctor.name, work_type)
    return case


# ===============================================================
# Read
# ===============================================================

def get_case(key) -> DentalCase:
    """
    Look a case up by primary key or by case number.
    """
    qs = DentalCase.objects.select_related("doctor", "created_by")
    text = str(key or "").strip()

    try:
        if isinstance(key, int) or text.isdigit():
            return qs.get(pk=int(text))
        return qs.get(case_number__iexact=text)
    except DentalCase.DoesNotExist:
        raise NotFoundError("Case", key)


def statuses_for_department(department: str) -> list:
    department = str(department or "").strip().lower()
    return [status for status, dept in wf.STATUS_DEPARTMENT.items() if dept == department]


def list_cases(filters: Optional[Mapping[str, Any]] = None) -> QuerySet:
    """
    Cases matching the given filters, newest first.

    Supported keys: status, department, doctor, work_type, priority, search.
    Search matches case number, patient name and doctor name, ignoring case.
    """
    filters = filters or {}
    qs = DentalCase.objects.select_related("doctor").order_by("-created_at", "-id")

    status = wf.normalize_state(filters.get("status"))
    if status:
        qs = qs.filter(current_status=status)

    department = filters.get("department")
    if department:
        qs = qs.filter(current_status__in=statuses_for_department(department))

    doctor = filters.get("doctor")
    if doctor not in (None, ""):
        try:
            doctor = int(doctor)
        except (TypeError, ValueError):
            raise ValidationError({"doctor": ["Doctor must be referenced by id"]})
        qs = qs.filter(doctor_id=doctor)

    work_type = wf.normalize_state(filters.get("work_type"))
    if work_type:
        qs = qs.filter(work_type=work_type)

    priority = wf.normalize_state(filters.get("priority"))
    if priority:
        qs = qs.filter(priority=priority)

    search = _clean_text(filters.get("search"))
    if search:
        qs = qs.filter(
            Q(case_number__icontains=search)
            | Q(patient_name__icontains=search)
            | Q(doctor_name__icontains=search)
        )

    return qs


# ===============================================================
# Department data
# ===============================================================

def update_department_data(case_id, department: str, partial_data: Mapping[str, Any]) -> DentalCase:
    """
    Shallow-merge partial_data into one department sub-record.

    Top-level keys in partial_data replace the stored ones; other keys are
    kept. current_status is left alone.
    """
    field = DEPARTMENT_DATA_FIELDS.get(str(department or "").strip().lower())
    if field is None:
        raise ValidationError(
            {"department": [f"Unknown department: {department}. Valid: {', '.join(sorted(DEPARTMENT_DATA_FIELDS))}"]}
        )
    if not isinstance(partial_data, Mapping):
        raise ValidationError({field: ["Department data must be an object"]})

    with transaction.atomic():
        case = lock_case(case_id)
        merged = dict(getattr(case, field) or {})
        merged.update(partial_data)
        setattr(case, field, merged)
        case.save(update_fields=[field, "updated_at"])

    return case


# ===============================================================
# Detail edits
# ===============================================================

def update_case_details(
    case_id,
    changes: Mapping[str, Any],
    *,
    actor=None,
    roles: Optional[Iterable[str]] = None,
) -> DentalCase:
    """
    Edit the mutable descriptive fields of a case.

    expected_delivery_date may only be changed by ADMIN or RECEPTIONIST
    when an acting user is given.
    """
    errors: Dict[str, list] = {}

    for name in changes:
        if name in IMMUTABLE_FIELDS:
            errors.setdefault(name, []).append("This field cannot be changed")
        elif name not in EDITABLE_FIELDS:
            errors.setdefault(name, []).append("Unknown or read-only field")

    values: Dict[str, Any] = {}
    for name in EDITABLE_FIELDS & set(changes):
        if name == "expected_delivery_date":
            values[name] = _parse_delivery_date(changes[name], errors)
        elif name == "priority":
            priority = wf.normalize_state(changes[name])
            if priority not in DentalCase.Priority.values:
                errors.setdefault(name, []).append(f"Unknown priority: {priority or '<empty>'}")
            values[name] = priority
        else:
            values[name] = _clean_text(changes[name])

    if errors:
        raise ValidationError(errors)

    if "expected_delivery_date" in values and (actor is not None or roles is not None):
        require_roles(actor, wf.DELIVERY_DATE_ROLES, action="Changing the delivery date", roles=roles)

    with transaction.atomic():
        case = lock_case(case_id)
        before = {name: getattr(case, name) for name in values}
        for name, value in values.items():
            setattr(case, name, value)
        case.save(update_fields=sorted(values) + ["updated_at"])

        audit.record(
            "UPDATE_CASE",
            entity_type="case",
            entity_id=case.pk,
            user=actor,
            details={
                "case_number": case.case_number,
                "changed": {name: [before[name], values[name]] for name in values},
            },
        )

    return case


# ===============================================================
# Invoice link
# ===============================================================

def link_invoice(case_id, invoice_id: str, *, total_cost=None, actor=None) -> DentalCase:
    """
    Attach the external invoice to a case that has reached accounting.

    An invoice can be linked once; relinking the same id is a no-op.
    """
    invoice_id = _clean_text(invoice_id)
    if not invoice_id:
        raise ValidationError({"invoice_id": ["Invoice id is required"]})

    cost = None
    if total_cost not in (None, ""):
        try:
            cost = Decimal(str(total_cost))
        except InvalidOperation:
            raise ValidationError({"total_cost": ["Total cost must be a number"]})
        if cost < 0:
            raise ValidationError({"total_cost": ["Total cost cannot be negative"]})

    with transaction.atomic():
        case = lock_case(case_id)

        if case.current_status not in INVOICE_STATES:
            raise ValidationError(
                {"invoice_id": [f"Case {case.case_number} is in {case.current_status}; invoices are linked from accounting on"]}
            )

        if case.invoice_id:
            if case.invoice_id == invoice_id:
                return case
            raise ValidationError({"invoice_id": [f"Case {case.case_number} is already invoiced ({case.invoice_id})"]})

        case.invoice_id = invoice_id
        fields = ["invoice_id", "updated_at"]
        if cost is not None:
            case.total_cost = cost
            fields.append("total_cost")
        case.save(update_fields=fields)

        audit.record(
            "LINK_INVOICE",
            entity_type="case",
            entity_id=case.pk,
            user=actor,
            details={"case_number": case.case_number, "invoice_id": invoice_id},
        )

    return case
