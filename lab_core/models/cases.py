# lab_core/models/cases.py

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from lab_core import workflows as wf
from lab_core.teeth import count_teeth
from lab_core.workflows.guards import AppendOnlyModel, WorkflowWriteGuardMixin

from .core import Doctor, TimeStampedModel


# Department key -> JSON column on DentalCase
DEPARTMENT_DATA_FIELDS = {
    "cad": "cad_data",
    "cam": "cam_data",
    "finishing": "finishing_data",
    "removable": "removable_data",
    "qc": "qc_data",
}


# ============================================================
# Case number counter
# ============================================================
class CaseSequence(models.Model):
    """One row per year; last_value is bumped under a row lock."""

    year = models.PositiveIntegerField(unique=True)
    last_value = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.year}: {self.last_value}"


# ============================================================
# Dental case
# ============================================================
class DentalCase(WorkflowWriteGuardMixin, TimeStampedModel):
    """One unit of lab work tracked from reception to delivery."""

    class WorkType(models.TextChoices):
        ZIRCONIA = "zirconia", "Zirconia"
        PFM = "pfm", "PFM"
        EMAX = "emax", "E-max"
        IMPLANT = "implant", "Implant"
        ORTHO = "ortho", "Orthodontics"
        REMOVABLE = "removable", "Removable"
        COMPOSITE = "composite", "Composite"
        METAL_FRAMEWORK = "metal_framework", "Metal framework"
        DENTURE = "denture", "Denture"
        OTHER = "other", "Other"

    class Priority(models.TextChoices):
        NORMAL = "normal", "Normal"
        URGENT = "urgent", "Urgent"
        RUSH = "rush", "Rush"

    class Status(models.TextChoices):
        RECEPTION = wf.RECEPTION, "Reception"
        CAD_DESIGN = wf.CAD_DESIGN, "CAD design"
        CAM_MILLING = wf.CAM_MILLING, "CAM milling"
        FINISHING = wf.FINISHING, "Finishing"
        REMOVABLE = wf.REMOVABLE, "Removable prosthetics"
        QUALITY_CONTROL = wf.QUALITY_CONTROL, "Quality control"
        ACCOUNTING = wf.ACCOUNTING, "Accounting"
        READY_FOR_DELIVERY = wf.READY_FOR_DELIVERY, "Ready for delivery"
        DELIVERED = wf.DELIVERED, "Delivered"
        RETURNED = wf.RETURNED, "Returned"
        CANCELLED = wf.CANCELLED, "Cancelled"

    case_number = models.CharField(max_length=32, unique=True, editable=False)

    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name="cases")
    doctor_name = models.CharField(max_length=255)
    patient_name = models.CharField(max_length=255, db_index=True)

    work_type = models.CharField(max_length=20, choices=WorkType.choices)
    teeth_numbers = models.CharField(max_length=255)
    shade_color = models.CharField(max_length=20, blank=True)
    material = models.CharField(max_length=100, blank=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.NORMAL)

    current_status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.RECEPTION,
        db_index=True,
    )

    received_date = models.DateTimeField(default=timezone.now)
    expected_delivery_date = models.DateField(null=True, blank=True)
    actual_delivery_date = models.DateTimeField(null=True, blank=True)

    cad_data = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    cam_data = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    finishing_data = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    removable_data = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    qc_data = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)

    total_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    invoice_id = models.CharField(max_length=64, blank=True)

    doctor_notes = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_cases",
    )

    # Bumped by every committed transfer; used for optimistic concurrency
    version = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["current_status", "priority"], name="case_status_priority_idx"),
            models.Index(fields=["doctor", "current_status"], name="case_doctor_status_idx"),
        ]

    def __str__(self):
        return f"{self.case_number} ({self.patient_name})"

    @property
    def department(self) -> str:
        return wf.STATUS_DEPARTMENT.get(self.current_status, "")

    @property
    def is_terminal(self) -> bool:
        return wf.is_terminal(self.current_status)

    @property
    def teeth_count(self) -> int:
        return count_teeth(self.teeth_numbers)

    @property
    def is_paused(self) -> bool:
        return bool((self.removable_data or {}).get("current_pause"))

    def department_data(self, department: str):
        return getattr(self, DEPARTMENT_DATA_FIELDS[department])


# ============================================================
# Workflow history (append-only)
# ============================================================
class WorkflowTransition(AppendOnlyModel):
    case = models.ForeignKey(
        DentalCase,
        on_delete=models.CASCADE,
        related_name="workflow_history",
    )
    from_status = models.CharField(max_length=32)
    to_status = models.CharField(max_length=32)
    department = models.CharField(max_length=32, blank=True)

    notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    assigned_to = models.CharField(max_length=255, blank=True)
    forced = models.BooleanField(default=False)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="case_transitions",
    )

    started_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["started_at", "id"]
        indexes = [
            models.Index(fields=["case", "started_at"], name="case_history_idx"),
        ]

    def __str__(self):
        return f"{self.case_id}: {self.from_status} -> {self.to_status}"
