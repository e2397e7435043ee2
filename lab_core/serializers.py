# lab_core/serializers.py
from __future__ import annotations

from typing import Any, Dict

from django.contrib.auth import get_user_model
from rest_framework import serializers

from . import workflows as wf
from .models import AuditLog, DentalCase, Doctor, InventoryItem, WorkflowTransition
from .services.cases import EDITABLE_FIELDS, IMMUTABLE_FIELDS


# ===============================================================
# Helpers
# ===============================================================

class ImmutableFieldsMixin:
    """
    Blocks updates to selected fields if they appear in the incoming payload.
    """
    immutable_fields: tuple[str, ...] = ()

    def to_internal_value(self, data):
        blocked = [f for f in self.immutable_fields if f in (data or {})]
        if blocked:
            raise serializers.ValidationError({f: "This field is immutable." for f in blocked})
        return super().to_internal_value(data)


class UserSlimSerializer(serializers.ModelSerializer):
    class Meta:
        model = get_user_model()
        fields = ("id", "username", "email")
        read_only_fields = fields


# ===============================================================
# Directory
# ===============================================================

class DoctorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Doctor
        fields = ("id", "name", "clinic", "phone", "email", "total_cases", "is_active")
        read_only_fields = ("total_cases",)


class InventoryItemSerializer(serializers.ModelSerializer):
    is_low = serializers.BooleanField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = (
            "id",
            "name",
            "sku",
            "category",
            "unit",
            "current_stock",
            "minimum_stock",
            "cost_per_unit",
            "is_low",
        )


# ===============================================================
# Cases
# ===============================================================

class WorkflowTransitionSerializer(serializers.ModelSerializer):
    performed_by = serializers.CharField(source="performed_by.username", read_only=True, default=None)

    class Meta:
        model = WorkflowTransition
        fields = (
            "id",
            "from_status",
            "to_status",
            "department",
            "started_at",
            "notes",
            "rejection_reason",
            "assigned_to",
            "performed_by",
            "forced",
        )
        read_only_fields = fields


class DentalCaseSerializer(serializers.ModelSerializer):
    """
    Read representation of a case. Writes go through the case services.
    """

    department = serializers.CharField(read_only=True)
    teeth_count = serializers.IntegerField(read_only=True)
    is_paused = serializers.BooleanField(read_only=True)
    is_terminal = serializers.BooleanField(read_only=True)
    created_by = UserSlimSerializer(read_only=True)

    class Meta:
        model = DentalCase
        fields = (
            "id",
            "case_number",
            "doctor",
            "doctor_name",
            "patient_name",
            "work_type",
            "teeth_numbers",
            "teeth_count",
            "shade_color",
            "material",
            "priority",
            "current_status",
            "department",
            "is_paused",
            "is_terminal",
            "received_date",
            "expected_delivery_date",
            "actual_delivery_date",
            "cad_data",
            "cam_data",
            "finishing_data",
            "removable_data",
            "qc_data",
            "total_cost",
            "invoice_id",
            "doctor_notes",
            "internal_notes",
            "created_by",
            "version",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class DentalCaseDetailSerializer(DentalCaseSerializer):
    workflow_history = WorkflowTransitionSerializer(many=True, read_only=True)
    allowed_next = serializers.SerializerMethodField()

    class Meta(DentalCaseSerializer.Meta):
        fields = DentalCaseSerializer.Meta.fields + ("workflow_history", "allowed_next")
        read_only_fields = fields

    def get_allowed_next(self, obj) -> list:
        return wf.allowed_next_states(obj.current_status)


class CaseCreateSerializer(serializers.Serializer):
    doctor = serializers.IntegerField()
    patient_name = serializers.CharField()
    work_type = serializers.ChoiceField(choices=DentalCase.WorkType.choices)
    teeth_numbers = serializers.CharField()
    priority = serializers.ChoiceField(choices=DentalCase.Priority.choices, required=False)
    shade_color = serializers.CharField(required=False, allow_blank=True)
    material = serializers.CharField(required=False, allow_blank=True)
    expected_delivery_date = serializers.DateField(required=False, allow_null=True)
    doctor_notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)


class CaseDetailUpdateSerializer(ImmutableFieldsMixin, serializers.Serializer):
    immutable_fields = tuple(sorted(IMMUTABLE_FIELDS))

    priority = serializers.ChoiceField(choices=DentalCase.Priority.choices, required=False)
    expected_delivery_date = serializers.DateField(required=False, allow_null=True)
    shade_color = serializers.CharField(required=False, allow_blank=True)
    material = serializers.CharField(required=False, allow_blank=True)
    doctor_notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(self.initial_data or {}) - EDITABLE_FIELDS)
        if unknown:
            raise serializers.ValidationError({f: "Unknown or read-only field." for f in unknown})
        return attrs


# ===============================================================
# Workflow actions
# ===============================================================

class TransferSerializer(serializers.Serializer):
    to_status = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    rejection_reason = serializers.CharField(required=False, allow_blank=True, default="")
    assigned_to = serializers.CharField(required=False, allow_blank=True, default="")
    expected_status = serializers.CharField(required=False)


class ForceStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class DeliverySerializer(serializers.Serializer):
    received_by = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class InvoiceLinkSerializer(serializers.Serializer):
    invoice_id = serializers.CharField()
    total_cost = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)


class ConcludeSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# Audit (read-only)
# ===============================================================

class AuditLogSerializer(serializers.ModelSerializer):
    user_username = serializers.CharField(source="user.username", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = (
            "id",
            "user",
            "user_username",
            "action",
            "entity_type",
            "entity_id",
            "details",
            "created_at",
        )
        read_only_fields = fields
