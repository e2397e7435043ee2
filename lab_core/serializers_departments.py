# lab_core/serializers_departments.py
"""
Input schemas for the department sub-records.

One serializer per department; only the fields listed here are accepted.
Bookkeeping fields (end_time, material_deducted, firing_cycles, stages,
pause records) are written by the handlers, never by clients.
"""

from __future__ import annotations

from rest_framework import serializers

from lab_core import workflows as wf
from lab_core.workflows.stages import (
    COMPLETED,
    IN_PROGRESS,
    PENDING,
    PROSTHETIC_TYPES,
    QC_CHECK_RESULTS,
    QC_FAIL,
    QC_PASS,
    REMOVABLE_FINAL_STATUSES,
    REMOVABLE_STAGES,
)


class DepartmentRecordSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=(PENDING, IN_PROGRESS, COMPLETED), required=False)
    start_time = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class CadDataSerializer(DepartmentRecordSerializer):
    designer_id = serializers.CharField(required=False, allow_blank=True)
    designer_name = serializers.CharField(required=False, allow_blank=True)
    software = serializers.CharField(required=False, allow_blank=True)
    design_files = serializers.ListField(child=serializers.CharField(), required=False)


class CamDataSerializer(DepartmentRecordSerializer):
    operator_id = serializers.CharField(required=False, allow_blank=True)
    operator_name = serializers.CharField(required=False, allow_blank=True)
    block_type = serializers.CharField(required=False, allow_blank=True)
    block_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    machine_id = serializers.CharField(required=False, allow_blank=True)
    machine_name = serializers.CharField(required=False, allow_blank=True)
    milling_duration = serializers.IntegerField(required=False, min_value=0)
    errors = serializers.ListField(child=serializers.CharField(), required=False)


class FinishingDataSerializer(DepartmentRecordSerializer):
    technician_id = serializers.CharField(required=False, allow_blank=True)
    technician_name = serializers.CharField(required=False, allow_blank=True)
    furnace_id = serializers.CharField(required=False, allow_blank=True)
    furnace_name = serializers.CharField(required=False, allow_blank=True)
    quality_score = serializers.IntegerField(required=False, min_value=1, max_value=10)


class RemovableDataSerializer(DepartmentRecordSerializer):
    technician_id = serializers.CharField(required=False, allow_blank=True)
    technician_name = serializers.CharField(required=False, allow_blank=True)
    prosthetic_type = serializers.ChoiceField(choices=PROSTHETIC_TYPES, required=False)
    current_stage = serializers.ChoiceField(choices=REMOVABLE_STAGES, required=False)
    final_status = serializers.ChoiceField(choices=REMOVABLE_FINAL_STATUSES, required=False)


class QcDataSerializer(DepartmentRecordSerializer):
    inspector_id = serializers.CharField(required=False, allow_blank=True)
    inspector_name = serializers.CharField(required=False, allow_blank=True)
    inspection_date = serializers.DateTimeField(required=False)
    dimension_check = serializers.ChoiceField(choices=QC_CHECK_RESULTS, required=False)
    color_check = serializers.ChoiceField(choices=QC_CHECK_RESULTS, required=False)
    occlusion_check = serializers.ChoiceField(choices=QC_CHECK_RESULTS, required=False)
    margin_check = serializers.ChoiceField(choices=QC_CHECK_RESULTS, required=False)
    overall_result = serializers.ChoiceField(choices=(QC_PASS, QC_FAIL), required=False)
    rejection_reason = serializers.CharField(required=False, allow_blank=True)
    return_to_department = serializers.ChoiceField(
        choices=sorted(wf.REJECTION_TRANSITIONS[wf.QUALITY_CONTROL]),
        required=False,
        allow_blank=True,
    )


# ===============================================================
# Action payloads
# ===============================================================

class PauseSerializer(serializers.Serializer):
    reason = serializers.CharField()


class StageRejectSerializer(serializers.Serializer):
    reason = serializers.CharField()


class StageNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
