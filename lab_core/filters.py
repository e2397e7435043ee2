# lab_core/filters.py
import django_filters as df
from django.db.models import Q

from . import workflows as wf
from .models import DentalCase
from .services.cases import statuses_for_department


class DentalCaseFilter(df.FilterSet):
    status = df.CharFilter(field_name="current_status", method="filter_status")
    department = df.CharFilter(method="filter_department")
    doctor = df.NumberFilter(field_name="doctor_id")
    work_type = df.ChoiceFilter(choices=DentalCase.WorkType.choices)
    priority = df.ChoiceFilter(choices=DentalCase.Priority.choices)
    search = df.CharFilter(method="filter_search")
    received_date = df.DateFromToRangeFilter()
    expected_delivery_date = df.DateFromToRangeFilter()

    class Meta:
        model = DentalCase
        fields = [
            "status",
            "department",
            "doctor",
            "work_type",
            "priority",
            "search",
            "received_date",
            "expected_delivery_date",
        ]

    def filter_status(self, queryset, name, value):
        return queryset.filter(current_status=wf.normalize_state(value))

    def filter_department(self, queryset, name, value):
        return queryset.filter(current_status__in=statuses_for_department(value))

    def filter_search(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(case_number__icontains=value)
            | Q(patient_name__icontains=value)
            | Q(doctor_name__icontains=value)
        )
