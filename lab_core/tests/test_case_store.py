import re

import pytest
from django.core.exceptions import PermissionDenied

from lab_core.models import AuditLog, DentalCase, Doctor
from lab_core.services.cases import (
    create_case,
    get_case,
    link_invoice,
    list_cases,
    update_case_details,
    update_department_data,
)
from lab_core.workflows.errors import NotFoundError, ValidationError

CASE_NUMBER_RE = re.compile(r"^L-\d{4}-\d{5}$")


@pytest.mark.django_db
def test_create_case_starts_at_reception_with_empty_history(doctor):
    case = create_case(
        {
            "doctor": doctor.pk,
            "patient_name": "Mona Adel",
            "work_type": "zirconia",
            "teeth_numbers": "11,12,13",
            "priority": "normal",
        }
    )

    assert CASE_NUMBER_RE.match(case.case_number)
    assert case.current_status == "reception"
    assert case.doctor_name == doctor.name
    assert case.workflow_history.count() == 0
    assert case.teeth_count == 3
    assert case.version == 0


@pytest.mark.django_db
def test_create_case_reports_every_invalid_field_and_writes_nothing(doctor):
    with pytest.raises(ValidationError) as exc:
        create_case(
            {
                "doctor": doctor.pk,
                "patient_name": "M",
                "work_type": "gold",
                "teeth_numbers": "11,99",
                "expected_delivery_date": "next week",
            }
        )

    assert set(exc.value.errors) == {"patient_name", "work_type", "teeth_numbers", "expected_delivery_date"}
    assert DentalCase.objects.count() == 0


@pytest.mark.django_db
def test_create_case_requires_doctor():
    with pytest.raises(ValidationError) as exc:
        create_case({"patient_name": "Mona", "work_type": "emax", "teeth_numbers": "21"})

    assert "doctor" in exc.value.errors


@pytest.mark.django_db
def test_create_case_unknown_doctor_is_not_found():
    with pytest.raises(NotFoundError):
        create_case({"doctor": 9999, "patient_name": "Mona", "work_type": "emax", "teeth_numbers": "21"})

    assert DentalCase.objects.count() == 0


@pytest.mark.django_db
def test_create_case_counts_doctor_cases_and_audits(case_factory, doctor):
    case = case_factory()
    case_factory(teeth_numbers="21-23")

    doctor.refresh_from_db()
    assert doctor.total_cases == 2
    assert AuditLog.objects.filter(action="CREATE_CASE", entity_id=str(case.pk)).exists()


@pytest.mark.django_db
def test_get_case_by_id_or_number(case_factory):
    case = case_factory()

    assert get_case(case.pk).pk == case.pk
    assert get_case(str(case.pk)).pk == case.pk
    assert get_case(case.case_number.lower()).pk == case.pk

    with pytest.raises(NotFoundError):
        get_case("L-1999-00001")


@pytest.mark.django_db
def test_list_cases_filters_and_orders_newest_first(case_factory, advance_case):
    other = Doctor.objects.create(name="Dr. Karim Nabil")
    first = case_factory(patient_name="Ahmed Samir")
    second = case_factory(patient_name="Laila Omar", work_type="denture")
    third = case_factory(doctor=other.pk, patient_name="Nour Hany", priority="rush")
    advance_case(first, "cad_design")

    assert list(list_cases()) == [third, second, first]
    assert list(list_cases({"status": "cad_design"})) == [first]
    assert list(list_cases({"department": "cad"})) == [first]
    assert list(list_cases({"doctor": other.pk})) == [third]
    assert list(list_cases({"work_type": "denture"})) == [second]
    assert list(list_cases({"priority": "rush"})) == [third]
    assert list(list_cases({"search": "laila"})) == [second]
    assert list(list_cases({"search": "karim"})) == [third]
    assert list(list_cases({"search": first.case_number})) == [first]


@pytest.mark.django_db
def test_list_cases_rejects_non_numeric_doctor(case_factory):
    case_factory()

    with pytest.raises(ValidationError) as exc:
        list(list_cases({"doctor": "abc"}))

    assert "doctor" in exc.value.errors


@pytest.mark.django_db
def test_update_department_data_is_a_shallow_merge(case_factory):
    case = case_factory()
    update_department_data(case.pk, "cad", {"software": "exocad", "design_files": ["a.stl"]})
    case = update_department_data(case.pk, "cad", {"design_files": ["b.stl"], "notes": "thin margins"})

    assert case.cad_data == {"software": "exocad", "design_files": ["b.stl"], "notes": "thin margins"}
    assert case.current_status == "reception"


@pytest.mark.django_db
def test_update_department_data_rejects_unknown_department(case_factory):
    case = case_factory()

    with pytest.raises(ValidationError):
        update_department_data(case.pk, "billing", {"x": 1})


@pytest.mark.django_db
def test_update_case_details_refuses_immutable_fields(case_factory):
    case = case_factory()

    with pytest.raises(ValidationError) as exc:
        update_case_details(case.pk, {"work_type": "emax", "case_number": "X", "priority": "rush"})

    assert set(exc.value.errors) == {"work_type", "case_number"}
    case.refresh_from_db()
    assert case.priority == "normal"


@pytest.mark.django_db
def test_update_case_details_edits_descriptive_fields(case_factory):
    case = case_factory()
    case = update_case_details(case.pk, {"priority": "urgent", "shade_color": " A2 ", "internal_notes": "call first"})

    assert case.priority == "urgent"
    assert case.shade_color == "A2"
    assert case.internal_notes == "call first"
    assert AuditLog.objects.filter(action="UPDATE_CASE", entity_id=str(case.pk)).exists()


@pytest.mark.django_db
def test_delivery_date_change_needs_reception_or_admin(case_factory, user_designer, user_receptionist):
    case = case_factory()

    with pytest.raises(PermissionDenied):
        update_case_details(case.pk, {"expected_delivery_date": "2030-01-15"}, actor=user_designer)

    case = update_case_details(case.pk, {"expected_delivery_date": "2030-01-15"}, actor=user_receptionist)
    assert str(case.expected_delivery_date) == "2030-01-15"


@pytest.mark.django_db
def test_link_invoice_only_from_accounting_and_only_once(case_factory, advance_case):
    case = case_factory()

    with pytest.raises(ValidationError):
        link_invoice(case.pk, "INV-1")

    advance_case(case, "accounting")
    case = link_invoice(case.pk, "INV-1", total_cost="1500.00")
    assert case.invoice_id == "INV-1"
    assert str(case.total_cost) == "1500.00"

    assert link_invoice(case.pk, "INV-1").invoice_id == "INV-1"
    with pytest.raises(ValidationError):
        link_invoice(case.pk, "INV-2")
