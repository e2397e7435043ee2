import threading

import pytest
from django.core.exceptions import PermissionDenied
from django.db import connection, connections
from django.utils import timezone

from lab_core.models import AuditLog, WorkflowTransition
from lab_core.services.cases import update_department_data
from lab_core.signals import case_ready_for_invoice
from lab_core.workflows import executor
from lab_core.workflows.errors import (
    CasePausedError,
    InvalidTransitionError,
    TransitionBlockedError,
    TransitionConflictError,
    ValidationError,
)
from lab_core.workflows.executor import force_status, transfer_case


def _assert_history_consistent(case):
    history = list(case.workflow_history.order_by("started_at", "id"))
    assert history, "expected at least one transition"
    assert history[0].from_status == "reception"
    for prev, nxt in zip(history, history[1:]):
        assert prev.to_status == nxt.from_status
    assert history[-1].to_status == case.current_status


# ===============================================================
# Happy paths
# ===============================================================

@pytest.mark.django_db
def test_reception_to_cad_records_one_transition(case_factory):
    case = case_factory()

    case = transfer_case(case.pk, "cad_design", notes="urgent, call doctor", assigned_to="Omar")

    assert case.current_status == "cad_design"
    assert case.version == 1
    entry = case.workflow_history.get()
    assert (entry.from_status, entry.to_status) == ("reception", "cad_design")
    assert entry.department == "cad"
    assert entry.notes == "urgent, call doctor"
    assert entry.assigned_to == "Omar"
    assert entry.forced is False


@pytest.mark.django_db
def test_full_fixed_route_keeps_history_chained(case_factory, advance_case):
    case = advance_case(case_factory(), "delivered")

    assert case.current_status == "delivered"
    assert case.actual_delivery_date is not None
    assert case.workflow_history.count() == 7
    _assert_history_consistent(case)


@pytest.mark.django_db
def test_removable_route(case_factory, advance_case):
    case = advance_case(case_factory(work_type="denture"), "quality_control")

    statuses = list(case.workflow_history.values_list("to_status", flat=True))
    assert statuses == ["removable", "quality_control"]


@pytest.mark.django_db
def test_qc_rejection_back_to_cam(case_factory, advance_case):
    case = advance_case(case_factory(), "quality_control")

    case = transfer_case(case.pk, "cam_milling", rejection_reason="margin gap on 12")

    assert case.current_status == "cam_milling"
    last = case.workflow_history.order_by("-started_at", "-id").first()
    assert last.rejection_reason == "margin gap on 12"
    _assert_history_consistent(case)


@pytest.mark.django_db
def test_cancel_from_any_open_state(case_factory, advance_case):
    case = advance_case(case_factory(), "finishing")

    case = transfer_case(case.pk, "cancelled", notes="doctor withdrew")

    assert case.current_status == "cancelled"
    assert case.is_terminal
    with pytest.raises(InvalidTransitionError):
        transfer_case(case.pk, "reception")


# ===============================================================
# Rejections need a reason
# ===============================================================

@pytest.mark.django_db
def test_rejection_without_reason_is_refused(case_factory, advance_case):
    case = advance_case(case_factory(), "quality_control")

    with pytest.raises(ValidationError) as exc:
        transfer_case(case.pk, "finishing", rejection_reason="   ")

    assert "rejection_reason" in exc.value.errors
    case.refresh_from_db()
    assert case.current_status == "quality_control"


@pytest.mark.django_db
def test_return_to_doctor_needs_reason(case_factory):
    case = case_factory()

    with pytest.raises(ValidationError):
        transfer_case(case.pk, "returned")

    case = transfer_case(case.pk, "returned", rejection_reason="impression distorted")
    assert case.current_status == "returned"


# ===============================================================
# Gates
# ===============================================================

@pytest.mark.django_db
def test_fixed_work_cannot_go_to_removable(case_factory):
    case = case_factory(work_type="zirconia")

    with pytest.raises(TransitionBlockedError) as exc:
        transfer_case(case.pk, "removable")

    assert exc.value.reasons
    case.refresh_from_db()
    assert case.current_status == "reception"


@pytest.mark.django_db
def test_qc_cannot_send_fixed_work_to_removable(case_factory, advance_case):
    case = advance_case(case_factory(work_type="zirconia"), "quality_control")

    with pytest.raises(TransitionBlockedError):
        transfer_case(case.pk, "removable", rejection_reason="wrong base")

    case = transfer_case(case.pk, "finishing", rejection_reason="wrong base")
    assert case.current_status == "finishing"


@pytest.mark.django_db
def test_qc_can_send_removable_work_back(case_factory, advance_case):
    case = advance_case(case_factory(work_type="denture"), "quality_control")

    case = transfer_case(case.pk, "removable", rejection_reason="teeth misaligned")

    assert case.current_status == "removable"


@pytest.mark.django_db
def test_finishing_needs_ready_for_qc_stage(case_factory, advance_case):
    case = advance_case(case_factory(), "finishing")

    with pytest.raises(TransitionBlockedError):
        transfer_case(case.pk, "quality_control")


@pytest.mark.django_db
def test_accounting_needs_qc_pass(case_factory, advance_case):
    case = advance_case(case_factory(), "quality_control")
    update_department_data(case.pk, "qc", {"overall_result": "fail"})

    with pytest.raises(TransitionBlockedError):
        transfer_case(case.pk, "accounting")


@pytest.mark.django_db
def test_paused_case_is_blocked(case_factory, advance_case):
    case = advance_case(case_factory(work_type="denture"), "removable")
    update_department_data(case.pk, "removable", {"current_pause": {"reason": "try-in"}})

    with pytest.raises(CasePausedError):
        transfer_case(case.pk, "quality_control")


# ===============================================================
# Roles
# ===============================================================

@pytest.mark.django_db
def test_actor_needs_a_permitted_role(case_factory, user_designer, user_receptionist):
    case = case_factory()

    with pytest.raises(PermissionDenied):
        transfer_case(case.pk, "cad_design", actor=user_designer)

    case = transfer_case(case.pk, "cad_design", actor=user_receptionist)
    assert case.workflow_history.get().performed_by == user_receptionist

    case = transfer_case(case.pk, "cam_milling", actor=user_designer)
    assert case.current_status == "cam_milling"


@pytest.mark.django_db
def test_superuser_acts_as_admin(case_factory, user_admin):
    case = transfer_case(case_factory().pk, "cad_design", actor=user_admin)

    assert case.current_status == "cad_design"


# ===============================================================
# Concurrency
# ===============================================================

@pytest.mark.django_db
def test_expected_status_mismatch_is_a_conflict(case_factory):
    case = case_factory()
    transfer_case(case.pk, "cad_design")

    with pytest.raises(TransitionConflictError) as exc:
        transfer_case(case.pk, "cad_design", expected_status="reception")

    assert exc.value.observed == "cad_design"
    assert WorkflowTransition.objects.filter(case=case).count() == 1


@pytest.mark.django_db
def test_stale_version_is_not_written(case_factory):
    case = case_factory()
    stale = type(case).objects.get(pk=case.pk)
    transfer_case(case.pk, "cad_design")

    with pytest.raises(TransitionConflictError):
        executor._commit_status(stale, "cad_design", timezone.now())

    case.refresh_from_db()
    assert case.version == 1


@pytest.mark.django_db(transaction=True)
def test_concurrent_transfers_from_same_state(case_factory):
    if connection.vendor == "sqlite":
        pytest.skip("needs row locks across connections (run with DJANGO_ENV=production)")

    case = case_factory()
    barrier = threading.Barrier(2)
    outcomes = []

    def worker():
        try:
            barrier.wait()
            transfer_case(case.pk, "cad_design", expected_status="reception")
            outcomes.append("ok")
        except TransitionConflictError:
            outcomes.append("conflict")
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "ok"]
    case.refresh_from_db()
    assert case.current_status == "cad_design"
    assert case.version == 1
    assert case.workflow_history.count() == 1


# ===============================================================
# History integrity
# ===============================================================

@pytest.mark.django_db
def test_history_is_append_only(case_factory):
    case = transfer_case(case_factory().pk, "cad_design")
    entry = case.workflow_history.get()

    entry.notes = "edited"
    with pytest.raises(PermissionDenied):
        entry.save()
    with pytest.raises(PermissionDenied):
        entry.delete()
    with pytest.raises(PermissionDenied):
        WorkflowTransition.objects.filter(case=case).update(notes="x")
    with pytest.raises(PermissionDenied):
        WorkflowTransition.objects.filter(case=case).delete()


@pytest.mark.django_db
def test_status_cannot_be_saved_directly(case_factory):
    case = case_factory()
    case.current_status = "delivered"

    with pytest.raises(PermissionDenied):
        case.save()

    case.refresh_from_db()
    assert case.current_status == "reception"


@pytest.mark.django_db
def test_transfer_is_audited(case_factory, user_receptionist):
    case = transfer_case(case_factory().pk, "cad_design", actor=user_receptionist)

    log = AuditLog.objects.get(action="TRANSFER_CASE", entity_id=str(case.pk))
    assert log.user == user_receptionist
    assert log.details["from"] == "reception"
    assert log.details["to"] == "cad_design"


# ===============================================================
# Accounting notification
# ===============================================================

@pytest.mark.django_db
def test_entering_accounting_notifies_after_commit(case_factory, advance_case, django_capture_on_commit_callbacks):
    case = advance_case(case_factory(teeth_numbers="21-23", priority="rush"), "quality_control")
    update_department_data(case.pk, "qc", {"overall_result": "pass"})

    received = []

    def listener(sender, **kwargs):
        received.append(kwargs)

    case_ready_for_invoice.connect(listener)
    try:
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            transfer_case(case.pk, "accounting")
    finally:
        case_ready_for_invoice.disconnect(listener)

    assert len(callbacks) == 1
    assert len(received) == 1
    assert received[0]["case"].pk == case.pk
    assert received[0]["work_type"] == "zirconia"
    assert received[0]["teeth_count"] == 3
    assert received[0]["priority"] == "rush"


# ===============================================================
# Forced status
# ===============================================================

@pytest.mark.django_db
def test_force_status_is_admin_only(case_factory, user_receptionist, user_admin):
    case = case_factory()

    with pytest.raises(PermissionDenied):
        force_status(case.pk, "finishing", actor=user_receptionist)

    case = force_status(case.pk, "finishing", actor=user_admin, notes="data repair")

    assert case.current_status == "finishing"
    entry = case.workflow_history.get()
    assert entry.forced is True
    assert entry.from_status == "reception"
    assert AuditLog.objects.filter(action="FORCE_STATUS", entity_id=str(case.pk)).exists()


@pytest.mark.django_db
def test_force_status_with_explicit_role(case_factory):
    case = case_factory()

    case = force_status(case.pk, "delivered", actor_role="admin")
    assert case.current_status == "delivered"

    with pytest.raises(ValidationError):
        force_status(case.pk, "delivered", actor_role="ADMIN")
    with pytest.raises(InvalidTransitionError):
        force_status(case.pk, "shipped", actor_role="ADMIN")
