import pytest

from lab_core.workflows.executor import transfer_case


def _url(case, suffix=""):
    return f"/lab/cases/{case.pk}/{suffix}"


@pytest.mark.django_db
def test_health_is_public(api_client):
    resp = api_client.get("/lab/health/")

    assert resp.status_code == 200, resp.content
    assert resp.data["status"] == "ok"


@pytest.mark.django_db
def test_cases_require_authentication(api_client):
    resp = api_client.get("/lab/cases/")

    assert resp.status_code in (401, 403)


@pytest.mark.django_db
def test_create_case_via_api(api_client, user_receptionist, doctor):
    assert api_client.login(username="reception", password="pass123")

    resp = api_client.post(
        "/lab/cases/",
        {
            "doctor": doctor.pk,
            "patient_name": "Mona Adel",
            "work_type": "emax",
            "teeth_numbers": "11,21",
            "expected_delivery_date": "2030-02-01",
        },
        format="json",
    )

    assert resp.status_code == 201, resp.content
    assert resp.data["current_status"] == "reception"
    assert resp.data["workflow_history"] == []
    assert resp.data["teeth_count"] == 2
    assert resp.data["created_by"]["username"] == "reception"
    assert "cad_design" in resp.data["allowed_next"]


@pytest.mark.django_db
def test_create_case_unknown_doctor_is_404(api_client, user_receptionist):
    api_client.login(username="reception", password="pass123")

    resp = api_client.post(
        "/lab/cases/",
        {"doctor": 4242, "patient_name": "Mona", "work_type": "emax", "teeth_numbers": "11"},
        format="json",
    )

    assert resp.status_code == 404, resp.content
    assert resp.data["code"] == "NotFoundError"


@pytest.mark.django_db
def test_list_filters_by_department(api_client, user_receptionist, case_factory):
    api_client.login(username="reception", password="pass123")
    moved = transfer_case(case_factory().pk, "cad_design")
    case_factory()

    resp = api_client.get("/lab/cases/", {"department": "cad"})

    assert resp.status_code == 200, resp.content
    assert resp.data["count"] == 1
    assert resp.data["results"][0]["case_number"] == moved.case_number


@pytest.mark.django_db
def test_transfer_via_api(api_client, user_receptionist, case_factory):
    api_client.login(username="reception", password="pass123")
    case = case_factory()

    resp = api_client.post(_url(case, "transfer/"), {"to_status": "cad_design", "notes": "rush"}, format="json")

    assert resp.status_code == 200, resp.content
    assert resp.data["current_status"] == "cad_design"
    history = resp.data["workflow_history"]
    assert len(history) == 1
    assert history[0]["performed_by"] == "reception"


@pytest.mark.django_db
def test_invalid_transfer_is_409(api_client, user_receptionist, case_factory):
    api_client.login(username="reception", password="pass123")
    case = case_factory()

    resp = api_client.post(_url(case, "transfer/"), {"to_status": "quality_control"}, format="json")

    assert resp.status_code == 409, resp.content
    assert resp.data["code"] == "InvalidTransitionError"
    assert resp.data["from_status"] == "reception"
    assert "cad_design" in resp.data["allowed"]


@pytest.mark.django_db
def test_transfer_without_role_is_403(api_client, user_designer, case_factory):
    api_client.login(username="designer", password="pass123")
    case = case_factory()

    resp = api_client.post(_url(case, "transfer/"), {"to_status": "cad_design"}, format="json")

    assert resp.status_code == 403, resp.content
    case.refresh_from_db()
    assert case.current_status == "reception"


@pytest.mark.django_db
def test_status_cannot_be_patched(api_client, user_receptionist, case_factory):
    api_client.login(username="reception", password="pass123")
    case = case_factory()

    resp = api_client.patch(_url(case), {"current_status": "delivered"}, format="json")

    assert resp.status_code == 400, resp.content
    case.refresh_from_db()
    assert case.current_status == "reception"


@pytest.mark.django_db
def test_patch_descriptive_fields(api_client, user_receptionist, case_factory):
    api_client.login(username="reception", password="pass123")
    case = case_factory()

    resp = api_client.patch(_url(case), {"priority": "rush", "expected_delivery_date": "2030-03-01"}, format="json")

    assert resp.status_code == 200, resp.content
    assert resp.data["priority"] == "rush"
    assert resp.data["expected_delivery_date"] == "2030-03-01"


@pytest.mark.django_db
def test_allowed_lists_role_filtered_targets(api_client, user_designer, case_factory):
    api_client.login(username="designer", password="pass123")
    case = transfer_case(case_factory().pk, "cad_design")

    resp = api_client.get(_url(case, "allowed/"))

    assert resp.status_code == 200, resp.content
    assert resp.data["current"] == "cad_design"
    assert resp.data["allowed"] == ["cam_milling"]


@pytest.mark.django_db
def test_department_data_endpoint(api_client, user_designer, case_factory):
    api_client.login(username="designer", password="pass123")
    case = transfer_case(case_factory().pk, "cad_design")

    resp = api_client.put(_url(case, "departments/cad/"), {"software": "exocad", "status": "in_progress"}, format="json")

    assert resp.status_code == 200, resp.content
    assert resp.data["cad_data"]["software"] == "exocad"
    assert resp.data["cad_data"]["designer_name"] == "designer"

    resp = api_client.put(_url(case, "departments/qc/"), {"overall_result": "pass"}, format="json")
    assert resp.status_code == 409, resp.content
    assert resp.data["code"] == "CaseNotInDepartmentError"


@pytest.mark.django_db
def test_finishing_stage_endpoint(api_client, user_technician, case_factory, advance_case):
    api_client.login(username="labtech", password="pass123")
    case = advance_case(case_factory(), "finishing")

    resp = api_client.post(_url(case, "finishing/stages/receive/start/"), {}, format="json")
    assert resp.status_code == 200, resp.content

    resp = api_client.post(_url(case, "finishing/stages/receive/complete/"), {"notes": "ok"}, format="json")
    assert resp.status_code == 200, resp.content
    assert resp.data["finishing_data"]["stages"][0]["status"] == "completed"


@pytest.mark.django_db
def test_timeline_endpoint(api_client, user_receptionist, case_factory, advance_case):
    api_client.login(username="reception", password="pass123")
    case = advance_case(case_factory(), "cam_milling")

    resp = api_client.get(_url(case, "timeline/"))

    assert resp.status_code == 200, resp.content
    rows = resp.data["timeline"]
    assert [r["to_status"] for r in rows] == ["cad_design", "cam_milling"]
    assert rows[0]["ended_at"] is not None
    assert rows[-1]["ended_at"] is None


@pytest.mark.django_db
def test_workflow_definition_and_config(api_client, user_receptionist):
    api_client.login(username="reception", password="pass123")

    resp = api_client.get("/lab/workflows/definition/")
    assert resp.status_code == 200, resp.content
    assert resp.data["transitions"]["reception"] == ["cad_design", "cancelled", "removable", "returned"]

    resp = api_client.get("/lab/config/")
    assert resp.status_code == 200, resp.content
    assert resp.data["case_number_prefix"] == "L"


@pytest.mark.django_db
def test_deliver_and_ready_list(api_client, make_user, case_factory, advance_case):
    make_user("courier", ["DELIVERY_STAFF"])
    api_client.login(username="courier", password="pass123")
    case = advance_case(case_factory(), "ready_for_delivery")

    resp = api_client.get("/lab/cases/ready-for-delivery/")
    assert resp.status_code == 200, resp.content
    assert [r["id"] for r in resp.data["results"]] == [case.pk]

    resp = api_client.post(_url(case, "deliver/"), {"received_by": "clinic front desk"}, format="json")
    assert resp.status_code == 200, resp.content
    assert resp.data["current_status"] == "delivered"
    assert resp.data["actual_delivery_date"] is not None
    assert resp.data["workflow_history"][-1]["assigned_to"] == "clinic front desk"
