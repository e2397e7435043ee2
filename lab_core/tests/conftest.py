# lab_core/tests/conftest.py

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable

import pytest
from django.contrib.auth import authenticate, get_user_model
from rest_framework.test import APIClient

from lab_core import workflows as wf
from lab_core.models import DentalCase, Doctor, InventoryItem, UserRole
from lab_core.services.cases import create_case, update_department_data
from lab_core.workflows.executor import transfer_case
from lab_core.workflows.stages import FINISHING_STAGES

FIXED_ROUTE = [
    wf.RECEPTION,
    wf.CAD_DESIGN,
    wf.CAM_MILLING,
    wf.FINISHING,
    wf.QUALITY_CONTROL,
    wf.ACCOUNTING,
    wf.READY_FOR_DELIVERY,
    wf.DELIVERED,
]

REMOVABLE_ROUTE = [
    wf.RECEPTION,
    wf.REMOVABLE,
    wf.QUALITY_CONTROL,
    wf.ACCOUNTING,
    wf.READY_FOR_DELIVERY,
    wf.DELIVERED,
]


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture(autouse=True)
def lab_settings(settings):
    """
    Pin the lab settings that .env files may override.
    """
    settings.CASE_NUMBER_PREFIX = "L"
    settings.CASE_NUMBER_PADDING = 5
    settings.AUDIT_LOG_STRICT = False
    settings.WORKFLOW_EMAIL_NOTIFICATIONS = False
    settings.WORKFLOW_NOTIFY_EMAILS = []
    return settings


# ===============================================================
# Users and roles
# ===============================================================

@pytest.fixture
def make_user(db) -> Callable[..., Any]:
    def _factory(username: str, roles: Iterable[str] = (), *, superuser: bool = False):
        User = get_user_model()
        user, _ = User.objects.get_or_create(
            username=username,
            defaults={"is_staff": superuser, "is_superuser": superuser},
        )
        user.set_password("pass123")
        user.save(update_fields=["password"])
        for role in roles:
            UserRole.objects.get_or_create(user=user, role=role)
        return user

    return _factory


@pytest.fixture
def user_admin(make_user):
    return make_user("admin", superuser=True)


@pytest.fixture
def user_receptionist(make_user):
    return make_user("reception", ["RECEPTIONIST"])


@pytest.fixture
def user_designer(make_user):
    return make_user("designer", ["DESIGNER"])


@pytest.fixture
def user_technician(make_user):
    return make_user("labtech", ["Lab Tech"])


@pytest.fixture
def user_qc(make_user):
    return make_user("inspector", ["QC_MANAGER"])


# ===============================================================
# Directory and inventory
# ===============================================================

@pytest.fixture
def doctor(db) -> Doctor:
    return Doctor.objects.create(name="Dr. Hana Fathy", clinic="Smile Clinic", phone="0100000000")


@pytest.fixture
def block_factory(db) -> Callable[..., InventoryItem]:
    counter = {"n": 0}

    def _factory(*, stock: int = 1, name: str = "Zirconia block A2") -> InventoryItem:
        counter["n"] += 1
        return InventoryItem.objects.create(
            name=name,
            sku=f"ZR-{counter['n']:04d}",
            category=InventoryItem.Category.BLOCKS,
            current_stock=stock,
            minimum_stock=0,
        )

    return _factory


# ===============================================================
# Cases
# ===============================================================

@pytest.fixture
def case_factory(db, doctor) -> Callable[..., DentalCase]:
    def _factory(**overrides: Any) -> DentalCase:
        data: Dict[str, Any] = {
            "doctor": doctor.pk,
            "patient_name": "Mona Adel",
            "work_type": "zirconia",
            "teeth_numbers": "11,12,13",
            "priority": "normal",
        }
        data.update(overrides)
        return create_case(data)

    return _factory


def _prepare_exit(case: DentalCase, target: str) -> None:
    """
    Satisfy the department gate in front of target with minimal records.
    """
    if case.current_status == wf.FINISHING and target == wf.QUALITY_CONTROL:
        update_department_data(
            case.pk,
            "finishing",
            {"stages": [{"stage": s, "status": "completed"} for s in FINISHING_STAGES]},
        )
    elif case.current_status == wf.QUALITY_CONTROL and target == wf.ACCOUNTING:
        update_department_data(case.pk, "qc", {"overall_result": "pass"})


def advance(case: DentalCase, target: str, *, actor=None) -> DentalCase:
    """
    Walk a case along its normal route until it reaches target.
    """
    route = REMOVABLE_ROUTE if case.work_type in wf.REMOVABLE_WORK_TYPES else FIXED_ROUTE
    if target not in route:
        raise AssertionError(f"{target} is not on the route for {case.work_type}")

    case.refresh_from_db()
    while case.current_status != target:
        nxt = route[route.index(case.current_status) + 1]
        _prepare_exit(case, nxt)
        case = transfer_case(case.pk, nxt, actor=actor)
    return case


@pytest.fixture
def advance_case() -> Callable[..., DentalCase]:
    return advance


def set_status(case: DentalCase, status: str) -> DentalCase:
    """
    Put a case straight into a status, skipping the engine (fixtures only).
    """
    case.current_status = status
    case.save(_workflow_bypass=True)
    return case


@pytest.fixture
def force_into() -> Callable[[DentalCase, str], DentalCase]:
    return set_status
