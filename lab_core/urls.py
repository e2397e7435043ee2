# lab_core/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AuditLogViewSet,
    CaseViewSet,
    DoctorViewSet,
    HealthCheckView,
    InventoryItemViewSet,
    LabConfigView,
    WorkflowDefinitionView,
)

app_name = "lab_core"

# -------------------------------------------------
# Router (cases + directory APIs)
# -------------------------------------------------
router = DefaultRouter()
router.register(r"cases", CaseViewSet, basename="case")
router.register(r"doctors", DoctorViewSet, basename="doctor")
router.register(r"inventory", InventoryItemViewSet, basename="inventory")
router.register(r"audit-logs", AuditLogViewSet, basename="auditlog")


urlpatterns = [
    path("", include(router.urls)),

    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health_check"),
    path("config/", LabConfigView.as_view(), name="lab_config"),

    # ============================================================
    # Workflow definition (static)
    # ============================================================
    path("workflows/definition/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
]
