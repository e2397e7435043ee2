# lab_core/views.py
from __future__ import annotations

from django.db import connection
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from . import workflows as wf
from .config import LabConfiguration
from .departments import HANDLERS, get_handler
from .filters import DentalCaseFilter
from .models import AuditLog, Doctor, InventoryItem
from .permissions import resolve_roles
from .serializers import (
    AuditLogSerializer,
    CaseCreateSerializer,
    CaseDetailUpdateSerializer,
    ConcludeSerializer,
    DeliverySerializer,
    DentalCaseDetailSerializer,
    DentalCaseSerializer,
    DoctorSerializer,
    ForceStatusSerializer,
    InventoryItemSerializer,
    InvoiceLinkSerializer,
    TransferSerializer,
)
from .serializers_departments import PauseSerializer, StageNotesSerializer, StageRejectSerializer
from .services import cases as case_service
from .services.delivery import cases_ready_for_delivery, deliver_case
from .signals import set_current_user
from .workflows import executor
from .workflows.timeline import case_timeline


def _validated(serializer_class, request):
    serializer = serializer_class(data=request.data or {})
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


# ===============================================================
# Mixins
# ===============================================================

class CurrentUserMixin:
    """
    Token-authenticated users are only known after DRF authentication;
    hand them to the audit signals once the view has resolved them.
    """

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        set_current_user(request.user if request.user.is_authenticated else None)


# ===============================================================
# System
# ===============================================================

class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        config = LabConfiguration.from_settings()
        return Response({"status": "ok", "service": config.lab_name, "database": "ok"})


class LabConfigView(APIView):
    @extend_schema(tags=["System"])
    def get(self, request):
        return Response(LabConfiguration.from_settings().as_dict())


class WorkflowDefinitionView(APIView):
    """
    GET /lab/workflows/definition/

    Transition table, role requirements and department map.
    """

    @extend_schema(tags=["Workflow"])
    def get(self, request):
        return Response(wf.workflow_definition())


# ===============================================================
# Directory (doctors, inventory, audit)
# ===============================================================

class DoctorViewSet(CurrentUserMixin, viewsets.ModelViewSet):
    queryset = Doctor.objects.all()
    serializer_class = DoctorSerializer
    filterset_fields = ["is_active"]
    http_method_names = ["get", "post", "patch", "head", "options"]


class InventoryItemViewSet(CurrentUserMixin, viewsets.ReadOnlyModelViewSet):
    queryset = InventoryItem.objects.all()
    serializer_class = InventoryItemSerializer
    filterset_fields = ["category"]


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("user")
    serializer_class = AuditLogSerializer
    filterset_fields = ["action", "entity_type", "entity_id"]


# ===============================================================
# Cases
# ===============================================================

@extend_schema(tags=["Cases"])
class CaseViewSet(
    CurrentUserMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Dental cases.

    Status changes only go through the transfer, force-status, QC conclude
    and deliver actions; every other write leaves current_status alone.
    """

    serializer_class = DentalCaseSerializer
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = DentalCaseFilter
    ordering_fields = ["created_at", "received_date", "expected_delivery_date", "priority"]
    ordering = ["-created_at", "-id"]

    def get_queryset(self):
        qs = case_service.list_cases()
        if self.action == "retrieve":
            qs = qs.prefetch_related("workflow_history__performed_by")
        return qs

    def get_serializer_class(self):
        if self.action == "retrieve":
            return DentalCaseDetailSerializer
        return DentalCaseSerializer

    def _detail(self, case):
        case = case_service.get_case(case.pk)
        return Response(DentalCaseDetailSerializer(case, context=self.get_serializer_context()).data)

    # -----------------------------------------------------------
    # Create / edit
    # -----------------------------------------------------------
    @extend_schema(request=CaseCreateSerializer, responses=DentalCaseDetailSerializer)
    def create(self, request):
        data = _validated(CaseCreateSerializer, request)
        case = case_service.create_case(data, actor=request.user)
        response = self._detail(case)
        response.status_code = 201
        return response

    @extend_schema(request=CaseDetailUpdateSerializer, responses=DentalCaseDetailSerializer)
    def partial_update(self, request, pk=None):
        data = _validated(CaseDetailUpdateSerializer, request)
        case = case_service.update_case_details(pk, data, actor=request.user)
        return self._detail(case)

    # -----------------------------------------------------------
    # Workflow
    # -----------------------------------------------------------
    @extend_schema(request=TransferSerializer, responses=DentalCaseDetailSerializer)
    @action(detail=True, methods=["post"])
    def transfer(self, request, pk=None):
        data = _validated(TransferSerializer, request)
        case = executor.transfer_case(
            pk,
            data["to_status"],
            notes=data["notes"],
            rejection_reason=data["rejection_reason"],
            assigned_to=data["assigned_to"],
            expected_status=data.get("expected_status"),
            actor=request.user,
        )
        return self._detail(case)

    @action(detail=True, methods=["get"])
    def allowed(self, request, pk=None):
        case = case_service.get_case(pk)
        roles = resolve_roles(request.user)
        return Response(
            {
                "case_number": case.case_number,
                "current": case.current_status,
                "allowed": wf.allowed_transitions(case.current_status, roles),
                "roles": sorted(roles),
            }
        )

    @action(detail=True, methods=["get"])
    def timeline(self, request, pk=None):
        case = case_service.get_case(pk)
        return Response({"case_number": case.case_number, "timeline": case_timeline(case)})

    @extend_schema(request=ForceStatusSerializer, responses=DentalCaseDetailSerializer)
    @action(detail=True, methods=["post"], url_path="force-status")
    def force_status(self, request, pk=None):
        data = _validated(ForceStatusSerializer, request)
        case = executor.force_status(pk, data["status"], actor=request.user, notes=data["notes"])
        return self._detail(case)

    # -----------------------------------------------------------
    # Department data
    # -----------------------------------------------------------
    @action(detail=True, methods=["put"], url_path=r"departments/(?P<department>[a-z_]+)")
    def department_data(self, request, pk=None, department=None):
        case = get_handler(department).save_department_data(pk, request.data, actor=request.user)
        return self._detail(case)

    @action(detail=True, methods=["post"], url_path=r"departments/(?P<department>[a-z_]+)/complete")
    def department_complete(self, request, pk=None, department=None):
        case = get_handler(department).complete_department_work(pk, request.data, actor=request.user)
        return self._detail(case)

    @extend_schema(request=PauseSerializer, responses=DentalCaseDetailSerializer)
    @action(detail=True, methods=["post"], url_path="removable/pause")
    def removable_pause(self, request, pk=None):
        data = _validated(PauseSerializer, request)
        case = HANDLERS["removable"].pause(pk, data["reason"], actor=request.user)
        return self._detail(case)

    @action(detail=True, methods=["post"], url_path="removable/resume")
    def removable_resume(self, request, pk=None):
        case = HANDLERS["removable"].resume(pk, actor=request.user)
        return self._detail(case)

    @action(
        detail=True,
        methods=["post"],
        url_path=r"finishing/stages/(?P<stage>[a-z_]+)/(?P<operation>start|complete|reject)",
    )
    def finishing_stage(self, request, pk=None, stage=None, operation=None):
        handler = HANDLERS["finishing"]
        if operation == "start":
            case = handler.start_stage(pk, stage, actor=request.user)
        elif operation == "complete":
            data = _validated(StageNotesSerializer, request)
            case = handler.complete_stage(pk, stage, notes=data["notes"], actor=request.user)
        elif operation == "reject":
            data = _validated(StageRejectSerializer, request)
            case = handler.reject_stage(pk, stage, data["reason"], actor=request.user)
        else:
            raise ValidationError({"operation": "Use start, complete or reject."})
        return self._detail(case)

    @extend_schema(request=ConcludeSerializer, responses=DentalCaseDetailSerializer)
    @action(detail=True, methods=["post"], url_path="qc/conclude")
    def qc_conclude(self, request, pk=None):
        data = _validated(ConcludeSerializer, request)
        case = HANDLERS["qc"].conclude(pk, actor=request.user, notes=data["notes"])
        return self._detail(case)

    # -----------------------------------------------------------
    # Delivery / invoice
    # -----------------------------------------------------------
    @extend_schema(request=DeliverySerializer, responses=DentalCaseDetailSerializer)
    @action(detail=True, methods=["post"])
    def deliver(self, request, pk=None):
        data = _validated(DeliverySerializer, request)
        case = deliver_case(pk, received_by=data["received_by"], notes=data["notes"], actor=request.user)
        return self._detail(case)

    @extend_schema(request=InvoiceLinkSerializer, responses=DentalCaseDetailSerializer)
    @action(detail=True, methods=["post"])
    def invoice(self, request, pk=None):
        data = _validated(InvoiceLinkSerializer, request)
        case = case_service.link_invoice(
            pk,
            data["invoice_id"],
            total_cost=data.get("total_cost"),
            actor=request.user,
        )
        return self._detail(case)

    @action(detail=False, methods=["get"], url_path="ready-for-delivery")
    def ready_for_delivery(self, request):
        page = self.paginate_queryset(cases_ready_for_delivery())
        return self.get_paginated_response(DentalCaseSerializer(page, many=True).data)
