# lab_core/admin.py

from django.contrib import admin
from django.utils.html import format_html

from .models import (
    AuditLog,
    DentalCase,
    Doctor,
    InventoryItem,
    InventoryTransaction,
    UserRole,
    WorkflowTransition,
)


# =============================================================
# Workflow history (READ-ONLY)
# =============================================================

class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class WorkflowTransitionInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = WorkflowTransition
    extra = 0
    can_delete = False
    fields = ("started_at", "from_status", "to_status", "department", "performed_by", "rejection_reason", "forced")
    readonly_fields = fields
    ordering = ("started_at", "id")


@admin.register(WorkflowTransition)
class WorkflowTransitionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "case",
        "from_status",
        "to_status",
        "department",
        "performed_by",
        "forced",
        "started_at",
    )
    list_filter = ("from_status", "to_status", "forced")
    search_fields = ("case__case_number", "performed_by__username")
    ordering = ("-started_at",)

    readonly_fields = [f.name for f in WorkflowTransition._meta.fields]


# =============================================================
# Cases
# =============================================================

@admin.register(DentalCase)
class DentalCaseAdmin(admin.ModelAdmin):
    list_display = (
        "case_number",
        "patient_name",
        "doctor_name",
        "work_type",
        "priority_badge",
        "current_status",
        "expected_delivery_date",
        "created_at",
    )
    list_filter = ("current_status", "work_type", "priority")
    search_fields = ("case_number", "patient_name", "doctor_name")
    ordering = ("-created_at",)
    inlines = [WorkflowTransitionInline]

    # Status moves only through the transfer API
    readonly_fields = (
        "case_number",
        "current_status",
        "received_date",
        "actual_delivery_date",
        "version",
        "created_by",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request):
        return False

    def priority_badge(self, obj):
        colors = {"rush": "#c62828", "urgent": "#ed6c02"}
        color = colors.get(obj.priority)
        if not color:
            return obj.get_priority_display()
        return format_html('<span style="color:{};font-weight:bold;">{}</span>', color, obj.get_priority_display())

    priority_badge.short_description = "Priority"


# =============================================================
# Directory
# =============================================================

@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ("name", "clinic", "phone", "total_cases", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "clinic", "email")
    readonly_fields = ("total_cases",)


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "created_at")
    list_filter = ("role",)
    search_fields = ("user__username", "role")


# =============================================================
# Inventory
# =============================================================

@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("name", "sku", "category", "current_stock", "minimum_stock", "unit")
    list_filter = ("category",)
    search_fields = ("name", "sku")


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("item", "kind", "quantity", "previous_stock", "new_stock", "case_number", "performed_by", "created_at")
    list_filter = ("kind",)
    search_fields = ("item__name", "item__sku", "case_number")
    ordering = ("-created_at",)


# =============================================================
# Audit log (READ-ONLY)
# =============================================================

@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("created_at", "user", "action", "entity_type", "entity_id")
    list_filter = ("action", "entity_type")
    search_fields = ("entity_id", "user__username", "action")
    ordering = ("-created_at",)
