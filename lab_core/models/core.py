# lab_core/models/core.py

from django.conf import settings
from django.db import models


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Doctor directory
# ============================================================
class Doctor(TimeStampedModel):
    """Referring dentist; cases are received on a doctor's behalf."""

    name = models.CharField(max_length=255, db_index=True)
    clinic = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=50, blank=True)
    email = models.EmailField(blank=True)
    total_cases = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.clinic})" if self.clinic else self.name


# ============================================================
# Roles
# ============================================================
class UserRole(TimeStampedModel):
    """Lab role held by a user (receptionist, designer, QC manager, ...)."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lab_roles",
    )
    role = models.CharField(max_length=50)

    class Meta:
        ordering = ["user__username", "role"]
        unique_together = [("user", "role")]

    def __str__(self):
        return f"{self.user.username} - {self.role}"


# ============================================================
# Audit
# ============================================================
class AuditLog(TimeStampedModel):
    """Track actions for compliance and traceability."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="lab_audit_logs",
    )
    action = models.CharField(max_length=64, db_index=True)
    entity_type = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=64)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
        ]

    def __str__(self):
        who = self.user.username if self.user else "system"
        return f"{self.created_at} - {who} - {self.action}"


# ============================================================
# Inventory
# ============================================================
class InventoryItem(TimeStampedModel):
    """Blocks, raw materials and consumables used in production."""

    class Category(models.TextChoices):
        BLOCKS = "blocks", "Blocks"
        RAW_MATERIALS = "raw_materials", "Raw materials"
        CONSUMABLES = "consumables", "Consumables"
        TOOLS = "tools", "Tools"
        EQUIPMENT = "equipment", "Equipment"

    name = models.CharField(max_length=255, db_index=True)
    sku = models.CharField(max_length=100, unique=True)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.BLOCKS)
    unit = models.CharField(max_length=50, default="pcs")
    current_stock = models.PositiveIntegerField(default=0)
    minimum_stock = models.PositiveIntegerField(default=0)
    cost_per_unit = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    class Meta:
        ordering = ["name"]

    @property
    def is_low(self) -> bool:
        return self.current_stock <= self.minimum_stock

    def __str__(self):
        return f"{self.name} ({self.current_stock} {self.unit})"


class InventoryTransaction(models.Model):
    class Kind(models.TextChoices):
        DEDUCTION = "deduction", "Deduction"
        ADDITION = "addition", "Addition"
        ADJUSTMENT = "adjustment", "Adjustment"
        PURCHASE = "purchase", "Purchase"

    item = models.ForeignKey(
        InventoryItem,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    kind = models.CharField(max_length=20, choices=Kind.choices)
    quantity = models.PositiveIntegerField()
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    case = models.ForeignKey(
        "lab_core.DentalCase",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_transactions",
    )
    case_number = models.CharField(max_length=32, blank=True)
    reason = models.CharField(max_length=255)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.kind} {self.quantity} x {self.item.name} ({self.case_number or '-'})"
