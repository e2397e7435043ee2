# lab_core/models/__init__.py

from .core import (
    AuditLog,
    Doctor,
    InventoryItem,
    InventoryTransaction,
    TimeStampedModel,
    UserRole,
)
from .cases import (
    DEPARTMENT_DATA_FIELDS,
    CaseSequence,
    DentalCase,
    WorkflowTransition,
)

__all__ = [
    "TimeStampedModel",
    "Doctor",
    "UserRole",
    "AuditLog",
    "InventoryItem",
    "InventoryTransaction",
    "CaseSequence",
    "DentalCase",
    "WorkflowTransition",
    "DEPARTMENT_DATA_FIELDS",
]
