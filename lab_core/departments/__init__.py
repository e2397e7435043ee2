# lab_core/departments/__init__.py
"""
Department handlers, keyed by the department name used for the case's
sub-record columns (cad, cam, finishing, removable, qc).
"""

from lab_core.workflows.errors import ValidationError

from .base import DepartmentHandler
from .cad import CadHandler
from .cam import CamHandler
from .finishing import FinishingHandler
from .qc import QcHandler
from .removable import RemovableHandler

HANDLERS = {
    "cad": CadHandler(),
    "cam": CamHandler(),
    "finishing": FinishingHandler(),
    "removable": RemovableHandler(),
    "qc": QcHandler(),
}


def get_handler(department: str) -> DepartmentHandler:
    key = str(department or "").strip().lower()
    try:
        return HANDLERS[key]
    except KeyError:
        raise ValidationError(
            {"department": [f"Unknown department: {key or '<empty>'}. Valid: {', '.join(sorted(HANDLERS))}"]}
        )


__all__ = [
    "DepartmentHandler",
    "CadHandler",
    "CamHandler",
    "FinishingHandler",
    "QcHandler",
    "RemovableHandler",
    "HANDLERS",
    "get_handler",
]
