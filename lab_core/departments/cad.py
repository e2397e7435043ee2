# lab_core/departments/cad.py

from lab_core import workflows as wf
from lab_core.serializers_departments import CadDataSerializer

from .base import DepartmentHandler


class CadHandler(DepartmentHandler):
    department = "cad"
    case_status = wf.CAD_DESIGN
    serializer_class = CadDataSerializer
    operator_field = "designer"

    def initial_record(self):
        return {"status": "pending", "design_files": []}
