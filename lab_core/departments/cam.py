# lab_core/departments/cam.py

from lab_core import workflows as wf
from lab_core.serializers_departments import CamDataSerializer
from lab_core.services.inventory import deduct_stock

from .base import DepartmentHandler


class CamHandler(DepartmentHandler):
    """
    CAM milling. Completing the work consumes the selected block: one unit
    per completion, deducted inside the same transaction as the record
    write, so a failed deduction leaves the previous record in place.
    """

    department = "cam"
    case_status = wf.CAM_MILLING
    serializer_class = CamDataSerializer
    operator_field = "operator"

    def initial_record(self):
        return {"status": "pending", "material_deducted": False, "errors": []}

    def clean_record(self, case, record, previous):
        # A different block has not been paid for yet
        if record.get("block_id") != previous.get("block_id"):
            record["material_deducted"] = False
            record["inventory_transaction_id"] = None
        record.setdefault("material_deducted", False)
        return record

    def on_complete(self, case, record, actor=None):
        block_id = record.get("block_id")
        if not block_id:
            return record

        txn = deduct_stock(
            block_id,
            1,
            case=case,
            reason=f"CAM milling for case {case.case_number}",
            actor=actor,
        )
        record["material_deducted"] = True
        record["inventory_transaction_id"] = txn.pk
        return record
