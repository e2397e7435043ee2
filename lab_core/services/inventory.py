# lab_core/services/inventory.py

from __future__ import annotations

import logging

from django.db import transaction

from lab_core.models import InventoryItem, InventoryTransaction
from lab_core.services import audit
from lab_core.workflows.errors import InsufficientStockError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def deduct_stock(item_id, quantity: int, *, case=None, reason: str = "", actor=None) -> InventoryTransaction:
    """
    Take `quantity` units of an inventory item out of stock.

    The item row is locked while the new level is computed; the returned
    transaction records the stock before and after the deduction.
    """
    if not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError({"quantity": ["Quantity must be a positive integer"]})

    with transaction.atomic():
        try:
            item = InventoryItem.objects.select_for_update().get(pk=item_id)
        except (InventoryItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Inventory item", item_id)

        if item.current_stock < quantity:
            logger.warning(
                "Insufficient stock for %s (sku=%s): available=%s requested=%s",
                item.name,
                item.sku,
                item.current_stock,
                quantity,
            )
            raise InsufficientStockError(item.name, item.current_stock, quantity)

        previous = item.current_stock
        item.current_stock = previous - quantity
        item.save(update_fields=["current_stock", "updated_at"])

        case_number = getattr(case, "case_number", "") or ""
        txn = InventoryTransaction.objects.create(
            item=item,
            kind=InventoryTransaction.Kind.DEDUCTION,
            quantity=quantity,
            previous_stock=previous,
            new_stock=item.current_stock,
            case=case,
            case_number=case_number,
            reason=reason or (f"Used for case {case_number}" if case_number else "Stock deduction"),
            performed_by=actor if actor is not None and getattr(actor, "is_authenticated", False) else None,
        )

        audit.record(
            "INVENTORY_DEDUCT",
            entity_type="inventory_item",
            entity_id=item.pk,
            user=actor,
            details={
                "sku": item.sku,
                "quantity": quantity,
                "previous_stock": previous,
                "new_stock": item.current_stock,
                "case_number": case_number,
            },
        )

    logger.info(
        "Deducted %s x %s for %s (stock %s -> %s)",
        quantity,
        item.sku,
        case_number or "-",
        previous,
        item.current_stock,
    )
    if item.is_low:
        logger.warning("Inventory item %s is at or below minimum stock (%s)", item.sku, item.current_stock)

    return txn
