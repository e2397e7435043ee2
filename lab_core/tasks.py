# lab_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from lab_core import workflows as wf
from lab_core.models import DentalCase

logger = logging.getLogger(__name__)


def overdue_cases(today=None):
    today = today or timezone.localdate()
    return (
        DentalCase.objects.exclude(current_status__in=wf.TERMINAL_STATES)
        .filter(expected_delivery_date__lt=today)
        .order_by("expected_delivery_date", "id")
    )


@shared_task
def scan_overdue_cases() -> int:
    overdue = list(overdue_cases().values_list("case_number", "current_status", "expected_delivery_date"))

    for case_number, status, due in overdue:
        logger.warning("Case %s overdue (due %s, now in %s)", case_number, due, status)

    logger.info("Overdue scan: %s case(s) past their delivery date", len(overdue))
    return len(overdue)
