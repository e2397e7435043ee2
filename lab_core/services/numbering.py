# lab_core/services/numbering.py

from __future__ import annotations

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from lab_core.models import CaseSequence


def format_case_number(year: int, value: int) -> str:
    prefix = getattr(settings, "CASE_NUMBER_PREFIX", "L")
    padding = int(getattr(settings, "CASE_NUMBER_PADDING", 5))
    return f"{prefix}-{year}-{value:0{padding}d}"


def generate_case_number(*, when=None) -> str:
    """
    Next case number for the year of `when` (default: now), e.g. L-2026-00001.

    The per-year counter row is locked for the rest of the caller's
    transaction, so concurrent intakes serialize on it and never reuse a value.
    """
    year = (when or timezone.now()).year

    with transaction.atomic():
        CaseSequence.objects.get_or_create(year=year)
        seq = CaseSequence.objects.select_for_update().get(year=year)
        seq.last_value += 1
        seq.save(update_fields=["last_value"])

    return format_case_number(year, seq.last_value)
