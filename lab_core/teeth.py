# lab_core/teeth.py
"""
Tooth notation used on case intake.

Teeth are written in FDI two-digit notation, comma separated, with optional
same-quadrant ranges ("11,12,13", "21-23, 31"), or as one of the full-arch
phrases the reception desk uses ("upper full", "lower full", "full mouth").
"""

from __future__ import annotations

import re
from typing import List

_TOOTH = r"[1-8][1-8]"
_ITEM = rf"{_TOOTH}(?:\s*-\s*{_TOOTH})?"

TEETH_PATTERN = re.compile(rf"^\s*{_ITEM}(?:\s*,\s*{_ITEM})*\s*$")

ARCH_TEETH = {
    "upper full": 14,
    "lower full": 14,
    "full mouth": 28,
}


def _normalize(value: str) -> str:
    return re.sub(r"\s+", " ", str(value or "").strip().lower())


def is_valid_teeth_numbers(value: str) -> bool:
    text = _normalize(value)
    if text in ARCH_TEETH:
        return True
    if not TEETH_PATTERN.match(text):
        return False
    # Ranges must stay inside one quadrant and run upwards
    for item in text.split(","):
        if "-" in item:
            start, end = (p.strip() for p in item.split("-"))
            if start[0] != end[0] or int(start) > int(end):
                return False
    return True


def expand_teeth(value: str) -> List[str]:
    """
    Individual FDI numbers for a tooth list; empty for full-arch phrases.
    """
    text = _normalize(value)
    if text in ARCH_TEETH or not is_valid_teeth_numbers(text):
        return []

    teeth: List[str] = []
    for item in text.split(","):
        item = item.strip()
        if "-" in item:
            start, end = (int(p.strip()) for p in item.split("-"))
            teeth.extend(str(n) for n in range(start, end + 1))
        else:
            teeth.append(item)

    seen = set()
    return [t for t in teeth if not (t in seen or seen.add(t))]


def count_teeth(value: str) -> int:
    text = _normalize(value)
    if text in ARCH_TEETH:
        return ARCH_TEETH[text]
    return len(expand_teeth(text))
