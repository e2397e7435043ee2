# lab_core/config.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Tuple

from django.conf import settings


@dataclass(frozen=True)
class LabConfiguration:
    """
    Lab-wide settings handed to the presentation layer.

    Read-only; the transition engine never consults it.
    """

    lab_name: str
    lab_phone: str = ""
    lab_address: str = ""
    case_number_prefix: str = "L"
    case_number_padding: int = 5
    email_notifications: bool = False
    notify_emails: Tuple[str, ...] = field(default_factory=tuple)
    overdue_scan_minutes: int = 30

    @classmethod
    def from_settings(cls) -> "LabConfiguration":
        return cls(
            lab_name=getattr(settings, "LAB_NAME", "Dental Lab"),
            lab_phone=getattr(settings, "LAB_PHONE", ""),
            lab_address=getattr(settings, "LAB_ADDRESS", ""),
            case_number_prefix=getattr(settings, "CASE_NUMBER_PREFIX", "L"),
            case_number_padding=int(getattr(settings, "CASE_NUMBER_PADDING", 5)),
            email_notifications=bool(getattr(settings, "WORKFLOW_EMAIL_NOTIFICATIONS", False)),
            notify_emails=tuple(getattr(settings, "WORKFLOW_NOTIFY_EMAILS", None) or ()),
            overdue_scan_minutes=int(getattr(settings, "OVERDUE_SCAN_MINUTES", 30)),
        )

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["notify_emails"] = list(self.notify_emails)
        return data
