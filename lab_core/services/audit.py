# lab_core/services/audit.py
"""
Audit log collaborator.

record() is best-effort: a failing insert is rolled back to a savepoint,
logged and swallowed so the operation being audited still completes.
Set AUDIT_LOG_STRICT=True to make audit failures abort the caller instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction

from lab_core.models import AuditLog

logger = logging.getLogger(__name__)


def _audit_user(user):
    if user is not None and getattr(user, "is_authenticated", False):
        return user
    return None


def record(
    action: str,
    *,
    entity_type: str,
    entity_id,
    user=None,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user=_audit_user(user),
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                details=details or {},
            )
    except Exception:
        if getattr(settings, "AUDIT_LOG_STRICT", False):
            raise
        logger.warning(
            "Audit log write failed (%s %s:%s)",
            action,
            entity_type,
            entity_id,
            exc_info=True,
        )
        return None
