# lab_core/api_errors.py
"""
DRF exception handler for the lab domain errors.

LabError subclasses become {"detail", "errors", "code"} responses with the
status code the error carries; Django's PermissionDenied becomes 403 through
DRF's own handling. Anything else is left to DRF.
"""

from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from lab_core.workflows.errors import InvalidTransitionError, LabError

logger = logging.getLogger(__name__)


def lab_exception_handler(exc, context):
    if isinstance(exc, LabError):
        payload = {
            "detail": exc.message,
            "errors": exc.errors,
            "code": exc.__class__.__name__,
        }
        if isinstance(exc, InvalidTransitionError):
            payload["from_status"] = exc.from_status
            payload["to_status"] = exc.to_status
            payload["allowed"] = exc.allowed

        if exc.status_code >= 409:
            view = context.get("view")
            logger.info("%s rejected: %s", view.__class__.__name__ if view else "request", exc.message)

        return Response(payload, status=exc.status_code)

    return exception_handler(exc, context)
