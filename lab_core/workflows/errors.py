# lab_core/workflows/errors.py

"""
Domain exceptions for the case workflow.

Every exception carries a human-readable message. The REST layer maps
them to HTTP responses in lab_core.api_errors; services and department
handlers raise them directly and never return error codes.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional


class LabError(Exception):
    status_code = 400

    def __init__(self, message: str, *, errors: Optional[Dict[str, List[str]]] = None):
        self.message = message
        self.errors = errors or {}
        super().__init__(message)


class ValidationError(LabError):
    """
    Malformed input to case creation, detail updates or department data.
    Nothing is persisted when this is raised.
    """

    status_code = 400

    def __init__(self, errors, message: Optional[str] = None):
        if isinstance(errors, str):
            errors = {"non_field_errors": [errors]}
        normalized = {
            field: [str(m) for m in (msgs if isinstance(msgs, (list, tuple)) else [msgs])]
            for field, msgs in dict(errors).items()
        }
        if message is None:
            first_field = next(iter(normalized), "non_field_errors")
            first_msg = (normalized.get(first_field) or ["invalid"])[0]
            message = f"{first_field}: {first_msg}" if first_field != "non_field_errors" else first_msg
        super().__init__(message, errors=normalized)


class NotFoundError(LabError):
    status_code = 404

    def __init__(self, entity: str, key):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class InvalidTransitionError(LabError):
    """
    Requested status is not reachable from the case's current status.
    """

    status_code = 409

    def __init__(
        self,
        from_status: str,
        to_status: str,
        *,
        allowed: Iterable[str] = (),
        message: Optional[str] = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = sorted(allowed)
        if message is None:
            valid = ", ".join(self.allowed) or "none (terminal state)"
            message = f"Cannot transfer from {from_status} to {to_status}. Valid: {valid}"
        super().__init__(message)


class TransitionBlockedError(InvalidTransitionError):
    """
    The edge exists in the transition table but a department gate is unmet.
    """

    def __init__(self, from_status: str, to_status: str, *, reasons: List[str]):
        self.reasons = list(reasons)
        super().__init__(
            from_status,
            to_status,
            message=f"Transfer {from_status} -> {to_status} blocked: " + "; ".join(self.reasons),
        )
        self.errors = {"status": self.reasons}


class TransitionConflictError(InvalidTransitionError):
    """
    Another request changed the case status between read and write.
    """

    def __init__(self, from_status: str, to_status: str, *, observed: str):
        self.observed = observed
        super().__init__(
            from_status,
            to_status,
            message=(
                f"Case status changed concurrently (expected {from_status}, "
                f"found {observed}); transfer to {to_status} not applied"
            ),
        )


class CasePausedError(TransitionBlockedError):
    def __init__(self, from_status: str, to_status: str, *, reason: str = ""):
        detail = "case is paused for try-in"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(from_status, to_status, reasons=[detail + "; resume it first"])


class CaseNotInDepartmentError(LabError):
    status_code = 409

    def __init__(self, case_number: str, department: str, current_status: str):
        self.department = department
        self.current_status = current_status
        super().__init__(
            f"Case {case_number} is in {current_status}; "
            f"{department} data can only be edited while the case is in that department"
        )


class InsufficientStockError(LabError):
    status_code = 409

    def __init__(self, item_name: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {item_name}. Available: {available}, requested: {requested}"
        )


__all__ = [
    "LabError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "TransitionBlockedError",
    "TransitionConflictError",
    "CasePausedError",
    "CaseNotInDepartmentError",
    "InsufficientStockError",
]
