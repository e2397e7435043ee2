# lab_core/workflows/__init__.py
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Set

from django.core.exceptions import PermissionDenied

from lab_core.workflows.errors import InvalidTransitionError


# ===============================================================
# Case statuses
# ===============================================================

RECEPTION = "reception"
CAD_DESIGN = "cad_design"
CAM_MILLING = "cam_milling"
FINISHING = "finishing"
REMOVABLE = "removable"
QUALITY_CONTROL = "quality_control"
ACCOUNTING = "accounting"
READY_FOR_DELIVERY = "ready_for_delivery"
DELIVERED = "delivered"
RETURNED = "returned"
CANCELLED = "cancelled"

# Display order for dashboards and the definition endpoint
WORKFLOW_ORDER: List[str] = [
    RECEPTION,
    CAD_DESIGN,
    CAM_MILLING,
    FINISHING,
    REMOVABLE,
    QUALITY_CONTROL,
    ACCOUNTING,
    READY_FOR_DELIVERY,
    DELIVERED,
    RETURNED,
    CANCELLED,
]

CASE_STATES: Set[str] = set(WORKFLOW_ORDER)

TERMINAL_STATES: Set[str] = {DELIVERED, RETURNED, CANCELLED}

FORWARD_TRANSITIONS: Dict[str, Set[str]] = {
    RECEPTION: {CAD_DESIGN, REMOVABLE},
    CAD_DESIGN: {CAM_MILLING},
    CAM_MILLING: {FINISHING},
    FINISHING: {QUALITY_CONTROL},
    REMOVABLE: {QUALITY_CONTROL},
    QUALITY_CONTROL: {ACCOUNTING},
    ACCOUNTING: {READY_FOR_DELIVERY},
    READY_FOR_DELIVERY: {DELIVERED},
}

# QC failure sends work back to the department that has to redo it
REJECTION_TRANSITIONS: Dict[str, Set[str]] = {
    QUALITY_CONTROL: {FINISHING, CAM_MILLING, CAD_DESIGN, REMOVABLE},
}

# Exception exits, available from every non-terminal state
EXIT_STATES: Set[str] = {CANCELLED, RETURNED}


def _build_transitions() -> Dict[str, Set[str]]:
    table: Dict[str, Set[str]] = {}
    for state in WORKFLOW_ORDER:
        if state in TERMINAL_STATES:
            table[state] = set()
            continue
        table[state] = (
            set(FORWARD_TRANSITIONS.get(state, set()))
            | set(REJECTION_TRANSITIONS.get(state, set()))
            | EXIT_STATES
        )
    return table


CASE_TRANSITIONS: Dict[str, Set[str]] = _build_transitions()

STATUS_DEPARTMENT: Dict[str, str] = {
    RECEPTION: "reception",
    CAD_DESIGN: "cad",
    CAM_MILLING: "cam",
    FINISHING: "finishing",
    REMOVABLE: "removable",
    QUALITY_CONTROL: "quality_control",
    ACCOUNTING: "accounting",
    READY_FOR_DELIVERY: "delivery",
    DELIVERED: "delivery",
    RETURNED: "reception",
    CANCELLED: "reception",
}

# Work types that skip CAD/CAM and go through the removable department
REMOVABLE_WORK_TYPES: Set[str] = {"removable", "ortho", "denture"}


# ===============================================================
# Roles
# ===============================================================

ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": "ADMIN",
    "SUPERUSER": "ADMIN",
    "SYSTEM_ADMIN": "ADMIN",
    "RECEPTIONIST": "RECEPTIONIST",
    "RECEPTION": "RECEPTIONIST",
    "DESIGNER": "DESIGNER",
    "CAD_DESIGNER": "DESIGNER",
    "TECHNICIAN": "TECHNICIAN",
    "LAB_TECH": "TECHNICIAN",
    "LAB_TECHNICIAN": "TECHNICIAN",
    "QC_MANAGER": "QC_MANAGER",
    "QC": "QC_MANAGER",
    "QUALITY_CONTROL": "QC_MANAGER",
    "ACCOUNTANT": "ACCOUNTANT",
    "DELIVERY_STAFF": "DELIVERY_STAFF",
    "DELIVERY": "DELIVERY_STAFF",
}

ALL_ROLES: List[str] = [
    "RECEPTIONIST",
    "DESIGNER",
    "TECHNICIAN",
    "QC_MANAGER",
    "ACCOUNTANT",
    "DELIVERY_STAFF",
    "ADMIN",
]

_EXIT_ROLES = {"ADMIN", "RECEPTIONIST"}
_QC_ROLES = {"QC_MANAGER", "ADMIN"}

TRANSITION_ROLES: Dict[str, Dict[str, Set[str]]] = {
    RECEPTION: {
        CAD_DESIGN: {"RECEPTIONIST", "ADMIN"},
        REMOVABLE: {"RECEPTIONIST", "ADMIN"},
    },
    CAD_DESIGN: {
        CAM_MILLING: {"DESIGNER", "ADMIN"},
    },
    CAM_MILLING: {
        FINISHING: {"TECHNICIAN", "ADMIN"},
    },
    FINISHING: {
        QUALITY_CONTROL: {"TECHNICIAN", "ADMIN"},
    },
    REMOVABLE: {
        QUALITY_CONTROL: {"TECHNICIAN", "ADMIN"},
    },
    QUALITY_CONTROL: {
        ACCOUNTING: _QC_ROLES,
        FINISHING: _QC_ROLES,
        CAM_MILLING: _QC_ROLES,
        CAD_DESIGN: _QC_ROLES,
        REMOVABLE: _QC_ROLES,
    },
    ACCOUNTING: {
        READY_FOR_DELIVERY: {"ACCOUNTANT", "ADMIN"},
    },
    READY_FOR_DELIVERY: {
        DELIVERED: {"DELIVERY_STAFF", "ADMIN"},
    },
}

# Privileged operations outside the transition table
FORCE_STATUS_ROLES: Set[str] = {"ADMIN"}
RESUME_ROLES: Set[str] = {"ADMIN"}
DELIVERY_DATE_ROLES: Set[str] = {"ADMIN", "RECEPTIONIST"}


def normalize_state(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def normalize_role(role: Optional[str]) -> str:
    """
    Canonicalize role strings so "Lab Tech", "lab-tech" and "LAB_TECH"
    all resolve to the same workflow role.
    """
    r = str(role or "").strip().upper()
    if not r:
        return r
    r = re.sub(r"[\s\-]+", "_", r)
    r = re.sub(r"_+", "_", r)
    return ROLE_ALIASES.get(r, r)


def normalize_roles(roles: Iterable[str]) -> Set[str]:
    return {normalize_role(r) for r in (roles or []) if normalize_role(r)}


# ===============================================================
# Structural checks
# ===============================================================

def is_terminal(state: str) -> bool:
    return normalize_state(state) in TERMINAL_STATES


def is_rejection(current: str, target: str) -> bool:
    """
    True when the move goes backward along the production pipeline.
    """
    return normalize_state(target) in REJECTION_TRANSITIONS.get(normalize_state(current), set())


def requires_reason(current: str, target: str) -> bool:
    return is_rejection(current, target) or normalize_state(target) == RETURNED


def allowed_next_states(current: str) -> List[str]:
    return sorted(CASE_TRANSITIONS.get(normalize_state(current), set()))


def validate_transition(current: str, target: str) -> None:
    """
    Raises InvalidTransitionError unless current -> target is an edge of the table.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in CASE_STATES:
        raise InvalidTransitionError(cur, tgt, message=f"Unknown case status: {cur or '<empty>'}")

    if tgt not in CASE_STATES:
        raise InvalidTransitionError(
            cur, tgt, allowed=CASE_TRANSITIONS[cur], message=f"Unknown case status: {tgt or '<empty>'}"
        )

    if tgt not in CASE_TRANSITIONS[cur]:
        raise InvalidTransitionError(cur, tgt, allowed=CASE_TRANSITIONS[cur])


# ===============================================================
# Role checks
# ===============================================================

def required_roles(current: str, target: str) -> Set[str]:
    cur = normalize_state(current)
    tgt = normalize_state(target)

    validate_transition(cur, tgt)

    if tgt in EXIT_STATES:
        return set(_EXIT_ROLES)
    return set(TRANSITION_ROLES.get(cur, {}).get(tgt, {"ADMIN"}))


def validate_transition_with_role(current: str, target: str, roles: Iterable[str]) -> None:
    """
    Canonical enforcement:
    - Transition must be an edge of the table
    - At least one of the actor's roles must be permitted for it
    """
    required = required_roles(current, target)
    held = normalize_roles(roles)

    if not held & required:
        raise PermissionDenied(
            f"Transfer {normalize_state(current)} -> {normalize_state(target)} "
            f"requires role(s): {', '.join(sorted(required))}"
        )


def allowed_transitions(current: str, roles: Optional[Iterable[str]] = None) -> List[str]:
    """
    Next states for the current status; filtered by role when roles are given.
    """
    nxt = allowed_next_states(current)
    if roles is None:
        return nxt

    held = normalize_roles(roles)
    return sorted(t for t in nxt if held & required_roles(current, t))


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for clients.
    """
    return {
        "kind": "case",
        "order": list(WORKFLOW_ORDER),
        "statuses": sorted(CASE_STATES),
        "transitions": {state: sorted(nxt) for state, nxt in CASE_TRANSITIONS.items()},
        "rejections": {state: sorted(nxt) for state, nxt in REJECTION_TRANSITIONS.items()},
        "terminal_states": sorted(TERMINAL_STATES),
        "departments": dict(STATUS_DEPARTMENT),
        "roles": {
            cur: {tgt: sorted(required_roles(cur, tgt)) for tgt in sorted(nxt)}
            for cur, nxt in CASE_TRANSITIONS.items()
            if nxt
        },
    }


__all__ = [
    "RECEPTION",
    "CAD_DESIGN",
    "CAM_MILLING",
    "FINISHING",
    "REMOVABLE",
    "QUALITY_CONTROL",
    "ACCOUNTING",
    "READY_FOR_DELIVERY",
    "DELIVERED",
    "RETURNED",
    "CANCELLED",
    "WORKFLOW_ORDER",
    "CASE_STATES",
    "CASE_TRANSITIONS",
    "TERMINAL_STATES",
    "STATUS_DEPARTMENT",
    "REMOVABLE_WORK_TYPES",
    "normalize_state",
    "normalize_role",
    "normalize_roles",
    "is_terminal",
    "is_rejection",
    "requires_reason",
    "allowed_next_states",
    "validate_transition",
    "required_roles",
    "validate_transition_with_role",
    "allowed_transitions",
    "workflow_definition",
]
