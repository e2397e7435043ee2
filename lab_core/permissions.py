# lab_core/permissions.py
from __future__ import annotations

from typing import Iterable, Optional, Set

from django.core.exceptions import PermissionDenied

from lab_core.models import UserRole
from lab_core.workflows import normalize_roles


def resolve_roles(user) -> Set[str]:
    """
    Effective workflow roles for a user.

    Superusers always hold ADMIN on top of whatever roles they were given.
    Anonymous or missing users hold nothing.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return set()

    roles = normalize_roles(
        UserRole.objects.filter(user=user).values_list("role", flat=True)
    )
    if user.is_superuser:
        roles.add("ADMIN")
    return roles


def require_roles(
    user,
    allowed: Iterable[str],
    *,
    action: str,
    roles: Optional[Iterable[str]] = None,
) -> Set[str]:
    held = normalize_roles(roles) if roles is not None else resolve_roles(user)
    allowed = set(allowed)
    if not held & allowed:
        raise PermissionDenied(f"{action} requires role(s): {', '.join(sorted(allowed))}")
    return held
