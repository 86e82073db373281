from __future__ import annotations

"""Role-based permission checks for assistant endpoints."""
from enum import Enum
from typing import Callable, Optional, Set

from fastapi import Depends, HTTPException, status

from .auth import Principal, get_current_principal


class Permission(str, Enum):
    ASSISTANT_CHAT = "assistant:chat"
    DATA_WRITE = "data:write"
    AUDIT_READ = "audit:read"
    ADMIN = "admin:*"


ROLE_PERMISSIONS = {
    "viewer": {Permission.ASSISTANT_CHAT, Permission.AUDIT_READ},
    "contributor": {Permission.ASSISTANT_CHAT, Permission.DATA_WRITE, Permission.AUDIT_READ},
    "admin": {Permission.ADMIN},
}


def _principal_permissions(principal: Principal) -> Set[Permission]:
    perms: Set[Permission] = set()
    for role in principal.roles:
        perms |= ROLE_PERMISSIONS.get(role, set())
    return perms


def is_authorized(principal: Optional[Principal], required: Permission) -> bool:
    if principal is None:
        return False
    perms = _principal_permissions(principal)
    if Permission.ADMIN in perms:
        return True
    return required in perms


def require_permission(required: Permission) -> Callable[[Principal], Principal]:
    """FastAPI dependency to enforce a single permission on a route."""

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not is_authorized(principal, required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal

    return dependency
