"""Role checks and organization scoping, evaluated explicitly at the start of each operation."""
from __future__ import annotations

from dataclasses import dataclass

from staffdesk.errors import NotFoundError, PermissionDeniedError, RotaValidationError
from staffdesk.models.user import User, UserRole

ALL_ROLES = frozenset(UserRole)
ROTA_MANAGERS = frozenset({UserRole.super_admin, UserRole.admin})
ROTA_AUDITORS = frozenset({UserRole.root, UserRole.super_admin, UserRole.admin})
EMPLOYEE_MANAGERS = ROTA_MANAGERS


@dataclass(frozen=True)
class ActorContext:
    """Who is acting and from where; forwarded into every audited mutation."""

    user: User
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def username(self) -> str:
        return self.user.username

    @property
    def role(self) -> UserRole:
        return self.user.role

    @property
    def organization_id(self) -> int | None:
        return self.user.organization_id


def is_root(user: User) -> bool:
    return user.role == UserRole.root


def require_role(user: User, allowed: frozenset[UserRole], action: str) -> None:
    if user.role not in allowed:
        names = ", ".join(sorted(r.value for r in allowed))
        raise PermissionDeniedError(f"Access denied. Only {names} can {action}.")


def organization_scope(user: User) -> int | None:
    """Organization id the user is confined to; None means every organization (ROOT)."""
    if is_root(user):
        return None
    if user.organization_id is None:
        raise PermissionDeniedError("User is not assigned to an organization.")
    return user.organization_id


def require_organization(user: User) -> int:
    """Organization id for operations that create tenant data."""
    if user.organization_id is None:
        raise RotaValidationError("An organization context is required for this operation.")
    return user.organization_id


def ensure_in_scope(user: User, organization_id: int | None, what: str, ident: int) -> None:
    """Out-of-organization records are reported as missing, not forbidden."""
    scope = organization_scope(user)
    if scope is not None and organization_id != scope:
        raise NotFoundError(f"{what} not found with ID: {ident}")
