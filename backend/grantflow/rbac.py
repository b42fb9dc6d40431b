from __future__ import annotations

from dataclasses import dataclass

from . import models
from .errors import UnauthorizedError

# purpose: role checks applied by the HTTP wrapper before calling workflow services
# status: active


@dataclass(frozen=True)
class RoleRequirement:
    """Roles allowed to perform an action; admins always pass."""

    action: str
    roles: tuple[str, ...]


REQUIREMENTS: dict[str, RoleRequirement] = {
    "proposal.submit": RoleRequirement("proposal.submit", ("researcher",)),
    "review.complete": RoleRequirement("review.complete", ("reviewer", "system")),
    "review.list_own": RoleRequirement("review.list_own", ("reviewer", "system")),
    "full_proposal.submit": RoleRequirement("full_proposal.submit", ("researcher",)),
}


def require_admin(user: models.User) -> None:
    if not user.is_admin:
        raise UnauthorizedError("administrator role required")


def ensure_role(user: models.User, action: str) -> None:
    requirement = REQUIREMENTS[action]
    if user.is_admin or user.role in requirement.roles:
        return
    raise UnauthorizedError(f"{user.role} accounts may not perform {action}")


def ensure_owner_or_admin(user: models.User, owner_id) -> None:
    if user.is_admin or user.id == owner_id:
        return
    raise UnauthorizedError("not authorized for this proposal")
