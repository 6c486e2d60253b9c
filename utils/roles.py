"""
Role names and declarative role predicates used by the role gate.

Routes declare what they need once, e.g.

    @roles_required(role_is(ADMIN))
    @roles_required(role_in(VOLUNTEER, STAFF, ADMIN))
    @roles_required(at_least(STAFF))
"""
from __future__ import annotations

from typing import Callable, Iterable

REFUGEE = "refugee"
VOLUNTEER = "volunteer"
STAFF = "staff"
ADMIN = "admin"

# Lowest privilege first
ROLE_HIERARCHY = (REFUGEE, VOLUNTEER, STAFF, ADMIN)
ROLES = frozenset(ROLE_HIERARCHY)
DEFAULT_ROLE = REFUGEE


class RolePredicate:
    """A named check over a single role string."""

    def __init__(self, check: Callable[[str], bool], description: str):
        self._check = check
        self.description = description

    def __call__(self, role: str | None) -> bool:
        if not role:
            return False
        return bool(self._check(role))

    def __or__(self, other: "RolePredicate") -> "RolePredicate":
        return RolePredicate(
            lambda role: self(role) or other(role),
            f"({self.description} or {other.description})",
        )

    def __repr__(self):
        return f"<RolePredicate {self.description}>"


def _known(roles: Iterable[str]) -> frozenset:
    roles = frozenset(roles)
    unknown = roles - ROLES
    if unknown:
        raise ValueError(f"Unknown role(s): {', '.join(sorted(unknown))}")
    return roles


def role_is(role: str) -> RolePredicate:
    (role,) = _known([role])
    return RolePredicate(lambda r: r == role, f"role == {role}")


def role_in(*roles: str) -> RolePredicate:
    allowed = _known(roles)
    return RolePredicate(lambda r: r in allowed, f"role in {sorted(allowed)}")


def at_least(role: str) -> RolePredicate:
    """Role equal to or above `role` in ROLE_HIERARCHY."""
    (role,) = _known([role])
    floor = ROLE_HIERARCHY.index(role)
    return RolePredicate(
        lambda r: r in ROLES and ROLE_HIERARCHY.index(r) >= floor,
        f"role >= {role}",
    )
