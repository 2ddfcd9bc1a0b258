"""
Role vocabulary and override ranking (``approval_kernel.domain.roles``).

Responsibility
--------------
Defines the closed set of principal roles and the ranking table that the
authorization resolver consults, in order, before falling back to plain
role equality and delegation.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Override authority is evaluated in ``OVERRIDE_AUTHORITY`` order; the
  first entry whose role matches decides.
* ``ADMIN`` holds no approval authority (separation of duties).
* Override authority is never delegable: delegation only transfers the
  delegator's nominal role.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Principal roles."""

    EMPLOYEE = "employee"
    APPROVER = "approver"
    FINANCE = "finance"
    SUPER_APPROVER = "super_approver"
    CEO = "ceo"
    ADMIN = "admin"


class AuthorityRule(str, Enum):
    """Which resolution rule decided an authorization."""

    EXECUTIVE_OVERRIDE = "executive_override"
    SUPER_APPROVER_OVERRIDE = "super_approver_override"
    FINANCE_OVERRIDE = "finance_override"
    ROLE_MATCH = "role_match"
    DELEGATION = "delegation"
    DENIED = "denied"


@dataclass(frozen=True)
class OverrideGrant:
    """One row of the override ranking table.

    ``tier_roles`` is the set of tier ``required_role`` values the holder
    may act on; ``None`` means every tier.
    """

    role: Role
    rule: AuthorityRule
    tier_roles: frozenset[Role] | None


# Consulted top to bottom; first row whose role matches wins.
OVERRIDE_AUTHORITY: tuple[OverrideGrant, ...] = (
    OverrideGrant(Role.CEO, AuthorityRule.EXECUTIVE_OVERRIDE, None),
    OverrideGrant(
        Role.SUPER_APPROVER,
        AuthorityRule.SUPER_APPROVER_OVERRIDE,
        frozenset(r for r in Role if r is not Role.CEO),
    ),
    OverrideGrant(
        Role.FINANCE,
        AuthorityRule.FINANCE_OVERRIDE,
        frozenset({Role.FINANCE, Role.APPROVER}),
    ),
)

APPROVING_ROLES: frozenset[Role] = frozenset({
    Role.APPROVER,
    Role.FINANCE,
    Role.SUPER_APPROVER,
    Role.CEO,
})

# Emergency bypass: CEO may omit the justification, the others may not.
EMERGENCY_APPROVAL_ROLES: frozenset[Role] = frozenset({
    Role.CEO,
    Role.SUPER_APPROVER,
    Role.FINANCE,
})

JUSTIFICATION_EXEMPT_ROLES: frozenset[Role] = frozenset({Role.CEO})
