"""
approval_engines.authority -- Pure authorization rule evaluation.

Responsibility:
    Decide whether a principal may act on a request at a given tier, and
    whether they do so on their own authority or as somebody's delegate.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The delegation record is
    looked up by the caller and passed in; this module never queries.

Invariants enforced:
    Resolution order, first match wins:
      1. executive override (ceo)             -- any tier
      2. super approver override              -- any tier not requiring ceo
      3. finance override                     -- finance or approver tiers
      4. own role == tier.required_role
      5. delegation from a holder of tier.required_role
      6. denied
    Override rows come from ``OVERRIDE_AUTHORITY`` so the ranking is data,
    not scattered comparisons.  Override authority is not delegable.
"""

from __future__ import annotations

from approval_kernel.domain.approval import (
    AuthorizationDecision,
    Delegation,
    Principal,
    Tier,
)
from approval_kernel.domain.roles import OVERRIDE_AUTHORITY, AuthorityRule, Role


def direct_authority(role: Role, tier: Tier) -> AuthorityRule | None:
    """Rules 1-4: authority the role holds without any delegation.

    Returns:
        The deciding rule, or None if only a delegation could authorize.
    """
    for grant in OVERRIDE_AUTHORITY:
        if grant.role is not role:
            continue
        if grant.tier_roles is None or tier.required_role in grant.tier_roles:
            return grant.rule
        # An override role that does not cover this tier still gets the
        # plain role-equality check below.
        break

    if role is tier.required_role:
        return AuthorityRule.ROLE_MATCH
    return None


def evaluate_authority(
    principal: Principal,
    tier: Tier,
    delegation: Delegation | None = None,
    delegator_role: Role | None = None,
) -> AuthorizationDecision:
    """Apply rules 1-6 in order.

    Args:
        principal: The acting principal.
        tier: The tier whose authority is needed.
        delegation: An active, in-window delegation to ``principal``, if any.
        delegator_role: Role of ``delegation.from_user_id``.

    Returns:
        AuthorizationDecision naming the rule that decided.
    """
    rule = direct_authority(principal.role, tier)
    if rule is not None:
        return AuthorizationDecision(allowed=True, rule=rule)

    if (
        delegation is not None
        and delegation.active
        and delegation.to_user_id == principal.principal_id
        and delegator_role is tier.required_role
    ):
        return AuthorizationDecision(
            allowed=True,
            rule=AuthorityRule.DELEGATION,
            acting_as_delegate_of=delegation.from_user_id,
            delegation_id=delegation.delegation_id,
        )

    return AuthorizationDecision(allowed=False, rule=AuthorityRule.DENIED)
