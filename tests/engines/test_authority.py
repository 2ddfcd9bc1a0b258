"""
Tests for the pure authority rules.

Tests cover:
- direct_authority: override ranking table, role match, admin exclusion
- evaluate_authority: delegation acceptance and rejection
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_engines.authority import direct_authority, evaluate_authority
from approval_kernel.domain.approval import Delegation, Principal, Tier
from approval_kernel.domain.roles import AuthorityRule, Role

START = datetime(2024, 3, 1, tzinfo=timezone.utc)


def make_tier(role: Role, order: int = 1) -> Tier:
    return Tier(
        tier_id=uuid4(),
        name=f"{role.value} tier",
        order=order,
        min_amount=Decimal("0"),
        max_amount=None,
        required_role=role,
    )


def make_principal(role: Role) -> Principal:
    return Principal(principal_id=uuid4(), role=role)


def make_delegation(from_id, to_id, active: bool = True) -> Delegation:
    return Delegation(
        delegation_id=uuid4(),
        from_user_id=from_id,
        to_user_id=to_id,
        start_date=START,
        end_date=START + timedelta(days=10),
        active=active,
    )


# =========================================================================
# direct_authority
# =========================================================================


class TestDirectAuthority:
    @pytest.mark.parametrize("tier_role", [Role.APPROVER, Role.FINANCE, Role.SUPER_APPROVER, Role.CEO])
    def test_ceo_may_act_at_any_tier(self, tier_role):
        assert direct_authority(Role.CEO, make_tier(tier_role)) is AuthorityRule.EXECUTIVE_OVERRIDE

    @pytest.mark.parametrize("tier_role", [Role.APPROVER, Role.FINANCE, Role.SUPER_APPROVER])
    def test_super_approver_below_ceo_tiers(self, tier_role):
        assert (
            direct_authority(Role.SUPER_APPROVER, make_tier(tier_role))
            is AuthorityRule.SUPER_APPROVER_OVERRIDE
        )

    def test_super_approver_denied_at_ceo_tier(self):
        assert direct_authority(Role.SUPER_APPROVER, make_tier(Role.CEO)) is None

    @pytest.mark.parametrize("tier_role", [Role.APPROVER, Role.FINANCE])
    def test_finance_override(self, tier_role):
        assert direct_authority(Role.FINANCE, make_tier(tier_role)) is AuthorityRule.FINANCE_OVERRIDE

    @pytest.mark.parametrize("tier_role", [Role.SUPER_APPROVER, Role.CEO])
    def test_finance_denied_above_finance(self, tier_role):
        assert direct_authority(Role.FINANCE, make_tier(tier_role)) is None

    def test_role_match(self):
        assert direct_authority(Role.APPROVER, make_tier(Role.APPROVER)) is AuthorityRule.ROLE_MATCH

    def test_approver_denied_at_finance_tier(self):
        assert direct_authority(Role.APPROVER, make_tier(Role.FINANCE)) is None

    @pytest.mark.parametrize("tier_role", list(Role))
    def test_admin_holds_no_approval_authority_except_exact_match(self, tier_role):
        rule = direct_authority(Role.ADMIN, make_tier(tier_role))
        if tier_role is Role.ADMIN:
            assert rule is AuthorityRule.ROLE_MATCH
        else:
            assert rule is None


# =========================================================================
# evaluate_authority
# =========================================================================


class TestEvaluateAuthority:
    def test_override_ignores_delegation(self):
        principal = make_principal(Role.CEO)
        decision = evaluate_authority(principal, make_tier(Role.CEO))
        assert decision.allowed
        assert decision.rule is AuthorityRule.EXECUTIVE_OVERRIDE
        assert not decision.via_delegation

    def test_delegation_from_required_role_allows(self):
        principal = make_principal(Role.EMPLOYEE)
        delegator_id = uuid4()
        delegation = make_delegation(delegator_id, principal.principal_id)

        decision = evaluate_authority(
            principal, make_tier(Role.FINANCE), delegation, delegator_role=Role.FINANCE,
        )

        assert decision.allowed
        assert decision.rule is AuthorityRule.DELEGATION
        assert decision.acting_as_delegate_of == delegator_id
        assert decision.delegation_id == delegation.delegation_id

    def test_delegation_from_wrong_role_denied(self):
        principal = make_principal(Role.EMPLOYEE)
        delegation = make_delegation(uuid4(), principal.principal_id)

        decision = evaluate_authority(
            principal, make_tier(Role.FINANCE), delegation, delegator_role=Role.APPROVER,
        )

        assert not decision.allowed
        assert decision.rule is AuthorityRule.DENIED

    def test_inactive_delegation_denied(self):
        principal = make_principal(Role.EMPLOYEE)
        delegation = make_delegation(uuid4(), principal.principal_id, active=False)

        decision = evaluate_authority(
            principal, make_tier(Role.APPROVER), delegation, delegator_role=Role.APPROVER,
        )
        assert not decision.allowed

    def test_delegation_to_someone_else_denied(self):
        principal = make_principal(Role.EMPLOYEE)
        delegation = make_delegation(uuid4(), uuid4())

        decision = evaluate_authority(
            principal, make_tier(Role.APPROVER), delegation, delegator_role=Role.APPROVER,
        )
        assert not decision.allowed

    def test_no_delegation_denied(self):
        decision = evaluate_authority(make_principal(Role.EMPLOYEE), make_tier(Role.APPROVER))
        assert decision == decision.__class__(allowed=False, rule=AuthorityRule.DENIED)
