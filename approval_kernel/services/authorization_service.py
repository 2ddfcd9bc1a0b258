"""
approval_kernel.services.authorization_service -- Authorization resolver.

Responsibility:
    Answer "may this principal act on this tier right now?" by applying the
    pure rules in ``approval_engines.authority`` and, only when the direct
    rules fail, looking up an in-window delegation.

Architecture position:
    Kernel > Services.  Reads through the ``ApprovalRepository`` port; the
    decision itself is made by the engine.

Invariants enforced:
    - Soundness: allowed iff an override, a role match, or an active
      delegation from a holder of the tier's required role applies.
    - Overrides are consulted before any delegation query and are never
      delegable.
"""

from __future__ import annotations

from datetime import datetime

from approval_engines.authority import direct_authority, evaluate_authority
from approval_kernel.domain.approval import AuthorizationDecision, Principal, Tier
from approval_kernel.domain.clock import Clock, SystemClock, ensure_utc
from approval_kernel.domain.repository import ApprovalRepository
from approval_kernel.logging_config import get_logger

logger = get_logger("services.authorization")


class AuthorizationService:
    """Resolves principal authority at a tier."""

    def __init__(
        self,
        repository: ApprovalRepository,
        clock: Clock | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()

    def authorize(
        self,
        principal: Principal,
        tier: Tier,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        """Decide whether ``principal`` may act at ``tier``.

        Args:
            principal: The acting principal.
            tier: The tier whose authority is required.
            now: Evaluation instant for delegation windows; defaults to the
                injected clock.
        """
        rule = direct_authority(principal.role, tier)
        if rule is not None:
            return evaluate_authority(principal, tier)

        at = ensure_utc(now) if now is not None else self._clock.now()
        delegation = self._repository.find_active_delegation_for(
            principal.principal_id, tier.required_role, at,
        )
        if delegation is None:
            return evaluate_authority(principal, tier)

        # The adapter already filtered on the delegator's role.
        decision = evaluate_authority(
            principal, tier, delegation, delegator_role=tier.required_role,
        )
        if decision.via_delegation:
            logger.info(
                "delegated_authority_used",
                extra={
                    "principal_id": str(principal.principal_id),
                    "delegator_id": str(decision.acting_as_delegate_of),
                    "delegation_id": str(decision.delegation_id),
                    "tier_order": tier.order,
                },
            )
        return decision
