"""
approval_kernel.services.repository -- SQLAlchemy persistence adapter.

Responsibility:
    Implements the ``ApprovalRepository``, ``DelegationStore`` and
    ``TierStore`` ports over a caller-owned SQLAlchemy Session.  Every read
    returns frozen domain DTOs; nothing is cached between calls.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Guarded transition: the request row is updated with
      ``WHERE status = :expected AND version = :expected_version`` and its
      version bumped; the new action is inserted only if exactly one row
      matched, in the same transaction.  Zero rows -> CONFLICT.
    - Reads bypass the identity map (populate_existing) so a snapshot always
      reflects the latest flushed state.
    - Session ownership: this adapter flushes, it never commits.

Failure modes:
    - Returns TransitionOutcome.CONFLICT on a lost optimistic race.
    - DelegationNotFoundError / TierNotFoundError when updating a row that
      does not exist.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session, aliased

from approval_kernel.domain.approval import (
    ActionKind,
    ApprovalAction,
    Delegation,
    ExpenseRequest,
    Principal,
    RequestFieldUpdates,
    RequestStatus,
    Tier,
    TransitionOutcome,
)
from approval_kernel.domain.roles import Role
from approval_kernel.exceptions import DelegationNotFoundError, TierNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.delegation import ApprovalDelegationModel
from approval_kernel.models.expense_request import (
    ApprovalActionModel,
    ExpenseRequestModel,
)
from approval_kernel.models.principal import PrincipalModel
from approval_kernel.models.tier import ApprovalTierModel

logger = get_logger("services.repository")


class SqlAlchemyApprovalRepository:
    """Approval, delegation and tier persistence over one Session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Requests and actions
    # ------------------------------------------------------------------

    def load_request(self, request_id: UUID) -> ExpenseRequest | None:
        model = self._session.execute(
            select(ExpenseRequestModel)
            .where(ExpenseRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def load_approved_tier_orders(self, request_id: UUID) -> frozenset[int]:
        rows = self._session.execute(
            select(ApprovalActionModel.tier_order).where(
                ApprovalActionModel.request_id == request_id,
                ApprovalActionModel.kind == ActionKind.APPROVED.value,
                ApprovalActionModel.tier_order > 0,
            )
        ).scalars().all()
        return frozenset(rows)

    def list_actions(self, request_id: UUID) -> list[ApprovalAction]:
        models = self._session.execute(
            select(ApprovalActionModel)
            .where(ApprovalActionModel.request_id == request_id)
            .order_by(ApprovalActionModel.sequence)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def atomic_transition(
        self,
        request_id: UUID,
        expected_status: RequestStatus,
        expected_version: int,
        new_status: RequestStatus,
        new_action: ApprovalAction,
        field_updates: RequestFieldUpdates | None = None,
    ) -> TransitionOutcome:
        values: dict = {
            "status": new_status.value,
            "version": ExpenseRequestModel.version + 1,
        }
        if field_updates is not None:
            if field_updates.rejection_reason is not None:
                values["rejection_reason"] = field_updates.rejection_reason
            elif field_updates.clear_rejection_reason:
                values["rejection_reason"] = None
            if field_updates.clarification_note is not None:
                values["clarification_note"] = field_updates.clarification_note
            elif field_updates.clear_clarification_note:
                values["clarification_note"] = None
            if field_updates.submitted_at is not None:
                values["submitted_at"] = field_updates.submitted_at

        # A stored legacy 'resubmitted' status is read back as 'submitted'
        expected_values = [expected_status.value]
        if expected_status is RequestStatus.SUBMITTED:
            expected_values.append(RequestStatus.RESUBMITTED.value)

        result = self._session.execute(
            update(ExpenseRequestModel)
            .where(
                ExpenseRequestModel.request_id == request_id,
                ExpenseRequestModel.status.in_(expected_values),
                ExpenseRequestModel.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.warning(
                "transition_conflict",
                extra={
                    "request_id": str(request_id),
                    "expected_status": expected_status.value,
                    "expected_version": expected_version,
                    "new_status": new_status.value,
                },
            )
            return TransitionOutcome.CONFLICT

        sequence = self._session.execute(
            select(func.coalesce(func.max(ApprovalActionModel.sequence), 0))
            .where(ApprovalActionModel.request_id == request_id)
        ).scalar_one() + 1
        self._session.add(ApprovalActionModel.from_dto(new_action, sequence))
        self._session.flush()
        return TransitionOutcome.COMMITTED

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def list_active_tiers(self) -> list[Tier]:
        models = self._session.execute(
            select(ApprovalTierModel)
            .where(ApprovalTierModel.is_active.is_(True))
            .order_by(ApprovalTierModel.tier_order)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def load_tier(self, tier_id: UUID) -> Tier | None:
        model = self._load_tier_model(tier_id)
        return model.to_dto() if model is not None else None

    def add_tier(self, tier: Tier) -> Tier:
        model = ApprovalTierModel.from_dto(tier)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def update_tier(self, tier: Tier) -> Tier:
        model = self._load_tier_model(tier.tier_id)
        if model is None:
            raise TierNotFoundError(str(tier.tier_id))
        model.name = tier.name
        model.tier_order = tier.order
        model.min_amount = tier.min_amount
        model.max_amount = tier.max_amount
        model.required_role = tier.required_role.value
        model.is_active = tier.active
        self._session.flush()
        return model.to_dto()

    def _load_tier_model(self, tier_id: UUID) -> ApprovalTierModel | None:
        return self._session.execute(
            select(ApprovalTierModel).where(ApprovalTierModel.tier_id == tier_id)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------

    def load_principal(self, principal_id: UUID) -> Principal | None:
        model = self._session.execute(
            select(PrincipalModel).where(PrincipalModel.principal_id == principal_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    # ------------------------------------------------------------------
    # Delegations
    # ------------------------------------------------------------------

    def find_active_delegation_for(
        self,
        to_user_id: UUID,
        required_role: Role,
        at: datetime,
    ) -> Delegation | None:
        delegator = aliased(PrincipalModel)
        model = self._session.execute(
            select(ApprovalDelegationModel)
            .join(delegator, delegator.principal_id == ApprovalDelegationModel.from_user_id)
            .where(
                ApprovalDelegationModel.to_user_id == to_user_id,
                ApprovalDelegationModel.is_active.is_(True),
                ApprovalDelegationModel.start_date <= at,
                ApprovalDelegationModel.end_date >= at,
                delegator.role == required_role.value,
            )
            .order_by(ApprovalDelegationModel.start_date)
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_overlapping_delegation(
        self,
        from_user_id: UUID,
        start: datetime,
        end: datetime,
    ) -> Delegation | None:
        model = self._session.execute(
            select(ApprovalDelegationModel)
            .where(
                ApprovalDelegationModel.from_user_id == from_user_id,
                ApprovalDelegationModel.is_active.is_(True),
                ApprovalDelegationModel.start_date <= end,
                ApprovalDelegationModel.end_date >= start,
            )
            .order_by(ApprovalDelegationModel.start_date)
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def add_delegation(self, delegation: Delegation) -> Delegation:
        model = ApprovalDelegationModel.from_dto(delegation)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def load_delegation(self, delegation_id: UUID) -> Delegation | None:
        model = self._load_delegation_model(delegation_id)
        return model.to_dto() if model is not None else None

    def deactivate_delegation(self, delegation_id: UUID) -> Delegation:
        model = self._load_delegation_model(delegation_id)
        if model is None:
            raise DelegationNotFoundError(str(delegation_id))
        model.is_active = False
        self._session.flush()
        return model.to_dto()

    def list_delegations_for(self, user_id: UUID, at: datetime) -> list[Delegation]:
        models = self._session.execute(
            select(ApprovalDelegationModel)
            .where(
                or_(
                    ApprovalDelegationModel.from_user_id == user_id,
                    ApprovalDelegationModel.to_user_id == user_id,
                ),
                and_(
                    ApprovalDelegationModel.is_active.is_(True),
                    ApprovalDelegationModel.start_date <= at,
                    ApprovalDelegationModel.end_date >= at,
                ),
            )
            .order_by(ApprovalDelegationModel.start_date)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def _load_delegation_model(self, delegation_id: UUID) -> ApprovalDelegationModel | None:
        return self._session.execute(
            select(ApprovalDelegationModel).where(
                ApprovalDelegationModel.delegation_id == delegation_id,
            )
        ).scalar_one_or_none()
