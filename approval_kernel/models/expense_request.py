"""
Module: approval_kernel.models.expense_request
Responsibility: ORM persistence for expense requests and their approval
    action history.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects.

Invariants enforced:
    - Status values are limited by a check constraint; transitions are
      enforced by ApprovalService through the guarded update in the
      repository (status + version compare-and-set).
    - version is bumped by every committed transition (optimistic lock).
    - Approval actions are append-only: ORM listeners refuse UPDATE and
      DELETE.
    - A tier order can be approved at most once per request: partial
      unique index over approved, non-bypass actions.

Failure modes:
    - ImmutabilityViolationError on action UPDATE/DELETE.
    - IntegrityError if two approvals of the same tier ever reach the
      database (the version guard is expected to stop the second first).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import (
    ActionKind,
    ApprovalAction,
    ExpenseRequest,
    normalize_status,
)
from approval_kernel.exceptions import ImmutabilityViolationError


class ExpenseRequestModel(Base):
    """Persistent expense request.

    Contract:
        Created by the external submission workflow; mutated only through
        the repository's guarded transition.
    """

    __tablename__ = "expense_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('submitted', 'pending_approval', 'approved', "
            "'rejected', 'clarification_requested', 'resubmitted')",
            name="ck_expense_requests_valid_status",
        ),
        CheckConstraint(
            "normalized_amount >= 0",
            name="ck_expense_requests_amount_non_negative",
        ),
        Index("ix_expense_requests_status_submitted", "status", "submitted_at"),
        Index("ix_expense_requests_submitter", "submitter_id"),
    )

    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    normalized_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="submitted")
    submitter_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    clarification_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<ExpenseRequest {self.request_id} amount={self.normalized_amount} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ExpenseRequest:
        return ExpenseRequest(
            request_id=self.request_id,
            normalized_amount=self.normalized_amount,
            status=normalize_status(self.status),
            submitter_id=self.submitter_id,
            version=self.version,
            rejection_reason=self.rejection_reason,
            clarification_note=self.clarification_note,
            submitted_at=self.submitted_at,
        )


class ApprovalActionModel(Base):
    """Persistent approval action. Append-only.

    Contract:
        Actions are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "approval_actions"

    __table_args__ = (
        CheckConstraint(
            "kind IN ('approved', 'rejected', 'clarification_requested')",
            name="ck_approval_actions_valid_kind",
        ),
        CheckConstraint("tier_order >= 0", name="ck_approval_actions_tier_order"),
        Index("ix_approval_actions_request", "request_id", "created_at"),
        Index("ix_approval_actions_actor", "actor_id", "created_at"),
        UniqueConstraint("request_id", "sequence", name="uq_approval_actions_sequence"),
        # Each tier is satisfied at most once per request
        Index(
            "ux_approval_actions_tier_once",
            "request_id", "tier_order",
            unique=True,
            postgresql_where=text("kind = 'approved' AND tier_order > 0"),
            sqlite_where=text("kind = 'approved' AND tier_order > 0"),
        ),
    )

    action_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("expense_requests.request_id"),
        nullable=False,
    )
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    tier_order: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    delegated_from_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    emergency_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_resubmission: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    # Position within the request history, assigned under the version guard
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction {self.action_id} request={self.request_id} "
            f"kind={self.kind} tier={self.tier_order}>"
        )

    def to_dto(self) -> ApprovalAction:
        return ApprovalAction(
            action_id=self.action_id,
            request_id=self.request_id,
            actor_id=self.actor_id,
            kind=ActionKind(self.kind),
            tier_order=self.tier_order,
            comment=self.comment,
            delegated_from_id=self.delegated_from_id,
            is_emergency=self.is_emergency,
            emergency_reason=self.emergency_reason,
            is_resubmission=self.is_resubmission,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalAction, sequence: int) -> ApprovalActionModel:
        return cls(
            action_id=dto.action_id,
            request_id=dto.request_id,
            actor_id=dto.actor_id,
            kind=dto.kind.value,
            tier_order=dto.tier_order,
            comment=dto.comment,
            delegated_from_id=dto.delegated_from_id,
            is_emergency=dto.is_emergency,
            emergency_reason=dto.emergency_reason,
            is_resubmission=dto.is_resubmission,
            created_at=dto.created_at,
            sequence=sequence,
        )


# =============================================================================
# ORM-Level Immutability for Actions (Append-Only)
# =============================================================================


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.action_id),
        reason="Approval actions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.action_id),
        reason="Approval actions are immutable -- cannot delete",
    )
