"""
Module: approval_kernel.models.delegation
Responsibility: ORM persistence for time-bound approval delegations.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects.

Invariants enforced:
    - end_date > start_date (check constraint; DelegationService validates
      first with a typed error).
    - No overlapping active windows per delegator -- enforced by
      DelegationService at creation time (range overlap is not expressible
      as a portable unique constraint).
    - Soft revoke only: is_active flips to false, the row stays for audit.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.domain.approval import Delegation
from approval_kernel.exceptions import ImmutabilityViolationError


class ApprovalDelegationModel(Base):
    """Persistent delegation record."""

    __tablename__ = "approval_delegations"

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_approval_delegations_range"),
        Index("ix_approval_delegations_from", "from_user_id", "is_active"),
        Index("ix_approval_delegations_to", "to_user_id", "is_active"),
    )

    delegation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    from_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    to_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalDelegation {self.delegation_id} "
            f"{self.from_user_id} -> {self.to_user_id} active={self.is_active}>"
        )

    def to_dto(self) -> Delegation:
        return Delegation(
            delegation_id=self.delegation_id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            start_date=self.start_date,
            end_date=self.end_date,
            active=self.is_active,
            reason=self.reason,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: Delegation) -> ApprovalDelegationModel:
        return cls(
            delegation_id=dto.delegation_id,
            from_user_id=dto.from_user_id,
            to_user_id=dto.to_user_id,
            start_date=dto.start_date,
            end_date=dto.end_date,
            reason=dto.reason,
            is_active=dto.active,
            created_at=dto.created_at,
        )


@event.listens_for(ApprovalDelegationModel, "before_delete")
def prevent_delegation_delete(mapper, connection, target):
    """Delegations are soft-revoked, never deleted."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalDelegation",
        entity_id=str(target.delegation_id),
        reason="Delegations are revoked by deactivation -- cannot delete",
    )
