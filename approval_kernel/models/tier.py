"""
Module: approval_kernel.models.tier
Responsibility: ORM persistence for approval tier definitions.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects.

Invariants enforced:
    - order >= 1 (order 0 is reserved for emergency bypass).
    - min_amount >= 0 and max_amount > min_amount when bounded.
    - Tiers are soft-deactivated (is_active = false), never deleted, so
      historical approvals keep pointing at a real definition.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.domain.approval import Tier
from approval_kernel.domain.roles import Role


class ApprovalTierModel(Base):
    """Persistent approval tier."""

    __tablename__ = "approval_tiers"

    __table_args__ = (
        CheckConstraint("tier_order >= 1", name="ck_approval_tiers_order_positive"),
        CheckConstraint("min_amount >= 0", name="ck_approval_tiers_min_non_negative"),
        CheckConstraint(
            "max_amount IS NULL OR max_amount > min_amount",
            name="ck_approval_tiers_range",
        ),
        Index("ix_approval_tiers_active_order", "is_active", "tier_order"),
    )

    tier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    tier_order: Mapped[int] = mapped_column(Integer, nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    required_role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalTier {self.tier_order} {self.name!r} "
            f"[{self.min_amount}, {self.max_amount}) role={self.required_role}>"
        )

    def to_dto(self) -> Tier:
        return Tier(
            tier_id=self.tier_id,
            name=self.name,
            order=self.tier_order,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            required_role=Role(self.required_role),
            active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: Tier) -> ApprovalTierModel:
        return cls(
            tier_id=dto.tier_id,
            name=dto.name,
            tier_order=dto.order,
            min_amount=dto.min_amount,
            max_amount=dto.max_amount,
            required_role=dto.required_role.value,
            is_active=dto.active,
        )
