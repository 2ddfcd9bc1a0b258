"""
Module: approval_kernel.models.principal
Responsibility: Read model of the principals (users) the kernel authorizes.
    The user directory itself is managed elsewhere; this table mirrors the
    id and role the kernel needs.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.domain.approval import Principal
from approval_kernel.domain.roles import Role


class PrincipalModel(Base):
    """A principal and its single role."""

    __tablename__ = "principals"

    __table_args__ = (
        CheckConstraint(
            "role IN ('employee', 'approver', 'finance', "
            "'super_approver', 'ceo', 'admin')",
            name="ck_principals_valid_role",
        ),
    )

    principal_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)

    def __repr__(self) -> str:
        return f"<Principal {self.principal_id} role={self.role}>"

    def to_dto(self) -> Principal:
        return Principal(
            principal_id=self.principal_id,
            role=Role(self.role),
            display_name=self.display_name,
        )

    @classmethod
    def from_dto(cls, dto: Principal) -> PrincipalModel:
        return cls(
            principal_id=dto.principal_id,
            role=dto.role.value,
            display_name=dto.display_name,
        )
