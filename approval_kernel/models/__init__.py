"""ORM models for the approval kernel."""

from approval_kernel.models.delegation import ApprovalDelegationModel
from approval_kernel.models.expense_request import (
    ApprovalActionModel,
    ExpenseRequestModel,
)
from approval_kernel.models.principal import PrincipalModel
from approval_kernel.models.tier import ApprovalTierModel

__all__ = [
    "ApprovalActionModel",
    "ApprovalDelegationModel",
    "ApprovalTierModel",
    "ExpenseRequestModel",
    "PrincipalModel",
]
