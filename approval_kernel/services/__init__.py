"""
Kernel services (imperative shell).

Services receive a caller-owned Session (directly or through the
repository adapter), flush within it and never commit.
"""

from approval_kernel.services.approval_query_service import ApprovalQueryService
from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.audit_sink import (
    CommitBoundAuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)
from approval_kernel.services.authorization_service import AuthorizationService
from approval_kernel.services.delegation_service import DelegationService
from approval_kernel.services.repository import SqlAlchemyApprovalRepository
from approval_kernel.services.tier_service import TierService

__all__ = [
    "ApprovalQueryService",
    "ApprovalService",
    "AuthorizationService",
    "CommitBoundAuditSink",
    "DelegationService",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "SqlAlchemyApprovalRepository",
    "TierService",
]
