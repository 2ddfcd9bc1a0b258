"""
Pure domain layer.

Immutable value objects, the request lifecycle, the role ranking table and
the persistence/audit ports.  NO dependencies on SQLAlchemy, the database
or the wall clock (except SystemClock).
"""

from approval_kernel.domain.approval import (
    ACTIONABLE_STATUSES,
    EMERGENCY_TIER_ORDER,
    REQUEST_TRANSITIONS,
    RESUBMITTABLE_STATUSES,
    ActionKind,
    ApprovalAction,
    AuthorizationDecision,
    CommandResult,
    Delegation,
    ExpenseRequest,
    Page,
    PendingApproval,
    Principal,
    RequestFieldUpdates,
    RequestStatus,
    RequestTimeline,
    Tier,
    TimelineEntry,
    TransitionOutcome,
    normalize_status,
)
from approval_kernel.domain.audit import AuditAction, AuditEventRecord, AuditSink
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.repository import (
    ApprovalRepository,
    DelegationStore,
    TierStore,
)
from approval_kernel.domain.roles import (
    EMERGENCY_APPROVAL_ROLES,
    OVERRIDE_AUTHORITY,
    AuthorityRule,
    Role,
)

__all__ = [
    "ACTIONABLE_STATUSES",
    "EMERGENCY_APPROVAL_ROLES",
    "EMERGENCY_TIER_ORDER",
    "OVERRIDE_AUTHORITY",
    "REQUEST_TRANSITIONS",
    "RESUBMITTABLE_STATUSES",
    "ActionKind",
    "ApprovalAction",
    "ApprovalRepository",
    "AuditAction",
    "AuditEventRecord",
    "AuditSink",
    "AuthorityRule",
    "AuthorizationDecision",
    "Clock",
    "CommandResult",
    "Delegation",
    "DelegationStore",
    "DeterministicClock",
    "ExpenseRequest",
    "Page",
    "PendingApproval",
    "Principal",
    "RequestFieldUpdates",
    "RequestStatus",
    "RequestTimeline",
    "Role",
    "SystemClock",
    "Tier",
    "TierStore",
    "TimelineEntry",
    "TransitionOutcome",
    "normalize_status",
]
