"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the expense approval kernel.  Defines the request
lifecycle state machine, tiers, the append-only approval action record,
delegations, principals, and the result records returned by commands and
queries.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Lifecycle state machine -- ``REQUEST_TRANSITIONS`` defines the only
  valid status transitions.  ``APPROVED`` has no outgoing edges.
* Tier ranges are half-open: ``[min_amount, max_amount)``; a ``None``
  ``max_amount`` is unbounded.
* Tier order ``0`` is reserved for emergency bypass and resubmission
  notes; configured tiers start at ``1``.
* ``RESUBMITTED`` is a legacy alias and is read back as ``SUBMITTED``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from approval_kernel.domain.roles import AuthorityRule, Role

# Tier order recorded on emergency approvals and resubmission notes.
EMERGENCY_TIER_ORDER = 0

RESUBMISSION_PREFIX = "RESUBMITTED: "


# =========================================================================
# Request Status Lifecycle
# =========================================================================


class RequestStatus(str, Enum):
    """Expense request lifecycle states."""

    SUBMITTED = "submitted"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLARIFICATION_REQUESTED = "clarification_requested"
    RESUBMITTED = "resubmitted"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.SUBMITTED: frozenset({
        RequestStatus.PENDING_APPROVAL,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CLARIFICATION_REQUESTED,
    }),
    RequestStatus.PENDING_APPROVAL: frozenset({
        RequestStatus.PENDING_APPROVAL,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CLARIFICATION_REQUESTED,
    }),
    RequestStatus.REJECTED: frozenset({RequestStatus.SUBMITTED}),
    RequestStatus.CLARIFICATION_REQUESTED: frozenset({RequestStatus.SUBMITTED}),
    RequestStatus.APPROVED: frozenset(),
}

ACTIONABLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.SUBMITTED,
    RequestStatus.PENDING_APPROVAL,
})

RESUBMITTABLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.REJECTED,
    RequestStatus.CLARIFICATION_REQUESTED,
})


def normalize_status(status: RequestStatus | str) -> RequestStatus:
    """Map stored status values onto the live lifecycle."""
    status = RequestStatus(status)
    if status is RequestStatus.RESUBMITTED:
        return RequestStatus.SUBMITTED
    return status


def is_valid_transition(current: RequestStatus, new: RequestStatus) -> bool:
    return new in REQUEST_TRANSITIONS.get(current, frozenset())


class ActionKind(str, Enum):
    """Kinds of recorded approval actions."""

    APPROVED = "approved"
    REJECTED = "rejected"
    CLARIFICATION_REQUESTED = "clarification_requested"


class TransitionOutcome(str, Enum):
    """Result of a guarded status transition."""

    COMMITTED = "committed"
    CONFLICT = "conflict"


# =========================================================================
# Entities
# =========================================================================


@dataclass(frozen=True)
class Principal:
    """An actor with exactly one role."""

    principal_id: UUID
    role: Role
    display_name: str = ""


@dataclass(frozen=True)
class Tier:
    """An ordered approval checkpoint keyed by amount range and role."""

    tier_id: UUID
    name: str
    order: int
    min_amount: Decimal
    max_amount: Decimal | None
    required_role: Role
    active: bool = True

    def covers(self, amount: Decimal) -> bool:
        """True if ``amount`` falls in ``[min_amount, max_amount)``."""
        if amount < self.min_amount:
            return False
        if self.max_amount is not None and amount >= self.max_amount:
            return False
        return True


@dataclass(frozen=True)
class ExpenseRequest:
    """Snapshot of an expense request as read at decision time.

    ``version`` is the optimistic-concurrency token; a transition commits
    only if status and version still match this snapshot.
    """

    request_id: UUID
    normalized_amount: Decimal
    status: RequestStatus
    submitter_id: UUID
    version: int = 1
    rejection_reason: str | None = None
    clarification_note: str | None = None
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class ApprovalAction:
    """Immutable audit record of a single action on a request."""

    action_id: UUID
    request_id: UUID
    actor_id: UUID
    kind: ActionKind
    tier_order: int
    comment: str | None = None
    delegated_from_id: UUID | None = None
    is_emergency: bool = False
    emergency_reason: str | None = None
    is_resubmission: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class Delegation:
    """``from_user_id``'s tier authority exercised by ``to_user_id``."""

    delegation_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    start_date: datetime
    end_date: datetime
    active: bool = True
    reason: str | None = None
    created_at: datetime | None = None

    def covers(self, at: datetime) -> bool:
        return self.active and self.start_date <= at <= self.end_date


# =========================================================================
# Resolver and command results
# =========================================================================


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of resolving whether a principal may act at a tier."""

    allowed: bool
    rule: AuthorityRule
    acting_as_delegate_of: UUID | None = None
    delegation_id: UUID | None = None

    @property
    def via_delegation(self) -> bool:
        return self.acting_as_delegate_of is not None


@dataclass(frozen=True)
class RequestFieldUpdates:
    """Request columns written alongside a status transition.

    ``None`` leaves a column untouched unless its ``clear_*`` flag is set.
    """

    rejection_reason: str | None = None
    clarification_note: str | None = None
    clear_rejection_reason: bool = False
    clear_clarification_note: bool = False
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class CommandResult:
    """Result of a single state-machine command."""

    request_id: UUID
    status: RequestStatus
    action: ApprovalAction
    message: str
    tier: Tier | None = None
    next_tier: Tier | None = None

    @property
    def is_emergency(self) -> bool:
        return self.action.is_emergency

    @property
    def delegated_from_id(self) -> UUID | None:
        return self.action.delegated_from_id


# =========================================================================
# Query results
# =========================================================================


@dataclass(frozen=True)
class Page:
    """One page of a paginated query."""

    items: tuple
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)


@dataclass(frozen=True)
class TimelineEntry:
    """One row of a request's approval timeline."""

    timestamp: datetime | None
    kind: ActionKind
    actor_id: UUID
    tier_order: int
    comment: str | None = None
    delegated_from_id: UUID | None = None
    is_emergency: bool = False
    emergency_reason: str | None = None
    is_resubmission: bool = False

    @property
    def was_delegated(self) -> bool:
        return self.delegated_from_id is not None


@dataclass(frozen=True)
class RequestTimeline:
    """Current status plus chronological action history of a request."""

    request_id: UUID
    current_status: RequestStatus
    entries: tuple[TimelineEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PendingApproval:
    """An actionable request together with the tier awaiting the principal."""

    request: ExpenseRequest
    tier: Tier
    acting_as_delegate_of: UUID | None = None
