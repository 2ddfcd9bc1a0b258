"""
Persistence ports (``approval_kernel.domain.repository``).

Responsibility
--------------
Pluggable interfaces through which the kernel reads and writes requests,
approval actions, tiers, principals and delegations.  Services depend on
these protocols only; ``approval_kernel.services.repository`` provides the
SQLAlchemy adapter.

Contract
--------
* Every read returns frozen domain DTOs, loaded fresh per call.
* ``atomic_transition`` is the only way a request's status changes.  It
  commits the status change and the new action together, and only if the
  stored status and version still equal the expected ones.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from approval_kernel.domain.approval import (
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


class ApprovalRepository(Protocol):
    """Reads and guarded writes needed by the approval state machine."""

    def load_request(self, request_id: UUID) -> ExpenseRequest | None:
        ...

    def load_approved_tier_orders(self, request_id: UUID) -> frozenset[int]:
        ...

    def list_active_tiers(self) -> list[Tier]:
        """Active tiers ordered by ``order`` ascending."""
        ...

    def load_principal(self, principal_id: UUID) -> Principal | None:
        ...

    def find_active_delegation_for(
        self,
        to_user_id: UUID,
        required_role: Role,
        at: datetime,
    ) -> Delegation | None:
        ...

    def find_overlapping_delegation(
        self,
        from_user_id: UUID,
        start: datetime,
        end: datetime,
    ) -> Delegation | None:
        ...

    def atomic_transition(
        self,
        request_id: UUID,
        expected_status: RequestStatus,
        expected_version: int,
        new_status: RequestStatus,
        new_action: ApprovalAction,
        field_updates: RequestFieldUpdates | None = None,
    ) -> TransitionOutcome:
        ...


class DelegationStore(Protocol):
    """CRUD and overlap query over delegation records."""

    def add_delegation(self, delegation: Delegation) -> Delegation:
        ...

    def load_delegation(self, delegation_id: UUID) -> Delegation | None:
        ...

    def deactivate_delegation(self, delegation_id: UUID) -> Delegation:
        ...

    def list_delegations_for(self, user_id: UUID, at: datetime) -> list[Delegation]:
        """Active delegations where ``user_id`` is either party and ``at`` is in range."""
        ...

    def find_overlapping_delegation(
        self,
        from_user_id: UUID,
        start: datetime,
        end: datetime,
    ) -> Delegation | None:
        ...

    def load_principal(self, principal_id: UUID) -> Principal | None:
        ...


class TierStore(Protocol):
    """Administrative access to tier definitions."""

    def add_tier(self, tier: Tier) -> Tier:
        ...

    def load_tier(self, tier_id: UUID) -> Tier | None:
        ...

    def update_tier(self, tier: Tier) -> Tier:
        ...

    def list_active_tiers(self) -> list[Tier]:
        ...
