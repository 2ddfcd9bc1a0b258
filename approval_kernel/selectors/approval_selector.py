"""
Module: approval_kernel.selectors.approval_selector
Responsibility: Read-only access to expense requests and their approval
    actions, returned as frozen domain DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations are performed.
    - Deterministic ordering: actionable requests by submission time then id;
      a request's actions oldest first; an actor's actions newest first.

Failure modes:
    - Returns None or an empty collection when nothing matches (never raises
      on absence of data).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from approval_kernel.domain.approval import (
    ACTIONABLE_STATUSES,
    ActionKind,
    ApprovalAction,
    ExpenseRequest,
    RequestStatus,
)
from approval_kernel.models.expense_request import (
    ApprovalActionModel,
    ExpenseRequestModel,
)
from approval_kernel.selectors.base import BaseSelector

# Stored values that read back as an actionable status.
_ACTIONABLE_STORED = sorted(
    {s.value for s in ACTIONABLE_STATUSES} | {RequestStatus.RESUBMITTED.value}
)


class ApprovalSelector(BaseSelector[ExpenseRequestModel]):
    """
    Selector for expense request and approval action queries.

    Contract:
        All public query methods return ``ExpenseRequest`` or
        ``ApprovalAction`` DTOs (or containers of them).
    """

    def get_request(self, request_id: UUID) -> ExpenseRequest | None:
        return self._first_dto(
            select(ExpenseRequestModel).where(ExpenseRequestModel.request_id == request_id)
        )

    def actionable_requests(self) -> list[ExpenseRequest]:
        """Requests in an actionable status, oldest submission first."""
        return self._dtos(
            select(ExpenseRequestModel)
            .where(ExpenseRequestModel.status.in_(_ACTIONABLE_STORED))
            .order_by(
                ExpenseRequestModel.submitted_at.asc().nulls_last(),
                ExpenseRequestModel.id,
            )
        )

    def approved_tier_orders_for(
        self,
        request_ids: Iterable[UUID],
    ) -> dict[UUID, frozenset[int]]:
        """
        Satisfied tier orders for many requests in one query.

        Args:
            request_ids: Requests to look up.

        Returns:
            Mapping of request id to approved tier orders; every requested
            id is present, with an empty set when nothing is approved.
        """
        ids = list(request_ids)
        found: dict[UUID, set[int]] = defaultdict(set)
        if ids:
            rows = self.session.execute(
                select(ApprovalActionModel.request_id, ApprovalActionModel.tier_order)
                .where(
                    ApprovalActionModel.request_id.in_(ids),
                    ApprovalActionModel.kind == ActionKind.APPROVED.value,
                    ApprovalActionModel.tier_order > 0,
                )
            ).all()
            for request_id, tier_order in rows:
                found[request_id].add(tier_order)
        return {rid: frozenset(found.get(rid, ())) for rid in ids}

    def actions_for_request(self, request_id: UUID) -> list[ApprovalAction]:
        """A request's actions in the order they were recorded."""
        return self._dtos(
            select(ApprovalActionModel)
            .where(ApprovalActionModel.request_id == request_id)
            .order_by(ApprovalActionModel.sequence)
        )

    def actions_by_actor(self, actor_id: UUID, limit: int) -> list[ApprovalAction]:
        """An actor's actions, most recent first."""
        return self._dtos(
            select(ApprovalActionModel)
            .where(ApprovalActionModel.actor_id == actor_id)
            .order_by(ApprovalActionModel.created_at.desc(), ApprovalActionModel.sequence.desc())
            .limit(limit)
        )
