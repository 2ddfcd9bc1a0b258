"""
approval_kernel.services.approval_query_service -- Approval read queries.

Responsibility:
    The inbox, history and timeline views over expense requests:

    - ``pending_for``: actionable requests the principal may act on at the
      tier each request is currently waiting for, paginated.
    - ``history_for``: the principal's own actions, newest first.
    - ``timeline_for``: current status plus the chronological action log.

Architecture position:
    Kernel > Services.  Reads through ``ApprovalSelector`` and the
    repository; never writes.

Invariants enforced:
    - A request appears in ``pending_for`` only if ``authorize`` would allow
      the principal at its current required tier.
    - A request with no tier coverage is skipped and logged, never raised,
      so one misconfigured amount cannot break an inbox.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from approval_config.schema import ApprovalSettings
from approval_engines.tiers import required_tier
from approval_kernel.domain.approval import (
    ApprovalAction,
    AuthorizationDecision,
    Page,
    PendingApproval,
    RequestTimeline,
    TimelineEntry,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    PrincipalNotFoundError,
    RequestNotFoundError,
    TierCoverageError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.selectors.approval_selector import ApprovalSelector
from approval_kernel.services.authorization_service import AuthorizationService
from approval_kernel.services.repository import SqlAlchemyApprovalRepository

logger = get_logger("services.approval_query")


class ApprovalQueryService:
    """Read-only approval views for one Session."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: ApprovalSettings | None = None,
    ) -> None:
        self._selector = ApprovalSelector(session)
        self._repository = SqlAlchemyApprovalRepository(session)
        self._clock = clock or SystemClock()
        self._settings = settings or ApprovalSettings()
        self._authorization = AuthorizationService(self._repository, self._clock)

    def pending_for(
        self,
        principal_id: UUID,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        """Requests awaiting ``principal_id``, oldest submission first.

        Args:
            principal_id: The would-be approver.
            page: 1-based page number; values below 1 are treated as 1.
            limit: Page size; defaults to ``settings.default_page_size``.

        Returns:
            A Page of PendingApproval items.

        Raises:
            PrincipalNotFoundError: if the principal does not exist.
        """
        principal = self._repository.load_principal(principal_id)
        if principal is None:
            raise PrincipalNotFoundError(str(principal_id))

        page = max(page, 1)
        limit = max(limit or self._settings.default_page_size, 1)
        now = self._clock.now()

        tiers = self._repository.list_active_tiers()
        requests = self._selector.actionable_requests()
        approved = self._selector.approved_tier_orders_for(r.request_id for r in requests)

        # One decision per tier is enough within a single call
        decisions: dict[int, AuthorizationDecision] = {}
        eligible: list[PendingApproval] = []
        for request in requests:
            try:
                tier = required_tier(
                    request.normalized_amount,
                    approved[request.request_id],
                    tiers,
                    request_id=str(request.request_id),
                )
            except TierCoverageError as exc:
                logger.warning(
                    "pending_request_skipped",
                    extra={
                        "request_id": str(request.request_id),
                        "amount": request.normalized_amount,
                        "reason": exc.code,
                    },
                )
                continue

            decision = decisions.get(tier.order)
            if decision is None:
                decision = self._authorization.authorize(principal, tier, now)
                decisions[tier.order] = decision
            if decision.allowed:
                eligible.append(PendingApproval(
                    request=request,
                    tier=tier,
                    acting_as_delegate_of=decision.acting_as_delegate_of,
                ))

        start = (page - 1) * limit
        return Page(
            items=tuple(eligible[start:start + limit]),
            total=len(eligible),
            page=page,
            limit=limit,
        )

    def history_for(
        self,
        principal_id: UUID,
        limit: int | None = None,
    ) -> list[ApprovalAction]:
        """The principal's recorded actions, newest first.

        Raises:
            PrincipalNotFoundError: if the principal does not exist.
        """
        if self._repository.load_principal(principal_id) is None:
            raise PrincipalNotFoundError(str(principal_id))
        return self._selector.actions_by_actor(
            principal_id, limit or self._settings.history_limit,
        )

    def timeline_for(self, request_id: UUID) -> RequestTimeline:
        """Current status and chronological action log of a request."""
        request = self._selector.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))

        entries = tuple(
            TimelineEntry(
                timestamp=a.created_at,
                kind=a.kind,
                actor_id=a.actor_id,
                tier_order=a.tier_order,
                comment=a.comment,
                delegated_from_id=a.delegated_from_id,
                is_emergency=a.is_emergency,
                emergency_reason=a.emergency_reason,
                is_resubmission=a.is_resubmission,
            )
            for a in self._selector.actions_for_request(request_id)
        )
        return RequestTimeline(
            request_id=request_id,
            current_status=request.status,
            entries=entries,
        )
