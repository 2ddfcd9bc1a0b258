"""
approval_kernel.services.approval_service -- Approval state machine.

Responsibility:
    Executes the four request commands (approve, reject, request
    clarification, resubmit).  Each command loads a fresh snapshot, resolves
    the governing tier and the caller's authority, and commits its status
    change together with one appended action through the repository's
    guarded transition.

Architecture position:
    Kernel > Services.  Depends on the ``ApprovalRepository`` and
    ``AuditSink`` ports; tier and authority decisions are delegated to the
    pure ``approval_engines``.

Invariants enforced:
    - Lifecycle state machine: only ``submitted`` and ``pending_approval``
      accept approve/reject/clarify; only ``rejected`` and
      ``clarification_requested`` accept resubmit.  ``approved`` is final.
    - At-most-once tier advancement: the transition commits only if status
      and version still match the snapshot the decision was made on.
    - Emergency bypass skips tier resolution, is recorded at tier order 0
      and always produces an audit event.  The event is handed to the sink
      right after the guarded UPDATE is flushed, before the caller commits;
      wrap the sink in ``CommitBoundAuditSink`` so it only sees committed
      approvals.
    - Resubmission keeps prior approvals; re-entry resumes at the first
      unsatisfied tier.

Failure modes:
    - RequestNotFoundError / PrincipalNotFoundError for unknown ids.
    - RequestNotActionableError / NotResubmittableError on wrong status.
    - TierCoverageError when no unapproved tier covers the amount.
    - UnauthorizedApproverError, EmergencyApprovalNotPermittedError,
      NotRequestOwnerError on authority failures.
    - MissingReasonError, EmergencyJustificationError on bad input.
    - ConcurrentTransitionError when another writer won the race.  The
      command is not retried here.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from approval_config.schema import ApprovalSettings
from approval_engines.tiers import next_tier, required_tier
from approval_kernel.domain.approval import (
    ACTIONABLE_STATUSES,
    EMERGENCY_TIER_ORDER,
    RESUBMISSION_PREFIX,
    RESUBMITTABLE_STATUSES,
    ActionKind,
    ApprovalAction,
    AuthorizationDecision,
    CommandResult,
    ExpenseRequest,
    Principal,
    RequestFieldUpdates,
    RequestStatus,
    Tier,
    TransitionOutcome,
    is_valid_transition,
)
from approval_kernel.domain.audit import AuditAction, AuditEventRecord, AuditSink
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.repository import ApprovalRepository
from approval_kernel.domain.roles import (
    EMERGENCY_APPROVAL_ROLES,
    JUSTIFICATION_EXEMPT_ROLES,
)
from approval_kernel.exceptions import (
    ConcurrentTransitionError,
    EmergencyApprovalNotPermittedError,
    EmergencyJustificationError,
    MissingReasonError,
    NotRequestOwnerError,
    NotResubmittableError,
    PrincipalNotFoundError,
    RequestNotActionableError,
    RequestNotFoundError,
    UnauthorizedApproverError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.authorization_service import AuthorizationService

logger = get_logger("services.approval")


class ApprovalService:
    """Runs approval commands against an expense request."""

    def __init__(
        self,
        repository: ApprovalRepository,
        audit_sink: AuditSink,
        clock: Clock | None = None,
        settings: ApprovalSettings | None = None,
        authorization: AuthorizationService | None = None,
    ) -> None:
        self._repository = repository
        self._audit_sink = audit_sink
        self._clock = clock or SystemClock()
        self._settings = settings or ApprovalSettings()
        self._authorization = authorization or AuthorizationService(
            repository, self._clock,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def approve(
        self,
        request_id: UUID,
        principal_id: UUID,
        comment: str | None = None,
        emergency: bool = False,
        emergency_reason: str | None = None,
    ) -> CommandResult:
        """Approve the request's current tier, or bypass all tiers.

        With ``emergency=True`` the tier chain is skipped and the request
        moves straight to ``approved``; only ceo, super_approver and finance
        may do this, and all but ceo must give a justification.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=str(principal_id)):
            request = self._load_actionable(request_id)
            principal = self._load_principal(principal_id)

            if emergency:
                return self._emergency_approve(request, principal, comment, emergency_reason)

            now = self._clock.now()
            tiers = self._repository.list_active_tiers()
            tier = required_tier(
                request.normalized_amount,
                self._repository.load_approved_tier_orders(request_id),
                tiers,
                request_id=str(request_id),
            )
            decision = self._authorize(request, principal, tier, now, action="approve")
            following = next_tier(request.normalized_amount, tier.order, tiers)
            new_status = (
                RequestStatus.PENDING_APPROVAL if following is not None
                else RequestStatus.APPROVED
            )

            action = ApprovalAction(
                action_id=uuid4(),
                request_id=request_id,
                actor_id=principal_id,
                kind=ActionKind.APPROVED,
                tier_order=tier.order,
                comment=comment,
                delegated_from_id=decision.acting_as_delegate_of,
                created_at=now,
            )
            self._transition(request, new_status, action)

            logger.info(
                "approval_recorded",
                extra={
                    "tier_order": tier.order,
                    "rule": decision.rule.value,
                    "delegated_from_id": decision.acting_as_delegate_of,
                    "new_status": new_status.value,
                    "next_tier_order": following.order if following else None,
                },
            )

            if following is not None:
                message = f"Approved at tier {tier.order}; awaiting tier {following.order}"
            else:
                message = "Expense fully approved"
            return CommandResult(
                request_id=request_id,
                status=new_status,
                action=action,
                message=message,
                tier=tier,
                next_tier=following,
            )

    def reject(
        self,
        request_id: UUID,
        principal_id: UUID,
        reason: str,
    ) -> CommandResult:
        """Reject the request at its current tier; ``reason`` is required."""
        if not reason or not reason.strip():
            raise MissingReasonError("reason", str(request_id))

        with LogContext.bind(request_id=str(request_id), actor_id=str(principal_id)):
            request, tier, decision, now = self._resolve_for_decision(
                request_id, principal_id, action="reject",
            )
            action = ApprovalAction(
                action_id=uuid4(),
                request_id=request_id,
                actor_id=principal_id,
                kind=ActionKind.REJECTED,
                tier_order=tier.order,
                comment=reason,
                delegated_from_id=decision.acting_as_delegate_of,
                created_at=now,
            )
            self._transition(
                request,
                RequestStatus.REJECTED,
                action,
                RequestFieldUpdates(rejection_reason=reason),
            )

            logger.info(
                "rejection_recorded",
                extra={
                    "tier_order": tier.order,
                    "rule": decision.rule.value,
                    "delegated_from_id": decision.acting_as_delegate_of,
                },
            )
            return CommandResult(
                request_id=request_id,
                status=RequestStatus.REJECTED,
                action=action,
                message="Expense rejected",
                tier=tier,
            )

    def request_clarification(
        self,
        request_id: UUID,
        principal_id: UUID,
        question: str,
    ) -> CommandResult:
        """Send the request back to its submitter with a question."""
        if not question or not question.strip():
            raise MissingReasonError("question", str(request_id))

        with LogContext.bind(request_id=str(request_id), actor_id=str(principal_id)):
            request, tier, decision, now = self._resolve_for_decision(
                request_id, principal_id, action="request_clarification",
            )
            action = ApprovalAction(
                action_id=uuid4(),
                request_id=request_id,
                actor_id=principal_id,
                kind=ActionKind.CLARIFICATION_REQUESTED,
                tier_order=tier.order,
                comment=question,
                delegated_from_id=decision.acting_as_delegate_of,
                created_at=now,
            )
            self._transition(
                request,
                RequestStatus.CLARIFICATION_REQUESTED,
                action,
                RequestFieldUpdates(clarification_note=question),
            )

            logger.info(
                "clarification_requested",
                extra={"tier_order": tier.order, "rule": decision.rule.value},
            )
            return CommandResult(
                request_id=request_id,
                status=RequestStatus.CLARIFICATION_REQUESTED,
                action=action,
                message="Clarification requested",
                tier=tier,
            )

    def resubmit(
        self,
        request_id: UUID,
        caller_id: UUID,
        note: str | None = None,
    ) -> CommandResult:
        """Return a rejected or clarification-requested request to review.

        Only the original submitter may resubmit.  Approvals already
        recorded stay in force.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=str(caller_id)):
            request = self._repository.load_request(request_id)
            if request is None:
                raise RequestNotFoundError(str(request_id))
            if request.submitter_id != caller_id:
                raise NotRequestOwnerError(str(request_id), str(caller_id))
            if request.status not in RESUBMITTABLE_STATUSES:
                raise NotResubmittableError(str(request_id), request.status.value)

            now = self._clock.now()
            action = ApprovalAction(
                action_id=uuid4(),
                request_id=request_id,
                actor_id=caller_id,
                kind=ActionKind.CLARIFICATION_REQUESTED,
                tier_order=EMERGENCY_TIER_ORDER,
                comment=f"{RESUBMISSION_PREFIX}{note or self._settings.resubmission_note}",
                is_resubmission=True,
                created_at=now,
            )
            self._transition(
                request,
                RequestStatus.SUBMITTED,
                action,
                RequestFieldUpdates(
                    clear_rejection_reason=True,
                    clear_clarification_note=True,
                    submitted_at=now,
                ),
            )

            logger.info(
                "request_resubmitted",
                extra={"previous_status": request.status.value},
            )
            return CommandResult(
                request_id=request_id,
                status=RequestStatus.SUBMITTED,
                action=action,
                message="Expense resubmitted for approval",
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _emergency_approve(
        self,
        request: ExpenseRequest,
        principal: Principal,
        comment: str | None,
        emergency_reason: str | None,
    ) -> CommandResult:
        if principal.role not in EMERGENCY_APPROVAL_ROLES:
            raise EmergencyApprovalNotPermittedError(
                str(principal.principal_id), principal.role.value,
            )

        reason = (emergency_reason or "").strip()
        if principal.role not in JUSTIFICATION_EXEMPT_ROLES:
            minimum = self._settings.emergency_reason_min_length
            if len(reason) < minimum:
                raise EmergencyJustificationError(minimum, len(reason))
        if not reason:
            reason = self._settings.executive_emergency_reason

        now = self._clock.now()
        action = ApprovalAction(
            action_id=uuid4(),
            request_id=request.request_id,
            actor_id=principal.principal_id,
            kind=ActionKind.APPROVED,
            tier_order=EMERGENCY_TIER_ORDER,
            comment=comment,
            is_emergency=True,
            emergency_reason=reason,
            created_at=now,
        )
        self._transition(request, RequestStatus.APPROVED, action)

        self._audit_sink.record_audit_event(AuditEventRecord(
            action=AuditAction.EMERGENCY_APPROVAL,
            entity_type="ExpenseRequest",
            entity_id=request.request_id,
            actor_id=principal.principal_id,
            occurred_at=now,
            payload={
                "approver_role": principal.role.value,
                "emergency_reason": reason,
                "previous_status": request.status.value,
                "amount": str(request.normalized_amount),
            },
        ))

        logger.warning(
            "emergency_approval_granted",
            extra={
                "approver_role": principal.role.value,
                "previous_status": request.status.value,
                "emergency_reason": reason,
            },
        )
        return CommandResult(
            request_id=request.request_id,
            status=RequestStatus.APPROVED,
            action=action,
            message="Emergency approval granted",
        )

    def _resolve_for_decision(
        self,
        request_id: UUID,
        principal_id: UUID,
        action: str,
    ) -> tuple[ExpenseRequest, Tier, AuthorizationDecision, datetime]:
        request = self._load_actionable(request_id)
        principal = self._load_principal(principal_id)
        now = self._clock.now()
        tier = required_tier(
            request.normalized_amount,
            self._repository.load_approved_tier_orders(request_id),
            self._repository.list_active_tiers(),
            request_id=str(request_id),
        )
        decision = self._authorize(request, principal, tier, now, action=action)
        return request, tier, decision, now

    def _authorize(
        self,
        request: ExpenseRequest,
        principal: Principal,
        tier: Tier,
        now: datetime,
        action: str,
    ) -> AuthorizationDecision:
        decision = self._authorization.authorize(principal, tier, now)
        if not decision.allowed:
            logger.info(
                "authorization_denied",
                extra={
                    "principal_role": principal.role.value,
                    "tier_order": tier.order,
                    "required_role": tier.required_role.value,
                    "attempted_action": action,
                },
            )
            raise UnauthorizedApproverError(
                request_id=str(request.request_id),
                principal_id=str(principal.principal_id),
                principal_role=principal.role.value,
                tier_order=tier.order,
                required_role=tier.required_role.value,
                action=action,
            )
        return decision

    def _load_actionable(self, request_id: UUID) -> ExpenseRequest:
        request = self._repository.load_request(request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        if request.status not in ACTIONABLE_STATUSES:
            raise RequestNotActionableError(str(request_id), request.status.value)
        return request

    def _load_principal(self, principal_id: UUID) -> Principal:
        principal = self._repository.load_principal(principal_id)
        if principal is None:
            raise PrincipalNotFoundError(str(principal_id))
        return principal

    def _transition(
        self,
        request: ExpenseRequest,
        new_status: RequestStatus,
        action: ApprovalAction,
        field_updates: RequestFieldUpdates | None = None,
    ) -> None:
        if not is_valid_transition(request.status, new_status):
            raise RequestNotActionableError(str(request.request_id), request.status.value)

        outcome = self._repository.atomic_transition(
            request.request_id,
            request.status,
            request.version,
            new_status,
            action,
            field_updates,
        )
        if outcome is TransitionOutcome.CONFLICT:
            raise ConcurrentTransitionError(
                str(request.request_id), request.status.value, request.version,
            )
