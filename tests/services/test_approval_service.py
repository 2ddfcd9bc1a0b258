"""
Tests for ApprovalService -- the request state machine.

Covers:
- approve(): single and multi-tier progression, delegated approval,
  authorization denial, wrong status, unknown ids, legacy status values
- approve(emergency=True): role gate, justification rule, audit event
- reject() / request_clarification(): required text, stored fields
- resubmit(): ownership, status gate, field reset, re-entry that skips
  satisfied tiers
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import (
    ActionKind,
    RequestStatus,
)
from approval_kernel.domain.audit import AuditAction
from approval_kernel.domain.roles import AuthorityRule
from approval_kernel.exceptions import (
    EmergencyApprovalNotPermittedError,
    EmergencyJustificationError,
    ForbiddenError,
    MissingReasonError,
    NotFoundError,
    NotRequestOwnerError,
    NotResubmittableError,
    PrincipalNotFoundError,
    RequestNotActionableError,
    RequestNotFoundError,
    UnauthorizedApproverError,
    ValidationFailedError,
)

LONG_REASON = "Vendor payment due today; outage recovery contract"


# ---------------------------------------------------------------------------
# approve()
# ---------------------------------------------------------------------------


class TestApprove:
    def test_single_tier_request_is_fully_approved(
        self, approval_service, repository, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")

        result = approval_service.approve(
            request.request_id, principals["approver"].principal_id, comment="ok",
        )

        assert result.status is RequestStatus.APPROVED
        assert result.tier.order == 1
        assert result.next_tier is None
        assert result.message == "Expense fully approved"
        assert result.action.kind is ActionKind.APPROVED
        assert result.action.tier_order == 1
        assert result.action.comment == "ok"

        stored = repository.load_request(request.request_id)
        assert stored.status is RequestStatus.APPROVED
        assert stored.version == request.version + 1

    def test_multi_tier_progression(
        self, approval_service, repository, stacked_tiers, principals, create_request,
    ):
        request = create_request("150000")

        first = approval_service.approve(request.request_id, principals["approver"].principal_id)
        assert first.status is RequestStatus.PENDING_APPROVAL
        assert first.tier.order == 1
        assert first.next_tier.order == 2
        assert first.message == "Approved at tier 1; awaiting tier 2"

        second = approval_service.approve(request.request_id, principals["approver_2"].principal_id)
        assert second.status is RequestStatus.PENDING_APPROVAL
        assert second.tier.order == 2
        assert second.next_tier.order == 3

        third = approval_service.approve(request.request_id, principals["finance"].principal_id)
        assert third.status is RequestStatus.APPROVED
        assert third.tier.order == 3
        assert third.next_tier is None

        assert repository.load_approved_tier_orders(request.request_id) == frozenset({1, 2, 3})
        assert repository.load_request(request.request_id).version == 4

    def test_approver_cannot_act_on_finance_tier(
        self, approval_service, stacked_tiers, principals, create_request,
    ):
        request = create_request("150000")
        approval_service.approve(request.request_id, principals["approver"].principal_id)
        approval_service.approve(request.request_id, principals["approver_2"].principal_id)

        with pytest.raises(UnauthorizedApproverError) as exc_info:
            approval_service.approve(request.request_id, principals["approver"].principal_id)

        err = exc_info.value
        assert err.tier_order == 3
        assert err.required_role == "finance"
        assert err.principal_role == "approver"
        assert err.action == "approve"
        assert isinstance(err, ForbiddenError)

    def test_employee_without_delegation_is_denied(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")
        with pytest.raises(UnauthorizedApproverError):
            approval_service.approve(request.request_id, principals["employee"].principal_id)

    def test_admin_has_no_approval_rights(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")
        with pytest.raises(UnauthorizedApproverError):
            approval_service.approve(request.request_id, principals["admin"].principal_id)

    def test_super_approver_cannot_act_on_ceo_tier(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("750000")
        with pytest.raises(UnauthorizedApproverError) as exc_info:
            approval_service.approve(request.request_id, principals["super_approver"].principal_id)
        assert exc_info.value.required_role == "ceo"

    def test_ceo_approves_any_tier(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("750000")
        result = approval_service.approve(request.request_id, principals["ceo"].principal_id)
        assert result.status is RequestStatus.APPROVED
        assert result.tier.order == 5

    def test_finance_overrides_approver_tier(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("50000")
        result = approval_service.approve(request.request_id, principals["finance"].principal_id)
        assert result.status is RequestStatus.APPROVED
        assert result.tier.order == 2

    def test_delegate_approves_on_behalf_of_delegator(
        self,
        approval_service,
        delegation_service,
        deterministic_clock,
        standard_tiers,
        principals,
        create_request,
    ):
        approver = principals["approver"]
        delegate = principals["employee"]
        now = deterministic_clock.now()
        delegation_service.create(
            approver.principal_id,
            delegate.principal_id,
            now - timedelta(days=1),
            now + timedelta(days=7),
            reason="Annual leave",
        )
        request = create_request("1000", submitter_id=principals["finance"].principal_id)

        result = approval_service.approve(request.request_id, delegate.principal_id)

        assert result.status is RequestStatus.APPROVED
        assert result.delegated_from_id == approver.principal_id
        assert result.action.actor_id == delegate.principal_id

    def test_expired_delegation_does_not_authorize(
        self,
        approval_service,
        delegation_service,
        deterministic_clock,
        standard_tiers,
        principals,
        create_request,
    ):
        now = deterministic_clock.now()
        delegation_service.create(
            principals["approver"].principal_id,
            principals["employee"].principal_id,
            now - timedelta(days=10),
            now - timedelta(days=1),
        )
        request = create_request("1000")

        with pytest.raises(UnauthorizedApproverError):
            approval_service.approve(request.request_id, principals["employee"].principal_id)

    @pytest.mark.parametrize(
        "status",
        [
            RequestStatus.APPROVED,
            RequestStatus.REJECTED,
            RequestStatus.CLARIFICATION_REQUESTED,
        ],
    )
    def test_non_actionable_status_rejected(
        self, approval_service, standard_tiers, principals, create_request, status,
    ):
        request = create_request("1000", status=status)
        with pytest.raises(RequestNotActionableError) as exc_info:
            approval_service.approve(request.request_id, principals["ceo"].principal_id)
        assert exc_info.value.status == status.value

    def test_legacy_resubmitted_status_is_actionable(
        self, approval_service, repository, standard_tiers, principals, create_request,
    ):
        request = create_request("1000", status=RequestStatus.RESUBMITTED)
        assert request.status is RequestStatus.SUBMITTED

        result = approval_service.approve(request.request_id, principals["approver"].principal_id)
        assert result.status is RequestStatus.APPROVED

    def test_unknown_request(self, approval_service, standard_tiers, principals):
        with pytest.raises(RequestNotFoundError):
            approval_service.approve(uuid4(), principals["ceo"].principal_id)

    def test_unknown_principal(self, approval_service, standard_tiers, create_request):
        request = create_request("1000")
        with pytest.raises(PrincipalNotFoundError):
            approval_service.approve(request.request_id, uuid4())

    def test_approval_is_logged_with_request_context(
        self, approval_service, standard_tiers, principals, create_request, captured_logs,
    ):
        request = create_request("1000")
        approval_service.approve(request.request_id, principals["approver"].principal_id)

        records = [r for r in captured_logs() if r["message"] == "approval_recorded"]
        assert len(records) == 1
        assert records[0]["request_id"] == str(request.request_id)
        assert records[0]["actor_id"] == str(principals["approver"].principal_id)
        assert records[0]["rule"] == AuthorityRule.ROLE_MATCH.value
        assert records[0]["new_status"] == "approved"


# ---------------------------------------------------------------------------
# Emergency approval
# ---------------------------------------------------------------------------


class TestEmergencyApproval:
    def test_ceo_without_reason_uses_default(
        self, approval_service, audit_sink, stacked_tiers, principals, create_request,
    ):
        request = create_request("750000")

        result = approval_service.approve(
            request.request_id, principals["ceo"].principal_id, emergency=True,
        )

        assert result.status is RequestStatus.APPROVED
        assert result.is_emergency
        assert result.action.tier_order == 0
        assert result.action.emergency_reason == "Executive emergency approval"
        assert result.tier is None

        events = audit_sink.of_action(AuditAction.EMERGENCY_APPROVAL)
        assert len(events) == 1
        assert events[0].entity_id == request.request_id
        assert events[0].payload["approver_role"] == "ceo"
        assert events[0].payload["emergency_reason"] == "Executive emergency approval"

    def test_emergency_skips_tier_resolution(
        self, approval_service, principals, create_request,
    ):
        # No tiers configured at all
        request = create_request("1000")
        result = approval_service.approve(
            request.request_id, principals["ceo"].principal_id, emergency=True,
        )
        assert result.status is RequestStatus.APPROVED

    def test_super_approver_needs_justification(
        self, approval_service, audit_sink, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")

        with pytest.raises(EmergencyJustificationError) as exc_info:
            approval_service.approve(
                request.request_id,
                principals["super_approver"].principal_id,
                emergency=True,
                emergency_reason="too short",
            )

        assert exc_info.value.min_length == 20
        assert exc_info.value.actual_length == len("too short")
        assert isinstance(exc_info.value, ValidationFailedError)
        assert audit_sink.events == []

    def test_whitespace_padding_does_not_count(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")
        with pytest.raises(EmergencyJustificationError):
            approval_service.approve(
                request.request_id,
                principals["finance"].principal_id,
                emergency=True,
                emergency_reason="   short   " + " " * 20,
            )

    @pytest.mark.parametrize("role_key", ["super_approver", "finance"])
    def test_justified_emergency_by_non_ceo(
        self, approval_service, audit_sink, standard_tiers, principals, create_request, role_key,
    ):
        request = create_request("750000")

        result = approval_service.approve(
            request.request_id,
            principals[role_key].principal_id,
            emergency=True,
            emergency_reason=LONG_REASON,
        )

        assert result.status is RequestStatus.APPROVED
        assert result.action.emergency_reason == LONG_REASON
        assert audit_sink.events[0].payload["approver_role"] == principals[role_key].role.value

    @pytest.mark.parametrize("role_key", ["approver", "employee", "admin"])
    def test_other_roles_may_not_bypass(
        self, approval_service, standard_tiers, principals, create_request, role_key,
    ):
        request = create_request("1000")
        with pytest.raises(EmergencyApprovalNotPermittedError):
            approval_service.approve(
                request.request_id,
                principals[role_key].principal_id,
                emergency=True,
                emergency_reason=LONG_REASON,
            )

    def test_emergency_from_pending_approval(
        self, approval_service, stacked_tiers, principals, create_request,
    ):
        request = create_request("150000")
        approval_service.approve(request.request_id, principals["approver"].principal_id)

        result = approval_service.approve(
            request.request_id, principals["ceo"].principal_id, emergency=True,
        )
        assert result.status is RequestStatus.APPROVED


# ---------------------------------------------------------------------------
# reject() / request_clarification()
# ---------------------------------------------------------------------------


class TestReject:
    @pytest.mark.parametrize("reason", ["", "   "])
    def test_reason_required(self, approval_service, standard_tiers, principals, create_request, reason):
        request = create_request("1000")
        with pytest.raises(MissingReasonError) as exc_info:
            approval_service.reject(request.request_id, principals["approver"].principal_id, reason)
        assert exc_info.value.field_name == "reason"

    def test_reject_stores_reason(
        self, approval_service, repository, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")

        result = approval_service.reject(
            request.request_id, principals["approver"].principal_id, "Missing receipt",
        )

        assert result.status is RequestStatus.REJECTED
        assert result.action.kind is ActionKind.REJECTED
        assert result.action.comment == "Missing receipt"
        stored = repository.load_request(request.request_id)
        assert stored.status is RequestStatus.REJECTED
        assert stored.rejection_reason == "Missing receipt"

    def test_reject_requires_tier_authority(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("150000")
        with pytest.raises(UnauthorizedApproverError) as exc_info:
            approval_service.reject(
                request.request_id, principals["approver"].principal_id, "No budget",
            )
        assert exc_info.value.action == "reject"

    def test_cannot_reject_approved_request(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("1000", status=RequestStatus.APPROVED)
        with pytest.raises(RequestNotActionableError):
            approval_service.reject(request.request_id, principals["ceo"].principal_id, "late")


class TestRequestClarification:
    def test_question_required(self, approval_service, standard_tiers, principals, create_request):
        request = create_request("1000")
        with pytest.raises(MissingReasonError) as exc_info:
            approval_service.request_clarification(
                request.request_id, principals["approver"].principal_id, "",
            )
        assert exc_info.value.field_name == "question"

    def test_clarification_stores_question(
        self, approval_service, repository, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")

        result = approval_service.request_clarification(
            request.request_id, principals["approver"].principal_id, "Which project?",
        )

        assert result.status is RequestStatus.CLARIFICATION_REQUESTED
        assert result.action.kind is ActionKind.CLARIFICATION_REQUESTED
        stored = repository.load_request(request.request_id)
        assert stored.clarification_note == "Which project?"


# ---------------------------------------------------------------------------
# resubmit()
# ---------------------------------------------------------------------------


class TestResubmit:
    def test_only_submitter_may_resubmit(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")
        approval_service.reject(request.request_id, principals["approver"].principal_id, "No")

        with pytest.raises(NotRequestOwnerError) as exc_info:
            approval_service.resubmit(request.request_id, principals["approver"].principal_id)

        assert isinstance(exc_info.value, ForbiddenError)
        assert not isinstance(exc_info.value, NotFoundError)

    @pytest.mark.parametrize(
        "status",
        [RequestStatus.SUBMITTED, RequestStatus.PENDING_APPROVAL, RequestStatus.APPROVED],
    )
    def test_only_from_rejected_or_clarification(
        self, approval_service, principals, create_request, status,
    ):
        request = create_request("1000", status=status)
        with pytest.raises(NotResubmittableError):
            approval_service.resubmit(request.request_id, principals["employee"].principal_id)

    def test_unknown_request(self, approval_service, principals):
        with pytest.raises(RequestNotFoundError):
            approval_service.resubmit(uuid4(), principals["employee"].principal_id)

    def test_resubmit_resets_fields(
        self,
        approval_service,
        repository,
        deterministic_clock,
        standard_tiers,
        principals,
        create_request,
    ):
        request = create_request("1000")
        approval_service.reject(request.request_id, principals["approver"].principal_id, "No receipt")
        deterministic_clock.advance(3600)

        result = approval_service.resubmit(request.request_id, principals["employee"].principal_id)

        assert result.status is RequestStatus.SUBMITTED
        assert result.action.kind is ActionKind.CLARIFICATION_REQUESTED
        assert result.action.tier_order == 0
        assert result.action.is_resubmission
        assert result.action.comment == "RESUBMITTED: Expense resubmitted for approval"

        stored = repository.load_request(request.request_id)
        assert stored.status is RequestStatus.SUBMITTED
        assert stored.rejection_reason is None
        assert stored.clarification_note is None
        assert stored.submitted_at == deterministic_clock.now()

    def test_resubmit_with_note(
        self, approval_service, standard_tiers, principals, create_request,
    ):
        request = create_request("1000")
        approval_service.request_clarification(
            request.request_id, principals["approver"].principal_id, "Which client?",
        )

        result = approval_service.resubmit(
            request.request_id, principals["employee"].principal_id, note="Client is Acme",
        )
        assert result.action.comment == "RESUBMITTED: Client is Acme"

    def test_reentry_skips_satisfied_tiers(
        self, approval_service, repository, stacked_tiers, principals, create_request,
    ):
        request = create_request("150000")
        approval_service.approve(request.request_id, principals["approver"].principal_id)
        approval_service.approve(request.request_id, principals["approver_2"].principal_id)
        approval_service.reject(request.request_id, principals["finance"].principal_id, "Over budget")

        approval_service.resubmit(request.request_id, principals["employee"].principal_id, "Trimmed")

        assert repository.load_approved_tier_orders(request.request_id) == frozenset({1, 2})
        # The approver's tiers are already satisfied; tier 3 needs finance
        with pytest.raises(UnauthorizedApproverError) as exc_info:
            approval_service.approve(request.request_id, principals["approver"].principal_id)
        assert exc_info.value.tier_order == 3

        result = approval_service.approve(request.request_id, principals["finance"].principal_id)
        assert result.tier.order == 3
        assert result.status is RequestStatus.APPROVED
