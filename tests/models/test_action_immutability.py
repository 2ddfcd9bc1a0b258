"""
Tests for the append-only approval action table.

Covers the ORM listeners that refuse UPDATE/DELETE and the partial unique
index that allows a tier to be approved only once per request.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from approval_kernel.domain.approval import ActionKind, ApprovalAction
from approval_kernel.exceptions import ImmutabilityViolationError
from approval_kernel.models.expense_request import ApprovalActionModel

NOW = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


@pytest.fixture
def add_action(session, principals):
    def _add(request_id, kind=ActionKind.APPROVED, tier_order=1, sequence=1, **extra):
        model = ApprovalActionModel.from_dto(
            ApprovalAction(
                action_id=uuid4(),
                request_id=request_id,
                actor_id=principals["approver"].principal_id,
                kind=kind,
                tier_order=tier_order,
                created_at=NOW,
                **extra,
            ),
            sequence,
        )
        session.add(model)
        session.flush()
        return model

    return _add


class TestImmutability:
    def test_update_refused(self, session, create_request, add_action):
        action = add_action(create_request().request_id)

        action.comment = "edited"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ApprovalAction"

    def test_delete_refused(self, session, create_request, add_action):
        action = add_action(create_request().request_id)

        session.delete(action)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_round_trip_preserves_flags(self, session, create_request, add_action):
        request = create_request()
        delegator = uuid4()
        add_action(
            request.request_id,
            tier_order=0,
            is_emergency=True,
            emergency_reason="Outage",
            delegated_from_id=delegator,
        )

        stored = session.execute(
            select(ApprovalActionModel).where(ApprovalActionModel.request_id == request.request_id)
        ).scalar_one().to_dto()
        assert stored.is_emergency
        assert stored.emergency_reason == "Outage"
        assert stored.delegated_from_id == delegator
        assert stored.created_at == NOW


class TestTierApprovedOnce:
    def test_second_approval_of_same_tier_rejected(self, create_request, add_action):
        request_id = create_request().request_id
        add_action(request_id, tier_order=1, sequence=1)

        with pytest.raises(IntegrityError):
            add_action(request_id, tier_order=1, sequence=2)

    def test_other_kinds_may_repeat_a_tier(self, create_request, add_action):
        request_id = create_request().request_id
        add_action(request_id, kind=ActionKind.REJECTED, tier_order=1, sequence=1)
        add_action(request_id, kind=ActionKind.APPROVED, tier_order=1, sequence=2)
        add_action(request_id, kind=ActionKind.CLARIFICATION_REQUESTED, tier_order=1, sequence=3)

    def test_tier_zero_is_exempt(self, create_request, add_action):
        request_id = create_request().request_id
        add_action(request_id, tier_order=0, sequence=1, is_emergency=True)
        add_action(request_id, tier_order=0, sequence=2, is_emergency=True)

    def test_sequence_unique_per_request(self, create_request, add_action):
        request_id = create_request().request_id
        add_action(request_id, kind=ActionKind.REJECTED, sequence=1)

        with pytest.raises(IntegrityError):
            add_action(request_id, kind=ActionKind.REJECTED, sequence=1)
