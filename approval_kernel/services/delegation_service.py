"""
approval_kernel.services.delegation_service -- Delegation manager.

Responsibility:
    Create, revoke and list time-bound delegations of approval authority.
    A delegation lets ``to_user_id`` act at tiers requiring the delegator's
    role while ``now`` lies inside ``[start_date, end_date]``.

Architecture position:
    Kernel > Services.  Depends on the ``DelegationStore`` and ``AuditSink``
    ports.

Invariants enforced:
    - end_date strictly after start_date.
    - A delegator never has two active delegations whose closed windows
      overlap (checked at creation).
    - Revoke is soft and only the delegator may revoke.
    - Every create and revoke emits an audit event.

Failure modes:
    - SelfDelegationError, InvalidDateRangeError on bad input.
    - PrincipalNotFoundError when the delegate does not exist.
    - OverlappingDelegationError on a clashing window.
    - DelegationNotFoundError, NotDelegationOwnerError on revoke.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from approval_kernel.domain.approval import Delegation
from approval_kernel.domain.audit import AuditAction, AuditEventRecord, AuditSink
from approval_kernel.domain.clock import Clock, SystemClock, ensure_utc
from approval_kernel.domain.repository import DelegationStore
from approval_kernel.exceptions import (
    DelegationNotFoundError,
    InvalidDateRangeError,
    NotDelegationOwnerError,
    OverlappingDelegationError,
    PrincipalNotFoundError,
    SelfDelegationError,
)
from approval_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.delegation")


class DelegationService:
    """Manages approval delegations."""

    def __init__(
        self,
        store: DelegationStore,
        audit_sink: AuditSink,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._audit_sink = audit_sink
        self._clock = clock or SystemClock()

    def create(
        self,
        from_user_id: UUID,
        to_user_id: UUID,
        start_date: datetime,
        end_date: datetime,
        reason: str | None = None,
    ) -> Delegation:
        """Delegate ``from_user_id``'s tier authority for a window."""
        with LogContext.bind(actor_id=str(from_user_id)):
            if from_user_id == to_user_id:
                raise SelfDelegationError(str(from_user_id))

            start = ensure_utc(start_date)
            end = ensure_utc(end_date)
            if end <= start:
                raise InvalidDateRangeError(start.isoformat(), end.isoformat())

            if self._store.load_principal(to_user_id) is None:
                raise PrincipalNotFoundError(str(to_user_id))

            existing = self._store.find_overlapping_delegation(from_user_id, start, end)
            if existing is not None:
                raise OverlappingDelegationError(
                    str(from_user_id), str(existing.delegation_id),
                )

            now = self._clock.now()
            delegation = self._store.add_delegation(Delegation(
                delegation_id=uuid4(),
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                start_date=start,
                end_date=end,
                reason=reason,
                created_at=now,
            ))

            self._audit_sink.record_audit_event(AuditEventRecord(
                action=AuditAction.DELEGATION_CREATED,
                entity_type="Delegation",
                entity_id=delegation.delegation_id,
                actor_id=from_user_id,
                occurred_at=now,
                payload={
                    "to_user_id": str(to_user_id),
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "reason": reason,
                },
            ))
            logger.info(
                "delegation_created",
                extra={
                    "delegation_id": str(delegation.delegation_id),
                    "to_user_id": str(to_user_id),
                    "start_date": start,
                    "end_date": end,
                },
            )
            return delegation

    def revoke(self, caller_id: UUID, delegation_id: UUID) -> Delegation:
        """Deactivate a delegation; only its delegator may do so."""
        with LogContext.bind(actor_id=str(caller_id)):
            delegation = self._store.load_delegation(delegation_id)
            if delegation is None:
                raise DelegationNotFoundError(str(delegation_id))
            if delegation.from_user_id != caller_id:
                raise NotDelegationOwnerError(str(delegation_id), str(caller_id))

            revoked = self._store.deactivate_delegation(delegation_id)

            self._audit_sink.record_audit_event(AuditEventRecord(
                action=AuditAction.DELEGATION_REVOKED,
                entity_type="Delegation",
                entity_id=delegation_id,
                actor_id=caller_id,
                occurred_at=self._clock.now(),
                payload={
                    "to_user_id": str(delegation.to_user_id),
                    "was_active": delegation.active,
                },
            ))
            logger.info(
                "delegation_revoked",
                extra={"delegation_id": str(delegation_id)},
            )
            return revoked

    def list_active(self, user_id: UUID, now: datetime | None = None) -> list[Delegation]:
        """Delegations in force now where ``user_id`` is either party."""
        at = ensure_utc(now) if now is not None else self._clock.now()
        return self._store.list_delegations_for(user_id, at)
