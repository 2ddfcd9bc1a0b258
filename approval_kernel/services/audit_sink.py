"""
Audit sinks -- where the kernel's governance events go.

Responsibility:
    Concrete ``AuditSink`` implementations.  The kernel never persists
    audit events itself; the deployment chooses a sink.

    - ``LoggingAuditSink`` writes each event as one structured record on the
      ``approval_kernel.audit`` logger.
    - ``InMemoryAuditSink`` keeps events in a list, for tests.
    - ``CommitBoundAuditSink`` wraps either one and holds events back until
      the session's outer transaction commits.  Events recorded inside a
      transaction or SAVEPOINT that rolls back are dropped.  Production
      callers wrap their sink in it so a rolled-back emergency approval is
      never reported.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from approval_kernel.domain.audit import AuditAction, AuditEventRecord, AuditSink
from approval_kernel.logging_config import get_logger

audit_logger = get_logger("audit")


class LoggingAuditSink:
    """Forward audit events to the structured log stream."""

    def record_audit_event(self, event: AuditEventRecord) -> None:
        audit_logger.info(
            event.action.value,
            extra={
                "audit_event_id": str(event.event_id),
                "entity_type": event.entity_type,
                "entity_id": str(event.entity_id),
                "audit_actor_id": str(event.actor_id),
                "occurred_at": event.occurred_at,
                "payload": event.payload,
            },
        )


class InMemoryAuditSink:
    """Collects audit events in arrival order."""

    def __init__(self) -> None:
        self._events: list[AuditEventRecord] = []

    def record_audit_event(self, event: AuditEventRecord) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[AuditEventRecord]:
        return list(self._events)

    def of_action(self, action: AuditAction) -> list[AuditEventRecord]:
        return [e for e in self._events if e.action is action]

    def clear(self) -> None:
        self._events.clear()


class CommitBoundAuditSink:
    """Forwards events to ``delegate`` only once their work is committed.

    Each event is tagged with the innermost transaction open when it was
    recorded.  Rolling back that transaction, or any enclosing one, drops
    the event.  Committing the outermost transaction forwards the survivors
    in arrival order.
    """

    def __init__(self, session: Session, delegate: AuditSink) -> None:
        self._session = session
        self._delegate = delegate
        self._pending: list[tuple[SessionTransaction | None, AuditEventRecord]] = []
        event.listen(session, "after_commit", self._on_commit)
        event.listen(session, "after_soft_rollback", self._on_rollback)

    @property
    def pending(self) -> list[AuditEventRecord]:
        return [e for _, e in self._pending]

    def record_audit_event(self, event_record: AuditEventRecord) -> None:
        scope = self._session.get_nested_transaction() or self._session.get_transaction()
        self._pending.append((scope, event_record))

    def detach(self) -> None:
        """Stop listening to the session; pending events are discarded."""
        event.remove(self._session, "after_commit", self._on_commit)
        event.remove(self._session, "after_soft_rollback", self._on_rollback)
        self._pending.clear()

    def _on_commit(self, session: Session) -> None:
        # Released savepoints fire after_commit too; only the outer one counts
        if session.get_nested_transaction() is not None:
            return
        released, self._pending = self._pending, []
        for _, event_record in released:
            self._delegate.record_audit_event(event_record)

    def _on_rollback(self, session: Session, previous: SessionTransaction) -> None:
        self._pending = [
            (scope, e) for scope, e in self._pending
            if not _inside(scope, previous)
        ]


def _inside(scope: SessionTransaction | None, transaction: SessionTransaction) -> bool:
    if scope is None:
        return transaction.parent is None
    while scope is not None:
        if scope is transaction:
            return True
        scope = scope.parent
    return False
