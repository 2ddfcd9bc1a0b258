"""
Audit event types (``approval_kernel.domain.audit``).

The kernel constructs audit events and forwards them to an ``AuditSink``;
it never persists them itself.  Emergency approvals always produce one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: Every member is one class of governance event forwarded to
    the audit sink.
    """

    EMERGENCY_APPROVAL = "emergency_approval"

    DELEGATION_CREATED = "delegation_created"
    DELEGATION_REVOKED = "delegation_revoked"

    TIER_CREATED = "tier_created"
    TIER_UPDATED = "tier_updated"
    TIER_DEACTIVATED = "tier_deactivated"


@dataclass(frozen=True)
class AuditEventRecord:
    """An audit event ready for the external sink."""

    action: AuditAction
    entity_type: str
    entity_id: UUID
    actor_id: UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)


class AuditSink(Protocol):
    """External collaborator that stores or ships audit events."""

    def record_audit_event(self, event: AuditEventRecord) -> None:
        ...
