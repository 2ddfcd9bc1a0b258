"""
Bulk operation value objects.

Pure frozen dataclasses.  Zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from approval_kernel.domain.approval import RequestStatus


class BulkOperation(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class BulkItemResult:
    """Outcome of one request within a bulk operation.

    Exactly one of ``status`` (success) or ``error``/``error_code``
    (failure) is populated.
    """

    item_index: int
    request_id: UUID
    success: bool
    status: RequestStatus | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, item_index: int, request_id: UUID, status: RequestStatus) -> BulkItemResult:
        return cls(item_index=item_index, request_id=request_id, success=True, status=status)

    @classmethod
    def failed(
        cls,
        item_index: int,
        request_id: UUID,
        error: str,
        error_code: str,
    ) -> BulkItemResult:
        return cls(
            item_index=item_index,
            request_id=request_id,
            success=False,
            error=error,
            error_code=error_code,
        )


@dataclass(frozen=True)
class BulkSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0

    def add(self, item: BulkItemResult) -> BulkSummary:
        """Fold one item result into the running summary."""
        return BulkSummary(
            total=self.total + 1,
            successful=self.successful + (1 if item.success else 0),
            failed=self.failed + (0 if item.success else 1),
        )


@dataclass(frozen=True)
class BulkOperationResult:
    """Summary and per-item results, in input order."""

    batch_id: UUID
    operation: BulkOperation
    summary: BulkSummary
    results: tuple[BulkItemResult, ...] = field(default_factory=tuple)
    started_at: datetime | None = None
    completed_at: datetime | None = None
