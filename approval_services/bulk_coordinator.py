"""
BulkApprovalCoordinator -- sequential bulk approve / reject.

Contract:
    Runs one ``ApprovalService`` command per request id, in input order,
    and folds every outcome into a ``BulkOperationResult``.

Architecture: approval_services.  Imports from approval_kernel services,
    domain and exceptions.

Invariants enforced:
    - Result order equals input order; one entry per input id.
    - Each item runs inside its own SAVEPOINT on the caller's session.  A
      failed item rolls back only its savepoint; earlier items are kept.
    - Any exception from an item is recorded on that item and the batch
      continues.  Domain errors keep their ``code``; anything else (database
      failures, audit sink errors) is recorded as ``UNHANDLED_EXCEPTION``.
    - The caller still owns the outer transaction and commits it.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_kernel.domain.approval import CommandResult
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import ApprovalKernelError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.approval_service import ApprovalService

from approval_services.types import (
    BulkItemResult,
    BulkOperation,
    BulkOperationResult,
    BulkSummary,
)

logger = get_logger("bulk.coordinator")

UNHANDLED_ERROR_CODE = "UNHANDLED_EXCEPTION"


class BulkApprovalCoordinator:
    """Applies an approval command to many requests."""

    def __init__(
        self,
        approval_service: ApprovalService,
        session: Session,
        clock: Clock | None = None,
    ) -> None:
        self._approvals = approval_service
        self._session = session
        self._clock = clock or SystemClock()

    def bulk_approve(
        self,
        principal_id: UUID,
        request_ids: Sequence[UUID],
        comment: str | None = None,
        emergency: bool = False,
        emergency_reason: str | None = None,
    ) -> BulkOperationResult:
        return self._run(
            BulkOperation.APPROVE,
            principal_id,
            request_ids,
            lambda request_id: self._approvals.approve(
                request_id,
                principal_id,
                comment=comment,
                emergency=emergency,
                emergency_reason=emergency_reason,
            ),
        )

    def bulk_reject(
        self,
        principal_id: UUID,
        request_ids: Sequence[UUID],
        reason: str,
    ) -> BulkOperationResult:
        return self._run(
            BulkOperation.REJECT,
            principal_id,
            request_ids,
            lambda request_id: self._approvals.reject(request_id, principal_id, reason),
        )

    def _run(
        self,
        operation: BulkOperation,
        principal_id: UUID,
        request_ids: Sequence[UUID],
        command: Callable[[UUID], CommandResult],
    ) -> BulkOperationResult:
        batch_id = uuid4()
        started_at = self._clock.now()
        summary = BulkSummary()
        results: list[BulkItemResult] = []

        with LogContext.bind(batch_id=str(batch_id), actor_id=str(principal_id)):
            logger.info(
                "bulk_operation_started",
                extra={"operation": operation.value, "total_items": len(request_ids)},
            )

            for index, request_id in enumerate(request_ids):
                savepoint = self._session.begin_nested()
                try:
                    outcome = command(request_id)
                except ApprovalKernelError as exc:
                    savepoint.rollback()
                    item = self._failed(index, request_id, exc, exc.code)
                except Exception as exc:
                    savepoint.rollback()
                    item = self._failed(index, request_id, exc, UNHANDLED_ERROR_CODE)
                else:
                    savepoint.commit()
                    item = BulkItemResult.ok(index, request_id, outcome.status)

                results.append(item)
                summary = summary.add(item)

            logger.info(
                "bulk_operation_completed",
                extra={
                    "operation": operation.value,
                    "total_items": summary.total,
                    "successful": summary.successful,
                    "failed": summary.failed,
                },
            )

        return BulkOperationResult(
            batch_id=batch_id,
            operation=operation,
            summary=summary,
            results=tuple(results),
            started_at=started_at,
            completed_at=self._clock.now(),
        )

    def _failed(
        self,
        index: int,
        request_id: UUID,
        exc: Exception,
        error_code: str,
    ) -> BulkItemResult:
        logger.warning(
            "bulk_item_failed",
            extra={
                "item_index": index,
                "failed_request_id": str(request_id),
                "error_code": error_code,
                "error": str(exc),
            },
            exc_info=error_code == UNHANDLED_ERROR_CODE,
        )
        return BulkItemResult.failed(index, request_id, str(exc), error_code)
