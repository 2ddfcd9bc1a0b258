"""
Orchestration above the approval kernel.

Bulk operations run kernel commands item by item and report per-item
outcomes instead of raising.
"""

from approval_services.bulk_coordinator import BulkApprovalCoordinator
from approval_services.types import (
    BulkItemResult,
    BulkOperation,
    BulkOperationResult,
    BulkSummary,
)

__all__ = [
    "BulkApprovalCoordinator",
    "BulkItemResult",
    "BulkOperation",
    "BulkOperationResult",
    "BulkSummary",
]
