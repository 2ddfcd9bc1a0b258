"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval kernel (controllers, batch jobs, the bulk
coordinator) must tell a missing request apart from a denied approver or
a stale concurrent write without parsing message strings.  Every error
therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (which request, which rule)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ApprovalKernelError:

    ApprovalKernelError (base)
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- PrincipalNotFoundError
    |   +-- DelegationNotFoundError
    |   +-- TierNotFoundError
    |
    +-- InvalidStateError
    |   +-- RequestNotActionableError
    |   +-- NotResubmittableError
    |   +-- TierCoverageError
    |
    +-- ForbiddenError
    |   +-- UnauthorizedApproverError
    |   +-- EmergencyApprovalNotPermittedError
    |   +-- NotRequestOwnerError
    |   +-- NotDelegationOwnerError
    |
    +-- ValidationFailedError
    |   +-- MissingReasonError
    |   +-- EmergencyJustificationError
    |   +-- InvalidDateRangeError
    |   +-- SelfDelegationError
    |   +-- InvalidTierDefinitionError
    |
    +-- ConflictError
    |   +-- OverlappingDelegationError
    |   +-- ConcurrentTransitionError
    |   +-- DuplicateTierOrderError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|--------------------------------------
Not found       | REQUEST_NOT_FOUND             | Request ID doesn't exist
                | PRINCIPAL_NOT_FOUND           | Actor / delegate doesn't exist
                | DELEGATION_NOT_FOUND          | Delegation ID doesn't exist
                | TIER_NOT_FOUND                | Tier ID doesn't exist
----------------|-------------------------------|--------------------------------------
Invalid state   | REQUEST_NOT_ACTIONABLE        | Command outside submitted/pending
                | REQUEST_NOT_RESUBMITTABLE     | Resubmit outside rejected/clarify
                | TIER_COVERAGE_MISSING         | No unapproved tier covers the amount
----------------|-------------------------------|--------------------------------------
Forbidden       | UNAUTHORIZED_APPROVER         | Principal may not act at the tier
                | EMERGENCY_APPROVAL_FORBIDDEN  | Role not eligible for bypass
                | NOT_REQUEST_OWNER             | Resubmit by someone else
                | NOT_DELEGATION_OWNER          | Revoke by someone else
----------------|-------------------------------|--------------------------------------
Validation      | REASON_REQUIRED               | Empty rejection reason / question
                | EMERGENCY_JUSTIFICATION_SHORT | Emergency reason below minimum
                | INVALID_DATE_RANGE            | end <= start
                | SELF_DELEGATION               | Delegating to oneself
                | INVALID_TIER_DEFINITION       | Bad order / amount bounds
----------------|-------------------------------|--------------------------------------
Conflict        | DELEGATION_OVERLAP            | Active delegation overlaps window
                | CONCURRENT_TRANSITION         | Status/version guard failed
                | DUPLICATE_TIER_ORDER          | Active tier already uses order
----------------|-------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Mutating an approval action

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH BY CATEGORY AT THE EDGE:

    try:
        service.approve(request_id, actor_id)
    except ForbiddenError as e:
        return http_403(code=e.code)
    except ConflictError as e:
        return http_409(code=e.code)

2. TIER COVERAGE IS A CONFIGURATION DEFECT, NOT A WORKFLOW ERROR:

    except TierCoverageError as e:
        alert_administrators(e.amount)

3. CONCURRENT TRANSITIONS ARE NEVER RETRIED BY THE KERNEL:

    except ConcurrentTransitionError:
        reload_and_ask_user()  # state must be re-authorized
"""

from decimal import Decimal


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ApprovalKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Expense request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Expense request not found: {request_id}")


class PrincipalNotFoundError(NotFoundError):
    """Principal (user) with given ID was not found."""

    code: str = "PRINCIPAL_NOT_FOUND"

    def __init__(self, principal_id: str):
        self.principal_id = principal_id
        super().__init__(f"Principal not found: {principal_id}")


class DelegationNotFoundError(NotFoundError):
    """Delegation with given ID was not found."""

    code: str = "DELEGATION_NOT_FOUND"

    def __init__(self, delegation_id: str):
        self.delegation_id = delegation_id
        super().__init__(f"Delegation not found: {delegation_id}")


class TierNotFoundError(NotFoundError):
    """Approval tier with given ID was not found."""

    code: str = "TIER_NOT_FOUND"

    def __init__(self, tier_id: str):
        self.tier_id = tier_id
        super().__init__(f"Approval tier not found: {tier_id}")


# Invalid-state exceptions


class InvalidStateError(ApprovalKernelError):
    """Base exception for commands attempted in the wrong lifecycle state."""

    code: str = "INVALID_STATE"


class RequestNotActionableError(InvalidStateError):
    """Approve/reject/clarify attempted outside submitted/pending_approval."""

    code: str = "REQUEST_NOT_ACTIONABLE"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Expense request {request_id} cannot be acted on "
            f"in its current status: {status}"
        )


class NotResubmittableError(InvalidStateError):
    """Resubmit attempted outside rejected/clarification_requested."""

    code: str = "REQUEST_NOT_RESUBMITTABLE"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Expense request {request_id} cannot be resubmitted "
            f"in its current status: {status}"
        )


class TierCoverageError(InvalidStateError):
    """
    No unapproved active tier covers the request amount.

    This indicates a tier configuration defect (gaps in the amount ranges,
    or every covering tier already approved while the request is still
    actionable), not an ordinary workflow violation.
    """

    code: str = "TIER_COVERAGE_MISSING"

    def __init__(
        self,
        amount: Decimal,
        approved_tier_orders: frozenset[int] = frozenset(),
        request_id: str | None = None,
    ):
        self.amount = amount
        self.approved_tier_orders = approved_tier_orders
        self.request_id = request_id
        target = f" for request {request_id}" if request_id else ""
        super().__init__(
            f"No approval tier found{target} covering amount {amount} "
            f"(approved tiers: {sorted(approved_tier_orders)})"
        )


# Forbidden exceptions


class ForbiddenError(ApprovalKernelError):
    """Base exception for authorization denials."""

    code: str = "FORBIDDEN"


class UnauthorizedApproverError(ForbiddenError):
    """Principal may not act on the request at its current tier."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        request_id: str,
        principal_id: str,
        principal_role: str,
        tier_order: int,
        required_role: str,
        action: str = "approve",
    ):
        self.request_id = request_id
        self.principal_id = principal_id
        self.principal_role = principal_role
        self.tier_order = tier_order
        self.required_role = required_role
        self.action = action
        super().__init__(
            f"Principal {principal_id} ({principal_role}) is not authorized to "
            f"{action} request {request_id} at tier {tier_order} "
            f"(requires {required_role})"
        )


class EmergencyApprovalNotPermittedError(ForbiddenError):
    """Principal's role is not eligible for the emergency bypass."""

    code: str = "EMERGENCY_APPROVAL_FORBIDDEN"

    def __init__(self, principal_id: str, principal_role: str):
        self.principal_id = principal_id
        self.principal_role = principal_role
        super().__init__(
            f"Role {principal_role} cannot perform emergency approvals "
            f"(principal {principal_id})"
        )


class NotRequestOwnerError(ForbiddenError):
    """Only the submitter may resubmit their own request."""

    code: str = "NOT_REQUEST_OWNER"

    def __init__(self, request_id: str, caller_id: str):
        self.request_id = request_id
        self.caller_id = caller_id
        super().__init__(
            f"Principal {caller_id} can only resubmit their own expenses "
            f"(request {request_id})"
        )


class NotDelegationOwnerError(ForbiddenError):
    """Only the delegator may revoke a delegation."""

    code: str = "NOT_DELEGATION_OWNER"

    def __init__(self, delegation_id: str, caller_id: str):
        self.delegation_id = delegation_id
        self.caller_id = caller_id
        super().__init__(
            f"Principal {caller_id} can only revoke their own delegations "
            f"(delegation {delegation_id})"
        )


# Validation exceptions


class ValidationFailedError(ApprovalKernelError):
    """Base exception for invalid command input."""

    code: str = "VALIDATION_FAILED"


class MissingReasonError(ValidationFailedError):
    """A mandatory reason / question / note was empty."""

    code: str = "REASON_REQUIRED"

    def __init__(self, field_name: str, request_id: str | None = None):
        self.field_name = field_name
        self.request_id = request_id
        super().__init__(f"{field_name} is required")


class EmergencyJustificationError(ValidationFailedError):
    """Emergency justification missing or below the minimum length."""

    code: str = "EMERGENCY_JUSTIFICATION_SHORT"

    def __init__(self, min_length: int, actual_length: int):
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            "Emergency approval requires detailed justification "
            f"(minimum {min_length} characters, got {actual_length})"
        )


class InvalidDateRangeError(ValidationFailedError):
    """Delegation window end is not after its start."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(f"End date must be after start date: {start} .. {end}")


class SelfDelegationError(ValidationFailedError):
    """A principal attempted to delegate authority to themselves."""

    code: str = "SELF_DELEGATION"

    def __init__(self, principal_id: str):
        self.principal_id = principal_id
        super().__init__(f"Principal {principal_id} cannot delegate to themselves")


class InvalidTierDefinitionError(ValidationFailedError):
    """Tier order or amount bounds are malformed."""

    code: str = "INVALID_TIER_DEFINITION"

    def __init__(self, tier_name: str, reason: str):
        self.tier_name = tier_name
        self.reason = reason
        super().__init__(f"Invalid tier definition '{tier_name}': {reason}")


# Conflict exceptions


class ConflictError(ApprovalKernelError):
    """Base exception for state conflicts."""

    code: str = "CONFLICT"


class OverlappingDelegationError(ConflictError):
    """Delegator already has an active delegation overlapping the window."""

    code: str = "DELEGATION_OVERLAP"

    def __init__(self, from_user_id: str, existing_delegation_id: str):
        self.from_user_id = from_user_id
        self.existing_delegation_id = existing_delegation_id
        super().__init__(
            f"Principal {from_user_id} already has an active delegation "
            f"for this time period ({existing_delegation_id})"
        )


class ConcurrentTransitionError(ConflictError):
    """
    The request changed between read and write.

    Raised when the guarded status/version update affects no rows.  The
    kernel never retries: the caller must reload and re-authorize.
    """

    code: str = "CONCURRENT_TRANSITION"

    def __init__(self, request_id: str, expected_status: str, expected_version: int):
        self.request_id = request_id
        self.expected_status = expected_status
        self.expected_version = expected_version
        super().__init__(
            f"Expense request {request_id} was modified concurrently "
            f"(expected status {expected_status}, version {expected_version})"
        )


class DuplicateTierOrderError(ConflictError):
    """An active tier already uses this order."""

    code: str = "DUPLICATE_TIER_ORDER"

    def __init__(self, order: int):
        self.order = order
        super().__init__(f"An active approval tier already uses order {order}")


# Immutability exceptions


class ImmutabilityViolationError(ApprovalKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
