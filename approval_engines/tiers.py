"""
approval_engines.tiers -- Pure approval tier resolution.

Responsibility:
    Given a normalized amount, the active tier definitions and the set of
    tier orders already approved, determine which tier governs the request
    now and whether another tier follows it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and exceptions.

Invariants enforced:
    - Deterministic ordering: tiers are sorted by ``order`` before
      evaluation; first unapproved match wins.
    - Ranges are half-open ``[min_amount, max_amount)``.
    - Inactive tiers never match.
    - Monotonicity: once a tier's order is in ``approved_tier_orders``,
      ``required_tier`` only returns strictly greater orders.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - TierCoverageError when no unapproved active tier covers the amount.
      This is a configuration defect, distinct from a wrong-status error.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from approval_kernel.domain.approval import Tier
from approval_kernel.exceptions import TierCoverageError


def matching_tiers(amount: Decimal, tiers: Iterable[Tier]) -> list[Tier]:
    """Active tiers whose range contains ``amount``, ascending by order.

    Args:
        amount: Normalized request amount.
        tiers: Candidate tier definitions (any order, may include inactive).

    Returns:
        The covering tiers sorted by ``order``.
    """
    return sorted(
        (t for t in tiers if t.active and t.covers(amount)),
        key=lambda t: t.order,
    )


def required_tier(
    amount: Decimal,
    approved_tier_orders: Iterable[int],
    tiers: Iterable[Tier],
    request_id: str | None = None,
) -> Tier:
    """Select the first covering tier that has not been approved yet.

    Args:
        amount: Normalized request amount.
        approved_tier_orders: Orders already satisfied by ``approved`` actions.
        tiers: Active tier definitions.
        request_id: Included in the error for context only.

    Returns:
        The tier whose approval is required next.

    Raises:
        TierCoverageError: if every covering tier is approved or none covers
            the amount.
    """
    approved = frozenset(approved_tier_orders)
    for tier in matching_tiers(amount, tiers):
        if tier.order not in approved:
            return tier

    raise TierCoverageError(amount, approved, request_id)


def next_tier(
    amount: Decimal,
    current_order: int,
    tiers: Iterable[Tier],
) -> Tier | None:
    """The first covering tier after ``current_order``.

    Returns:
        The following tier, or None when ``current_order`` is the last
        step required for this amount.
    """
    for tier in matching_tiers(amount, tiers):
        if tier.order > current_order:
            return tier
    return None


def tier_chain(amount: Decimal, tiers: Iterable[Tier]) -> tuple[int, ...]:
    """Every tier order an amount must pass through, in sequence."""
    return tuple(t.order for t in matching_tiers(amount, tiers))
