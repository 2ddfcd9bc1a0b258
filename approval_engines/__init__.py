"""
Pure approval engines: tier resolution and authority evaluation.

Engines take domain value objects and return domain value objects.  They
never touch the database or the clock.
"""

from approval_engines.authority import direct_authority, evaluate_authority
from approval_engines.tiers import matching_tiers, next_tier, required_tier, tier_chain

__all__ = [
    "direct_authority",
    "evaluate_authority",
    "matching_tiers",
    "next_tier",
    "required_tier",
    "tier_chain",
]
