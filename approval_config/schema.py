"""
Configuration schema (``approval_config.schema``).

Frozen dataclasses describing the approval kernel's tunable settings and
the tier table it is seeded with.  Parsed from YAML by
``approval_config.loader``; never constructed from untrusted input
anywhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from approval_kernel.domain.roles import Role


@dataclass(frozen=True)
class ApprovalSettings:
    """Tunable behaviour of the state machine and read queries."""

    emergency_reason_min_length: int = 20
    default_page_size: int = 20
    history_limit: int = 50
    executive_emergency_reason: str = "Executive emergency approval"
    resubmission_note: str = "Expense resubmitted for approval"


@dataclass(frozen=True)
class TierDefinition:
    """A tier as declared in configuration (no identity yet)."""

    name: str
    order: int
    min_amount: Decimal
    max_amount: Decimal | None
    required_role: Role


@dataclass(frozen=True)
class ApprovalConfig:
    """A complete, parsed configuration document."""

    settings: ApprovalSettings = field(default_factory=ApprovalSettings)
    tiers: tuple[TierDefinition, ...] = ()
    checksum: str | None = None
