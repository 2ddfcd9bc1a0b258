"""
approval_kernel.services.tier_service -- Tier administration.

Responsibility:
    Maintains the active tier table: create, update, soft-deactivate and
    reconcile against the tier definitions in configuration.

Architecture position:
    Kernel > Services.  Depends on the ``TierStore`` and ``AuditSink`` ports.

Invariants enforced:
    - order >= 1 (0 is reserved for emergency and resubmission actions).
    - min_amount >= 0; max_amount is None or greater than min_amount.
    - required_role is an approving role.
    - No two active tiers share an order.
    - Tiers are never deleted, only deactivated.

Failure modes:
    - InvalidTierDefinitionError, DuplicateTierOrderError on bad input.
    - TierNotFoundError for unknown tier ids.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from approval_config.schema import TierDefinition
from approval_kernel.domain.approval import Tier
from approval_kernel.domain.audit import AuditAction, AuditEventRecord, AuditSink
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.repository import TierStore
from approval_kernel.domain.roles import APPROVING_ROLES, Role
from approval_kernel.exceptions import (
    DuplicateTierOrderError,
    InvalidTierDefinitionError,
    TierNotFoundError,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("services.tier")

_UPDATABLE_FIELDS = frozenset({"name", "order", "min_amount", "max_amount", "required_role"})


class TierService:
    """Administers approval tiers."""

    def __init__(
        self,
        store: TierStore,
        audit_sink: AuditSink,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._audit_sink = audit_sink
        self._clock = clock or SystemClock()

    def list_tiers(self) -> list[Tier]:
        """Active tiers, ascending by order."""
        return self._store.list_active_tiers()

    def create_tier(
        self,
        actor_id: UUID,
        name: str,
        order: int,
        min_amount: Decimal,
        max_amount: Decimal | None,
        required_role: Role | str,
    ) -> Tier:
        tier = Tier(
            tier_id=uuid4(),
            name=name,
            order=order,
            min_amount=Decimal(min_amount),
            max_amount=Decimal(max_amount) if max_amount is not None else None,
            required_role=_parse_role(name, required_role),
        )
        self._validate(tier)
        self._check_order_free(tier.order)

        created = self._store.add_tier(tier)
        self._audit(AuditAction.TIER_CREATED, created, actor_id)
        logger.info("tier_created", extra=_tier_fields(created))
        return created

    def update_tier(self, actor_id: UUID, tier_id: UUID, **changes) -> Tier:
        """Change fields of an active tier.

        Accepted keyword arguments: ``name``, ``order``, ``min_amount``,
        ``max_amount`` (``None`` for unbounded), ``required_role``.
        """
        current = self._load(tier_id)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidTierDefinitionError(
                current.name, f"unknown fields {sorted(unknown)}",
            )

        for key in ("min_amount", "max_amount"):
            if changes.get(key) is not None:
                changes[key] = Decimal(changes[key])
        if "required_role" in changes:
            changes["required_role"] = _parse_role(
                changes.get("name", current.name), changes["required_role"],
            )
        updated = replace(current, **changes)
        self._validate(updated)
        if updated.order != current.order:
            self._check_order_free(updated.order)

        stored = self._store.update_tier(updated)
        self._audit(AuditAction.TIER_UPDATED, stored, actor_id, previous=current)
        logger.info("tier_updated", extra=_tier_fields(stored))
        return stored

    def deactivate_tier(self, actor_id: UUID, tier_id: UUID) -> Tier:
        current = self._load(tier_id)
        stored = self._store.update_tier(replace(current, active=False))
        self._audit(AuditAction.TIER_DEACTIVATED, stored, actor_id)
        logger.info("tier_deactivated", extra=_tier_fields(stored))
        return stored

    def sync_from_config(
        self,
        actor_id: UUID,
        definitions: Iterable[TierDefinition],
    ) -> list[Tier]:
        """Make the active tier table match ``definitions``.

        Tiers are matched by order.  Unchanged tiers are left alone, changed
        ones are updated, missing ones created, and active tiers whose order
        no longer appears are deactivated.
        """
        wanted = {d.order: d for d in definitions}
        active = {t.order: t for t in self._store.list_active_tiers()}

        for order, tier in active.items():
            if order not in wanted:
                self.deactivate_tier(actor_id, tier.tier_id)

        for order in sorted(wanted):
            d = wanted[order]
            tier = active.get(order)
            if tier is None:
                self.create_tier(
                    actor_id, d.name, d.order, d.min_amount, d.max_amount, d.required_role,
                )
            elif (tier.name, tier.min_amount, tier.max_amount, tier.required_role) != (
                d.name, d.min_amount, d.max_amount, d.required_role,
            ):
                self.update_tier(
                    actor_id,
                    tier.tier_id,
                    name=d.name,
                    min_amount=d.min_amount,
                    max_amount=d.max_amount,
                    required_role=d.required_role,
                )

        tiers = self._store.list_active_tiers()
        logger.info(
            "tiers_synced",
            extra={"tier_orders": [t.order for t in tiers]},
        )
        return tiers

    # ------------------------------------------------------------------

    def _load(self, tier_id: UUID) -> Tier:
        tier = self._store.load_tier(tier_id)
        if tier is None:
            raise TierNotFoundError(str(tier_id))
        return tier

    def _check_order_free(self, order: int) -> None:
        if any(t.order == order for t in self._store.list_active_tiers()):
            raise DuplicateTierOrderError(order)

    @staticmethod
    def _validate(tier: Tier) -> None:
        if tier.order < 1:
            raise InvalidTierDefinitionError(tier.name, "order must be >= 1")
        if tier.min_amount < 0:
            raise InvalidTierDefinitionError(tier.name, "min_amount must be >= 0")
        if tier.max_amount is not None and tier.max_amount <= tier.min_amount:
            raise InvalidTierDefinitionError(
                tier.name, "max_amount must be greater than min_amount",
            )
        if tier.required_role not in APPROVING_ROLES:
            raise InvalidTierDefinitionError(
                tier.name, f"role {tier.required_role.value} cannot approve",
            )

    def _audit(
        self,
        action: AuditAction,
        tier: Tier,
        actor_id: UUID,
        previous: Tier | None = None,
    ) -> None:
        payload = _tier_fields(tier)
        if previous is not None:
            payload["previous"] = _tier_fields(previous)
        self._audit_sink.record_audit_event(AuditEventRecord(
            action=action,
            entity_type="ApprovalTier",
            entity_id=tier.tier_id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload,
        ))


def _parse_role(tier_name: str, role: Role | str) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise InvalidTierDefinitionError(tier_name, f"unknown role {role!r}")


def _tier_fields(tier: Tier) -> dict:
    return {
        "tier_id": str(tier.tier_id),
        "tier_name": tier.name,
        "order": tier.order,
        "min_amount": str(tier.min_amount),
        "max_amount": str(tier.max_amount) if tier.max_amount is not None else None,
        "required_role": tier.required_role.value,
        "active": tier.active,
    }
