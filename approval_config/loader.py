"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the approval YAML document and parses it into the frozen
``approval_config.schema`` dataclasses.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required tier fields.
* Amounts are parsed as ``Decimal`` from their string form, never through
  ``float``.
* ``compute_checksum`` produces a deterministic SHA-256 over the parsed
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown role or unparseable amount  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import ApprovalConfig, ApprovalSettings, TierDefinition
from approval_kernel.domain.roles import Role


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any, field_name: str) -> Decimal:
    """Parse a monetary amount from YAML (string or int)."""
    if isinstance(value, float):
        # YAML floats lose precision; require quoting
        raise ValueError(f"{field_name} must be a quoted decimal string, got float {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValueError(f"Cannot parse {field_name} from {value!r}")


def parse_settings(data: dict[str, Any]) -> ApprovalSettings:
    """Parse ``settings:``; every key is optional."""
    defaults = ApprovalSettings()
    min_length = int(data.get(
        "emergency_reason_min_length", defaults.emergency_reason_min_length,
    ))
    if min_length < 0:
        raise ValueError("emergency_reason_min_length must be >= 0")
    page_size = int(data.get("default_page_size", defaults.default_page_size))
    if page_size < 1:
        raise ValueError("default_page_size must be >= 1")
    return ApprovalSettings(
        emergency_reason_min_length=min_length,
        default_page_size=page_size,
        history_limit=int(data.get("history_limit", defaults.history_limit)),
        executive_emergency_reason=str(data.get(
            "executive_emergency_reason", defaults.executive_emergency_reason,
        )),
        resubmission_note=str(data.get(
            "resubmission_note", defaults.resubmission_note,
        )),
    )


def parse_tier(data: dict[str, Any]) -> TierDefinition:
    """
    Parse a ``TierDefinition`` from a dict.

    Required keys: ``name``, ``order``, ``min_amount``, ``required_role``.
    ``max_amount`` may be omitted or null for an unbounded top tier.
    """
    max_raw = data.get("max_amount")
    return TierDefinition(
        name=data["name"],
        order=int(data["order"]),
        min_amount=parse_amount(data["min_amount"], "min_amount"),
        max_amount=parse_amount(max_raw, "max_amount") if max_raw is not None else None,
        required_role=Role(data["required_role"]),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a raw configuration document."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> ApprovalConfig:
    """Parse a full configuration document."""
    tiers = tuple(parse_tier(t) for t in data.get("tiers") or ())
    orders = [t.order for t in tiers]
    if len(orders) != len(set(orders)):
        raise ValueError(f"Duplicate tier orders in configuration: {sorted(orders)}")
    return ApprovalConfig(
        settings=parse_settings(data.get("settings") or {}),
        tiers=tuple(sorted(tiers, key=lambda t: t.order)),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ApprovalConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path))
