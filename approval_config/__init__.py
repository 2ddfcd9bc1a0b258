"""
Approval configuration.

The single public entry point for runtime configuration is
``get_active_config()``.  It reads the file named by the
``APPROVAL_CONFIG_PATH`` environment variable, falling back to the
packaged ``defaults.yaml``.
"""

from __future__ import annotations

import os
from pathlib import Path

from approval_config.loader import compute_checksum, load_config, parse_config
from approval_config.schema import ApprovalConfig, ApprovalSettings, TierDefinition

CONFIG_PATH_ENV = "APPROVAL_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> ApprovalConfig:
    """Load the active configuration.

    Args:
        path: Explicit file; overrides the environment variable.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    return load_config(Path(path))


__all__ = [
    "ApprovalConfig",
    "ApprovalSettings",
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "TierDefinition",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "parse_config",
]
