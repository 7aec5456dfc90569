"""
Configuration Loader (``bid_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``bid_config.schema`` dataclasses.  Runtime callers go through
``bid_config.get_active_config()`` instead of calling this directly.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on services.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Significance breakpoints are non-negative and strictly increasing.
* Actionable tiers name real significance tiers.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from bid_config.schema import (
    GovernanceConfig,
    GovernanceRetryConfig,
    StrategyConfig,
    VarianceConfig,
)
from bid_kernel.domain.variance import VarianceSignificance


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from a YAML scalar (int, float or string)."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field_name}: cannot parse number from {value!r}")
    if not result.is_finite():
        raise ValueError(f"{field_name}: must be finite, got {value!r}")
    return result


def parse_variance(data: dict[str, Any]) -> VarianceConfig:
    """
    Parse a ``VarianceConfig`` from the ``variance`` section.

    Raises:
        KeyError: if a breakpoint is missing.
        ValueError: if breakpoints are negative or not strictly increasing.
    """
    breakpoints = data["breakpoints"]
    config = VarianceConfig(
        minor_pct=parse_decimal(breakpoints["minor"], "variance.breakpoints.minor"),
        moderate_pct=parse_decimal(breakpoints["moderate"], "variance.breakpoints.moderate"),
        major_pct=parse_decimal(breakpoints["major"], "variance.breakpoints.major"),
        critical_pct=parse_decimal(breakpoints["critical"], "variance.breakpoints.critical"),
        inclusive_lower_bounds=bool(data.get("inclusive_lower_bounds", False)),
    )

    ordered = config.breakpoints
    if any(b < 0 for b in ordered):
        raise ValueError(f"variance.breakpoints must be non-negative: {ordered}")
    if any(lo >= hi for lo, hi in zip(ordered, ordered[1:])):
        raise ValueError(
            f"variance.breakpoints must be strictly increasing "
            f"(minor < moderate < major < critical): {ordered}"
        )
    return config


def parse_strategy(data: dict[str, Any]) -> StrategyConfig:
    """Parse a ``StrategyConfig`` from the ``strategy`` section."""
    tiers = tuple(str(t).strip().lower() for t in data["actionable_tiers"])
    if not tiers:
        raise ValueError("strategy.actionable_tiers must not be empty")
    valid = {s.value for s in VarianceSignificance}
    unknown = [t for t in tiers if t not in valid]
    if unknown:
        raise ValueError(
            f"strategy.actionable_tiers contains unknown tiers {unknown}; "
            f"expected a subset of {sorted(valid)}"
        )
    if VarianceSignificance.MATCH.value in tiers:
        raise ValueError("strategy.actionable_tiers cannot include 'match'")
    return StrategyConfig(actionable_tiers=tiers)


def parse_retry(data: dict[str, Any]) -> GovernanceRetryConfig:
    """Parse a ``GovernanceRetryConfig`` from the ``retry`` section."""
    retries = data.get("max_conflict_retries", 3)
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 1:
        raise ValueError(
            f"retry.max_conflict_retries must be a positive integer, got {retries!r}"
        )
    return GovernanceRetryConfig(max_conflict_retries=retries)


def parse_config(data: dict[str, Any]) -> GovernanceConfig:
    """
    Parse the whole configuration document.

    Postconditions:
        - Returns a frozen ``GovernanceConfig`` whose ``checksum`` is the
          SHA-256 of ``data``.
    """
    return GovernanceConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        variance=parse_variance(data["variance"]),
        strategy=parse_strategy(data["strategy"]),
        retry=parse_retry(data.get("retry", {})),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> GovernanceConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
