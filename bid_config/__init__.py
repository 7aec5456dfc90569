"""
bid_config -- single public entrypoint for governance configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``GovernanceConfig``.  YAML
    loading is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- sits above ``bid_kernel`` and ``bid_engines`` and
    below ``bid_services``.  The kernel MUST NEVER import from
    ``bid_config``; ``bid_config.bridges`` translates the config into
    engine instances.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic identity: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``KeyError`` / ``ValueError`` -- schema or range validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BID_CONFIG_TRACE`` log entry containing the config_id, version,
    checksum and the effective breakpoints, tying every variance
    classification back to the configuration that produced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bid_config.loader import load_config
from bid_config.schema import (
    GovernanceConfig,
    GovernanceRetryConfig,
    StrategyConfig,
    VarianceConfig,
)

_logger = logging.getLogger("bid_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> GovernanceConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.
            Defaults to the packaged ``bid_config/defaults.yaml``.

    Returns:
        GovernanceConfig -- frozen and checksummed.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "BID_CONFIG_TRACE",
        extra={
            "trace_type": "BID_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "breakpoints": [str(b) for b in config.variance.breakpoints],
            "inclusive_lower_bounds": config.variance.inclusive_lower_bounds,
            "actionable_tiers": list(config.strategy.actionable_tiers),
            "max_conflict_retries": config.retry.max_conflict_retries,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "GovernanceConfig",
    "GovernanceRetryConfig",
    "StrategyConfig",
    "VarianceConfig",
    "get_active_config",
]
