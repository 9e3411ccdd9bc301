"""
custody_config -- single public entrypoint for custody configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  It loads ``defaults.yaml``, overlays the user file and
    environment overrides, validates the result and logs a
    ``CUSTODY_CONFIG_TRACE`` record identifying the effective values.

Architecture position:
    Configuration -- sits above ``custody_kernel``.  The kernel never
    imports this package; ``custody_config.bridges`` translates the loaded
    configuration into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the named user file does not exist.
    - ``ValueError`` -- unknown section or key, wrong value type, or an
      out-of-range policy value.
"""

from __future__ import annotations

import logging
from pathlib import Path

from custody_config.bridges import to_policy
from custody_config.loader import load_config
from custody_config.schema import (
    CustodyConfig,
    DatabaseConfig,
    GatePassConfig,
    LoggingConfig,
    PolicyConfig,
)

_logger = logging.getLogger("custody_kernel.config")

__all__ = [
    "CustodyConfig",
    "DatabaseConfig",
    "GatePassConfig",
    "LoggingConfig",
    "PolicyConfig",
    "get_active_config",
    "load_config",
]


def get_active_config(path: str | Path | None = None) -> CustodyConfig:
    """Load, validate and trace the effective configuration.

    Args:
        path: Optional user file.  Defaults to ``CUSTODY_CONFIG_PATH``
            when set, otherwise package defaults only.
    """
    config = load_config(path)

    # Range checks live on the kernel policy; fail here, not at first use.
    to_policy(config)

    _logger.info(
        "CUSTODY_CONFIG_TRACE",
        extra={
            "trace_type": "CUSTODY_CONFIG_TRACE",
            "checksum": config.checksum,
            "source_path": config.source_path,
            "database_dialect": config.database.url.split(":", 1)[0],
            "gate_pass_prefix": config.gate_pass.prefix,
            "gate_pass_digits": config.gate_pass.digits,
        },
    )
    return config
