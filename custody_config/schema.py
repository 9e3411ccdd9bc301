"""
Custody configuration schema.

Frozen dataclasses the loader parses YAML into.  One dataclass per YAML
section; field names match the YAML keys exactly, so the loader can reject
unknown keys by comparing against ``dataclasses.fields``.

Runtime-editable settings (the admin contact number) are not part of this
schema: administrators change them through the store, not through files.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the store lives and how the engine is sized."""

    url: str = "sqlite:///custody.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class GatePassConfig:
    """Gate-pass code format and minting retry budget."""

    prefix: str = "GP-"
    digits: int = 4
    max_mint_attempts: int = 50


@dataclass(frozen=True)
class PolicyConfig:
    require_checkout_evidence: bool = False
    require_return_evidence: bool = False
    verify_ledger_on_write: bool = True
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class CustodyConfig:
    """
    The complete, validated configuration.

    ``source_path`` is the user file overlaid on the package defaults
    (None when only defaults were used).  ``checksum`` identifies the
    effective values, so two processes can confirm they run the same
    configuration.
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    gate_pass: GatePassConfig = field(default_factory=GatePassConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source_path: str | None = None
    checksum: str = ""


# YAML section name -> dataclass
SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "gate_pass": GatePassConfig,
    "policy": PolicyConfig,
    "logging": LoggingConfig,
}
