"""
Config -> Kernel Bridges.

Functions that turn a loaded ``CustodyConfig`` into kernel inputs.  They
live here (the producer) because the kernel must never import
``custody_config``.

Usage:
    from custody_config import get_active_config
    from custody_config.bridges import build_orchestrator

    orchestrator = build_orchestrator(get_active_config())
"""

from __future__ import annotations

from collections.abc import Iterable

from custody_config.schema import CustodyConfig
from custody_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from custody_kernel.db.immutability import register_immutability_listeners
from custody_kernel.domain.clock import Clock
from custody_kernel.domain.identifiers import CodeSource, IdGenerator
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.logging_config import configure_logging
from custody_kernel.services.custody_orchestrator import CustodyOrchestrator
from custody_kernel.services.notification_service import NotificationSink


def to_policy(config: CustodyConfig) -> CustodyPolicy:
    """Kernel policy from the gate_pass and policy sections.

    Raises:
        ValueError: If a value is out of range (e.g. ``digits`` < 1).
    """
    return CustodyPolicy(
        gate_pass_prefix=config.gate_pass.prefix,
        gate_pass_digits=config.gate_pass.digits,
        max_mint_attempts=config.gate_pass.max_mint_attempts,
        require_checkout_evidence=config.policy.require_checkout_evidence,
        require_return_evidence=config.policy.require_return_evidence,
        verify_ledger_on_write=config.policy.verify_ledger_on_write,
        lock_timeout_seconds=config.policy.lock_timeout_seconds,
    )


def build_orchestrator(
    config: CustodyConfig,
    *,
    clock: Clock | None = None,
    ids: IdGenerator | None = None,
    code_source: CodeSource | None = None,
    sinks: Iterable[NotificationSink] = (),
    create_schema: bool = True,
) -> CustodyOrchestrator:
    """
    Wire a ready-to-use orchestrator from configuration.

    Configures logging, initializes the module-level engine, creates the
    tables (unless ``create_schema`` is False) and installs the ORM
    immutability listeners.
    """
    configure_logging(level=config.logging.level.upper())
    engine = init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    if create_schema:
        create_tables(engine)
    register_immutability_listeners()
    return CustodyOrchestrator(
        get_session_factory(),
        clock=clock,
        ids=ids,
        code_source=code_source,
        policy=to_policy(config),
        sinks=sinks,
    )
