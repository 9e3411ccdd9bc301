"""
Named counters for strictly increasing sequence numbers.

The audit chain orders its events by ``seq``, so numbers come from a
counter row read under ``with_for_update`` (a row lock on PostgreSQL; on
SQLite the enclosing ``BEGIN IMMEDIATE`` already excludes other writers).
An allocation belongs to the caller's transaction: a rollback hands the
number back.  Nothing here commits.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from custody_kernel.logging_config import get_logger
from custody_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.id == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter:
        # Two first users can race on the insert; the loser re-reads the
        # winner's row inside its own savepoint-protected transaction.
        try:
            with self._session.begin_nested():
                self._session.add(SequenceCounter(id=name, current_value=0))
        except IntegrityError:
            logger.debug("sequence_counter_created_concurrently", extra={"sequence_name": name})
        counter = self._lock(name)
        if counter is None:
            raise RuntimeError(f"sequence counter {name!r} vanished after creation")
        return counter

    def next_value(self, name: str) -> int:
        """Allocate the next number of ``name``; the first is 1."""
        counter = self._lock(name) or self._create(name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last allocated number, or None if ``name`` was never used."""
        counter = self._session.get(SequenceCounter, name)
        return None if counter is None else counter.current_value
