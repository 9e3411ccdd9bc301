"""
Module: custody_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the string primary key convention and the timezone-safe timestamp type.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - String primary keys: ids are minted by an injected IdGenerator
      (``u-...``, ``req-...``) rather than by the database, so the core stays
      deterministic under test.
    - Timezone awareness: every ``datetime`` column round-trips as an aware
      UTC value, even on SQLite which stores naive text.

Failure modes:
    - IntegrityError if a model INSERTs a duplicate id.
    - ValueError if a naive datetime is bound (naive times are ambiguous).
"""

from datetime import datetime, timezone
from typing import ClassVar

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC.

    Contract:
        Binds only aware datetimes (normalized to UTC) and always returns
        aware UTC datetimes.  SQLite drops tzinfo on storage; the result
        processor restores it.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model inherits from Base.  Base provides a string primary
        key and a type_annotation_map that keeps timestamp columns aware.

    Guarantees:
        - id is a String(64) supplied by the caller (never autoincremented).
        - datetime maps to UTCDateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
    }

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
