"""
Module: custody_kernel.models.sequence_counter
Responsibility: Named monotonic counters (audit event ``seq``).
Architecture position: Kernel > Models.  Written only by SequenceService.

The primary key is the sequence name; ``current_value`` is incremented
under a row lock, never derived from an aggregate max.
"""

from __future__ import annotations

from sqlalchemy import BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from custody_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.id}={self.current_value}>"
