"""
Identifier and gate-pass code providers.

Responsibility:
    Injectable sources for entity ids and for the raw numbers behind
    gate-pass codes, so that no service derives ids from wall-clock time
    and tests can pin every generated value.

Architecture position:
    Kernel > Domain -- pure, no database access.  Uniqueness of gate-pass
    codes against open requests is checked by GatePassMinter, not here.

Failure modes:
    - ScriptedCodeSource raises RuntimeError when its script is exhausted.
"""

from __future__ import annotations

import itertools
import random
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from uuid import uuid4


# Well-known id prefixes
USER = "u"
ASSET = "a"
REQUEST = "req"
DEPLOYMENT = "dep"
NOTIFICATION = "n"
AUDIT_EVENT = "aud"


class IdGenerator(ABC):
    """Mints string ids of the form ``<prefix>-<token>``."""

    @abstractmethod
    def next_id(self, prefix: str) -> str:
        ...


class UUIDIdGenerator(IdGenerator):
    """Production generator: random 12-hex-digit token per id."""

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{uuid4().hex[:12]}"


class SequentialIdGenerator(IdGenerator):
    """
    Deterministic generator: ``u-1``, ``u-2``, ``req-1`` ...

    Counters are kept per prefix and guarded by a lock so concurrent
    callers never receive the same id.
    """

    def __init__(self) -> None:
        self._counters: dict[str, itertools.count] = defaultdict(
            lambda: itertools.count(1)
        )
        self._lock = threading.Lock()

    def next_id(self, prefix: str) -> str:
        with self._lock:
            return f"{prefix}-{next(self._counters[prefix])}"


class CodeSource(ABC):
    """Supplies candidate numbers for gate-pass codes."""

    @abstractmethod
    def draw(self, low: int, high: int) -> int:
        """Return a candidate in ``[low, high]`` inclusive."""
        ...


class RandomCodeSource(CodeSource):
    """Uniform draws from ``random.Random`` (seedable for replay)."""

    def __init__(self, seed: int | None = None) -> None:
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def draw(self, low: int, high: int) -> int:
        with self._lock:
            return self._random.randint(low, high)


class ScriptedCodeSource(CodeSource):
    """
    Returns a predefined sequence of candidates.

    Used by tests to force collisions.  Values outside ``[low, high]``
    are returned as-is so the minter's range check can be exercised.
    """

    def __init__(self, values: list[int]):
        if not values:
            raise ValueError("ScriptedCodeSource requires at least one value")
        self._values = iter(values)
        self._lock = threading.Lock()

    def draw(self, low: int, high: int) -> int:
        with self._lock:
            try:
                return next(self._values)
            except StopIteration:
                raise RuntimeError("ScriptedCodeSource exhausted") from None
