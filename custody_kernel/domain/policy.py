"""
Kernel runtime policy.

``CustodyPolicy`` is the kernel-side view of configuration.  The kernel never
reads YAML or environment variables; ``custody_config.bridges`` translates the
loaded configuration into this frozen value, and tests build it directly.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CustodyPolicy:
    """Knobs that change kernel behaviour without changing its rules.

    Guarantees: ``gate_pass_digits`` >= 1 and ``max_mint_attempts`` >= 1
    (checked at construction).
    """

    gate_pass_prefix: str = "GP-"
    gate_pass_digits: int = 4
    max_mint_attempts: int = 50
    require_checkout_evidence: bool = False
    require_return_evidence: bool = False
    verify_ledger_on_write: bool = True
    lock_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.gate_pass_digits < 1:
            raise ValueError("gate_pass_digits must be >= 1")
        if self.max_mint_attempts < 1:
            raise ValueError("max_mint_attempts must be >= 1")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")

    @property
    def code_range(self) -> tuple[int, int]:
        """Inclusive numeric range of codes, e.g. (1000, 9999) for 4 digits."""
        low = 10 ** (self.gate_pass_digits - 1) if self.gate_pass_digits > 1 else 0
        return low, 10 ** self.gate_pass_digits - 1

    def format_code(self, number: int) -> str:
        return f"{self.gate_pass_prefix}{number:0{self.gate_pass_digits}d}"
