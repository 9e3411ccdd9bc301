"""
Custody Kernel - asset custody request lifecycle

A transactional store for enterprise asset custody with:
- A role-gated request state machine (submit, decide, cancel, return)
- Single-use gate-pass credentials verified at the security gate
- A single-writer asset availability ledger
- Append-only notifications and a hash-chained audit trail
"""

__version__ = "0.1.0"
