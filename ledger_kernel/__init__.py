"""
Ledger Kernel

A multi-tenant double-entry accounting core with:
- Document lifecycle (draft, posted, void, bounced)
- Balanced ledger posting and compensating reversals
- Idempotent commands
- Lock date enforcement
- Bank reconciliation matching
- Hash-chained audit trail
"""

__version__ = "0.1.0"
