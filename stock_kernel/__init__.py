"""
Stock Kernel - ledger and approval-workflow core

A single-database stock ledger with:
- Lazily created per-resource ledger rows (race-safe get-or-create)
- Append-only transaction log paired atomically with every mutation
- Fixed approval state machines for import and export requests
- A task assignment state machine with an immutable history trail
"""

__version__ = "0.1.0"
