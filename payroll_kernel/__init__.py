"""
Payroll Kernel

A versioned payroll calculation and approval engine with:
- Deterministic, half-up rounded calculations against dated rate tables
- Append-only calculation versions and adjustment history
- Exception detection gating approval
- A hash-chained approval ledger for every period status change
"""

__version__ = "0.1.0"
