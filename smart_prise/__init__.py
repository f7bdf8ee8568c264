"""
Smart Prise - Source Package

A household ledger engine for families tracking monthly expenses,
long-running commitments and a shared message board.

DESIGN PRINCIPLES:
1. Entities are immutable values, replaced at their identifier
2. Derived numbers are recomputed, never cached
3. The remote store is the single source of truth
4. Every user action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Smart Prise Team"
