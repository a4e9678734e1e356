"""
Obligation Core - Source Package

Scheduling and amortization core for a personal-finance app: recurring
obligations, payment tracking, liability schedules and budget periods.

DESIGN PRINCIPLES:
1. Dates are derived, never stored as a cursor
2. At most one tracking artifact per cycle, however often dispatch runs
3. Derived aggregates are recomputed, never incremented
4. History is immutable - only pending rows are regenerated
5. Storage is an injected interface
"""

__version__ = "1.0.0"
__author__ = "Obligation Core Team"
