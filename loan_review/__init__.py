"""
Loan Review Core

Loan application lifecycle tracking with automatic decisioning,
aggregate reporting, and a size-bounded audit trail.
"""

__version__ = "1.0.0"
