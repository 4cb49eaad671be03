"""
Decision Engine Module

Business rules for manual and automatic loan decisions.
"""

from decimal import Decimal
from typing import Union

from .exceptions import InvalidDecisionError
from .loans import LoanApplication, LoanStatus


# Auto-approval limits (inclusive)
AUTO_APPROVAL_MAX_AMOUNT = Decimal('100000')
AUTO_APPROVAL_MAX_TERM_MONTHS = 60

MANUAL_DECISIONS = frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED})


def decide_automatically(loan: LoanApplication) -> LoanStatus:
    """
    Automatic decision for a loan application
    
    Approves when the amount is at most 100,000 and the term is at most 60
    months; exceeding either limit rejects.
    """
    if loan.amount <= AUTO_APPROVAL_MAX_AMOUNT and loan.term_months <= AUTO_APPROVAL_MAX_TERM_MONTHS:
        return LoanStatus.APPROVED
    return LoanStatus.REJECTED


def validate_manual_decision(decision: Union[LoanStatus, str]) -> LoanStatus:
    """Coerce a manual decision, which must be approved or rejected"""
    try:
        status = LoanStatus(decision)
    except ValueError:
        raise InvalidDecisionError(f"Unknown decision: {decision!r}")
    if status not in MANUAL_DECISIONS:
        raise InvalidDecisionError(f"A decision must be approved or rejected, got {status.value}")
    return status
