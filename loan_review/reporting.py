"""
Reporting Module

Point-in-time summary statistics over a loan collection. Summaries are
recomputed in full on every call and never cached.
"""

from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Union

from .loans import LoanApplication, LoanStatus


@dataclass(frozen=True)
class LoanSummary:
    """Aggregate counts and approved volume for a loan collection"""
    total: int
    pending: int
    approved: int
    rejected: int
    total_approved_amount: Decimal
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'pending': self.pending,
            'approved': self.approved,
            'rejected': self.rejected,
            'total_approved_amount': str(self.total_approved_amount)
        }
    
    def to_display(self) -> Dict[str, str]:
        """Labelled values as shown on the summary cards"""
        return {
            'Total Applications': str(self.total),
            'Pending': str(self.pending),
            'Approved': str(self.approved),
            'Rejected': str(self.rejected),
            'Total Approved': format_currency(self.total_approved_amount, decimals=0)
        }


def summarize_loans(loans: Iterable[LoanApplication]) -> LoanSummary:
    """
    Compute summary statistics for a loan collection
    
    Only approved loans contribute to total_approved_amount.
    """
    counts = {status: 0 for status in LoanStatus}
    approved_amount = Decimal('0')
    
    for loan in loans:
        counts[loan.status] += 1
        if loan.status == LoanStatus.APPROVED:
            approved_amount += loan.amount
    
    return LoanSummary(
        total=sum(counts.values()),
        pending=counts[LoanStatus.PENDING],
        approved=counts[LoanStatus.APPROVED],
        rejected=counts[LoanStatus.REJECTED],
        total_approved_amount=approved_amount
    )


def format_currency(amount: Union[Decimal, int, float, str], decimals: int = 2) -> str:
    """Format an amount as US dollars with thousands separators"""
    quantum = Decimal('1').scaleb(-decimals)
    value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP)
    sign = '-' if value < 0 else ''
    return f"{sign}${abs(value):,.{decimals}f}"


def format_percent(rate: Union[Decimal, int, float, str]) -> str:
    """Format a fractional rate as a percentage with one decimal place"""
    value = (Decimal(str(rate)) * 100).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
    return f"{value}%"
