"""
Loan Module

Defines loan applications, their review lifecycle, and the serialized loan
collection owned by the calling layer.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Union
from enum import Enum
import json
import logging
import uuid

from .exceptions import CorruptCollectionError, InvalidStatusTransitionError
from .storage import StorageInterface


logger = logging.getLogger(__name__)


class LoanStatus(Enum):
    """Loan review states"""
    PENDING = "pending"      # Awaiting a decision
    APPROVED = "approved"    # Terminal
    REJECTED = "rejected"    # Terminal


TERMINAL_STATUSES = frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED})


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC"""
    if isinstance(value, str):
        # fromisoformat only accepts a trailing Z from Python 3.11 on
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class LoanApplication:
    """A request for financing under review"""
    id: str
    applicant_name: str
    amount: Decimal              # Principal
    term_months: int             # Repayment period
    interest_rate: Decimal       # e.g., 0.08 for 8%
    created_at: datetime
    status: LoanStatus = LoanStatus.PENDING
    
    @property
    def is_terminal(self) -> bool:
        """Check if the loan has already been decided"""
        return self.status in TERMINAL_STATUSES
    
    @property
    def monthly_payment(self) -> Decimal:
        """Flat-rate monthly payment: principal plus one period of interest, spread over the term"""
        total = self.amount * (Decimal('1') + self.interest_rate)
        return (total / Decimal(self.term_months)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            'id': self.id,
            'applicantName': self.applicant_name,
            'amount': str(self.amount),
            'termMonths': self.term_months,
            'interestRate': str(self.interest_rate),
            'status': self.status.value,
            'createdAt': self.created_at.isoformat()
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanApplication':
        """Create LoanApplication from stored dictionary"""
        return cls(
            id=data['id'],
            applicant_name=data['applicantName'],
            amount=Decimal(str(data['amount'])),
            term_months=int(data['termMonths']),
            interest_rate=Decimal(str(data['interestRate'])),
            status=LoanStatus(data['status']),
            created_at=parse_timestamp(data['createdAt'])
        )


def create_loan(
    applicant_name: str,
    amount: Union[Decimal, int, float, str],
    term_months: int,
    interest_rate: Union[Decimal, int, float, str]
) -> LoanApplication:
    """
    Create a new pending loan application
    
    Input is expected to be validated by the caller (see
    schemas.CreateLoanRequest): amount > 0, term > 0, rate >= 0 and a
    non-blank name.
    
    Args:
        applicant_name: Applicant name, trimmed on creation
        amount: Loan principal
        term_months: Repayment period in months
        interest_rate: Fractional interest rate
        
    Returns:
        New LoanApplication in PENDING status
    """
    return LoanApplication(
        id=str(uuid.uuid4()),
        applicant_name=applicant_name.strip(),
        amount=Decimal(str(amount)),
        term_months=int(term_months),
        interest_rate=Decimal(str(interest_rate)),
        status=LoanStatus.PENDING,
        created_at=datetime.now(timezone.utc)
    )


def set_status(
    loan: LoanApplication,
    new_status: Union[LoanStatus, str],
    enforce_terminal: bool = False
) -> LoanApplication:
    """
    Return a copy of the loan with a new status
    
    Audit entries are not emitted here; callers pair this with the matching
    AuditLog emitter.
    
    Args:
        loan: Loan to update
        new_status: Target status (enum member or its value)
        enforce_terminal: Refuse to move a loan out of approved/rejected
        
    Returns:
        Updated LoanApplication
        
    Raises:
        ValueError: new_status is not a LoanStatus value
        InvalidStatusTransitionError: loan is terminal and enforce_terminal is set
    """
    status = LoanStatus(new_status)
    if enforce_terminal and loan.is_terminal:
        raise InvalidStatusTransitionError(loan.id, loan.status.value, status.value)
    return replace(loan, status=status)


def loans_to_json(loans: List[LoanApplication]) -> str:
    """Serialize a loan collection"""
    return json.dumps([loan.to_dict() for loan in loans])


def loans_from_json(payload: str) -> List[LoanApplication]:
    """Deserialize a loan collection"""
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError("loan collection must be a JSON array")
    return [LoanApplication.from_dict(item) for item in data]


class LoanRepository:
    """
    Load/save pair for the persisted loan collection
    """
    
    def __init__(self, storage: StorageInterface, collection: str = "loans"):
        self.storage = storage
        self.collection = collection
    
    def load(self) -> List[LoanApplication]:
        """
        Load the loan collection
        
        Returns:
            Stored loans, or an empty list when nothing is stored
            
        Raises:
            CorruptCollectionError: stored payload cannot be parsed
        """
        payload = self.storage.read(self.collection)
        if not payload:
            return []
        try:
            return loans_from_json(payload)
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as e:
            logger.error(f"Failed to parse loan collection '{self.collection}': {e}")
            raise CorruptCollectionError(self.collection, str(e)) from e
    
    def save(self, loans: List[LoanApplication]) -> None:
        """Replace the stored loan collection"""
        self.storage.write(self.collection, loans_to_json(loans))
