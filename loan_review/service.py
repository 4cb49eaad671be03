"""
Loan Review Service Module

Review workflow used by the calling layer: every loan mutation is persisted
through the repository and immediately paired with its audit entry.
"""

from typing import Dict, List, Optional, Union

from .audit import AuditLog
from .config import get_config
from .decisions import decide_automatically, validate_manual_decision
from .exceptions import LoanNotFoundError
from .loans import LoanApplication, LoanRepository, LoanStatus, set_status
from .logging_config import get_logger, log_action
from .reporting import LoanSummary, summarize_loans
from .schemas import CreateLoanRequest


class LoanReviewService:
    """
    Manages loan applications from submission through decision
    """
    
    def __init__(
        self,
        repository: LoanRepository,
        audit_log: AuditLog,
        strict_transitions: Optional[bool] = None
    ):
        self.repository = repository
        self.audit_log = audit_log
        if strict_transitions is None:
            strict_transitions = get_config().strict_transitions
        self.strict_transitions = strict_transitions
        self.logger = get_logger("loan_review.service")
    
    def submit(self, request: Union[CreateLoanRequest, Dict]) -> LoanApplication:
        """
        Create a loan application from form input
        
        Args:
            request: Validated request, or raw form data to validate
            
        Returns:
            Created LoanApplication in PENDING status
            
        Raises:
            pydantic.ValidationError: form data is invalid
        """
        if not isinstance(request, CreateLoanRequest):
            request = CreateLoanRequest.model_validate(request)
        
        loan = request.to_loan()
        loans = self.repository.load()
        loans.append(loan)
        self.repository.save(loans)
        
        self.audit_log.audit_loan_created(loan.id, loan.applicant_name)
        
        log_action(
            self.logger, "info", f"Loan application created for {loan.applicant_name}",
            action="create_loan", loan_id=loan.id,
            details={"amount": str(loan.amount), "term_months": loan.term_months}
        )
        return loan
    
    def approve(self, loan_id: str) -> LoanApplication:
        """Manually approve a loan"""
        return self.decide(loan_id, LoanStatus.APPROVED)
    
    def reject(self, loan_id: str) -> LoanApplication:
        """Manually reject a loan"""
        return self.decide(loan_id, LoanStatus.REJECTED)
    
    def decide(self, loan_id: str, decision: Union[LoanStatus, str]) -> LoanApplication:
        """
        Apply a manual decision
        
        Raises:
            InvalidDecisionError: decision is not approved or rejected
            LoanNotFoundError: no such loan
            InvalidStatusTransitionError: loan already decided and strict transitions are on
        """
        status = validate_manual_decision(decision)
        previous, updated = self._change_status(loan_id, status)
        self.audit_log.audit_status_changed_manual(
            updated.id, updated.applicant_name, previous, updated.status
        )
        
        log_action(
            self.logger, "info", f"Loan {updated.id} manually {updated.status.value}",
            action="manual_decision", loan_id=updated.id,
            details={"previous_status": previous.value, "new_status": updated.status.value}
        )
        return updated
    
    def auto_decide(self, loan_id: str) -> LoanApplication:
        """Apply the automatic decision rule to a loan"""
        loan = self.get_loan(loan_id)
        outcome = decide_automatically(loan)
        previous, updated = self._change_status(loan_id, outcome)
        self.audit_log.audit_status_changed_auto(
            updated.id, updated.applicant_name, previous, updated.status
        )
        
        log_action(
            self.logger, "info", f"Loan {updated.id} automatically {updated.status.value}",
            action="auto_decision", loan_id=updated.id,
            details={"previous_status": previous.value, "new_status": updated.status.value}
        )
        return updated
    
    def delete(self, loan_id: str) -> bool:
        """
        Remove a loan from the collection
        
        Audit entries for the loan are kept.
        """
        loans = self.repository.load()
        remaining = [loan for loan in loans if loan.id != loan_id]
        if len(remaining) == len(loans):
            return False
        
        self.repository.save(remaining)
        log_action(
            self.logger, "info", f"Loan {loan_id} deleted",
            action="delete_loan", loan_id=loan_id
        )
        return True
    
    def get_loan(self, loan_id: str) -> LoanApplication:
        """Get a loan by id"""
        for loan in self.repository.load():
            if loan.id == loan_id:
                return loan
        raise LoanNotFoundError(loan_id)
    
    def list_loans(self) -> List[LoanApplication]:
        return self.repository.load()
    
    def summary(self) -> LoanSummary:
        return summarize_loans(self.repository.load())
    
    def _change_status(self, loan_id: str, status: LoanStatus):
        loans = self.repository.load()
        for index, loan in enumerate(loans):
            if loan.id == loan_id:
                updated = set_status(loan, status, enforce_terminal=self.strict_transitions)
                loans[index] = updated
                self.repository.save(loans)
                return loan.status, updated
        raise LoanNotFoundError(loan_id)
