#!/usr/bin/env python3
"""
Example: Reviewing loan applications with an audit trail

Submits a few applications, decides them manually and automatically, then
prints the portfolio summary and a searched view of the audit log.
"""

from loan_review.audit import AuditLog, filter_logs, search_logs, sort_logs, AuditAction
from loan_review.config import get_config
from loan_review.loans import LoanRepository
from loan_review.logging_config import setup_logging
from loan_review.reporting import format_currency
from loan_review.service import LoanReviewService
from loan_review.storage import create_storage


def main():
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)
    
    print("Loan Review - Walkthrough")
    print("=" * 60)
    
    storage = create_storage(config)
    audit_log = AuditLog(
        storage,
        collection=config.audit_collection,
        on_recover=lambda error: print(f"   Warning: {error}; starting a fresh audit log")
    )
    service = LoanReviewService(LoanRepository(storage, config.loans_collection), audit_log)
    
    print("\n1. Submitting applications")
    applications = [
        {"applicantName": "John Smith", "amount": "50000", "termMonths": 36, "interestRate": "0.08"},
        {"applicantName": "Jane Doe", "amount": "150000", "termMonths": 72, "interestRate": "0.10"},
        {"applicantName": "Alice Williams", "amount": "100000", "termMonths": 60, "interestRate": "0.07"},
    ]
    loans = [service.submit(data) for data in applications]
    for loan in loans:
        print(f"   {loan.applicant_name}: {format_currency(loan.amount)} over {loan.term_months} months, "
              f"{format_currency(loan.monthly_payment)}/month")
    
    print("\n2. Deciding")
    service.auto_decide(loans[0].id)
    service.auto_decide(loans[1].id)
    service.reject(loans[2].id)
    for loan in service.list_loans():
        print(f"   {loan.applicant_name}: {loan.status.value}")
    
    print("\n3. Summary")
    for label, value in service.summary().to_display().items():
        print(f"   {label}: {value}")
    
    print("\n4. Audit trail")
    logs = audit_log.get_logs()
    automatic = filter_logs(logs, action=AuditAction.STATUS_CHANGED_AUTO)
    print(f"   {len(logs)} entries, {len(automatic)} automatic decisions")
    for entry in sort_logs(search_logs(logs, "rejected")):
        print(f"   {entry.timestamp.isoformat()} {entry.applicant_name}: {entry.description}")
    
    storage.close()


if __name__ == "__main__":
    main()
