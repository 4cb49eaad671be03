"""
Pydantic schemas for loan application input
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .loans import LoanApplication, create_loan


class CreateLoanRequest(BaseModel):
    """Loan application form input, validated in the order the form checks it"""
    model_config = ConfigDict(populate_by_name=True)
    
    applicant_name: str = Field("", alias="applicantName")
    amount: Optional[Decimal] = Field(None, description="Loan principal")
    term_months: Optional[int] = Field(None, alias="termMonths")
    interest_rate: Optional[Decimal] = Field(None, alias="interestRate", description="Fraction, 0.08 for 8%")
    
    @field_validator("applicant_name", mode="before")
    @classmethod
    def strip_name(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value
    
    @model_validator(mode="after")
    def check_form(self) -> "CreateLoanRequest":
        if not self.applicant_name:
            raise ValueError("Applicant name is required")
        if self.amount is None or self.amount <= 0:
            raise ValueError("Amount must be greater than 0")
        if self.term_months is None or self.term_months <= 0:
            raise ValueError("Term months must be greater than 0")
        if self.interest_rate is None or self.interest_rate < 0:
            raise ValueError("Interest rate is required and cannot be negative")
        return self
    
    def to_loan(self) -> LoanApplication:
        return create_loan(
            applicant_name=self.applicant_name,
            amount=self.amount,
            term_months=self.term_months,
            interest_rate=self.interest_rate
        )


def error_message(exc: ValidationError) -> str:
    """First validation failure as a user-facing message"""
    error = exc.errors()[0]
    cause = (error.get("ctx") or {}).get("error")
    if isinstance(cause, ValueError):
        return str(cause)
    return error["msg"]
