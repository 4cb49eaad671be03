"""Domain-specific exceptions"""


class LoanReviewError(Exception):
    """Base exception for the loan review core"""

    pass


class CorruptCollectionError(LoanReviewError):
    """A stored collection could not be parsed"""

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Collection '{collection}' is corrupt: {reason}")


class InvalidStatusTransitionError(LoanReviewError):
    """Status change requested on a loan that is already decided"""

    def __init__(self, loan_id: str, current: str, requested: str):
        self.loan_id = loan_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Loan {loan_id} is {current}; cannot change status to {requested}"
        )


class InvalidDecisionError(LoanReviewError):
    """A decision must resolve to approved or rejected"""

    pass


class LoanNotFoundError(LoanReviewError):
    """No loan with the given id exists in the collection"""

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} not found")
