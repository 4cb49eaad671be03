"""
Audit Trail Module

Append-only, size-bounded audit log of loan creation and status changes.
The stored collection is read and written only by AuditLog.append and the
emitters built on it; querying is done with pure functions over in-memory
lists.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
from enum import Enum
import json
import logging
import uuid

from .exceptions import CorruptCollectionError
from .loans import LoanStatus, parse_timestamp
from .storage import StorageInterface


logger = logging.getLogger(__name__)

# Retention cap for the stored audit log; fixed policy
MAX_AUDIT_ENTRIES = 1000

SORT_ORDERS = ('asc', 'desc')


class AuditAction(Enum):
    """Types of audited actions"""
    LOAN_CREATED = "loan_created"
    STATUS_CHANGED_MANUAL = "status_changed_manual"
    STATUS_CHANGED_AUTO = "status_changed_auto"


class DecisionMethod(Enum):
    """How a status change was decided"""
    MANUAL = "manual"
    AUTO = "auto"
    NOT_APPLICABLE = "n/a"   # Creation events only


@dataclass(frozen=True)
class AuditLogEntry:
    """
    Immutable record of a loan event

    applicant_name is a snapshot taken when the event happened, and
    loan_id is not checked against the loan collection.
    """
    id: str
    timestamp: datetime
    action: AuditAction
    loan_id: str
    applicant_name: str
    decision_method: DecisionMethod
    description: str
    previous_status: Optional[LoanStatus] = None
    new_status: Optional[LoanStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage, omitting absent statuses"""
        result = {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'action': self.action.value,
            'loanId': self.loan_id,
            'applicantName': self.applicant_name,
            'decisionMethod': self.decision_method.value,
            'description': self.description
        }
        if self.previous_status is not None:
            result['previousStatus'] = self.previous_status.value
        if self.new_status is not None:
            result['newStatus'] = self.new_status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditLogEntry':
        """Create AuditLogEntry from stored dictionary"""
        previous_status = data.get('previousStatus')
        new_status = data.get('newStatus')
        return cls(
            id=data['id'],
            timestamp=parse_timestamp(data['timestamp']),
            action=AuditAction(data['action']),
            loan_id=data['loanId'],
            applicant_name=data['applicantName'],
            decision_method=DecisionMethod(data['decisionMethod']),
            description=data['description'],
            previous_status=LoanStatus(previous_status) if previous_status else None,
            new_status=LoanStatus(new_status) if new_status else None
        )


def create_entry(
    action: Union[AuditAction, str],
    loan_id: str,
    applicant_name: str,
    decision_method: Union[DecisionMethod, str],
    description: str,
    previous_status: Optional[Union[LoanStatus, str]] = None,
    new_status: Optional[Union[LoanStatus, str]] = None,
    timestamp: Optional[datetime] = None
) -> AuditLogEntry:
    """
    Build a new audit entry

    Args:
        action: Audited action
        loan_id: Loan the entry concerns
        applicant_name: Applicant name at the time of the event
        decision_method: manual, auto, or n/a for creation
        description: Human-readable summary, stored verbatim
        previous_status: Status before a change
        new_status: Status after a change
        timestamp: Event time, defaults to now (UTC)

    Returns:
        New AuditLogEntry with a fresh id

    Raises:
        ValueError: statuses or decision method inconsistent with the action
    """
    action = AuditAction(action)
    decision_method = DecisionMethod(decision_method)

    if (previous_status is None) != (new_status is None):
        raise ValueError("previous_status and new_status must be supplied together")

    if action == AuditAction.LOAN_CREATED:
        if previous_status is not None:
            raise ValueError("Creation events do not carry statuses")
        if decision_method != DecisionMethod.NOT_APPLICABLE:
            raise ValueError("Creation events use decision method n/a")
    else:
        if previous_status is None:
            raise ValueError(f"{action.value} requires previous_status and new_status")
        if decision_method == DecisionMethod.NOT_APPLICABLE:
            raise ValueError(f"{action.value} requires a manual or auto decision method")

    return AuditLogEntry(
        id=str(uuid.uuid4()),
        timestamp=parse_timestamp(timestamp) if timestamp else datetime.now(timezone.utc),
        action=action,
        loan_id=loan_id,
        applicant_name=applicant_name,
        decision_method=decision_method,
        description=description,
        previous_status=LoanStatus(previous_status) if previous_status is not None else None,
        new_status=LoanStatus(new_status) if new_status is not None else None
    )


def filter_logs(
    logs: List[AuditLogEntry],
    action: Optional[Union[AuditAction, str]] = None,
    loan_id: Optional[str] = None,
    applicant_name: Optional[str] = None
) -> List[AuditLogEntry]:
    """
    Keep entries matching every supplied criterion

    Criteria left empty impose no constraint; with none supplied the input
    list itself is returned.
    """
    if not (action or loan_id or applicant_name):
        return logs

    if action:
        action = AuditAction(action)

    results = []
    for entry in logs:
        if action and entry.action != action:
            continue
        if loan_id and entry.loan_id != loan_id:
            continue
        if applicant_name and entry.applicant_name != applicant_name:
            continue
        results.append(entry)
    return results


def _searchable_fields(entry: AuditLogEntry) -> List[str]:
    fields = [
        entry.applicant_name,
        entry.action.value,
        entry.loan_id,
        entry.description
    ]
    if entry.previous_status is not None:
        fields.append(entry.previous_status.value)
    if entry.new_status is not None:
        fields.append(entry.new_status.value)
    return fields


def search_logs(logs: List[AuditLogEntry], term: Optional[str]) -> List[AuditLogEntry]:
    """
    Case-insensitive substring search across entry fields

    An entry matches when any of applicant name, action, loan id,
    description or the statuses contains the term. A blank term returns the
    input list itself.
    """
    if not term or not term.strip():
        return logs

    needle = term.strip().lower()
    return [
        entry for entry in logs
        if any(needle in value.lower() for value in _searchable_fields(entry))
    ]


def sort_logs(logs: List[AuditLogEntry], order: str = 'desc') -> List[AuditLogEntry]:
    """
    Return a new list ordered by timestamp

    Entries with equal timestamps are ordered by position, a later entry
    counting as the newer one. The input list is left untouched.

    Args:
        logs: Entries to sort
        order: 'desc' (newest first) or 'asc'
    """
    if order not in SORT_ORDERS:
        raise ValueError(f"order must be one of {SORT_ORDERS}, got {order!r}")

    indexed = sorted(
        enumerate(logs),
        key=lambda pair: (pair[1].timestamp, pair[0]),
        reverse=(order == 'desc')
    )
    return [entry for _, entry in indexed]


def prune_logs(logs: List[AuditLogEntry], max_entries: int) -> List[AuditLogEntry]:
    """
    Keep only the max_entries most recent entries

    At or under the limit the input list itself is returned. Otherwise the
    result is the newest max_entries entries, newest first; the rest are
    discarded for good.
    """
    if max_entries < 0:
        raise ValueError("max_entries cannot be negative")
    if len(logs) <= max_entries:
        return logs
    return sort_logs(logs, 'desc')[:max_entries]


def logs_to_json(logs: List[AuditLogEntry]) -> str:
    """Serialize an audit collection"""
    return json.dumps([entry.to_dict() for entry in logs])


def logs_from_json(payload: str) -> List[AuditLogEntry]:
    """Deserialize an audit collection"""
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError("audit collection must be a JSON array")
    return [AuditLogEntry.from_dict(item) for item in data]


class AuditLog:
    """
    Persisted, retention-bounded audit log

    The storage backend is injected; each append is a single
    read-modify-write over the whole collection with no cross-process
    locking.
    """

    def __init__(
        self,
        storage: StorageInterface,
        collection: str = "audit_logs",
        max_entries: int = MAX_AUDIT_ENTRIES,
        clock: Optional[Callable[[], datetime]] = None,
        on_recover: Optional[Callable[[CorruptCollectionError], None]] = None
    ):
        self.storage = storage
        self.collection = collection
        if max_entries < 0:
            raise ValueError("max_entries cannot be negative")
        self.max_entries = max_entries
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._on_recover = on_recover
        self.last_recovery: Optional[CorruptCollectionError] = None

    def get_logs(self) -> List[AuditLogEntry]:
        """
        Load the stored audit log

        Missing data yields an empty list. Malformed data also yields an
        empty list; the failure is logged, kept in last_recovery and passed
        to the on_recover callback.
        """
        self.last_recovery = None
        payload = self.storage.read(self.collection)
        if not payload:
            return []

        try:
            return logs_from_json(payload)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            error = CorruptCollectionError(self.collection, str(e))
            logger.warning(f"Audit log '{self.collection}' is unreadable, treating it as empty: {e}")
            self.last_recovery = error
            if self._on_recover:
                self._on_recover(error)
            return []

    def save_logs(self, logs: List[AuditLogEntry]) -> None:
        """Replace the stored audit log"""
        self.storage.write(self.collection, logs_to_json(logs))

    def append(self, entry: AuditLogEntry) -> List[AuditLogEntry]:
        """
        Add an entry and apply retention

        The stored collection stays in append order, so position keeps
        breaking timestamp ties towards the most recently appended entry.

        Returns:
            The collection as stored after pruning
        """
        logs = self.get_logs()
        logs.append(entry)

        pruned = prune_logs(logs, self.max_entries)
        if len(pruned) < len(logs):
            logger.info(f"Pruned {len(logs) - len(pruned)} audit entries beyond the {self.max_entries} entry limit")
            kept = {e.id for e in pruned}
            logs = [e for e in logs if e.id in kept]

        self.save_logs(logs)
        logger.debug(f"Audit entry {entry.id} recorded: {entry.action.value} for loan {entry.loan_id}")
        return logs

    def clear(self) -> bool:
        """Delete the whole stored audit log"""
        return self.storage.remove(self.collection)

    def _record(self, action: AuditAction, loan_id: str, applicant_name: str,
                decision_method: DecisionMethod, description: str,
                previous_status: Optional[LoanStatus] = None,
                new_status: Optional[LoanStatus] = None) -> AuditLogEntry:
        entry = create_entry(
            action, loan_id, applicant_name, decision_method, description,
            previous_status=previous_status, new_status=new_status,
            timestamp=self._clock()
        )
        self.append(entry)
        return entry

    def audit_loan_created(self, loan_id: str, applicant_name: str) -> AuditLogEntry:
        """Record a loan creation"""
        return self._record(
            AuditAction.LOAN_CREATED, loan_id, applicant_name,
            DecisionMethod.NOT_APPLICABLE,
            f"Loan application created for {applicant_name}"
        )

    def audit_status_changed_manual(
        self,
        loan_id: str,
        applicant_name: str,
        previous_status: Union[LoanStatus, str],
        new_status: Union[LoanStatus, str]
    ) -> AuditLogEntry:
        """Record a manual status change"""
        previous_status = LoanStatus(previous_status)
        new_status = LoanStatus(new_status)
        return self._record(
            AuditAction.STATUS_CHANGED_MANUAL, loan_id, applicant_name,
            DecisionMethod.MANUAL,
            f"Status manually changed from {previous_status.value} to {new_status.value}",
            previous_status, new_status
        )

    def audit_status_changed_auto(
        self,
        loan_id: str,
        applicant_name: str,
        previous_status: Union[LoanStatus, str],
        new_status: Union[LoanStatus, str]
    ) -> AuditLogEntry:
        """Record an automatic status change"""
        previous_status = LoanStatus(previous_status)
        new_status = LoanStatus(new_status)
        return self._record(
            AuditAction.STATUS_CHANGED_AUTO, loan_id, applicant_name,
            DecisionMethod.AUTO,
            f"Status automatically changed from {previous_status.value} to {new_status.value}",
            previous_status, new_status
        )
