"""
Test suite for audit module

Tests entry construction, filtering, search, ordering, retention pruning,
and the persisted append path including recovery from corrupt storage.
"""

import dataclasses
import pytest
import json
from datetime import datetime, timezone, timedelta

from loan_review.storage import InMemoryStorage
from loan_review.loans import LoanStatus
from loan_review.exceptions import CorruptCollectionError
from loan_review.audit import (
    AuditLog, AuditLogEntry, AuditAction, DecisionMethod, MAX_AUDIT_ENTRIES,
    create_entry, filter_logs, search_logs, sort_logs, prune_logs,
    logs_to_json, logs_from_json
)


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class SteppingClock:
    """Clock advancing one second per call"""
    
    def __init__(self, start=BASE_TIME):
        self.current = start
    
    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


def _entry(minutes, action=AuditAction.LOAN_CREATED, loan_id="loan1",
           applicant_name="John Doe", description="Loan application created"):
    if action == AuditAction.LOAN_CREATED:
        return create_entry(action, loan_id, applicant_name, DecisionMethod.NOT_APPLICABLE,
                            description, timestamp=BASE_TIME + timedelta(minutes=minutes))
    method = DecisionMethod.MANUAL if action == AuditAction.STATUS_CHANGED_MANUAL else DecisionMethod.AUTO
    return create_entry(action, loan_id, applicant_name, method, description,
                        LoanStatus.PENDING, LoanStatus.APPROVED,
                        timestamp=BASE_TIME + timedelta(minutes=minutes))


class TestCreateEntry:
    """Test audit entry construction"""
    
    def test_status_change_entry(self):
        entry = create_entry(
            AuditAction.STATUS_CHANGED_MANUAL, "loan123", "Alice Smith",
            DecisionMethod.MANUAL, "Status changed",
            LoanStatus.PENDING, LoanStatus.APPROVED
        )
        
        assert entry.action == AuditAction.STATUS_CHANGED_MANUAL
        assert entry.loan_id == "loan123"
        assert entry.applicant_name == "Alice Smith"
        assert entry.decision_method == DecisionMethod.MANUAL
        assert entry.description == "Status changed"
        assert entry.previous_status == LoanStatus.PENDING
        assert entry.new_status == LoanStatus.APPROVED
        assert entry.id
        assert entry.timestamp.tzinfo is not None
    
    def test_creation_entry_has_no_statuses(self):
        entry = create_entry("loan_created", "loan456", "Bob Jones", "n/a", "Loan created")
        
        assert entry.action == AuditAction.LOAN_CREATED
        assert entry.decision_method == DecisionMethod.NOT_APPLICABLE
        assert entry.previous_status is None
        assert entry.new_status is None
    
    def test_ids_are_unique(self):
        ids = {_entry(0).id for _ in range(100)}
        assert len(ids) == 100
    
    def test_entries_are_immutable(self):
        entry = _entry(0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.description = "rewritten"
    
    def test_statuses_must_be_paired(self):
        with pytest.raises(ValueError):
            create_entry(AuditAction.STATUS_CHANGED_AUTO, "loan1", "John", DecisionMethod.AUTO,
                         "Status changed", previous_status=LoanStatus.PENDING)
    
    def test_creation_rejects_statuses(self):
        with pytest.raises(ValueError):
            create_entry(AuditAction.LOAN_CREATED, "loan1", "John", DecisionMethod.NOT_APPLICABLE,
                         "Created", LoanStatus.PENDING, LoanStatus.APPROVED)
    
    def test_creation_requires_not_applicable_method(self):
        with pytest.raises(ValueError):
            create_entry(AuditAction.LOAN_CREATED, "loan1", "John", DecisionMethod.MANUAL, "Created")
    
    def test_status_change_requires_statuses(self):
        with pytest.raises(ValueError):
            create_entry(AuditAction.STATUS_CHANGED_MANUAL, "loan1", "John", DecisionMethod.MANUAL, "Changed")
    
    def test_status_change_requires_decision_method(self):
        with pytest.raises(ValueError):
            create_entry(AuditAction.STATUS_CHANGED_AUTO, "loan1", "John", DecisionMethod.NOT_APPLICABLE,
                         "Changed", LoanStatus.PENDING, LoanStatus.REJECTED)


class TestFilterLogs:
    """Test filtering by action, loan and applicant"""
    
    def setup_method(self):
        self.logs = [
            _entry(0, AuditAction.LOAN_CREATED, "loan1", "John Doe"),
            _entry(1, AuditAction.STATUS_CHANGED_MANUAL, "loan1", "John Doe"),
            _entry(2, AuditAction.LOAN_CREATED, "loan2", "Jane Smith"),
            _entry(3, AuditAction.STATUS_CHANGED_AUTO, "loan2", "Jane Smith"),
        ]
    
    def test_no_criteria_returns_input(self):
        assert filter_logs(self.logs) is self.logs
    
    def test_empty_criteria_impose_nothing(self):
        assert filter_logs(self.logs, action=None, loan_id="", applicant_name="") is self.logs
    
    def test_by_action(self):
        result = filter_logs(self.logs, action=AuditAction.LOAN_CREATED)
        assert [e.loan_id for e in result] == ["loan1", "loan2"]
    
    def test_by_action_value(self):
        result = filter_logs(self.logs, action="status_changed_auto")
        assert result == [self.logs[3]]
    
    def test_by_loan_id(self):
        assert filter_logs(self.logs, loan_id="loan1") == self.logs[:2]
    
    def test_by_applicant_name(self):
        assert filter_logs(self.logs, applicant_name="Jane Smith") == self.logs[2:]
    
    def test_applicant_name_is_exact(self):
        assert filter_logs(self.logs, applicant_name="jane") == []
    
    def test_combined_criteria_are_subsets(self):
        by_action = filter_logs(self.logs, action=AuditAction.LOAN_CREATED)
        by_loan = filter_logs(self.logs, loan_id="loan2")
        combined = filter_logs(self.logs, action=AuditAction.LOAN_CREATED, loan_id="loan2")
        
        assert combined == [self.logs[2]]
        assert all(e in by_action for e in combined)
        assert all(e in by_loan for e in combined)
    
    def test_does_not_mutate_input(self):
        snapshot = list(self.logs)
        filter_logs(self.logs, loan_id="loan1")
        assert self.logs == snapshot


class TestSearchLogs:
    """Test case-insensitive multi-field search"""
    
    def setup_method(self):
        self.created = _entry(0, AuditAction.LOAN_CREATED, "loan-abc", "John Doe",
                              "Loan application created for John Doe")
        self.changed = _entry(1, AuditAction.STATUS_CHANGED_MANUAL, "loan-xyz", "Jane Smith",
                              "Status manually changed from pending to approved")
        self.logs = [self.created, self.changed]
    
    def test_blank_term_returns_input(self):
        assert search_logs(self.logs, "") is self.logs
        assert search_logs(self.logs, "   ") is self.logs
        assert search_logs(self.logs, None) is self.logs
    
    def test_by_applicant_name_case_insensitive(self):
        assert search_logs(self.logs, "JOHN") == [self.created]
    
    def test_by_action(self):
        assert search_logs(self.logs, "changed_manual") == [self.changed]
    
    def test_by_loan_id(self):
        assert search_logs(self.logs, "XYZ") == [self.changed]
    
    def test_by_description(self):
        assert search_logs(self.logs, "application created") == [self.created]
    
    def test_by_status(self):
        entry = create_entry(AuditAction.STATUS_CHANGED_AUTO, "loan-1", "Bob", DecisionMethod.AUTO,
                             "Decided", LoanStatus.PENDING, LoanStatus.REJECTED)
        assert search_logs([entry, self.created], "rejected") == [entry]
    
    def test_term_is_trimmed(self):
        assert search_logs(self.logs, "  jane  ") == [self.changed]
    
    def test_any_field_matches(self):
        assert search_logs(self.logs, "loan") == self.logs
    
    def test_no_match(self):
        assert search_logs(self.logs, "nonexistent") == []


class TestSortLogs:
    """Test timestamp ordering"""
    
    def setup_method(self):
        self.logs = [_entry(5), _entry(1), _entry(9), _entry(3)]
    
    def test_desc_is_default(self):
        result = sort_logs(self.logs)
        assert [e.timestamp for e in result] == sorted((e.timestamp for e in self.logs), reverse=True)
    
    def test_asc(self):
        result = sort_logs(self.logs, 'asc')
        assert [e.timestamp for e in result] == sorted(e.timestamp for e in self.logs)
    
    def test_input_not_mutated(self):
        snapshot = list(self.logs)
        result = sort_logs(self.logs)
        
        assert self.logs == snapshot
        assert result is not self.logs
    
    def test_ties_ordered_by_position(self):
        first = _entry(0, loan_id="first")
        second = _entry(0, loan_id="second")
        
        assert [e.loan_id for e in sort_logs([first, second], 'desc')] == ["second", "first"]
        assert [e.loan_id for e in sort_logs([first, second], 'asc')] == ["first", "second"]
    
    def test_unknown_order(self):
        with pytest.raises(ValueError):
            sort_logs(self.logs, 'newest')


class TestPruneLogs:
    """Test retention pruning"""
    
    def setup_method(self):
        self.logs = [_entry(minutes) for minutes in (4, 0, 8, 2, 6)]
    
    def test_under_limit_is_identity(self):
        assert prune_logs(self.logs, 5) is self.logs
        assert prune_logs(self.logs, 10) is self.logs
    
    def test_keeps_most_recent(self):
        result = prune_logs(self.logs, 3)
        
        assert len(result) == 3
        assert [e.timestamp for e in result] == [
            BASE_TIME + timedelta(minutes=m) for m in (8, 6, 4)
        ]
    
    def test_idempotent(self):
        once = prune_logs(self.logs, 2)
        assert prune_logs(once, 2) == once
    
    def test_size_is_min_of_length_and_limit(self):
        for limit in range(0, 8):
            assert len(prune_logs(self.logs, limit)) == min(len(self.logs), limit)
    
    def test_negative_limit(self):
        with pytest.raises(ValueError):
            prune_logs(self.logs, -1)


class TestAuditSerialization:
    
    def test_round_trip(self):
        logs = [_entry(0), _entry(1, AuditAction.STATUS_CHANGED_AUTO)]
        assert logs_from_json(logs_to_json(logs)) == logs
    
    def test_creation_omits_statuses(self):
        data = _entry(0).to_dict()
        
        assert 'previousStatus' not in data
        assert 'newStatus' not in data
        assert data['decisionMethod'] == "n/a"
        assert data['action'] == "loan_created"
    
    def test_reads_stored_format(self):
        stored = [{
            'id': '1',
            'timestamp': '2024-01-01T00:00:00.000Z',
            'action': 'status_changed_manual',
            'loanId': 'loan1',
            'applicantName': 'John Doe',
            'previousStatus': 'pending',
            'newStatus': 'approved',
            'decisionMethod': 'manual',
            'description': 'Status manually changed from pending to approved'
        }]
        
        entry = logs_from_json(json.dumps(stored))[0]
        
        assert entry.timestamp == BASE_TIME
        assert entry.previous_status == LoanStatus.PENDING
        assert entry.new_status == LoanStatus.APPROVED
        assert entry.decision_method == DecisionMethod.MANUAL


class TestAuditLog:
    """Test persisted audit log"""
    
    def setup_method(self):
        self.storage = InMemoryStorage()
        self.clock = SteppingClock()
        self.audit_log = AuditLog(self.storage, clock=self.clock)
    
    def test_empty_store(self):
        assert self.audit_log.get_logs() == []
        assert self.audit_log.last_recovery is None
    
    def test_append_persists(self):
        entry = _entry(0)
        self.audit_log.append(entry)
        
        assert self.audit_log.get_logs() == [entry]
        assert json.loads(self.storage.read("audit_logs"))[0]['id'] == entry.id
    
    def test_append_keeps_existing_entries(self):
        first, second = _entry(0), _entry(1)
        self.audit_log.append(first)
        self.audit_log.append(second)
        
        assert self.audit_log.get_logs() == [first, second]
    
    def test_corrupt_store_reads_as_empty(self):
        self.storage.write("audit_logs", "invalid json")
        
        assert self.audit_log.get_logs() == []
        assert isinstance(self.audit_log.last_recovery, CorruptCollectionError)
        assert self.audit_log.last_recovery.collection == "audit_logs"
    
    def test_corrupt_store_signals_callback(self):
        recovered = []
        audit_log = AuditLog(self.storage, on_recover=recovered.append)
        self.storage.write("audit_logs", '{"not": "a list"}')
        
        assert audit_log.get_logs() == []
        assert len(recovered) == 1
        assert isinstance(recovered[0], CorruptCollectionError)
    
    def test_corrupt_records_read_as_empty(self):
        self.storage.write("audit_logs", '[1, 2, 3]')
        assert self.audit_log.get_logs() == []
        
        self.storage.write("audit_logs", '[{"id": "1", "action": "loan_deleted"}]')
        assert self.audit_log.get_logs() == []
    
    def test_corrupt_store_logs_warning(self, caplog):
        self.storage.write("audit_logs", "invalid json")
        
        with caplog.at_level("WARNING", logger="loan_review.audit"):
            self.audit_log.get_logs()
        
        assert "unreadable" in caplog.text
    
    def test_append_after_corruption_starts_fresh(self):
        self.storage.write("audit_logs", "invalid json")
        entry = _entry(0)
        self.audit_log.append(entry)
        
        assert self.audit_log.get_logs() == [entry]
        assert self.audit_log.last_recovery is None
    
    def test_clear(self):
        self.audit_log.append(_entry(0))
        
        assert self.audit_log.clear()
        assert self.audit_log.get_logs() == []
        assert not self.audit_log.clear()
    
    def test_default_retention_limit(self):
        assert MAX_AUDIT_ENTRIES == 1000
        assert self.audit_log.max_entries == MAX_AUDIT_ENTRIES

    def test_custom_retention_limit(self):
        audit_log = AuditLog(InMemoryStorage(), max_entries=5, clock=SteppingClock())
        created = [audit_log.audit_loan_created(f"loan{i}", "John Doe") for i in range(8)]

        assert audit_log.max_entries == 5
        assert [e.id for e in audit_log.get_logs()] == [e.id for e in created[3:]]

    def test_negative_retention_limit(self):
        with pytest.raises(ValueError):
            AuditLog(InMemoryStorage(), max_entries=-1)

    def test_stored_log_keeps_append_order(self):
        audit_log = AuditLog(self.storage, max_entries=3, clock=SteppingClock())
        created = [audit_log.audit_loan_created(f"loan{i}", "John Doe") for i in range(5)]

        stored = [item['id'] for item in json.loads(self.storage.read("audit_logs"))]
        assert stored == [e.id for e in created[2:]]

    def test_retention_with_equal_timestamps(self):
        """Test that a coarse clock still evicts the earliest appended entries"""
        audit_log = AuditLog(self.storage, clock=lambda: BASE_TIME)
        created = [
            audit_log.audit_loan_created(f"loan{i}", f"Applicant {i}")
            for i in range(MAX_AUDIT_ENTRIES + 2)
        ]

        ids = {e.id for e in audit_log.get_logs()}

        assert len(ids) == MAX_AUDIT_ENTRIES
        assert ids == {e.id for e in created[2:]}
        assert created[-2].id in ids

    def test_retention_evicts_oldest(self):
        """Test that 1001 creations leave the 1000 most recent entries"""
        created = [
            self.audit_log.audit_loan_created(f"loan{i}", f"Applicant {i}")
            for i in range(MAX_AUDIT_ENTRIES + 1)
        ]
        
        logs = self.audit_log.get_logs()
        
        assert len(logs) == MAX_AUDIT_ENTRIES
        assert {e.id for e in logs} == {e.id for e in created[1:]}
        assert created[0].id not in {e.id for e in logs}


class TestAuditEmitters:
    """Test canned audit emitters"""
    
    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_log = AuditLog(self.storage, clock=SteppingClock())
    
    def test_loan_created(self):
        entry = self.audit_log.audit_loan_created("loan1", "John Doe")
        
        assert entry.action == AuditAction.LOAN_CREATED
        assert entry.decision_method == DecisionMethod.NOT_APPLICABLE
        assert entry.description == "Loan application created for John Doe"
        assert entry.previous_status is None
        assert self.audit_log.get_logs() == [entry]
    
    def test_status_changed_manual(self):
        entry = self.audit_log.audit_status_changed_manual(
            "loan1", "John Doe", LoanStatus.PENDING, LoanStatus.APPROVED
        )
        
        assert entry.action == AuditAction.STATUS_CHANGED_MANUAL
        assert entry.decision_method == DecisionMethod.MANUAL
        assert entry.description == "Status manually changed from pending to approved"
        assert entry.previous_status == LoanStatus.PENDING
        assert entry.new_status == LoanStatus.APPROVED
    
    def test_status_changed_auto(self):
        entry = self.audit_log.audit_status_changed_auto("loan1", "Jane Doe", "pending", "rejected")
        
        assert entry.action == AuditAction.STATUS_CHANGED_AUTO
        assert entry.decision_method == DecisionMethod.AUTO
        assert entry.description == "Status automatically changed from pending to rejected"
        assert entry.new_status == LoanStatus.REJECTED
    
    def test_emitters_use_clock(self):
        first = self.audit_log.audit_loan_created("loan1", "John Doe")
        second = self.audit_log.audit_status_changed_auto("loan1", "John Doe", "pending", "approved")
        
        assert second.timestamp - first.timestamp == timedelta(seconds=1)
    
    def test_description_is_stored_verbatim(self):
        self.audit_log.audit_loan_created("loan1", "John Doe")
        stored = json.loads(self.storage.read("audit_logs"))
        
        assert stored[0]['description'] == "Loan application created for John Doe"
