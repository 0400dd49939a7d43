"""
Test suite for branches, notes and notifications
"""

import pytest

from olms.storage import InMemoryStorage
from olms.audit import AuditTrail, AuditModule
from olms.branches import BranchManager, BranchStatus
from olms.notes import NoteManager
from olms.notifications import (
    NotificationManager, NotificationType, NotificationPriority,
    NotificationChannel, NotificationStatus
)
from olms.exceptions import ValidationError


class TestBranchManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.branches = BranchManager(self.storage, self.audit)

    def test_create_branch(self):
        branch = self.branches.create_branch("Pune Camp", phone="020-1234", user_id="admin")
        assert branch.status == BranchStatus.ACTIVE
        assert self.branches.get_branch(branch.id).phone == "020-1234"
        assert len(self.audit.entries_for_record(AuditModule.BRANCH, branch.id)) == 1

    def test_name_required(self):
        with pytest.raises(ValidationError, match="Branch name is required"):
            self.branches.create_branch("")

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            self.branches.create_branch("Pune Camp", status="OPEN")

    def test_default_branch_created_once(self):
        assert self.branches.ensure_default_branch().name == "Main Branch"
        assert self.branches.ensure_default_branch() is None

    def test_list_branches_with_counts(self):
        kothrud = self.branches.create_branch("Kothrud")
        self.branches.create_branch("Aundh")
        self.storage.save("customers", "c1", {'id': 'c1', 'branch_id': kothrud.id})
        self.storage.save("loans", "l1", {'id': 'l1', 'branch_id': kothrud.id})
        self.storage.save("loans", "l2", {'id': 'l2', 'branch_id': kothrud.id})

        branches = self.branches.list_branches()
        assert [b['name'] for b in branches] == ["Aundh", "Kothrud"]
        assert branches[0]['counts'] == {'users': 0, 'customers': 0, 'loans': 0}
        assert branches[1]['counts'] == {'users': 0, 'customers': 1, 'loans': 2}


class TestNoteManager:

    def setup_method(self):
        self.notes = NoteManager(InMemoryStorage())

    def test_add_and_filter(self):
        self.notes.add_note("Gold re-checked", loan_id="l1", user_id="u1")
        self.notes.add_note("Moved to Mumbai", customer_id="c1")

        loan_notes = self.notes.list_notes(loan_id="l1")
        assert [n.content for n in loan_notes] == ["Gold re-checked"]
        assert loan_notes[0].user_id == "u1"
        assert len(self.notes.list_notes()) == 2

    def test_content_required(self):
        with pytest.raises(ValidationError, match="Note content is required"):
            self.notes.add_note("", loan_id="l1")

    def test_limit(self):
        for i in range(5):
            self.notes.add_note(f"note {i}", customer_id="c1")
        assert len(self.notes.list_notes(customer_id="c1", limit=3)) == 3


class TestNotificationManager:

    def setup_method(self):
        self.notifications = NotificationManager(InMemoryStorage())

    def test_defaults(self):
        notification = self.notifications.create_notification("Rates updated", "New gold rate posted")
        assert notification.type == NotificationType.SYSTEM
        assert notification.priority == NotificationPriority.MEDIUM
        assert notification.channel == NotificationChannel.IN_APP
        assert notification.status == NotificationStatus.PENDING

    def test_explicit_values_and_filter(self):
        self.notifications.create_notification(
            "Loan overdue", "LN00000001 is 20 days overdue",
            type="OVERDUE", priority="HIGH", channel="SMS", loan_id="l1"
        )
        self.notifications.create_notification("Hello", "World")

        overdue = self.notifications.list_notifications(type="OVERDUE")
        assert len(overdue) == 1
        assert overdue[0].channel == NotificationChannel.SMS
        assert overdue[0].loan_id == "l1"
        assert len(self.notifications.list_notifications(status="PENDING")) == 2

    def test_validation(self):
        with pytest.raises(ValidationError):
            self.notifications.create_notification("", "message")
        with pytest.raises(ValidationError, match="Invalid notification channel"):
            self.notifications.create_notification("Title", "message", channel="PIGEON")
