"""
Tests for the book lifecycle state machine.

These tests cover:
1. Every transition and the status it leaves behind
2. Exact due dates on approval, direct issue and renewal
3. The transaction written by each event
4. Refused events leaving the book and the log untouched
5. Audit failures never undoing a committed transition
"""

import logging
from datetime import datetime, timedelta

import pytest

from conftest import ADMIN_ID, MEMBER_ID, make_book
from library_portal.database.repository import (
    NotFoundError,
    PermissionDeniedError,
    StoreUnavailableError,
    TransitionError,
)
from library_portal.database.schema import BookRecord
from library_portal.database.sql_repository import SqlLibraryRepository
from library_portal.lifecycle.machine import UNKNOWN_USER_NAME, Actor, BookLifecycle, resolve_actor
from library_portal.models.book import BookCreate, BookStatus, BookUpdate
from library_portal.models.transaction import TransactionType
from library_portal.models.user import UserRole


def _transactions(repository, event_type: TransactionType | None = None):
    entries = repository.list_recent_transactions(1000)
    if event_type is None:
        return entries
    return [entry for entry in entries if entry.type == event_type]


class TestResolveActor:
    def test_resolves_name_and_role(self, repository, admin_user):
        actor = resolve_actor(repository, ADMIN_ID)

        assert actor == Actor(id=ADMIN_ID, name="Library Admin", role=UserRole.ADMIN)
        assert actor.is_admin is True

    def test_falls_back_to_email_then_default(self, repository, other_member):
        assert resolve_actor(repository, other_member.id).name == "reader@library.test"

    def test_unknown_user(self, repository):
        with pytest.raises(NotFoundError):
            resolve_actor(repository, "ghost")


class TestRequestIssue:
    def test_available_book_becomes_requested(self, lifecycle, repository, member, available_book, clock):
        book = lifecycle.request_issue(member, available_book.id)

        assert book.status == BookStatus.ISSUE_REQUESTED
        assert book.issue_details.user_id == MEMBER_ID
        assert book.issue_details.user_name == "PES Student"
        assert book.issue_details.issue_date == clock.now
        assert book.issue_details.due_date is None
        assert repository.get_book(book.id) == book

        [entry] = _transactions(repository)
        assert entry.type == TransactionType.ISSUE_REQUEST
        assert entry.book_id == book.id
        assert entry.book_title == "The Great Gatsby"
        assert entry.user_id == MEMBER_ID
        assert entry.due_date is None

    def test_approved_donation_can_be_requested(self, lifecycle, repository, member):
        book = make_book(repository, "Donated Atlas")
        repository.update_book_status(book.id, BookStatus.DONATED_APPROVED, None)

        assert lifecycle.request_issue(member, book.id).status == BookStatus.ISSUE_REQUESTED

    def test_issued_book_cannot_be_requested(self, lifecycle, repository, other, issued_book):
        with pytest.raises(TransitionError, match="not available"):
            lifecycle.request_issue(other, issued_book.id)

        assert repository.get_book(issued_book.id) == issued_book
        assert _transactions(repository) == []

    def test_missing_book(self, lifecycle, member):
        with pytest.raises(NotFoundError):
            lifecycle.request_issue(member, "book_doesnotexist")


class TestApproveIssue:
    def test_due_date_is_exactly_loan_period_after_approval(
        self, lifecycle, repository, admin, member, available_book, clock
    ):
        lifecycle.request_issue(member, available_book.id)
        approval_time = clock.advance(days=2, hours=3)

        book = lifecycle.approve_issue(admin, available_book.id)

        assert book.status == BookStatus.ISSUED
        assert book.issue_details.issue_date == approval_time
        assert book.issue_details.due_date == approval_time + timedelta(days=14)
        assert book.issue_details.user_id == MEMBER_ID

        [entry] = _transactions(repository, TransactionType.ISSUE)
        assert entry.due_date == approval_time + timedelta(days=14)
        assert entry.user_id == MEMBER_ID
        assert entry.notes == "Request approved by Admin: Library Admin"

    def test_members_cannot_approve(self, lifecycle, repository, member, available_book):
        lifecycle.request_issue(member, available_book.id)

        with pytest.raises(PermissionDeniedError):
            lifecycle.approve_issue(member, available_book.id)

        assert repository.get_book(available_book.id).status == BookStatus.ISSUE_REQUESTED

    def test_only_requested_books_can_be_approved(self, lifecycle, admin, available_book):
        with pytest.raises(TransitionError):
            lifecycle.approve_issue(admin, available_book.id)

    def test_reject_returns_book_to_shelf(self, lifecycle, repository, admin, member, available_book):
        lifecycle.request_issue(member, available_book.id)

        book = lifecycle.reject_issue(admin, available_book.id)

        assert book.status == BookStatus.AVAILABLE
        assert book.issue_details is None
        [entry] = _transactions(repository, TransactionType.ISSUE_REJECT)
        assert entry.user_id == MEMBER_ID
        assert entry.notes == "Request rejected by Admin: Library Admin"


class TestEndToEnd:
    def test_request_then_approve(self, lifecycle, repository, admin, member, clock):
        b1 = make_book(repository, "B1")
        assert b1.status == BookStatus.AVAILABLE

        requested = lifecycle.request_issue(member, b1.id)
        assert requested.status == BookStatus.ISSUE_REQUESTED
        assert requested.issue_details.due_date is None

        approval_time = clock.advance(hours=5)
        issued = lifecycle.approve_issue(admin, b1.id)

        assert issued.status == BookStatus.ISSUED
        assert issued.issue_details.due_date == approval_time + timedelta(days=14)

        issue_entries = _transactions(repository, TransactionType.ISSUE)
        assert len(issue_entries) == 1
        assert issue_entries[0].due_date == issued.issue_details.due_date


class TestRenewal:
    def test_due_soon_book_is_renewed_by_seven_days(
        self, lifecycle, repository, member, issued_book, clock
    ):
        old_due = issued_book.issue_details.due_date
        clock.advance(days=12)

        book = lifecycle.request_renewal(member, issued_book.id)

        assert book.status == BookStatus.ISSUED
        assert book.issue_details.due_date == old_due + timedelta(days=7)
        [entry] = _transactions(repository, TransactionType.RENEWAL)
        assert entry.due_date == old_due + timedelta(days=7)
        assert entry.notes == "Renewed from 2024-03-15 to 2024-03-22"
        assert len(_transactions(repository)) == 1

    def test_issued_book_is_renewed(self, lifecycle, member, issued_book):
        old_due = issued_book.issue_details.due_date

        book = lifecycle.request_renewal(member, issued_book.id)

        assert book.issue_details.due_date == old_due + timedelta(days=7)

    def test_book_due_today_can_be_renewed(self, lifecycle, member, issued_book, clock):
        clock.advance(days=14, hours=13)

        book = lifecycle.request_renewal(member, issued_book.id)

        assert book.issue_details.due_date == datetime(2024, 3, 22, 10, 0)

    def test_overdue_book_cannot_be_renewed(self, lifecycle, repository, member, issued_book, clock):
        clock.advance(days=15)

        with pytest.raises(TransitionError, match="overdue"):
            lifecycle.request_renewal(member, issued_book.id)

        stored = repository.get_book(issued_book.id)
        assert stored.issue_details.due_date == issued_book.issue_details.due_date
        assert _transactions(repository) == []

    def test_only_the_holder_can_renew(self, lifecycle, other, issued_book):
        with pytest.raises(PermissionDeniedError):
            lifecycle.request_renewal(other, issued_book.id)

    def test_pending_return_blocks_renewal(self, lifecycle, member, issued_book):
        lifecycle.request_return(member, issued_book.id)

        with pytest.raises(TransitionError, match="return is already requested"):
            lifecycle.request_renewal(member, issued_book.id)

    def test_renewal_period_follows_configuration(
        self, repository, test_config, member, issued_book, clock
    ):
        config = test_config.model_copy(update={"renewal_period_days": 10})
        lifecycle = BookLifecycle(repository, config=config, clock=clock)

        book = lifecycle.request_renewal(member, issued_book.id)

        assert book.issue_details.due_date == issued_book.issue_details.due_date + timedelta(
            days=10
        )


class TestReturns:
    def test_request_return_keeps_loan(self, lifecycle, repository, member, issued_book):
        book = lifecycle.request_return(member, issued_book.id)

        assert book.status == BookStatus.RETURN_REQUESTED
        assert book.issue_details == issued_book.issue_details
        [entry] = _transactions(repository, TransactionType.RETURN_REQUEST)
        assert entry.notes == "User requested to return 'Dune'"

    def test_only_the_holder_can_request_return(self, lifecycle, other, issued_book):
        with pytest.raises(PermissionDeniedError):
            lifecycle.request_return(other, issued_book.id)

    def test_approve_return_clears_issue_details(
        self, lifecycle, repository, test_db_session, admin, member, issued_book
    ):
        lifecycle.request_return(member, issued_book.id)

        book = lifecycle.approve_return(admin, issued_book.id)

        assert book.status == BookStatus.AVAILABLE
        assert book.issue_details is None
        row = test_db_session.get(BookRecord, issued_book.id)
        assert row.issue_user_id is None
        assert row.issue_user_name is None
        assert row.issue_date is None
        assert row.due_date is None
        assert row.returned_date is None

        [entry] = _transactions(repository, TransactionType.RETURN)
        assert entry.user_id == MEMBER_ID
        assert entry.notes == "Return approved by Admin: Library Admin"

    def test_reject_return_restores_loan(self, lifecycle, repository, admin, member, issued_book):
        lifecycle.request_return(member, issued_book.id)

        book = lifecycle.reject_return(admin, issued_book.id)

        assert book.status == BookStatus.ISSUED
        assert book.issue_details.due_date == issued_book.issue_details.due_date
        assert len(_transactions(repository, TransactionType.RETURN_REJECT)) == 1

    def test_approve_return_requires_request(self, lifecycle, admin, issued_book):
        with pytest.raises(TransitionError):
            lifecycle.approve_return(admin, issued_book.id)

    def test_mark_returned(self, lifecycle, repository, admin, issued_book):
        book = lifecycle.mark_returned(admin, issued_book.id)

        assert book.status == BookStatus.AVAILABLE
        assert book.issue_details is None
        [entry] = _transactions(repository, TransactionType.RETURN)
        assert entry.user_id == MEMBER_ID
        assert entry.notes == "Returned to Admin: Library Admin"

    def test_mark_returned_only_from_issued(self, lifecycle, member, admin, issued_book):
        lifecycle.request_return(member, issued_book.id)

        with pytest.raises(TransitionError):
            lifecycle.mark_returned(admin, issued_book.id)


class TestIssueDirectly:
    def test_supplied_name_is_used(self, lifecycle, repository, admin, member_user, available_book, clock):
        book = lifecycle.issue_directly(admin, available_book.id, member_user.id, "Desk Name")

        assert book.status == BookStatus.ISSUED
        assert book.issue_details.user_name == "Desk Name"
        assert book.issue_details.due_date == clock.now + timedelta(days=14)
        [entry] = _transactions(repository, TransactionType.ISSUE)
        assert entry.notes == "Issued by Admin: Library Admin"
        assert entry.user_name == "Desk Name"

    def test_name_is_looked_up(self, lifecycle, admin, other_member, available_book):
        book = lifecycle.issue_directly(admin, available_book.id, other_member.id)

        assert book.issue_details.user_name == "reader@library.test"

    def test_unknown_user_is_still_issued(self, lifecycle, admin, available_book):
        book = lifecycle.issue_directly(admin, available_book.id, "walk_in_reader")

        assert book.status == BookStatus.ISSUED
        assert book.issue_details.user_id == "walk_in_reader"
        assert book.issue_details.user_name == UNKNOWN_USER_NAME

    def test_lookup_failure_is_still_issued(
        self, test_db_session, test_config, admin, available_book, clock
    ):
        class UserLookupDown(SqlLibraryRepository):
            def get_user(self, user_id):
                raise StoreUnavailableError("users unreachable")

        lifecycle = BookLifecycle(UserLookupDown(test_db_session, clock=clock), test_config, clock)

        book = lifecycle.issue_directly(admin, available_book.id, MEMBER_ID)

        assert book.issue_details.user_name == UNKNOWN_USER_NAME

    def test_requires_lendable_book(self, lifecycle, admin, issued_book):
        with pytest.raises(TransitionError):
            lifecycle.issue_directly(admin, issued_book.id, "user789")

    def test_requires_admin(self, lifecycle, member, available_book):
        with pytest.raises(PermissionDeniedError):
            lifecycle.issue_directly(member, available_book.id, MEMBER_ID)


class TestDonations:
    def _donate(self, lifecycle, actor):
        return lifecycle.donate(actor, BookCreate(title="Gifted Book", author="Kind Author"))

    def test_donation_waits_for_approval(self, lifecycle, repository, member, clock):
        book = self._donate(lifecycle, member)

        assert book.status == BookStatus.DONATED_PENDING_APPROVAL
        assert book.donated_by.user_id == MEMBER_ID
        assert book.donated_by.user_name == "PES Student"
        assert book.donated_by.date == clock.now
        assert book.issue_details is None
        [entry] = _transactions(repository, TransactionType.DONATE_REQUEST)
        assert entry.notes == "User submitted donation for 'Gifted Book'"

    def test_approval_keeps_donor(self, lifecycle, repository, admin, member):
        donated = self._donate(lifecycle, member)

        book = lifecycle.approve_donation(admin, donated.id)

        assert book.status == BookStatus.AVAILABLE
        assert book.donated_by == donated.donated_by
        [entry] = _transactions(repository, TransactionType.DONATE_APPROVE)
        assert entry.user_id == MEMBER_ID
        assert entry.notes == "Donation approved by Admin: Library Admin"

    def test_rejection_deletes_and_still_logs(self, lifecycle, repository, admin, member):
        donated = self._donate(lifecycle, member)

        snapshot = lifecycle.reject_donation(admin, donated.id)

        assert snapshot.id == donated.id
        assert repository.get_book(donated.id) is None
        [entry] = _transactions(repository, TransactionType.DONATE_REJECT)
        assert entry.book_id == donated.id
        assert entry.book_title == "Gifted Book"
        assert entry.user_id == MEMBER_ID
        assert entry.notes == "Donation rejected by Admin: Library Admin"

    def test_only_pending_donations_can_be_rejected(self, lifecycle, repository, admin, available_book):
        with pytest.raises(TransitionError):
            lifecycle.reject_donation(admin, available_book.id)

        assert repository.get_book(available_book.id) is not None

    def test_members_cannot_approve_donations(self, lifecycle, member):
        donated = self._donate(lifecycle, member)

        with pytest.raises(PermissionDeniedError):
            lifecycle.approve_donation(member, donated.id)


class TestCatalogueAdministration:
    def test_add_book_is_available_and_unlogged(self, lifecycle, repository, admin):
        book = lifecycle.add_book(admin, BookCreate(title="New Arrival", author="Someone"))

        assert book.status == BookStatus.AVAILABLE
        assert book.id.startswith("book_")
        assert _transactions(repository) == []

    def test_update_changes_metadata_only(self, lifecycle, admin, issued_book):
        book = lifecycle.update_book(admin, issued_book.id, BookUpdate(title="Dune (Deluxe)"))

        assert book.title == "Dune (Deluxe)"
        assert book.author == "Frank Herbert"
        assert book.status == BookStatus.ISSUED
        assert book.issue_details == issued_book.issue_details

    def test_delete_book(self, lifecycle, repository, admin, available_book):
        deleted = lifecycle.delete_book(admin, available_book.id)

        assert deleted.id == available_book.id
        assert repository.get_book(available_book.id) is None
        assert _transactions(repository) == []

    def test_members_cannot_edit_catalogue(self, lifecycle, member, available_book):
        with pytest.raises(PermissionDeniedError):
            lifecycle.delete_book(member, available_book.id)


class TestFailureHandling:
    def test_log_failure_keeps_transition(
        self, failing_log_lifecycle, repository, member, available_book, caplog
    ):
        with caplog.at_level(logging.WARNING, logger="library_portal.lifecycle.machine"):
            book = failing_log_lifecycle.request_issue(member, available_book.id)

        assert book.status == BookStatus.ISSUE_REQUESTED
        assert repository.get_book(available_book.id).status == BookStatus.ISSUE_REQUESTED
        assert _transactions(repository) == []
        assert any("Transaction log failed" in r.message for r in caplog.records)

    def test_unloggable_entry_keeps_transition(
        self, lifecycle, repository, member, available_book, caplog
    ):
        lifecycle.request_issue(member, available_book.id)
        verbose_admin = Actor(id=ADMIN_ID, name="A" * 1000, role=UserRole.ADMIN)

        with caplog.at_level(logging.WARNING, logger="library_portal.lifecycle.machine"):
            book = lifecycle.approve_issue(verbose_admin, available_book.id)

        assert book.status == BookStatus.ISSUED
        assert repository.get_book(available_book.id).status == BookStatus.ISSUED
        assert _transactions(repository, TransactionType.ISSUE) == []
        assert any("Transaction log failed" in r.message for r in caplog.records)

    def test_log_failure_after_donation_rejection(
        self, failing_log_lifecycle, repository, admin, member
    ):
        donated = failing_log_lifecycle.donate(
            member, BookCreate(title="Gifted Book", author="Kind Author")
        )

        failing_log_lifecycle.reject_donation(admin, donated.id)

        assert repository.get_book(donated.id) is None

    def test_failed_write_logs_nothing(self, failing_write_lifecycle, repository, member, available_book):
        with pytest.raises(StoreUnavailableError):
            failing_write_lifecycle.request_issue(member, available_book.id)

        assert repository.get_book(available_book.id).status == BookStatus.AVAILABLE
        assert _transactions(repository) == []

    def test_failed_delete_logs_no_rejection(
        self, lifecycle, failing_write_lifecycle, repository, admin, member
    ):
        donated = lifecycle.donate(member, BookCreate(title="Gifted Book", author="Kind Author"))

        with pytest.raises(StoreUnavailableError):
            failing_write_lifecycle.reject_donation(admin, donated.id)

        assert repository.get_book(donated.id) is not None
        assert _transactions(repository, TransactionType.DONATE_REJECT) == []
