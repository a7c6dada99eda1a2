"""
Tests for the all-or-nothing and concurrency guarantees of listing services.

Test Coverage:
- A failure after the ledger was touched rolls back balance and listing
- Ledger log lines are only emitted for committed transactions
- The open-listing constraint maps to ConflictingListing without charging quota
- Concurrent approvals, fulfillments and creations never credit twice
"""

import threading
from unittest.mock import patch

import pytest
from django.db import DatabaseError, connection
from django.db.models.query import QuerySet
from django.test import TransactionTestCase

from marketplace import audit, ledger, services
from marketplace.exceptions import ConflictingListing, MarketplaceError
from marketplace.models import AuditLog, Profile, StampListing, StampTransaction


def fail(*args, **kwargs):
    raise RuntimeError('audit store unavailable')


@pytest.mark.django_db
class TestRollback:

    def test_failed_approval_keeps_balance_and_status(self, owner, admin_user, monkeypatch):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='pending_validation'
        )
        monkeypatch.setattr(audit, 'log_offer_approved', fail)

        with pytest.raises(RuntimeError):
            services.approve_offer(listing.id, admin_user)

        owner.refresh_from_db()
        listing.refresh_from_db()
        assert owner.points == 0
        assert owner.stamp_balance == 0
        assert owner.total_offered == 0
        assert listing.status == 'pending_validation'
        assert listing.validated_by is None

    def test_failed_fulfillment_keeps_both_profiles(self, owner, other_user, monkeypatch):
        listing = StampListing.objects.create(user=owner, type='request', quantity=4, status='active')
        monkeypatch.setattr(audit, 'log_request_fulfilled', fail)

        with pytest.raises(RuntimeError):
            services.fulfill_listing(listing.id, other_user)

        owner.refresh_from_db()
        other_user.refresh_from_db()
        listing.refresh_from_db()
        assert owner.points == 0
        assert other_user.points == 0
        assert listing.status == 'active'
        assert not StampTransaction.objects.exists()

    def test_failed_cancel_keeps_awarded_balance(self, make_profile, monkeypatch):
        profile = make_profile(points=10, stamp_balance=5, total_offered=1)
        listing = StampListing.objects.create(user=profile, type='offer', quantity=5, status='active')
        monkeypatch.setattr(audit, 'log_listing_cancelled', fail)

        with pytest.raises(RuntimeError):
            services.cancel_listing(listing.id, profile)

        profile.refresh_from_db()
        listing.refresh_from_db()
        assert profile.points == 10
        assert profile.stamp_balance == 5
        assert listing.status == 'active'


@pytest.mark.django_db
class TestLedgerLogging:

    def test_committed_approval_is_logged(self, owner, admin_user, django_capture_on_commit_callbacks):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='pending_validation'
        )

        with patch.object(ledger.logger, 'info') as log_info:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                services.approve_offer(listing.id, admin_user)

        assert len(callbacks) == 1
        assert 'Offer balance awarded' in log_info.call_args.args[0]

    def test_rolled_back_approval_is_not_logged(
        self, owner, admin_user, monkeypatch, django_capture_on_commit_callbacks
    ):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='pending_validation'
        )
        monkeypatch.setattr(audit, 'log_offer_approved', fail)

        with patch.object(ledger.logger, 'info') as log_info:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                with pytest.raises(RuntimeError):
                    services.approve_offer(listing.id, admin_user)

        assert callbacks == []
        log_info.assert_not_called()


@pytest.mark.django_db
class TestOpenListingConstraint:

    def test_constraint_violation_is_a_conflict(self, owner, monkeypatch):
        StampListing.objects.create(user=owner, type='offer', quantity=3, status='pending_send')
        owner.refresh_from_db()
        reset_before = owner.weekly_reset_at

        # Let the request slip past the open-listing lookup, as a racing
        # insert from another connection would.
        with monkeypatch.context() as patched:
            patched.setattr(QuerySet, 'first', lambda self: None)
            with pytest.raises(ConflictingListing) as exc_info:
                services.create_listing(owner, 'request', 3)

        assert exc_info.value.code == 'CONFLICTING_LISTING'
        owner.refresh_from_db()
        assert owner.weekly_stamps_requested == 0
        assert owner.weekly_reset_at == reset_before
        assert StampListing.objects.filter(user=owner).count() == 1
        assert not AuditLog.objects.filter(action=AuditLog.ACTION_LISTING_CREATED).exists()


class ConcurrentListingTests(TransactionTestCase):
    """Concurrent transitions on the same listing or profile."""

    def setUp(self):
        self.admin = Profile.objects.create_user(phone='351910000201', is_admin=True)
        self.owner = Profile.objects.create_user(phone='351910000202')
        self.helper_a = Profile.objects.create_user(phone='351910000203')
        self.helper_b = Profile.objects.create_user(phone='351910000204')

    def _run_together(self, *calls):
        """Run the calls in parallel threads and return 'ok' or the error per call."""
        barrier = threading.Barrier(len(calls))
        outcomes = []

        def worker(call):
            try:
                barrier.wait()
                call()
                outcomes.append('ok')
            except (MarketplaceError, DatabaseError) as exc:
                outcomes.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(outcomes), len(calls))
        return outcomes

    def test_concurrent_approvals_credit_once(self):
        listing = StampListing.objects.create(
            user=self.owner, type='offer', quantity=10, status='pending_validation'
        )

        def approve():
            services.approve_offer(listing.id, self.admin)

        outcomes = self._run_together(approve, approve)
        approvals = outcomes.count('ok')

        self.assertLessEqual(approvals, 1)
        listing.refresh_from_db()
        self.owner.refresh_from_db()
        if listing.status == 'fulfilled':
            self.assertEqual(approvals, 1)
            self.assertEqual(self.owner.points, 20)
            self.assertEqual(self.owner.stamp_balance, 10)
            self.assertEqual(self.owner.total_offered, 1)
        else:
            self.assertEqual(approvals, 0)
            self.assertEqual(listing.status, 'pending_validation')
            self.assertEqual(self.owner.points, 0)
            self.assertEqual(self.owner.stamp_balance, 0)
        self.assertEqual(
            AuditLog.objects.filter(action=AuditLog.ACTION_LISTING_APPROVED).count(), approvals
        )

    def test_concurrent_fulfillments_credit_once(self):
        listing = StampListing.objects.create(
            user=self.owner, type='request', quantity=4, status='active'
        )

        outcomes = self._run_together(
            lambda: services.fulfill_listing(listing.id, self.helper_a),
            lambda: services.fulfill_listing(listing.id, self.helper_b),
        )
        fulfillments = outcomes.count('ok')

        self.assertLessEqual(fulfillments, 1)
        self.assertEqual(StampTransaction.objects.count(), fulfillments)
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.points, 4 * fulfillments)

        helper_points = sum(
            Profile.objects.filter(pk__in=[self.helper_a.pk, self.helper_b.pk])
            .values_list('points', flat=True)
        )
        self.assertEqual(helper_points, 8 * fulfillments)

    def test_concurrent_creations_keep_one_open_listing(self):
        def create_request():
            services.create_listing(self.owner, 'request', 2)

        outcomes = self._run_together(create_request, create_request)
        created = outcomes.count('ok')

        self.assertLessEqual(created, 1)
        self.assertEqual(
            StampListing.objects.filter(user=self.owner, status__in=StampListing.OPEN_STATUSES).count(),
            created,
        )
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.weekly_stamps_requested, 2 * created)
