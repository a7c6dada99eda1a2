"""
Tests for the balance ledger operations.

Test Coverage:
- Offer balance award and reversal (including the round trip)
- Points floored at zero on reversal
- Request fulfillment credit for admin fulfillment
- complete_listing_points for offers and requests
- Missing profiles and listings
"""

import pytest

from marketplace.exceptions import NotFound
from marketplace.ledger import (
    award_offer_balance,
    award_request_fulfilled,
    complete_listing_points,
    reverse_offer_balance,
)
from marketplace.models import StampListing, StampTransaction


def snapshot(profile):
    profile.refresh_from_db()
    return {
        'points': profile.points,
        'stamp_balance': profile.stamp_balance,
        'total_offered': profile.total_offered,
        'total_requested': profile.total_requested,
        'level': profile.level,
        'tier': profile.tier,
    }


@pytest.mark.django_db
class TestOfferBalance:

    def test_award_credits_balance_and_points(self, owner):
        award_offer_balance(owner.pk, 10)

        owner.refresh_from_db()
        assert owner.stamp_balance == 10
        assert owner.points == 20
        assert owner.total_offered == 1
        assert owner.level == 1
        assert owner.tier == 1

    def test_award_recomputes_level_and_tier(self, make_profile):
        profile = make_profile(points=90)

        award_offer_balance(profile.pk, 10)

        profile.refresh_from_db()
        assert profile.points == 110
        assert profile.level == 3

    def test_award_reaches_higher_tier(self, make_profile):
        profile = make_profile(points=200)

        award_offer_balance(profile.pk, 40)

        profile.refresh_from_db()
        assert profile.points == 280
        assert profile.level == 4
        assert profile.tier == 2

    def test_round_trip_restores_profile(self, make_profile):
        profile = make_profile(points=130, stamp_balance=4, total_offered=2)
        profile.refresh_rank()
        profile.save()
        before = snapshot(profile)

        award_offer_balance(profile.pk, 12)
        reverse_offer_balance(profile.pk, 12)

        assert snapshot(profile) == before

    def test_reverse_floors_points_at_zero(self, make_profile):
        profile = make_profile(points=5, stamp_balance=10, total_offered=1)

        reverse_offer_balance(profile.pk, 10)

        profile.refresh_from_db()
        assert profile.points == 0
        assert profile.stamp_balance == 0
        assert profile.total_offered == 0
        assert profile.level == 1

    def test_reverse_never_drops_total_offered_below_zero(self, owner):
        reverse_offer_balance(owner.pk, 3)

        owner.refresh_from_db()
        assert owner.total_offered == 0
        assert owner.stamp_balance == -3

    def test_unknown_profile_raises_not_found(self, db):
        with pytest.raises(NotFound) as exc_info:
            award_offer_balance('00000000-0000-0000-0000-000000000000', 1)
        assert exc_info.value.code == 'PROFILE_NOT_FOUND'


@pytest.mark.django_db
class TestAwardRequestFulfilled:

    def test_credits_requester(self, owner):
        award_request_fulfilled(owner.pk, 7)

        owner.refresh_from_db()
        assert owner.points == 7
        assert owner.total_requested == 1
        assert owner.stamp_balance == 0


@pytest.mark.django_db
class TestCompleteListingPoints:

    def test_request_credits_both_parties(self, owner, other_user):
        listing = StampListing.objects.create(
            user=owner, type='request', quantity=3, status='active'
        )

        record = complete_listing_points(listing, other_user.pk)

        owner.refresh_from_db()
        other_user.refresh_from_db()
        assert owner.points == 3
        assert owner.total_requested == 1
        assert other_user.points == 6
        assert other_user.total_offered == 1

        assert record.from_user_id == other_user.pk
        assert record.to_user_id == owner.pk
        assert record.points_from == 6
        assert record.points_to == 3
        assert record.type == 'request'

    def test_offer_transfers_stamps_to_fulfiller(self, make_profile, other_user):
        owner = make_profile(points=20, stamp_balance=10, total_offered=1)
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='active'
        )

        record = complete_listing_points(listing.pk, other_user.pk)

        owner.refresh_from_db()
        other_user.refresh_from_db()
        assert owner.stamp_balance == 0
        assert owner.points == 20
        assert other_user.points == 10
        assert other_user.total_requested == 1

        assert record.from_user_id == owner.pk
        assert record.to_user_id == other_user.pk
        assert record.points_from == 0
        assert record.points_to == 10

    def test_marks_listing_fulfilled(self, owner, other_user):
        listing = StampListing.objects.create(
            user=owner, type='request', quantity=2, status='active'
        )

        complete_listing_points(listing, other_user.pk)

        listing.refresh_from_db()
        assert listing.status == 'fulfilled'
        assert listing.fulfilled_by_id == other_user.pk
        assert listing.fulfilled_at is not None
        assert StampTransaction.objects.filter(listing=listing).count() == 1

    def test_unknown_listing_raises_not_found(self, other_user):
        with pytest.raises(NotFound):
            complete_listing_points('00000000-0000-0000-0000-000000000000', other_user.pk)
