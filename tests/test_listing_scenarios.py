"""
End-to-end listing scenarios driven through the HTTP API.

Each test walks a complete exchange the way the mobile client does it and
checks the resulting listing, profile and ledger state.
"""

import pytest
from django.urls import reverse
from rest_framework import status

from marketplace.gamification import (
    POINTS_PER_OFFERED_STAMP,
    POINTS_PER_REQUEST,
    available_request_quota,
)
from marketplace.models import AuditLog, StampListing, StampTransaction


@pytest.mark.django_db
class TestExchangeScenarios:

    def test_new_profile_request_uses_whole_weekly_quota(self, owner, authenticate):
        client = authenticate(owner)

        response = client.post(
            reverse('listing_list_create'),
            {'type': 'request', 'quantity': 5},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'active'

        owner.refresh_from_db()
        assert owner.weekly_stamps_requested == 5
        assert available_request_quota(owner) == 0

        profile_response = client.get(reverse('profile'))
        assert profile_response.data['available_request_quota'] == 0

    def test_offer_confirmed_and_approved(self, owner, admin_user, api_client, authenticate):
        authenticate(owner)
        create_response = api_client.post(
            reverse('listing_list_create'),
            {'type': 'offer', 'quantity': 10},
            format='json'
        )
        assert create_response.data['status'] == 'pending_send'
        listing_id = create_response.data['id']

        confirm_response = api_client.put(reverse('listing_confirm_sent', args=[listing_id]))
        assert confirm_response.status_code == status.HTTP_200_OK
        assert confirm_response.data['listing']['status'] == 'pending_validation'

        authenticate(admin_user)
        approve_response = api_client.put(reverse('admin_approve_offer', args=[listing_id]))

        assert approve_response.status_code == status.HTTP_200_OK
        assert approve_response.data['listing']['status'] == 'fulfilled'
        assert approve_response.data['quantity_adjusted'] is False
        assert approve_response.data['original_quantity'] == 10
        assert approve_response.data['profile']['points'] == 10 * POINTS_PER_OFFERED_STAMP

        owner.refresh_from_db()
        assert owner.points == 20
        assert owner.stamp_balance == 10
        assert owner.total_offered == 1
        assert owner.level == 1
        assert owner.tier == 1

    def test_offer_approved_with_adjusted_quantity(self, owner, admin_user, api_client, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='pending_validation'
        )

        authenticate(admin_user)
        response = api_client.put(
            reverse('admin_approve_offer', args=[listing.id]),
            {'quantity': 8},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['quantity_adjusted'] is True
        assert response.data['original_quantity'] == 10
        assert response.data['listing']['quantity'] == 8

        owner.refresh_from_db()
        assert owner.points == 16
        assert owner.stamp_balance == 8

        entry = AuditLog.objects.get(entity_id=str(listing.id))
        assert entry.action == AuditLog.ACTION_LISTING_QUANTITY_ADJUSTED
        assert entry.actor_id == admin_user.pk
        assert entry.old_value == {'quantity': 10}
        assert entry.new_value == {'quantity': 8}

    def test_cancel_active_offer_reverses_balance(self, make_profile, authenticate):
        profile = make_profile(points=20, stamp_balance=10, total_offered=1)
        listing = StampListing.objects.create(
            user=profile, type='offer', quantity=10, status='active'
        )
        client = authenticate(profile)

        response = client.put(reverse('listing_cancel', args=[listing.id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['listing']['status'] == 'cancelled'
        assert response.data['profile']['points'] == 0

        profile.refresh_from_db()
        assert profile.points == 0
        assert profile.stamp_balance == 0
        assert profile.total_offered == 0

    def test_other_user_fulfills_request(self, owner, other_user, api_client, authenticate):
        authenticate(owner)
        create_response = api_client.post(
            reverse('listing_list_create'),
            {'type': 'request', 'quantity': 3},
            format='json'
        )
        listing_id = create_response.data['id']

        authenticate(other_user)
        response = api_client.put(reverse('listing_fulfill', args=[listing_id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['listing']['status'] == 'fulfilled'

        owner.refresh_from_db()
        other_user.refresh_from_db()
        assert owner.points == 3 * POINTS_PER_REQUEST
        assert other_user.points == 3 * POINTS_PER_OFFERED_STAMP

        record = StampTransaction.objects.get(listing_id=listing_id)
        assert record.from_user_id == other_user.pk
        assert record.to_user_id == owner.pk
        assert record.quantity == 3

    def test_second_listing_conflicts(self, owner, authenticate):
        client = authenticate(owner)
        client.post(reverse('listing_list_create'), {'type': 'request', 'quantity': 2}, format='json')
        owner.refresh_from_db()
        counter_before = owner.weekly_stamps_requested

        for listing_type in ('offer', 'request'):
            response = client.post(
                reverse('listing_list_create'),
                {'type': listing_type, 'quantity': 1},
                format='json'
            )

            assert response.status_code == status.HTTP_409_CONFLICT
            assert response.data['code'] == 'CONFLICTING_LISTING'
            assert 'error' in response.data

        owner.refresh_from_db()
        assert owner.weekly_stamps_requested == counter_before
        assert StampListing.objects.filter(user=owner).count() == 1
