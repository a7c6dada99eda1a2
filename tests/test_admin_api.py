"""
Tests for the admin endpoints: validation queues, offer approval and
rejection, admin fulfillment and global settings.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from rest_framework import status

from marketplace.models import AppSettings, AuditLog, StampListing, StampTransaction


@pytest.mark.django_db
class TestAdminPermissions:

    @pytest.mark.parametrize('url_name', ['admin_pending_offers', 'admin_active_requests', 'admin_settings'])
    def test_regular_user_is_forbidden(self, owner, authenticate, url_name):
        client = authenticate(owner)

        response = client.get(reverse(url_name))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert 'Admin privileges required' in str(response.data['detail'])

    def test_anonymous_is_unauthorized(self, api_client):
        response = api_client.get(reverse('admin_pending_offers'))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_regular_user_cannot_approve(self, owner, other_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=5, status='pending_validation'
        )
        client = authenticate(other_user)

        response = client.put(reverse('admin_approve_offer', args=[listing.id]))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        listing.refresh_from_db()
        assert listing.status == 'pending_validation'


@pytest.mark.django_db
class TestAdminQueues:

    def test_pending_offers_oldest_first_with_phone(self, owner, other_user, admin_user, authenticate):
        first = StampListing.objects.create(
            user=owner, type='offer', quantity=5, status='pending_validation'
        )
        second = StampListing.objects.create(
            user=other_user, type='offer', quantity=2, status='pending_validation'
        )
        StampListing.objects.filter(pk=first.pk).update(created_at=second.created_at - timedelta(hours=1))
        client = authenticate(admin_user)

        response = client.get(reverse('admin_pending_offers'))

        assert response.status_code == status.HTTP_200_OK
        ids = [listing['id'] for listing in response.data['listings']]
        assert ids == [str(first.id), str(second.id)]
        assert response.data['listings'][0]['user']['phone'] == owner.phone

    def test_pending_offers_excludes_other_states(self, owner, other_user, admin_user, authenticate):
        StampListing.objects.create(user=owner, type='offer', quantity=5, status='pending_send')
        StampListing.objects.create(user=other_user, type='request', quantity=2, status='active')
        client = authenticate(admin_user)

        response = client.get(reverse('admin_pending_offers'))

        assert response.data['listings'] == []

    def test_active_requests(self, owner, other_user, admin_user, authenticate):
        StampListing.objects.create(user=owner, type='offer', quantity=5, status='pending_validation')
        request_listing = StampListing.objects.create(
            user=other_user, type='request', quantity=2, status='active'
        )
        client = authenticate(admin_user)

        response = client.get(reverse('admin_active_requests'))

        assert [listing['id'] for listing in response.data['listings']] == [str(request_listing.id)]


@pytest.mark.django_db
class TestAdminListingActions:

    def test_approve_rejects_unknown_fields(self, owner, admin_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=5, status='pending_validation'
        )
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_approve_offer', args=[listing.id]),
            {'quantity': 4, 'points': 1000},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        owner.refresh_from_db()
        assert owner.points == 0

    def test_approve_zero_quantity(self, owner, admin_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=5, status='pending_validation'
        )
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_approve_offer', args=[listing.id]),
            {'quantity': 0},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_approve_wrong_state(self, owner, admin_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=5, status='pending_send'
        )
        client = authenticate(admin_user)

        response = client.put(reverse('admin_approve_offer', args=[listing.id]))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'INVALID_STATE_TRANSITION'

    def test_reject_offer(self, owner, admin_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=5, status='pending_validation'
        )
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_reject_offer', args=[listing.id]),
            {'reason': 'Selos nao chegaram'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['listing']['status'] == 'rejected'
        assert response.data['listing']['rejection_reason'] == 'Selos nao chegaram'

        entry = AuditLog.objects.get(action=AuditLog.ACTION_LISTING_REJECTED)
        assert entry.metadata == {'reason': 'Selos nao chegaram'}
        assert entry.actor_id == admin_user.pk

    def test_admin_fulfill_request(self, owner, admin_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='request', quantity=4, status='active'
        )
        client = authenticate(admin_user)

        response = client.put(reverse('admin_fulfill_request', args=[listing.id]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['listing']['status'] == 'fulfilled'
        assert response.data['profile']['points'] == 4

        record = StampTransaction.objects.get(listing=listing)
        assert record.from_user_id == admin_user.pk

        entry = AuditLog.objects.get(action=AuditLog.ACTION_LISTING_FULFILLED)
        assert entry.metadata == {'quantity': 4}
        assert entry.target_user_id == owner.pk

    def test_admin_fulfill_offer_is_rejected(self, owner, admin_user, authenticate):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=4, status='active'
        )
        client = authenticate(admin_user)

        response = client.put(reverse('admin_fulfill_request', args=[listing.id]))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not StampTransaction.objects.exists()


@pytest.mark.django_db
class TestSettings:

    def test_public_settings(self, api_client):
        app_settings = AppSettings.load()
        app_settings.admin_device_phone = '351912345678'
        app_settings.save()

        response = api_client.get(reverse('public_settings'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'admin_device_phone': '351912345678'}

    def test_admin_updates_device_phone(self, admin_user, authenticate):
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_settings'),
            {'admin_device_phone': '+351 934 567 890'},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['admin_device_phone'] == '351934567890'

        app_settings = AppSettings.load()
        assert app_settings.updated_by_id == admin_user.pk

        entry = AuditLog.objects.get(action=AuditLog.ACTION_SETTINGS_UPDATED)
        assert entry.old_value == {'admin_device_phone': ''}
        assert entry.new_value == {'admin_device_phone': '351934567890'}

    def test_invalid_device_phone(self, admin_user, authenticate):
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_settings'),
            {'admin_device_phone': '12345'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not AuditLog.objects.exists()

    def test_read_only_fields_are_rejected(self, admin_user, authenticate):
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_settings'),
            {'updated_by': str(admin_user.pk)},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
