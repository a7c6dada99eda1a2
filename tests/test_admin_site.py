"""
Tests for the Django admin configuration.

Test Coverage:
- Profile gamification counters cannot be edited from the admin
- Listings cannot be added from the admin
- Ledger-relevant listing fields are read-only on the change form
"""

import pytest
from django.contrib.admin.sites import site
from django.urls import reverse

from marketplace.admin import ProfileAdmin, StampListingAdmin
from marketplace.models import Profile, StampListing

GAMIFICATION_FIELDS = [
    'points',
    'level',
    'tier',
    'stamp_balance',
    'weekly_stamps_requested',
    'weekly_reset_at',
    'total_offered',
    'total_requested',
]


@pytest.fixture
def superuser(make_profile):
    return make_profile(display_name='Root', is_admin=True, is_staff=True, is_superuser=True)


@pytest.fixture
def staff_request(rf, superuser):
    request = rf.get('/admin/')
    request.user = superuser
    return request


@pytest.mark.django_db
class TestProfileAdmin:

    def test_counters_are_not_form_fields(self, staff_request, owner):
        form_class = ProfileAdmin(Profile, site).get_form(staff_request, owner)

        for field in GAMIFICATION_FIELDS:
            assert field not in form_class.base_fields

    def test_counters_are_shown_read_only(self, staff_request, owner):
        readonly = ProfileAdmin(Profile, site).get_readonly_fields(staff_request, owner)

        for field in GAMIFICATION_FIELDS:
            assert field in readonly

    def test_change_page_renders(self, client, superuser, owner):
        client.force_login(superuser)

        response = client.get(reverse('admin:marketplace_profile_change', args=[owner.pk]))

        assert response.status_code == 200
        assert 'points' not in response.context['adminform'].form.fields


@pytest.mark.django_db
class TestStampListingAdmin:

    def test_add_is_disabled(self, staff_request):
        assert StampListingAdmin(StampListing, site).has_add_permission(staff_request) is False

    def test_add_page_is_forbidden(self, client, superuser):
        client.force_login(superuser)

        response = client.get(reverse('admin:marketplace_stamplisting_add'))

        assert response.status_code == 403

    def test_ledger_fields_are_not_editable(self, staff_request, owner):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='pending_validation'
        )

        form_class = StampListingAdmin(StampListing, site).get_form(staff_request, listing)

        for field in ['user', 'type', 'quantity', 'status']:
            assert field not in form_class.base_fields
        assert 'notes' in form_class.base_fields

    def test_change_page_renders(self, client, superuser, owner):
        listing = StampListing.objects.create(
            user=owner, type='offer', quantity=10, status='pending_validation'
        )
        client.force_login(superuser)

        response = client.get(reverse('admin:marketplace_stamplisting_change', args=[listing.pk]))

        assert response.status_code == 200
