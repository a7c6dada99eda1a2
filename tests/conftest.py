"""
Shared fixtures for the marketplace test suite.
"""

import itertools

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

Profile = get_user_model()

_phone_numbers = itertools.count(910000001)


@pytest.fixture(autouse=True)
def clear_cache(db):
    """Clear Django cache before each test to reset throttle limits."""
    from django.core.cache import cache
    cache.clear()


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def make_profile(db):
    """Factory creating profiles with unique phone numbers."""
    def _make_profile(**extra_fields):
        phone = extra_fields.pop('phone', f'351{next(_phone_numbers)}')
        extra_fields.setdefault('display_name', 'Test User')
        extra_fields.setdefault('registration_complete', True)
        return Profile.objects.create_user(phone=phone, **extra_fields)
    return _make_profile


@pytest.fixture
def owner(make_profile):
    return make_profile(display_name='Ana')


@pytest.fixture
def other_user(make_profile):
    return make_profile(display_name='Bruno')


@pytest.fixture
def admin_user(make_profile):
    return make_profile(display_name='Admin', is_admin=True)


@pytest.fixture
def authenticate(api_client):
    """Attach a Bearer token for the given profile to the API client."""
    def _authenticate(profile):
        token = str(RefreshToken.for_user(profile).access_token)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return api_client
    return _authenticate
