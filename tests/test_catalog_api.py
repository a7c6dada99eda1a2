"""
Tests for the stamp collection catalog endpoints.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework import status

from marketplace.models import CollectionItem, RedemptionOption, StampCollection


@pytest.fixture
def collection(admin_user):
    collection = StampCollection.objects.create(
        name='MasterChef 2025',
        description='Colecao MasterChef',
        starts_at=date(2025, 1, 1),
        ends_at=date(2025, 12, 31),
        sort_order=1,
        created_by=admin_user,
    )
    item = CollectionItem.objects.create(
        collection=collection, name='Conjunto de Facas', subtitle='6 pecas', sort_order=1
    )
    RedemptionOption.objects.create(item=item, stamps_required=20, fee_euros=Decimal('0'), sort_order=1)
    RedemptionOption.objects.create(item=item, stamps_required=10, fee_euros=Decimal('4.99'), sort_order=2)
    return collection


@pytest.mark.django_db
class TestPublicCatalog:

    def test_lists_active_collections_with_items(self, api_client, collection):
        StampCollection.objects.create(
            name='Antiga',
            starts_at=date(2024, 1, 1),
            ends_at=date(2024, 12, 31),
            is_active=False,
        )

        response = api_client.get(reverse('collection_list'))

        assert response.status_code == status.HTTP_200_OK
        assert [c['name'] for c in response.data['collections']] == ['MasterChef 2025']

        item = response.data['collections'][0]['items'][0]
        assert item['name'] == 'Conjunto de Facas'
        assert [option['fee_display'] for option in item['options']] == ['Gratis', '4,99 €']


@pytest.mark.django_db
class TestAdminCatalog:

    def test_regular_user_cannot_create(self, owner, authenticate):
        client = authenticate(owner)

        response = client.post(
            reverse('admin_collections'),
            {'name': 'Natal', 'starts_at': '2025-11-01', 'ends_at': '2025-12-31'},
            format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_create_collection(self, admin_user, authenticate):
        client = authenticate(admin_user)

        response = client.post(
            reverse('admin_collections'),
            {'name': 'Natal', 'starts_at': '2025-11-01', 'ends_at': '2025-12-31'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        created = StampCollection.objects.get(pk=response.data['id'])
        assert created.created_by_id == admin_user.pk
        assert created.is_active is True

    def test_end_before_start_is_rejected(self, admin_user, authenticate):
        client = authenticate(admin_user)

        response = client.post(
            reverse('admin_collections'),
            {'name': 'Natal', 'starts_at': '2025-11-01', 'ends_at': '2025-10-01'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'ends_at' in response.data

    def test_admin_list_includes_inactive(self, admin_user, authenticate, collection):
        StampCollection.objects.create(
            name='Antiga', starts_at=date(2024, 1, 1), ends_at=date(2024, 12, 31), is_active=False
        )
        client = authenticate(admin_user)

        response = client.get(reverse('admin_collections'))

        assert len(response.data['collections']) == 2

    def test_update_collection(self, admin_user, authenticate, collection):
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_collection_detail', args=[collection.id]),
            {'is_active': False},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        collection.refresh_from_db()
        assert collection.is_active is False

    def test_update_rejects_read_only_fields(self, admin_user, authenticate, collection):
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_collection_detail', args=[collection.id]),
            {'items': []},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_collection_cascades(self, admin_user, authenticate, collection):
        client = authenticate(admin_user)

        response = client.delete(reverse('admin_collection_detail', args=[collection.id]))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not CollectionItem.objects.exists()
        assert not RedemptionOption.objects.exists()

    def test_unknown_collection(self, admin_user, authenticate):
        client = authenticate(admin_user)

        response = client.delete(
            reverse('admin_collection_detail', args=['00000000-0000-0000-0000-000000000000'])
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_item_and_option_lifecycle(self, admin_user, authenticate, collection):
        client = authenticate(admin_user)

        item_response = client.post(
            reverse('admin_collection_items', args=[collection.id]),
            {'name': 'Panela de Pressao', 'subtitle': '6L', 'sort_order': 2},
            format='json'
        )
        assert item_response.status_code == status.HTTP_201_CREATED
        item_id = item_response.data['id']

        update_response = client.put(
            reverse('admin_collection_item_detail', args=[collection.id, item_id]),
            {'subtitle': '6L antiaderente'},
            format='json'
        )
        assert update_response.data['subtitle'] == '6L antiaderente'

        option_response = client.post(
            reverse('admin_item_options', args=[collection.id, item_id]),
            {'stamps_required': 15, 'fee_euros': '9.99', 'label': 'Selos + taxa'},
            format='json'
        )
        assert option_response.status_code == status.HTTP_201_CREATED
        assert option_response.data['fee_display'] == '9,99 €'

        option_id = option_response.data['id']
        delete_response = client.delete(
            reverse('admin_item_option_delete', args=[collection.id, item_id, option_id])
        )
        assert delete_response.status_code == status.HTTP_204_NO_CONTENT

        delete_item_response = client.delete(
            reverse('admin_collection_item_detail', args=[collection.id, item_id])
        )
        assert delete_item_response.status_code == status.HTTP_204_NO_CONTENT
        assert collection.items.count() == 1

    def test_negative_fee_is_rejected(self, admin_user, authenticate, collection):
        item = collection.items.get()
        client = authenticate(admin_user)

        response = client.post(
            reverse('admin_item_options', args=[collection.id, item.id]),
            {'stamps_required': 5, 'fee_euros': '-1.00'},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'fee_euros' in response.data

    def test_item_in_other_collection_is_not_found(self, admin_user, authenticate, collection):
        other = StampCollection.objects.create(
            name='Natal', starts_at=date(2025, 11, 1), ends_at=date(2025, 12, 31)
        )
        item = collection.items.get()
        client = authenticate(admin_user)

        response = client.put(
            reverse('admin_collection_item_detail', args=[other.id, item.id]),
            {'name': 'Outro'},
            format='json'
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
