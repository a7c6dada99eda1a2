"""
URL configuration for the selotroca project.

The phone verification provider is built once here and handed to the
authentication views.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenRefreshView,
    TokenVerifyView,
    TokenBlacklistView,
)
from marketplace.verify import build_verify_provider
from marketplace.views import (
    OtpSendView,
    OtpVerifyView,
    ProfileView,
    LeaderboardView,
    ListingListCreateView,
    ListingCancelView,
    ListingConfirmSentView,
    ListingFulfillView,
    AdminPendingOffersView,
    AdminActiveRequestsView,
    AdminApproveOfferView,
    AdminRejectOfferView,
    AdminFulfillRequestView,
    CollectionListView,
    AdminCollectionListCreateView,
    AdminCollectionDetailView,
    AdminCollectionItemCreateView,
    AdminCollectionItemDetailView,
    AdminRedemptionOptionCreateView,
    AdminRedemptionOptionDeleteView,
    AdminSettingsView,
    PublicSettingsView,
    HealthView,
)


verify_provider = build_verify_provider()

urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/otp/send/', OtpSendView.as_view(verify_provider=verify_provider), name='otp_send'),
    path('api/auth/otp/verify/', OtpVerifyView.as_view(verify_provider=verify_provider), name='otp_verify'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),

    # Profile endpoints
    path('api/profile/', ProfileView.as_view(), name='profile'),
    path('api/leaderboard/', LeaderboardView.as_view(), name='leaderboard'),

    # Listing endpoints
    path('api/listings/', ListingListCreateView.as_view(), name='listing_list_create'),
    path('api/listings/<uuid:pk>/cancel/', ListingCancelView.as_view(), name='listing_cancel'),
    path('api/listings/<uuid:pk>/confirm-sent/', ListingConfirmSentView.as_view(), name='listing_confirm_sent'),
    path('api/listings/<uuid:pk>/fulfill/', ListingFulfillView.as_view(), name='listing_fulfill'),

    # Admin endpoints
    path('api/admin/pending-offers/', AdminPendingOffersView.as_view(), name='admin_pending_offers'),
    path('api/admin/active-requests/', AdminActiveRequestsView.as_view(), name='admin_active_requests'),
    path('api/admin/offers/<uuid:pk>/approve/', AdminApproveOfferView.as_view(), name='admin_approve_offer'),
    path('api/admin/offers/<uuid:pk>/reject/', AdminRejectOfferView.as_view(), name='admin_reject_offer'),
    path('api/admin/requests/<uuid:pk>/fulfill/', AdminFulfillRequestView.as_view(), name='admin_fulfill_request'),
    path('api/admin/collections/', AdminCollectionListCreateView.as_view(), name='admin_collections'),
    path('api/admin/collections/<uuid:pk>/', AdminCollectionDetailView.as_view(), name='admin_collection_detail'),
    path(
        'api/admin/collections/<uuid:collection_id>/items/',
        AdminCollectionItemCreateView.as_view(),
        name='admin_collection_items'
    ),
    path(
        'api/admin/collections/<uuid:collection_id>/items/<uuid:pk>/',
        AdminCollectionItemDetailView.as_view(),
        name='admin_collection_item_detail'
    ),
    path(
        'api/admin/collections/<uuid:collection_id>/items/<uuid:item_id>/options/',
        AdminRedemptionOptionCreateView.as_view(),
        name='admin_item_options'
    ),
    path(
        'api/admin/collections/<uuid:collection_id>/items/<uuid:item_id>/options/<uuid:pk>/',
        AdminRedemptionOptionDeleteView.as_view(),
        name='admin_item_option_delete'
    ),
    path('api/admin/settings/', AdminSettingsView.as_view(), name='admin_settings'),

    # Public endpoints
    path('api/collections/', CollectionListView.as_view(), name='collection_list'),
    path('api/settings/public/', PublicSettingsView.as_view(), name='public_settings'),
    path('api/health/', HealthView.as_view(), name='health'),

    # JWT endpoints
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
]
