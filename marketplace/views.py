"""
API views for the SeloTroca marketplace.
"""

import logging

from django.db import IntegrityError, transaction
from django.db.models import Prefetch
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from . import services
from .audit import AuditContext, get_client_ip, log_settings_updated
from .exceptions import MarketplaceError
from .models import (
    AppSettings,
    CollectionItem,
    Profile,
    RedemptionOption,
    StampCollection,
    StampListing,
)
from .permissions import IsMarketplaceAdmin
from .serializers import (
    AdminListingSerializer,
    AppSettingsSerializer,
    ApproveOfferSerializer,
    CollectionItemSerializer,
    LeaderboardEntrySerializer,
    ListingCreateSerializer,
    ListingFilterSerializer,
    ListingSerializer,
    OtpSendSerializer,
    OtpVerifySerializer,
    ProfileSerializer,
    ProfileSummarySerializer,
    ProfileUpdateSerializer,
    PublicSettingsSerializer,
    RedemptionOptionSerializer,
    RejectOfferSerializer,
    StampCollectionSerializer,
)

logger = logging.getLogger(__name__)

LISTINGS_PAGE_LIMIT = 100
LEADERBOARD_LIMIT = 50

OTP_ERROR_MESSAGES = {
    'OTP_EXPIRED': 'Verification code expired or not found. Request a new code.',
    'TOO_MANY_ATTEMPTS': 'Too many attempts. Request a new code.',
    'INVALID_OTP': 'Invalid verification code.',
}


class MarketplaceAPIView(APIView):
    """
    Base view that turns marketplace business errors into API responses.

    Error response body: {"error": <message>, "code": <machine code>}
    """

    def handle_exception(self, exc):
        if isinstance(exc, MarketplaceError):
            user = getattr(self.request, 'user', None)
            logger.warning(
                f"{self.__class__.__name__} rejected request. "
                f"Code: {exc.code}, Message: {exc.message}, "
                f"User ID: {getattr(user, 'pk', None)}, "
                f"IP: {get_client_ip(self.request)}"
            )
            return Response(exc.as_response_data(), status=exc.status_code)
        return super().handle_exception(exc)


def collections_queryset():
    """Collections with their items and options prefetched in display order."""
    return StampCollection.objects.prefetch_related(
        Prefetch(
            'items',
            queryset=CollectionItem.objects.prefetch_related(
                Prefetch('options', queryset=RedemptionOption.objects.order_by('sort_order', 'created_at'))
            ).order_by('sort_order', 'created_at')
        )
    ).order_by('sort_order', 'created_at')


# ============================================================================
# Authentication
# ============================================================================

class OtpSendView(APIView):
    """
    API endpoint that sends a verification code to a phone number.

    POST /api/auth/otp/send/
    Request body: {"phone": "912345678"}

    Success response (200):
    {
        "detail": "Verification code sent.",
        "phone": "351912345678"
    }

    The local provider also returns "dev_code" when DEBUG is on.

    Error responses:
    - 400: Invalid phone number or unknown fields
    - 429: Too many requests
    - 502: The verification provider failed
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'otp_send'
    http_method_names = ['post', 'options']

    verify_provider = None

    def post(self, request, *args, **kwargs):
        serializer = OtpSendSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        phone = serializer.validated_data['phone']
        result = self.verify_provider.send_verification(phone)

        if not result.success:
            logger.error(
                f"Verification code could not be sent. Phone: {phone}, "
                f"Provider status: {result.status}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'error': 'Failed to send verification code.', 'code': 'SMS_FAILED'},
                status=status.HTTP_502_BAD_GATEWAY
            )

        logger.info(f"Verification code sent. Phone: {phone}, IP: {get_client_ip(request)}")

        data = {'detail': 'Verification code sent.', 'phone': phone}
        if result.dev_code:
            data['dev_code'] = result.dev_code
        return Response(data, status=status.HTTP_200_OK)


class OtpVerifyView(APIView):
    """
    API endpoint that checks a verification code and signs the user in.

    A profile is created on the first successful verification of a phone.

    POST /api/auth/otp/verify/
    Request body: {"phone": "912345678", "code": "123456"}

    Success response (200):
    {
        "access": "...",
        "refresh": "...",
        "is_new_user": true,
        "profile": {...}
    }

    Error responses:
    - 400: Invalid, expired or exhausted code (code OTP_EXPIRED,
      TOO_MANY_ATTEMPTS or INVALID_OTP)
    - 403: Profile is deactivated
    - 429: Too many requests
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'otp_verify'
    http_method_names = ['post', 'options']

    verify_provider = None

    def post(self, request, *args, **kwargs):
        serializer = OtpVerifySerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        phone = serializer.validated_data['phone']
        result = self.verify_provider.check_verification(phone, serializer.validated_data['code'])

        if not result.success:
            code = result.status if result.status in OTP_ERROR_MESSAGES else 'INVALID_OTP'
            logger.warning(
                f"Failed verification attempt. Phone: {phone}, "
                f"Status: {result.status}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'error': OTP_ERROR_MESSAGES[code], 'code': code},
                status=status.HTTP_400_BAD_REQUEST
            )

        profile, is_new_user = self._get_or_create_profile(phone)

        if not profile.is_active:
            logger.warning(f"Login attempt for inactive profile. Phone: {phone}")
            return Response(
                {'error': 'This account is disabled.', 'code': 'ACCOUNT_DISABLED'},
                status=status.HTTP_403_FORBIDDEN
            )

        refresh = RefreshToken.for_user(profile)

        logger.info(
            f"User signed in. Profile ID: {profile.pk}, New user: {is_new_user}, "
            f"IP: {get_client_ip(request)}"
        )

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'is_new_user': is_new_user,
            'profile': ProfileSerializer(profile).data,
        }, status=status.HTTP_200_OK)

    def _get_or_create_profile(self, phone):
        """Fetch the profile for a phone, creating it on first sign-in."""
        try:
            return Profile.objects.get(phone=phone), False
        except Profile.DoesNotExist:
            pass

        try:
            with transaction.atomic():
                return Profile.objects.create_user(phone=phone), True
        except IntegrityError:
            # Concurrent first sign-in for the same phone
            return Profile.objects.get(phone=phone), False


# ============================================================================
# Profile
# ============================================================================

class ProfileView(APIView):
    """
    API endpoint for the authenticated user's profile.

    GET /api/profile/
    PATCH /api/profile/ (PUT is accepted with the same partial semantics)
    Body: {"display_name": "Maria", "district": "Lisboa", ...}

    The response includes available_request_quota, level_progress and
    tier_info derived from the gamification rules.

    Error responses:
    - 401: Missing, invalid, or expired JWT token
    - 400: Invalid data or unknown fields
    """
    permission_classes = [IsAuthenticated]
    http_method_names = ['get', 'put', 'patch', 'options']

    def get(self, request, *args, **kwargs):
        return Response(ProfileSerializer(request.user).data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        profile = serializer.save()

        logger.info(
            f"Profile updated. Profile ID: {profile.pk}, "
            f"Fields: {sorted(serializer.validated_data)}, IP: {get_client_ip(request)}"
        )
        return Response(ProfileSerializer(profile).data, status=status.HTTP_200_OK)

    def put(self, request, *args, **kwargs):
        return self.patch(request, *args, **kwargs)


class LeaderboardView(APIView):
    """
    Public leaderboard: top profiles by points.

    GET /api/leaderboard/
    """
    permission_classes = [AllowAny]
    http_method_names = ['get', 'options']

    def get(self, request, *args, **kwargs):
        profiles = Profile.objects.filter(is_active=True).order_by('-points', 'created_at')[:LEADERBOARD_LIMIT]
        return Response(
            {'leaderboard': LeaderboardEntrySerializer(profiles, many=True).data},
            status=status.HTTP_200_OK
        )


# ============================================================================
# Listings
# ============================================================================

class ListingListCreateView(MarketplaceAPIView):
    """
    API endpoint for browsing and creating listings.

    GET /api/listings/?type=request&status=active&user=<uuid>
    Public. Returns the newest 100 matching listings.

    POST /api/listings/
    Headers: Authorization: Bearer <access_token>
    Request body: {"type": "request", "quantity": 5, "collection": "MasterChef", "notes": ""}

    Offers are created in pending_send, requests in active.

    Error responses:
    - 400: Invalid data, unknown fields or weekly quota exceeded (QUOTA_EXCEEDED)
    - 401: Missing, invalid, or expired JWT token
    - 409: User already has an open listing (CONFLICTING_LISTING)
    """
    http_method_names = ['get', 'post', 'options']

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated()]
        return [AllowAny()]

    def get(self, request, *args, **kwargs):
        filters = ListingFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return Response(filters.errors, status=status.HTTP_400_BAD_REQUEST)

        queryset = StampListing.objects.select_related('user')
        if 'type' in filters.validated_data:
            queryset = queryset.filter(type=filters.validated_data['type'])
        if 'status' in filters.validated_data:
            queryset = queryset.filter(status=filters.validated_data['status'])
        if 'user' in filters.validated_data:
            queryset = queryset.filter(user_id=filters.validated_data['user'])

        listings = queryset.order_by('-created_at')[:LISTINGS_PAGE_LIMIT]
        return Response(
            {'listings': ListingSerializer(listings, many=True).data},
            status=status.HTTP_200_OK
        )

    def post(self, request, *args, **kwargs):
        serializer = ListingCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        listing = services.create_listing(
            request.user,
            data['type'],
            data['quantity'],
            collection=data.get('collection', ''),
            notes=data.get('notes', ''),
            context=AuditContext.from_request(request),
        )

        return Response(ListingSerializer(listing).data, status=status.HTTP_201_CREATED)


class ListingTransitionView(MarketplaceAPIView):
    """
    Base for PUT endpoints that apply one state machine event to a listing.

    Response (200):
    {
        "listing": {...},
        "profile": {id, display_name, level, tier, points}
    }
    """
    permission_classes = [IsAuthenticated]
    http_method_names = ['put', 'options']
    event = None

    def put(self, request, *args, **kwargs):
        result = services.transition_listing(
            kwargs['pk'],
            request.user,
            self.event,
            context=AuditContext.from_request(request),
        )

        request.user.refresh_from_db()
        return Response({
            'listing': ListingSerializer(result.listing).data,
            'profile': ProfileSummarySerializer(request.user).data,
        }, status=status.HTTP_200_OK)


class ListingCancelView(ListingTransitionView):
    """PUT /api/listings/<id>/cancel/ (owner only)."""
    event = 'cancel'


class ListingConfirmSentView(ListingTransitionView):
    """PUT /api/listings/<id>/confirm-sent/ (owner only, offers in pending_send)."""
    event = 'confirm_sent'


class ListingFulfillView(ListingTransitionView):
    """PUT /api/listings/<id>/fulfill/ (anyone but the owner, active listings)."""
    event = 'fulfill'


# ============================================================================
# Admin: listing validation
# ============================================================================

class AdminPendingOffersView(APIView):
    """
    Offers waiting for an admin to validate the received stamps.

    GET /api/admin/pending-offers/
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['get', 'options']

    def get(self, request, *args, **kwargs):
        offers = StampListing.objects.select_related('user').filter(
            type=StampListing.TYPE_OFFER,
            status=StampListing.STATUS_PENDING_VALIDATION
        ).order_by('created_at')
        return Response(
            {'listings': AdminListingSerializer(offers, many=True).data},
            status=status.HTTP_200_OK
        )


class AdminActiveRequestsView(APIView):
    """
    Active requests, oldest first, for admins to fulfill.

    GET /api/admin/active-requests/
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['get', 'options']

    def get(self, request, *args, **kwargs):
        requests = StampListing.objects.select_related('user').filter(
            type=StampListing.TYPE_REQUEST,
            status=StampListing.STATUS_ACTIVE
        ).order_by('created_at')
        return Response(
            {'listings': AdminListingSerializer(requests, many=True).data},
            status=status.HTTP_200_OK
        )


class AdminApproveOfferView(MarketplaceAPIView):
    """
    Approve an offer awaiting validation.

    PUT /api/admin/offers/<id>/approve/
    Request body (optional): {"quantity": 8}

    Success response (200):
    {
        "listing": {...},
        "profile": {...},
        "quantity_adjusted": true,
        "original_quantity": 10
    }
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['put', 'options']

    def put(self, request, *args, **kwargs):
        serializer = ApproveOfferSerializer(data=request.data or {})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        result = services.approve_offer(
            kwargs['pk'],
            request.user,
            quantity=serializer.validated_data.get('quantity'),
            context=AuditContext.from_request(request),
        )

        owner = Profile.objects.get(pk=result.listing.user_id)
        return Response({
            'listing': AdminListingSerializer(result.listing).data,
            'profile': ProfileSummarySerializer(owner).data,
            'quantity_adjusted': result.quantity_adjusted,
            'original_quantity': result.original_quantity,
        }, status=status.HTTP_200_OK)


class AdminRejectOfferView(MarketplaceAPIView):
    """
    Reject an offer awaiting validation.

    PUT /api/admin/offers/<id>/reject/
    Request body (optional): {"reason": "Stamps not received"}
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['put', 'options']

    def put(self, request, *args, **kwargs):
        serializer = RejectOfferSerializer(data=request.data or {})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        result = services.reject_offer(
            kwargs['pk'],
            request.user,
            reason=serializer.validated_data.get('reason', ''),
            context=AuditContext.from_request(request),
        )

        return Response(
            {'listing': AdminListingSerializer(result.listing).data},
            status=status.HTTP_200_OK
        )


class AdminFulfillRequestView(MarketplaceAPIView):
    """
    Fulfill an active request from the admin device.

    PUT /api/admin/requests/<id>/fulfill/
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['put', 'options']

    def put(self, request, *args, **kwargs):
        result = services.admin_fulfill_request(
            kwargs['pk'],
            request.user,
            context=AuditContext.from_request(request),
        )

        requester = Profile.objects.get(pk=result.listing.user_id)
        return Response({
            'listing': AdminListingSerializer(result.listing).data,
            'profile': ProfileSummarySerializer(requester).data,
        }, status=status.HTTP_200_OK)


# ============================================================================
# Catalog
# ============================================================================

class CollectionListView(APIView):
    """
    Active collections with their items and redemption options.

    GET /api/collections/
    """
    permission_classes = [AllowAny]
    http_method_names = ['get', 'options']

    def get(self, request, *args, **kwargs):
        collections = collections_queryset().filter(is_active=True)
        return Response(
            {'collections': StampCollectionSerializer(collections, many=True).data},
            status=status.HTTP_200_OK
        )


class AdminCollectionListCreateView(APIView):
    """
    GET /api/admin/collections/ (all collections, including inactive)
    POST /api/admin/collections/
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['get', 'post', 'options']

    def get(self, request, *args, **kwargs):
        return Response(
            {'collections': StampCollectionSerializer(collections_queryset(), many=True).data},
            status=status.HTTP_200_OK
        )

    def post(self, request, *args, **kwargs):
        serializer = StampCollectionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        collection = serializer.save(created_by=request.user)
        logger.info(f"Collection created. Collection ID: {collection.pk}, Admin ID: {request.user.pk}")
        return Response(StampCollectionSerializer(collection).data, status=status.HTTP_201_CREATED)


class AdminCollectionDetailView(APIView):
    """
    PUT /api/admin/collections/<id>/ (partial update)
    DELETE /api/admin/collections/<id>/ (cascades to items and options)
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['put', 'delete', 'options']

    def _get_collection(self, pk):
        try:
            return collections_queryset().get(pk=pk)
        except StampCollection.DoesNotExist:
            return None

    def put(self, request, *args, **kwargs):
        collection = self._get_collection(kwargs['pk'])
        if collection is None:
            return Response({'detail': 'Collection not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = StampCollectionSerializer(collection, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        collection = serializer.save()
        return Response(StampCollectionSerializer(collection).data, status=status.HTTP_200_OK)

    def delete(self, request, *args, **kwargs):
        collection = self._get_collection(kwargs['pk'])
        if collection is None:
            return Response({'detail': 'Collection not found.'}, status=status.HTTP_404_NOT_FOUND)

        collection.delete()
        logger.info(f"Collection deleted. Collection ID: {kwargs['pk']}, Admin ID: {request.user.pk}")
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminCollectionItemCreateView(APIView):
    """POST /api/admin/collections/<collection_id>/items/"""
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['post', 'options']

    def post(self, request, *args, **kwargs):
        try:
            collection = StampCollection.objects.get(pk=kwargs['collection_id'])
        except StampCollection.DoesNotExist:
            return Response({'detail': 'Collection not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = CollectionItemSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = serializer.save(collection=collection)
        return Response(CollectionItemSerializer(item).data, status=status.HTTP_201_CREATED)


class AdminCollectionItemDetailView(APIView):
    """
    PUT /api/admin/collections/<collection_id>/items/<id>/ (partial update)
    DELETE /api/admin/collections/<collection_id>/items/<id>/
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['put', 'delete', 'options']

    def _get_item(self, collection_id, pk):
        try:
            return CollectionItem.objects.get(pk=pk, collection_id=collection_id)
        except CollectionItem.DoesNotExist:
            return None

    def put(self, request, *args, **kwargs):
        item = self._get_item(kwargs['collection_id'], kwargs['pk'])
        if item is None:
            return Response({'detail': 'Item not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = CollectionItemSerializer(item, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = serializer.save()
        return Response(CollectionItemSerializer(item).data, status=status.HTTP_200_OK)

    def delete(self, request, *args, **kwargs):
        item = self._get_item(kwargs['collection_id'], kwargs['pk'])
        if item is None:
            return Response({'detail': 'Item not found.'}, status=status.HTTP_404_NOT_FOUND)

        item.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminRedemptionOptionCreateView(APIView):
    """POST /api/admin/collections/<collection_id>/items/<item_id>/options/"""
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['post', 'options']

    def post(self, request, *args, **kwargs):
        try:
            item = CollectionItem.objects.get(pk=kwargs['item_id'], collection_id=kwargs['collection_id'])
        except CollectionItem.DoesNotExist:
            return Response({'detail': 'Item not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = RedemptionOptionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        option = serializer.save(item=item)
        return Response(RedemptionOptionSerializer(option).data, status=status.HTTP_201_CREATED)


class AdminRedemptionOptionDeleteView(APIView):
    """DELETE /api/admin/collections/<collection_id>/items/<item_id>/options/<id>/"""
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['delete', 'options']

    def delete(self, request, *args, **kwargs):
        try:
            option = RedemptionOption.objects.get(
                pk=kwargs['pk'],
                item_id=kwargs['item_id'],
                item__collection_id=kwargs['collection_id']
            )
        except RedemptionOption.DoesNotExist:
            return Response({'detail': 'Option not found.'}, status=status.HTTP_404_NOT_FOUND)

        option.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Settings
# ============================================================================

class AdminSettingsView(APIView):
    """
    GET /api/admin/settings/
    PUT /api/admin/settings/  Body: {"admin_device_phone": "912345678"}
    """
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    http_method_names = ['get', 'put', 'options']

    def get(self, request, *args, **kwargs):
        return Response(AppSettingsSerializer(AppSettings.load()).data, status=status.HTTP_200_OK)

    def put(self, request, *args, **kwargs):
        app_settings = AppSettings.load()
        old_phone = app_settings.admin_device_phone

        serializer = AppSettingsSerializer(app_settings, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            app_settings = serializer.save(updated_by=request.user)
            log_settings_updated(
                old_phone,
                app_settings.admin_device_phone,
                context=AuditContext.from_request(request),
            )

        return Response(AppSettingsSerializer(app_settings).data, status=status.HTTP_200_OK)


class PublicSettingsView(APIView):
    """GET /api/settings/public/ (the phone users send their stamps to)."""
    permission_classes = [AllowAny]
    http_method_names = ['get', 'options']

    def get(self, request, *args, **kwargs):
        return Response(PublicSettingsSerializer(AppSettings.load()).data, status=status.HTTP_200_OK)


class HealthView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    http_method_names = ['get', 'options']

    def get(self, request, *args, **kwargs):
        return Response({'status': 'ok'}, status=status.HTTP_200_OK)
