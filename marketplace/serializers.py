"""
Serializers for the SeloTroca marketplace API.

Every input serializer is strict: fields that are unknown or read-only are
rejected with a 400 instead of being silently ignored.
"""

from collections.abc import Mapping
from decimal import Decimal

from rest_framework import serializers

from .gamification import (
    MAX_WEEKLY_REQUEST,
    available_request_quota,
    format_euros,
    get_tier_info,
    points_for_next_level,
)
from .models import (
    AppSettings,
    CollectionItem,
    Profile,
    RedemptionOption,
    StampCollection,
    StampListing,
)
from .validators import NORMALIZED_PHONE_PATTERN, PORTUGAL_DISTRICTS, normalize_phone


class StrictFieldsMixin:
    """
    Reject payload keys that do not map to a writable serializer field.
    """

    def to_internal_value(self, data):
        if isinstance(data, Mapping):
            writable = {name for name, field in self.fields.items() if not field.read_only}
            unknown = sorted(set(data) - writable)
            if unknown:
                raise serializers.ValidationError(
                    {name: ['Unknown or read-only field.'] for name in unknown}
                )
        return super().to_internal_value(data)


def validate_portuguese_phone(value):
    """Normalize a phone number and make sure it is a Portuguese number."""
    normalized = normalize_phone(value)
    if not NORMALIZED_PHONE_PATTERN.match(normalized):
        raise serializers.ValidationError(
            'Enter a valid Portuguese phone number (e.g. 912345678 or +351912345678).'
        )
    return normalized


# ============================================================================
# Authentication
# ============================================================================

class OtpSendSerializer(StrictFieldsMixin, serializers.Serializer):
    """Request body for POST /api/auth/otp/send/."""

    phone = serializers.CharField(max_length=30)

    def validate_phone(self, value):
        return validate_portuguese_phone(value)


class OtpVerifySerializer(StrictFieldsMixin, serializers.Serializer):
    """Request body for POST /api/auth/otp/verify/."""

    phone = serializers.CharField(max_length=30)
    code = serializers.RegexField(
        r'^\d{4,10}$',
        error_messages={'invalid': 'Code must contain only digits.'}
    )

    def validate_phone(self, value):
        return validate_portuguese_phone(value)


# ============================================================================
# Profiles
# ============================================================================

class ProfileSummarySerializer(serializers.ModelSerializer):
    """Public subset of a profile embedded in listings."""

    class Meta:
        model = Profile
        fields = ['id', 'display_name', 'level', 'tier', 'points']
        read_only_fields = fields


class AdminProfileSummarySerializer(serializers.ModelSerializer):
    """Profile subset shown to admins, including the phone number."""

    class Meta:
        model = Profile
        fields = ['id', 'display_name', 'phone', 'level', 'tier', 'points']
        read_only_fields = fields


class ProfileSerializer(serializers.ModelSerializer):
    """
    Full profile of the authenticated user.

    Adds the derived gamification view: remaining weekly request quota,
    progress towards the next level and the tier description.
    """

    available_request_quota = serializers.SerializerMethodField()
    max_request_quantity = serializers.SerializerMethodField()
    level_progress = serializers.SerializerMethodField()
    tier_info = serializers.SerializerMethodField()

    class Meta:
        model = Profile
        fields = [
            'id', 'phone', 'display_name', 'email', 'date_of_birth', 'district',
            'registration_complete', 'is_admin', 'points', 'level', 'tier',
            'stamp_balance', 'weekly_stamps_requested', 'weekly_reset_at',
            'total_offered', 'total_requested', 'available_request_quota',
            'max_request_quantity', 'level_progress', 'tier_info',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_available_request_quota(self, obj):
        return available_request_quota(obj)

    def get_max_request_quantity(self, obj):
        return min(MAX_WEEKLY_REQUEST, available_request_quota(obj))

    def get_level_progress(self, obj):
        return points_for_next_level(obj.points)

    def get_tier_info(self, obj):
        return get_tier_info(obj.tier)


class ProfileUpdateSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    """
    Serializer for profile updates (PATCH).

    Updatable fields:
    - display_name: at least 2 characters
    - email
    - date_of_birth
    - district: one of the Portuguese districts
    - registration_complete

    Gamification counters, phone and admin flags cannot be changed here.
    """

    display_name = serializers.CharField(min_length=2, max_length=100, required=False)
    district = serializers.ChoiceField(choices=PORTUGAL_DISTRICTS, required=False)

    class Meta:
        model = Profile
        fields = ['display_name', 'email', 'date_of_birth', 'district', 'registration_complete']
        extra_kwargs = {
            'email': {'required': False},
            'date_of_birth': {'required': False},
            'registration_complete': {'required': False},
        }

    def update(self, instance, validated_data):
        """
        Update only the submitted fields.

        Args:
            instance: Profile to update
            validated_data: Validated data from serializer

        Returns:
            Profile: Updated profile
        """
        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        if fields_to_update:
            instance.save(update_fields=fields_to_update + ['updated_at'])

        return instance


class LeaderboardEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = [
            'id', 'display_name', 'district', 'points', 'level', 'tier',
            'total_offered', 'total_requested',
        ]
        read_only_fields = fields


# ============================================================================
# Listings
# ============================================================================

class ListingSerializer(serializers.ModelSerializer):
    """Listing as returned by the API, with the owner's public summary."""

    user = ProfileSummarySerializer(read_only=True)

    class Meta:
        model = StampListing
        fields = [
            'id', 'user', 'type', 'quantity', 'collection', 'notes', 'status',
            'fulfilled_by', 'fulfilled_at', 'validated_by', 'validated_at',
            'rejection_reason', 'expires_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class AdminListingSerializer(ListingSerializer):
    """Listing for admin queues; exposes the owner's phone number."""

    user = AdminProfileSummarySerializer(read_only=True)


class ListingCreateSerializer(StrictFieldsMixin, serializers.Serializer):
    """
    Request body for POST /api/listings/.

    Quota and open-listing rules are enforced by services.create_listing().
    """

    type = serializers.ChoiceField(choices=StampListing.TYPE_CHOICES)
    quantity = serializers.IntegerField(min_value=1)
    collection = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)


class ListingFilterSerializer(serializers.Serializer):
    """
    Query parameters for GET /api/listings/.

    Unrelated parameters such as cache busters are ignored.
    """

    type = serializers.ChoiceField(choices=StampListing.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=StampListing.STATUS_CHOICES, required=False)
    user = serializers.UUIDField(required=False)


class ApproveOfferSerializer(StrictFieldsMixin, serializers.Serializer):
    """Optional quantity override for an offer approval."""

    quantity = serializers.IntegerField(min_value=1, required=False)


class RejectOfferSerializer(StrictFieldsMixin, serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


# ============================================================================
# Catalog
# ============================================================================

class RedemptionOptionSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    fee_euros = serializers.DecimalField(
        max_digits=8,
        decimal_places=2,
        min_value=Decimal('0'),
        required=False,
        coerce_to_string=False
    )
    fee_display = serializers.SerializerMethodField()

    class Meta:
        model = RedemptionOption
        fields = ['id', 'stamps_required', 'fee_euros', 'fee_display', 'label', 'sort_order', 'created_at']
        read_only_fields = ['id', 'fee_display', 'created_at']

    def get_fee_display(self, obj):
        return format_euros(obj.fee_euros)


class CollectionItemSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    options = RedemptionOptionSerializer(many=True, read_only=True)

    class Meta:
        model = CollectionItem
        fields = ['id', 'name', 'subtitle', 'image_url', 'sort_order', 'options', 'created_at', 'updated_at']
        read_only_fields = ['id', 'options', 'created_at', 'updated_at']


class StampCollectionSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    items = CollectionItemSerializer(many=True, read_only=True)

    class Meta:
        model = StampCollection
        fields = [
            'id', 'name', 'description', 'image_url', 'starts_at', 'ends_at',
            'is_active', 'sort_order', 'items', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'items', 'created_at', 'updated_at']

    def validate(self, attrs):
        starts_at = attrs.get('starts_at', getattr(self.instance, 'starts_at', None))
        ends_at = attrs.get('ends_at', getattr(self.instance, 'ends_at', None))
        if starts_at and ends_at and ends_at < starts_at:
            raise serializers.ValidationError({'ends_at': ['End date cannot be before the start date.']})
        return attrs


# ============================================================================
# Settings
# ============================================================================

class AppSettingsSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    class Meta:
        model = AppSettings
        fields = ['admin_device_phone', 'updated_by', 'updated_at']
        read_only_fields = ['updated_by', 'updated_at']

    def validate_admin_device_phone(self, value):
        if not value:
            return value
        return validate_portuguese_phone(value)


class PublicSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = AppSettings
        fields = ['admin_device_phone']
        read_only_fields = fields
