"""
Django admin configuration for the marketplace models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import (
    AppSettings,
    AuditLog,
    CollectionItem,
    OtpCode,
    Profile,
    RedemptionOption,
    StampCollection,
    StampListing,
    StampTransaction,
)


@admin.register(Profile)
class ProfileAdmin(BaseUserAdmin):
    """
    Admin interface for Profile model.

    Profiles have no username and sign in by phone, so the stock user
    fieldsets are replaced. Gamification counters are owned by the ledger
    and shown read-only.
    """

    list_display = [
        'phone',
        'display_name',
        'district',
        'points',
        'level',
        'tier',
        'is_admin',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'tier',
        'is_admin',
        'registration_complete',
        'is_staff',
        'is_active',
        'district',
    ]

    search_fields = [
        'phone',
        'display_name',
        'email',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('phone', 'password')
        }),
        (_('Personal Info'), {
            'fields': ('display_name', 'email', 'date_of_birth', 'district', 'registration_complete')
        }),
        (_('Gamification'), {
            'fields': (
                'points',
                'level',
                'tier',
                'stamp_balance',
                'weekly_stamps_requested',
                'weekly_reset_at',
                'total_offered',
                'total_requested',
            )
        }),
        (_('Permissions'), {
            'fields': (
                'is_admin',
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('phone', 'password1', 'password2', 'display_name', 'is_admin'),
        }),
    )

    readonly_fields = [
        'points',
        'level',
        'tier',
        'stamp_balance',
        'weekly_stamps_requested',
        'weekly_reset_at',
        'total_offered',
        'total_requested',
        'created_at',
        'updated_at',
        'last_login',
        'date_joined',
    ]

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return self.readonly_fields
        return []


@admin.register(StampListing)
class StampListingAdmin(admin.ModelAdmin):
    """
    Admin interface for StampListing model.

    Listings are created and moved through their lifecycle by the API, so
    the fields the ledger depends on are read-only here.
    """

    list_display = [
        'id',
        'user',
        'type',
        'quantity',
        'status',
        'expires_at',
        'created_at',
    ]

    list_filter = [
        'type',
        'status',
        'created_at',
    ]

    search_fields = [
        'user__phone',
        'user__display_name',
        'collection',
        'notes',
    ]

    readonly_fields = [
        'user',
        'type',
        'quantity',
        'status',
        'fulfilled_by',
        'fulfilled_at',
        'validated_by',
        'validated_at',
        'created_at',
        'updated_at',
    ]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('user', 'type', 'quantity', 'collection', 'notes')
        }),
        (_('Lifecycle'), {
            'fields': (
                'status',
                'expires_at',
                'fulfilled_by',
                'fulfilled_at',
                'validated_by',
                'validated_at',
                'rejection_reason',
            )
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def has_add_permission(self, request):
        return False


class ReadOnlyAdmin(admin.ModelAdmin):
    """Admin for append-only records."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StampTransaction)
class StampTransactionAdmin(ReadOnlyAdmin):
    list_display = [
        'id',
        'from_user',
        'to_user',
        'listing',
        'quantity',
        'points_from',
        'points_to',
        'type',
        'created_at',
    ]

    list_filter = ['type', 'created_at']

    search_fields = ['from_user__phone', 'to_user__phone']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = [
        'action',
        'entity_type',
        'entity_id',
        'actor',
        'target_user',
        'ip_address',
        'created_at',
    ]

    list_filter = ['action', 'entity_type', 'created_at']

    search_fields = ['entity_id', 'actor__phone', 'target_user__phone']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 50


@admin.register(OtpCode)
class OtpCodeAdmin(ReadOnlyAdmin):
    list_display = ['phone', 'attempts', 'used', 'expires_at', 'created_at']

    list_filter = ['used']

    search_fields = ['phone']

    exclude = ['code']

    ordering = ['-created_at']


class RedemptionOptionInline(admin.TabularInline):
    model = RedemptionOption
    extra = 1
    fields = ['stamps_required', 'fee_euros', 'label', 'sort_order']
    ordering = ['sort_order']


class CollectionItemInline(admin.TabularInline):
    model = CollectionItem
    extra = 1
    fields = ['name', 'subtitle', 'image_url', 'sort_order']
    ordering = ['sort_order']
    show_change_link = True


@admin.register(StampCollection)
class StampCollectionAdmin(admin.ModelAdmin):
    list_display = ['name', 'starts_at', 'ends_at', 'is_active', 'sort_order']

    list_filter = ['is_active']

    search_fields = ['name', 'description']

    readonly_fields = ['created_by', 'created_at', 'updated_at']

    ordering = ['sort_order', 'created_at']

    inlines = [CollectionItemInline]

    def save_model(self, request, obj, form, change):
        if not change:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)


@admin.register(CollectionItem)
class CollectionItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'collection', 'sort_order']

    list_filter = ['collection']

    search_fields = ['name', 'subtitle', 'collection__name']

    ordering = ['collection', 'sort_order']

    inlines = [RedemptionOptionInline]


@admin.register(AppSettings)
class AppSettingsAdmin(admin.ModelAdmin):
    list_display = ['id', 'admin_device_phone', 'updated_by', 'updated_at']

    readonly_fields = ['updated_by', 'updated_at']

    def has_add_permission(self, request):
        return not AppSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        obj.updated_by = request.user
        super().save_model(request, obj, form, change)
