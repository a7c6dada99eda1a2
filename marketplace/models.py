"""
Data models for the SeloTroca stamp exchange marketplace.
"""

import uuid

from django.contrib.auth.base_user import BaseUserManager
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .gamification import (
    LISTING_LIFETIME,
    WEEKLY_RESET_PERIOD,
    calculate_level,
    calculate_tier,
)
from .validators import normalize_phone, validate_district, validate_phone_number


def default_weekly_reset_at():
    """Reset date given to new profiles: one week from now."""
    return timezone.now() + WEEKLY_RESET_PERIOD


def default_listing_expires_at():
    """Expiry date given to new listings: one week from now."""
    return timezone.now() + LISTING_LIFETIME


class ProfileManager(BaseUserManager):
    """
    Manager for Profile, which logs in by phone number instead of username.
    """

    use_in_migrations = True

    def _create_user(self, phone, password, **extra_fields):
        if not phone:
            raise ValueError('The phone number must be set.')

        phone = normalize_phone(phone)
        profile = self.model(phone=phone, **extra_fields)

        if password:
            profile.set_password(password)
        else:
            profile.set_unusable_password()

        profile.save(using=self._db)
        return profile

    def create_user(self, phone, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        extra_fields.setdefault('is_admin', False)
        return self._create_user(phone, password, **extra_fields)

    def create_superuser(self, phone, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_admin', True)
        extra_fields.setdefault('registration_complete', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self._create_user(phone, password, **extra_fields)


class Profile(AbstractUser):
    """
    Marketplace participant.

    Profiles authenticate with a verified phone number; there is no username.
    Besides contact details, a profile carries the gamification state that
    the ledger maintains:
    - points: lifetime points, never negative
    - level / tier: derived from points (see gamification.calculate_level)
    - stamp_balance: stamps credited through approved offers
    - weekly_stamps_requested / weekly_reset_at: rolling request quota
    - total_offered / total_requested: lifetime exchange counters
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    username = None

    phone = models.CharField(
        _('phone number'),
        max_length=15,
        unique=True,
        validators=[validate_phone_number],
        error_messages={
            'unique': _('A profile with that phone number already exists.'),
        },
        help_text=_('Normalized Portuguese phone number (351XXXXXXXXX).')
    )

    display_name = models.CharField(
        _('display name'),
        max_length=100,
        blank=True,
        default='',
        help_text=_('Name shown to other users.')
    )

    date_of_birth = models.DateField(
        _('date of birth'),
        null=True,
        blank=True
    )

    district = models.CharField(
        _('district'),
        max_length=50,
        blank=True,
        default='',
        validators=[validate_district],
        help_text=_('Portuguese district the user lives in.')
    )

    registration_complete = models.BooleanField(
        _('registration complete'),
        default=False,
        help_text=_('Whether the user finished the onboarding form.')
    )

    is_admin = models.BooleanField(
        _('marketplace admin'),
        default=False,
        help_text=_('Admins validate offers and fulfill requests.')
    )

    points = models.PositiveIntegerField(_('points'), default=0)

    level = models.PositiveIntegerField(
        _('level'),
        default=1,
        validators=[MinValueValidator(1)]
    )

    tier = models.PositiveSmallIntegerField(
        _('tier'),
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )

    stamp_balance = models.IntegerField(_('stamp balance'), default=0)

    weekly_stamps_requested = models.PositiveIntegerField(
        _('stamps requested this week'),
        default=0
    )

    weekly_reset_at = models.DateTimeField(
        _('weekly reset at'),
        default=default_weekly_reset_at,
        help_text=_('When the weekly request counter next resets.')
    )

    total_offered = models.PositiveIntegerField(_('total offered'), default=0)

    total_requested = models.PositiveIntegerField(_('total requested'), default=0)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    objects = ProfileManager()

    USERNAME_FIELD = 'phone'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = _('profile')
        verbose_name_plural = _('profiles')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['points'], name='profile_points_idx'),
            models.Index(fields=['district'], name='profile_district_idx'),
        ]

    def __str__(self):
        """Return display name, falling back to the phone number."""
        return self.display_name or self.phone

    def refresh_rank(self):
        """Recompute level and tier from the current points total."""
        self.level = calculate_level(self.points)
        self.tier = calculate_tier(self.level)


class StampListing(models.Model):
    """
    An offer or request for stamps posted by a profile.

    Offers go pending_send -> pending_validation and are settled by an admin
    (fulfilled or rejected). Requests start active and are fulfilled by
    another user or by an admin. Any open listing can be cancelled by its
    owner or expired by the sweeper. fulfilled, cancelled, rejected and
    expired are terminal.

    A profile holds at most one open listing at a time, whatever its type.
    """

    TYPE_OFFER = 'offer'
    TYPE_REQUEST = 'request'

    TYPE_CHOICES = [
        (TYPE_OFFER, 'Offer'),
        (TYPE_REQUEST, 'Request'),
    ]

    STATUS_PENDING_SEND = 'pending_send'
    STATUS_PENDING_VALIDATION = 'pending_validation'
    STATUS_ACTIVE = 'active'
    STATUS_FULFILLED = 'fulfilled'
    STATUS_CANCELLED = 'cancelled'
    STATUS_EXPIRED = 'expired'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_PENDING_SEND, 'Pending Send'),
        (STATUS_PENDING_VALIDATION, 'Pending Validation'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_FULFILLED, 'Fulfilled'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    OPEN_STATUSES = (STATUS_PENDING_SEND, STATUS_PENDING_VALIDATION, STATUS_ACTIVE)

    TERMINAL_STATUSES = (STATUS_FULFILLED, STATUS_CANCELLED, STATUS_EXPIRED, STATUS_REJECTED)

    # Status graph, checked on every save of an existing listing
    VALID_TRANSITIONS = {
        STATUS_PENDING_SEND: [STATUS_PENDING_VALIDATION, STATUS_CANCELLED, STATUS_EXPIRED],
        STATUS_PENDING_VALIDATION: [STATUS_FULFILLED, STATUS_REJECTED, STATUS_CANCELLED, STATUS_EXPIRED],
        STATUS_ACTIVE: [STATUS_FULFILLED, STATUS_CANCELLED, STATUS_EXPIRED],
        STATUS_FULFILLED: [],
        STATUS_CANCELLED: [],
        STATUS_EXPIRED: [],
        STATUS_REJECTED: [],
    }

    # Event -> (accepted current statuses, accepted listing types, target status)
    EVENTS = {
        'confirm_sent': ((STATUS_PENDING_SEND,), (TYPE_OFFER,), STATUS_PENDING_VALIDATION),
        'approve': ((STATUS_PENDING_VALIDATION,), (TYPE_OFFER,), STATUS_FULFILLED),
        'reject': ((STATUS_PENDING_VALIDATION,), (TYPE_OFFER,), STATUS_REJECTED),
        'cancel': (OPEN_STATUSES, (TYPE_OFFER, TYPE_REQUEST), STATUS_CANCELLED),
        'fulfill': ((STATUS_ACTIVE,), (TYPE_OFFER, TYPE_REQUEST), STATUS_FULFILLED),
        'admin_fulfill': ((STATUS_ACTIVE,), (TYPE_REQUEST,), STATUS_FULFILLED),
        'expire': (OPEN_STATUSES, (TYPE_OFFER, TYPE_REQUEST), STATUS_EXPIRED),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        Profile,
        on_delete=models.CASCADE,
        related_name='listings',
        help_text=_('Profile that posted the listing')
    )

    type = models.CharField(
        _('type'),
        max_length=10,
        choices=TYPE_CHOICES
    )

    quantity = models.PositiveIntegerField(
        _('quantity'),
        validators=[MinValueValidator(1, message=_('Quantity must be at least 1.'))]
    )

    collection = models.CharField(
        _('collection'),
        max_length=100,
        blank=True,
        default=''
    )

    notes = models.TextField(
        _('notes'),
        max_length=500,
        blank=True,
        default=''
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES
    )

    fulfilled_by = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fulfilled_listings'
    )

    fulfilled_at = models.DateTimeField(_('fulfilled at'), null=True, blank=True)

    validated_by = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='validated_listings'
    )

    validated_at = models.DateTimeField(_('validated at'), null=True, blank=True)

    rejection_reason = models.TextField(
        _('rejection reason'),
        max_length=500,
        blank=True,
        default=''
    )

    expires_at = models.DateTimeField(
        _('expires at'),
        default=default_listing_expires_at
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('stamp listing')
        verbose_name_plural = _('stamp listings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status'], name='listing_user_status_idx'),
            models.Index(fields=['type', 'status'], name='listing_type_status_idx'),
            models.Index(fields=['expires_at'], name='listing_expires_at_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user'],
                name='unique_open_listing_per_user',
                condition=models.Q(status__in=['pending_send', 'pending_validation', 'active'])
            )
        ]

    def __str__(self):
        return f"{self.get_type_display()} of {self.quantity} stamps ({self.status})"

    @property
    def holds_awarded_balance(self):
        """
        True when the owner was already credited for this listing.

        Only an active offer qualifies; cancelling or expiring it must reverse
        the credit. Requests and offers awaiting validation were never credited.
        """
        return self.type == self.TYPE_OFFER and self.status == self.STATUS_ACTIVE

    def can_apply(self, event):
        """
        Check if an event may be applied to the listing in its current state.

        Args:
            event: One of the keys of EVENTS

        Returns:
            tuple: (is_valid: bool, error_message: str or None)
        """
        if event not in self.EVENTS:
            return False, f"Unknown listing event '{event}'."

        allowed_statuses, allowed_types, _target = self.EVENTS[event]

        if self.type not in allowed_types:
            return False, f"Cannot {event.replace('_', ' ')} a listing of type '{self.type}'."

        if self.status not in allowed_statuses:
            return False, (
                f"Cannot {event.replace('_', ' ')} a listing in status '{self.status}'."
            )

        return True, None

    def target_status(self, event):
        """Status the listing moves to when the event is applied."""
        return self.EVENTS[event][2]

    def clean(self):
        """
        Validate status changes against VALID_TRANSITIONS.

        Terminal listings are immutable: no status change is accepted once
        a listing is fulfilled, cancelled, rejected or expired.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self._state.adding:
            if self.status in self.TERMINAL_STATUSES:
                raise ValidationError({
                    'status': _('A listing cannot be created in a terminal status.')
                })
            return

        try:
            old_status = StampListing.objects.values_list('status', flat=True).get(pk=self.pk)
        except StampListing.DoesNotExist:
            return

        if old_status != self.status and self.status not in self.VALID_TRANSITIONS.get(old_status, []):
            raise ValidationError({
                'status': _('Invalid listing status transition from %(old)s to %(new)s.') % {
                    'old': old_status,
                    'new': self.status,
                }
            })

    def save(self, *args, **kwargs):
        """
        Override save to ensure validation.

        The open-listing constraint is left to the database so that
        concurrent inserts surface as IntegrityError.
        """
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)


class StampTransaction(models.Model):
    """
    Immutable ledger record of a fulfilled listing.

    Exactly one transaction exists per fulfilled listing. points_from and
    points_to are the points credited to from_user and to_user.
    """

    TYPE_CHOICES = StampListing.TYPE_CHOICES

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    from_user = models.ForeignKey(
        Profile,
        on_delete=models.PROTECT,
        related_name='outgoing_transactions',
        help_text=_('Profile that supplied the stamps')
    )

    to_user = models.ForeignKey(
        Profile,
        on_delete=models.PROTECT,
        related_name='incoming_transactions',
        help_text=_('Profile that received the stamps')
    )

    listing = models.OneToOneField(
        StampListing,
        on_delete=models.PROTECT,
        related_name='stamp_transaction'
    )

    quantity = models.PositiveIntegerField(_('quantity'))

    points_from = models.PositiveIntegerField(_('points credited to sender'), default=0)

    points_to = models.PositiveIntegerField(_('points credited to receiver'), default=0)

    type = models.CharField(_('type'), max_length=10, choices=TYPE_CHOICES)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('stamp transaction')
        verbose_name_plural = _('stamp transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['from_user'], name='stamptx_from_user_idx'),
            models.Index(fields=['to_user'], name='stamptx_to_user_idx'),
        ]

    def __str__(self):
        return f"{self.quantity} stamps ({self.type}) for listing {self.listing_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Stamp transactions are immutable.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Stamp transactions cannot be deleted.')


class AuditLog(models.Model):
    """
    Append-only record of listing lifecycle and admin actions.
    """

    ACTION_LISTING_CREATED = 'listing_created'
    ACTION_LISTING_CANCELLED = 'listing_cancelled'
    ACTION_LISTING_APPROVED = 'listing_approved'
    ACTION_LISTING_QUANTITY_ADJUSTED = 'listing_quantity_adjusted'
    ACTION_LISTING_REJECTED = 'listing_rejected'
    ACTION_LISTING_FULFILLED = 'listing_fulfilled'
    ACTION_LISTING_EXPIRED = 'listing_expired'
    ACTION_SETTINGS_UPDATED = 'settings_updated'

    ACTION_CHOICES = [
        (ACTION_LISTING_CREATED, 'Listing Created'),
        (ACTION_LISTING_CANCELLED, 'Listing Cancelled'),
        (ACTION_LISTING_APPROVED, 'Listing Approved'),
        (ACTION_LISTING_QUANTITY_ADJUSTED, 'Listing Quantity Adjusted'),
        (ACTION_LISTING_REJECTED, 'Listing Rejected'),
        (ACTION_LISTING_FULFILLED, 'Listing Fulfilled'),
        (ACTION_LISTING_EXPIRED, 'Listing Expired'),
        (ACTION_SETTINGS_UPDATED, 'Settings Updated'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    action = models.CharField(_('action'), max_length=40, choices=ACTION_CHOICES)

    entity_type = models.CharField(_('entity type'), max_length=40)

    entity_id = models.CharField(_('entity id'), max_length=64)

    actor = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_actions'
    )

    target_user = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_entries'
    )

    old_value = models.JSONField(_('old value'), null=True, blank=True)

    new_value = models.JSONField(_('new value'), null=True, blank=True)

    metadata = models.JSONField(_('metadata'), null=True, blank=True)

    ip_address = models.GenericIPAddressField(_('IP address'), null=True, blank=True)

    user_agent = models.CharField(_('user agent'), max_length=500, blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('audit log entry')
        verbose_name_plural = _('audit log entries')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='audit_entity_idx'),
            models.Index(fields=['action'], name='audit_action_idx'),
            models.Index(fields=['actor'], name='audit_actor_idx'),
        ]

    def __str__(self):
        return f"{self.action} on {self.entity_type} {self.entity_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Audit log entries are append-only.')
        super().save(*args, **kwargs)


class OtpCode(models.Model):
    """One-time verification code sent to a phone number."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    phone = models.CharField(_('phone number'), max_length=15)

    code = models.CharField(_('code'), max_length=6)

    expires_at = models.DateTimeField(_('expires at'))

    attempts = models.PositiveSmallIntegerField(_('attempts'), default=0)

    used = models.BooleanField(_('used'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('OTP code')
        verbose_name_plural = _('OTP codes')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['phone', 'used'], name='otp_phone_used_idx'),
        ]

    def __str__(self):
        return f"OTP for {self.phone}"

    def is_expired(self, now=None):
        return (now or timezone.now()) >= self.expires_at


class StampCollection(models.Model):
    """Redemption catalog campaign, e.g. a supermarket's yearly collection."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(_('name'), max_length=100)

    description = models.TextField(_('description'), blank=True, default='')

    image_url = models.URLField(_('image URL'), max_length=500, blank=True, default='')

    starts_at = models.DateField(_('starts at'))

    ends_at = models.DateField(_('ends at'))

    is_active = models.BooleanField(_('active'), default=True)

    sort_order = models.IntegerField(_('sort order'), default=0)

    created_by = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_collections'
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('stamp collection')
        verbose_name_plural = _('stamp collections')
        ordering = ['sort_order', 'created_at']

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()
        if self.starts_at and self.ends_at and self.ends_at < self.starts_at:
            raise ValidationError({
                'ends_at': _('End date cannot be before the start date.')
            })


class CollectionItem(models.Model):
    """Catalog item that can be redeemed within a collection."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    collection = models.ForeignKey(
        StampCollection,
        on_delete=models.CASCADE,
        related_name='items'
    )

    name = models.CharField(_('name'), max_length=100)

    subtitle = models.CharField(_('subtitle'), max_length=200, blank=True, default='')

    image_url = models.URLField(_('image URL'), max_length=500, blank=True, default='')

    sort_order = models.IntegerField(_('sort order'), default=0)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('collection item')
        verbose_name_plural = _('collection items')
        ordering = ['sort_order', 'created_at']

    def __str__(self):
        return self.name


class RedemptionOption(models.Model):
    """A way of redeeming an item: a number of stamps plus a fee."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    item = models.ForeignKey(
        CollectionItem,
        on_delete=models.CASCADE,
        related_name='options'
    )

    stamps_required = models.PositiveIntegerField(
        _('stamps required'),
        validators=[MinValueValidator(1)]
    )

    fee_euros = models.DecimalField(
        _('fee (EUR)'),
        max_digits=8,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)]
    )

    label = models.CharField(_('label'), max_length=100, blank=True, default='')

    sort_order = models.IntegerField(_('sort order'), default=0)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('redemption option')
        verbose_name_plural = _('redemption options')
        ordering = ['sort_order', 'created_at']

    def __str__(self):
        return f"{self.stamps_required} stamps + {self.fee_euros} EUR"


class AppSettings(models.Model):
    """
    Global application settings, stored as a single row with id 'global'.
    """

    GLOBAL_ID = 'global'

    id = models.CharField(primary_key=True, max_length=20, default=GLOBAL_ID, editable=False)

    admin_device_phone = models.CharField(
        _('admin device phone'),
        max_length=20,
        blank=True,
        default='',
        help_text=_('Phone number users send their stamps to.')
    )

    updated_by = models.ForeignKey(
        Profile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('app settings')
        verbose_name_plural = _('app settings')

    def __str__(self):
        return 'App settings'

    @classmethod
    def load(cls):
        """Return the settings row, creating it on first access."""
        settings_row, _created = cls.objects.get_or_create(pk=cls.GLOBAL_ID)
        return settings_row
