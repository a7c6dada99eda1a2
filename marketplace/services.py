"""
Listing lifecycle services.

Implements listing creation and every transition of the listing state
machine (see StampListing.EVENTS). Each operation runs in one database
transaction: the listing row is locked with select_for_update(), the status
precondition and actor guards are checked, ledger side effects are applied,
the listing is saved and an audit entry is written. Any error raised along
the way rolls the whole operation back.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from . import audit
from .exceptions import (
    ConflictingListing,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    QuotaExceeded,
    ValidationError,
)
from .gamification import (
    LISTING_LIFETIME,
    MAX_WEEKLY_REQUEST,
    POINTS_PER_REQUEST,
    available_request_quota,
    roll_weekly_quota,
)
from .ledger import (
    award_offer_balance,
    award_request_fulfilled,
    complete_listing_points,
    reverse_offer_balance,
)
from .models import Profile, StampListing, StampTransaction

logger = logging.getLogger(__name__)

LISTING_TYPE_LABELS = {
    StampListing.TYPE_OFFER: 'oferta',
    StampListing.TYPE_REQUEST: 'pedido',
}


@dataclass
class TransitionResult:
    """Outcome of a listing transition."""

    listing: StampListing
    event: str
    previous_status: str
    balance_reversed: bool = False
    original_quantity: Optional[int] = None
    stamp_transaction: Optional[StampTransaction] = None

    @property
    def quantity_adjusted(self):
        return (
            self.original_quantity is not None
            and self.original_quantity != self.listing.quantity
        )


def _lock_listing(listing_id):
    try:
        return StampListing.objects.select_for_update().get(pk=listing_id)
    except (StampListing.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFound(f'Listing {listing_id} not found.', code='LISTING_NOT_FOUND')


def _require_admin(actor, action):
    if actor is None or not getattr(actor, 'is_admin', False):
        logger.warning(
            f"Non-admin attempted admin listing action. Action: {action}, "
            f"User ID: {getattr(actor, 'pk', None)}"
        )
        raise Forbidden('Admin privileges required.')


def _require_owner(listing, actor, action):
    if actor is None or listing.user_id != actor.pk:
        logger.warning(
            f"Non-owner attempted owner-only listing action. Action: {action}, "
            f"Listing ID: {listing.id}, User ID: {getattr(actor, 'pk', None)}"
        )
        raise Forbidden(f'Only the owner of this listing can {action.replace("_", " ")} it.')


def _require_event(listing, event):
    is_valid, error_message = listing.can_apply(event)
    if not is_valid:
        logger.warning(
            f"Rejected listing transition. Listing ID: {listing.id}, "
            f"Event: {event}, Status: {listing.status}, Type: {listing.type}"
        )
        raise InvalidStateTransition(error_message)


def _log_transition(listing, event, previous_status, actor_id):
    logger.info(
        f"Listing status updated. Listing ID: {listing.id}, Event: {event}, "
        f"Old Status: {previous_status}, New Status: {listing.status}, "
        f"Actor ID: {actor_id}"
    )


def _validate_quantity(quantity, field='quantity'):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(
            'Quantity must be a positive integer.',
            detail={field: ['Quantity must be a positive integer.']}
        )


def create_listing(user, listing_type, quantity, collection='', notes='', context=None, now=None):
    """
    Create an offer or a request.

    Offers start in pending_send; requests start active and are charged to
    the weekly request quota (after applying the weekly reset rule). The
    owner's profile row is locked for the whole operation, which serializes
    concurrent creations by the same user; the conditional unique constraint
    on open listings backs this up at the database level.

    Args:
        user: Profile creating the listing
        listing_type: 'offer' or 'request'
        quantity: Positive number of stamps
        collection: Optional collection label
        notes: Optional free text
        context: AuditContext of the caller
        now: Reference time (defaults to timezone.now())

    Returns:
        StampListing: The created listing

    Raises:
        ValidationError: Unknown type or non-positive quantity
        ConflictingListing: The user already holds an open listing
        QuotaExceeded: Request above MAX_WEEKLY_REQUEST or the remaining quota
    """
    if listing_type not in LISTING_TYPE_LABELS:
        raise ValidationError(
            f"Invalid listing type '{listing_type}'.",
            detail={'type': [f"Must be one of: {', '.join(LISTING_TYPE_LABELS)}."]}
        )
    _validate_quantity(quantity)

    if now is None:
        now = timezone.now()

    with transaction.atomic():
        try:
            profile = Profile.objects.select_for_update().get(pk=user.pk)
        except Profile.DoesNotExist:
            raise NotFound('Profile not found.', code='PROFILE_NOT_FOUND')

        conflicting = StampListing.objects.filter(
            user=profile,
            status__in=StampListing.OPEN_STATUSES
        ).first()

        if conflicting is not None:
            logger.warning(
                f"Listing creation blocked by open listing. User ID: {profile.pk}, "
                f"Open Listing ID: {conflicting.id}, Open Status: {conflicting.status}"
            )
            raise ConflictingListing(
                f"Já tens um(a) {LISTING_TYPE_LABELS[conflicting.type]} ativo(a). "
                f"Cancela primeiro para criar um(a) {LISTING_TYPE_LABELS[listing_type]}."
            )

        if listing_type == StampListing.TYPE_REQUEST:
            if quantity > MAX_WEEKLY_REQUEST:
                raise QuotaExceeded(
                    f'A single request cannot exceed {MAX_WEEKLY_REQUEST} stamps.'
                )

            remaining = available_request_quota(profile, now=now)
            if quantity > remaining:
                raise QuotaExceeded(
                    f'Requested {quantity} stamps but only {remaining} remain in your weekly quota.',
                    detail={'available_request_quota': remaining}
                )

            roll_weekly_quota(profile, quantity, now=now)
            profile.save(update_fields=['weekly_stamps_requested', 'weekly_reset_at', 'updated_at'])

            initial_status = StampListing.STATUS_ACTIVE
        else:
            initial_status = StampListing.STATUS_PENDING_SEND

        listing = StampListing(
            user=profile,
            type=listing_type,
            quantity=quantity,
            collection=collection or '',
            notes=notes or '',
            status=initial_status,
            expires_at=now + LISTING_LIFETIME,
        )

        try:
            with transaction.atomic():
                listing.save()
        except IntegrityError:
            logger.warning(
                f"Concurrent listing creation rejected by constraint. User ID: {profile.pk}"
            )
            raise ConflictingListing()

        audit.log_listing_created(listing, context=context)

    logger.info(
        f"Listing created. Listing ID: {listing.id}, Type: {listing.type}, "
        f"Quantity: {listing.quantity}, Status: {listing.status}, User ID: {profile.pk}"
    )
    return listing


def confirm_sent(listing_id, actor, context=None):
    """Owner confirms the offered stamps were sent: pending_send -> pending_validation."""
    with transaction.atomic():
        listing = _lock_listing(listing_id)
        _require_owner(listing, actor, 'confirm_sent')
        _require_event(listing, 'confirm_sent')

        previous_status = listing.status
        listing.status = listing.target_status('confirm_sent')
        listing.save()

    _log_transition(listing, 'confirm_sent', previous_status, actor.pk)
    return TransitionResult(listing=listing, event='confirm_sent', previous_status=previous_status)


def cancel_listing(listing_id, actor, context=None):
    """
    Owner cancels an open listing.

    The offer balance is reversed only when the listing is an active offer,
    the one state in which the owner was already credited.
    """
    with transaction.atomic():
        listing = _lock_listing(listing_id)
        _require_owner(listing, actor, 'cancel')
        _require_event(listing, 'cancel')

        previous_status = listing.status
        balance_reversed = listing.holds_awarded_balance
        if balance_reversed:
            reverse_offer_balance(listing.user_id, listing.quantity)

        listing.status = listing.target_status('cancel')
        listing.save()

        audit.log_listing_cancelled(listing, balance_reversed, context=context)

    _log_transition(listing, 'cancel', previous_status, actor.pk)
    return TransitionResult(
        listing=listing,
        event='cancel',
        previous_status=previous_status,
        balance_reversed=balance_reversed,
    )


def approve_offer(listing_id, actor, quantity=None, context=None):
    """
    Admin approves an offer awaiting validation.

    The admin may override the quantity with the number of stamps actually
    received; the owner is credited for the final quantity.

    Args:
        listing_id: Offer to approve
        actor: Admin profile
        quantity: Optional adjusted quantity (positive)
        context: AuditContext of the caller

    Returns:
        TransitionResult: original_quantity / quantity_adjusted describe the override
    """
    _require_admin(actor, 'approve')
    if quantity is not None:
        _validate_quantity(quantity)

    with transaction.atomic():
        listing = _lock_listing(listing_id)
        _require_event(listing, 'approve')

        previous_status = listing.status
        original_quantity = listing.quantity
        final_quantity = quantity if quantity is not None else original_quantity

        award_offer_balance(listing.user_id, final_quantity)

        listing.status = listing.target_status('approve')
        listing.quantity = final_quantity
        listing.validated_by = actor
        listing.validated_at = timezone.now()
        listing.save()

        audit.log_offer_approved(listing, original_quantity, final_quantity, context=context)

    _log_transition(listing, 'approve', previous_status, actor.pk)
    return TransitionResult(
        listing=listing,
        event='approve',
        previous_status=previous_status,
        original_quantity=original_quantity,
    )


def reject_offer(listing_id, actor, reason='', context=None):
    """Admin rejects an offer awaiting validation, recording the reason."""
    _require_admin(actor, 'reject')

    with transaction.atomic():
        listing = _lock_listing(listing_id)
        _require_event(listing, 'reject')

        previous_status = listing.status
        listing.status = listing.target_status('reject')
        listing.rejection_reason = reason or ''
        listing.validated_by = actor
        listing.validated_at = timezone.now()
        listing.save()

        audit.log_offer_rejected(listing, reason or None, context=context)

    _log_transition(listing, 'reject', previous_status, actor.pk)
    return TransitionResult(listing=listing, event='reject', previous_status=previous_status)


def fulfill_listing(listing_id, actor, context=None):
    """
    Another user fulfills an active listing.

    Both parties are credited by complete_listing_points(), which also
    records the StampTransaction.
    """
    with transaction.atomic():
        listing = _lock_listing(listing_id)

        if actor is None or listing.user_id == actor.pk:
            logger.warning(
                f"Self-fulfillment attempt blocked. Listing ID: {listing.id}, "
                f"User ID: {getattr(actor, 'pk', None)}"
            )
            raise Forbidden('You cannot fulfill your own listing.')

        _require_event(listing, 'fulfill')

        previous_status = listing.status
        record = complete_listing_points(listing, actor.pk)

        audit.log_request_fulfilled(listing, context=context)

    _log_transition(listing, 'fulfill', previous_status, actor.pk)
    return TransitionResult(
        listing=listing,
        event='fulfill',
        previous_status=previous_status,
        stamp_transaction=record,
    )


def admin_fulfill_request(listing_id, actor, context=None):
    """
    Admin fulfills an active request from the stamps held on the admin device.

    The requester earns quantity * POINTS_PER_REQUEST; the admin is recorded
    as the sender of the StampTransaction and earns nothing.
    """
    _require_admin(actor, 'admin_fulfill')

    with transaction.atomic():
        listing = _lock_listing(listing_id)

        if listing.user_id == actor.pk:
            raise Forbidden('You cannot fulfill your own listing.')

        _require_event(listing, 'admin_fulfill')

        previous_status = listing.status
        award_request_fulfilled(listing.user_id, listing.quantity)

        record = StampTransaction.objects.create(
            from_user=actor,
            to_user_id=listing.user_id,
            listing=listing,
            quantity=listing.quantity,
            points_from=0,
            points_to=listing.quantity * POINTS_PER_REQUEST,
            type=StampListing.TYPE_REQUEST,
        )

        listing.status = listing.target_status('admin_fulfill')
        listing.fulfilled_by = actor
        listing.fulfilled_at = timezone.now()
        listing.save()

        audit.log_request_fulfilled(listing, context=context)

    _log_transition(listing, 'admin_fulfill', previous_status, actor.pk)
    return TransitionResult(
        listing=listing,
        event='admin_fulfill',
        previous_status=previous_status,
        stamp_transaction=record,
    )


def expire_listing(listing_id, context=None, now=None):
    """
    Move an open listing past its expiry date to expired.

    Applies the same balance rule as cancellation. Used by the
    expire_listings management command.

    Raises:
        InvalidStateTransition: The listing is terminal or not yet expired
    """
    if now is None:
        now = timezone.now()

    with transaction.atomic():
        listing = _lock_listing(listing_id)
        _require_event(listing, 'expire')

        if listing.expires_at > now:
            raise InvalidStateTransition(
                f'Listing {listing.id} does not expire until {listing.expires_at.isoformat()}.'
            )

        previous_status = listing.status
        balance_reversed = listing.holds_awarded_balance
        if balance_reversed:
            reverse_offer_balance(listing.user_id, listing.quantity)

        listing.status = listing.target_status('expire')
        listing.save()

        audit.log_listing_expired(listing, balance_reversed, context=context)

    _log_transition(listing, 'expire', previous_status, context.actor_id if context else None)
    return TransitionResult(
        listing=listing,
        event='expire',
        previous_status=previous_status,
        balance_reversed=balance_reversed,
    )


def transition_listing(listing_id, actor, event, quantity=None, reason=None, context=None):
    """
    Apply a state machine event to a listing.

    Single entry point used by callers that hold the event as data.

    Args:
        listing_id: Listing to transition
        actor: Profile performing the event (None for the sweeper)
        event: One of StampListing.EVENTS
        quantity: Adjusted quantity for 'approve'
        reason: Rejection reason for 'reject'
        context: AuditContext of the caller

    Returns:
        TransitionResult

    Raises:
        ValidationError: Unknown event
    """
    handlers = {
        'confirm_sent': lambda: confirm_sent(listing_id, actor, context=context),
        'cancel': lambda: cancel_listing(listing_id, actor, context=context),
        'approve': lambda: approve_offer(listing_id, actor, quantity=quantity, context=context),
        'reject': lambda: reject_offer(listing_id, actor, reason=reason or '', context=context),
        'fulfill': lambda: fulfill_listing(listing_id, actor, context=context),
        'admin_fulfill': lambda: admin_fulfill_request(listing_id, actor, context=context),
        'expire': lambda: expire_listing(listing_id, context=context),
    }

    handler = handlers.get(event)
    if handler is None:
        raise ValidationError(
            f"Unknown listing event '{event}'.",
            detail={'event': [f"Must be one of: {', '.join(handlers)}."]}
        )
    return handler()
