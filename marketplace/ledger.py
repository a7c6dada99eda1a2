"""
Balance ledger operations.

Every function here mutates profile points, balances and counters as a side
effect of a listing transition. Each one runs inside transaction.atomic() and
locks the profile rows it touches with select_for_update(), so concurrent
approvals or fulfillments for the same profile are serialized instead of
losing updates. When two profiles are involved they are locked in primary
key order. Log lines are emitted once the outermost transaction commits.
"""

import logging

from django.db import transaction
from django.utils import timezone

from .exceptions import NotFound
from .gamification import POINTS_PER_OFFERED_STAMP, POINTS_PER_REQUEST
from .models import Profile, StampListing, StampTransaction

logger = logging.getLogger(__name__)

RANK_FIELDS = ['points', 'level', 'tier', 'updated_at']


def _lock_profile(user_id):
    try:
        return Profile.objects.select_for_update().get(pk=user_id)
    except Profile.DoesNotExist:
        raise NotFound(f'Profile {user_id} not found.', code='PROFILE_NOT_FOUND')


def _lock_profiles(*user_ids):
    """Lock several profiles in a stable order and return them keyed by id."""
    ids = sorted({str(user_id) for user_id in user_ids})
    profiles = {
        str(profile.pk): profile
        for profile in Profile.objects.select_for_update().filter(pk__in=ids).order_by('pk')
    }
    missing = [user_id for user_id in ids if user_id not in profiles]
    if missing:
        raise NotFound(f'Profile {missing[0]} not found.', code='PROFILE_NOT_FOUND')
    return profiles


def award_offer_balance(user_id, quantity):
    """
    Credit a profile for an approved offer.

    stamp_balance += quantity, points += quantity * POINTS_PER_OFFERED_STAMP,
    total_offered += 1, level and tier recomputed.

    Args:
        user_id: Offer owner
        quantity: Approved number of stamps

    Returns:
        Profile: The updated profile

    Raises:
        NotFound: If the profile does not exist
    """
    with transaction.atomic():
        profile = _lock_profile(user_id)

        profile.stamp_balance += quantity
        profile.points += quantity * POINTS_PER_OFFERED_STAMP
        profile.total_offered += 1
        profile.refresh_rank()
        profile.save(update_fields=RANK_FIELDS + ['stamp_balance', 'total_offered'])

    message = (
        f"Offer balance awarded. User ID: {user_id}, Quantity: {quantity}, "
        f"Points: {profile.points}, Level: {profile.level}, Tier: {profile.tier}"
    )
    transaction.on_commit(lambda: logger.info(message))
    return profile


def reverse_offer_balance(user_id, quantity):
    """
    Undo award_offer_balance() for a cancelled or expired offer.

    Points are floored at 0. Only call this once per listing, for an offer
    whose balance was actually awarded.

    Args:
        user_id: Offer owner
        quantity: Quantity that was credited

    Returns:
        Profile: The updated profile

    Raises:
        NotFound: If the profile does not exist
    """
    with transaction.atomic():
        profile = _lock_profile(user_id)

        profile.points = max(0, profile.points - quantity * POINTS_PER_OFFERED_STAMP)
        profile.stamp_balance -= quantity
        profile.total_offered = max(0, profile.total_offered - 1)
        profile.refresh_rank()
        profile.save(update_fields=RANK_FIELDS + ['stamp_balance', 'total_offered'])

    message = (
        f"Offer balance reversed. User ID: {user_id}, Quantity: {quantity}, "
        f"Points: {profile.points}, Level: {profile.level}, Tier: {profile.tier}"
    )
    transaction.on_commit(lambda: logger.info(message))
    return profile


def award_request_fulfilled(user_id, quantity):
    """
    Credit a requester whose request an admin fulfilled.

    points += quantity * POINTS_PER_REQUEST, total_requested += 1, level and
    tier recomputed.
    """
    with transaction.atomic():
        profile = _lock_profile(user_id)

        profile.points += quantity * POINTS_PER_REQUEST
        profile.total_requested += 1
        profile.refresh_rank()
        profile.save(update_fields=RANK_FIELDS + ['total_requested'])

    message = (
        f"Request fulfillment awarded. User ID: {user_id}, Quantity: {quantity}, "
        f"Points: {profile.points}, Level: {profile.level}, Tier: {profile.tier}"
    )
    transaction.on_commit(lambda: logger.info(message))
    return profile


def complete_listing_points(listing, fulfiller_id):
    """
    Settle an active listing fulfilled by another user.

    Offer: the owner was credited at approval time, so only the fulfiller
    earns quantity * POINTS_PER_REQUEST (and a total_requested increment)
    while the owner's stamp_balance drops by quantity.

    Request: the owner earns quantity * POINTS_PER_REQUEST and a
    total_requested increment; the fulfiller earns
    quantity * POINTS_PER_OFFERED_STAMP and a total_offered increment.

    Both branches record one StampTransaction and mark the listing fulfilled.

    Args:
        listing: StampListing instance (locked by the caller) or its id
        fulfiller_id: Profile fulfilling the listing

    Returns:
        StampTransaction: The ledger record of the exchange

    Raises:
        NotFound: If the listing or a profile does not exist
    """
    with transaction.atomic():
        if not isinstance(listing, StampListing):
            try:
                listing = StampListing.objects.select_for_update().get(pk=listing)
            except StampListing.DoesNotExist:
                raise NotFound(f'Listing {listing} not found.', code='LISTING_NOT_FOUND')

        profiles = _lock_profiles(listing.user_id, fulfiller_id)
        owner = profiles[str(listing.user_id)]
        fulfiller = profiles[str(fulfiller_id)]
        quantity = listing.quantity

        if listing.type == StampListing.TYPE_OFFER:
            points_to = quantity * POINTS_PER_REQUEST

            fulfiller.points += points_to
            fulfiller.total_requested += 1
            fulfiller.refresh_rank()
            fulfiller.save(update_fields=RANK_FIELDS + ['total_requested'])

            owner.stamp_balance -= quantity
            owner.save(update_fields=['stamp_balance', 'updated_at'])

            record = StampTransaction.objects.create(
                from_user=owner,
                to_user=fulfiller,
                listing=listing,
                quantity=quantity,
                points_from=0,
                points_to=points_to,
                type=StampListing.TYPE_OFFER,
            )
        else:
            points_to = quantity * POINTS_PER_REQUEST
            points_from = quantity * POINTS_PER_OFFERED_STAMP

            owner.points += points_to
            owner.total_requested += 1
            owner.refresh_rank()
            owner.save(update_fields=RANK_FIELDS + ['total_requested'])

            fulfiller.points += points_from
            fulfiller.total_offered += 1
            fulfiller.refresh_rank()
            fulfiller.save(update_fields=RANK_FIELDS + ['total_offered'])

            record = StampTransaction.objects.create(
                from_user=fulfiller,
                to_user=owner,
                listing=listing,
                quantity=quantity,
                points_from=points_from,
                points_to=points_to,
                type=StampListing.TYPE_REQUEST,
            )

        listing.status = StampListing.STATUS_FULFILLED
        listing.fulfilled_by_id = fulfiller.pk
        listing.fulfilled_at = timezone.now()
        listing.save()

    message = (
        f"Listing points completed. Listing ID: {listing.id}, Type: {listing.type}, "
        f"Quantity: {quantity}, Owner ID: {owner.pk}, Fulfiller ID: {fulfiller.pk}"
    )
    transaction.on_commit(lambda: logger.info(message))
    return record
