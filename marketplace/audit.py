"""
Audit trail helpers.

Listing lifecycle events and admin actions write one AuditLog entry each.
The HTTP layer supplies the actor, IP address and user agent through an
AuditContext; commands pass a context without request data.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import AuditLog

logger = logging.getLogger(__name__)

ENTITY_LISTING = 'listing'
ENTITY_SETTINGS = 'settings'


@dataclass(frozen=True)
class AuditContext:
    """Who performed an action and from where."""

    actor_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: str = ''

    @classmethod
    def from_request(cls, request):
        """
        Build a context from a DRF/Django request.

        The client IP is taken from X-Forwarded-For (first hop), then
        X-Real-IP, then REMOTE_ADDR.
        """
        actor = getattr(request, 'user', None)
        actor_id = actor.pk if actor is not None and actor.is_authenticated else None
        return cls(
            actor_id=actor_id,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', '')[:500],
        )


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()

    x_real_ip = request.META.get('HTTP_X_REAL_IP')
    if x_real_ip:
        return x_real_ip.strip()

    return request.META.get('REMOTE_ADDR')


def create_audit_log(action, entity_type, entity_id, context=None, target_user_id=None,
                     old_value=None, new_value=None, metadata=None):
    """
    Append an entry to the audit log.

    Args:
        action: One of AuditLog.ACTION_CHOICES
        entity_type: Kind of entity affected (e.g. 'listing')
        entity_id: Primary key of the affected entity
        context: AuditContext of the caller
        target_user_id: Profile the action was performed on behalf of or against
        old_value / new_value / metadata: JSON-serializable details

    Returns:
        AuditLog: The created entry
    """
    context = context or AuditContext()

    entry = AuditLog.objects.create(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=context.actor_id,
        target_user_id=target_user_id,
        old_value=old_value,
        new_value=new_value,
        metadata=metadata,
        ip_address=context.ip_address,
        user_agent=context.user_agent or '',
    )

    logger.debug(
        f"Audit entry recorded. Action: {action}, "
        f"Entity: {entity_type} {entity_id}, Actor: {context.actor_id}"
    )
    return entry


def log_listing_created(listing, context=None):
    return create_audit_log(
        AuditLog.ACTION_LISTING_CREATED,
        ENTITY_LISTING,
        listing.id,
        context=context,
        target_user_id=listing.user_id,
        new_value={'type': listing.type, 'quantity': listing.quantity},
    )


def log_listing_cancelled(listing, balance_reversed, context=None):
    return create_audit_log(
        AuditLog.ACTION_LISTING_CANCELLED,
        ENTITY_LISTING,
        listing.id,
        context=context,
        target_user_id=listing.user_id,
        metadata={
            'type': listing.type,
            'quantity': listing.quantity,
            'balance_reversed': balance_reversed,
        },
    )


def log_offer_approved(listing, original_quantity, approved_quantity, context=None):
    """
    Record an offer approval.

    When the admin changed the quantity the entry is recorded as a quantity
    adjustment instead of a plain approval.
    """
    was_adjusted = original_quantity != approved_quantity
    action = (
        AuditLog.ACTION_LISTING_QUANTITY_ADJUSTED if was_adjusted
        else AuditLog.ACTION_LISTING_APPROVED
    )
    return create_audit_log(
        action,
        ENTITY_LISTING,
        listing.id,
        context=context,
        target_user_id=listing.user_id,
        old_value={'quantity': original_quantity},
        new_value={'quantity': approved_quantity},
        metadata={'was_adjusted': was_adjusted},
    )


def log_offer_rejected(listing, reason, context=None):
    return create_audit_log(
        AuditLog.ACTION_LISTING_REJECTED,
        ENTITY_LISTING,
        listing.id,
        context=context,
        target_user_id=listing.user_id,
        metadata={'reason': reason},
    )


def log_request_fulfilled(listing, context=None):
    return create_audit_log(
        AuditLog.ACTION_LISTING_FULFILLED,
        ENTITY_LISTING,
        listing.id,
        context=context,
        target_user_id=listing.user_id,
        metadata={'quantity': listing.quantity},
    )


def log_listing_expired(listing, balance_reversed, context=None):
    return create_audit_log(
        AuditLog.ACTION_LISTING_EXPIRED,
        ENTITY_LISTING,
        listing.id,
        context=context,
        target_user_id=listing.user_id,
        metadata={
            'type': listing.type,
            'quantity': listing.quantity,
            'balance_reversed': balance_reversed,
        },
    )


def log_settings_updated(old_phone, new_phone, context=None):
    return create_audit_log(
        AuditLog.ACTION_SETTINGS_UPDATED,
        ENTITY_SETTINGS,
        'global',
        context=context,
        old_value={'admin_device_phone': old_phone},
        new_value={'admin_device_phone': new_phone},
    )
