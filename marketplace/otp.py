"""
Locally stored one-time verification codes.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import OtpCode
from .validators import normalize_phone

logger = logging.getLogger(__name__)

OTP_EXPIRED = 'OTP_EXPIRED'
TOO_MANY_ATTEMPTS = 'TOO_MANY_ATTEMPTS'
INVALID_OTP = 'INVALID_OTP'


@dataclass(frozen=True)
class OtpCheck:
    success: bool
    error: Optional[str] = None


def generate_otp():
    """Return a random six digit code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


def send_otp(phone, now=None):
    """
    Issue a new code for a phone number.

    Every unused code previously issued for the number is invalidated.

    Args:
        phone: Phone number in any accepted format
        now: Reference time (defaults to timezone.now())

    Returns:
        tuple: (normalized_phone, code)
    """
    if now is None:
        now = timezone.now()

    normalized_phone = normalize_phone(phone)
    code = generate_otp()
    expires_at = now + timedelta(minutes=settings.OTP_EXPIRY_MINUTES)

    with transaction.atomic():
        invalidated = OtpCode.objects.filter(phone=normalized_phone, used=False).update(used=True)
        OtpCode.objects.create(phone=normalized_phone, code=code, expires_at=expires_at)

    logger.info(
        f"OTP issued. Phone: {normalized_phone}, Invalidated previous codes: {invalidated}"
    )
    return normalized_phone, code


def verify_otp(phone, code, now=None):
    """
    Check a code against the latest unused, unexpired code for a phone.

    Every check counts as an attempt. After MAX_OTP_ATTEMPTS failed attempts
    the code is burned. A matching code is marked used.

    Returns:
        OtpCheck: success flag and, on failure, one of OTP_EXPIRED,
            TOO_MANY_ATTEMPTS or INVALID_OTP
    """
    if now is None:
        now = timezone.now()

    normalized_phone = normalize_phone(phone)

    with transaction.atomic():
        otp = (
            OtpCode.objects.select_for_update()
            .filter(phone=normalized_phone, used=False, expires_at__gt=now)
            .order_by('-created_at')
            .first()
        )

        if otp is None:
            logger.warning(f"OTP verification failed, no valid code. Phone: {normalized_phone}")
            return OtpCheck(success=False, error=OTP_EXPIRED)

        if otp.attempts >= settings.MAX_OTP_ATTEMPTS:
            OtpCode.objects.filter(pk=otp.pk).update(used=True)
            logger.warning(f"OTP verification blocked, too many attempts. Phone: {normalized_phone}")
            return OtpCheck(success=False, error=TOO_MANY_ATTEMPTS)

        OtpCode.objects.filter(pk=otp.pk).update(attempts=F('attempts') + 1)

        if not secrets.compare_digest(otp.code, str(code)):
            logger.warning(f"OTP verification failed, wrong code. Phone: {normalized_phone}")
            return OtpCheck(success=False, error=INVALID_OTP)

        OtpCode.objects.filter(pk=otp.pk).update(used=True)

    logger.info(f"OTP verified. Phone: {normalized_phone}")
    return OtpCheck(success=True)
