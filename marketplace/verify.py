"""
Phone verification providers.

A VerifyProvider sends a verification code to a phone number and checks the
code the user types back. The provider is chosen once from settings by
build_verify_provider() when the URL configuration is loaded and handed to
the authentication views, so tests can pass a fake provider instead.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from . import otp

logger = logging.getLogger(__name__)

SMS_MESSAGE = 'SeloTroca: O seu codigo de verificacao e {code}. Valido por {minutes} minutos.'


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of a provider call.

    status is the provider-specific status string ('pending', 'approved',
    or an error code). dev_code is only set by providers that expose the
    code for local development.
    """

    success: bool
    status: str
    dev_code: Optional[str] = None


class VerifyProvider:
    """Interface for phone verification backends."""

    name = 'base'

    def send_verification(self, phone):
        """
        Send a verification code to a normalized phone number.

        Returns:
            VerificationResult
        """
        raise NotImplementedError

    def check_verification(self, phone, code):
        """
        Check a code for a normalized phone number.

        Returns:
            VerificationResult: success is True only for a valid code
        """
        raise NotImplementedError


class LocalVerifyProvider(VerifyProvider):
    """
    Codes stored in the OtpCode table and delivered through the log.

    Meant for development and staging. With expose_code=True the code is also
    returned to the caller so the client can show it.
    """

    name = 'local'

    def __init__(self, expose_code=False):
        self.expose_code = expose_code

    def send_verification(self, phone):
        normalized_phone, code = otp.send_otp(phone)
        message = SMS_MESSAGE.format(code=code, minutes=settings.OTP_EXPIRY_MINUTES)
        logger.info(f"[local sms] To: +{normalized_phone} Message: {message}")
        return VerificationResult(
            success=True,
            status='pending',
            dev_code=code if self.expose_code else None,
        )

    def check_verification(self, phone, code):
        result = otp.verify_otp(phone, code)
        if result.success:
            return VerificationResult(success=True, status='approved')
        return VerificationResult(success=False, status=result.error)


class TwilioVerifyProvider(VerifyProvider):
    """Twilio Verify service; Twilio generates, sends and checks the codes."""

    name = 'twilio'

    def __init__(self, account_sid, auth_token, service_sid, client=None):
        if not service_sid:
            raise ImproperlyConfigured('TWILIO_VERIFY_SERVICE_SID must be set for the twilio provider.')
        self.service_sid = service_sid
        self.client = client or TwilioClient(account_sid, auth_token)

    def _service(self):
        return self.client.verify.v2.services(self.service_sid)

    def send_verification(self, phone):
        try:
            verification = self._service().verifications.create(to=f'+{phone}', channel='sms')
        except TwilioException as e:
            logger.error(f"Twilio verification send failed. Phone: {phone}, Error: {e}")
            return VerificationResult(success=False, status='provider_error')

        logger.info(f"Twilio verification sent. Phone: {phone}, Status: {verification.status}")
        return VerificationResult(success=True, status=verification.status)

    def check_verification(self, phone, code):
        try:
            check = self._service().verification_checks.create(to=f'+{phone}', code=code)
        except TwilioException as e:
            logger.error(f"Twilio verification check failed. Phone: {phone}, Error: {e}")
            return VerificationResult(success=False, status='provider_error')

        return VerificationResult(success=check.status == 'approved', status=check.status)


def build_verify_provider():
    """
    Create the provider named by settings.VERIFY_PROVIDER.

    Raises:
        ImproperlyConfigured: Unknown provider or missing credentials
    """
    provider_name = settings.VERIFY_PROVIDER

    if provider_name == 'local':
        provider = LocalVerifyProvider(expose_code=settings.DEBUG)
    elif provider_name == 'twilio':
        provider = TwilioVerifyProvider(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_VERIFY_SERVICE_SID,
        )
    else:
        raise ImproperlyConfigured(f"Unknown VERIFY_PROVIDER '{provider_name}'.")

    logger.info(f"Verification provider configured: {provider.name}")
    return provider
