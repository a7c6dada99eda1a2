"""
Business errors raised by the listing services and the ledger.

Each error carries the HTTP status and machine-readable code the API answers
with; views catch MarketplaceError and turn it into a response.
"""

from rest_framework import status


class MarketplaceError(Exception):
    """Base class for marketplace business errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The operation could not be completed.'
    default_code = 'ERROR'

    def __init__(self, message=None, code=None, detail=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.detail = detail
        super().__init__(self.message)

    def as_response_data(self):
        """Body returned to API clients."""
        data = {'error': self.message, 'code': self.code}
        if self.detail:
            data['details'] = self.detail
        return data


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'
    default_code = 'NOT_FOUND'


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have permission to perform this action.'
    default_code = 'FORBIDDEN'


class InvalidStateTransition(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The listing is not in a state that accepts this action.'
    default_code = 'INVALID_STATE_TRANSITION'


class ConflictingListing(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'You already have an open listing.'
    default_code = 'CONFLICTING_LISTING'


class QuotaExceeded(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Requested quantity exceeds your weekly quota.'
    default_code = 'QUOTA_EXCEEDED'


class ValidationError(MarketplaceError):
    """Malformed input; detail holds field-level messages."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid request.'
    default_code = 'VALIDATION_ERROR'
