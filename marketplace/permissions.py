"""
Custom permission classes for the SeloTroca marketplace.
"""

from rest_framework import permissions


class IsMarketplaceAdmin(permissions.BasePermission):
    """
    Permission class that allows only marketplace admins to access the endpoint.

    This permission checks if the authenticated user has is_admin=True.
    Returns 403 Forbidden for regular users.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    """

    message = 'You do not have permission to perform this action. Admin privileges required.'

    def has_permission(self, request, view):
        """
        Check if user is authenticated and is a marketplace admin.

        Args:
            request: HTTP request object
            view: View being accessed

        Returns:
            bool: True if user is an admin, False otherwise
        """
        # User must be authenticated
        if not request.user or not request.user.is_authenticated:
            return False

        return bool(getattr(request.user, 'is_admin', False))

