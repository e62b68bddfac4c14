"""
Custom permission classes for payments app.
"""
import logging

from django.conf import settings
from rest_framework.permissions import BasePermission

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Address of the caller as seen by the outermost trusted proxy.

    X-Forwarded-For is only read when ``MPESA_CALLBACK_TRUSTED_PROXIES`` is
    set. Each trusted proxy appends the address it received from, so the
    client is that many entries from the right; anything further left was
    supplied by the caller and is ignored.
    """
    trusted = getattr(settings, 'MPESA_CALLBACK_TRUSTED_PROXIES', 0)
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if trusted > 0 and forwarded:
        hops = [hop.strip() for hop in forwarded.split(',') if hop.strip()]
        if len(hops) >= trusted:
            return hops[-trusted]
    return request.META.get('REMOTE_ADDR', '')


class IsAllowedCallbackSource(BasePermission):
    """
    Permission for provider callback endpoints.

    When ``MPESA_CALLBACK_ALLOWED_IPS`` is empty every source is accepted,
    otherwise the caller's address must be listed.
    """

    message = 'Callback source address is not allowed.'

    def has_permission(self, request, view):
        allowed = [ip for ip in getattr(settings, 'MPESA_CALLBACK_ALLOWED_IPS', []) if ip]
        if not allowed:
            return True

        client_ip = get_client_ip(request)
        if client_ip in allowed:
            return True

        logger.warning("Rejected M-Pesa callback from %s", client_ip)
        return False


class CanVerifyPayments(BasePermission):
    """
    Permission to verify manual M-Pesa entries.

    Allows managers, admins and superusers.
    """

    message = 'Only managers can verify M-Pesa entries.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.can_verify_payments)
