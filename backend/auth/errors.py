"""
Authentication and authorization error taxonomy.

Identity-provider failures are translated into these types at the adapter
boundary so route handlers never see raw ``httpx`` errors. ``main.py``
renders every :class:`AuthError` as ``{"message": ...}`` JSON with the
class's status code.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for errors with an HTTP rendering."""

    status_code = 500
    default_message = "Authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DiscoveryError(AuthError):
    """Provider metadata unreachable or malformed."""

    status_code = 503
    default_message = "Identity provider unavailable"


class AuthExchangeError(AuthError):
    """Authorization code invalid, expired, replayed, or the exchange failed."""

    status_code = 400
    default_message = "Login failed"


class RefreshError(AuthError):
    """Refresh token revoked or expired."""

    status_code = 401
    default_message = "Unauthorized"


class Unauthorized(AuthError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AuthError):
    status_code = 403
    default_message = "Forbidden"


class NotConfigured(AuthError):
    """Optional provider route hit without credentials configured."""

    status_code = 503
    default_message = "Authentication provider not configured"
