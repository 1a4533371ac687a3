"""Services package for the alumni community backend."""

from .membership import MembershipLifecycle, UserNotFound
from .users import get_user, upsert_user_from_principal

__all__ = [
    "MembershipLifecycle",
    "UserNotFound",
    "get_user",
    "upsert_user_from_principal",
]
