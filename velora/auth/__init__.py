"""Authentication / authorization helpers.

Accounts can be reached four ways, all ending in the same JWT:

- Registration (username/email/password)
- Password login
- Email one-time passcode (creates the account on first use)
- Google sign-in (optional, only when OAuth credentials are configured)

Tokens travel as `Authorization: Bearer <token>` and only carry the user id;
the user is re-read on every request. Admin rights come from `users.role`.
"""

from .deps import get_current_user, get_optional_user, require_admin
from .crud import bootstrap_admin_if_needed, create_user, public_user

__all__ = [
    "get_current_user",
    "get_optional_user",
    "require_admin",
    "bootstrap_admin_if_needed",
    "create_user",
    "public_user",
]
