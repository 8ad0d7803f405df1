"""Velora - a directory of AI tools (backend).

The backend owns everything except rendering:

- Catalog of tools (browse, filter, search, trending)
- Community submissions + admin review
- Accounts: password, email OTP and Google sign-in, all ending in a JWT
- Newsletter subscriptions

The React SPA is a pure API consumer.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
