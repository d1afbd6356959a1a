"""Authentication for generated CLIs.

- :class:`Authenticator` -- abstract base class of auth strategies.
- :class:`NoAuthenticator` and :class:`BearerAuthenticator` -- built-ins.
- :func:`create_authenticator` -- lookup by auth type, including
  third-party entry points.
"""

from routecli.auth.base import Authenticator
from routecli.auth.bearer import BearerAuthenticator
from routecli.auth.manager import create_authenticator
from routecli.auth.no_auth import NoAuthenticator

__all__ = [
    "Authenticator",
    "BearerAuthenticator",
    "NoAuthenticator",
    "create_authenticator",
]
