"""Lookup of authenticators by auth type.

Built-in types are ``none`` and ``bearer``. Third-party packages add their
own by declaring an entry point in the ``routecli.authenticators`` group::

    [project.entry-points."routecli.authenticators"]
    api_key = "my_package.auth:ApiKeyAuthenticator"
"""

from __future__ import annotations

import importlib.metadata
import logging

from routecli.auth.base import Authenticator
from routecli.auth.bearer import BearerAuthenticator
from routecli.auth.no_auth import NoAuthenticator
from routecli.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "routecli.authenticators"
"""The entry-point group name used for authenticator discovery."""

_BUILTIN: dict[str, type[Authenticator]] = {
    "none": NoAuthenticator,
    "bearer": BearerAuthenticator,
}


def create_authenticator(auth_type: str) -> Authenticator:
    """Instantiate the authenticator registered for *auth_type*.

    Args:
        auth_type: ``"none"``, ``"bearer"``, or an entry-point name.

    Raises:
        ConfigError: If no authenticator is known under that name or the
            entry point cannot be loaded.
    """
    builtin = _BUILTIN.get(auth_type)
    if builtin is not None:
        return builtin()

    for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
        if ep.name != auth_type:
            continue
        try:
            cls = ep.load()
        except Exception as exc:
            logger.warning("Failed to load authenticator '%s': %s", ep.name, exc)
            raise ConfigError(f"Cannot load authenticator '{auth_type}': {exc}") from exc
        if not (isinstance(cls, type) and issubclass(cls, Authenticator)):
            raise ConfigError(f"Entry point '{auth_type}' is not an Authenticator subclass")
        return cls()

    available = ", ".join(sorted(_BUILTIN))
    raise ConfigError(f"Unknown authenticator '{auth_type}'. Available types: {available}")
