"""Bearer token authenticator.

Adds an ``--auth-token/-T`` root option. When it is absent, the token falls
back to the ``auth_token`` setting (itself overridable with the
``<PREFIX>_AUTH_TOKEN`` environment variable), which may be a literal token
or a credential source such as ``env:MY_TOKEN`` or ``file:~/.token``.
"""

from __future__ import annotations

from typing import Any, Optional

import click

from routecli.auth.base import Authenticator
from routecli.config import resolve_credential
from routecli.generator.command_tree import RouteOption
from routecli.models import Settings


class BearerAuthenticator(Authenticator):
    """Send ``Authorization: Bearer <token>``."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    @property
    def auth_type(self) -> str:
        return "bearer"

    def options(self) -> list[click.Option]:
        return [
            RouteOption(
                ["--auth-token", "-T", "auth_token"],
                default=None,
                help="Bearer token (default: the auth_token setting)",
                heading="Configuration",
            )
        ]

    def configure(self, params: dict[str, Any], settings: Settings) -> None:
        token = params.get("auth_token")
        if token:
            self._token = token
        elif settings.auth_token:
            self._token = resolve_credential(settings.auth_token)

    def auth_header(self) -> tuple[str, str]:
        if not self._token:
            return "", ""
        return "Authorization", f"Bearer {self._token}"

    def error_help_message(self) -> str:
        return "Provide a valid token with --auth-token or the 'auth_token' setting"
