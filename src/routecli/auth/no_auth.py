"""Authenticator for APIs that need no credentials."""

from __future__ import annotations

from routecli.auth.base import Authenticator


class NoAuthenticator(Authenticator):
    """Send no authentication header."""

    @property
    def auth_type(self) -> str:
        return "none"

    def auth_header(self) -> tuple[str, str]:
        return "", ""

    def error_help_message(self) -> str:
        return "This API declares no authentication; check the base URL and your access rights"
