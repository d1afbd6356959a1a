"""Abstract base class for authenticators.

An :class:`Authenticator` is the narrow interface the transport uses to
authenticate requests:

* :meth:`~Authenticator.options` -- extra root options it adds to the
  generated CLI (e.g. ``--auth-token``).
* :meth:`~Authenticator.configure` -- reads those options and the user
  settings once, before the request is built.
* :meth:`~Authenticator.auth_header` -- the ``(name, value)`` header to
  send; an empty name means no header.
* :meth:`~Authenticator.error_help_message` -- the hint shown on HTTP 401.

To implement a new strategy, subclass :class:`Authenticator`, set
:attr:`~Authenticator.auth_type`, and register it under the
``routecli.authenticators`` entry-point group.

See Also:
    :mod:`routecli.auth.manager` for lookup by auth type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import click

from routecli.models import Settings


class Authenticator(ABC):
    """Abstract base class for authentication strategies."""

    @property
    @abstractmethod
    def auth_type(self) -> str:
        """Return the unique auth type identifier (``"none"``, ``"bearer"``)."""
        ...

    def options(self) -> list[click.Option]:
        """Root options this authenticator adds to the generated CLI."""
        return []

    def configure(self, params: dict[str, Any], settings: Settings) -> None:
        """Read CLI parameters and settings before the first request.

        Args:
            params: Parsed root parameters of the invocation.
            settings: Resolved user settings.
        """

    @abstractmethod
    def auth_header(self) -> tuple[str, str]:
        """Return the ``(header name, value)`` to send; ``("", "")`` for none."""
        ...

    def error_help_message(self) -> str:
        """Hint shown when the API answers HTTP 401."""
        return "Check your authentication"
