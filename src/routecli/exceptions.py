"""Exception hierarchy for routecli.

All exceptions inherit from :class:`RouteCliError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`routecli.exit_codes`.
The top-level error handlers in :meth:`routecli.app.ApiRun.run` and
:func:`routecli.app.main` catch ``RouteCliError`` and exit with the
appropriate code, while unexpected exceptions produce a crash log and exit
with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    RouteCliError (exit 1)
    +-- InvalidUsageError          (exit 2)
    |   +-- MissingRequiredArgument
    +-- HTTPStatusError            (exit 8)
    |   +-- AuthError              (exit 3)
    |   +-- NotFoundError          (exit 4)
    |   +-- ServerError            (exit 5)
    +-- ConnectionError_           (exit 6)
    +-- DeclarationError           (exit 7)
    +-- SerializationError         (exit 9)
    +-- ConfigError                (exit 1)
"""

from __future__ import annotations

from typing import Optional

from routecli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_DECLARATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_STATUS_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERIALIZATION_ERROR,
    EXIT_SERVER_ERROR,
)


class RouteCliError(Exception):
    """Base exception for all routecli errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`routecli.exit_codes`. The entry point catches
    this exception type and exits with ``exc.exit_code``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(RouteCliError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class MissingRequiredArgument(InvalidUsageError):
    """Raised when a subcommand is reached without one of its positional captures.

    Args:
        variable: Name of the route variable that was not supplied.
    """

    def __init__(self, variable: str):
        super().__init__(f"<{variable}> is required")
        self.variable = variable


class HTTPStatusError(RouteCliError):
    """Raised when the API answers with a status other than the expected one.

    The rendered message stacks the server's explanation, the URL, and the
    declared (or generic) status message, most specific last, so the user
    reads the cause first.

    Args:
        message: Declared message for the status, or a generic one.
        status: HTTP status code received.
        url: Request URL.
        body: Response body text, possibly empty.
        hint: Optional remediation hint (e.g. how to authenticate).
    """

    exit_code = EXIT_HTTP_STATUS_ERROR

    def __init__(
        self,
        message: str,
        status: int,
        url: str = "",
        body: str = "",
        hint: Optional[str] = None,
    ):
        self.status = status
        self.url = url
        self.body = body
        self.hint = hint
        self.reason = message
        lines = []
        if body:
            lines.append(body.strip())
        if url:
            lines.append(f"URL: {url}")
        lines.append(f"{message} (HTTP {status})")
        if hint:
            lines.append(f"Hint: {hint}")
        super().__init__("\n".join(lines))


class AuthError(HTTPStatusError):
    """Raised when authentication or authorisation fails (HTTP 401/403)."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(HTTPStatusError):
    """Raised when the API returns HTTP 404 (resource not found)."""

    exit_code = EXIT_NOT_FOUND


class ServerError(HTTPStatusError):
    """Raised when the API returns an HTTP 5xx server error."""

    exit_code = EXIT_SERVER_ERROR


class ConnectionError_(RouteCliError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class DeclarationError(RouteCliError):
    """Raised when endpoint declarations cannot produce a command tree.

    Examples are conflicting sibling variable names, references to
    undeclared kinds, or two kinds claiming the same option on one command.
    """

    exit_code = EXIT_DECLARATION_ERROR


class SerializationError(RouteCliError):
    """Raised when a payload, query, or response cannot be (de)serialised."""

    exit_code = EXIT_SERIALIZATION_ERROR


class ConfigError(RouteCliError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE
