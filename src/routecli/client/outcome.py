"""Outcomes of one API call.

The transport never raises for an unexpected HTTP status or an undecodable
body: it returns a :class:`Failure` describing what happened, and callers
decide whether to render it or raise it (:meth:`Failure.to_error`).
Network-level problems are the exception; they raise
:class:`~routecli.exceptions.ConnectionError_` directly.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from routecli.exceptions import (
    AuthError,
    HTTPStatusError,
    NotFoundError,
    RouteCliError,
    SerializationError,
    ServerError,
)


class Success:
    """The call returned the expected status; *value* is the decoded result."""

    ok = True

    def __init__(self, value: Any = None) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


class Failure:
    """The call did not produce a usable result.

    Args:
        message: Declared message for the status, a generic one, or the
            deserialisation error.
        status: HTTP status received; ``None`` when the status was the
            expected one but the body could not be decoded.
        body: Response body text.
        hint: Remediation hint (set for HTTP 401).
        url: Request URL.
    """

    ok = False

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        hint: Optional[str] = None,
        url: str = "",
    ) -> None:
        self.message = message
        self.status = status
        self.body = body
        self.hint = hint
        self.url = url

    def __repr__(self) -> str:
        return f"Failure(status={self.status!r}, message={self.message!r})"

    def to_error(self) -> RouteCliError:
        """Map this failure onto the exception hierarchy."""
        if self.status is None:
            lines = [self.message]
            if self.url:
                lines.append(f"URL: {self.url}")
            return SerializationError("\n".join(lines))
        error_cls: type[HTTPStatusError]
        if self.status in (401, 403):
            error_cls = AuthError
        elif self.status == 404:
            error_cls = NotFoundError
        elif self.status >= 500:
            error_cls = ServerError
        else:
            error_cls = HTTPStatusError
        return error_cls(self.message, self.status, url=self.url, body=self.body, hint=self.hint)


Outcome = Union[Success, Failure]
