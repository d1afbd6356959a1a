"""HTTP transport for dispatched endpoints.

This module provides :class:`HTTPTransport`, which performs the single HTTP
exchange of an invocation on top of :class:`httpx.Client` and classifies
the result as an :class:`~routecli.client.outcome.Outcome`:

- **Request building** -- :meth:`HTTPTransport.request_for` assembles the
  URL (with the query object URL-encoded), the authenticator header, the
  application and endpoint extra headers, and the JSON body.
- **Queries** -- :meth:`HTTPTransport.query` decodes the body as the result
  kind, optionally through a transform.
- **Streams** -- :meth:`HTTPTransport.stream` writes the body chunk by chunk
  to a file or stdout, with a progress bar on stderr.

Success is decided by an exact match against the endpoint's expected
status, never by the 2xx range. There are no retries: a network failure
raises :class:`~routecli.exceptions.ConnectionError_` straight away.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Optional, Union
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict, Field

from routecli.auth.base import Authenticator
from routecli.auth.no_auth import NoAuthenticator
from routecli.client.outcome import Failure, Outcome, Success
from routecli.exceptions import ConnectionError_, SerializationError
from routecli.kinds import Kind, Transform
from routecli.models import EndpointSpec, Header, RequestConfig
from routecli.output import get_output

CONTENT_TYPE = "application/json; charset=UTF-8"
GENERIC_STATUS_MESSAGE = "Unexpected HTTP Status Code"
STDOUT = "-"


class HTTPRequest(BaseModel):
    """One outgoing request, built per dispatch and never reused."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""


# ------------------------------------------------------------------ #
# URL helpers
# ------------------------------------------------------------------ #


def normalize_url(url: str) -> str:
    """Prefix *url* with ``http://`` when it has no scheme."""
    if "://" not in url:
        return f"http://{url.lstrip('/')}"
    return url


def encode_query(data: Any) -> str:
    """URL-encode a dumped query object.

    Lists repeat their key; nested objects use bracket notation
    (``filter[name]=x``); ``None`` values are left out; booleans are written
    ``true``/``false``.
    """
    pairs: list[tuple[str, str]] = []
    _flatten_query(pairs, "", data)
    return urlencode(pairs)


def _flatten_query(pairs: list[tuple[str, str]], prefix: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, dict):
        for key, item in value.items():
            _flatten_query(pairs, f"{prefix}[{key}]" if prefix else str(key), item)
    elif isinstance(value, list):
        for item in value:
            _flatten_query(pairs, prefix, item)
    elif isinstance(value, bool):
        pairs.append((prefix, "true" if value else "false"))
    elif prefix:
        pairs.append((prefix, str(value)))


# ------------------------------------------------------------------ #
# Transport
# ------------------------------------------------------------------ #


class HTTPTransport:
    """Executes requests and classifies their outcome.

    Args:
        authenticator: Supplies the auth header and the HTTP 401 hint.
            Defaults to :class:`~routecli.auth.no_auth.NoAuthenticator`.
        extra_headers: Application-level headers sent with every request,
            before the endpoint's own.
        config: Timeout and SSL settings.
        transport: Optional httpx transport (``httpx.MockTransport`` in
            tests).

    Example::

        transport = HTTPTransport(BearerAuthenticator("tok"))
        request = transport.request_for(spec, "https://api.example.com/posts")
        outcome = transport.query(request, spec.result_ok_status, {}, kind)
    """

    def __init__(
        self,
        authenticator: Optional[Authenticator] = None,
        extra_headers: Iterable[Header] = (),
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.authenticator = authenticator or NoAuthenticator()
        self.extra_headers = list(extra_headers)
        self.config = config or RequestConfig()
        self._transport = transport

    # ------------------------------------------------------------------ #
    # Request building
    # ------------------------------------------------------------------ #

    def request_for(
        self,
        spec: EndpointSpec,
        url: str,
        payload: Any = None,
        query: Any = None,
    ) -> HTTPRequest:
        """Build the request of one endpoint call.

        Args:
            spec: The selected endpoint.
            url: Wire URL with variables already substituted.
            payload: Dumped payload, serialised as the JSON body.
            query: Dumped query object, appended as a query string.
        """
        url = normalize_url(url)
        if query:
            encoded = encode_query(query)
            if encoded:
                url = f"{url}{'&' if '?' in url else '?'}{encoded}"

        headers: dict[str, str] = {}
        if not spec.no_auth:
            name, value = self.authenticator.auth_header()
            if name:
                headers[name] = value
        for header in self.extra_headers + spec.extra_header:
            headers[header.key] = header.value
        headers["Content-Type"] = CONTENT_TYPE

        body = b""
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
        return HTTPRequest(method=spec.method.value, url=url, headers=headers, body=body)

    # ------------------------------------------------------------------ #
    # Calls
    # ------------------------------------------------------------------ #

    def query(
        self,
        request: HTTPRequest,
        ok_status: int,
        ko_map: dict[int, str],
        result_kind: Kind,
        multiple: bool = False,
        transform: Optional[Transform] = None,
    ) -> Outcome:
        """Send *request* and decode the response.

        An expected status with an empty body yields the kind's default
        value. A body that cannot be decoded, or a transform that fails,
        yields a :class:`Failure` without status.

        Raises:
            ConnectionError_: On network failures.
        """
        with self._client() as client:
            response = self._send(client, request)
            if response.status_code != int(ok_status):
                return self._failure(request, response, ko_map)
            content = response.content

        if not content.strip():
            return Success(result_kind.default(multiple))
        try:
            data = json.loads(content)
            if transform is not None:
                return Success(transform.apply(data))
            return Success(result_kind.load(data, multiple))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return Failure(f"Can't deserialize the response as {result_kind.name}: {exc}", url=request.url)
        except SerializationError as exc:
            return Failure(str(exc), url=request.url)

    def stream(
        self,
        request: HTTPRequest,
        ok_status: int,
        ko_map: dict[int, str],
        destination: Union[str, Path, None] = None,
    ) -> Outcome:
        """Send *request* and copy the response body to *destination*.

        Chunks are written in the order received. *destination* ``None`` or
        ``"-"`` means stdout; otherwise the file is created along with its
        parent directories.

        Returns:
            ``Success(None)`` once every chunk is written.

        Raises:
            ConnectionError_: On network failures.
        """
        output = get_output()
        with self._client() as client:
            try:
                with client.stream(
                    request.method, request.url, headers=request.headers, content=request.body or None
                ) as response:
                    output.debug(f"<- {response.status_code} {request.url}")
                    if response.status_code != int(ok_status):
                        response.read()
                        return self._failure(request, response, ko_map)
                    total = _content_length(response)
                    to_stdout = destination is None or str(destination) == STDOUT
                    with output.download_progress() as progress:
                        task = progress.add_task("Downloading...", total=total)
                        if to_stdout:
                            for chunk in response.iter_bytes():
                                output.write_bytes(chunk)
                                progress.update(task, advance=len(chunk))
                        else:
                            path = Path(destination).expanduser()  # type: ignore[arg-type]
                            path.parent.mkdir(parents=True, exist_ok=True)
                            with path.open("wb") as handle:
                                for chunk in response.iter_bytes():
                                    handle.write(chunk)
                                    progress.update(task, advance=len(chunk))
            except (httpx.TransportError, httpx.InvalidURL, ValueError) as exc:
                raise ConnectionError_(f"Request to {request.url} failed: {exc}") from exc
        return Success(None)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _client(self) -> httpx.Client:
        kwargs: dict[str, Any] = {
            "timeout": self.config.timeout,
            "verify": self.config.verify_ssl,
            "follow_redirects": False,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def _send(self, client: httpx.Client, request: HTTPRequest) -> httpx.Response:
        output = get_output()
        output.debug(f"-> {request.method} {request.url}")
        if request.body:
            output.debug(f"   body: {request.body.decode('utf-8', errors='replace')}")
        try:
            response = client.request(
                request.method, request.url, headers=request.headers, content=request.body or None
            )
        except (httpx.TransportError, httpx.InvalidURL, ValueError) as exc:
            raise ConnectionError_(f"Request to {request.url} failed: {exc}") from exc
        output.debug(f"<- {response.status_code} {request.url}")
        return response

    def _failure(
        self,
        request: HTTPRequest,
        response: httpx.Response,
        ko_map: dict[int, str],
    ) -> Failure:
        status = response.status_code
        message = ko_map.get(status) or GENERIC_STATUS_MESSAGE
        hint = None
        if status == 401:
            hint = self.authenticator.error_help_message()
        return Failure(message, status=status, body=response.text, hint=hint, url=request.url)


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value and value.isdigit():
        return int(value)
    return None
