"""Tests for the HTTP transport.

Covers:
- Request building: URL normalisation, query encoding, header order, body
- Status classification: exact expected status only, declared and generic
  failure messages, the HTTP 401 hint
- Decoding: empty bodies, invalid JSON, kind mismatches
- Streaming to files and stdout
- Network errors
"""

from __future__ import annotations

import json
from http import HTTPStatus
from pathlib import Path
from typing import Any

import httpx
import pytest

from routecli.auth import BearerAuthenticator, NoAuthenticator
from routecli.client.outcome import Failure, Success
from routecli.client.transport import (
    CONTENT_TYPE,
    GENERIC_STATUS_MESSAGE,
    HTTPRequest,
    HTTPTransport,
    encode_query,
    normalize_url,
)
from routecli.exceptions import ConnectionError_
from routecli.kinds import KindRegistry
from routecli.models import EndpointSpec, Header, KindDeclaration, KindField, RequestConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _spec(**kwargs: Any) -> EndpointSpec:
    kwargs.setdefault("route", "/posts")
    kwargs.setdefault("cli_route", "/post")
    return EndpointSpec(**kwargs)


def _request(url: str = "https://api.example.com/posts", method: str = "GET") -> HTTPRequest:
    return HTTPRequest(method=method, url=url, headers={"Content-Type": CONTENT_TYPE})


def _transport(handler, **kwargs: Any) -> HTTPTransport:
    """Create an HTTPTransport answering through an httpx.MockTransport."""
    return HTTPTransport(transport=httpx.MockTransport(handler), **kwargs)


def _answer(status: int, content: bytes = b"", **kwargs: Any):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=content, **kwargs)

    return handler


@pytest.fixture(autouse=True)
def _clean_output(quiet_output) -> None:
    """Keep progress bars and debug lines out of the captured output."""


@pytest.fixture
def kinds() -> KindRegistry:
    registry = KindRegistry()
    registry.declare(
        "Post",
        KindDeclaration(fields=[KindField(name="id", type="integer"), KindField(name="title")]),
    )
    return registry


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


class TestUrlHelpers:
    def test_normalize_adds_scheme(self) -> None:
        assert normalize_url("localhost:8080/posts") == "http://localhost:8080/posts"

    def test_normalize_host_with_port(self) -> None:
        assert normalize_url("api.example.com:8443") == "http://api.example.com:8443"

    def test_normalize_keeps_scheme(self) -> None:
        assert normalize_url("https://api.example.com") == "https://api.example.com"

    def test_encode_scalars(self) -> None:
        assert encode_query({"userId": 3, "q": "a b"}) == "userId=3&q=a+b"

    def test_encode_lists_repeat_key(self) -> None:
        assert encode_query({"tag": ["x", "y"]}) == "tag=x&tag=y"

    def test_encode_nested_brackets(self) -> None:
        assert encode_query({"filter": {"name": "x"}}) == "filter%5Bname%5D=x"

    def test_encode_skips_none_and_writes_booleans(self) -> None:
        assert encode_query({"a": None, "b": True, "c": False}) == "b=true&c=false"


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


class TestRequestFor:
    def test_basic(self) -> None:
        request = HTTPTransport().request_for(_spec(), "https://api.example.com/posts")
        assert request.method == "GET"
        assert request.url == "https://api.example.com/posts"
        assert request.headers == {"Content-Type": CONTENT_TYPE}
        assert request.body == b""

    def test_query_appended(self) -> None:
        transport = HTTPTransport()
        request = transport.request_for(_spec(), "https://h/posts", query={"userId": 1})
        assert request.url == "https://h/posts?userId=1"
        request = transport.request_for(_spec(), "https://h/posts?x=1", query={"userId": 1})
        assert request.url == "https://h/posts?x=1&userId=1"

    def test_empty_query_adds_nothing(self) -> None:
        request = HTTPTransport().request_for(_spec(), "https://h/posts", query={"userId": None})
        assert request.url == "https://h/posts"

    def test_json_body(self) -> None:
        request = HTTPTransport().request_for(
            _spec(method="POST"), "https://h/posts", payload={"title": "x"}
        )
        assert request.method == "POST"
        assert json.loads(request.body) == {"title": "x"}

    def test_auth_header(self) -> None:
        transport = HTTPTransport(BearerAuthenticator("tok"))
        request = transport.request_for(_spec(), "https://h/posts")
        assert request.headers["Authorization"] == "Bearer tok"

    def test_no_auth_endpoint_skips_header(self) -> None:
        transport = HTTPTransport(BearerAuthenticator("tok"))
        request = transport.request_for(_spec(no_auth=True), "https://h/posts")
        assert "Authorization" not in request.headers

    def test_header_precedence(self) -> None:
        transport = HTTPTransport(
            BearerAuthenticator("tok"),
            extra_headers=[Header(key="X-App", value="app"), Header(key="Authorization", value="app")],
        )
        spec = _spec(
            extra_header=[
                {"key": "X-App", "value": "endpoint"},
                {"key": "Content-Type", "value": "text/plain"},
            ]
        )
        request = transport.request_for(spec, "https://h/posts")
        assert request.headers["Authorization"] == "app"
        assert request.headers["X-App"] == "endpoint"
        assert request.headers["Content-Type"] == CONTENT_TYPE

    def test_request_is_frozen(self) -> None:
        request = _request()
        with pytest.raises(Exception):
            request.url = "https://elsewhere"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Query calls
# ---------------------------------------------------------------------------


class TestQuery:
    def test_expected_status_decodes(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(200, b'{"id": 1, "title": "hello"}'))
        outcome = transport.query(_request(), HTTPStatus.OK, {}, kinds.get("Post"))
        assert isinstance(outcome, Success)
        assert outcome.value.id == 1
        assert outcome.value.title == "hello"

    def test_multiple(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(200, b'[{"id": 1}, {"id": 2}]'))
        outcome = transport.query(_request(), 200, {}, kinds.get("Post"), multiple=True)
        assert [post.id for post in outcome.value] == [1, 2]

    def test_other_2xx_is_a_failure(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(200, b"{}"))
        outcome = transport.query(_request(), HTTPStatus.CREATED, {}, kinds.get("Post"))
        assert isinstance(outcome, Failure)
        assert outcome.status == 200
        assert outcome.message == GENERIC_STATUS_MESSAGE

    def test_declared_failure_message(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(404, b'{"error": "missing"}'))
        outcome = transport.query(_request(), 200, {404: "Post not found"}, kinds.get("Post"))
        assert not outcome.ok
        assert outcome.status == 404
        assert outcome.message == "Post not found"
        assert outcome.body == '{"error": "missing"}'
        assert outcome.hint is None

    def test_generic_failure_message(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(404))
        outcome = transport.query(_request(), 200, {}, kinds.get("Post"))
        assert outcome.message == GENERIC_STATUS_MESSAGE
        assert outcome.url == "https://api.example.com/posts"

    def test_unauthorized_hint_from_authenticator(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(401), authenticator=BearerAuthenticator())
        outcome = transport.query(_request(), 200, {}, kinds.get("Post"))
        assert outcome.status == 401
        assert outcome.hint == BearerAuthenticator().error_help_message()

    def test_unauthorized_hint_without_auth(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(401))
        outcome = transport.query(_request(), 200, {}, kinds.get("Post"))
        assert outcome.hint == NoAuthenticator().error_help_message()

    def test_empty_body_gives_default(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(204))
        outcome = transport.query(_request(), HTTPStatus.NO_CONTENT, {}, kinds.get("Post"))
        assert outcome.ok
        assert outcome.value.id is None
        outcome = transport.query(_request(), 204, {}, kinds.get("Post"), multiple=True)
        assert outcome.value == []

    def test_invalid_json(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(200, b"<html>"))
        outcome = transport.query(_request(), 200, {}, kinds.get("Post"))
        assert isinstance(outcome, Failure)
        assert outcome.status is None
        assert outcome.message.startswith("Can't deserialize the response as Post")

    def test_kind_mismatch(self, kinds: KindRegistry) -> None:
        transport = _transport(_answer(200, b'{"id": "not a number"}'))
        outcome = transport.query(_request(), 200, {}, kinds.get("Post"))
        assert not outcome.ok
        assert outcome.status is None
        assert "Post" in outcome.message

    def test_request_sent_as_built(self, kinds: KindRegistry) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 5})

        transport = _transport(handler)
        request = transport.request_for(_spec(method="POST"), "https://h/posts", payload={"title": "t"})
        transport.query(request, 201, {}, kinds.get("Post"))
        assert seen[0].method == "POST"
        assert seen[0].content == b'{"title": "t"}'
        assert seen[0].headers["content-type"] == CONTENT_TYPE

    def test_connection_error(self, kinds: KindRegistry) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ConnectionError_, match="refused"):
            _transport(handler).query(_request(), 200, {}, kinds.get("Post"))

    def test_timeout_is_a_connection_error(self, kinds: KindRegistry) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        transport = _transport(handler, config=RequestConfig(timeout=0.1))
        with pytest.raises(ConnectionError_):
            transport.query(_request(), 200, {}, kinds.get("Post"))

    def test_malformed_url_is_a_connection_error(self, kinds: KindRegistry) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise ValueError("unknown url type")

        with pytest.raises(ConnectionError_, match="unknown url type"):
            _transport(handler).query(_request(), 200, {}, kinds.get("Post"))

    def test_redirect_status_is_not_followed(self, kinds: KindRegistry) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(302, headers={"Location": "https://api.example.com/moved"})

        outcome = _transport(handler).query(_request(), 200, {302: "Post moved"}, kinds.get("Post"))
        assert outcome.status == 302
        assert outcome.message == "Post moved"
        assert len(seen) == 1


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------


class TestStream:
    def test_chunks_written_in_order(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=iter([b"a", b"bb", b"ccc"]))

        target = tmp_path / "deep" / "dir" / "file.bin"
        outcome = _transport(handler).stream(_request(), 200, {}, target)
        assert isinstance(outcome, Success)
        assert outcome.value is None
        assert target.read_bytes() == b"abbccc"

    def test_to_stdout(self, capfdbinary: pytest.CaptureFixture[bytes]) -> None:
        outcome = _transport(_answer(200, b"payload")).stream(_request(), 200, {}, "-")
        assert outcome.ok
        assert capfdbinary.readouterr().out == b"payload"

    def test_default_destination_is_stdout(self, capfdbinary: pytest.CaptureFixture[bytes]) -> None:
        _transport(_answer(200, b"xyz")).stream(_request(), 200, {})
        assert capfdbinary.readouterr().out == b"xyz"

    def test_failure_status_leaves_no_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file.bin"
        outcome = _transport(_answer(500, b"boom")).stream(
            _request(), 200, {500: "Export failed"}, target
        )
        assert isinstance(outcome, Failure)
        assert outcome.status == 500
        assert outcome.message == "Export failed"
        assert outcome.body == "boom"
        assert not target.exists()

    def test_connection_error(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(ConnectionError_):
            _transport(handler).stream(_request(), 200, {}, tmp_path / "f")
