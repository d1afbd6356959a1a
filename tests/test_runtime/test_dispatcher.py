"""Tests for routecli.runtime.dispatcher.

Covers:
- The if / elif / else cascade over variable children and own endpoints
- Subcommands below variables require the variable value
- Every declared endpoint is reached by its own CLI route
- Endpoint selection among several endpoints of one node
- URL building with percent-encoded variables
- Payload, query, transform and stream handling through the transport
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import click
import httpx
import pytest

from routecli.client.transport import HTTPTransport
from routecli.exceptions import ConfigError, DeclarationError, InvalidUsageError, MissingRequiredArgument
from routecli.generator import build_click_command, build_route_trie, generate
from routecli.generator.trie import is_variable, variable_name
from routecli.kinds import KindRegistry
from routecli.models import CapturedVar, EndpointSpec, KindDeclaration, KindField
from routecli.registry import EndpointStore
from routecli.runtime.dispatcher import (
    DispatchResult,
    dispatch,
    find_literal,
    format_url,
    select_endpoint,
)
from routecli.runtime.invocation import parse_invocation

BASE_URL = "http://api.test"


class _Api:
    """A store and kinds wired to a mock transport, ready to dispatch argv."""

    def __init__(self, store: EndpointStore, kinds: KindRegistry, handler: Any) -> None:
        self.kinds = kinds
        self.root = build_route_trie(store)
        self.cli = build_click_command(generate(self.root, kinds, name="api"), force_group=True)
        self.transport = HTTPTransport(transport=httpx.MockTransport(handler))

    def __call__(self, *argv: str, base_url: Optional[str] = BASE_URL) -> Optional[DispatchResult]:
        invocation = parse_invocation(self.cli, list(argv))
        return dispatch(self.root, invocation, base_url, self.transport, self.kinds)


@pytest.fixture
def api(jsonplaceholder_api, handler, quiet_output) -> _Api:
    store, kinds = jsonplaceholder_api
    return _Api(store, kinds, handler)


def _store(*specs: dict[str, Any]) -> EndpointStore:
    store = EndpointStore()
    for spec in specs:
        store.register({"result_struct": "Raw", **spec})
    return store


# ---------------------------------------------------------------------------
# The cascade
# ---------------------------------------------------------------------------


class TestCascade:
    def test_variable_present_commits_to_variable_child(self, api: _Api, handler) -> None:
        handler.add("GET", "/posts/42", json_body={"id": 42, "title": "hello"})
        result = api("post", "42")
        assert result.spec.route == "/posts/{id}"
        assert result.captured == (CapturedVar("id", "42"),)
        assert handler.last.method == "GET"
        assert str(handler.last.url) == f"{BASE_URL}/posts/42"
        assert result.outcome.ok
        assert result.outcome.value.title == "hello"

    def test_variable_absent_runs_own_endpoints(self, api: _Api, handler) -> None:
        handler.add("GET", "/posts", json_body=[{"id": 1}, {"id": 2}])
        result = api("post")
        assert result.spec.route == "/posts"
        assert result.captured == ()
        assert [post.id for post in result.outcome.value] == [1, 2]

    def test_nothing_matches_returns_none(self, api: _Api, handler) -> None:
        assert api() is None
        assert handler.requests == []

    def test_variable_without_own_endpoints_returns_none(self, handler_factory, quiet_output) -> None:
        handler = handler_factory()
        local = _Api(_store({"route": "/things/{id}", "cli_route": "/thing/{id}"}), KindRegistry(), handler)
        assert local("thing") is None
        assert local("thing", "3").spec.route == "/things/{id}"

    def test_present_variable_without_endpoints_falls_through(self, handler_factory, quiet_output) -> None:
        handler = handler_factory()
        local = _Api(
            _store(
                {"route": "/things", "cli_route": "/thing"},
                {"route": "/things/{id}/parts", "cli_route": "/thing/{id}/parts"},
            ),
            KindRegistry(),
            handler,
        )
        result = local("thing", "3")
        assert result.spec.route == "/things"
        assert result.captured == ()
        assert handler.last.url.path == "/things"
        assert local("thing", "3", "parts").spec.route == "/things/{id}/parts"

    def test_subcommand_below_variable(self, api: _Api, handler) -> None:
        result = api("post", "42", "delete")
        assert result.spec.method.value == "DELETE"
        assert handler.last.method == "DELETE"
        assert handler.last.url.path == "/posts/42"

    def test_subcommand_below_variable_requires_value(self, api: _Api, handler) -> None:
        with pytest.raises(MissingRequiredArgument) as exc_info:
            api("post", "delete")
        assert str(exc_info.value) == "<id> is required"
        assert exc_info.value.variable == "id"
        assert handler.requests == []

    def test_nested_capture(self, api: _Api, handler) -> None:
        handler.add("GET", "/users/5/posts", json_body=[])
        result = api("user", "5", "post")
        assert result.spec.route == "/users/{user_id}/posts"
        assert result.captured == (CapturedVar("user_id", "5"),)
        assert result.outcome.value == []


# ---------------------------------------------------------------------------
# Every endpoint is reachable
# ---------------------------------------------------------------------------


def _argv_for(spec: EndpointSpec, kinds: KindRegistry, tmp_path: Path) -> list[str]:
    argv = ["7" if is_variable(segment) else segment for segment in spec.cli_segments]
    if spec.payload_struct:
        source = tmp_path / f"{spec.payload_struct}.json"
        source.write_text(kinds.get(spec.payload_struct).template())
        argv += ["--input", str(source)]
    return argv


class TestRoundTrip:
    def test_every_endpoint_is_reached_by_its_route(
        self, jsonplaceholder_api, tmp_path: Path, quiet_output
    ) -> None:
        store, kinds = jsonplaceholder_api
        expected: dict[str, EndpointSpec] = {}
        sent: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            spec = expected["spec"]
            body = [] if spec.result_multiple else {}
            return httpx.Response(int(spec.result_ok_status), json=body)

        local = _Api(store, kinds, handler)
        for spec in store:
            expected["spec"] = spec
            result = local(*_argv_for(spec, kinds, tmp_path))
            assert result is not None, spec.cli_route
            assert result.spec is spec
            assert result.outcome.ok, spec.cli_route
            wire_path = "/" + "/".join(
                "7" if is_variable(segment) else segment
                for segment in spec.route.split("/")
                if segment
            )
            assert result.captured == tuple(
                CapturedVar(variable_name(segment), "7")
                for segment in spec.cli_segments
                if is_variable(segment)
            )
            assert sent[-1].method == spec.method.value
            assert sent[-1].url.path == wire_path


# ---------------------------------------------------------------------------
# Payload and query
# ---------------------------------------------------------------------------


class TestPayloadAndQuery:
    def test_payload_from_options(self, api: _Api, handler) -> None:
        handler.add("POST", "/posts", status=201, json_body={"id": 101, "userId": 1})
        result = api("post", "create", "--user-id", "1", "--title", "t", "--body", "b")
        assert result.outcome.ok
        assert result.outcome.value.id == 101
        assert json.loads(handler.last.content) == {"userId": 1, "title": "t", "body": "b"}
        assert handler.last.headers["Content-Type"] == "application/json; charset=UTF-8"

    def test_payload_missing_required_option(self, api: _Api, handler) -> None:
        with pytest.raises(InvalidUsageError, match="--title, --body"):
            api("post", "create", "--user-id", "1")
        assert handler.requests == []

    def test_partial_update(self, api: _Api, handler) -> None:
        api("post", "3", "update", "--title", "new")
        assert handler.last.method == "PATCH"
        assert json.loads(handler.last.content) == {"title": "new"}

    def test_nested_payload(self, api: _Api, handler) -> None:
        handler.add("POST", "/users", status=201, json_body={"id": 11})
        api(
            "user", "create",
            "-n", "Ann", "-u", "ann", "-e", "ann@example.com",
            "--address-city", "Oslo", "--address-geo-lat", "59.9",
        )
        assert json.loads(handler.last.content) == {
            "name": "Ann",
            "username": "ann",
            "email": "ann@example.com",
            "address": {"city": "Oslo", "geo": {"lat": "59.9"}},
        }

    def test_query_string(self, api: _Api, handler) -> None:
        handler.add("GET", "/comments", json_body=[])
        api("comment", "--post-id", "4", "--email", "a@b.c")
        assert handler.last.url.params["postId"] == "4"
        assert handler.last.url.params["email"] == "a@b.c"

    def test_empty_query_adds_nothing(self, api: _Api, handler) -> None:
        handler.add("GET", "/posts", json_body=[])
        api("post")
        assert str(handler.last.url) == f"{BASE_URL}/posts"

    def test_output_format_is_looked_up(self, api: _Api) -> None:
        assert api("post", "1", "--format", "json").output_format == "json"
        assert api("post", "1", "-f", "yaml", "delete").output_format == "yaml"
        assert api("post", "1").output_format is None

    def test_missing_base_url(self, api: _Api, handler) -> None:
        with pytest.raises(ConfigError, match="No base URL"):
            api("post", base_url=None)
        assert handler.requests == []

    def test_base_url_without_scheme(self, api: _Api, handler) -> None:
        handler.add("GET", "/posts", json_body=[])
        assert api("post", base_url="localhost:8080").outcome.ok
        assert str(handler.last.url) == "http://localhost:8080/posts"


# ---------------------------------------------------------------------------
# Endpoint selection
# ---------------------------------------------------------------------------


class TestSelectEndpoint:
    @pytest.fixture
    def kinds(self) -> KindRegistry:
        registry = KindRegistry()
        registry.declare("Filters", KindDeclaration(fields=[KindField(name="q")]))
        registry.declare("Item", KindDeclaration(fields=[KindField(name="name")]))
        return registry

    @pytest.fixture
    def specs(self) -> list[EndpointSpec]:
        return [
            EndpointSpec(route="/items", cli_route="/item", method="POST", payload_struct="Item"),
            EndpointSpec(route="/items", cli_route="/item", query_struct="Filters"),
            EndpointSpec(route="/items", cli_route="/item", method="DELETE"),
        ]

    def test_single_endpoint(self, specs: list[EndpointSpec], kinds: KindRegistry) -> None:
        assert select_endpoint(specs[:1], {}, kinds) is specs[0]

    def test_payload_supplied(self, specs: list[EndpointSpec], kinds: KindRegistry) -> None:
        assert select_endpoint(specs, {"name": "x"}, kinds) is specs[0]
        assert select_endpoint(specs, {"input_file": "item.json"}, kinds) is specs[0]

    def test_query_supplied(self, specs: list[EndpointSpec], kinds: KindRegistry) -> None:
        assert select_endpoint(specs, {"q": "term"}, kinds) is specs[1]

    def test_first_without_payload(self, specs: list[EndpointSpec], kinds: KindRegistry) -> None:
        assert select_endpoint(specs, {}, kinds) is specs[1]

    def test_first_declared_fallback(self, kinds: KindRegistry) -> None:
        specs = [
            EndpointSpec(route="/a", cli_route="/a", method="POST", payload_struct="Item"),
            EndpointSpec(route="/a", cli_route="/a", method="PUT", payload_struct="Item"),
        ]
        assert select_endpoint(specs, {}, kinds) is specs[0]

    def test_dispatch_selects_by_options(self, kinds: KindRegistry, handler_factory, quiet_output) -> None:
        handler = handler_factory()
        store = EndpointStore(
            [
                EndpointSpec(route="/items", cli_route="/item", query_struct="Filters", result_struct="Raw"),
                EndpointSpec(
                    route="/items", cli_route="/item", method="POST",
                    payload_struct="Item", result_struct="Raw", result_ok_status=201,
                ),
            ]
        )
        local = _Api(store, kinds, handler)
        local("item")
        assert handler.last.method == "GET"
        local("item", "--name", "x")
        assert handler.last.method == "POST"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestFormatUrl:
    def test_substitutes_by_name(self) -> None:
        captured = [CapturedVar("user_id", "5"), CapturedVar("id", "9")]
        assert format_url("http://h", "/users/{user_id}/posts/{id}", captured) == "http://h/users/5/posts/9"

    def test_order_of_route_wins(self) -> None:
        captured = [CapturedVar("b", "2"), CapturedVar("a", "1")]
        assert format_url("http://h", "/x/{a}/{b}", captured) == "http://h/x/1/2"

    def test_values_are_percent_encoded(self) -> None:
        assert format_url("http://h", "/f/{p}", [CapturedVar("p", "a/b c")]) == "http://h/f/a%2Fb%20c"

    def test_base_url_trailing_slash(self) -> None:
        assert format_url("http://h/api/", "posts", []) == "http://h/api/posts"

    def test_uncaptured_variable(self) -> None:
        with pytest.raises(DeclarationError, match=r"\{id\}"):
            format_url("http://h", "/posts/{id}", [])


class TestFindLiteral:
    def test_direct_and_below_variables(self, jsonplaceholder_api) -> None:
        store, _ = jsonplaceholder_api
        root = build_route_trie(store)
        post = root.children["post"]
        variables, node = find_literal(post, "create")
        assert variables == []
        assert node is post.children["create"]
        variables, node = find_literal(post, "delete")
        assert variables == ["id"]
        assert node is post.children["{id}"].children["delete"]
        assert find_literal(post, "nope") is None


# ---------------------------------------------------------------------------
# Transforms and streams
# ---------------------------------------------------------------------------


def _summarize(value: Any) -> dict[str, int]:
    if not isinstance(value.root, dict):
        raise ValueError("expected an object")
    return {"count": len(value.root)}


class TestTransformAndStream:
    @pytest.fixture
    def kinds(self) -> KindRegistry:
        registry = KindRegistry()
        registry.declare("Summary", KindDeclaration(fields=[KindField(name="count", type="integer")]))
        registry.add_transform("Raw", "Summary", _summarize)
        return registry

    @pytest.fixture
    def store(self) -> EndpointStore:
        return _store(
            {"route": "/stats", "cli_route": "/stats", "transform_from": "Raw", "result_struct": "Summary"},
            {"route": "/exports/{id}", "cli_route": "/export/{id}", "stream": True},
        )

    def test_transform_applied(
        self, store: EndpointStore, kinds: KindRegistry, handler_factory, quiet_output
    ) -> None:
        handler = handler_factory(default=httpx.Response(200, json={"a": 1, "b": 2}))
        result = _Api(store, kinds, handler)("stats")
        assert result.outcome.ok
        assert result.outcome.value == {"count": 2}

    def test_transform_failure(
        self, store: EndpointStore, kinds: KindRegistry, handler_factory, quiet_output
    ) -> None:
        handler = handler_factory(default=httpx.Response(200, json=[1, 2]))
        result = _Api(store, kinds, handler)("stats")
        assert not result.outcome.ok
        assert result.outcome.status is None
        assert "expected an object" in result.outcome.message

    def test_stream_chunks_written_in_order(
        self, store: EndpointStore, kinds: KindRegistry, tmp_path: Path, handler_factory, quiet_output
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=iter([b"a", b"bb", b"ccc"]))

        target = tmp_path / "nested" / "out.bin"
        result = _Api(store, kinds, handler)("export", "7", "--output", str(target))
        assert result.outcome.ok
        assert result.outcome.value is None
        assert target.read_bytes() == b"abbccc"

    def test_stream_failure_status(
        self, store: EndpointStore, kinds: KindRegistry, tmp_path: Path, handler_factory, quiet_output
    ) -> None:
        handler = handler_factory(default=httpx.Response(404, text="gone"))
        target = tmp_path / "out.bin"
        result = _Api(store, kinds, handler)("export", "7", "-o", str(target))
        assert not result.outcome.ok
        assert result.outcome.status == 404
        assert result.outcome.body == "gone"
        assert not target.exists()

    def test_stream_command_has_output_option(
        self, store: EndpointStore, kinds: KindRegistry, handler_factory, quiet_output
    ) -> None:
        api = _Api(store, kinds, handler_factory())
        export = api.cli.commands["export"]
        assert any(
            isinstance(param, click.Option) and "--output" in param.opts for param in export.params
        )
