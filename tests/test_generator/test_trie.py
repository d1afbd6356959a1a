"""Tests for routecli.generator.trie.

Covers:
- Segment splitting (empty segments ignored, bare "/" attaches to the root)
- Endpoints sharing a CLI route share a node, in insertion order
- The same set of routes gives the same structure whatever the order
- Sibling variables with different names are rejected
- literal_children / variable_children / find / walk / has_stream helpers
"""

from __future__ import annotations

import itertools

import pytest

from routecli.exceptions import DeclarationError
from routecli.generator.trie import (
    RouteNode,
    build_route_trie,
    insert,
    is_variable,
    variable_name,
)
from routecli.models import EndpointSpec


def _spec(cli_route: str, route: str | None = None, **kwargs) -> EndpointSpec:
    return EndpointSpec(route=route or cli_route, cli_route=cli_route, **kwargs)


def _shape(node: RouteNode) -> dict:
    """Order-insensitive structure of a trie: segment -> (endpoint routes, children)."""
    return {
        segment: (sorted(spec.cli_route for spec in child.endpoints), _shape(child))
        for segment, child in node.children.items()
    }


# ---------------------------------------------------------------------------
# Segment classification
# ---------------------------------------------------------------------------


class TestSegments:
    @pytest.mark.parametrize("segment", ["{id}", "{user_id}", "{a}"])
    def test_variable_segments(self, segment: str) -> None:
        assert is_variable(segment)

    @pytest.mark.parametrize("segment", ["post", "{}", "{", "id}", "{id"])
    def test_literal_segments(self, segment: str) -> None:
        assert not is_variable(segment)

    def test_variable_name_strips_braces(self) -> None:
        assert variable_name("{user_id}") == "user_id"


# ---------------------------------------------------------------------------
# Insertion
# ---------------------------------------------------------------------------


class TestInsert:
    def test_one_node_per_segment(self) -> None:
        root = build_route_trie([_spec("/post/{id}/comments")])
        node = root.find("/post/{id}/comments")
        assert node is not None
        assert [spec.cli_route for spec in node.endpoints] == ["/post/{id}/comments"]
        assert root.endpoints == []
        assert root.children["post"].endpoints == []

    def test_empty_segments_are_ignored(self) -> None:
        root = build_route_trie([_spec("//post///list/", route="/posts")])
        assert list(root.children) == ["post"]
        assert list(root.children["post"].children) == ["list"]
        assert len(root.find("post/list").endpoints) == 1

    def test_bare_slash_attaches_to_root(self) -> None:
        spec = _spec("/", route="/status")
        root = build_route_trie([spec])
        assert root.endpoints == [spec]
        assert root.children == {}

    def test_shared_route_keeps_insertion_order(self) -> None:
        first = _spec("/post", route="/posts")
        second = _spec("/post", route="/posts", method="POST", payload_struct="Raw")
        root = build_route_trie([first, second])
        assert root.children["post"].endpoints == [first, second]

    def test_insert_returns_root(self) -> None:
        root = RouteNode()
        assert insert(root, _spec("/a")) is root

    def test_same_variable_name_is_shared(self) -> None:
        root = build_route_trie([_spec("/post/{id}"), _spec("/post/{id}/delete")])
        assert list(root.children["post"].children) == ["{id}"]

    def test_conflicting_sibling_variables_rejected(self) -> None:
        with pytest.raises(DeclarationError, match="Conflicting variables"):
            build_route_trie([_spec("/post/{id}"), _spec("/post/{slug}/x", route="/p/{slug}")])

    def test_variable_next_to_literal_is_fine(self) -> None:
        root = build_route_trie([_spec("/post/{id}"), _spec("/post/create")])
        assert list(root.children["post"].children) == ["{id}", "create"]


class TestOrderIndependence:
    def test_every_permutation_builds_the_same_structure(self) -> None:
        specs = [
            _spec("/post"),
            _spec("/post/{id}"),
            _spec("/post/{id}/delete"),
            _spec("/user/{user_id}/post"),
            _spec("/post/create", route="/posts"),
        ]
        expected = _shape(build_route_trie(specs))
        for permutation in itertools.permutations(specs):
            assert _shape(build_route_trie(permutation)) == expected

    def test_jsonplaceholder_reversed(self, jsonplaceholder_api) -> None:
        store, _ = jsonplaceholder_api
        forward = build_route_trie(store)
        backward = build_route_trie(reversed(store.endpoints))
        assert _shape(forward) == _shape(backward)


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------


class TestRouteNode:
    @pytest.fixture
    def root(self) -> RouteNode:
        return build_route_trie(
            [
                _spec("/post"),
                _spec("/post/{id}"),
                _spec("/post/create", route="/posts"),
                _spec("/export/{id}", result_is_stream=True),
            ]
        )

    def test_literal_and_variable_children(self, root: RouteNode) -> None:
        post = root.children["post"]
        assert [segment for segment, _ in post.literal_children()] == ["create"]
        assert [name for name, _ in post.variable_children()] == ["id"]

    def test_find_missing_path(self, root: RouteNode) -> None:
        assert root.find("/post/missing") is None
        assert root.find("/") is root

    def test_walk_visits_every_node_depth_first(self, root: RouteNode) -> None:
        paths = [path for path, _ in root.walk()]
        assert paths == [
            (),
            ("post",),
            ("post", "{id}"),
            ("post", "create"),
            ("export",),
            ("export", "{id}"),
        ]

    def test_has_stream(self, root: RouteNode) -> None:
        assert root.find("/export/{id}").has_stream()
        assert not root.find("/export").has_stream()
        assert not root.find("/post").has_stream()
