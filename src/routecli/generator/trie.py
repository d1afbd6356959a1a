"""Fold endpoint declarations into a route trie keyed by CLI path segment.

Every registered :class:`~routecli.models.EndpointSpec` is inserted by
splitting its ``cli_route`` on ``/`` and walking (or creating) one child per
non-empty segment. The endpoint is appended to the node reached by its last
segment; a bare ``/`` attaches to the root itself.

The resulting :class:`RouteNode` tree is built once and consumed twice: by
:func:`~routecli.generator.command_tree.generate` to declare the command
surface, and by :func:`~routecli.runtime.dispatcher.dispatch` to locate the
endpoint of a parsed invocation. Both classify a segment the same way with
:func:`is_variable`; insertion never does.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from routecli.exceptions import DeclarationError
from routecli.models import EndpointSpec


def is_variable(segment: str) -> bool:
    """Return ``True`` for a ``{name}`` placeholder segment."""
    return len(segment) > 2 and segment.startswith("{") and segment.endswith("}")


def variable_name(segment: str) -> str:
    """Strip the braces of a variable segment (``"{id}"`` -> ``"id"``)."""
    return segment[1:-1]


class RouteNode:
    """One node of the route trie.

    Attributes:
        endpoints: Endpoints whose CLI route ends here, in insertion order.
        children: Child nodes keyed by raw segment string, in insertion order.
    """

    def __init__(self) -> None:
        self.endpoints: list[EndpointSpec] = []
        self.children: dict[str, RouteNode] = {}

    def __repr__(self) -> str:
        return f"RouteNode(endpoints={len(self.endpoints)}, children={list(self.children)})"

    def literal_children(self) -> Iterator[tuple[str, RouteNode]]:
        """Children keyed by a literal segment, in insertion order."""
        for segment, child in self.children.items():
            if not is_variable(segment):
                yield segment, child

    def variable_children(self) -> Iterator[tuple[str, RouteNode]]:
        """Children keyed by a variable segment, as ``(name, node)`` pairs."""
        for segment, child in self.children.items():
            if is_variable(segment):
                yield variable_name(segment), child

    def walk(self, path: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], RouteNode]]:
        """Yield ``(segments, node)`` for this node and every descendant, depth first."""
        yield path, self
        for segment, child in self.children.items():
            yield from child.walk(path + (segment,))

    def find(self, path: str) -> Optional[RouteNode]:
        """Return the node reached by a slash-separated path, if any."""
        node = self
        for segment in path.split("/"):
            if not segment:
                continue
            child = node.children.get(segment)
            if child is None:
                return None
            node = child
        return node

    def has_stream(self) -> bool:
        """Whether one of this node's own endpoints streams its result."""
        return any(spec.result_is_stream for spec in self.endpoints)


def insert(root: RouteNode, spec: EndpointSpec) -> RouteNode:
    """Insert one endpoint into the trie rooted at *root*.

    Args:
        root: Trie root, mutated in place.
        spec: Endpoint to insert.

    Returns:
        *root*, for chaining.

    Raises:
        DeclarationError: If a variable segment is introduced next to a
            sibling variable of a different name, which would make the
            positional capture of that command ambiguous.
    """
    node = root
    walked: list[str] = []
    for segment in spec.cli_segments:
        child = node.children.get(segment)
        if child is None:
            if is_variable(segment):
                for sibling in node.children:
                    if is_variable(sibling):
                        raise DeclarationError(
                            f"Conflicting variables {sibling} and {segment} under "
                            f"'/{'/'.join(walked)}' (endpoint {spec.describe()})"
                        )
            child = node.children[segment] = RouteNode()
        node = child
        walked.append(segment)
    node.endpoints.append(spec)
    return root


def build_route_trie(specs: Iterable[EndpointSpec]) -> RouteNode:
    """Build a trie from endpoint declarations, in order."""
    root = RouteNode()
    for spec in specs:
        insert(root, spec)
    return root
