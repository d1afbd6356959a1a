"""Append-only store of endpoint declarations.

The :class:`EndpointStore` is the first stage of the pipeline: declarations
are registered once (from a declaration file via :mod:`routecli.loader`, or
from Python with :meth:`EndpointStore.register` and :func:`resource`), then
folded into a route trie by :func:`routecli.generator.trie.build_route_trie`.
The store never changes a registered :class:`~routecli.models.EndpointSpec`
and keeps declaration order.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from routecli.exceptions import DeclarationError
from routecli.models import EndpointSpec

_M = TypeVar("_M", bound=type)


class EndpointStore:
    """Ordered, append-only collection of :class:`~routecli.models.EndpointSpec`.

    Validation done at registration time only looks at the endpoint
    itself: every variable of the wire route must be bound by the
    CLI route. Cross references (kinds, transforms) are checked when the
    command tree is generated.
    """

    def __init__(self, endpoints: Optional[Iterable[EndpointSpec]] = None) -> None:
        self._endpoints: list[EndpointSpec] = []
        for spec in endpoints or ():
            self.register(spec)

    def register(self, spec: Union[EndpointSpec, dict[str, Any]]) -> EndpointSpec:
        """Validate and append one endpoint declaration.

        Args:
            spec: An :class:`~routecli.models.EndpointSpec` or a mapping of
                its fields.

        Returns:
            The registered (immutable) spec.

        Raises:
            DeclarationError: If the mapping is invalid or the wire route
                uses a variable the CLI route does not capture.
        """
        if not isinstance(spec, EndpointSpec):
            try:
                spec = EndpointSpec.model_validate(spec)
            except ValidationError as exc:
                raise DeclarationError(f"Invalid endpoint declaration: {exc}") from exc

        unbound = [name for name in spec.route_variables if name not in spec.cli_variables]
        if unbound:
            raise DeclarationError(
                f"Endpoint {spec.describe()}: variable(s) "
                f"{', '.join(unbound)} not captured by cli_route '{spec.cli_route}'"
            )
        self._endpoints.append(spec)
        return spec

    def extend(self, specs: Iterable[Union[EndpointSpec, dict[str, Any]]]) -> None:
        """Register several declarations in order."""
        for spec in specs:
            self.register(spec)

    @property
    def endpoints(self) -> tuple[EndpointSpec, ...]:
        """All registered specs in declaration order."""
        return tuple(self._endpoints)

    def __iter__(self) -> Iterator[EndpointSpec]:
        return iter(tuple(self._endpoints))

    def __len__(self) -> int:
        return len(self._endpoints)


def resource(
    store: EndpointStore,
    *endpoints: dict[str, Any],
    kinds: Any = None,
) -> Callable[[_M], _M]:
    """Class decorator declaring the endpoints that return a pydantic model.

    Each endpoint mapping defaults ``result_struct`` to the decorated class
    name. When *kinds* (a :class:`~routecli.kinds.KindRegistry`) is given,
    the class is registered there as a kind too.

    Example::

        @resource(
            store,
            {"route": "/posts", "cli_route": "/post", "multiple_results": True},
            {"route": "/posts/{id}", "cli_route": "/post/{id}"},
            kinds=kinds,
        )
        class Post(BaseModel):
            id: int = 0
            title: str = ""
    """

    def decorator(cls: _M) -> _M:
        if kinds is not None and isinstance(cls, type) and issubclass(cls, BaseModel):
            kinds.register_model(cls)
        for endpoint in endpoints:
            store.register({"result_struct": cls.__name__, **endpoint})
        return cls

    return decorator
