"""Resolve a parsed invocation to one endpoint and execute it.

:func:`dispatch` walks the route trie alongside the :class:`Invocation`
chain, mirroring how :func:`~routecli.generator.command_tree.generate`
built the commands from that trie:

1. **Selected subcommand** -- the literal child with that name is found
   either directly or below variable children. Every variable crossed on
   the way must have been given a value, otherwise
   :class:`~routecli.exceptions.MissingRequiredArgument` is raised.
2. **No subcommand** -- the variable children are tried in declaration
   order and the first whose value is present and that leads to endpoints
   wins, deeper variables before the node's own endpoints (an
   ``if / elif / else`` cascade). Otherwise the node's own endpoints run.
3. **Nothing matches** -- ``None`` is returned and the caller prints help.

Executing a node selects one of its endpoints, substitutes the captured
variables into the wire route, reads the payload and query from the parsed
options, and hands the request to the
:class:`~routecli.client.transport.HTTPTransport`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import quote

from routecli.client.outcome import Outcome
from routecli.client.transport import HTTPTransport
from routecli.exceptions import ConfigError, DeclarationError, MissingRequiredArgument
from routecli.generator.param_mapper import (
    OUTPUT_FILE,
    OUTPUT_FORMAT,
    kind_supplied,
    read_kind,
    sanitize_param_name,
)
from routecli.generator.trie import RouteNode, is_variable
from routecli.kinds import Kind, KindRegistry
from routecli.models import CapturedVar, EndpointSpec
from routecli.output import get_output
from routecli.runtime.invocation import Invocation

_VARIABLE_RE = re.compile(r"\{([^{}/]+)\}")


@dataclass
class DispatchResult:
    """What one dispatch did.

    Attributes:
        spec: The endpoint that was called.
        outcome: The classified result of the call.
        result_kind: Kind the result value belongs to.
        output_format: ``--format`` value, if given.
        captured: Variables bound on the way, in order.
    """

    spec: EndpointSpec
    outcome: Outcome
    result_kind: Kind
    output_format: Optional[str] = None
    captured: tuple[CapturedVar, ...] = ()


def dispatch(
    root: RouteNode,
    invocation: Invocation,
    base_url: Optional[str],
    transport: HTTPTransport,
    kinds: KindRegistry,
) -> Optional[DispatchResult]:
    """Execute the endpoint selected by *invocation*.

    Args:
        root: Trie the command tree was generated from.
        invocation: Root of the parsed invocation chain.
        base_url: Base URL prefixed to wire routes.
        transport: Performs the HTTP call.
        kinds: Kind registry for payload, query and result kinds.

    Returns:
        The :class:`DispatchResult`, or ``None`` when no endpoint matches
        the invocation.

    Raises:
        MissingRequiredArgument: If a subcommand below a variable was
            selected without a value for that variable.
        InvalidUsageError: If payload or query options are missing or
            invalid.
        ConnectionError_: On network failures.
    """
    dispatcher = _Dispatcher(base_url, transport, kinds)
    return dispatcher.literal(root, invocation, ())


class _Dispatcher:
    def __init__(self, base_url: Optional[str], transport: HTTPTransport, kinds: KindRegistry) -> None:
        self.base_url = base_url
        self.transport = transport
        self.kinds = kinds

    def literal(
        self,
        node: RouteNode,
        invocation: Invocation,
        captured: tuple[CapturedVar, ...],
    ) -> Optional[DispatchResult]:
        sub = invocation.subcommand
        if sub is not None:
            found = find_literal(node, sub.name)
            if found is None:
                return None
            variables, child = found
            for variable in variables:
                value = _capture_value(invocation, variable)
                if value is None:
                    raise MissingRequiredArgument(variable)
                captured += (CapturedVar(variable, value),)
            return self.literal(child, sub, captured)
        return self.variables(node, invocation, captured)

    def variables(
        self,
        node: RouteNode,
        invocation: Invocation,
        captured: tuple[CapturedVar, ...],
    ) -> Optional[DispatchResult]:
        for variable, child in node.variable_children():
            value = _capture_value(invocation, variable)
            if value is None:
                continue
            result = self.variables(child, invocation, captured + (CapturedVar(variable, value),))
            if result is not None:
                return result
        if node.endpoints:
            return self.execute(node.endpoints, invocation, captured)
        return None

    def execute(
        self,
        specs: list[EndpointSpec],
        invocation: Invocation,
        captured: tuple[CapturedVar, ...],
    ) -> DispatchResult:
        spec = select_endpoint(specs, invocation.params, self.kinds)
        if not self.base_url:
            raise ConfigError(
                "No base URL configured (use --base-url, a settings file, or an environment variable)"
            )
        url = format_url(self.base_url, spec.route, captured)
        output = get_output()
        output.debug(f"Dispatching {spec.describe()} with {dict(captured)}")

        payload = None
        if spec.payload_struct:
            kind = self.kinds.get(spec.payload_struct)
            payload = kind.dump(read_kind(kind, invocation.params, spec.cli_route))
        query = None
        if spec.query_struct:
            kind = self.kinds.get(spec.query_struct)
            query = kind.dump(read_kind(kind, invocation.params, spec.cli_route))

        request = self.transport.request_for(spec, url, payload, query)
        result_kind = self.kinds.get(spec.result_struct)
        if spec.result_is_stream:
            outcome = self.transport.stream(
                request, spec.result_ok_status, spec.ko_status_map, invocation.lookup(OUTPUT_FILE)
            )
        else:
            transform = None
            if spec.transform_from:
                transform = self.kinds.transform(spec.transform_from, spec.result_struct, spec.result_multiple)
            outcome = self.transport.query(
                request,
                spec.result_ok_status,
                spec.ko_status_map,
                result_kind,
                spec.result_multiple,
                transform,
            )
        return DispatchResult(
            spec=spec,
            outcome=outcome,
            result_kind=result_kind,
            output_format=invocation.lookup(OUTPUT_FORMAT),
            captured=captured,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def find_literal(node: RouteNode, name: str) -> Optional[tuple[list[str], RouteNode]]:
    """Locate the literal child *name* of *node*, directly or below variables.

    Returns:
        ``(variables crossed, child)``, or ``None`` if there is no such child.
    """
    if not is_variable(name) and name in node.children:
        return [], node.children[name]
    for variable, child in node.variable_children():
        found = find_literal(child, name)
        if found is not None:
            variables, target = found
            return [variable] + variables, target
    return None


def select_endpoint(specs: list[EndpointSpec], params: dict[str, Any], kinds: KindRegistry) -> EndpointSpec:
    """Choose the endpoint of a node that the given options point at.

    A single endpoint is always chosen. Among several, the first whose
    payload options (or ``--input``) were supplied wins, then the first
    whose query options were supplied, then the first without a payload,
    then the first declared.
    """
    if len(specs) == 1:
        return specs[0]
    for spec in specs:
        if spec.payload_struct and kind_supplied(kinds.get(spec.payload_struct), params):
            return spec
    for spec in specs:
        if spec.query_struct and kind_supplied(kinds.get(spec.query_struct), params):
            return spec
    for spec in specs:
        if not spec.payload_struct:
            return spec
    return specs[0]


def format_url(base_url: str, route: str, captured: Iterable[CapturedVar]) -> str:
    """Join *base_url* and *route*, substituting variables by name.

    Values are percent-encoded, slashes included.

    Raises:
        DeclarationError: If the route uses a variable that was not captured.
    """
    values = {item.name: item.value for item in captured}

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            raise DeclarationError(f"Route '{route}' uses '{{{name}}}' which the CLI route does not capture")
        return quote(str(values[name]), safe="")

    path = _VARIABLE_RE.sub(substitute, route)
    if path and not path.startswith("/"):
        path = f"/{path}"
    return f"{base_url.rstrip('/')}{path}"


def _capture_value(invocation: Invocation, variable: str) -> Optional[str]:
    return invocation.params.get(sanitize_param_name(variable))
