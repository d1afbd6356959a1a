"""Inspect commands -- examine what a declaration file generates.

Provides the ``routecli inspect`` sub-command group with read-only
commands for viewing a declaration file: the route trie, the endpoint
table, and the generated command tree with its options. All sub-commands
load the file, build the trie, and present the data as a tree or a table.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.tree import Tree

from routecli.generator import build_route_trie, generate
from routecli.generator.command_tree import CommandDecl
from routecli.generator.trie import RouteNode
from routecli.loader import load_declarations, materialize
from routecli.output import DisplayMode, get_output


inspect_app = typer.Typer(no_args_is_help=True)


_SOURCE_HELP = "Declaration file (path, URL, or '-' for stdin)."


@inspect_app.command("routes")
def inspect_routes(source: str = typer.Argument(help=_SOURCE_HELP)) -> None:
    """Show the route trie.

    Every node is listed under its parent with the endpoints ending there.

    Example::

        routecli inspect routes api.yaml
    """
    declarations = load_declarations(source)
    store, _ = materialize(declarations)
    root = build_route_trie(store)

    output = get_output()
    if output.mode == DisplayMode.RICH:
        tree = Tree(f"[bold]{declarations.info.name}[/bold]")
        _route_tree(tree, root)
        output.print_renderable(tree)
    else:
        for path, node in root.walk():
            label = "/" + "/".join(path)
            methods = ", ".join(spec.describe() for spec in node.endpoints)
            output.print_data(f"{label}\t{methods}" if methods else label)


def _route_tree(tree: Tree, node: RouteNode) -> None:
    for spec in node.endpoints:
        tree.add(f"[green]{spec.method.value}[/green] {spec.route}")
    for segment, child in node.children.items():
        _route_tree(tree.add(f"[cyan]{segment}[/cyan]"), child)


@inspect_app.command("endpoints")
def inspect_endpoints(source: str = typer.Argument(help=_SOURCE_HELP)) -> None:
    """List all endpoints.

    Displays a table of every endpoint with its CLI route, HTTP method,
    wire route, expected status, and result kind.

    Example::

        routecli inspect endpoints api.yaml
    """
    declarations = load_declarations(source)
    store, _ = materialize(declarations)

    headers = ["CLI route", "Method", "Route", "Status", "Result", "Help"]
    rows: list[list[str]] = []
    for spec in store:
        result = f"list[{spec.result_struct}]" if spec.result_multiple else spec.result_struct
        if spec.result_is_stream:
            result = "stream"
        rows.append([
            spec.cli_route,
            spec.method.value,
            spec.route,
            str(int(spec.result_ok_status)),
            result,
            spec.cli_help or "-",
        ])
    get_output().print_table(
        headers, rows, title=f"{declarations.info.name} -- Endpoints ({len(rows)})"
    )


@inspect_app.command("commands")
def inspect_commands(
    source: str = typer.Argument(help=_SOURCE_HELP),
    command: Optional[str] = typer.Option(
        None, "--command", "-c", help="Only show this command path (e.g. 'post comments')."
    ),
) -> None:
    """List the generated commands and their options.

    Example::

        routecli inspect commands api.yaml
        routecli inspect commands api.yaml --command post
    """
    declarations = load_declarations(source)
    store, kinds = materialize(declarations)
    top = generate(build_route_trie(store), kinds, name=declarations.info.name)

    wanted = tuple(command.split()) if command else None
    headers = ["Command", "Arguments", "Options"]
    rows: list[list[str]] = []
    for path, decl in top.walk():
        if wanted is not None and path != wanted:
            continue
        rows.append([
            " ".join((top.name,) + path),
            " ".join(f"[{capture.variable.upper()}]" for capture in decl.captures) or "-",
            _options_summary(decl) or "-",
        ])
    if not rows:
        get_output().warning(f"No command '{command}'")
        raise typer.Exit(code=4)
    get_output().print_table(headers, rows, title=f"{top.name} -- Commands ({len(rows)})")


def _options_summary(decl: CommandDecl) -> str:
    return " ".join("/".join(option.flags) for option in decl.options)
