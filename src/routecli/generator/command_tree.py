"""Build the CLI command tree from a route trie.

This is the build-time half of routecli. It walks a
:class:`~routecli.generator.trie.RouteNode` tree and produces a declarative
:class:`CommandDecl` tree, which :func:`build_click_command` materialises as
click commands and groups.

**Algorithm summary**

1. Every literal segment becomes a command named after it; nodes without
   children become leaf commands, the others groups.
2. A variable segment becomes an optional positional capture on the command
   of its nearest literal ancestor (or the root). Its own children attach to
   that same command, so ``/post/{id}/delete`` yields ``post [<id>] delete``.
3. Each endpoint contributes its payload options (plus ``--input`` and
   ``--template``) and query options to the command its node belongs to.
4. ``--output`` is placed on the first node along a branch that carries a
   streaming endpoint. The "not yet placed" flag is passed down explicitly,
   so siblings never influence each other.
5. ``--format`` is added to a command when at least one endpoint
   contributes to it: not ``cli_no_output``, and not streaming unless
   ``cli_force_output_format`` is set. Its choices are the sorted union of
   the contributors' ``cli_output_formats``, or :data:`~routecli.render.FORMATS`
   when none declare any. Endpoints of variable nodes only contribute when
   one of them forces the flag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import click

from routecli.exceptions import DeclarationError
from routecli.generator.param_mapper import (
    OUTPUT_FORMAT,
    PAYLOAD_HEADING,
    QUERY_HEADING,
    OptionDecl,
    input_options,
    kind_options,
    output_file_option,
    output_format_option,
    sanitize_param_name,
)
from routecli.generator.trie import RouteNode, is_variable, variable_name
from routecli.kinds import KindRegistry
from routecli.models import EndpointSpec
from routecli.output import get_output
from routecli.render import FORMATS

# ---------------------------------------------------------------------------
# Declarative tree
# ---------------------------------------------------------------------------


@dataclass
class CaptureDecl:
    """A positional argument capturing the value of a route variable."""

    variable: str
    name: str


@dataclass
class CommandDecl:
    """Declarative description of one generated command.

    Attributes:
        name: Command name (the literal segment).
        captures: Positional captures, one per variable child, in order.
        options: Options of the command, in declaration order.
        subcommands: Child commands keyed by name.
        endpoints: Endpoints reachable from this command without choosing a
            subcommand (its own and those of its variable children).
        format_sources: Endpoints contributing to ``--format``.
    """

    name: str
    help: Optional[str] = None
    long_help: Optional[str] = None
    aliases: list[str] = field(default_factory=list)
    visible_aliases: list[str] = field(default_factory=list)
    captures: list[CaptureDecl] = field(default_factory=list)
    options: list[OptionDecl] = field(default_factory=list)
    subcommands: dict[str, CommandDecl] = field(default_factory=dict)
    endpoints: list[EndpointSpec] = field(default_factory=list)
    format_sources: list[EndpointSpec] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        """Whether the command has no subcommands."""
        return not self.subcommands

    def option(self, name: str) -> Optional[OptionDecl]:
        """Return the option whose parameter name is *name*, if any."""
        for decl in self.options:
            if decl.name == name:
                return decl
        return None

    def add_option(self, decl: OptionDecl) -> None:
        """Add *decl* unless the same owner already declared it.

        A short flag already used by another option is dropped.

        Raises:
            DeclarationError: If a different owner already declared an
                option with the same name or long flag.
        """
        for existing in self.options:
            if existing.name == decl.name or existing.long == decl.long:
                if existing.owner == decl.owner and existing.name == decl.name:
                    return
                raise DeclarationError(
                    f"Command '{self.name}': option --{decl.long} of {decl.owner} clashes "
                    f"with --{existing.long} of {existing.owner} "
                    f"(rename the field or override the flag with 'config')"
                )
        if decl.short and any(existing.short == decl.short for existing in self.options):
            decl.short = None
        self.options.append(decl)

    def add_capture(self, variable: str) -> None:
        """Add a positional capture for *variable* (once)."""
        if any(capture.variable == variable for capture in self.captures):
            return
        self.captures.append(CaptureDecl(variable=variable, name=sanitize_param_name(variable)))

    def walk(self, path: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], CommandDecl]]:
        """Yield ``(command path, command)`` for this command and all descendants."""
        yield path, self
        for name, sub in self.subcommands.items():
            yield from sub.walk(path + (name,))


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def generate(
    root: RouteNode,
    kinds: KindRegistry,
    name: str = "api",
    help: Optional[str] = None,
) -> CommandDecl:
    """Generate the declarative command tree of a route trie.

    Args:
        root: Trie built by :func:`~routecli.generator.trie.build_route_trie`.
        kinds: Registry resolving payload/query kind names.
        name: Name of the top-level command.
        help: Help text of the top-level command.

    Returns:
        The top-level :class:`CommandDecl`.

    Raises:
        DeclarationError: If an endpoint refers to an unknown kind or two
            kinds claim the same option on one command.
    """
    top = CommandDecl(name=name, help=help)
    _declare_node(top, root, kinds, needs_output_flag=True, literal=True)
    for _, command in top.walk():
        _finalize_format(command)
    return top


def _declare_node(
    command: CommandDecl,
    node: RouteNode,
    kinds: KindRegistry,
    needs_output_flag: bool,
    literal: bool,
) -> None:
    """Declare what *node* contributes to *command*, then recurse into children.

    Args:
        command: Command the node's arguments attach to.
        node: Trie node being declared.
        kinds: Kind registry.
        needs_output_flag: ``True`` while no ``--output`` has been placed on
            the branch leading to *node*.
        literal: ``False`` when *node* is reached through a variable segment.
    """
    specs = node.endpoints
    command.endpoints.extend(specs)

    if needs_output_flag and node.has_stream():
        command.add_option(
            output_file_option(spec.arg_config("output_file") for spec in specs if spec.result_is_stream)
        )
        needs_output_flag = False

    if literal or any(spec.cli_force_output_format for spec in specs):
        command.format_sources.extend(spec for spec in specs if contributes_format(spec))

    for spec in specs:
        if spec.payload_struct:
            payload = kinds.get(spec.payload_struct)
            for decl in kind_options(payload, PAYLOAD_HEADING):
                command.add_option(decl)
            for decl in input_options(
                payload, (spec.arg_config("input_file"), spec.arg_config("input_template"))
            ):
                command.add_option(decl)
        if spec.query_struct:
            for decl in kind_options(kinds.get(spec.query_struct), QUERY_HEADING):
                command.add_option(decl)
        # Result kinds are resolved here so unknown names fail at build time.
        kinds.get(spec.result_struct)
        if spec.transform_from:
            kinds.transform(spec.transform_from, spec.result_struct, spec.result_multiple)

    for segment, child in node.children.items():
        if is_variable(segment):
            command.add_capture(variable_name(segment))
            _declare_node(command, child, kinds, needs_output_flag, literal=False)
        else:
            sub = CommandDecl(name=segment)
            _describe(sub, child)
            command.subcommands[segment] = sub
            _declare_node(sub, child, kinds, needs_output_flag, literal=True)


def contributes_format(spec: EndpointSpec) -> bool:
    """Whether *spec* takes part in its command's ``--format`` flag."""
    if spec.cli_no_output:
        return False
    return not spec.result_is_stream or spec.cli_force_output_format


def format_choices(specs: list[EndpointSpec]) -> list[str]:
    """Sorted, deduplicated union of declared formats, or every supported one."""
    declared = sorted({fmt for spec in specs for fmt in spec.cli_output_formats})
    return declared or list(FORMATS)


def _finalize_format(command: CommandDecl) -> None:
    if not command.format_sources or command.option(OUTPUT_FORMAT) is not None:
        return
    command.add_option(
        output_format_option(
            format_choices(command.format_sources),
            (spec.arg_config(OUTPUT_FORMAT) for spec in command.format_sources),
        )
    )


def _describe(command: CommandDecl, node: RouteNode) -> None:
    """Fill help text and aliases of a literal command from its endpoints."""
    own = node.endpoints
    nested = [spec for _, child in node.variable_children() for spec in child.endpoints]
    for spec in own + nested:
        if command.help is None and spec.cli_help:
            command.help = spec.cli_help
        if command.long_help is None and spec.cli_long_help:
            command.long_help = spec.cli_long_help
    for spec in own:
        for alias in spec.cli_visible_aliases:
            if alias not in command.visible_aliases:
                command.visible_aliases.append(alias)
        for alias in spec.cli_aliases:
            if alias not in command.aliases:
                command.aliases.append(alias)


# ---------------------------------------------------------------------------
# click materialisation
# ---------------------------------------------------------------------------

_CLICK_TYPES: dict[str, Any] = {
    "string": click.STRING,
    "integer": click.INT,
    "number": click.FLOAT,
    "json": click.STRING,
}


class RouteOption(click.Option):
    """click option carrying the help heading it is listed under."""

    def __init__(self, *args: Any, heading: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.heading = heading


class _RouteCommandMixin:
    """Help rendering and alias bookkeeping shared by commands and groups."""

    decl: Optional[CommandDecl] = None

    def format_options(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        sections: dict[str, list[tuple[str, str]]] = {}
        for param in self.get_params(ctx):  # type: ignore[attr-defined]
            record = param.get_help_record(ctx)
            if record is None:
                continue
            heading = getattr(param, "heading", None) or "Options"
            sections.setdefault(heading, []).append(record)
        for heading, records in sections.items():
            with formatter.section(heading):
                formatter.write_dl(records)
        if isinstance(self, click.Group):
            self.format_commands(ctx, formatter)


class RouteCommand(_RouteCommandMixin, click.Command):
    """Leaf command generated from a literal route segment."""


class RouteGroup(_RouteCommandMixin, click.Group):
    """Group generated from a literal route segment with children.

    Options may follow positional captures (``post 42 --format json``), and
    subcommands are listed in declaration order. Hidden aliases resolve to
    their command.
    """

    allow_interspersed_args = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("no_args_is_help", False)
        super().__init__(*args, **kwargs)
        self._aliases: dict[str, str] = {}

    def add_command(self, cmd: click.Command, name: Optional[str] = None) -> None:
        super().add_command(cmd, name)
        decl = getattr(cmd, "decl", None)
        if decl is not None:
            for alias in decl.visible_aliases + decl.aliases:
                self._aliases.setdefault(alias, cmd.name or "")

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        command = super().get_command(ctx, cmd_name)
        if command is None and cmd_name in self._aliases:
            command = super().get_command(ctx, self._aliases[cmd_name])
        return command

    def list_commands(self, ctx: click.Context) -> list[str]:
        return list(self.commands)


def build_click_command(decl: CommandDecl, force_group: bool = False) -> click.Command:
    """Materialise a :class:`CommandDecl` (recursively) as click commands.

    Args:
        decl: Declarative command.
        force_group: Build a :class:`RouteGroup` even without subcommands
            (used for the application root).
    """
    params: list[click.Parameter] = [
        click.Argument([capture.name], required=False, metavar=f"[{capture.variable.upper()}]")
        for capture in decl.captures
    ]
    params.extend(_build_option(option) for option in decl.options)

    help_text = decl.long_help or decl.help
    short_help = decl.help
    if decl.visible_aliases:
        suffix = f"[aliases: {', '.join(decl.visible_aliases)}]"
        short_help = f"{short_help} {suffix}" if short_help else suffix

    command: click.Command
    if decl.is_leaf and not force_group:
        command = RouteCommand(decl.name, params=params, help=help_text, short_help=short_help)
    else:
        command = RouteGroup(decl.name, params=params, help=help_text, short_help=short_help)
    command.decl = decl  # type: ignore[attr-defined]
    if isinstance(command, RouteGroup):
        for sub in decl.subcommands.values():
            command.add_command(build_click_command(sub))
    return command


def _build_option(decl: OptionDecl) -> RouteOption:
    kwargs: dict[str, Any] = {
        "help": decl.help,
        "heading": decl.heading,
        "required": decl.required,
    }
    if decl.is_flag:
        kwargs["is_flag"] = True
        kwargs["default"] = False
    else:
        kwargs["type"] = click.Choice(decl.choices) if decl.choices else _CLICK_TYPES.get(decl.type, click.STRING)
        kwargs["multiple"] = decl.multiple
        kwargs["default"] = None
    if decl.template_of is not None:
        kind = decl.template_of
        kwargs["is_eager"] = True
        kwargs["expose_value"] = False

        def _print_template(ctx: click.Context, param: click.Parameter, value: Any) -> None:
            if not value or ctx.resilient_parsing:
                return
            get_output().print_data(kind.template())
            ctx.exit(0)

        kwargs["callback"] = _print_template
    return RouteOption(decl.flags + [decl.name], **kwargs)
