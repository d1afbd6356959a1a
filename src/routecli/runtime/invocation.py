"""Parse a command line into a chain of invocations.

click resolves a group's positional arguments before it looks at
subcommands, so a group with an optional capture (``post [ID] comments``)
would swallow ``comments`` as the ``id`` value. :func:`parse_invocation`
therefore splits the arguments of every level itself: a token naming a
subcommand starts the next level, and positionals beyond the command's
captures do too. Each level is then parsed by click with
:meth:`click.Command.make_context`, so types, choices and eager options
(``--help``, ``--template``) behave as usual.

The result is an :class:`Invocation` chain, one link per command, which
the dispatcher walks alongside the route trie.
"""

from __future__ import annotations

from typing import Any, Optional

import click


class Invocation:
    """One parsed level of the command line.

    Attributes:
        name: Canonical command name (aliases are resolved).
        command: The click command that parsed this level.
        params: Parsed parameter values of this level.
        context: The click context of this level.
        parent: The enclosing invocation, ``None`` at the root.
        subcommand: The next level, if a subcommand was selected.
    """

    def __init__(
        self,
        name: str,
        command: click.Command,
        params: dict[str, Any],
        context: click.Context,
        parent: Optional[Invocation] = None,
    ) -> None:
        self.name = name
        self.command = command
        self.params = params
        self.context = context
        self.parent = parent
        self.subcommand: Optional[Invocation] = None

    def __repr__(self) -> str:
        return f"Invocation({self.name!r}, subcommand={self.subcommand!r})"

    def lookup(self, key: str) -> Any:
        """Return the first non-``None`` value of *key* here or in an ancestor."""
        current: Optional[Invocation] = self
        while current is not None:
            value = current.params.get(key)
            if value is not None:
                return value
            current = current.parent
        return None

    def root(self) -> Invocation:
        """The top-level invocation."""
        current = self
        while current.parent is not None:
            current = current.parent
        return current

    def leaf(self) -> Invocation:
        """The deepest selected invocation."""
        current = self
        while current.subcommand is not None:
            current = current.subcommand
        return current


def parse_invocation(
    command: click.Command,
    args: list[str],
    prog_name: Optional[str] = None,
    parent: Optional[Invocation] = None,
) -> Invocation:
    """Parse *args* against *command* and its subcommands.

    Args:
        command: The command of this level (the root group at the top).
        args: Remaining command-line arguments.
        prog_name: Name shown in usage messages at the root.
        parent: Invocation of the enclosing level.

    Returns:
        The :class:`Invocation` of this level, with its subcommand chain.

    Raises:
        click.UsageError: For unknown options, bad values or unknown
            subcommands.
        click.exceptions.Exit: When an eager option (``--help``,
            ``--template``) finished the invocation.
    """
    parent_ctx = parent.context if parent is not None else None
    info_name = command.name if parent is not None else (prog_name or command.name)

    # A throwaway context resolves subcommand names (and aliases) while splitting.
    scratch = click.Context(command, info_name=info_name, parent=parent_ctx, resilient_parsing=True)
    own, tail = split_args(command, scratch, args)

    ctx = command.make_context(info_name, own, parent=parent_ctx)
    invocation = Invocation(command.name or info_name or "", command, dict(ctx.params), ctx, parent)

    if tail and isinstance(command, click.Group):
        sub_name = tail[0]
        sub_command = command.get_command(ctx, sub_name)
        if sub_command is None:
            raise click.UsageError(f"No such command '{sub_name}'.", ctx=ctx)
        invocation.subcommand = parse_invocation(sub_command, tail[1:], parent=invocation)
    return invocation


def split_args(command: click.Command, ctx: click.Context, args: list[str]) -> tuple[list[str], list[str]]:
    """Split *args* into this command's own tokens and the subcommand tail.

    Options (and the values of value-taking options) stay with the command.
    A positional naming a subcommand starts the tail; so does a positional
    beyond the command's arguments when the command is a group. Everything
    after ``--`` belongs to the command.
    """
    value_options: set[str] = set()
    positional_slots = 0
    for param in command.get_params(ctx):
        if isinstance(param, click.Option):
            if not param.is_flag and not param.count:
                value_options.update(param.opts)
                value_options.update(param.secondary_opts)
        elif isinstance(param, click.Argument):
            positional_slots += 1 if param.nargs > 0 else len(args)

    own: list[str] = []
    positionals = 0
    index = 0
    while index < len(args):
        token = args[index]
        if token == "--":
            own.extend(args[index:])
            return own, []
        if token.startswith("-") and token != "-":
            own.append(token)
            if token in value_options and index + 1 < len(args):
                own.append(args[index + 1])
                index += 1
            index += 1
            continue
        if isinstance(command, click.Group):
            if command.get_command(ctx, token) is not None or positionals >= positional_slots:
                return own, args[index:]
        own.append(token)
        positionals += 1
        index += 1
    return own, []
