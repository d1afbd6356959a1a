"""Shell completion for generated CLIs.

Two pieces, both built on :mod:`click.shell_completion`:

* :func:`completion_command` -- the ``completion --generate <shell>``
  subcommand added to every generated root, printing the script to source.
* :func:`handle_completion` -- answers the completion requests the shell
  sends back through the ``_<PROG>_COMPLETE`` environment variable.
"""

from __future__ import annotations

import os
import re
from typing import Optional

import click
from click.shell_completion import get_completion_class, shell_complete

from routecli.output import get_output

SHELLS = ("bash", "fish", "zsh")


def complete_var(prog_name: str) -> str:
    """Environment variable the completion script sets (``_MYAPI_COMPLETE``)."""
    return f"_{re.sub(r'[^A-Za-z0-9]+', '_', prog_name).upper()}_COMPLETE"


def completion_script(cli: click.Command, prog_name: str, shell: str) -> str:
    """Return the completion script of *cli* for *shell*.

    Raises:
        click.BadParameter: If *shell* is not supported.
    """
    comp_cls = get_completion_class(shell)
    if comp_cls is None:
        raise click.BadParameter(f"unsupported shell '{shell}'", param_hint="--generate")
    return comp_cls(cli, {}, prog_name, complete_var(prog_name)).source()


def handle_completion(cli: click.Command, prog_name: str) -> Optional[int]:
    """Answer a pending completion request, if the shell sent one.

    Returns:
        The exit code when a request was handled, ``None`` otherwise.
    """
    var = complete_var(prog_name)
    instruction = os.environ.get(var)
    if not instruction:
        return None
    return shell_complete(cli, {}, prog_name, var, instruction)


def completion_command() -> click.Command:
    """Build the ``completion`` subcommand of a generated root."""

    @click.command("completion", help="Print the shell completion script.")
    @click.option(
        "--generate",
        "shell",
        required=True,
        type=click.Choice(SHELLS),
        help="Shell to generate the script for.",
    )
    @click.pass_context
    def _completion(ctx: click.Context, shell: str) -> None:
        root = ctx.find_root()
        get_output().print_data(completion_script(root.command, root.info_name or "", shell))

    return _completion
