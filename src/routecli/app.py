"""Application shell: run generated CLIs, and the ``routecli`` console script.

Two entry points live here:

* :class:`ApiRun` -- builds the click command tree of an API (endpoints,
  kinds, authenticator) and runs one invocation of it. A project shipping
  its own CLI calls :meth:`ApiRun.main` from its console script.
* :data:`app` / :func:`main` -- the ``routecli`` Typer application, which
  runs and inspects declaration files (``routecli run api.yaml post 42``).

Both install a SIGINT handler, map :class:`~routecli.exceptions.RouteCliError`
to its exit code, and write a crash log under the data directory for
anything unexpected.

See Also:
    :mod:`routecli.config`: Settings resolution used before dispatch.
    :mod:`routecli.runtime.dispatcher`: Endpoint selection and execution.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import click
import httpx
import typer

from routecli import __version__
from routecli.auth import Authenticator, create_authenticator
from routecli.client.transport import HTTPTransport
from routecli.completion import completion_command, handle_completion
from routecli.config import get_data_dir, resolve_settings
from routecli.exceptions import DeclarationError, RouteCliError
from routecli.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS
from routecli.generator import build_click_command, build_route_trie, generate
from routecli.generator.command_tree import RouteGroup, RouteOption
from routecli.generator.trie import RouteNode
from routecli.kinds import KindRegistry
from routecli.models import ApiInfo
from routecli.output import OutputManager, error, get_output, set_output
from routecli.registry import EndpointStore
from routecli.runtime import DispatchResult, dispatch, parse_invocation

CONFIGURATION_HEADING = "Configuration"


class ApiRun:
    """A generated CLI for one API.

    Args:
        info: Application metadata (name, default base URL, auth type).
        store: The registered endpoints.
        kinds: Kinds and transforms the endpoints refer to.
        authenticator: Overrides the authenticator named by ``info.auth``.
        transport: Optional httpx transport (``httpx.MockTransport`` in
            tests).

    Example::

        store = EndpointStore()
        store.register({"route": "/posts", "cli_route": "/post", "result_struct": "Raw"})
        ApiRun(ApiInfo(name="blog", base_url="https://example.com"), store, KindRegistry()).main()
    """

    def __init__(
        self,
        info: ApiInfo,
        store: EndpointStore,
        kinds: KindRegistry,
        authenticator: Optional[Authenticator] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.info = info
        self.store = store
        self.kinds = kinds
        self.authenticator = authenticator or create_authenticator(info.auth)
        self._transport = transport
        self._trie: Optional[RouteNode] = None
        self._cli: Optional[click.Group] = None

    # ------------------------------------------------------------------ #
    # Build
    # ------------------------------------------------------------------ #

    @property
    def trie(self) -> RouteNode:
        """The route trie of the registered endpoints (built once)."""
        if self._trie is None:
            self._trie = build_route_trie(self.store)
        return self._trie

    def build(self) -> click.Group:
        """Build (once) and return the root command group.

        Raises:
            DeclarationError: If the endpoints cannot produce a command tree.
        """
        if self._cli is not None:
            return self._cli
        decl = generate(self.trie, self.kinds, name=self.info.name, help=self.info.about)
        cli = build_click_command(decl, force_group=True)
        if not isinstance(cli, RouteGroup):
            raise DeclarationError(f"'{self.info.name}' did not produce a command group")
        cli.params = self._root_options(cli) + cli.params
        if "completion" not in cli.commands:
            cli.add_command(completion_command())
        self._cli = cli
        return cli

    def _root_options(self, cli: click.Command) -> list[click.Parameter]:
        taken = {opt for param in cli.params for opt in getattr(param, "opts", [])}

        def flags(long: str, short: str) -> list[str]:
            return [long] if short in taken else [long, short]

        options: list[click.Parameter] = [
            RouteOption(
                ["--base-url", "base_url"],
                default=None,
                help="Base URL of the API (overrides settings)",
                heading=CONFIGURATION_HEADING,
            ),
            RouteOption(
                ["--profile", "profile"],
                default=None,
                help="Settings profile to use",
                heading=CONFIGURATION_HEADING,
            ),
            RouteOption(
                flags("--verbose", "-v") + ["verbose"],
                is_flag=True,
                default=False,
                help="Enable debug output",
            ),
            RouteOption(
                ["--quiet", "quiet"],
                is_flag=True,
                default=False,
                help="Suppress non-essential output",
            ),
            RouteOption(
                ["--no-color", "no_color"],
                is_flag=True,
                default=False,
                help="Disable color output",
            ),
        ]
        for option in self.authenticator.options():
            option.opts = [opt for opt in option.opts if opt not in taken]
            option.secondary_opts = [opt for opt in option.secondary_opts if opt not in taken]
            options.append(option)
        if self.info.version:
            options.append(_version_option(self.info.name, self.info.version))
        return options

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #

    def run(self, argv: Optional[list[str]] = None, prog_name: Optional[str] = None) -> int:
        """Run one invocation and return its exit code.

        Args:
            argv: Command-line arguments (default: ``sys.argv[1:]``).
            prog_name: Program name shown in usage (default: the API name).

        Returns:
            ``0`` on success (help included), the error's exit code otherwise.
        """
        args = list(sys.argv[1:] if argv is None else argv)
        prog_name = prog_name or self.info.name
        try:
            cli = self.build()
            handled = handle_completion(cli, prog_name)
            if handled is not None:
                return handled

            invocation = parse_invocation(cli, args, prog_name=prog_name)
            params = invocation.params
            set_output(
                OutputManager(
                    no_color=params.get("no_color", False),
                    quiet=params.get("quiet", False),
                    verbose=params.get("verbose", False),
                )
            )
            leaf = invocation.leaf()
            if getattr(leaf.command, "decl", None) is None:
                leaf.command.invoke(leaf.context)
                return EXIT_SUCCESS

            settings = resolve_settings(self.info, params.get("profile"), params.get("base_url"))
            self.authenticator.configure(params, settings)
            transport = HTTPTransport(
                self.authenticator,
                self.info.extra_header,
                settings.request,
                transport=self._transport,
            )
            result = dispatch(self.trie, invocation, settings.base_url, transport, self.kinds)
            if result is None:
                get_output().print_data(leaf.context.get_help())
                return EXIT_SUCCESS
            self.show(result)
            return EXIT_SUCCESS
        except click.exceptions.Exit as exc:
            return exc.exit_code
        except click.ClickException as exc:
            exc.show()
            return exc.exit_code
        except click.exceptions.Abort:
            error("Aborted.")
            return EXIT_GENERIC_FAILURE
        except RouteCliError as exc:
            error(str(exc))
            return exc.exit_code

    def show(self, result: DispatchResult) -> None:
        """Render a dispatch result, or raise its failure.

        Raises:
            RouteCliError: The error matching a failed outcome.
        """
        if not result.outcome.ok:
            raise result.outcome.to_error()  # type: ignore[union-attr]
        spec = result.spec
        kind = result.result_kind
        if spec.cli_no_output or spec.result_is_stream or kind.is_empty:
            return
        get_output().print_result(
            kind.dump(result.outcome.value),  # type: ignore[union-attr]
            result.output_format,
            multiple=spec.result_multiple,
            skip=kind.table_skip(),
        )

    def main(self, argv: Optional[list[str]] = None) -> None:
        """Console-script entry point of a generated CLI.

        Raises:
            SystemExit: Always, with the invocation's exit code.
        """
        _setup_signal_handlers()
        try:
            code = self.run(argv)
        except Exception as exc:
            log_path = _write_crash_log(exc, self.info.name)
            error(f"Unexpected error. Debug log: {log_path}")
            code = EXIT_GENERIC_FAILURE
        sys.exit(code)


def _version_option(name: str, version: str) -> click.Option:
    def _print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        get_output().print_data(f"{name} {version}")
        ctx.exit(0)

    return RouteOption(
        ["--version", "version"],
        is_flag=True,
        expose_value=False,
        is_eager=True,
        callback=_print_version,
        help="Show version and exit.",
    )


# ------------------------------------------------------------------ #
# The routecli console script
# ------------------------------------------------------------------ #

app = typer.Typer(
    name="routecli",
    help="Build command-line clients from HTTP endpoint declarations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"routecli {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~routecli.output.OutputManager` from the
    CLI flags.
    """
    set_output(OutputManager(no_color=no_color, quiet=quiet, verbose=verbose))


@app.command(
    "run",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
def run_command(
    source: str = typer.Argument(help="Declaration file (path, URL, or '-' for stdin)."),
    args: Optional[list[str]] = typer.Argument(None, help="Arguments of the generated CLI."),
) -> None:
    """Run the CLI generated from a declaration file.

    Everything after SOURCE is handed to the generated CLI.

    Example::

        routecli run api.yaml post 42 --format json
        routecli run api.yaml post --help
    """
    from routecli.loader import load_declarations, materialize

    declarations = load_declarations(source)
    store, kinds = materialize(declarations)
    api = ApiRun(declarations.info, store, kinds)
    code = api.run(list(args or []), prog_name=declarations.info.name)
    if code != EXIT_SUCCESS:
        raise typer.Exit(code=code)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception, app_name: str = "routecli") -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.
        app_name: Application whose data directory receives the log.

    Returns:
        Absolute path to the written crash log file.
    """
    logs_dir = get_data_dir(app_name) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``routecli`` console script.

    Installs signal handlers, registers the ``inspect`` and ``config``
    sub-command groups, and invokes the Typer app. Unhandled
    :class:`~routecli.exceptions.RouteCliError` instances cause a clean exit
    with the error's ``exit_code``; all other exceptions produce a crash log
    and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        if isinstance(exc, RouteCliError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)


def register_commands() -> None:
    """Attach the ``inspect`` and ``config`` groups to :data:`app` (once)."""
    from routecli.commands.config import config_app
    from routecli.commands.inspect import inspect_app

    registered = {group.name for group in app.registered_groups}
    if "inspect" not in registered:
        app.add_typer(inspect_app, name="inspect", help="Inspect a declaration file.")
    if "config" not in registered:
        app.add_typer(config_app, name="config", help="View and modify the settings of a generated CLI.")
