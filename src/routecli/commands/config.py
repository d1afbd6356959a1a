"""Config commands -- view and modify the settings of a generated CLI.

Provides the ``routecli config`` sub-command group for reading, updating,
and resetting the settings file of one generated CLI
(:class:`~routecli.models.Settings`), keyed by its application name.
Settings are persisted in that application's config directory and hold
the base URL, the auth token source, request options, and profiles.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer
from pydantic import ValidationError

from routecli.config import get_config_dir, load_settings, save_settings
from routecli.models import Settings
from routecli.output import error, get_output, info, success
from routecli.render import pretty


config_app = typer.Typer(no_args_is_help=True)

_NAME_HELP = "Application name (the 'info.name' of its declarations)."


@config_app.command("show")
def config_show(name: str = typer.Argument(help=_NAME_HELP)) -> None:
    """Show the settings of a generated CLI.

    Prints the config directory path followed by the settings.

    Example::

        routecli config show jsonplaceholder
    """
    settings = load_settings(name)
    info(f"Config directory: {get_config_dir(name)}")
    get_output().print_data(pretty(settings.model_dump(mode="json")))


@config_app.command("set")
def config_set(
    name: str = typer.Argument(help=_NAME_HELP),
    key: str = typer.Argument(help="Settings key (dot notation, e.g., 'request.timeout')."),
    value: str = typer.Argument(help="Value to set."),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Set the value in this profile instead."
    ),
) -> None:
    """Set a settings value.

    Uses dot notation for nested keys. The value is read as JSON when
    possible (``30``, ``true``), as a string otherwise. The updated
    settings are validated before saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid or validation
            fails.

    Example::

        routecli config set jsonplaceholder base_url https://jsonplaceholder.typicode.com
        routecli config set jsonplaceholder auth_token env:JSONPLACEHOLDER_TOKEN
        routecli config set jsonplaceholder request.timeout 30 --profile slow
    """
    settings = load_settings(name)
    data = settings.model_dump(mode="json", exclude_none=True)

    target = data
    if profile is not None:
        target = data.setdefault("profiles", {}).setdefault(profile, {})

    keys = key.split(".")
    for k in keys[:-1]:
        nested = target.setdefault(k, {})
        if not isinstance(nested, dict):
            error(f"Invalid settings key: {key}")
            raise typer.Exit(code=2)
        target = nested
    coerced = _coerce(value)
    target[keys[-1]] = coerced

    try:
        updated = Settings.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(name, updated)
    scope = f" (profile {profile})" if profile else ""
    success(f"Set {key} = {coerced}{scope}")


@config_app.command("reset")
def config_reset(
    name: str = typer.Argument(help=_NAME_HELP),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the settings of a generated CLI to defaults.

    Raises:
        typer.Exit: If the user declines confirmation.

    Example::

        routecli config reset jsonplaceholder --force
    """
    if not force:
        confirmed = typer.confirm(f"Reset all settings of {name} to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_settings(name, Settings())
    success("Settings reset to defaults.")


def _coerce(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value
