"""Map kind fields and built-in flags to CLI option declarations, and back.

This module bridges :class:`~routecli.kinds.Kind` metadata and the click
command surface. It produces :class:`OptionDecl` descriptors that
:mod:`~routecli.generator.command_tree` materialises as click options, and
reads parsed option values back into kind values at dispatch time.

**Mapping rules:**

* **Fields** become ``--long`` options. ``long`` defaults to the field name
  with underscores turned into hyphens; fields of nested kinds are prefixed
  with the parent field (``--address-city``).
* **Short flags** default to the first character of the long name unless
  ``no_short`` is set. A short flag already taken on a command is dropped
  (first come, first served).
* **Optional fields** get ``(option)`` in front of their help text.
* **Types**: ``integer``/``number`` map to click ints/floats, ``boolean``
  fields are flags, ``multiple`` fields repeat, ``json`` fields take a JSON
  string. ``possible_values`` become a :class:`click.Choice`.
* **Built-in flags** (``--output``, ``--format``, ``--input``,
  ``--template``) have defaults in :data:`BUILTIN_ARGS` which an endpoint's
  :class:`~routecli.models.ArgConfig` overrides field by field.
* **Parameter names** are sanitised to valid Python identifiers via
  :func:`sanitize_param_name`.
"""

from __future__ import annotations

import json
import keyword
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from routecli.exceptions import DeclarationError, InvalidUsageError, SerializationError
from routecli.kinds import Kind, wire_name
from routecli.models import ArgConfig, KindField


# ---------------------------------------------------------------------------
# Built-in flags
# ---------------------------------------------------------------------------

OUTPUT_FILE = "output_file"
OUTPUT_FORMAT = "output_format"
INPUT_FILE = "input_file"
INPUT_TEMPLATE = "input_template"

BUILTIN_ARGS: dict[str, ArgConfig] = {
    OUTPUT_FILE: ArgConfig(
        arg_name=OUTPUT_FILE,
        long="output",
        short="o",
        help="Output file. (default: stdout)",
        long_help="Output file to save the result in. (default: stdout)",
        heading="Options",
    ),
    INPUT_FILE: ArgConfig(
        arg_name=INPUT_FILE,
        long="input",
        short="i",
        help="Read the data from file ('-' for stdin)",
        long_help="Read the data from a JSON file ('-' for stdin)",
        heading="Options",
    ),
    INPUT_TEMPLATE: ArgConfig(
        arg_name=INPUT_TEMPLATE,
        long="template",
        short="t",
        help="Generate an input template",
        long_help="Generate an input template to use with the --input option",
        heading="Options",
    ),
    OUTPUT_FORMAT: ArgConfig(
        arg_name=OUTPUT_FORMAT,
        long="format",
        short="f",
        help="Output format (default: table or pretty print)",
        heading="Formatting",
    ),
}
"""Defaults of the built-in flags, keyed by parameter name."""

PAYLOAD_HEADING = "Payload"
QUERY_HEADING = "Parameters"


@dataclass
class OptionDecl:
    """Declarative description of one ``--option`` of a generated command.

    Attributes:
        name: Python-safe click parameter name.
        long: Long flag without dashes.
        short: Single-character short flag, if any.
        owner: What declared the option (a kind name or a built-in flag);
            the same owner declaring the same option twice is merged.
        template_of: For ``--template``, the kind whose template is printed.
    """

    name: str
    long: str
    short: Optional[str] = None
    help: Optional[str] = None
    heading: Optional[str] = None
    type: str = "string"
    choices: Optional[list[str]] = None
    multiple: bool = False
    is_flag: bool = False
    required: bool = False
    owner: str = ""
    template_of: Optional[Kind] = field(default=None, repr=False)

    @property
    def flags(self) -> list[str]:
        """Option strings in click order (``["--output", "-o"]``)."""
        flags = [f"--{self.long}"]
        if self.short:
            flags.append(f"-{self.short}")
        return flags


# ---------------------------------------------------------------------------
# Name sanitisation
# ---------------------------------------------------------------------------

# Matches any character that is not alphanumeric or underscore.
_INVALID_IDENT_RE = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_param_name(name: str) -> str:
    """Convert a field or variable name to a valid Python identifier.

    Applies the following transformations in order:

    1. CamelCase boundaries are split with underscores (``userId`` becomes
       ``user_id``).
    2. The string is lowercased.
    3. Hyphens and dots are replaced with underscores.
    4. Any remaining non-alphanumeric/non-underscore characters are replaced.
    5. Consecutive and leading/trailing underscores are collapsed.
    6. An empty result defaults to ``"param"``.
    7. A leading digit gets an underscore prefix.
    8. Python keywords get a trailing underscore (``"class"`` becomes
       ``"class_"``).

    Example::

        >>> sanitize_param_name("userId")
        'user_id'
        >>> sanitize_param_name("post-id")
        'post_id'
    """
    result = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    result = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", result)
    result = result.lower()
    result = result.replace("-", "_").replace(".", "_")
    result = _INVALID_IDENT_RE.sub("_", result)
    result = re.sub(r"_+", "_", result).strip("_")
    if not result:
        result = "param"
    if result[0].isdigit():
        result = f"_{result}"
    if keyword.iskeyword(result):
        result = f"{result}_"
    return result


def long_name(name: str) -> str:
    """Turn a field name into a long flag name (``user_id`` -> ``user-id``)."""
    return re.sub(r"[^a-zA-Z0-9-]+", "-", name).strip("-").lower() or "value"


# ---------------------------------------------------------------------------
# Built-in flag declarations
# ---------------------------------------------------------------------------


def arg_config(arg_name: str, overrides: Iterable[Optional[ArgConfig]] = ()) -> ArgConfig:
    """Merge endpoint overrides of a built-in flag over its default.

    Each attribute takes the first non-``None`` value among *overrides*, in
    order, falling back to :data:`BUILTIN_ARGS`.

    Args:
        arg_name: One of the built-in parameter names.
        overrides: Endpoint-level :class:`~routecli.models.ArgConfig` values
            (``None`` entries are skipped).
    """
    merged = BUILTIN_ARGS[arg_name].model_dump()
    local = [item for item in overrides if item is not None]
    for key in merged:
        if key == "arg_name":
            continue
        for item in local:
            value = getattr(item, key)
            if value is not None:
                merged[key] = value
                break
    return ArgConfig.model_validate(merged)


def builtin_option(arg_name: str, config: ArgConfig, **extra: Any) -> OptionDecl:
    """Build the :class:`OptionDecl` of a built-in flag from its merged config."""
    if not config.long:
        raise DeclarationError(f"Built-in option '{arg_name}' has no long name")
    return OptionDecl(
        name=arg_name,
        long=config.long,
        short=None if config.no_short else config.short,
        help=config.help,
        heading=config.heading,
        choices=config.possible_values,
        required=bool(config.required),
        owner=arg_name,
        **extra,
    )


def output_file_option(overrides: Iterable[Optional[ArgConfig]] = ()) -> OptionDecl:
    """``--output/-o FILE`` for streaming endpoints."""
    return builtin_option(OUTPUT_FILE, arg_config(OUTPUT_FILE, overrides))


def output_format_option(
    choices: list[str], overrides: Iterable[Optional[ArgConfig]] = ()
) -> OptionDecl:
    """``--format/-f`` restricted to *choices* (unless an override lists its own)."""
    config = arg_config(OUTPUT_FORMAT, overrides)
    option = builtin_option(OUTPUT_FORMAT, config)
    if option.choices is None:
        option.choices = list(choices)
    return option


def input_options(kind: Kind, overrides: Iterable[Optional[ArgConfig]] = ()) -> list[OptionDecl]:
    """``--input/-i`` and ``--template/-t`` for a payload kind."""
    if kind.no_input_file:
        return []
    overrides = list(overrides)
    return [
        builtin_option(INPUT_FILE, arg_config(INPUT_FILE, overrides)),
        builtin_option(
            INPUT_TEMPLATE,
            arg_config(INPUT_TEMPLATE, overrides),
            is_flag=True,
            template_of=kind,
        ),
    ]


# ---------------------------------------------------------------------------
# Kind field declarations
# ---------------------------------------------------------------------------


def kind_options(kind: Kind, default_heading: Optional[str] = None) -> list[OptionDecl]:
    """Build one option per (possibly nested) field of *kind*.

    Args:
        kind: The payload or query kind.
        default_heading: Heading used when neither the field nor the kind
            declares one.

    Returns:
        Option declarations in field order.
    """
    return list(_kind_options(kind, kind.heading or default_heading, owner=kind.name))


def _kind_options(
    kind: Kind,
    heading: Optional[str],
    owner: str,
    path: tuple[str, ...] = (),
) -> Iterable[OptionDecl]:
    for item in kind.fields:
        nested = kind.nested.get(item.name)
        long = long_name(item.long or item.name)
        if path:
            long = "-".join(path + (long,))
        if nested is not None and not item.multiple:
            yield from _kind_options(nested, nested.heading or heading, owner, (long,))
            continue

        if path or item.no_short:
            short = None
        else:
            short = item.short or long[0]

        help_text = item.help or ""
        if not item.required:
            help_text = f"(option) {help_text}".rstrip()

        is_flag = item.type == "boolean" and not item.multiple
        yield OptionDecl(
            name=param_name(item, path),
            long=long,
            short=short if short and short.isalnum() else None,
            help=help_text or None,
            heading=item.heading or heading,
            type="string" if nested is not None else item.type,
            choices=list(item.possible_values) if item.possible_values else None,
            multiple=item.multiple and not is_flag,
            is_flag=is_flag,
            owner=owner,
        )


def param_name(item: KindField, path: tuple[str, ...] = ()) -> str:
    """Click parameter name of a kind field."""
    return sanitize_param_name("_".join(path + (item.long or item.name,)))


# ---------------------------------------------------------------------------
# Reading values back
# ---------------------------------------------------------------------------


def kind_supplied(kind: Kind, params: dict[str, Any]) -> bool:
    """Whether any option of *kind* (or ``--input``) carries a value."""
    if not kind.no_input_file and params.get(INPUT_FILE):
        return True
    return any(_present(params.get(decl.name)) for decl in kind_options(kind))


def kind_values(kind: Kind, params: dict[str, Any], path: tuple[str, ...] = ()) -> dict[str, Any]:
    """Collect parsed option values into a dict keyed by wire name.

    Fields without a value are left out; nested kinds produce nested dicts
    (omitted when empty); ``json`` fields are decoded.

    Raises:
        InvalidUsageError: If a ``json`` field does not hold valid JSON.
    """
    values: dict[str, Any] = {}
    for item in kind.fields:
        nested = kind.nested.get(item.name)
        long = long_name(item.long or item.name)
        if path:
            long = "-".join(path + (long,))
        if nested is not None and not item.multiple:
            sub = kind_values(nested, params, (long,))
            if sub:
                values[wire_name(item)] = sub
            continue
        value = params.get(param_name(item, path))
        if not _present(value):
            continue
        if isinstance(value, tuple):
            value = list(value)
        if item.type == "json" or nested is not None:
            value = _decode_json(f"--{long}", value)
        values[wire_name(item)] = value
    return values


def read_kind(kind: Kind, params: dict[str, Any], context: str) -> Any:
    """Read a payload or query value from parsed options (or ``--input``).

    Args:
        kind: The kind to build.
        params: Parsed click parameters of the invocation.
        context: Label used in error messages (e.g. the endpoint route).

    Returns:
        A validated model instance of *kind*.

    Raises:
        InvalidUsageError: If required fields are missing or values are
            invalid.
        SerializationError: If the ``--input`` document is not valid JSON
            for the kind.
    """
    source = None if kind.no_input_file else params.get(INPUT_FILE)
    if source:
        text = _read_input(source)
        try:
            return kind.load_json(text)
        except SerializationError as exc:
            raise SerializationError(f"Can't read payload for '{context}': {exc}") from exc

    values = kind_values(kind, params)
    missing = [f"--{decl.long}" for decl, item in _required(kind) if wire_name(item) not in values]
    if missing:
        raise InvalidUsageError(
            f"Missing required option(s) for '{context}': {', '.join(missing)}"
        )
    try:
        return kind.model.model_validate(values)
    except ValidationError as exc:
        raise InvalidUsageError(f"Invalid value for '{context}': {exc}") from exc


def _required(kind: Kind) -> list[tuple[OptionDecl, KindField]]:
    decls = {decl.name: decl for decl in kind_options(kind)}
    pairs = []
    for item in kind.fields:
        decl = decls.get(param_name(item))
        if item.required and decl is not None:
            pairs.append((decl, item))
    return pairs


def _present(value: Any) -> bool:
    return value is not None and value != () and value is not False


def _decode_json(flag: str, value: Any) -> Any:
    if isinstance(value, list):
        return [_decode_json(flag, item) for item in value]
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError) as exc:
        raise InvalidUsageError(f"{flag} expects a JSON value: {exc}") from exc


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidUsageError(f"Cannot read input file {path}: {exc}") from exc
