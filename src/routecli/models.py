"""Canonical Pydantic models shared across all routecli modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Declaration models** -- what an API author writes (in YAML/JSON or from
Python) to describe an API:
    :class:`HTTPMethod`, :class:`EndpointStatus`, :class:`Header`,
    :class:`ArgConfig`, :class:`EndpointSpec`, :class:`KindField`,
    :class:`KindDeclaration`, :class:`TransformDeclaration`,
    :class:`ApiInfo`, and :class:`Declarations`.

**Configuration models** -- serialised as JSON in the user's config
directory: :class:`RequestConfig` and :class:`Settings`.

**Runtime values** -- :class:`CapturedVar`, threaded through the dispatcher.

All models use Pydantic v2. Declaration models reject unknown keys so typos
in a declaration file surface as errors; configuration models accept extra
keys so authenticators can read their own settings.
"""

from __future__ import annotations

import enum
import re
from http import HTTPStatus
from typing import Any, NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_VARIABLE_RE = re.compile(r"\{([^{}/]+)\}")


def route_variables(template: str) -> list[str]:
    """Return the ``{name}`` placeholders of a route template, in order."""
    return _VARIABLE_RE.findall(template)


def parse_status(value: Any) -> HTTPStatus:
    """Coerce an integer, a numeric string, or a status name into :class:`HTTPStatus`.

    Names are matched case-insensitively (``"created"``, ``"NOT_FOUND"``).

    Raises:
        ValueError: If *value* does not denote a known HTTP status.
    """
    if isinstance(value, HTTPStatus):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return HTTPStatus(int(text))
        try:
            return HTTPStatus[text.upper().replace(" ", "_")]
        except KeyError:
            raise ValueError(f"unknown HTTP status '{value}'") from None
    return HTTPStatus(int(value))


# --- Declaration models ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods an endpoint may be declared with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def _missing_(cls, value: object) -> Optional["HTTPMethod"]:
        if isinstance(value, str):
            upper = value.upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class EndpointStatus(BaseModel):
    """A declared failure status and the message shown when it is received."""

    model_config = ConfigDict(frozen=True)

    status: HTTPStatus
    message: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> HTTPStatus:
        return parse_status(value)


class Header(BaseModel):
    """An extra HTTP header sent with every request of an endpoint or an API."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str


class ArgConfig(BaseModel):
    """Per-endpoint override of one of the built-in flags.

    ``arg_name`` selects the flag: ``output_file``, ``output_format``,
    ``input_file`` or ``input_template``. Every other field left as ``None``
    falls back to the built-in default.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    arg_name: str
    long: Optional[str] = None
    short: Optional[str] = None
    no_short: Optional[bool] = None
    heading: Optional[str] = None
    help: Optional[str] = None
    long_help: Optional[str] = None
    possible_values: Optional[list[str]] = None
    required: Optional[bool] = None


class EndpointSpec(BaseModel):
    """Declaration of one HTTP endpoint and the CLI route that reaches it.

    Instances are immutable once registered. ``route`` is the wire path
    template, ``cli_route`` the slash-separated command path; both write
    variables as ``{name}``. Every variable of ``route`` must appear in
    ``cli_route``.

    Example::

        EndpointSpec(
            route="/posts/{id}",
            cli_route="/post/{id}",
            result_struct="Post",
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    route: str = Field(description="Wire URL path template")
    cli_route: str = Field(description="Slash-separated CLI path template")
    method: HTTPMethod = HTTPMethod.GET
    result_ok_status: HTTPStatus = Field(
        default=HTTPStatus.OK, description="The only status treated as success"
    )
    result_ko_status: list[EndpointStatus] = Field(default_factory=list)
    payload_struct: Optional[str] = None
    query_struct: Optional[str] = None
    result_struct: str = "EmptyResponse"
    result_multiple: bool = Field(
        default=False,
        validation_alias=AliasChoices("result_multiple", "multiple_results"),
    )
    result_is_stream: bool = Field(
        default=False, validation_alias=AliasChoices("result_is_stream", "stream")
    )
    extra_header: list[Header] = Field(default_factory=list)
    no_auth: bool = False
    transform_from: Optional[str] = None
    cli_help: Optional[str] = None
    cli_long_help: Optional[str] = None
    cli_visible_aliases: list[str] = Field(default_factory=list)
    cli_aliases: list[str] = Field(default_factory=list)
    cli_no_output: bool = False
    cli_output_formats: list[str] = Field(default_factory=list)
    cli_force_output_format: bool = False
    config: list[ArgConfig] = Field(default_factory=list)

    @field_validator("result_ok_status", mode="before")
    @classmethod
    def _coerce_ok_status(cls, value: Any) -> HTTPStatus:
        return parse_status(value)

    @field_validator(
        "cli_visible_aliases", "cli_aliases", "cli_output_formats", mode="before"
    )
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        # "add,insert" is accepted as shorthand for ["add", "insert"]
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def ko_status_map(self) -> dict[int, str]:
        """Mapping of declared failure status codes to their messages."""
        return {int(item.status): item.message for item in self.result_ko_status}

    @property
    def cli_segments(self) -> list[str]:
        """Non-empty segments of :attr:`cli_route`."""
        return [segment for segment in self.cli_route.split("/") if segment]

    @property
    def route_variables(self) -> list[str]:
        """Variable names of the wire route, in order."""
        return route_variables(self.route)

    @property
    def cli_variables(self) -> list[str]:
        """Variable names of the CLI route, in order."""
        return route_variables(self.cli_route)

    def arg_config(self, arg_name: str) -> Optional[ArgConfig]:
        """Return this endpoint's override for a built-in flag, if declared."""
        for item in self.config:
            if item.arg_name == arg_name:
                return item
        return None

    def describe(self) -> str:
        """Short ``METHOD route`` label used in diagnostics."""
        return f"{self.method.value} {self.route}"


class KindField(BaseModel):
    """One field of a declared kind, with its CLI metadata.

    ``type`` is a scalar type (``string``, ``integer``, ``number``,
    ``boolean``), ``json`` for free-form values, or the name of another
    declared kind for nested structures (their options are prefixed with the
    field name).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    type: str = "string"
    multiple: bool = False
    required: bool = False
    alias: Optional[str] = Field(default=None, description="Name on the wire")
    default: Any = None
    long: Optional[str] = None
    short: Optional[str] = None
    no_short: bool = False
    help: Optional[str] = None
    long_help: Optional[str] = None
    heading: Optional[str] = None
    possible_values: Optional[list[str]] = None
    table_skip: bool = False


class KindDeclaration(BaseModel):
    """A named record type used as payload, query, or result of endpoints."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    fields: list[KindField] = Field(default_factory=list)
    heading: Optional[str] = Field(
        default=None, description="Help heading for the generated options"
    )
    no_input_file: bool = Field(
        default=False, description="Do not offer --input/--template for this kind"
    )


class TransformDeclaration(BaseModel):
    """A fallible conversion from a source kind to a result kind.

    ``function`` is an importable ``"module:callable"`` reference. The
    callable receives the parsed source value and returns the result value,
    raising :class:`ValueError` (or :class:`TypeError`) on failure.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    source: str = Field(validation_alias=AliasChoices("source", "from"))
    result: str = Field(validation_alias=AliasChoices("result", "to"))
    multiple: bool = False
    function: str


class ApiInfo(BaseModel):
    """Application-level metadata for a generated CLI."""

    model_config = ConfigDict(extra="forbid")

    name: str = "api"
    base_url: Optional[str] = Field(
        default=None, description="Default base URL when no setting overrides it"
    )
    about: Optional[str] = None
    version: Optional[str] = None
    env_prefix: Optional[str] = Field(
        default=None,
        description="Prefix of environment variables overriding settings "
        "(defaults to the upper-cased name)",
    )
    auth: str = Field(default="none", description="Authenticator: none, bearer")
    extra_header: list[Header] = Field(default_factory=list)

    @property
    def resolved_env_prefix(self) -> str:
        """Environment variable prefix, derived from :attr:`name` when unset."""
        prefix = self.env_prefix or re.sub(r"[^A-Za-z0-9]+", "_", self.name)
        return prefix.upper().rstrip("_")


class Declarations(BaseModel):
    """Top-level document of a declaration file."""

    model_config = ConfigDict(extra="forbid")

    info: ApiInfo = Field(default_factory=ApiInfo)
    kinds: dict[str, KindDeclaration] = Field(default_factory=dict)
    transforms: list[TransformDeclaration] = Field(default_factory=list)
    endpoints: list[EndpointSpec] = Field(default_factory=list)


# --- Configuration models ---


class RequestConfig(BaseModel):
    """HTTP request settings applied to every API call."""

    timeout: Optional[float] = Field(
        default=None, description="Request timeout in seconds (None waits forever)"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class Settings(BaseModel):
    """User settings of one generated CLI, persisted at ``<config_dir>/settings.json``.

    Top-level values apply to every profile; a profile section overrides
    them. Extra keys are preserved in ``model_extra`` so authenticators can
    read their own settings.
    """

    model_config = ConfigDict(extra="allow")

    base_url: Optional[str] = None
    auth_token: Optional[str] = Field(
        default=None,
        description="Token or credential source (env:VAR, file:/path)",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    profiles: dict[str, dict[str, Any]] = Field(default_factory=dict)


# --- Runtime values ---


class CapturedVar(NamedTuple):
    """A route variable bound to the value supplied on the command line."""

    name: str
    value: str
