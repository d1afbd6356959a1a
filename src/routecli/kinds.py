"""Typed payload, query, and result kinds.

A :class:`Kind` is the closed marshaling capability the rest of the package
relies on: it knows its fields (with their CLI metadata), how to build a
default value, how to load a value from decoded JSON, and how to dump one
back. Kinds are looked up by name in a :class:`KindRegistry`, the way
endpoint declarations refer to them (``payload_struct``, ``query_struct``,
``result_struct``, ``transform_from``).

Kinds come from two places:

* **Declarations** -- a :class:`~routecli.models.KindDeclaration` is turned
  into a pydantic model with :func:`pydantic.create_model`.
* **Python models** -- any :class:`pydantic.BaseModel` subclass can be
  registered with :meth:`KindRegistry.register_model`; CLI metadata is read
  from ``Field(json_schema_extra={...})``.

Two kinds are always available: ``EmptyResponse`` (ignores the body) and
``Raw`` (any JSON value).
"""

from __future__ import annotations

import enum
import importlib
import json
import keyword
import logging
import re
import types
from typing import Any, Callable, Iterable, Literal, Optional, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field, RootModel, TypeAdapter, ValidationError, create_model

from routecli.exceptions import DeclarationError, SerializationError
from routecli.models import KindDeclaration, KindField

logger = logging.getLogger(__name__)

SCALAR_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "json": Any,
}

_ZERO_VALUES: dict[str, Any] = {
    "string": "",
    "integer": 0,
    "number": 0.0,
    "boolean": False,
}

_CLI_METADATA_KEYS = (
    "long",
    "short",
    "no_short",
    "help",
    "long_help",
    "heading",
    "possible_values",
    "table_skip",
)


class EmptyResponse(BaseModel):
    """Result of endpoints whose response body carries nothing of interest."""


class RawValue(RootModel[Any]):
    """Any JSON value, passed through untouched."""

    root: Any = None


class Kind:
    """A named record type with its CLI metadata.

    Args:
        name: Name used by endpoint declarations.
        model: Pydantic model validating values of this kind.
        fields: CLI metadata of each field, in declaration order.
        heading: Help heading of the generated options.
        no_input_file: Suppress ``--input``/``--template`` for this kind.
        nested: Kinds of fields whose type is another kind, by field name.
    """

    def __init__(
        self,
        name: str,
        model: type[BaseModel],
        fields: Iterable[KindField] = (),
        heading: Optional[str] = None,
        no_input_file: bool = False,
        nested: Optional[dict[str, Kind]] = None,
    ) -> None:
        self.name = name
        self.model = model
        self.fields = list(fields)
        self.heading = heading
        self.no_input_file = no_input_file
        self.nested = dict(nested or {})
        self._list_adapter = TypeAdapter(list[model])  # type: ignore[valid-type]

    def __repr__(self) -> str:
        return f"Kind({self.name!r})"

    @property
    def is_empty(self) -> bool:
        """Whether values of this kind render as nothing."""
        return self.model is EmptyResponse

    # ------------------------------------------------------------------ #
    # Values
    # ------------------------------------------------------------------ #

    def default(self, multiple: bool = False) -> Any:
        """Return the default value: an empty list, or the model built from defaults."""
        if multiple:
            return []
        try:
            return self.model()
        except ValidationError:
            return self.model.model_construct()

    def load(self, data: Any, multiple: bool = False) -> Any:
        """Validate decoded JSON into a model instance (or a list of them).

        Raises:
            SerializationError: If *data* does not match the kind.
        """
        try:
            if multiple:
                return self._list_adapter.validate_python(data)
            return self.model.model_validate(data)
        except ValidationError as exc:
            raise SerializationError(
                f"Can't deserialize the response as {self.name}: {exc}"
            ) from exc

    def load_json(self, text: Union[str, bytes], multiple: bool = False) -> Any:
        """Decode a JSON document and validate it with :meth:`load`."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SerializationError(f"Invalid JSON for {self.name}: {exc}") from exc
        return self.load(data, multiple)

    def dump(self, value: Any, exclude_none: bool = True) -> Any:
        """Convert a value of this kind into plain JSON-compatible data."""
        if isinstance(value, list):
            return [self.dump(item, exclude_none) for item in value]
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)
        return value

    def template(self) -> str:
        """JSON template of this kind, as printed by ``--template``."""
        return json.dumps(self.dump(self.default(), exclude_none=False), indent=2)

    def table_skip(self) -> set[str]:
        """Wire names of the fields hidden from table output."""
        return {wire_name(field) for field in self.fields if field.table_skip}


class Transform:
    """A fallible conversion from a source kind to a result kind.

    The response body is loaded as *source* first, then handed to
    *function*. Any exception raised by the function becomes a
    :class:`~routecli.exceptions.SerializationError` naming both kinds.
    """

    def __init__(
        self,
        source: Kind,
        result: Kind,
        multiple: bool,
        function: Callable[[Any], Any],
    ) -> None:
        self.source = source
        self.result = result
        self.multiple = multiple
        self.function = function

    def apply(self, data: Any) -> Any:
        value = self.source.load(data, self.multiple)
        try:
            return self.function(value)
        except Exception as exc:
            raise SerializationError(
                f"Can't convert {self.source.name} to {self.result.name}: {exc}"
            ) from exc


class KindRegistry:
    """Kinds and transforms, looked up by name.

    ``EmptyResponse`` and ``Raw`` are registered on creation.
    """

    def __init__(self) -> None:
        self._kinds: dict[str, Kind] = {}
        self._transforms: dict[tuple[str, str, bool], Transform] = {}
        self.register(Kind("EmptyResponse", EmptyResponse, no_input_file=True))
        self.register(Kind("Raw", RawValue, no_input_file=True))

    def __contains__(self, name: object) -> bool:
        return name in self._kinds

    def __iter__(self):
        return iter(self._kinds.values())

    def register(self, kind: Kind) -> Kind:
        """Add (or replace) a kind."""
        self._kinds[kind.name] = kind
        return kind

    def get(self, name: str) -> Kind:
        """Return the kind called *name*.

        Raises:
            DeclarationError: If no such kind is registered.
        """
        try:
            return self._kinds[name]
        except KeyError:
            raise DeclarationError(f"Unknown kind '{name}'") from None

    def register_model(
        self,
        model: type[BaseModel],
        name: Optional[str] = None,
        heading: Optional[str] = None,
        no_input_file: bool = False,
    ) -> Kind:
        """Register a pydantic model as a kind named after the class.

        Field CLI metadata is read from ``json_schema_extra``::

            class PostFilters(BaseModel):
                user_id: Optional[int] = Field(
                    None, alias="userId", json_schema_extra={"short": "u"}
                )
        """
        fields = [_field_from_model(attr, info) for attr, info in model.model_fields.items()]
        return self.register(
            Kind(name or model.__name__, model, fields, heading=heading, no_input_file=no_input_file)
        )

    def declare(self, name: str, declaration: KindDeclaration) -> Kind:
        """Build and register a kind from a declaration.

        Nested kinds referenced by field type must already be registered.

        Raises:
            DeclarationError: If a field's type is neither a scalar nor a
                registered kind.
        """
        definitions: dict[str, Any] = {}
        nested: dict[str, Kind] = {}
        for field in declaration.fields:
            if field.type in SCALAR_TYPES:
                base: Any = SCALAR_TYPES[field.type]
            elif field.type in self._kinds:
                nested[field.name] = self._kinds[field.type]
                base = nested[field.name].model
            else:
                raise DeclarationError(
                    f"Kind '{name}': field '{field.name}' has unknown type '{field.type}'"
                )
            annotation = list[base] if field.multiple else base  # type: ignore[valid-type]
            attr = _attribute_name(field.name)
            alias = wire_name(field)
            definitions[attr] = (
                Optional[annotation],
                Field(default=_field_default(field), alias=alias if alias != attr else None),
            )
        try:
            model = create_model(  # type: ignore[call-overload]
                name,
                __config__=ConfigDict(populate_by_name=True),
                **definitions,
            )
        except (TypeError, ValueError) as exc:
            raise DeclarationError(f"Kind '{name}' cannot be built: {exc}") from exc
        return self.register(
            Kind(
                name,
                model,
                declaration.fields,
                heading=declaration.heading,
                no_input_file=declaration.no_input_file,
                nested=nested,
            )
        )

    def declare_all(self, declarations: dict[str, KindDeclaration]) -> None:
        """Declare several kinds, resolving references between them in any order.

        Raises:
            DeclarationError: On unknown field types or reference cycles.
        """
        pending = dict(declarations)
        in_progress: set[str] = set()

        def visit(kind_name: str) -> None:
            if kind_name in in_progress:
                raise DeclarationError(f"Kind '{kind_name}' references itself")
            in_progress.add(kind_name)
            for field in pending[kind_name].fields:
                if field.type in pending and field.type not in self._kinds:
                    visit(field.type)
            self.declare(kind_name, pending[kind_name])
            in_progress.discard(kind_name)

        for kind_name in pending:
            if kind_name not in self._kinds:
                visit(kind_name)

    # ------------------------------------------------------------------ #
    # Transforms
    # ------------------------------------------------------------------ #

    def add_transform(
        self,
        source: str,
        result: str,
        function: Union[Callable[[Any], Any], str],
        multiple: bool = False,
    ) -> Transform:
        """Register a conversion used by endpoints with ``transform_from``.

        Args:
            source: Kind the response body is parsed as.
            result: Kind the conversion produces.
            function: Callable, or a ``"module:callable"`` reference.
            multiple: Whether the conversion applies to list responses.
        """
        if isinstance(function, str):
            function = import_callable(function)
        transform = Transform(self.get(source), self.get(result), multiple, function)
        self._transforms[(source, result, multiple)] = transform
        return transform

    def transform(self, source: str, result: str, multiple: bool) -> Transform:
        """Return the conversion from *source* to *result*.

        Raises:
            DeclarationError: If no such conversion is registered.
        """
        try:
            return self._transforms[(source, result, multiple)]
        except KeyError:
            shape = "list of " if multiple else ""
            raise DeclarationError(
                f"No transform from {shape}'{source}' to {shape}'{result}'"
            ) from None


def import_callable(reference: str) -> Callable[[Any], Any]:
    """Resolve a ``"module:callable"`` reference.

    Raises:
        DeclarationError: If the module or attribute cannot be found.
    """
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise DeclarationError(f"Invalid callable reference '{reference}' (expected module:name)")
    logger.debug("Importing transform %s", reference)
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise DeclarationError(f"Cannot import '{module_name}': {exc}") from exc
    target = getattr(module, attr, None)
    if not callable(target):
        raise DeclarationError(f"'{reference}' is not a callable")
    return target


def wire_name(field: KindField) -> str:
    """Name of a field in JSON documents."""
    return field.alias or field.name


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

_IDENT_RE = re.compile(r"[^a-zA-Z0-9_]")


def _attribute_name(name: str) -> str:
    """Turn a declared field name into a model attribute name."""
    attr = _IDENT_RE.sub("_", name)
    if not attr or attr[0].isdigit():
        attr = f"f_{attr}"
    if keyword.iskeyword(attr) or hasattr(BaseModel, attr) or attr.startswith("model_"):
        attr = f"{attr}_"
    return attr


def _field_default(field: KindField) -> Any:
    if field.default is not None:
        return field.default
    if field.multiple:
        return [] if field.required else None
    if field.required:
        return _ZERO_VALUES.get(field.type)
    return None


def _field_from_model(attr: str, info: Any) -> KindField:
    """Derive a :class:`KindField` from a pydantic ``FieldInfo``."""
    field_type, multiple, choices = _describe_annotation(info.annotation)
    extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
    metadata = {key: extra[key] for key in _CLI_METADATA_KEYS if key in extra}
    metadata.setdefault("help", info.description)
    if choices and "possible_values" not in metadata:
        metadata["possible_values"] = choices
    default = None if info.is_required() else info.get_default(call_default_factory=True)
    return KindField(
        name=attr,
        type=field_type,
        multiple=multiple,
        required=info.is_required(),
        alias=info.alias,
        default=default if isinstance(default, (str, int, float, bool)) else None,
        **metadata,
    )


def _describe_annotation(annotation: Any) -> tuple[str, bool, Optional[list[str]]]:
    """Return ``(type name, multiple, choices)`` for a model field annotation."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        non_null = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(non_null) == 1:
            return _describe_annotation(non_null[0])
        return "json", False, None
    if origin in (list, tuple, set, frozenset):
        args = get_args(annotation)
        inner, _, choices = _describe_annotation(args[0] if args else Any)
        return inner, True, choices
    if origin is Literal:
        return "string", False, [str(arg) for arg in get_args(annotation)]
    if isinstance(annotation, type):
        if issubclass(annotation, enum.Enum):
            return "string", False, [str(member.value) for member in annotation]
        if issubclass(annotation, bool):
            return "boolean", False, None
        if issubclass(annotation, int):
            return "integer", False, None
        if issubclass(annotation, float):
            return "number", False, None
        if issubclass(annotation, str):
            return "string", False, None
    return "json", False, None
