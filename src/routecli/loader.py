"""Load endpoint declarations from a URL, local file, or stdin.

A declaration document is JSON or YAML with four top-level keys -- ``info``,
``kinds``, ``transforms`` and ``endpoints`` -- validated into
:class:`~routecli.models.Declarations`. Format detection follows the file
extension or the response content type, falling back to trying JSON first
and YAML second.

The two public functions are:

* :func:`load_declarations` -- read and validate a document.
* :func:`materialize` -- turn validated declarations into an
  :class:`~routecli.registry.EndpointStore` and a
  :class:`~routecli.kinds.KindRegistry`.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import ValidationError

from routecli.exceptions import DeclarationError
from routecli.kinds import KindRegistry
from routecli.models import Declarations
from routecli.registry import EndpointStore


def load_declarations(source: str) -> Declarations:
    """Load declarations from URL, file path, or stdin ('-').

    Args:
        source: A URL (http/https), file path, or '-' for stdin.

    Returns:
        The validated declarations.

    Raises:
        DeclarationError: If the source cannot be loaded, parsed or
            validated.
    """
    if source == "-":
        raw = _parse_content(sys.stdin.read(), hint="stdin")
    elif source.startswith(("http://", "https://")):
        raw = _load_from_url(source)
    else:
        raw = _load_from_file(source)
    try:
        return Declarations.model_validate(raw)
    except ValidationError as exc:
        raise DeclarationError(f"Invalid declarations in {source}: {exc}") from exc


def materialize(declarations: Declarations) -> tuple[EndpointStore, KindRegistry]:
    """Register the kinds, transforms and endpoints of *declarations*.

    Raises:
        DeclarationError: On unknown kind references, unresolvable
            transforms, or endpoints whose wire variables are not captured.
    """
    kinds = KindRegistry()
    kinds.declare_all(declarations.kinds)
    for item in declarations.transforms:
        kinds.add_transform(item.source, item.result, item.function, item.multiple)
    store = EndpointStore(declarations.endpoints)
    return store, kinds


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _load_from_url(url: str) -> dict[str, Any]:
    try:
        response = httpx.get(url, timeout=30.0, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise DeclarationError(
            f"HTTP {exc.response.status_code} fetching declarations from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise DeclarationError(f"Failed to fetch declarations from {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "")
    hint = ""
    if "json" in content_type:
        hint = "json"
    elif "yaml" in content_type or "yml" in content_type:
        hint = "yaml"
    return _parse_content(response.text, hint=hint)


def _load_from_file(path: str) -> dict[str, Any]:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise DeclarationError(f"Declaration file not found: {path}")
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DeclarationError(f"Failed to read declaration file {path}: {exc}") from exc

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"
    return _parse_content(content, hint=hint)


def _parse_content(content: str, hint: str = "") -> dict[str, Any]:
    """Parse content as JSON or YAML.

    Tries JSON first (unless hinted as YAML), then YAML.

    Raises:
        DeclarationError: If the content is empty, unparsable, or not a
            mapping.
    """
    if not content.strip():
        raise DeclarationError(f"Empty declaration document ({hint or 'no content'})")

    if hint != "yaml":
        try:
            return _expect_mapping(json.loads(content))
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise DeclarationError(f"Invalid JSON: {exc}") from exc

    try:
        return _expect_mapping(yaml.safe_load(content))
    except yaml.YAMLError as exc:
        raise DeclarationError(f"Failed to parse declarations as JSON or YAML: {exc}") from exc


def _expect_mapping(result: Any) -> dict[str, Any]:
    if not isinstance(result, dict):
        kind = type(result).__name__ if result is not None else "empty document"
        raise DeclarationError(f"Declarations must be a JSON/YAML object (got {kind})")
    return result
