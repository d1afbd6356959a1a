"""Serialise results into the formats offered by ``--format``.

Every function here takes plain JSON-compatible data (what
:meth:`routecli.kinds.Kind.dump` returns) and produces text; writing it to
stdout is the job of :mod:`routecli.output`.

* :func:`render` -- ``json``, ``yaml``, ``toml``, ``csv`` and ``tsv``.
* :func:`table_rows` -- headers and string cells for tabular display of a
  list of records.
* :func:`pretty` -- an indented ``key: value`` block for a single record.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterable

import tomli_w
import yaml

FORMATS: tuple[str, ...] = ("csv", "json", "toml", "tsv", "yaml")
"""Every format :func:`render` supports, sorted."""

TOML_LIST_KEY = "items"
"""Key wrapping top-level lists, which TOML cannot express directly."""


def render(data: Any, fmt: str) -> str:
    """Serialise *data* in format *fmt*.

    Args:
        data: JSON-compatible value (dict, list, scalar).
        fmt: One of :data:`FORMATS`.

    Returns:
        The rendered text, without a trailing newline.

    Raises:
        ValueError: If *fmt* is not supported.
    """
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False)
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True).rstrip("\n")
    if fmt == "toml":
        return tomli_w.dumps(_toml_document(data)).rstrip("\n")
    if fmt == "csv":
        return _delimited(data, ",")
    if fmt == "tsv":
        return _delimited(data, "\t")
    raise ValueError(f"Unsupported output format '{fmt}' (choose from {', '.join(FORMATS)})")


def table_rows(data: Any, skip: Iterable[str] = ()) -> tuple[list[str], list[list[str]]]:
    """Flatten records into ``(headers, rows)`` of strings.

    Headers are the union of record keys in first-seen order, minus *skip*.
    Nested values are shown as compact JSON; missing values as ``""``.
    """
    records = _records(data)
    hidden = set(skip)
    headers: list[str] = []
    for record in records:
        for key in record:
            if key not in hidden and key not in headers:
                headers.append(key)
    rows = [[_cell(record.get(key)) for key in headers] for record in records]
    return headers, rows


def pretty(data: Any, indent: int = 0) -> str:
    """Render a single record as an indented ``key: value`` block."""
    pad = "  " * indent
    if isinstance(data, dict):
        lines = []
        for key, value in data.items():
            if isinstance(value, dict) and value:
                lines.append(f"{pad}{key}:")
                lines.append(pretty(value, indent + 1))
            elif isinstance(value, list) and any(isinstance(item, dict) for item in value):
                lines.append(f"{pad}{key}:")
                for item in value:
                    if isinstance(item, dict):
                        lines.append(f"{pad}  -")
                        lines.append(pretty(item, indent + 2))
                    else:
                        lines.append(f"{pad}  - {_cell(item)}")
            else:
                lines.append(f"{pad}{key}: {_cell(value)}")
        return "\n".join(lines)
    if isinstance(data, list):
        return "\n".join(f"{pad}- {_cell(item)}" for item in data)
    return f"{pad}{_cell(data)}"


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _records(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item if isinstance(item, dict) else {"value": item} for item in data]
    if data is None:
        return []
    return [{"value": data}]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def _delimited(data: Any, delimiter: str) -> str:
    headers, rows = table_rows(data)
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    if headers:
        writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


def _strip_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _strip_none(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_strip_none(item) for item in value if item is not None]
    return value


def _toml_document(data: Any) -> dict[str, Any]:
    data = _strip_none(data)
    if isinstance(data, dict):
        return data
    if data is None:
        return {}
    return {TOML_LIST_KEY: data}
