"""Shared test fixtures for routecli.

Provides reusable fixtures for loading the declaration fixture, building
stores and registries, isolating config directories, managing output
state, and answering HTTP requests with ``httpx.MockTransport``. These
fixtures are automatically discovered by pytest and available to all test
modules without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from routecli.kinds import KindRegistry
from routecli.loader import load_declarations, materialize
from routecli.models import Declarations
from routecli.output import OutputManager, reset_output, set_output
from routecli.registry import EndpointStore


FIXTURES_DIR = Path(__file__).parent / "fixtures"
BASE_URL = "http://api.test"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file"). Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Declaration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def jsonplaceholder_path() -> Path:
    """Path of the jsonplaceholder declaration file."""
    return FIXTURES_DIR / "jsonplaceholder.yaml"


@pytest.fixture
def jsonplaceholder(jsonplaceholder_path: Path) -> Declarations:
    """Validated jsonplaceholder declarations."""
    return load_declarations(str(jsonplaceholder_path))


@pytest.fixture
def jsonplaceholder_api(jsonplaceholder: Declarations) -> tuple[EndpointStore, KindRegistry]:
    """Store and kind registry of the jsonplaceholder declarations."""
    return materialize(jsonplaceholder)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, clears the environment
    variables of the test APIs, and changes the working directory to
    tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("routecli.config._is_xdg_platform", lambda: True)

    for var in [
        "JSONPLACEHOLDER_PROFILE",
        "JSONPLACEHOLDER_BASE_URL",
        "JSONPLACEHOLDER_AUTH_TOKEN",
        "TESTAPI_PROFILE",
        "TESTAPI_BASE_URL",
        "TESTAPI_AUTH_TOKEN",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, colourless output manager for the test."""
    output = OutputManager(no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def plain_output() -> OutputManager:
    """Install a colourless output manager (plain tables) for the test."""
    output = OutputManager(no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


class RecordingHandler:
    """Mock HTTP handler recording every request it answers.

    Responses are looked up by ``(method, path)``; unknown requests get
    ``default``.
    """

    def __init__(self, default: httpx.Response | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.default = default if default is not None else httpx.Response(200, json={})

    def add(self, method: str, path: str, status: int = 200, json_body: Any = None, **kwargs: Any) -> None:
        """Answer ``method path`` with a fixed response."""
        if json_body is not None:
            kwargs["content"] = json.dumps(json_body).encode()
        self.responses[(method, path)] = lambda request: httpx.Response(status, **kwargs)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.responses.get((request.method, request.url.path))
        if answer is not None:
            return answer(request)
        return httpx.Response(
            self.default.status_code,
            headers=self.default.headers,
            content=self.default.content,
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def handler() -> RecordingHandler:
    """A recording mock handler answering 200 ``{}`` by default."""
    return RecordingHandler()


@pytest.fixture
def handler_factory() -> type[RecordingHandler]:
    """The recording handler class, for tests needing more than one."""
    return RecordingHandler


@pytest.fixture
def mock_transport(handler: RecordingHandler) -> httpx.MockTransport:
    """``httpx.MockTransport`` backed by :func:`handler`."""
    return httpx.MockTransport(handler)


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
