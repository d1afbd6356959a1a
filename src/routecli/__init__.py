"""routecli -- Build a hierarchical CLI for an HTTP API from endpoint declarations.

Endpoints are declared once (in YAML/JSON or from Python) with a wire route,
an HTTP method, expected status codes, typed payload/query/result kinds, and a
CLI route. Endpoints sharing CLI path prefixes are folded into a route trie;
the trie drives both the generated click command tree and the runtime
dispatcher that turns one parsed invocation into exactly one HTTP request.

Typical workflow::

    routecli inspect routes api.yaml       # show the folded route trie
    routecli run api.yaml post 42          # GET {base_url}/posts/42

Modules:
    app: Application shell, :class:`~routecli.app.ApiRun`, and entry point.
    models: Pydantic models shared across the package.
    registry: Append-only endpoint store.
    kinds: Typed payload/query/result marshaling.
    loader: YAML/JSON declaration loader.
    config: XDG-aware settings and profile resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    render: Result serialisation (json, yaml, toml, csv, tsv, tables).
"""

__version__ = "0.1.0"
