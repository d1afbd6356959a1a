"""CLI generator -- fold endpoints into a route trie and build commands from it.

This sub-package is the build-time half of routecli: it takes the
endpoints of an :class:`~routecli.registry.EndpointStore` and constructs the
click command tree whose subcommands mirror their CLI routes.

Typical usage::

    from routecli.generator import build_click_command, build_route_trie, generate

    root = build_route_trie(store)
    decl = generate(root, kinds, name="jsonplaceholder")
    cli = build_click_command(decl, force_group=True)

Sub-modules:

* :mod:`~routecli.generator.trie` -- the route trie keyed by CLI path
  segment.
* :mod:`~routecli.generator.param_mapper` -- kind fields and built-in flags
  mapped to option declarations, and parsed values mapped back.
* :mod:`~routecli.generator.command_tree` -- the placement rules for
  captures, ``--output`` and ``--format``, and click materialisation.
"""

from routecli.generator.command_tree import build_click_command, generate
from routecli.generator.trie import build_route_trie

__all__ = ["build_click_command", "build_route_trie", "generate"]
