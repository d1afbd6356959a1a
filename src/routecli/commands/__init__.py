"""Built-in sub-commands of the ``routecli`` console script.

* :mod:`~routecli.commands.inspect` -- examine the routes, endpoints and
  generated commands of a declaration file.
* :mod:`~routecli.commands.config` -- view and modify the settings of a
  generated CLI.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app by :func:`routecli.app.register_commands`.
"""
