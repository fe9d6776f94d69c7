"""Built-in CLI sub-commands for cachefirst.

* :mod:`~cachefirst.commands.fetch` -- read one resource through the cache.
* :mod:`~cachefirst.commands.cache` -- inspect, sweep, and clear the store.
* :mod:`~cachefirst.commands.config` -- view and modify global settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``cache`` and ``config``) or a plain callback
function registered directly on the root app (for ``fetch``).
"""
