"""Routebind command-line interface powered by Typer."""

import importlib
import sys
from pathlib import Path
from typing import Annotated

import typer

from routebind.config import Settings
from routebind.errors import ConfigurationError

app = typer.Typer(name="routebind", add_completion=False, no_args_is_help=True)


# ------------------------------------------------------------------
# Target resolution
# ------------------------------------------------------------------


def _load_app(path: str) -> tuple[str, object]:
    """Import the app named by a CLI *path* argument.

    Accepted forms:
    - ``module:var``   → imports ``module`` and reads ``var``
    - ``file.py``      → imports ``file``, scans for a Routebind instance

    Returns the ``"module:var"`` target and the app object.
    """
    if ":" in path:
        module_name, var_name = path.split(":", 1)
        mod = _import(module_name)
        app_obj = getattr(mod, var_name, None)
        if app_obj is None:
            typer.echo(f"Error: {module_name!r} has no attribute {var_name!r}.", err=True)
            raise typer.Exit(1)
        return path, app_obj

    # Treat as a Python file
    file = Path(path)
    if not file.exists():
        typer.echo(f"Error: file {path!r} not found.", err=True)
        raise typer.Exit(1)

    module_name = file.stem

    # Ensure the file's directory is on sys.path so we can import it.
    parent = str(file.resolve().parent)
    if parent not in sys.path:
        sys.path.insert(0, parent)

    mod = _import(module_name)
    var_name = _find_app_var(mod)
    if var_name is None:
        typer.echo(
            f"Error: no Routebind instance found in {path!r}. Provide an explicit target, e.g. main:app",
            err=True,
        )
        raise typer.Exit(1)

    return f"{module_name}:{var_name}", getattr(mod, var_name)


def _import(module_name: str) -> object:
    if str(Path.cwd()) not in sys.path:
        sys.path.insert(0, str(Path.cwd()))
    try:
        return importlib.import_module(module_name)
    except Exception as exc:
        typer.echo(f"Error importing {module_name!r}: {exc}", err=True)
        raise typer.Exit(1) from exc


def _find_app_var(mod: object) -> str | None:
    """Scan a module for a ``Routebind`` instance.

    Checks ``app`` and ``application`` first, then falls back to any attribute.
    """
    from routebind.app import Routebind

    for name in ("app", "application"):
        val = getattr(mod, name, None)
        if isinstance(val, Routebind):
            return name

    for name in dir(mod):
        if name.startswith("_"):
            continue
        if isinstance(getattr(mod, name, None), Routebind):
            return name

    return None


def _route_count(app_obj: object) -> int | None:
    """Freeze the app so configuration errors surface before the server starts."""
    from routebind.app import Routebind

    if not isinstance(app_obj, Routebind):
        return None
    try:
        return len(app_obj.freeze().table)
    except (ConfigurationError, TypeError) as exc:
        typer.echo(f"Error: invalid route configuration: {exc}", err=True)
        raise typer.Exit(1) from exc


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


@app.command()
def dev(
    path: Annotated[str, typer.Argument(help="Python file or module:var target.")] = "main.py",
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port.")] = None,
    reload: Annotated[bool | None, typer.Option("--reload/--no-reload", help="Auto-reload on code changes.")] = None,
) -> None:
    """Start a development server with auto-reload and debug logging."""
    from routebind._server import serve

    settings = Settings()
    target, app_obj = _load_app(path)
    serve(
        target,
        host=host or settings.host,
        port=port or settings.port,
        dev=True,
        reload=reload,
        routes=_route_count(app_obj),
    )


@app.command()
def run(
    path: Annotated[str, typer.Argument(help="Python file or module:var target.")] = "main.py",
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port.")] = None,
    workers: Annotated[int | None, typer.Option(help="Number of worker processes.")] = None,
) -> None:
    """Start a production server."""
    from routebind._server import serve

    settings = Settings()
    target, app_obj = _load_app(path)
    serve(
        target,
        host=host or settings.host,
        port=port or settings.port,
        workers=workers or settings.workers,
        log_level=settings.log_level.lower(),
        routes=_route_count(app_obj),
    )


@app.command()
def routes(
    path: Annotated[str, typer.Argument(help="Python file or module:var target.")] = "main.py",
) -> None:
    """List the route table in match order."""
    from routebind.app import Routebind

    _, app_obj = _load_app(path)
    if not isinstance(app_obj, Routebind):
        typer.echo(f"Error: {path!r} is not a Routebind instance.", err=True)
        raise typer.Exit(1)
    _route_count(app_obj)

    rows = [
        (
            r.name or "",
            ",".join(sorted(r.methods)) or "ANY",
            r.pattern,
            getattr(r.handler, "__qualname__", repr(r.handler)),
        )
        for r in app_obj.router
    ]
    if not rows:
        typer.echo("No routes registered.")
        return

    headers = ("NAME", "METHOD", "PATTERN", "HANDLER")
    widths = [max(len(headers[i]), *(len(row[i]) for row in rows)) for i in range(3)]
    fmt = f"{{:<{widths[0]}}}  {{:<{widths[1]}}}  {{:<{widths[2]}}}  {{}}"
    typer.echo(fmt.format(*headers))
    for row in rows:
        typer.echo(fmt.format(*row))
