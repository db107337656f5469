"""Routebind ASGI application."""

from __future__ import annotations

import dataclasses
import logging
import sys
import traceback
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from routebind.converters import ConverterRegistry
from routebind.dispatch import Dispatcher, DispatchState, Outcome
from routebind.errors import ConfigurationError, HandlerError
from routebind.metadata import extract_routes, route
from routebind.request import Request
from routebind.response import JSONResponse, Response
from routebind.validation import validate_handler_signature

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from routebind._types import ASGIApp, Receive, Scope, Send
    from routebind.config import Settings
    from routebind.converters import Converter
    from routebind.routing import RouteTable

logger = logging.getLogger(__name__)


class Routebind:
    """ASGI 3.0 web application.

    Routes are declared with the decorators below (or with
    :func:`routebind.route` on functions and controllers passed to
    :meth:`include`) and extracted into a read-only route table when the
    app freezes: on lifespan startup, on first request, or on an explicit
    :meth:`freeze` call.

    Parameters
    ----------
    strict:
        When ``True``, handler annotations are validated when the app
        freezes (see :mod:`routebind.validation`).
    debug:
        When ``True``, 500 responses include the full traceback.
    """

    def __init__(self, *, strict: bool = False, debug: bool = False) -> None:
        self.strict = strict
        self.debug = debug
        self.converters = ConverterRegistry()
        self._handlers: list[Any] = []
        self._middleware: list[Callable[[ASGIApp], ASGIApp]] = []
        self._dispatcher: Dispatcher | None = None
        self._app: ASGIApp | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Routebind:
        from routebind.config import Settings

        settings = settings or Settings()
        return cls(strict=settings.strict, debug=settings.debug)

    # ------------------------------------------------------------------
    # Route registration
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._dispatcher is not None:
            msg = "Cannot change a frozen app; register routes and converters before serving."
            raise RuntimeError(msg)

    def route(
        self,
        pattern: str,
        *,
        methods: Iterable[str] | None = None,
        name: str | None = None,
        requirements: Mapping[str, str] | None = None,
        mapping: Mapping[str, str] | None = None,
    ) -> Callable[..., Any]:
        declare = route(pattern, name=name, requirements=requirements, methods=methods, mapping=mapping)

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            self._check_open()
            declare(handler)
            if not any(h is handler for h in self._handlers):
                self._handlers.append(handler)
            return handler

        return decorator

    def get(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("GET",), **options)

    def post(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("POST",), **options)

    def put(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("PUT",), **options)

    def delete(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("DELETE",), **options)

    def patch(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("PATCH",), **options)

    def options(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("OPTIONS",), **options)

    def head(self, pattern: str, **options: Any) -> Callable[..., Any]:
        return self.route(pattern, methods=("HEAD",), **options)

    def include(self, *handlers: Any) -> None:
        """Add decorated functions, controller classes or controller instances."""
        self._check_open()
        self._handlers.extend(handlers)

    def register_converter(self, entity_type: type, converter: Converter) -> None:
        self._check_open()
        self.converters.register(entity_type, converter)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def freeze(self) -> Dispatcher:
        """Extract the route table and plan every handler.

        Raises :class:`ConfigurationError` (or :class:`TypeError` in
        strict mode) when a route or handler is invalid.
        """
        if self._dispatcher is None:
            table = extract_routes(self._handlers)
            if self.strict:
                for r in table:
                    validate_handler_signature(r, self.converters)
            self._dispatcher = Dispatcher(table, self.converters)
        return self._dispatcher

    @property
    def router(self) -> RouteTable:
        return self.freeze().table

    def url_for(self, name: str, **variables: Any) -> str:
        """Return the path of the route called *name*."""
        return self.freeze().reverse(name, **variables)

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    def add_middleware(self, middleware: Callable[[ASGIApp], ASGIApp]) -> None:
        """Register a middleware that wraps the ASGI app.

        Called as ``middleware(app)`` and must return an ASGI callable.
        """
        self._middleware.append(middleware)
        self._app = None  # invalidate cached chain

    def _build_app(self) -> ASGIApp:
        app: ASGIApp = self._handle
        for mw in reversed(self._middleware):
            app = mw(app)
        return app

    # ------------------------------------------------------------------
    # ASGI interface
    # ------------------------------------------------------------------

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if self._app is None:
            self._app = self._build_app()
        await self._app(scope, receive, send)

    async def _handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        dispatcher = self.freeze()
        request = Request(scope, receive)
        outcome = await dispatcher.dispatch(
            scope["method"],
            scope["path"],
            request.raw_parameters,
            request=request,
        )

        if not outcome.ok:
            await self._error_response(outcome).send(send)
            return
        try:
            response = _to_response(outcome.result)
        except Exception as exc:
            logger.exception("Cannot render the result of %s %s", scope["method"], scope["path"])
            error = HandlerError()
            error.__cause__ = exc
            failed = Outcome(
                DispatchState.HANDLER_ERROR,
                error.status,
                detail=error.detail,
                match=outcome.match,
                error=error,
            )
            response = self._error_response(failed)
        await response.send(send)

    def _error_response(self, outcome: Outcome) -> JSONResponse:
        body: dict[str, Any] = {"detail": outcome.detail, "state": outcome.state.value}
        cause = outcome.error.__cause__ if outcome.error is not None else None
        if self.debug and cause is not None:
            body["traceback"] = "".join(traceback.format_exception(cause))
        return JSONResponse(body, status_code=outcome.status_code)

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Freeze on startup so configuration errors abort the server."""
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    self.freeze()
                except (ConfigurationError, TypeError) as exc:
                    logger.error("Startup failed: %s", exc)
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    # ------------------------------------------------------------------
    # Granian convenience
    # ------------------------------------------------------------------

    def run(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        *,
        dev: bool = False,
        reload: bool | None = None,
        workers: int = 1,
        log_level: str = "info",
    ) -> None:
        """Freeze the app and serve it with Granian.

        Parameters
        ----------
        dev:
            When ``True``, enables reload, debug logging, and access logs.
        reload:
            Auto-reload on code changes.  ``None`` follows *dev*.
        workers:
            Number of worker processes.
        log_level:
            Granian log level.
        """
        from routebind._server import serve

        routes = len(self.freeze().table)
        target = _resolve_target(self)
        serve(
            target,
            host=host,
            port=port,
            dev=dev,
            reload=reload,
            workers=workers,
            log_level=log_level,
            routes=routes,
        )


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------


def _resolve_target(app: Routebind) -> str:
    """Derive a ``"module:var"`` string for the given app instance.

    Searches ``__main__`` for a module-level variable whose value *is* the
    app.  Falls back to the caller's ``__file__`` stem when running as a
    script (``python main.py``) so Granian workers can import it.
    """
    main = sys.modules.get("__main__")
    if main is None:
        raise RuntimeError("Cannot auto-detect Granian target: __main__ module not found.")

    var_name: str | None = None
    for name, val in vars(main).items():
        if val is app:
            var_name = name
            break

    if var_name is None:
        raise RuntimeError(
            "Cannot auto-detect Granian target: no module-level variable in "
            "__main__ references this Routebind instance. "
            "Start it with the CLI instead, e.g. routebind run myapp:app."
        )

    spec = getattr(main, "__spec__", None)
    module_name: str | None = spec.name if spec else None
    if not module_name:
        # Running as a script: use the filename stem so granian can import it.
        main_file = getattr(main, "__file__", None)
        module_name = Path(main_file).stem if main_file else None

    return f"{module_name}:{var_name}"


def _to_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    if isinstance(result, dict | list | BaseModel) or (
        dataclasses.is_dataclass(result) and not isinstance(result, type)
    ):
        return JSONResponse(result)
    if result is None:
        return Response(status_code=204)
    return Response(str(result))
