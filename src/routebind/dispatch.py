"""Request dispatch: match, resolve, invoke, respond.

A single fail-fast pass per request.  Every per-request failure is
caught here and returned as an :class:`Outcome`; nothing but
configuration errors (raised at construction) escapes this module.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from routebind.errors import BindingError, EntityNotFound, HandlerError, HTTPError, NoMatch
from routebind.params import ParameterResolver

if TYPE_CHECKING:
    from routebind._types import RawParameters
    from routebind.converters import ConverterRegistry
    from routebind.params import ParameterSpec
    from routebind.request import Request
    from routebind.routing import MatchResult, Route, RouteTable

logger = logging.getLogger(__name__)


class DispatchState(enum.Enum):
    RECEIVED = "received"
    MATCHED = "matched"
    RESOLVED = "resolved"
    INVOKED = "invoked"
    RESPONDED = "responded"
    # Terminal failures
    NOT_FOUND = "not_found"
    BINDING_FAILED = "binding_failed"
    ENTITY_MISSING = "entity_missing"
    HANDLER_ERROR = "handler_error"

    @property
    def failed(self) -> bool:
        return self in _FAILURES


_FAILURES = frozenset(
    {
        DispatchState.NOT_FOUND,
        DispatchState.BINDING_FAILED,
        DispatchState.ENTITY_MISSING,
        DispatchState.HANDLER_ERROR,
    }
)


@dataclass(frozen=True, slots=True)
class Outcome:
    """Final state of one dispatch: status code plus result or reason."""

    state: DispatchState
    status_code: int
    result: Any = None
    detail: str = ""
    match: MatchResult | None = None
    error: HTTPError | None = None

    @property
    def ok(self) -> bool:
        return self.state is DispatchState.RESPONDED


class Dispatcher:
    """Runs requests against a read-only route table.

    Parameters
    ----------
    table:
        The route table, frozen here if it is not already.
    converters:
        Converter registry for entity parameters.

    Every route is planned at construction, so a handler whose parameters
    cannot be sourced raises :class:`ConfigurationError` before any
    request is served.
    """

    __slots__ = ("_plans", "resolver", "table")

    def __init__(
        self,
        table: RouteTable,
        converters: ConverterRegistry | None = None,
    ) -> None:
        table.freeze()
        self.table = table
        self.resolver = ParameterResolver(converters)
        self._plans: dict[int, tuple[ParameterSpec, ...]] = {id(route): self.resolver.plan(route) for route in table}

    def plan_for(self, route: Route) -> tuple[ParameterSpec, ...]:
        return self._plans[id(route)]

    def reverse(self, name: str, **variables: Any) -> str:
        return self.table.reverse(name, variables)

    async def dispatch(
        self,
        method: str,
        path: str,
        raw_parameters: RawParameters | None = None,
        *,
        request: Request | None = None,
    ) -> Outcome:
        """Dispatch one request and return its outcome."""
        logger.debug("%s %s: %s", method, path, DispatchState.RECEIVED.value)

        match = self.table.match(method, path)
        if match is None:
            return self._fail(DispatchState.NOT_FOUND, NoMatch(f"No route matches {method.upper()} {path}"), None)
        logger.debug("%s %s: %s %r", method, path, DispatchState.MATCHED.value, match.route)
        if request is not None:
            request.path_params = dict(match.bindings)
            request.route_name = match.route.name

        try:
            kwargs = await self.resolver.resolve(self.plan_for(match.route), match, raw_parameters, request)
        except BindingError as exc:
            return self._fail(DispatchState.BINDING_FAILED, exc, match)
        except EntityNotFound as exc:
            return self._fail(DispatchState.ENTITY_MISSING, exc, match)
        except Exception as exc:
            logger.exception("Parameter resolution failed for %r", match.route)
            return self._fail(DispatchState.HANDLER_ERROR, self._wrap(exc), match)
        logger.debug("%s %s: %s", method, path, DispatchState.RESOLVED.value)

        try:
            result = await _invoke(match.route.handler, kwargs)
        except EntityNotFound as exc:
            return self._fail(DispatchState.ENTITY_MISSING, exc, match)
        except HTTPError as exc:
            return self._fail(DispatchState.HANDLER_ERROR, exc, match)
        except Exception as exc:
            logger.exception("Handler failed for %r", match.route)
            return self._fail(DispatchState.HANDLER_ERROR, self._wrap(exc), match)
        logger.debug("%s %s: %s", method, path, DispatchState.INVOKED.value)

        return Outcome(DispatchState.RESPONDED, 200, result=result, match=match)

    def _wrap(self, exc: Exception) -> HandlerError:
        error = HandlerError()
        error.__cause__ = exc
        return error

    def _fail(self, state: DispatchState, error: HTTPError, match: MatchResult | None) -> Outcome:
        if error.status < 500:
            logger.warning("%s: %s", state.value, error.detail)
        return Outcome(state, error.status, detail=error.detail, match=match, error=error)


async def _invoke(handler: Any, kwargs: dict[str, Any]) -> Any:
    if inspect.iscoroutinefunction(handler):
        return await handler(**kwargs)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(handler, **kwargs))
    if inspect.isawaitable(result):
        result = await result
    return result
