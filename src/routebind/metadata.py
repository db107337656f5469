"""Route metadata declared on handlers, and extraction into a route table.

Decorators only record metadata; nothing is registered until
:func:`extract_routes` walks the handlers once at startup::

    @route("/posts/{id}", name="post_show", methods=["GET"])
    def show(post: Post) -> Post:
        return post

    table = extract_routes([show])

Applied to a class, :func:`route` declares a pattern and name prefix for
every decorated method of that controller.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from routebind.errors import ConfigurationError
from routebind.routing import Route, RouteTable

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)

ROUTES_ATTR = "__routebind_routes__"


@dataclass(frozen=True, slots=True)
class RouteMetadata:
    """Routing metadata attached to a handler or controller class."""

    pattern: str
    name: str | None = None
    requirements: Mapping[str, str] = field(default_factory=dict)
    methods: tuple[str, ...] = ()
    mapping: Mapping[str, str] = field(default_factory=dict)


def route(
    pattern: str,
    *,
    name: str | None = None,
    requirements: Mapping[str, str] | None = None,
    methods: Iterable[str] | None = None,
    mapping: Mapping[str, str] | None = None,
) -> Callable[[Any], Any]:
    """Attach a route declaration to a handler or controller class.

    Parameters
    ----------
    requirements:
        Variable name to regex; a value that does not fully match means
        the route does not match.
    methods:
        Accepted HTTP methods.  Empty or ``None`` accepts any method.
    mapping:
        Handler parameter name to the path variable that identifies it,
        for entity parameters whose variable is not the entity's
        identifier name (``{post_id}`` for ``post: Post``).
    """
    meta = RouteMetadata(
        pattern=pattern,
        name=name,
        requirements=dict(requirements or {}),
        methods=tuple(m.upper() for m in methods or ()),
        mapping=dict(mapping or {}),
    )

    def decorator(target: Any) -> Any:
        existing: tuple[RouteMetadata, ...] = vars(target).get(ROUTES_ATTR, ())
        # Decorators apply bottom-up; keep the top one first.
        setattr(target, ROUTES_ATTR, (meta, *existing))
        return target

    return decorator


def get(pattern: str, **options: Any) -> Callable[[Any], Any]:
    return route(pattern, methods=("GET",), **options)


def post(pattern: str, **options: Any) -> Callable[[Any], Any]:
    return route(pattern, methods=("POST",), **options)


def put(pattern: str, **options: Any) -> Callable[[Any], Any]:
    return route(pattern, methods=("PUT",), **options)


def delete(pattern: str, **options: Any) -> Callable[[Any], Any]:
    return route(pattern, methods=("DELETE",), **options)


def patch(pattern: str, **options: Any) -> Callable[[Any], Any]:
    return route(pattern, methods=("PATCH",), **options)


def route_metadata(target: Any) -> tuple[RouteMetadata, ...]:
    """Return the metadata declared directly on *target* (empty if none)."""
    for candidate in (target, getattr(target, "__func__", None)):
        try:
            metas = vars(candidate).get(ROUTES_ATTR)
        except TypeError:
            continue
        if metas:
            return metas
    return ()


# ------------------------------------------------------------------
# Extraction
# ------------------------------------------------------------------


def extract_routes(handlers: Iterable[Any]) -> RouteTable:
    """Build a frozen :class:`RouteTable` from decorated handlers.

    *handlers* may hold functions, controller classes (instantiated with
    no arguments) and controller instances.  Routes keep declaration
    order.  Handlers without metadata are not routable and are skipped.

    Raises :class:`ConfigurationError` for malformed patterns or
    duplicate route names.
    """
    table = RouteTable()
    for handler in handlers:
        for built in _routes_for(handler):
            table.add(built)
    table.freeze()
    logger.info("Route table built with %d route(s)", len(table))
    return table


def _routes_for(handler: Any) -> Iterator[Route]:
    if isinstance(handler, type):
        try:
            controller = handler()
        except TypeError as exc:
            msg = f"Controller {handler.__qualname__} must be instantiable without arguments"
            raise ConfigurationError(msg) from exc
        yield from _controller_routes(controller)
    elif inspect.isroutine(handler):
        metas = route_metadata(handler)
        if not metas:
            logger.debug("Skipping %s: no route metadata", _describe(handler))
        for meta in metas:
            yield _build(meta, handler)
    else:
        yield from _controller_routes(handler)


def _controller_routes(controller: Any) -> Iterator[Route]:
    prefixes = vars(type(controller)).get(ROUTES_ATTR, ())
    if len(prefixes) > 1:
        msg = f"Controller {type(controller).__qualname__} declares more than one route prefix"
        raise ConfigurationError(msg)
    prefix = prefixes[0] if prefixes else None

    # Definition order, base classes first; overrides keep the base position.
    members: dict[str, Any] = {}
    for klass in reversed(type(controller).__mro__[:-1]):
        members.update(vars(klass))

    found = False
    for attr_name, attr in members.items():
        if not (inspect.isfunction(attr) or isinstance(attr, staticmethod | classmethod)):
            continue
        metas = route_metadata(attr)
        if not metas:
            continue
        found = True
        bound = getattr(controller, attr_name)
        for meta in metas:
            yield _build(_combine(prefix, meta) if prefix else meta, bound)

    if not found:
        logger.debug("Skipping %s: no routed methods", type(controller).__qualname__)


def _combine(prefix: RouteMetadata, meta: RouteMetadata) -> RouteMetadata:
    base = prefix.pattern.rstrip("/")
    pattern = (base or "/") if meta.pattern == "/" else base + meta.pattern
    name = meta.name
    if name is not None and prefix.name:
        name = prefix.name + name
    return RouteMetadata(
        pattern=pattern,
        name=name,
        requirements={**prefix.requirements, **meta.requirements},
        methods=meta.methods or prefix.methods,
        mapping={**prefix.mapping, **meta.mapping},
    )


def _build(meta: RouteMetadata, handler: Callable[..., Any]) -> Route:
    try:
        built = Route(
            meta.pattern,
            handler,
            methods=meta.methods,
            name=meta.name,
            requirements=meta.requirements,
            mapping=meta.mapping,
        )
    except ConfigurationError as exc:
        msg = f"{_describe(handler)}: {exc}"
        raise ConfigurationError(msg) from exc
    logger.debug("Extracted %r -> %s", built, _describe(handler))
    return built


def _describe(handler: Any) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
