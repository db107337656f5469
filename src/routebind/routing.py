"""URL routing with segment-wise matching and reverse lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from routebind.errors import ConfigurationError, InvalidVariable, MissingVariable, NameNotFound

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from routebind._types import Handler


_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_]\w*)(?::(\w+))?\}")

# Shorthand ``{name:type}`` requirements.
_PARAM_TYPES: dict[str, str] = {
    "str": r"[^/]+",
    "int": r"-?\d+",
    "float": r"-?\d+(?:\.\d+)?",
    "uuid": r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}",
}


class _Segment:
    __slots__ = ("literal", "regex", "variable")

    def __init__(
        self,
        literal: str | None = None,
        variable: str | None = None,
        regex: re.Pattern[str] | None = None,
    ) -> None:
        self.literal = literal
        self.variable = variable
        self.regex = regex


class Route:
    """A single route definition: pattern, name, requirements and handler.

    Immutable once created.  ``methods`` is upper-cased; an empty set
    accepts any method.
    """

    __slots__ = (
        "_segments",
        "handler",
        "mapping",
        "methods",
        "name",
        "pattern",
        "requirements",
        "variables",
    )

    def __init__(
        self,
        pattern: str,
        handler: Handler,
        *,
        methods: Iterable[str] | None = None,
        name: str | None = None,
        requirements: Mapping[str, str] | None = None,
        mapping: Mapping[str, str] | None = None,
    ) -> None:
        segments, variables, merged = _compile_pattern(pattern, dict(requirements or {}))
        object.__setattr__(self, "pattern", pattern)
        object.__setattr__(self, "handler", handler)
        object.__setattr__(self, "methods", frozenset(m.upper() for m in methods or ()))
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "requirements", MappingProxyType(merged))
        object.__setattr__(self, "mapping", MappingProxyType(dict(mapping or {})))
        object.__setattr__(self, "variables", variables)
        object.__setattr__(self, "_segments", segments)

    def __setattr__(self, name: str, value: Any) -> None:
        msg = f"Route is immutable; cannot set {name!r}"
        raise AttributeError(msg)

    def accepts(self, method: str) -> bool:
        return not self.methods or method.upper() in self.methods

    def match(self, path: str) -> dict[str, str] | None:
        """Return raw path bindings if *path* matches, else ``None``."""
        parts = path.split("/")
        if parts[0] != "":
            return None
        parts = parts[1:]
        if len(parts) != len(self._segments):
            return None

        bindings: dict[str, str] = {}
        for segment, part in zip(self._segments, parts, strict=True):
            if segment.variable is None:
                if part != segment.literal:
                    return None
                continue
            if not part:
                return None
            if segment.regex is not None and segment.regex.fullmatch(part) is None:
                return None
            bindings[segment.variable] = part
        return bindings

    def build(self, variables: Mapping[str, Any]) -> str:
        """Substitute *variables* into the pattern.

        Raises :class:`MissingVariable` or :class:`InvalidVariable`.
        """
        label = self.name or self.pattern
        parts: list[str] = []
        for segment in self._segments:
            if segment.variable is None:
                parts.append(segment.literal or "")
                continue
            if variables.get(segment.variable) is None:
                raise MissingVariable(label, segment.variable)
            value = str(variables[segment.variable])
            if not value or "/" in value:
                raise InvalidVariable(label, segment.variable, value)
            if segment.regex is not None and segment.regex.fullmatch(value) is None:
                raise InvalidVariable(label, segment.variable, value)
            parts.append(value)
        return "/" + "/".join(parts)

    def __repr__(self) -> str:
        methods = ",".join(sorted(self.methods)) or "ANY"
        if self.name:
            return f"Route({methods} {self.pattern!r}, name={self.name!r})"
        return f"Route({methods} {self.pattern!r})"


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Result of a successful match: the route and its raw bindings."""

    route: Route
    bindings: dict[str, str]


class RouteTable:
    """Ordered collection of routes with first-match-wins lookup.

    Built once at startup, then frozen; reads need no locking.
    """

    __slots__ = ("_by_name", "_frozen", "_routes")

    def __init__(self, routes: Iterable[Route] = ()) -> None:
        self._routes: list[Route] = []
        self._by_name: dict[str, Route] = {}
        self._frozen = False
        for route in routes:
            self.add(route)

    def add(self, route: Route) -> Route:
        if self._frozen:
            msg = "Cannot add routes to a frozen route table."
            raise RuntimeError(msg)
        if route.name is not None:
            if route.name in self._by_name:
                existing = self._by_name[route.name]
                msg = f"Duplicate route name {route.name!r}: {existing.pattern!r} and {route.pattern!r}"
                raise ConfigurationError(msg)
            self._by_name[route.name] = route
        self._routes.append(route)
        return route

    def add_route(
        self,
        method: str,
        pattern: str,
        handler: Handler,
        **options: Any,
    ) -> Route:
        return self.add(Route(pattern, handler, methods=(method,), **options))

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def get(self, name: str) -> Route:
        try:
            return self._by_name[name]
        except KeyError:
            raise NameNotFound(name) from None

    def match(self, method: str, path: str) -> MatchResult | None:
        """Return the first route matching ``(method, path)``, or ``None``."""
        method = method.upper()
        for route in self._routes:
            if not route.accepts(method):
                continue
            bindings = route.match(path)
            if bindings is not None:
                return MatchResult(route, bindings)
        return None

    def reverse(self, name: str, variables: Mapping[str, Any] | None = None) -> str:
        """Build the path of the route called *name*.

        Raises :class:`NameNotFound` for an unknown name.
        """
        return self.get(name).build(variables or {})


def _compile_pattern(
    pattern: str,
    requirements: dict[str, str],
) -> tuple[tuple[_Segment, ...], tuple[str, ...], dict[str, str]]:
    """Compile ``/posts/{id:int}`` into segments, variable names and requirements."""
    if not pattern.startswith("/"):
        msg = f"Route pattern {pattern!r} must start with '/'"
        raise ConfigurationError(msg)

    segments: list[_Segment] = []
    variables: list[str] = []
    for part in pattern[1:].split("/"):
        if "{" not in part and "}" not in part:
            segments.append(_Segment(literal=part))
            continue

        m = _PLACEHOLDER_RE.fullmatch(part)
        if m is None:
            msg = f"Malformed placeholder {part!r} in route pattern {pattern!r}"
            raise ConfigurationError(msg)

        name, type_name = m.group(1), m.group(2)
        if name in variables:
            msg = f"Duplicate placeholder {name!r} in route pattern {pattern!r}"
            raise ConfigurationError(msg)
        if type_name is not None:
            if type_name not in _PARAM_TYPES:
                msg = f"Unknown path parameter type {type_name!r} in route pattern {pattern!r}"
                raise ConfigurationError(msg)
            requirements.setdefault(name, _PARAM_TYPES[type_name])
        variables.append(name)
        segments.append(_Segment(variable=name))

    unknown = set(requirements) - set(variables)
    if unknown:
        msg = f"Requirements for unknown variables {sorted(unknown)} in route pattern {pattern!r}"
        raise ConfigurationError(msg)

    for segment in segments:
        if segment.variable is None or segment.variable not in requirements:
            continue
        try:
            segment.regex = re.compile(requirements[segment.variable])
        except re.error as exc:
            msg = f"Invalid requirement for {segment.variable!r} in route pattern {pattern!r}: {exc}"
            raise ConfigurationError(msg) from exc

    return tuple(segments), tuple(variables), requirements
