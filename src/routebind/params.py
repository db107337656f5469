"""Handler parameter planning and resolution.

Every route's handler signature is planned once at startup into a tuple
of :class:`ParameterSpec`.  Per request, :meth:`ParameterResolver.resolve`
turns the raw path bindings and query parameters into keyword arguments:

- ``request``                 -> the :class:`Request` (or ``None``)
- ``bindings``                -> path variables no other parameter consumed
- type with a converter       -> record loaded from the identifier variable
- pydantic ``BaseModel``      -> model validated from query parameters
- name of a path variable     -> the variable, coerced to the annotation
- anything else               -> query parameter, coerced to the annotation

Entity parameters read the variable named by ``mapping[param]`` or, by
convention, the converter's identifier name (``{id}``).  When the route
has no such variable but has one named like the parameter, that raw
string is passed through unconverted.
"""

from __future__ import annotations

import enum
import inspect
import logging
import types
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError

from routebind.converters import ConverterRegistry
from routebind.errors import BindingError, ConfigurationError, EntityNotFound
from routebind.request import Request

if TYPE_CHECKING:
    from routebind._types import RawParameters
    from routebind.converters import Converter
    from routebind.routing import MatchResult, Route

logger = logging.getLogger(__name__)

_EMPTY = inspect.Parameter.empty


class ParameterKind(enum.Enum):
    PATH = "path"
    ENTITY = "entity"
    RAW = "raw"
    QUERY = "query"
    MODEL = "model"
    REQUEST = "request"
    BINDINGS = "bindings"


@dataclass(frozen=True, slots=True)
class ParameterSpec:
    """How one handler argument is produced for one route."""

    name: str
    kind: ParameterKind
    annotation: Any = _EMPTY
    source: str | None = None
    default: Any = _EMPTY
    nullable: bool = False
    adapter: TypeAdapter[Any] | None = field(default=None, compare=False, repr=False)
    converter: Converter | None = field(default=None, compare=False, repr=False)

    @property
    def required(self) -> bool:
        return self.default is _EMPTY


class ParameterResolver:
    """Plans handler signatures and binds arguments per request."""

    __slots__ = ("converters",)

    def __init__(self, converters: ConverterRegistry | None = None) -> None:
        self.converters = converters if converters is not None else ConverterRegistry()

    # ------------------------------------------------------------------
    # Planning (startup)
    # ------------------------------------------------------------------

    def plan(self, route: Route) -> tuple[ParameterSpec, ...]:
        """Derive the parameter specs of *route*'s handler.

        Raises :class:`ConfigurationError` when a required parameter has
        no possible source or an annotation cannot be coerced to.
        """
        handler = route.handler
        label = f"{getattr(handler, '__qualname__', repr(handler))} [{route.pattern}]"
        signature = inspect.signature(handler)
        hints = _type_hints(handler, label)

        unknown = set(route.mapping.values()) - set(route.variables)
        if unknown:
            msg = f"{label}: mapping refers to unknown path variables {sorted(unknown)}"
            raise ConfigurationError(msg)

        specs: list[ParameterSpec] = []
        for param in signature.parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD, param.POSITIONAL_ONLY):
                msg = f"{label}: parameter {param.name!r} must be passable by keyword"
                raise ConfigurationError(msg)
            spec = self._plan_parameter(route, param, hints.get(param.name, _EMPTY), label)
            if spec is not None:
                specs.append(spec)
        return tuple(specs)

    def _plan_parameter(
        self,
        route: Route,
        param: inspect.Parameter,
        annotation: Any,
        label: str,
    ) -> ParameterSpec | None:
        name = param.name
        target, nullable = unwrap_optional(annotation)

        if name == "request" or target is Request:
            return ParameterSpec(name, ParameterKind.REQUEST, annotation)
        if name == "bindings":
            return ParameterSpec(name, ParameterKind.BINDINGS, annotation)

        converter = self.converters.get(target)
        if converter is not None:
            variable = route.mapping.get(name, converter.identifier)
            if variable in route.variables:
                return ParameterSpec(
                    name,
                    ParameterKind.ENTITY,
                    target,
                    source=variable,
                    default=param.default,
                    nullable=nullable,
                    converter=converter,
                )
            if name in route.variables:
                logger.debug("%s: no {%s} variable, passing {%s} through unconverted", label, variable, name)
                return ParameterSpec(name, ParameterKind.RAW, annotation, source=name)
            if param.default is not _EMPTY:
                return None
            msg = (
                f"{label}: cannot resolve {name}: {target.__name__}; the route has no "
                f"{{{variable}}} or {{{name}}} variable"
            )
            raise ConfigurationError(msg)

        if isinstance(target, type) and issubclass(target, BaseModel):
            return ParameterSpec(name, ParameterKind.MODEL, target, default=param.default)

        kind = ParameterKind.PATH if name in route.variables else ParameterKind.QUERY
        return ParameterSpec(
            name,
            kind,
            annotation,
            source=name,
            default=param.default,
            nullable=nullable,
            adapter=_adapter_for(annotation, label, name),
        )

    # ------------------------------------------------------------------
    # Resolution (per request)
    # ------------------------------------------------------------------

    async def resolve(
        self,
        specs: tuple[ParameterSpec, ...],
        match: MatchResult,
        raw_parameters: RawParameters | None = None,
        request: Request | None = None,
    ) -> dict[str, Any]:
        """Build handler keyword arguments.

        Raises :class:`BindingError` when coercion fails or a required
        query parameter is missing, :class:`EntityNotFound` when a
        converter finds no record.
        """
        raw_parameters = raw_parameters or {}
        bindings = match.bindings
        consumed = {
            spec.source for spec in specs if spec.kind in (ParameterKind.PATH, ParameterKind.ENTITY, ParameterKind.RAW)
        }

        kwargs: dict[str, Any] = {}
        for spec in specs:
            kind = spec.kind
            if kind is ParameterKind.REQUEST:
                kwargs[spec.name] = request
            elif kind is ParameterKind.BINDINGS:
                kwargs[spec.name] = {k: v for k, v in bindings.items() if k not in consumed}
            elif kind is ParameterKind.RAW:
                kwargs[spec.name] = bindings[spec.source]
            elif kind is ParameterKind.PATH:
                kwargs[spec.name] = _coerce(spec, bindings[spec.source])
            elif kind is ParameterKind.ENTITY:
                kwargs[spec.name] = await _load(spec, bindings[spec.source])
            elif kind is ParameterKind.MODEL:
                kwargs[spec.name] = _validate_model(spec, raw_parameters)
            elif spec.source in raw_parameters:
                kwargs[spec.name] = _coerce(spec, raw_parameters[spec.source])
            elif spec.required:
                msg = f"Missing required parameter {spec.name!r}"
                raise BindingError(msg, parameter=spec.name)
        return kwargs


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------


def _type_hints(handler: Any, label: str) -> dict[str, Any]:
    try:
        return get_type_hints(handler)
    except (NameError, TypeError) as exc:
        msg = f"{label}: cannot evaluate handler annotations: {exc}"
        raise ConfigurationError(msg) from exc


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return ``(T, True)`` for ``T | None``, else ``(annotation, False)``."""
    if get_origin(annotation) not in (Union, types.UnionType):
        return annotation, False
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if len(args) == 1 and len(get_args(annotation)) == 2:
        return args[0], True
    return annotation, False


def _adapter_for(annotation: Any, label: str, name: str) -> TypeAdapter[Any] | None:
    if annotation is _EMPTY or annotation is str or annotation is Any:
        return None
    try:
        return TypeAdapter(annotation)
    except PydanticSchemaGenerationError as exc:
        msg = f"{label}: cannot coerce parameter {name!r} to {annotation!r}"
        raise ConfigurationError(msg) from exc


def _coerce(spec: ParameterSpec, raw: str) -> Any:
    if spec.adapter is None:
        return raw
    try:
        return spec.adapter.validate_python(raw)
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"] if exc.errors() else "invalid value"
        msg = f"Invalid value {raw!r} for parameter {spec.name!r}: {reason}"
        raise BindingError(msg, parameter=spec.name) from exc


def _validate_model(spec: ParameterSpec, raw_parameters: RawParameters) -> BaseModel:
    try:
        return spec.annotation.model_validate(dict(raw_parameters))
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        msg = f"Invalid parameters for {spec.name!r}: {fields}"
        raise BindingError(msg, parameter=spec.name) from exc


async def _load(spec: ParameterSpec, raw: str) -> Any:
    converter = spec.converter
    if converter is None:
        msg = f"Entity parameter {spec.name!r} has no converter"
        raise ConfigurationError(msg)
    record = converter.convert(spec.annotation, raw)
    if inspect.isawaitable(record):
        record = await record
    if record is None:
        if spec.nullable:
            return None
        raise EntityNotFound(entity_type=spec.annotation, identifier=raw)
    return record
