"""Converters: pluggable lookup of domain records from path identifiers.

A converter answers ``convert(entity_type, identifier)`` with the record
or ``None`` when nothing matches.  ``convert`` may be a plain function or
a coroutine.  The ``identifier`` attribute names the entity's
identifying attribute; a path variable with that name feeds the lookup.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from routebind.errors import BindingError, ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

logger = logging.getLogger(__name__)


@runtime_checkable
class Converter(Protocol):
    identifier: str

    def convert(self, entity_type: type, identifier: Any) -> Any: ...


class ConverterRegistry:
    """Converters keyed by the declared entity type.

    Lookup walks the MRO, so a converter registered for a base class
    also serves its subclasses.
    """

    __slots__ = ("_converters",)

    def __init__(self, converters: Mapping[type, Converter] | None = None) -> None:
        self._converters: dict[type, Converter] = {}
        for entity_type, converter in (converters or {}).items():
            self.register(entity_type, converter)

    def register(self, entity_type: type, converter: Converter) -> None:
        if not isinstance(entity_type, type):
            msg = f"Converters are keyed by type, got {entity_type!r}"
            raise ConfigurationError(msg)
        if not isinstance(converter, Converter):
            msg = f"{converter!r} does not implement convert(entity_type, identifier)"
            raise ConfigurationError(msg)
        self._converters[entity_type] = converter
        logger.debug("Registered converter %r for %s", converter, entity_type.__name__)

    def get(self, entity_type: Any) -> Converter | None:
        if not isinstance(entity_type, type):
            return None
        for klass in entity_type.__mro__:
            converter = self._converters.get(klass)
            if converter is not None:
                return converter
        return None

    def __contains__(self, entity_type: object) -> bool:
        return self.get(entity_type) is not None

    def __iter__(self) -> Iterator[type]:
        return iter(self._converters)

    def __len__(self) -> int:
        return len(self._converters)


class _CoercingConverter:
    """Shared identifier coercion for the stock converters."""

    identifier: str
    identifier_type: Any

    def _coerce(self, entity_type: type, identifier: Any) -> Any:
        if self.identifier_type is None:
            return identifier
        try:
            return TypeAdapter(self.identifier_type).validate_python(identifier)
        except ValidationError as exc:
            msg = f"Invalid {entity_type.__name__} identifier {identifier!r}"
            raise BindingError(msg, parameter=self.identifier) from exc


class MappingConverter(_CoercingConverter):
    """Look records up in an in-memory mapping keyed by identifier.

    The mapping is read at call time, so later inserts are visible.
    """

    def __init__(
        self,
        records: Mapping[Any, Any],
        *,
        identifier: str = "id",
        identifier_type: Any = int,
    ) -> None:
        self.records = records
        self.identifier = identifier
        self.identifier_type = identifier_type

    def convert(self, entity_type: type, identifier: Any) -> Any:
        return self.records.get(self._coerce(entity_type, identifier))

    def __repr__(self) -> str:
        return f"MappingConverter({len(self.records)} records, identifier={self.identifier!r})"


class LoaderConverter(_CoercingConverter):
    """Delegate to a ``loader(identifier)`` callable, sync or async.

    Sync loaders run in the default executor.
    """

    def __init__(
        self,
        loader: Callable[[Any], Any],
        *,
        identifier: str = "id",
        identifier_type: Any = None,
    ) -> None:
        self.loader = loader
        self.identifier = identifier
        self.identifier_type = identifier_type

    async def convert(self, entity_type: type, identifier: Any) -> Any:
        key = self._coerce(entity_type, identifier)
        if inspect.iscoroutinefunction(self.loader):
            return await self.loader(key)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, functools.partial(self.loader, key))
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        name = getattr(self.loader, "__name__", repr(self.loader))
        return f"LoaderConverter({name}, identifier={self.identifier!r})"
