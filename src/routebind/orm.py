"""SQLAlchemy-backed converter.

Loads mapped entities by primary key with ``Session.get``.  Works with
both ``sessionmaker`` and ``async_sessionmaker`` factories; a fresh
session is opened per lookup and closed before the record is returned.
Sync sessions do their I/O in the default executor.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from routebind.converters import _CoercingConverter
from routebind.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


def primary_key_of(entity_type: type) -> tuple[str, Any]:
    """Return ``(attribute_name, python_type)`` of a mapped class's primary key."""
    mapper = sa_inspect(entity_type, raiseerr=False)
    if mapper is None:
        msg = f"{entity_type!r} is not a mapped SQLAlchemy class"
        raise ConfigurationError(msg)
    if len(mapper.primary_key) != 1:
        msg = f"{entity_type.__name__} has a composite primary key; supply a LoaderConverter instead"
        raise ConfigurationError(msg)

    column = mapper.primary_key[0]
    attribute = mapper.get_property_by_column(column).key
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        python_type = None
    return attribute, python_type


class SQLAlchemyConverter(_CoercingConverter):
    """Resolve ``entity_type`` instances by primary key.

    Parameters
    ----------
    session_factory:
        Zero-argument callable returning a ``Session`` or ``AsyncSession``
        usable as a context manager.
    entity_type:
        The mapped class this converter serves.  Its primary key names the
        path variable (``{id}`` for a column ``id``) and the identifier type.
    """

    def __init__(self, session_factory: Callable[[], Any], entity_type: type) -> None:
        self.session_factory = session_factory
        self.entity_type = entity_type
        self.identifier, self.identifier_type = primary_key_of(entity_type)

    async def convert(self, entity_type: type, identifier: Any) -> Any:
        key = self._coerce(entity_type, identifier)
        session = self.session_factory()
        if isinstance(session, AsyncSession):
            async with session:
                record = await session.get(entity_type, key)
                if record is not None:
                    session.expunge(record)
        else:
            loop = asyncio.get_running_loop()
            record = await loop.run_in_executor(None, functools.partial(_get_detached, session, entity_type, key))
        logger.debug("Loaded %s %r: %s", entity_type.__name__, key, "hit" if record is not None else "miss")
        return record

    def __repr__(self) -> str:
        return f"SQLAlchemyConverter({self.entity_type.__name__}, identifier={self.identifier!r})"


def _get_detached(session: Any, entity_type: type, key: Any) -> Any:
    with session:
        record = session.get(entity_type, key)
        if record is not None:
            session.expunge(record)
    return record
