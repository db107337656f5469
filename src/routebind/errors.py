"""Exception hierarchy shared by the extractor, router, resolver and dispatcher."""

from __future__ import annotations


class RoutebindError(Exception):
    """Base for all routebind errors."""


class ConfigurationError(RoutebindError):
    """Invalid route metadata or handler signature, raised at startup."""


# ------------------------------------------------------------------
# URL generation
# ------------------------------------------------------------------


class UrlGenerationError(RoutebindError):
    """A route path could not be built from a name and variables."""


class NameNotFound(UrlGenerationError, LookupError):  # noqa: N818
    """No route carries the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No route named {name!r}")
        self.name = name


class MissingVariable(UrlGenerationError):  # noqa: N818
    def __init__(self, name: str, variable: str) -> None:
        super().__init__(f"Route {name!r} requires a value for {variable!r}")
        self.name = name
        self.variable = variable


class InvalidVariable(UrlGenerationError):  # noqa: N818
    def __init__(self, name: str, variable: str, value: str) -> None:
        super().__init__(f"Value {value!r} for {variable!r} does not satisfy the requirement of route {name!r}")
        self.name = name
        self.variable = variable
        self.value = value


# ------------------------------------------------------------------
# Per-request failures
# ------------------------------------------------------------------


class HTTPError(RoutebindError):
    """A per-request failure that maps to an HTTP status code.

    The dispatcher catches these and turns them into an ``Outcome``;
    they never propagate past the dispatch boundary.
    """

    status: int = 500
    default_detail: str = "Internal Server Error"

    def __init__(self, detail: str | None = None, *, status: int | None = None) -> None:
        if status is not None:
            self.status = status
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def __str__(self) -> str:
        return f"{self.status}: {self.detail}"


class NoMatch(HTTPError):  # noqa: N818
    status = 404
    default_detail = "Not Found"


class BindingError(HTTPError):
    """A raw path or query value could not be coerced to the declared type."""

    status = 400
    default_detail = "Bad Request"

    def __init__(self, detail: str | None = None, *, parameter: str | None = None) -> None:
        super().__init__(detail)
        self.parameter = parameter


class EntityNotFound(HTTPError):  # noqa: N818
    """A converter found no record for the given identifier."""

    status = 404
    default_detail = "Not Found"

    def __init__(
        self,
        detail: str | None = None,
        *,
        entity_type: type | None = None,
        identifier: object = None,
    ) -> None:
        if detail is None and entity_type is not None:
            detail = f"{entity_type.__name__} with identifier {identifier!r} not found"
        super().__init__(detail)
        self.entity_type = entity_type
        self.identifier = identifier


class HandlerError(HTTPError):
    """Wraps an unexpected exception raised by handler code."""

    status = 500
    default_detail = "Internal Server Error"
