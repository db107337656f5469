"""Annotation-driven routing with typed entity binding for ASGI apps."""

__version__ = "0.1.0"

from routebind.app import Routebind
from routebind.converters import Converter, ConverterRegistry, LoaderConverter, MappingConverter
from routebind.dispatch import Dispatcher, DispatchState, Outcome
from routebind.errors import (
    BindingError,
    ConfigurationError,
    EntityNotFound,
    HandlerError,
    HTTPError,
    InvalidVariable,
    MissingVariable,
    NameNotFound,
    NoMatch,
    RoutebindError,
)
from routebind.metadata import extract_routes, route
from routebind.request import Request
from routebind.response import JSONResponse, Response
from routebind.routing import MatchResult, Route, RouteTable

__all__ = [
    "BindingError",
    "ConfigurationError",
    "Converter",
    "ConverterRegistry",
    "DispatchState",
    "Dispatcher",
    "EntityNotFound",
    "HTTPError",
    "HandlerError",
    "InvalidVariable",
    "JSONResponse",
    "LoaderConverter",
    "MappingConverter",
    "MatchResult",
    "MissingVariable",
    "NameNotFound",
    "NoMatch",
    "Outcome",
    "Request",
    "Response",
    "Route",
    "RouteTable",
    "Routebind",
    "RoutebindError",
    "extract_routes",
    "route",
]
