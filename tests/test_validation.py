"""Tests for strict-mode handler signature validation."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from pydantic import BaseModel

from routebind.converters import ConverterRegistry, MappingConverter
from routebind.response import JSONResponse, Response
from routebind.routing import Route
from routebind.validation import validate_handler_signature

# -- Test models ----------------------------------------------------------


class UserModel(BaseModel):
    name: str
    age: int


class QueryModel(BaseModel):
    page: int
    size: int


@dataclass
class Post:
    id: int


CONVERTERS = ConverterRegistry({Post: MappingConverter({})})


def _check(handler: object, pattern: str = "/x", methods: tuple[str, ...] = ("GET",)) -> None:
    validate_handler_signature(Route(pattern, handler, methods=methods), CONVERTERS)


# -- Rule 1: Return type annotation must exist ---------------------------


def test_missing_return_type_raises() -> None:
    def handler(request: object): ...

    with pytest.raises(TypeError, match="Missing return type annotation"):
        _check(handler)


def test_violation_names_handler_and_route() -> None:
    def handler(request: object): ...

    with pytest.raises(TypeError, match=r"'handler' \[GET /x\]"):
        _check(handler)


# -- Rule 2: Return type must be structured -------------------------------


def test_dict_return_type_raises() -> None:
    def handler(request: object) -> dict:
        return {}

    with pytest.raises(TypeError, match="must be a Response subclass, a BaseModel subclass"):
        _check(handler)


def test_list_return_type_raises() -> None:
    def handler(request: object) -> list:
        return []

    with pytest.raises(TypeError, match="must be a Response subclass, a BaseModel subclass"):
        _check(handler)


def test_basemodel_return_type_ok() -> None:
    def handler(request: object) -> UserModel:
        return UserModel(name="a", age=1)

    _check(handler)


def test_json_response_return_type_ok() -> None:
    def handler(request: object) -> JSONResponse:
        return JSONResponse({})

    _check(handler)


def test_response_return_type_ok() -> None:
    def handler(request: object) -> Response:
        return Response()

    _check(handler)


def test_none_return_type_ok() -> None:
    def handler(request: object) -> None: ...

    _check(handler)


def test_entity_return_type_ok() -> None:
    def handler(post: Post) -> Post:
        return post

    _check(handler, "/posts/{id}")


def test_entity_return_type_without_converter_raises() -> None:
    def handler(post: Post) -> Post:
        return post

    with pytest.raises(TypeError, match="Current: -> Post"):
        validate_handler_signature(Route("/posts/{id}", handler))


# -- Rule 3: All params must be typed ------------------------------------


def test_untyped_path_param_raises() -> None:
    def handler(request: object, user_id) -> None: ...  # noqa: ANN001

    with pytest.raises(TypeError, match="no type annotation"):
        _check(handler, "/users/{user_id}")


def test_framework_params_need_no_annotation() -> None:
    def handler(request, bindings) -> None: ...  # noqa: ANN001

    _check(handler, "/users/{user_id}")


# -- Rule 4: Non-path params must be models or entities -------------------


def test_dict_body_param_raises() -> None:
    def handler(request: object, data: dict) -> None: ...

    with pytest.raises(TypeError, match="must be a BaseModel subclass"):
        _check(handler, methods=("POST",))


def test_primitive_non_path_param_raises() -> None:
    def handler(request: object, page: int) -> None: ...

    with pytest.raises(TypeError, match="must be a BaseModel subclass"):
        _check(handler)


def test_query_model_param_ok() -> None:
    def handler(request: object, query: QueryModel) -> None: ...

    _check(handler)


def test_entity_param_ok() -> None:
    def handler(post: Post) -> None: ...

    _check(handler, "/posts/{id}")


def test_optional_entity_param_ok() -> None:
    def handler(post: Post | None) -> None: ...

    _check(handler, "/posts/{id}")


# -- Path params: typed primitives are OK ---------------------------------


def test_typed_path_param_ok() -> None:
    def handler(request: object, user_id: int) -> None: ...

    _check(handler, "/users/{user_id}")


def test_typed_path_param_with_type_suffix_ok() -> None:
    def handler(request: object, user_id: int) -> None: ...

    _check(handler, "/users/{user_id:int}")


# -- Combined valid handler -----------------------------------------------


def test_combined_valid_handler() -> None:
    def handler(request: object, user_id: int, post: Post, data: UserModel) -> None: ...

    _check(handler, "/users/{user_id:int}/posts/{id}", methods=("POST",))
