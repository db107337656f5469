"""Tests for the Routebind ASGI application."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from routebind import (
    ConfigurationError,
    JSONResponse,
    MappingConverter,
    NameNotFound,
    Request,
    Response,
    Routebind,
    __version__,
    route,
)
from routebind.config import Settings

# -- Domain ---------------------------------------------------------------


@dataclass
class Post:
    id: int
    title: str


class Item(BaseModel):
    name: str
    price: float


class Paging(BaseModel):
    page: int = 1


POSTS = {5: Post(5, "Hello")}


@route("/blog", name="blog_")
class BlogController:
    @route("/", name="index", methods=["GET"])
    def index(self) -> list:
        return [p.title for p in POSTS.values()]

    @route("/{id}", name="show", methods=["GET"])
    def show(self, post: Post) -> Post:
        return post


def _make_client(app: Routebind) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    )


def _post_app(**options: Any) -> Routebind:
    app = Routebind(**options)
    app.register_converter(Post, MappingConverter(POSTS))

    @app.get("/posts/{id}", name="post_show")
    async def show(post: Post) -> Post:
        return post

    return app


# =====================================================================
# Version
# =====================================================================


def test_version() -> None:
    assert __version__ is not None
    assert isinstance(__version__, str)


# =====================================================================
# ASGI integration (using httpx)
# =====================================================================


@pytest.mark.asyncio
async def test_simple_get() -> None:
    app = Routebind()

    @app.get("/hello")
    async def hello(request: Request) -> JSONResponse:
        return JSONResponse({"msg": "hi"})

    async with _make_client(app) as client:
        resp = await client.get("/hello")
        assert resp.status_code == 200
        assert resp.json() == {"msg": "hi"}


@pytest.mark.asyncio
async def test_path_params() -> None:
    app = Routebind()

    @app.get("/users/{user_id:int}")
    async def get_user(request: Request, user_id: int) -> JSONResponse:
        return JSONResponse({"id": user_id, "route": request.path_params})

    async with _make_client(app) as client:
        resp = await client.get("/users/42")
        assert resp.status_code == 200
        assert resp.json() == {"id": 42, "route": {"user_id": "42"}}

        resp = await client.get("/users/abc")
        assert resp.status_code == 404


@pytest.mark.asyncio
async def test_query_params() -> None:
    app = Routebind()

    @app.get("/search")
    async def search(q: str, paging: Paging) -> dict:
        return {"q": q, "page": paging.page}

    async with _make_client(app) as client:
        resp = await client.get("/search", params={"q": "python", "page": "3"})
        assert resp.json() == {"q": "python", "page": 3}

        resp = await client.get("/search")
        assert resp.status_code == 400
        assert resp.json()["state"] == "binding_failed"


@pytest.mark.asyncio
async def test_404() -> None:
    app = Routebind()

    async with _make_client(app) as client:
        resp = await client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "No route matches GET /nope", "state": "not_found"}


@pytest.mark.asyncio
async def test_500_on_handler_error() -> None:
    app = Routebind()

    @app.get("/boom")
    async def boom(request: Request) -> Response:
        raise RuntimeError("kaboom")

    async with _make_client(app) as client:
        resp = await client.get("/boom")
        assert resp.status_code == 500
        assert "Internal Server Error" in resp.json()["detail"]
        assert "traceback" not in resp.json()


@pytest.mark.asyncio
async def test_debug_includes_traceback() -> None:
    app = Routebind(debug=True)

    @app.get("/boom")
    async def boom() -> Response:
        raise RuntimeError("kaboom")

    async with _make_client(app) as client:
        resp = await client.get("/boom")
        assert resp.status_code == 500
        assert "RuntimeError: kaboom" in resp.json()["traceback"]


@pytest.mark.asyncio
async def test_sync_handler() -> None:
    app = Routebind()

    @app.get("/sync")
    def sync_handler(request: Request) -> JSONResponse:
        return JSONResponse({"sync": True})

    async with _make_client(app) as client:
        resp = await client.get("/sync")
        assert resp.status_code == 200
        assert resp.json() == {"sync": True}


@pytest.mark.asyncio
async def test_dict_return_auto_json() -> None:
    app = Routebind()

    @app.get("/auto")
    async def auto(request: Request) -> dict:
        return {"auto": True}

    async with _make_client(app) as client:
        resp = await client.get("/auto")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {"auto": True}


@pytest.mark.asyncio
async def test_none_return_is_no_content() -> None:
    app = Routebind()

    @app.delete("/posts/{id}")
    async def remove(id: int) -> None:
        return None

    async with _make_client(app) as client:
        resp = await client.delete("/posts/1")
        assert resp.status_code == 204
        assert resp.content == b""


@pytest.mark.asyncio
async def test_str_return_is_plain_text() -> None:
    app = Routebind()

    @app.get("/text")
    async def text() -> str:
        return "hello"

    async with _make_client(app) as client:
        resp = await client.get("/text")
        assert resp.text == "hello"
        assert resp.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_post_with_body() -> None:
    app = Routebind()

    @app.post("/echo")
    async def echo(request: Request) -> JSONResponse:
        data = await request.json()
        return JSONResponse(data)

    async with _make_client(app) as client:
        resp = await client.post("/echo", json={"key": "value"})
        assert resp.status_code == 200
        assert resp.json() == {"key": "value"}


@pytest.mark.asyncio
async def test_pydantic_model_response() -> None:
    app = Routebind()

    @app.get("/item")
    async def get_item(request: Request) -> Item:
        return Item(name="Widget", price=9.99)

    async with _make_client(app) as client:
        resp = await client.get("/item")
        assert resp.status_code == 200
        assert resp.json() == {"name": "Widget", "price": 9.99}


@pytest.mark.asyncio
async def test_unserializable_result_is_handler_error() -> None:
    app = Routebind(debug=True)

    @app.get("/bad")
    async def bad() -> dict:
        return {"x": object()}

    async with _make_client(app) as client:
        resp = await client.get("/bad")
        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        body = resp.json()
        assert body["detail"] == "Internal Server Error"
        assert body["state"] == "handler_error"
        assert "traceback" in body


# =====================================================================
# Entity binding
# =====================================================================


@pytest.mark.asyncio
async def test_entity_binding() -> None:
    async with _make_client(_post_app()) as client:
        resp = await client.get("/posts/5")
        assert resp.status_code == 200
        assert resp.json() == {"id": 5, "title": "Hello"}


@pytest.mark.asyncio
async def test_entity_missing() -> None:
    async with _make_client(_post_app()) as client:
        resp = await client.get("/posts/999")
        assert resp.status_code == 404
        assert resp.json() == {
            "detail": "Post with identifier '999' not found",
            "state": "entity_missing",
        }


@pytest.mark.asyncio
async def test_bad_identifier() -> None:
    async with _make_client(_post_app()) as client:
        resp = await client.get("/posts/abc")
        assert resp.status_code == 400


@pytest.mark.asyncio
async def test_included_controller() -> None:
    app = Routebind()
    app.register_converter(Post, MappingConverter(POSTS))
    app.include(BlogController)

    async with _make_client(app) as client:
        resp = await client.get("/blog")
        assert resp.json() == ["Hello"]
        resp = await client.get("/blog/5")
        assert resp.json() == {"id": 5, "title": "Hello"}
    assert app.url_for("blog_show", id=5) == "/blog/5"


def test_url_for() -> None:
    app = _post_app()
    assert app.url_for("post_show", id=5) == "/posts/5"
    with pytest.raises(NameNotFound):
        app.url_for("post_edit", id=5)


# =====================================================================
# Startup
# =====================================================================


def test_freeze_is_idempotent() -> None:
    app = _post_app()
    assert app.freeze() is app.freeze()
    assert len(app.router) == 1


def test_registration_after_freeze_raises() -> None:
    app = _post_app()
    app.freeze()

    with pytest.raises(RuntimeError, match="frozen app"):

        @app.get("/late")
        async def late() -> None: ...


def test_invalid_route_fails_at_freeze() -> None:
    app = Routebind()

    @app.get("/latest")
    async def latest(post: Post) -> None: ...

    app.register_converter(Post, MappingConverter(POSTS))
    with pytest.raises(ConfigurationError, match="cannot resolve post"):
        app.freeze()


@pytest.mark.asyncio
async def test_lifespan_startup_failure() -> None:
    app = Routebind()

    @app.get("/posts/{id")
    async def broken() -> None: ...

    messages = [{"type": "lifespan.startup"}]
    sent: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return messages.pop(0)

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await app({"type": "lifespan"}, receive, send)
    assert sent[0]["type"] == "lifespan.startup.failed"
    assert "Malformed placeholder" in sent[0]["message"]


@pytest.mark.asyncio
async def test_lifespan_startup_and_shutdown() -> None:
    app = _post_app()
    messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
    sent: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return messages.pop(0)

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await app({"type": "lifespan"}, receive, send)
    assert [m["type"] for m in sent] == ["lifespan.startup.complete", "lifespan.shutdown.complete"]


def test_from_settings() -> None:
    app = Routebind.from_settings(Settings(strict=True, debug=True))
    assert app.strict
    assert app.debug


# =====================================================================
# Strict mode
# =====================================================================


def test_strict_mode_rejects_missing_annotation() -> None:
    app = Routebind(strict=True)

    @app.get("/x")
    def no_annotation(request: Request):  # noqa: ANN202
        return Response()

    with pytest.raises(TypeError, match="Missing return type annotation"):
        app.freeze()


def test_strict_mode_rejects_wrong_return_type() -> None:
    app = Routebind(strict=True)

    @app.get("/x")
    def wrong_type(request: Request) -> dict:
        return {}

    with pytest.raises(TypeError, match="must be a Response subclass, a BaseModel subclass"):
        app.freeze()


def test_strict_mode_accepts_response_subclass() -> None:
    app = Routebind(strict=True)

    @app.get("/x")
    def ok(request: Request) -> JSONResponse:
        return JSONResponse({})

    assert len(app.router.routes) == 1


def test_strict_mode_accepts_entity_types() -> None:
    app = _post_app(strict=True)
    assert len(app.router.routes) == 1


# =====================================================================
# Middleware
# =====================================================================


@pytest.mark.asyncio
async def test_middleware() -> None:
    app = Routebind()

    @app.get("/mw")
    async def handler(request: Request) -> JSONResponse:
        return JSONResponse({"ok": True})

    def add_header_middleware(inner_app):  # noqa: ANN001, ANN202
        async def middleware(scope, receive, send):  # noqa: ANN001, ANN202
            async def custom_send(message):  # noqa: ANN001, ANN202
                if message["type"] == "http.response.start":
                    headers = list(message.get("headers", []))
                    headers.append((b"x-custom", b"yes"))
                    message = {**message, "headers": headers}
                await send(message)

            await inner_app(scope, receive, custom_send)

        return middleware

    app.add_middleware(add_header_middleware)

    async with _make_client(app) as client:
        resp = await client.get("/mw")
        assert resp.status_code == 200
        assert resp.headers["x-custom"] == "yes"


# =====================================================================
# All HTTP methods
# =====================================================================


@pytest.mark.asyncio
async def test_all_http_methods() -> None:
    app = Routebind()

    for method_name in ("get", "post", "put", "delete", "patch", "options", "head"):
        decorator = getattr(app, method_name)

        @decorator(f"/{method_name}")
        async def handler(request: Request, _method=method_name) -> JSONResponse:  # noqa: ANN001
            return JSONResponse({"method": _method})

    async with _make_client(app) as client:
        for method_name in ("get", "post", "put", "delete", "patch", "options"):
            resp = await getattr(client, method_name)(f"/{method_name}")
            assert resp.status_code == 200
            assert resp.json() == {"method": method_name}

        resp = await client.head("/head")
        assert resp.status_code == 200

        resp = await client.post("/get")
        assert resp.status_code == 404
