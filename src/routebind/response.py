"""ASGI response types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

if TYPE_CHECKING:
    from collections.abc import Mapping

    from routebind._types import Send

_ANY: TypeAdapter[Any] = TypeAdapter(Any)


class Response:
    """A complete HTTP response sent in a single body message."""

    __slots__ = ("body", "headers", "media_type", "status_code")

    media_type_default = "text/plain; charset=utf-8"

    def __init__(
        self,
        body: bytes | str = b"",
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
        media_type: str | None = None,
    ) -> None:
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status_code
        self.headers = dict(headers or {})
        self.media_type = media_type or self.media_type_default

    def raw_headers(self) -> list[tuple[bytes, bytes]]:
        headers = {k.lower(): v for k, v in self.headers.items()}
        headers.setdefault("content-type", self.media_type)
        headers["content-length"] = str(len(self.body))
        return [(k.encode("latin-1"), v.encode("latin-1")) for k, v in headers.items()]

    async def send(self, send: Send) -> None:
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers(),
            }
        )
        await send({"type": "http.response.body", "body": self.body})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code})"


class JSONResponse(Response):
    """JSON body; pydantic models, dataclasses, UUIDs and datetimes serialize natively."""

    __slots__ = ()

    media_type_default = "application/json"

    def __init__(
        self,
        content: Any,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(_ANY.dump_json(content), status_code=status_code, headers=headers)
