"""
api/responses.py -- Per-request JSON response dispatcher.

Route handlers that want the encryption policy applied take a ResponseContext
dependency and return one of its responses instead of returning a model:

    @router.get("/things")
    async def things(ctx: ResponseContext = Depends(get_response_context)):
        return ctx.json(200, {"things": [...]})

Decision order for ctx.json():
  1. AES_ENABLED is false                     -> plain JSON
  2. request path starts with an excluded prefix -> plain JSON
  3. otherwise                                -> encrypted envelope

Plain JSON is indented with two spaces when DEBUG is on or the query string
carries a "pretty" key (presence only -- ?pretty, ?pretty=0 and ?pretty=1 all
count). Encrypted bodies are always compact; indentation inside an opaque blob
is meaningless to the client.

Every method builds the complete body before constructing the Response, so a
serialization or cipher failure raises before anything is written and the
status line is emitted exactly once. Content-Type is only filled in when the
handler has not already put one in ctx.headers.

JSONP and the *_blob / no_content variants never encrypt.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from starlette.datastructures import MutableHeaders
from starlette.responses import Response

from core.cipher import ResponseCipher
from core.config import Settings, get_settings
from core.errors import ConfigurationError, EncodingError
from core.paths import is_excluded

DEFAULT_INDENT = "  "

MIME_JSON = "application/json; charset=UTF-8"
MIME_JAVASCRIPT = "application/javascript; charset=UTF-8"
MIME_TEXT = "text/plain; charset=UTF-8"


def encode_json(payload: Any, indent: str = "") -> bytes:
    """Serialize payload to UTF-8 JSON. Compact separators unless indent is given.

    Pydantic models, dataclasses, datetimes etc. are normalized through
    jsonable_encoder first. NaN/Infinity are rejected rather than emitted as
    invalid JSON.
    """
    try:
        data = jsonable_encoder(payload)
        if indent:
            text = json.dumps(data, ensure_ascii=False, allow_nan=False, indent=indent)
        else:
            text = json.dumps(data, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError, RecursionError) as exc:
        raise EncodingError(f"Response payload is not JSON-serializable: {exc}") from exc
    return text.encode("utf-8")


class ResponseContext:
    """JSON-renderable response sink wrapping one request.

    Holds no per-process state of its own: the cipher and settings are shared,
    the headers mapping is request-scoped.
    """

    def __init__(self, request: Request, cipher: ResponseCipher | None = None, settings: Settings | None = None) -> None:
        self.request = request
        self.cipher = cipher
        self.settings = settings or get_settings()
        self.headers = MutableHeaders()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def should_encrypt(self) -> bool:
        if not self.settings.aes_enabled:
            return False
        return not is_excluded(self.request.url.path, self.settings.aes_exclude_prefixes)

    def indent(self) -> str:
        if self.settings.debug or "pretty" in self.request.query_params:
            return DEFAULT_INDENT
        return ""

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def json(self, code: int, payload: Any) -> Response:
        """Render payload as encrypted envelope or plain JSON, per the decision order above."""
        if self.should_encrypt():
            if self.cipher is None:
                raise ConfigurationError("Response encryption is enabled but no cipher is configured.")
            body = self.cipher.encrypt(encode_json(payload))
            return self.blob(code, MIME_TEXT, body)
        return self._json(code, payload, self.indent())

    def json_pretty(self, code: int, payload: Any, indent: str) -> Response:
        return self._json(code, payload, indent)

    def json_blob(self, code: int, body: bytes) -> Response:
        return self.blob(code, MIME_JSON, body)

    def _json(self, code: int, payload: Any, indent: str) -> Response:
        body = encode_json(payload, indent) + b"\n"
        return self.blob(code, MIME_JSON, body)

    # ------------------------------------------------------------------
    # JSONP
    # ------------------------------------------------------------------

    def jsonp(self, code: int, callback: str, payload: Any) -> Response:
        body = encode_json(payload, self.indent()) + b"\n"
        return self.jsonp_blob(code, callback, body)

    def jsonp_blob(self, code: int, callback: str, body: bytes) -> Response:
        wrapped = callback.encode("utf-8") + b"(" + body + b");"
        return self.blob(code, MIME_JAVASCRIPT, wrapped)

    # ------------------------------------------------------------------
    # Raw
    # ------------------------------------------------------------------

    def blob(self, code: int, content_type: str, body: bytes) -> Response:
        self._write_content_type(content_type)
        return self._with_headers(Response(content=body, status_code=code))

    def no_content(self, code: int) -> Response:
        return self._with_headers(Response(status_code=code))

    def _with_headers(self, response: Response) -> Response:
        # Raw copy keeps repeated names such as Set-Cookie.
        existing = {name for name, _ in response.raw_headers}
        response.raw_headers.extend((name, value) for name, value in self.headers.raw if name not in existing)
        return response

    def _write_content_type(self, value: str) -> None:
        if not self.headers.get("content-type"):
            self.headers["content-type"] = value


def get_response_context(request: Request) -> ResponseContext:
    """FastAPI dependency: a ResponseContext bound to the app's shared cipher."""
    return ResponseContext(request, getattr(request.app.state, "cipher", None), get_settings())
