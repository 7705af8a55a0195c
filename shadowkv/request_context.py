"""
Request-scoped caller context for diagnostics (slow-query log lines).

Inside a FastAPI app, install(app) records the path of the request being served;
other callers can use bind_request_path() around their own unit of work.
"""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from fastapi import FastAPI

_request_path: ContextVar[Optional[str]] = ContextVar("shadowkv_request_path", default=None)


def current_request_path() -> Optional[str]:
    return _request_path.get()


@contextmanager
def bind_request_path(path: Optional[str]) -> Iterator[None]:
    token = _request_path.set(path)
    try:
        yield
    finally:
        _request_path.reset(token)


class RequestPathMiddleware:
    """Plain ASGI middleware, so the path is set in the same task as the endpoint."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        path = scope.get("path", "")
        qs = scope.get("query_string") or b""
        if qs:
            path = f"{path}?{qs.decode('latin-1')}"
        with bind_request_path(path):
            await self.app(scope, receive, send)


def install(app: FastAPI) -> FastAPI:
    app.add_middleware(RequestPathMiddleware)
    return app
