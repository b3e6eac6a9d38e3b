"""Request context consulted by repositories.

Repositories only ever ask the current request two things: whether a
parameter is present (the cache-skip override) and the value of a parameter
(the current page). The active request is tracked in a ``ContextVar`` so a
middleware can set it once per request.
"""

from contextvars import ContextVar, Token

import typing as t
from starlette.requests import Request


@t.runtime_checkable
class RequestContext(t.Protocol):
    def has(self, name: str) -> bool: ...

    def get(self, name: str, default: t.Any = None) -> t.Any: ...


class MappingRequestContext:
    """Request context backed by a plain mapping of parameters."""

    def __init__(self, params: t.Mapping[str, t.Any] | None = None) -> None:
        self.params = dict(params or {})

    def has(self, name: str) -> bool:
        return name in self.params

    def get(self, name: str, default: t.Any = None) -> t.Any:
        return self.params.get(name, default)


class StarletteRequestContext:
    """Request context reading a Starlette request's query parameters."""

    def __init__(self, request: Request) -> None:
        self.request = request

    def has(self, name: str) -> bool:
        return name in self.request.query_params

    def get(self, name: str, default: t.Any = None) -> t.Any:
        return self.request.query_params.get(name, default)


_current_request: ContextVar[RequestContext | None] = ContextVar(
    "reposcope_current_request",
    default=None,
)


def set_current_request(request: RequestContext | Request | None) -> Token[RequestContext | None]:
    """Make ``request`` the active request for the current context.

    Starlette requests are wrapped automatically. Returns the token needed by
    ``reset_current_request``.
    """
    if isinstance(request, Request):
        request = StarletteRequestContext(request)
    return _current_request.set(request)


def reset_current_request(token: Token[RequestContext | None]) -> None:
    _current_request.reset(token)


def get_current_request() -> RequestContext | None:
    return _current_request.get()
