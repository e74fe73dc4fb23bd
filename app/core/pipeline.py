"""Ordered request interceptor pipeline.

Every limited request passes through the interceptors in a fixed order
(admission, then rate limiting) before reaching route dispatch. Each
interceptor either lets the request continue (returns None) or ends it
with a terminal response; nothing falls through implicitly.

Usage:
    pipeline = GatewayPipeline([AdmissionInterceptor(), RateLimitInterceptor()])
    app.middleware("http")(pipeline)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from fastapi import Request, Response

# (method, path) pairs that skip admission and rate limiting. Matched exactly.
DEFAULT_EXEMPT_ROUTES: frozenset[tuple[str, str]] = frozenset(
    {
        ("GET", "/health"),
        ("POST", "/_scheduled/cleanup"),
        ("GET", "/docs"),
        ("GET", "/redoc"),
        ("GET", "/openapi.json"),
    }
)


class RequestInterceptor(ABC):
    """One stage of the gateway pipeline."""

    name: str = "interceptor"

    @abstractmethod
    async def intercept(self, request: Request) -> Response | None:
        """Return a terminal response to stop the pipeline, or None to continue."""
        raise NotImplementedError

    async def on_response(self, request: Request, response: Response) -> None:
        """Called after dispatch, in reverse order, for interceptors that let the request through."""
        return None


class GatewayPipeline:
    """HTTP middleware running interceptors in order with early return."""

    def __init__(
        self,
        interceptors: Sequence[RequestInterceptor],
        *,
        exempt_routes: Iterable[tuple[str, str]] = DEFAULT_EXEMPT_ROUTES,
    ) -> None:
        self.interceptors = list(interceptors)
        self.exempt_routes = frozenset((method.upper(), path) for method, path in exempt_routes)

    def is_exempt(self, method: str, path: str) -> bool:
        return (method.upper(), path) in self.exempt_routes

    async def __call__(self, request: Request, call_next) -> Response:
        if self.is_exempt(request.method, request.url.path):
            return await call_next(request)

        passed: list[RequestInterceptor] = []
        for interceptor in self.interceptors:
            terminal = await interceptor.intercept(request)
            if terminal is not None:
                return terminal
            passed.append(interceptor)

        response: Response = await call_next(request)
        for interceptor in reversed(passed):
            await interceptor.on_response(request, response)
        return response
