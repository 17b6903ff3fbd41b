"""In-memory stand-in for the AMS REST backend, served via httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any

import httpx

from ams.backend.client import BackendClient

BACKEND_URL = "https://ams.test/api"


class FakeBackend:
    """Routes are registered per ``(method, path)``.

    The path is relative to the API root and excludes the query string. A
    route is either a JSON body (served with 200), an ``httpx.Response``,
    or a callable taking the request. Unregistered routes answer 404.
    Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, result: Any) -> FakeBackend:
        self.routes[(method.upper(), path)] = result
        return self

    def fail(self, method: str, path: str, status_code: int = 500, body: Any = None) -> FakeBackend:
        return self.on(method, path, httpx.Response(status_code, json=body or {"message": "boom"}))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and self._path(r) == path]

    def bodies(self, method: str, path: str) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.calls(method, path)]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/api")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, self._path(request))
        if key not in self.routes:
            return httpx.Response(404, json={"message": f"No route {request.method} {request.url.path}"})
        route = self.routes[key]
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        if route is None:
            return httpx.Response(204)
        return httpx.Response(200, json=route)

    def client(self, *, token: str | None = "test-token", max_retries: int = 0) -> BackendClient:
        return BackendClient(
            BACKEND_URL,
            token=token,
            max_retries=max_retries,
            transport=httpx.MockTransport(self.handler),
        )
