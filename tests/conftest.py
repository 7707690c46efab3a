from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from itwin_storage_sample.endpoint_client import ClientConfig, EndpointClient

API = "https://api.bentley.com"
BLOB = "https://blob.example.net"


class FakeStorageApi:
    """Routes requests by method and URL (query string ignored) to canned responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Callable[[httpx.Request], httpx.Response]]] = {}

    def add(self, method: str, url: str, status_code: int, **kwargs: Any) -> None:
        self.add_handler(method, url, lambda _req: httpx.Response(status_code, **kwargs))

    def add_handler(
        self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]
    ) -> None:
        self._routes.setdefault((method, url), []).append(handler)

    def calls(self, method: str | None = None) -> list[tuple[str, str]]:
        return [
            (r.method, _route_url(r))
            for r in self.requests
            if method is None or r.method == method
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = self._routes.get((request.method, _route_url(request)))
        if not handlers:
            return httpx.Response(
                404, json={"error": {"code": "RouteNotFound", "message": str(request.url)}}
            )
        # The last registered handler is sticky, earlier ones are used once.
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return handler(request)


def _route_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


@pytest.fixture
def fake_api() -> FakeStorageApi:
    return FakeStorageApi()


@pytest.fixture
def make_client(fake_api: FakeStorageApi) -> Callable[..., EndpointClient]:
    def factory(**config: Any) -> EndpointClient:
        config.setdefault("token", "Bearer secret-token")
        return EndpointClient(ClientConfig(**config), transport=httpx.MockTransport(fake_api))

    return factory


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr("itwin_storage_sample.endpoint_client.asyncio.sleep", fake_sleep)
    return recorded
