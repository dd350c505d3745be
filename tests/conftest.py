"""
pytest configuration and fixtures shared by the apicall and users service suites
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from users_service.app import create_app
from users_service.database.connection import get_user_store
from users_service.database.store import InMemoryUserStore


class MockServer:
    """
    Canned responses keyed by method and URL, served through httpx.MockTransport

    Unmatched requests get a 501 so a missing reply shows up in assertions.
    Every received request is recorded in `requests`.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def reply(
        self,
        method: str,
        url: str,
        status: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        times: int = 1
    ) -> "MockServer":
        key = (method.upper(), url)
        reply = {"status": status, "json": json, "text": text, "headers": headers}
        self.routes.setdefault(key, []).extend([reply] * times)
        return self

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.netloc.decode()}{request.url.path}"
        queue = self.routes.get((request.method, url))
        if not queue:
            return httpx.Response(501, text=f"No mock for {request.method} {url}")
        # The last canned reply is sticky
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if reply["json"] is not None:
            return httpx.Response(reply["status"], json=reply["json"], headers=reply["headers"])
        return httpx.Response(reply["status"], text=reply["text"] or "", headers=reply["headers"])

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "No request reached the mock server"
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last_request.content)


@pytest.fixture
def mock_server() -> MockServer:
    return MockServer()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def users_app(user_store):
    """Users service wired to a fresh in-memory store"""
    app = create_app()
    app.dependency_overrides[get_user_store] = lambda: user_store
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def users_transport(users_app) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=users_app)


@pytest.fixture
def users_url() -> str:
    return "http://users.test/users"
