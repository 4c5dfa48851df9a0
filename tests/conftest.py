"""Shared fixtures: a fake open-platform API behind httpx.MockTransport."""

import json
import tempfile
from pathlib import Path

import httpx
import pytest

from lark_mcp.auth.store import TokenStore
from lark_mcp.client import TENANT_TOKEN_PATH, LarkClient

TENANT_TOKEN = "t-tenant-token"


class FakeLarkAPI:
    """
    Records requests and answers them from a route table.

    Routes map ``(method, path)`` to a JSON payload, an ``httpx.Response``
    or a callable taking the request.
    """

    def __init__(self):
        self.requests = []
        self.routes = {}
        self.tenant_token_requests = 0

    def route(self, method, path, response):
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == TENANT_TOKEN_PATH:
            self.tenant_token_requests += 1
            return httpx.Response(200, json={"code": 0, "tenant_access_token": TENANT_TOKEN, "expire": 7200})
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"code": 99991400, "msg": "no such route"})
        if callable(response):
            response = response(request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def authorization(self, index=-1):
        return self.requests[index].headers["Authorization"]

    def json_body(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
def api():
    return FakeLarkAPI()


@pytest.fixture
def client(api):
    return LarkClient("cli_a1", "secret", "https://open.example.com", transport=httpx.MockTransport(api.handler))


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield TokenStore(home=Path(tmpdir))
