"""Tests for the PMM API client."""

import base64
import json

import httpx
import pytest

from everest_provisioner.pmm import PMMClient
from everest_provisioner.utils.errors import PMMError


def make_client(handler, **kwargs) -> PMMClient:
    return PMMClient(
        "https://pmm.example.com/",
        username="admin",
        password="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestPMMClient:
    """Test create_admin_api_key."""

    def test_basic_auth(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": 1, "name": "acct", "key": "eyJrIjoi"})

        key = make_client(handler).create_admin_api_key("acct")

        assert key == "eyJrIjoi"
        (request,) = seen
        assert request.method == "POST"
        assert str(request.url) == "https://pmm.example.com/graph/api/auth/keys"
        assert json.loads(request.content) == {"name": "acct", "role": "Admin"}
        expected = base64.b64encode(b"admin:secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    def test_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"key": "k"})

        make_client(handler).create_admin_api_key("acct", token="tok")

        assert seen[0].headers["Authorization"] == "Bearer tok"

    def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "invalid username or password"})

        with pytest.raises(PMMError, match="401"):
            make_client(handler).create_admin_api_key("acct")

    def test_missing_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": 1})

        with pytest.raises(PMMError, match="no API key"):
            make_client(handler).create_admin_api_key("acct")

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PMMError, match="cannot reach PMM"):
            make_client(handler).create_admin_api_key("acct")

    def test_malformed_answer(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(PMMError, match="malformed"):
            make_client(handler).create_admin_api_key("acct")
