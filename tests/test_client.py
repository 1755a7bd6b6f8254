from __future__ import annotations

import json
import typing

import httpx
import pytest

import typedrest

if typing.TYPE_CHECKING:  # pragma: no cover
    from conftest import TestServer


def test_get(server: TestServer) -> None:
    with typedrest.HttpClient("typed-test-client") as client:
        response = client.get(server.url)
        assert response.status_code == 200
        assert response.read_body() == "Hello, world!"
        assert repr(response) == "<HttpClientResponse [200]>"


def test_user_agent(server: TestServer) -> None:
    with typedrest.HttpClient("typed-test-client") as client:
        response = client.get(server.url + "echo_headers")
        headers = json.loads(response.read_body())
    assert headers["User-agent"] == "typed-test-client"


def test_additional_headers(server: TestServer) -> None:
    with typedrest.HttpClient() as client:
        response = client.get(server.url + "echo_headers", {"X-Custom": "value"})
        headers = json.loads(response.read_body())
    assert headers["X-custom"] == "value"


def test_post(server: TestServer) -> None:
    with typedrest.HttpClient() as client:
        response = client.post(server.url + "echo_body", '{"name": "foo"}')
        assert json.loads(response.read_body()) == {"name": "foo"}


def test_send_stream(server: TestServer) -> None:
    def chunks() -> typing.Iterator[bytes]:
        yield b"Hello, "
        yield b"stream!"

    with typedrest.HttpClient() as client:
        response = client.send_stream("PUT", server.url + "echo_body", chunks())
        assert response.read_body() == "Hello, stream!"


def test_head(server: TestServer) -> None:
    with typedrest.HttpClient() as client:
        response = client.head(server.url)
        assert response.status_code == 200
        assert response.read_body() == ""


def test_status_codes_are_not_raised(server: TestServer) -> None:
    with typedrest.HttpClient() as client:
        assert client.get(server.url + "status/404").status_code == 404
        assert client.get(server.url + "status/500").status_code == 500


def test_redirects_followed(server: TestServer) -> None:
    with typedrest.HttpClient() as client:
        response = client.get(server.url + "redirect_301")
        assert response.status_code == 200
        assert json.loads(response.read_body()) == {"Hello": "world!"}


def test_redirects_disabled(server: TestServer) -> None:
    options = typedrest.RequestOptions(allow_redirects=False)
    with typedrest.HttpClient(request_options=options) as client:
        response = client.get(server.url + "redirect_301")
        assert response.status_code == 301
        assert response.headers["location"] == "/json"


def test_socket_timeout(server: TestServer) -> None:
    options = typedrest.RequestOptions(socket_timeout=0.01)
    with typedrest.HttpClient(request_options=options) as client:
        with pytest.raises(typedrest.TimeoutException) as exc_info:
            client.get(server.url + "slow_response")
    assert exc_info.value.request.url == server.url + "slow_response"


def test_connect_error() -> None:
    with typedrest.HttpClient() as client:
        with pytest.raises(typedrest.ConnectError):
            client.get("http://127.0.0.1:1/")


def test_unsupported_protocol() -> None:
    with typedrest.HttpClient() as client:
        with pytest.raises(typedrest.UnsupportedProtocol):
            client.get("ftp://example.org/")


def test_invalid_url() -> None:
    with typedrest.HttpClient() as client:
        with pytest.raises(typedrest.InvalidURL):
            client.get("http://example.org:abc/")


def test_mock_transport_records_verbs() -> None:
    seen = []

    def app(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.content))
        return httpx.Response(204)

    client = typedrest.HttpClient(transport=httpx.MockTransport(app))
    client.options("http://api.test/items")
    client.delete("http://api.test/items/1")
    client.patch("http://api.test/items/1", b"patch")
    client.put("http://api.test/items/1", b"put")
    client.request("PURGE", "http://api.test/items")
    assert seen == [
        ("OPTIONS", b""),
        ("DELETE", b""),
        ("PATCH", b"patch"),
        ("PUT", b"put"),
        ("PURGE", b""),
    ]


def test_proxy_client_selection() -> None:
    proxy = typedrest.ProxyConfiguration(
        "http://proxy.local:8888", proxy_bypass_hosts=[r"github\.com"]
    )
    options = typedrest.RequestOptions(proxy=proxy)
    with typedrest.HttpClient(request_options=options) as client:
        assert client._client_for("https://api.github.com/repos") is client._client
        assert client._client_for("https://GITHUB.COM/") is client._client
        assert client._client_for("https://example.org/") is client._proxy_clients["https"]
        assert client._proxy_clients["http"] is client._proxy_clients["https"]


def test_environment_proxy_ignored_without_trust_env(monkeypatch) -> None:
    monkeypatch.setenv("HTTPS_PROXY", "http://proxy.local:3128")
    options = typedrest.RequestOptions(trust_env=False)
    with typedrest.HttpClient(request_options=options) as client:
        assert client._proxy_clients == {}


def test_environment_proxy(monkeypatch) -> None:
    monkeypatch.setenv("HTTPS_PROXY", "http://proxy.local:3128")
    monkeypatch.setenv("NO_PROXY", "localhost")
    with typedrest.HttpClient() as client:
        assert client._client_for("http://localhost:8000/") is client._client
        assert client._client_for("https://example.org/") is client._proxy_clients["https"]
        assert client._client_for("http://example.org/") is client._client


def test_environment_proxy_per_scheme(monkeypatch) -> None:
    monkeypatch.setenv("HTTP_PROXY", "http://plain-proxy.local:3128")
    monkeypatch.setenv("HTTPS_PROXY", "http://secure-proxy.local:3128")
    with typedrest.HttpClient() as client:
        http_client = client._client_for("http://example.org/")
        https_client = client._client_for("https://example.org/")
        assert http_client is client._proxy_clients["http"]
        assert https_client is client._proxy_clients["https"]
        assert http_client is not https_client
    assert client._proxy_for("http://example.org/").proxy_url == "http://plain-proxy.local:3128"
    assert client._proxy_for("https://example.org/").proxy_url == "http://secure-proxy.local:3128"


def test_environment_all_proxy_fills_both_schemes(monkeypatch) -> None:
    monkeypatch.setenv("ALL_PROXY", "http://all-proxy.local:3128")
    monkeypatch.setenv("HTTPS_PROXY", "http://secure-proxy.local:3128")
    options = typedrest.RequestOptions()
    assert options.effective_proxy("http").proxy_url == "http://all-proxy.local:3128"
    assert options.effective_proxy("https").proxy_url == "http://secure-proxy.local:3128"


@pytest.mark.anyio
async def test_async_get(server: TestServer) -> None:
    async with typedrest.AsyncHttpClient("typed-test-client") as client:
        response = await client.get(server.url + "json")
        assert response.status_code == 200
        assert json.loads(await response.aread_body()) == {"Hello": "world!"}


@pytest.mark.anyio
async def test_async_post(server: TestServer) -> None:
    async with typedrest.AsyncHttpClient() as client:
        response = await client.post(server.url + "echo_body", b'{"id": 1}')
        assert json.loads(await response.aread_body()) == {"id": 1}


@pytest.mark.anyio
async def test_async_send_stream(server: TestServer) -> None:
    async def chunks() -> typing.AsyncIterator[bytes]:
        yield b"async "
        yield b"stream"

    async with typedrest.AsyncHttpClient() as client:
        response = await client.send_stream("POST", server.url + "echo_body", chunks())
        assert await response.aread_body() == "async stream"


@pytest.mark.anyio
async def test_async_socket_timeout(server: TestServer) -> None:
    options = typedrest.RequestOptions(socket_timeout=0.01)
    async with typedrest.AsyncHttpClient(request_options=options) as client:
        with pytest.raises(typedrest.TimeoutException):
            await client.get(server.url + "slow_response")


@pytest.mark.anyio
async def test_async_presigned_url_skips_handlers() -> None:
    seen = []

    def app(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200)

    options = typedrest.RequestOptions(presigned_url_patterns=[r"\?sig="])
    async with typedrest.AsyncHttpClient(
        handlers=[typedrest.BearerCredentialHandler("token")],
        request_options=options,
        transport=httpx.MockTransport(app),
    ) as client:
        await client.get("https://storage.test/blob?sig=abc")
        await client.get("https://storage.test/blob")
    assert seen == [None, "Bearer token"]
