from __future__ import annotations

import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import httpx

from ._urlparse import QueryParameters

T = typing.TypeVar("T")


class Headers:
    ACCEPT = "Accept"
    CONTENT_TYPE = "Content-Type"
    AUTHORIZATION = "Authorization"
    CONNECTION = "Connection"
    USER_AGENT = "User-Agent"
    WWW_AUTHENTICATE = "WWW-Authenticate"


class MediaTypes:
    APPLICATION_JSON = "application/json"
    APPLICATION_JSON_UTF8 = "application/json; charset=utf-8"


class HttpClientResponse:
    """A buffered response returned by `HttpClient` / `AsyncHttpClient`.

    The underlying `httpx.Response` is available as `message`.
    """

    def __init__(self, message: httpx.Response) -> None:
        self.message = message

    @property
    def status_code(self) -> int:
        return self.message.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.message.headers

    @property
    def request(self) -> httpx.Request:
        return self.message.request

    def read_body(self) -> str:
        self.message.read()
        return self.message.text

    async def aread_body(self) -> str:
        await self.message.aread()
        return self.message.text

    def __repr__(self) -> str:
        return f"<HttpClientResponse [{self.status_code}]>"


@dataclass
class RestResponse(typing.Generic[T]):
    status_code: int
    result: T | None = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass
class RestRequestOptions:
    """Per-call options for `RestClient` verbs.

    `accept_header` defaults to ``application/json``; common versioning is
    ``application/json;api-version=2.1``. `response_processor` receives the
    parsed body and its return value becomes `RestResponse.result`.
    """

    accept_header: str | None = None
    additional_headers: Mapping[str, str] = field(default_factory=dict)
    response_processor: Callable[[typing.Any], typing.Any] | None = None
    query_parameters: QueryParameters | Mapping[str, typing.Any] | None = None
