from __future__ import annotations

import json
import logging
import typing
from collections.abc import Sequence

import httpx

from ._client import AsyncHttpClient, HttpClient
from ._content import JsonContentHandler
from ._exceptions import RestError
from ._models import (
    Headers,
    HttpClientResponse,
    MediaTypes,
    RestRequestOptions,
    RestResponse,
)
from ._urlparse import resolve_url

if typing.TYPE_CHECKING:
    from ._config import RequestOptions
    from .handlers import RequestHandler

logger = logging.getLogger("typedrest.rest")

T = typing.TypeVar("T", bound="RestClient")
U = typing.TypeVar("U", bound="AsyncRestClient")


class BaseRestClient:
    def __init__(self, base_url: str | None = None, deserialize_dates: bool = False) -> None:
        self.base_url = base_url or None
        self.content_handler = JsonContentHandler(deserialize_dates)

    def _resolve(self, resource: str, options: RestRequestOptions | None) -> str:
        query_parameters = options.query_parameters if options is not None else None
        return resolve_url(resource, self.base_url, query_parameters)

    @staticmethod
    def _headers_from_options(
        options: RestRequestOptions | None, content_type: bool = False
    ) -> httpx.Headers:
        options = options or RestRequestOptions()
        headers = httpx.Headers(options.additional_headers)
        headers[Headers.ACCEPT] = options.accept_header or MediaTypes.APPLICATION_JSON
        if content_type and Headers.CONTENT_TYPE not in headers:
            headers[Headers.CONTENT_TYPE] = MediaTypes.APPLICATION_JSON_UTF8
        return headers

    @staticmethod
    def _serialize(resources: typing.Any) -> str:
        return json.dumps(resources, indent=2)

    def _classify(
        self,
        response: HttpClientResponse,
        contents: str,
        options: RestRequestOptions | None,
    ) -> RestResponse[typing.Any]:
        status_code = response.status_code
        if status_code == httpx.codes.NOT_FOUND:
            return RestResponse(status_code, None, response.headers)

        obj: typing.Any = None
        result: typing.Any = None
        if contents:
            try:
                obj = self.content_handler.handle(contents)
            except ValueError:
                logger.debug("Response body of %s is not JSON", response.request.url)
            else:
                if options is not None and options.response_processor is not None:
                    result = options.response_processor(obj)
                else:
                    result = obj

        # 3xx redirects are followed by the transport.
        if status_code > 299:
            if isinstance(obj, dict) and obj.get("message"):
                message = str(obj["message"])
            else:
                message = f"Failed request: ({status_code})"
            raise RestError(
                message,
                status_code=status_code,
                result=result,
                request=response.request,
            )

        return RestResponse(status_code, result, response.headers)


class RestClient(BaseRestClient):
    """
    JSON REST client.

    Relative resources are resolved against `base_url`. A ``404`` returns a
    `RestResponse` whose `result` is `None`; any other status above 299 raises
    `RestError`.

    Usage:

    ```python
    >>> with RestClient("my-agent", "https://httpbin.org") as rest:
    ...     response = rest.get("get")
    ...     response.result["url"]
    'https://httpbin.org/get'
    ```
    """

    def __init__(
        self,
        user_agent: str | None = None,
        base_url: str | None = None,
        handlers: Sequence[RequestHandler] | None = None,
        request_options: RequestOptions | None = None,
        *,
        deserialize_dates: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, deserialize_dates)
        self.client = HttpClient(
            user_agent, handlers, request_options, transport=transport
        )

    def options(
        self, request_url: str, options: RestRequestOptions | None = None
    ) -> RestResponse[typing.Any]:
        url = self._resolve(request_url, options)
        response = self.client.options(url, self._headers_from_options(options))
        return self._process_response(response, options)

    def get(
        self, resource: str, options: RestRequestOptions | None = None
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        response = self.client.get(url, self._headers_from_options(options))
        return self._process_response(response, options)

    def delete(
        self, resource: str, options: RestRequestOptions | None = None
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        response = self.client.delete(url, self._headers_from_options(options))
        return self._process_response(response, options)

    def create(
        self,
        resource: str,
        resources: typing.Any,
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        headers = self._headers_from_options(options, content_type=True)
        response = self.client.post(url, self._serialize(resources), headers)
        return self._process_response(response, options)

    def update(
        self,
        resource: str,
        resources: typing.Any,
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        headers = self._headers_from_options(options, content_type=True)
        response = self.client.patch(url, self._serialize(resources), headers)
        return self._process_response(response, options)

    def replace(
        self,
        resource: str,
        resources: typing.Any,
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        headers = self._headers_from_options(options, content_type=True)
        response = self.client.put(url, self._serialize(resources), headers)
        return self._process_response(response, options)

    def upload_stream(
        self,
        verb: str,
        request_url: str,
        stream: typing.Iterable[bytes] | typing.IO[bytes],
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(request_url, options)
        headers = self._headers_from_options(options, content_type=True)
        response = self.client.send_stream(verb, url, stream, headers)
        return self._process_response(response, options)

    def _process_response(
        self, response: HttpClientResponse, options: RestRequestOptions | None
    ) -> RestResponse[typing.Any]:
        return self._classify(response, response.read_body(), options)

    def close(self) -> None:
        self.client.close()

    def __enter__(self: T) -> T:
        return self

    def __exit__(self, *args: typing.Any) -> None:
        self.close()


class AsyncRestClient(BaseRestClient):
    """Async counterpart of `RestClient`."""

    def __init__(
        self,
        user_agent: str | None = None,
        base_url: str | None = None,
        handlers: Sequence[RequestHandler] | None = None,
        request_options: RequestOptions | None = None,
        *,
        deserialize_dates: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, deserialize_dates)
        self.client = AsyncHttpClient(
            user_agent, handlers, request_options, transport=transport
        )

    async def options(
        self, request_url: str, options: RestRequestOptions | None = None
    ) -> RestResponse[typing.Any]:
        url = self._resolve(request_url, options)
        response = await self.client.options(url, self._headers_from_options(options))
        return await self._process_response(response, options)

    async def get(
        self, resource: str, options: RestRequestOptions | None = None
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        response = await self.client.get(url, self._headers_from_options(options))
        return await self._process_response(response, options)

    async def delete(
        self, resource: str, options: RestRequestOptions | None = None
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        response = await self.client.delete(url, self._headers_from_options(options))
        return await self._process_response(response, options)

    async def create(
        self,
        resource: str,
        resources: typing.Any,
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        headers = self._headers_from_options(options, content_type=True)
        response = await self.client.post(url, self._serialize(resources), headers)
        return await self._process_response(response, options)

    async def update(
        self,
        resource: str,
        resources: typing.Any,
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        headers = self._headers_from_options(options, content_type=True)
        response = await self.client.patch(url, self._serialize(resources), headers)
        return await self._process_response(response, options)

    async def replace(
        self,
        resource: str,
        resources: typing.Any,
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(resource, options)
        headers = self._headers_from_options(options, content_type=True)
        response = await self.client.put(url, self._serialize(resources), headers)
        return await self._process_response(response, options)

    async def upload_stream(
        self,
        verb: str,
        request_url: str,
        stream: typing.AsyncIterable[bytes] | typing.Iterable[bytes],
        options: RestRequestOptions | None = None,
    ) -> RestResponse[typing.Any]:
        url = self._resolve(request_url, options)
        headers = self._headers_from_options(options, content_type=True)
        response = await self.client.send_stream(verb, url, stream, headers)
        return await self._process_response(response, options)

    async def _process_response(
        self, response: HttpClientResponse, options: RestRequestOptions | None
    ) -> RestResponse[typing.Any]:
        return self._classify(response, await response.aread_body(), options)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self: U) -> U:
        return self

    async def __aexit__(self, *args: typing.Any) -> None:
        await self.aclose()
