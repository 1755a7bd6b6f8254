from __future__ import annotations

import contextlib
import logging
import typing
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence

import httpx

from ._config import ProxyConfiguration, RequestOptions
from ._exceptions import map_transport_exceptions
from ._models import Headers, HttpClientResponse

if typing.TYPE_CHECKING:
    from .handlers import AuthenticationFlow, RequestHandler

logger = logging.getLogger("typedrest.client")

T = typing.TypeVar("T", bound="HttpClient")
U = typing.TypeVar("U", bound="AsyncHttpClient")

RequestData = typing.Union[
    str,
    bytes,
    typing.Iterable[bytes],
    typing.AsyncIterable[bytes],
]
HeaderTypes = typing.Union[Mapping[str, str], httpx.Headers]

# NTLM ties its session to one TCP connection; the handshake gets a pool of one.
SINGLE_CONNECTION = httpx.Limits(max_connections=1, max_keepalive_connections=1)


class BaseHttpClient:
    def __init__(
        self,
        user_agent: str | None = None,
        handlers: Sequence[RequestHandler] | None = None,
        request_options: RequestOptions | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.handlers: list[RequestHandler] = list(handlers or [])
        self.request_options = request_options or RequestOptions()
        self._proxies = self.request_options.effective_proxies()

    @property
    def default_headers(self) -> dict[str, str]:
        if self.user_agent is None:
            return {}
        return {Headers.USER_AGENT: self.user_agent}

    @staticmethod
    def _scheme(url: str) -> str:
        return url.split(":", 1)[0].lower()

    def _proxy_for(self, url: str) -> ProxyConfiguration | None:
        proxy = self._proxies.get(self._scheme(url))
        if proxy is None or proxy.is_bypassed(url):
            return None
        return proxy

    def _prepare_request(self, request_url: str, request: httpx.Request) -> None:
        if self.request_options.is_presigned(request_url):
            logger.debug("Presigned URL, credential handlers skipped: %s", request_url)
            return
        for handler in self.handlers:
            handler.prepare_request(request)

    def _select_handler(self, response: HttpClientResponse) -> RequestHandler | None:
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return None
        for handler in self.handlers:
            if handler.can_handle_authentication(response):
                return handler
        return None

    def _handshake_transport_kwargs(self, request_url: str) -> dict[str, typing.Any]:
        kwargs: dict[str, typing.Any] = {
            "verify": not self.request_options.ignore_ssl_error,
            "limits": SINGLE_CONNECTION,
        }
        proxy = self._proxy_for(request_url)
        if proxy is not None:
            kwargs["proxy"] = proxy.to_httpx()
        return kwargs


class HttpClient(BaseHttpClient):
    """
    Issues HTTP requests, decorating them with the registered credential
    handlers and answering at most one authentication challenge per request.

    Usage:

    ```python
    >>> handler = BasicCredentialHandler("johndoe", "password")
    >>> with HttpClient("my-agent", [handler]) as client:
    ...     response = client.get("https://example.org")
    ...     body = response.read_body()
    ```

    **Parameters:**

    * **user_agent** - *(optional)* Value of the `User-Agent` header.
    * **handlers** - *(optional)* Credential handlers, in priority order.
    * **request_options** - *(optional)* A `RequestOptions` instance with the
    socket timeout, SSL, proxy, redirect and presigned-URL settings.
    * **transport** - *(optional)* An `httpx` transport used for every request,
    e.g. `httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        user_agent: str | None = None,
        handlers: Sequence[RequestHandler] | None = None,
        request_options: RequestOptions | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(user_agent, handlers, request_options)
        client_kwargs = self.request_options.client_kwargs()
        self._custom_transport = transport is not None
        self._client = httpx.Client(
            headers=self.default_headers, transport=transport, **client_kwargs
        )
        # One client per distinct proxy, looked up by request scheme.
        self._proxy_clients: dict[str, httpx.Client] = {}
        if transport is None:
            shared: dict[int, httpx.Client] = {}
            for scheme, proxy in self._proxies.items():
                if id(proxy) not in shared:
                    shared[id(proxy)] = httpx.Client(
                        headers=self.default_headers,
                        proxy=proxy.to_httpx(),
                        **client_kwargs,
                    )
                self._proxy_clients[scheme] = shared[id(proxy)]

    def options(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return self.request("OPTIONS", request_url, None, additional_headers)

    def get(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return self.request("GET", request_url, None, additional_headers)

    def delete(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return self.request("DELETE", request_url, None, additional_headers)

    def head(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return self.request("HEAD", request_url, None, additional_headers)

    def post(
        self,
        request_url: str,
        data: RequestData | None,
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return self.request("POST", request_url, data, additional_headers)

    def patch(
        self,
        request_url: str,
        data: RequestData | None,
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return self.request("PATCH", request_url, data, additional_headers)

    def put(
        self,
        request_url: str,
        data: RequestData | None,
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return self.request("PUT", request_url, data, additional_headers)

    def send_stream(
        self,
        verb: str,
        request_url: str,
        stream: typing.Iterable[bytes] | typing.IO[bytes],
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return self.request(verb, request_url, stream, additional_headers)  # type: ignore[arg-type]

    def request(
        self,
        verb: str,
        request_url: str,
        data: RequestData | None = None,
        headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        """
        Send one logical request and return its (buffered) response.

        A ``401`` claimed by a credential handler is answered once, over a
        dedicated connection, and the handshake's final response is returned.
        """
        client = self._client_for(request_url)
        with map_transport_exceptions():
            request = client.build_request(
                verb, request_url, content=data, headers=headers  # type: ignore[arg-type]
            )
        self._prepare_request(request_url, request)

        logger.debug("%s %s", verb, request.url)
        with map_transport_exceptions(request):
            response = HttpClientResponse(client.send(request))

        handler = self._select_handler(response)
        if handler is None:
            return response

        logger.debug(
            "%s answering %s challenge for %s",
            type(handler).__name__,
            response.status_code,
            request.url,
        )
        return self._authenticate(handler, request_url, request, response)

    def _client_for(self, request_url: str) -> httpx.Client:
        if self._proxy_for(request_url) is not None:
            return self._proxy_clients.get(self._scheme(request_url), self._client)
        return self._client

    @contextlib.contextmanager
    def _handshake_client(self, request_url: str) -> Iterator[httpx.Client]:
        if self._custom_transport:
            yield self._client
            return
        transport = httpx.HTTPTransport(**self._handshake_transport_kwargs(request_url))
        with httpx.Client(
            transport=transport, **self.request_options.client_kwargs()
        ) as client:
            yield client

    def _authenticate(
        self,
        handler: RequestHandler,
        request_url: str,
        request: httpx.Request,
        response: HttpClientResponse,
    ) -> HttpClientResponse:
        flow: AuthenticationFlow = handler.handle_authentication(request, response.message)
        try:
            with self._handshake_client(request_url) as client, map_transport_exceptions(
                request, handshake=True
            ):
                try:
                    next_request = next(flow)
                except StopIteration:
                    return response
                while True:
                    message = client.send(next_request)
                    try:
                        next_request = flow.send(message)
                    except StopIteration:
                        return HttpClientResponse(message)
        finally:
            flow.close()

    def close(self) -> None:
        self._client.close()
        for proxy_client in set(self._proxy_clients.values()):
            proxy_client.close()

    def __enter__(self: T) -> T:
        return self

    def __exit__(self, *args: typing.Any) -> None:
        self.close()


class AsyncHttpClient(BaseHttpClient):
    """
    Async counterpart of `HttpClient`, sharing its handler semantics.

    Usage:

    ```python
    >>> async with AsyncHttpClient("my-agent", [handler]) as client:
    ...     response = await client.get("https://example.org")
    ...     body = await response.aread_body()
    ```
    """

    def __init__(
        self,
        user_agent: str | None = None,
        handlers: Sequence[RequestHandler] | None = None,
        request_options: RequestOptions | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(user_agent, handlers, request_options)
        client_kwargs = self.request_options.client_kwargs()
        self._custom_transport = transport is not None
        self._client = httpx.AsyncClient(
            headers=self.default_headers, transport=transport, **client_kwargs
        )
        self._proxy_clients: dict[str, httpx.AsyncClient] = {}
        if transport is None:
            shared: dict[int, httpx.AsyncClient] = {}
            for scheme, proxy in self._proxies.items():
                if id(proxy) not in shared:
                    shared[id(proxy)] = httpx.AsyncClient(
                        headers=self.default_headers,
                        proxy=proxy.to_httpx(),
                        **client_kwargs,
                    )
                self._proxy_clients[scheme] = shared[id(proxy)]

    async def options(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return await self.request("OPTIONS", request_url, None, additional_headers)

    async def get(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return await self.request("GET", request_url, None, additional_headers)

    async def delete(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return await self.request("DELETE", request_url, None, additional_headers)

    async def head(
        self, request_url: str, additional_headers: HeaderTypes | None = None
    ) -> HttpClientResponse:
        return await self.request("HEAD", request_url, None, additional_headers)

    async def post(
        self,
        request_url: str,
        data: RequestData | None,
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return await self.request("POST", request_url, data, additional_headers)

    async def patch(
        self,
        request_url: str,
        data: RequestData | None,
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return await self.request("PATCH", request_url, data, additional_headers)

    async def put(
        self,
        request_url: str,
        data: RequestData | None,
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return await self.request("PUT", request_url, data, additional_headers)

    async def send_stream(
        self,
        verb: str,
        request_url: str,
        stream: typing.AsyncIterable[bytes] | typing.Iterable[bytes],
        additional_headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        return await self.request(verb, request_url, stream, additional_headers)

    async def request(
        self,
        verb: str,
        request_url: str,
        data: RequestData | None = None,
        headers: HeaderTypes | None = None,
    ) -> HttpClientResponse:
        client = self._client_for(request_url)
        with map_transport_exceptions():
            request = client.build_request(
                verb, request_url, content=data, headers=headers  # type: ignore[arg-type]
            )
        self._prepare_request(request_url, request)

        logger.debug("%s %s", verb, request.url)
        with map_transport_exceptions(request):
            response = HttpClientResponse(await client.send(request))

        handler = self._select_handler(response)
        if handler is None:
            return response

        logger.debug(
            "%s answering %s challenge for %s",
            type(handler).__name__,
            response.status_code,
            request.url,
        )
        return await self._authenticate(handler, request_url, request, response)

    def _client_for(self, request_url: str) -> httpx.AsyncClient:
        if self._proxy_for(request_url) is not None:
            return self._proxy_clients.get(self._scheme(request_url), self._client)
        return self._client

    @contextlib.asynccontextmanager
    async def _handshake_client(self, request_url: str) -> AsyncIterator[httpx.AsyncClient]:
        if self._custom_transport:
            yield self._client
            return
        transport = httpx.AsyncHTTPTransport(**self._handshake_transport_kwargs(request_url))
        async with httpx.AsyncClient(
            transport=transport, **self.request_options.client_kwargs()
        ) as client:
            yield client

    async def _authenticate(
        self,
        handler: RequestHandler,
        request_url: str,
        request: httpx.Request,
        response: HttpClientResponse,
    ) -> HttpClientResponse:
        flow: AuthenticationFlow = handler.handle_authentication(request, response.message)
        try:
            async with self._handshake_client(request_url) as client:
                with map_transport_exceptions(request, handshake=True):
                    try:
                        next_request = next(flow)
                    except StopIteration:
                        return response
                    while True:
                        message = await client.send(next_request)
                        try:
                            next_request = flow.send(message)
                        except StopIteration:
                            return HttpClientResponse(message)
        finally:
            flow.close()

    async def aclose(self) -> None:
        await self._client.aclose()
        for proxy_client in set(self._proxy_clients.values()):
            await proxy_client.aclose()

    async def __aenter__(self: U) -> U:
        return self

    async def __aexit__(self, *args: typing.Any) -> None:
        await self.aclose()

