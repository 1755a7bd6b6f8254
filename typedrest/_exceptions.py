"""
Our exception hierarchy:

* InvalidURL
* HTTPError
  x RequestError
    + TooManyRedirects
    + TransportError
      - TimeoutException
      - ConnectError
      - UnsupportedProtocol
      - AuthenticationHandshakeError
  x RestError
"""

from __future__ import annotations

import contextlib
import typing

import httpx

if typing.TYPE_CHECKING:
    from collections.abc import Iterator

__all__ = [
    "AuthenticationHandshakeError",
    "ConnectError",
    "HTTPError",
    "InvalidURL",
    "RequestError",
    "RestError",
    "TimeoutException",
    "TooManyRedirects",
    "TransportError",
    "UnsupportedProtocol",
]


class HTTPError(Exception):
    """
    Base class for `RequestError` and `RestError`.

    Useful for `try...except` blocks when issuing a request through either
    `HttpClient` or `RestClient`.
    """

    def __init__(self, message: str, *, request: httpx.Request | None = None) -> None:
        super().__init__(message)
        self._request = request

    @property
    def request(self) -> httpx.Request:
        if self._request is None:
            raise RuntimeError("The .request property has not been set.")
        return self._request

    @request.setter
    def request(self, request: httpx.Request) -> None:
        self._request = request


class RequestError(HTTPError):
    """
    Base class for all exceptions that may occur when issuing a `.request()`.
    """


class TooManyRedirects(RequestError):
    """
    Redirects were followed more than `RequestOptions.max_redirects` times.
    """


class TransportError(RequestError):
    """
    Base class for all exceptions that occur at the level of the transport.
    """


class TimeoutException(TransportError):
    """
    The transport did not complete within the configured socket timeout.
    """


class ConnectError(TransportError):
    """
    Failed to establish a connection.
    """


class UnsupportedProtocol(TransportError):
    """
    Attempted to make a request to an unsupported protocol.

    For example issuing a request to `ftp://www.example.com`.
    """


class AuthenticationHandshakeError(TransportError):
    """
    A multi-message authentication handshake was interrupted or the server
    answered with something other than the expected challenge.

    Fatal for the request that triggered it; never retried.
    """


class RestError(HTTPError):
    """
    The server answered a REST call with a status code above 299 (404 excepted).

    `status_code` is always set. `result` holds the parsed response body when
    the body was valid JSON.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        result: typing.Any = None,
        request: httpx.Request | None = None,
    ) -> None:
        super().__init__(message, request=request)
        self.status_code = status_code
        self.result = result


class InvalidURL(Exception):
    """
    URL is improperly formed or cannot be parsed.
    """


@contextlib.contextmanager
def map_transport_exceptions(
    request: httpx.Request | None = None,
    *,
    handshake: bool = False,
) -> Iterator[None]:
    """Re-raise `httpx` failures as the matching `typedrest` exception.

    Inside an authentication handshake every transport failure becomes an
    `AuthenticationHandshakeError`.
    """
    try:
        yield
    except httpx.InvalidURL as exc:
        raise InvalidURL(str(exc)) from exc
    except (httpx.TransportError, httpx.StreamError) as exc:
        if handshake:
            mapped: type[TransportError] = AuthenticationHandshakeError
        elif isinstance(exc, httpx.TimeoutException):
            mapped = TimeoutException
        elif isinstance(exc, httpx.ConnectError):
            mapped = ConnectError
        elif isinstance(exc, httpx.UnsupportedProtocol):
            mapped = UnsupportedProtocol
        elif isinstance(exc, httpx.StreamError):
            raise
        else:
            mapped = TransportError
        raise mapped(str(exc) or type(exc).__name__, request=request) from exc
    except httpx.TooManyRedirects as exc:
        raise TooManyRedirects(str(exc), request=request) from exc
    except httpx.RequestError as exc:
        raise RequestError(str(exc) or type(exc).__name__, request=request) from exc
