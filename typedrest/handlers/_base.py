from __future__ import annotations

import enum
import typing
from collections.abc import Generator

import httpx

if typing.TYPE_CHECKING:
    from .._models import HttpClientResponse

AuthenticationFlow = Generator[httpx.Request, httpx.Response, None]


class HandlerKind(enum.Enum):
    BASIC = "basic"
    BEARER = "bearer"
    PERSONAL_ACCESS_TOKEN = "personal_access_token"
    NTLM = "ntlm"


class RequestHandler:
    """Base class for credential handlers.

    A handler takes part in a request in two ways:

    * `prepare_request` decorates every outgoing request (unless its URL is
      presigned).
    * When the server answers ``401``, the dispatcher asks each handler in
      registration order whether it `can_handle_authentication`; the first
      that can drives `handle_authentication`.

    `handle_authentication` is a generator. It yields each follow-up
    `httpx.Request` and receives the matching `httpx.Response`; the last
    response received becomes the result of the call. The dispatcher sends
    every yielded request over one dedicated connection.

    Handlers hold credentials only and are shared by concurrent requests, so
    per-request state must live inside the generator.
    """

    kind: typing.ClassVar[HandlerKind]

    def prepare_request(self, request: httpx.Request) -> None:
        pass

    def can_handle_authentication(self, response: HttpClientResponse) -> bool:
        return False

    def handle_authentication(
        self, request: httpx.Request, response: httpx.Response
    ) -> AuthenticationFlow:
        raise NotImplementedError(
            f"{type(self).__name__} does not answer authentication challenges"
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value}>"
