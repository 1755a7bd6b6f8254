from __future__ import annotations

import logging
import typing
from dataclasses import dataclass

import httpx

from .._exceptions import AuthenticationHandshakeError
from ._base import AuthenticationFlow, HandlerKind, RequestHandler
from ._ntlm_messages import (
    NTLM_SCHEME,
    Type2Message,
    create_type1_message,
    create_type3_message,
    parse_type2_message,
)

if typing.TYPE_CHECKING:
    from .._models import HttpClientResponse

logger = logging.getLogger("typedrest.handlers")


@dataclass
class NtlmHandshake:
    """State of a single negotiate / challenge / authenticate exchange."""

    negotiate: str | None = None
    challenge: Type2Message | None = None
    authenticate: str | None = None


def _authenticate_values(headers: httpx.Headers) -> list[str]:
    return [
        value.strip()
        for value in headers.get_list("www-authenticate", split_commas=True)
    ]


def _replay(request: httpx.Request, authorization: str, connection: str) -> httpx.Request:
    headers = request.headers.copy()
    headers["Authorization"] = authorization
    headers["Connection"] = connection
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        stream=request.stream,
        extensions=request.extensions,
    )


class NtlmCredentialHandler(RequestHandler):
    """NTLM challenge/response authentication.

    Nothing is added to the first request; the server is expected to answer
    ``401`` with ``WWW-Authenticate: NTLM``. The handshake then replays the
    request twice on one kept-alive connection: first with the negotiate
    message, then with the authenticate message computed from the server's
    challenge, closing the connection afterwards.
    """

    kind = HandlerKind.NTLM

    def __init__(
        self,
        username: str,
        password: str,
        workstation: str = "",
        domain: str = "",
    ) -> None:
        self.username = username
        self.password = password
        self.workstation = workstation
        self.domain = domain

    def can_handle_authentication(self, response: HttpClientResponse) -> bool:
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return False
        return any(
            value.upper().startswith(NTLM_SCHEME)
            for value in _authenticate_values(response.headers)
        )

    def handle_authentication(
        self, request: httpx.Request, response: httpx.Response
    ) -> AuthenticationFlow:
        handshake = NtlmHandshake()

        handshake.negotiate = create_type1_message(self.workstation, self.domain)
        logger.debug("NTLM negotiate: %s %s", request.method, request.url)
        challenge_response = yield _replay(request, handshake.negotiate, "keep-alive")

        handshake.challenge = self._read_challenge(challenge_response)
        handshake.authenticate = create_type3_message(
            handshake.challenge,
            self.username,
            self.password,
            self.workstation,
            self.domain,
        )
        logger.debug("NTLM authenticate: %s %s", request.method, request.url)
        yield _replay(request, handshake.authenticate, "Close")

    def _read_challenge(self, response: httpx.Response) -> Type2Message:
        for value in _authenticate_values(response.headers):
            scheme, _, token = value.partition(" ")
            if scheme.upper() == NTLM_SCHEME and token.strip():
                return parse_type2_message(token)
        raise AuthenticationHandshakeError(
            f"Expected an NTLM challenge, got status {response.status_code} "
            "without one",
            request=response.request,
        )
